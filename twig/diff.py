"""
Tree comparison, diffing and three-way merging of flattened trees.

All functions here work on flattened trees, i.e. {path: blob_oid}
mappings as produced by TreeCodec.flatten or WorkingTree.capture.
"""

from dataclasses import dataclass, field

from .cas import ObjectStore, ObjectType
from .tools import ExternalTool

ACTION_NEW = "new file"
ACTION_DELETED = "deleted"
ACTION_MODIFIED = "modified"


@dataclass
class MergedTree:
    """Result of a three-way tree merge: path -> content, plus conflicted paths."""

    files: dict[str, bytes] = field(default_factory=dict)
    conflicts: list[str] = field(default_factory=list)


def compare_trees(*trees: dict) -> dict[str, list]:
    """
    Align several flattened trees by path.

    Returns {path: [oid_in_tree_0, oid_in_tree_1, ...]} for every path
    present in any tree, with None where a tree lacks the path.
    """
    result: dict[str, list] = {}
    for i, tree in enumerate(trees):
        for path, oid in tree.items():
            if path not in result:
                result[path] = [None] * len(trees)
            result[path][i] = oid
    return result


def iter_changed_files(from_tree: dict, to_tree: dict):
    """Yield (path, action) for every path that differs, in path order."""
    for path, (from_oid, to_oid) in sorted(compare_trees(from_tree, to_tree).items()):
        if from_oid == to_oid:
            continue
        if from_oid is None:
            yield path, ACTION_NEW
        elif to_oid is None:
            yield path, ACTION_DELETED
        else:
            yield path, ACTION_MODIFIED


def _blob(store: ObjectStore, oid: str | None) -> bytes | None:
    if oid is None:
        return None
    return store.retrieve(oid, ObjectType.BLOB).data


def diff_trees(store: ObjectStore, tool: ExternalTool, from_tree: dict, to_tree: dict) -> bytes:
    """Concatenated unified diffs for every changed path."""
    output = []
    for path, (from_oid, to_oid) in sorted(compare_trees(from_tree, to_tree).items()):
        if from_oid == to_oid:
            continue
        result = tool.diff(
            _blob(store, from_oid),
            _blob(store, to_oid),
            f"a/{path}",
            f"b/{path}",
        )
        output.append(result.output)
    return b"".join(output)


def merge_trees(
    store: ObjectStore,
    tool: ExternalTool,
    base: dict,
    head: dict,
    other: dict,
) -> MergedTree:
    """
    Three-way merge of flattened trees.

    A side that alone differs from base wins; identical sides need no
    merge. Only when both sides changed a path differently is the
    external tool asked to merge the contents, and any conflict markers
    it emits become part of the file. A path whose result is None was
    deleted and is left out.
    """
    merged = MergedTree()
    for path, (base_oid, head_oid, other_oid) in sorted(
        compare_trees(base, head, other).items()
    ):
        if head_oid == other_oid:
            result_oid = head_oid
        elif base_oid == head_oid:
            result_oid = other_oid
        elif base_oid == other_oid:
            result_oid = head_oid
        else:
            result = tool.merge(
                _blob(store, head_oid),
                _blob(store, base_oid),
                _blob(store, other_oid),
            )
            merged.files[path] = result.output
            if not result.clean:
                merged.conflicts.append(path)
            continue

        if result_oid is not None:
            merged.files[path] = _blob(store, result_oid)
    return merged
