"""
Working Tree

Moves data between the object store and the repository directory:

- capture(): hash every tracked file into a {path: blob_oid} mapping
- materialize(): replace the working files with a stored tree
- materialize_merged(): replace them with a three-way merge result

The metadata directory and ignored paths are never touched, so they
survive checkouts.

Materialization is not transactional: files are removed and rewritten
in place, and a crash part-way through leaves a mixture of the old and
new trees on disk.
"""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path

from .cas import ObjectStore
from .diff import MergedTree, merge_trees
from .errors import UnexpectedFilenameError
from .tools import ExternalTool
from .tree import TreeCodec, is_storable_name

logger = logging.getLogger(__name__)


class WorkingTree:
    """The repository's working directory, minus ignored content."""

    def __init__(self, root: Path, store: ObjectStore, trees: TreeCodec):
        self.root = Path(root)
        self.store = store
        self.trees = trees
        self.ignore = trees.ignore

    def _iter_entries(self, directory: Path, relative_prefix: str):
        """Yield (DirEntry, rel_path) for non-ignored entries, symlinks included."""
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            rel_path = f"{relative_prefix}{entry.name}"
            if self.ignore.matches(rel_path):
                continue
            yield entry, rel_path

    def _target(self, rel_path: str) -> Path:
        """
        Path to write a tracked file to, never through a symlink.

        A symlink where the file belongs is removed. A symlinked parent
        directory can only be ignored content that empty() left alone,
        so writing below it is refused.
        """
        parts = rel_path.split("/")
        parent = self.root
        for part in parts[:-1]:
            parent = parent / part
            if parent.is_symlink():
                raise UnexpectedFilenameError(
                    f"Refusing to write {rel_path!r} through symlink {parent}"
                )
        target = parent / parts[-1]
        if target.is_symlink():
            target.unlink()
        return target

    # ── Capture ───────────────────────────────────────────────────

    def capture(self) -> dict[str, str]:
        """
        Hash the working tree into {path: blob_oid}.

        Blobs are written to the store as a side effect (a no-op for
        content already present). Nothing else is persisted.
        """
        result = {}
        self._capture_dir(self.root, "", result)
        return result

    def _capture_dir(self, directory: Path, relative_prefix: str, result: dict):
        for entry, rel_path in self._iter_entries(directory, relative_prefix):
            # Same entries TreeCodec.write would skip
            if entry.is_symlink() or not is_storable_name(entry.name):
                continue
            if entry.is_file():
                with open(entry.path, "rb") as f:
                    result[rel_path] = self.store.store_blob(f.read())
            elif entry.is_dir():
                self._capture_dir(Path(entry.path), f"{rel_path}/", result)

    # ── Emptying ──────────────────────────────────────────────────

    def empty(self):
        """
        Remove every non-ignored file, symlink and directory. Symlinks
        are unlinked, never followed.

        A directory that still holds ignored content cannot be removed;
        that is expected and silently left in place.
        """
        self._empty_dir(self.root, "")

    def _empty_dir(self, directory: Path, relative_prefix: str):
        for entry, rel_path in self._iter_entries(directory, relative_prefix):
            if entry.is_symlink() or entry.is_file():
                os.unlink(entry.path)
            elif entry.is_dir():
                self._empty_dir(Path(entry.path), f"{rel_path}/")
                try:
                    os.rmdir(entry.path)
                except OSError as e:
                    if e.errno not in (errno.ENOTEMPTY, errno.EEXIST):
                        raise
                    logger.debug("Keeping %s: still holds ignored files", rel_path)

    # ── Materialization ───────────────────────────────────────────

    def _write_files(self, files: dict[str, bytes]):
        for rel_path, content in files.items():
            target = self._target(rel_path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

    def materialize(self, tree_oid: str):
        """Replace the working tree with the contents of a stored tree."""
        # Flatten first so a corrupt tree is rejected before anything is deleted
        flat = self.trees.flatten(tree_oid)
        self.empty()
        for rel_path, blob_oid in flat.items():
            target = self._target(rel_path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(self.store.read_blob(blob_oid))
        logger.debug("Materialized tree %s (%d files)", tree_oid, len(flat))

    def materialize_merged(
        self,
        base_tree: str,
        head_tree: str,
        other_tree: str,
        tool: ExternalTool,
    ) -> MergedTree:
        """
        Replace the working tree with the three-way merge of three trees.

        The merge is computed completely before the working tree is
        emptied, so a failing merge tool leaves the files untouched.
        """
        merged = merge_trees(
            self.store,
            tool,
            self.trees.flatten(base_tree),
            self.trees.flatten(head_tree),
            self.trees.flatten(other_tree),
        )
        self.empty()
        self._write_files(merged.files)
        logger.debug(
            "Materialized merge (%d files, %d conflicts)",
            len(merged.files), len(merged.conflicts),
        )
        return merged
