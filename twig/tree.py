"""
Tree Codec

Serializes a directory snapshot into tree objects and back. A tree
object is a flat listing, one entry per line:

    blob 3b18e512dba79e4c8300dd08aeb37f8e728b8dad hello.txt
    tree 4b825dc642cb6eb9a060e54bf8d69288fbee4904 src

Sub-directories are addressed recursively, so two directories with
identical content produce the same tree id and are stored once.
"""

import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .cas import ObjectStore, ObjectType
from .errors import CorruptObjectError, UnexpectedFilenameError

logger = logging.getLogger(__name__)

METADATA_DIR = ".twig"

# Paths never captured into a tree, matched against any path component
DEFAULT_IGNORE = frozenset({
    METADATA_DIR,
    # Other version control
    ".git", ".svn", ".hg",
    # Build artifacts and caches
    "node_modules", "dist", "__pycache__",
})

ENTRY_TYPES = (ObjectType.BLOB.value, ObjectType.TREE.value)


@dataclass(frozen=True)
class TreeEntry:
    type: str
    oid: str
    name: str

    def serialize(self) -> str:
        return f"{self.type} {self.oid} {self.name}\n"


class IgnoreRules:
    """
    Decides which working-tree paths twig leaves alone.

    Patterns without a ``/`` match any single path component, either
    exactly or as an fnmatch glob. Patterns containing ``/`` match the
    whole relative path. The metadata directory is always ignored.
    """

    def __init__(self, patterns=()):
        self.names = set(DEFAULT_IGNORE)
        self.path_patterns = set()
        for pattern in patterns:
            pattern = pattern.strip().rstrip("/")
            if not pattern:
                continue
            if "/" in pattern:
                self.path_patterns.add(pattern)
            else:
                self.names.add(pattern)
        self._globs = [n for n in self.names if any(c in n for c in "*?[")]

    def matches(self, rel_path: str) -> bool:
        parts = rel_path.replace(os.sep, "/").split("/")
        for part in parts:
            if part in self.names:
                return True
            if any(fnmatch.fnmatch(part, g) for g in self._globs):
                return True
        norm = "/".join(parts)
        return any(fnmatch.fnmatch(norm, p) for p in self.path_patterns)


def is_storable_name(name: str) -> bool:
    """Entries are newline-delimited, so a name containing one cannot be stored."""
    return "\n" not in name


def validate_entry_name(name: str, tree_oid: str):
    if (
        not name
        or "/" in name
        or os.sep in name
        or (os.altsep and os.altsep in name)
        or name in (".", "..")
    ):
        raise UnexpectedFilenameError(f"Unexpected file {name!r} in tree {tree_oid}")


class TreeCodec:
    """Writes directories into tree objects and reads them back."""

    def __init__(self, store: ObjectStore, ignore: IgnoreRules | None = None):
        self.store = store
        self.ignore = ignore or IgnoreRules()

    # ── Writing ───────────────────────────────────────────────────

    def write(self, directory: Path) -> str:
        """
        Recursively store a directory and return its tree id.

        Symlinks are skipped so a snapshot never reads outside the
        working tree, as are names containing a newline. Entries are
        listed in sorted name order.
        """
        return self._write_dir(Path(directory), "")

    def _write_dir(self, path: Path, relative_prefix: str) -> str:
        entries = []
        for item in sorted(os.scandir(path), key=lambda e: e.name):
            rel_path = f"{relative_prefix}{item.name}"
            if item.is_symlink():
                logger.debug("Skipping symlink: %s", rel_path)
                continue
            if self.ignore.matches(rel_path):
                continue
            if not is_storable_name(item.name):
                logger.warning("Skipping %r: file names may not contain a newline", rel_path)
                continue

            if item.is_file():
                with open(item.path, "rb") as f:
                    blob_oid = self.store.store_blob(f.read())
                entries.append(TreeEntry(ObjectType.BLOB.value, blob_oid, item.name))
            elif item.is_dir():
                subtree_oid = self._write_dir(Path(item.path), f"{rel_path}/")
                entries.append(TreeEntry(ObjectType.TREE.value, subtree_oid, item.name))

        return self.store_entries(entries)

    @staticmethod
    def serialize(entries) -> bytes:
        entries = list(entries)
        for entry in entries:
            if not is_storable_name(entry.name):
                raise UnexpectedFilenameError(f"Cannot store file name {entry.name!r}")
        return "".join(entry.serialize() for entry in entries).encode(
            "utf-8", errors="surrogateescape"
        )

    def store_entries(self, entries) -> str:
        """Store an explicit entry list as a tree object, in the given order."""
        return self.store.store(self.serialize(entries), ObjectType.TREE)

    # ── Reading ───────────────────────────────────────────────────

    def read(self, tree_oid: str) -> list[TreeEntry]:
        """
        Parse a tree object into its entries.

        Raises UnexpectedFilenameError if any entry name is not a plain
        path component; such a tree is never partially accepted.
        """
        data = self.store.retrieve(tree_oid, ObjectType.TREE).data
        entries = []
        for line in data.decode("utf-8", errors="surrogateescape").split("\n"):
            if not line:
                continue
            parts = line.split(" ", 2)
            if len(parts) != 3 or parts[0] not in ENTRY_TYPES:
                raise CorruptObjectError(f"Malformed entry {line!r} in tree {tree_oid}")
            typ, oid, name = parts
            validate_entry_name(name, tree_oid)
            entries.append(TreeEntry(typ, oid, name))
        return entries

    def flatten(self, tree_oid: str, base: str = "") -> dict[str, str]:
        """Flatten a tree into a {path: blob_oid} mapping with '/'-joined paths."""
        result = {}
        for entry in self.read(tree_oid):
            full_path = f"{base}/{entry.name}" if base else entry.name
            if entry.type == ObjectType.BLOB.value:
                result[full_path] = entry.oid
            else:
                result.update(self.flatten(entry.oid, full_path))
        return result
