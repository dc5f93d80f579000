"""
Content-Addressed Store (CAS)

The foundational storage layer. Every object is stored exactly once,
addressed by the SHA-1 of its type tag and content. This gives us:

- Automatic deduplication (identical files and directories cost nothing)
- Integrity by construction (an id names exactly one byte sequence)
- Cheap snapshots (commits share unchanged blobs and sub-trees)

On disk each object is a single file, ``objects/<oid>``, holding the
framed bytes ``<type>\\0<content>``. Objects are write-once: the store
never rewrites or deletes an existing id.
"""

import hashlib
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import CorruptObjectError, ObjectNotFoundError, TypeMismatchError

logger = logging.getLogger(__name__)

OID_LENGTH = 40


class ObjectType(Enum):
    BLOB = "blob"  # Raw file content
    TREE = "tree"  # Directory listing: type, oid, name per line
    COMMIT = "commit"  # Root tree, parents, message


@dataclass(frozen=True)
class CASObject:
    """An immutable content-addressed object."""

    hash: str
    type: ObjectType
    data: bytes
    size: int


class ObjectStore:
    """
    Filesystem-backed content-addressed store.

    Thread Safety:
        No locking. Two processes writing the same object race harmlessly
        (both write identical bytes via rename), but the store assumes a
        single active twig invocation per repository.
    """

    def __init__(self, objects_dir: Path):
        self.objects_dir = Path(objects_dir)

    # ── Core Operations ───────────────────────────────────────────

    @staticmethod
    def hash_content(content: bytes, obj_type: ObjectType) -> str:
        """Hash content with its type tag so a blob and a tree never collide."""
        return hashlib.sha1(_frame(content, obj_type)).hexdigest()

    def store(self, content: bytes, obj_type: ObjectType) -> str:
        """
        Store content and return its id. Idempotent: storing the same
        content twice is a no-op that returns the same id.
        """
        oid = self.hash_content(content, obj_type)
        path = self._object_path(oid)
        if path.exists():
            return oid

        self.objects_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.objects_dir), prefix=".obj.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(_frame(content, obj_type))
            Path(tmp_path).replace(path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        logger.debug("Stored %s %s (%d bytes)", obj_type.value, oid, len(content))
        return oid

    def retrieve(self, oid: str, expected_type: ObjectType | None = None) -> CASObject:
        """
        Retrieve an object by id.

        Raises ObjectNotFoundError for an unknown id and TypeMismatchError
        when expected_type is given and the stored tag differs.
        """
        path = self._object_path(oid)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            raise ObjectNotFoundError(oid) from None

        tag, sep, data = raw.partition(b"\0")
        if not sep:
            raise CorruptObjectError(f"Object {oid} has no type header")
        try:
            obj_type = ObjectType(tag.decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            raise CorruptObjectError(f"Object {oid} has unknown type {tag!r}") from None

        if expected_type is not None and obj_type != expected_type:
            raise TypeMismatchError(oid, expected_type.value, obj_type.value)

        return CASObject(hash=oid, type=obj_type, data=data, size=len(data))

    def exists(self, oid: str) -> bool:
        return self._object_path(oid).is_file()

    def store_blob(self, content: bytes) -> str:
        """Store raw file content."""
        return self.store(content, ObjectType.BLOB)

    def read_blob(self, oid: str) -> bytes:
        return self.retrieve(oid, ObjectType.BLOB).data

    def iter_objects(self):
        """Yield the id of every stored object (directory order)."""
        if not self.objects_dir.is_dir():
            return
        for entry in os.scandir(self.objects_dir):
            if entry.is_file() and not entry.name.startswith("."):
                yield entry.name

    # ── Statistics ────────────────────────────────────────────────

    def stats(self) -> dict:
        """Storage statistics."""
        total_objects = 0
        total_bytes = 0
        by_type = {}
        for oid in self.iter_objects():
            obj = self.retrieve(oid)
            total_objects += 1
            total_bytes += obj.size
            bucket = by_type.setdefault(obj.type.value, {"count": 0, "bytes": 0})
            bucket["count"] += 1
            bucket["bytes"] += obj.size

        return {
            "total_objects": total_objects,
            "total_bytes": total_bytes,
            "by_type": by_type,
        }

    def _object_path(self, oid: str) -> Path:
        if not oid or "/" in oid or "\\" in oid or oid.startswith("."):
            raise ObjectNotFoundError(oid)
        return self.objects_dir / oid


def _frame(content: bytes, obj_type: ObjectType) -> bytes:
    return obj_type.value.encode() + b"\0" + content
