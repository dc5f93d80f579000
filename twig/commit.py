"""
Commit Model

A commit records a root tree, zero or more parent commits and a free-text
message. The payload is a small header of ``key value`` lines followed by
a blank line and the message:

    tree 4b825dc642cb6eb9a060e54bf8d69288fbee4904
    parent 9fceb02d0ae598e95dc970b74767f19372d61af8

    Add the parser

A commit's id is the id of that payload; it is not stored inside it.
"""

import logging
from dataclasses import dataclass

from .cas import ObjectStore, ObjectType
from .errors import CorruptObjectError
from .refs import MERGE_HEAD, RefStore

logger = logging.getLogger(__name__)

FIELD_TREE = "tree"
FIELD_PARENT = "parent"


@dataclass(frozen=True)
class Commit:
    oid: str
    tree: str
    parents: tuple[str, ...]
    message: str

    @property
    def parent(self) -> str | None:
        """First parent, or None for a root commit."""
        return self.parents[0] if self.parents else None

    def to_dict(self) -> dict:
        return {
            "id": self.oid,
            "tree": self.tree,
            "parents": list(self.parents),
            "message": self.message,
        }


def serialize_commit(tree: str, parents, message: str) -> bytes:
    lines = [f"{FIELD_TREE} {tree}"]
    lines.extend(f"{FIELD_PARENT} {p}" for p in parents)
    return ("\n".join(lines) + f"\n\n{message}\n").encode("utf-8", errors="surrogateescape")


def parse_commit(oid: str, data: bytes) -> Commit:
    """
    Decode a commit payload.

    Unknown header fields are logged and skipped so that commits written
    by a newer twig can still be read.
    """
    header, _, body = data.decode("utf-8", errors="surrogateescape").partition("\n\n")
    tree = None
    parents = []
    for line in header.split("\n"):
        if not line:
            continue
        key, _, value = line.partition(" ")
        if key == FIELD_TREE:
            tree = value
        elif key == FIELD_PARENT:
            parents.append(value)
        else:
            logger.warning("Unexpected field in commit %s: %s=%s", oid, key, value)

    if tree is None:
        raise CorruptObjectError(f"Commit {oid} has no tree")
    if body.endswith("\n"):
        body = body[:-1]
    return Commit(oid=oid, tree=tree, parents=tuple(parents), message=body)


class CommitStore:
    """Reads and writes commit objects, completing pending merges."""

    def __init__(self, store: ObjectStore, refs: RefStore):
        self.store = store
        self.refs = refs

    def pending_merge(self) -> str | None:
        """The other head of an unfinished merge, if any."""
        return self.refs.read(MERGE_HEAD, deref=False).value

    def write(self, tree: str, parents, message: str) -> str:
        """
        Store a commit and return its id.

        If a merge is in progress its MERGE_HEAD becomes an extra parent
        and the marker is cleared once the commit is stored.
        """
        parents = [p for p in parents if p]
        merge_head = self.pending_merge()
        if merge_head and merge_head not in parents:
            parents.append(merge_head)

        oid = self.store.store(serialize_commit(tree, parents, message), ObjectType.COMMIT)

        if merge_head:
            self.refs.delete(MERGE_HEAD)
            logger.info("Completed merge of %s in commit %s", merge_head, oid)
        return oid

    def read(self, oid: str) -> Commit:
        data = self.store.retrieve(oid, ObjectType.COMMIT).data
        return parse_commit(oid, data)
