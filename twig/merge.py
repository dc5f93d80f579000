"""
Merge Engine

Reconciles two lines of history:

- Fast-forward: HEAD is an ancestor of the other commit, so HEAD just
  moves to it. No tree merge, no new commit.
- Three-way: the trees of HEAD and the other commit are merged against
  their merge base into the working tree, and the other commit is
  recorded in MERGE_HEAD. The next commit picks MERGE_HEAD up as its
  second parent.

Conflicts are not errors. They surface as conflict markers inside the
merged files and the user resolves them before committing.
"""

import logging
from dataclasses import dataclass, field

from .commit import CommitStore
from .errors import NoCommonAncestorError
from .history import AncestorWalker
from .refs import HEAD, MERGE_HEAD, RefStore
from .tools import ExternalTool
from .workspace import WorkingTree

logger = logging.getLogger(__name__)


@dataclass
class MergeOutcome:
    base: str
    fast_forward: bool = False
    up_to_date: bool = False
    conflicts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "base": self.base,
            "fast_forward": self.fast_forward,
            "up_to_date": self.up_to_date,
            "conflicts": list(self.conflicts),
        }


class MergeEngine:
    def __init__(
        self,
        refs: RefStore,
        commits: CommitStore,
        worktree: WorkingTree,
        tool: ExternalTool,
    ):
        self.refs = refs
        self.commits = commits
        self.worktree = worktree
        self.tool = tool

    def merge_base(self, a: str, b: str) -> str | None:
        """
        Find a common ancestor of two commits.

        Collects every ancestor of ``a``, then walks the history of ``b``
        and returns the first commit also reachable from ``a``. With
        criss-cross histories (several merge bases) this is *a* common
        ancestor in walk order, not necessarily the lowest one.
        """
        ancestors_a = set(AncestorWalker(self.commits, {a}))
        for oid in AncestorWalker(self.commits, {b}):
            if oid in ancestors_a:
                return oid
        return None

    def merge(self, head: str, other: str) -> MergeOutcome:
        """Merge ``other`` into ``head`` (the commit HEAD currently resolves to)."""
        base = self.merge_base(other, head)
        if base is None:
            raise NoCommonAncestorError(head, other)

        if base == other:
            logger.info("Already up to date with %s", other)
            return MergeOutcome(base=base, up_to_date=True)

        other_commit = self.commits.read(other)

        if base == head:
            self.worktree.materialize(other_commit.tree)
            self.refs.write(HEAD, other)
            logger.info("Fast-forwarded %s to %s", head, other)
            return MergeOutcome(base=base, fast_forward=True)

        merged = self.worktree.materialize_merged(
            self.commits.read(base).tree,
            self.commits.read(head).tree,
            other_commit.tree,
            self.tool,
        )
        self.refs.write(MERGE_HEAD, other, deref=False)
        logger.info(
            "Merged %s into working tree (base %s, %d conflicts)",
            other, base, len(merged.conflicts),
        )
        return MergeOutcome(base=base, conflicts=merged.conflicts)
