"""History walking over the commit graph."""

from collections import deque


class AncestorWalker:
    """
    Iterate over a set of commits and all of their ancestors.

    Each commit is yielded exactly once, however many paths reach it.
    The first parent of a commit is visited next and any further parents
    are queued behind the current frontier, so first-parent history comes
    out before merged-in side branches.

    The walker is single-use. Stopping early (e.g. once a merge base is
    found) simply abandons it; nothing beyond the yielded commits is read.
    """

    def __init__(self, commits, seeds):
        self.commits = commits
        self.visited: set[str] = set()
        self.frontier: deque[str] = deque(oid for oid in seeds if oid)

    def __iter__(self):
        return self

    def __next__(self) -> str:
        while self.frontier:
            oid = self.frontier.popleft()
            if oid in self.visited:
                continue
            self.visited.add(oid)

            parents = self.commits.read(oid).parents
            if parents:
                self.frontier.appendleft(parents[0])
                self.frontier.extend(parents[1:])
            return oid
        raise StopIteration


def iter_ancestors(commits, *seeds):
    """Convenience wrapper: walk history from one or more commit ids."""
    return AncestorWalker(commits, seeds)
