"""AncestorWalker tests."""

import pytest

from twig.commit import CommitStore
from twig.history import AncestorWalker, iter_ancestors

TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


class CountingCommits:
    """Wraps a CommitStore and records which commits were read."""

    def __init__(self, commits):
        self.commits = commits
        self.reads = []

    def read(self, oid):
        self.reads.append(oid)
        return self.commits.read(oid)


@pytest.fixture
def commits(store, refs):
    return CommitStore(store, refs)


@pytest.fixture
def graph(commits):
    """
    root - a - b - m
      \\         /
        - s ---

    m's first parent is b, its second parent is s.
    """
    root = commits.write(TREE, [], "root")
    a = commits.write(TREE, [root], "a")
    b = commits.write(TREE, [a], "b")
    s = commits.write(TREE, [root], "side")
    m = commits.write(TREE, [b, s], "merge")
    return {"root": root, "a": a, "b": b, "s": s, "m": m}


class TestAncestorWalker:
    def test_linear_chain(self, commits):
        c1 = commits.write(TREE, [], "1")
        c2 = commits.write(TREE, [c1], "2")
        c3 = commits.write(TREE, [c2], "3")
        assert list(AncestorWalker(commits, [c3])) == [c3, c2, c1]

    def test_first_parent_history_before_side_branch(self, commits, graph):
        g = graph
        order = list(AncestorWalker(commits, [g["m"]]))
        assert order == [g["m"], g["b"], g["a"], g["root"], g["s"]]

    def test_merge_parent_already_on_first_parent_chain(self, commits):
        chain = [commits.write(TREE, [], "c0")]
        for i in range(1, 6):
            chain.append(commits.write(TREE, [chain[-1]], f"c{i}"))
        m = commits.write(TREE, [chain[-1], chain[-3]], "merge")

        order = list(AncestorWalker(commits, [m]))

        assert order == [m, *reversed(chain)]

    def test_each_commit_once(self, commits, graph):
        order = list(iter_ancestors(commits, graph["m"]))
        assert len(order) == len(set(order)) == 5

    def test_multiple_seeds(self, commits, graph):
        g = graph
        order = list(iter_ancestors(commits, g["b"], g["s"]))
        assert set(order) == {g["b"], g["a"], g["root"], g["s"]}
        assert order[0] == g["b"]

    def test_none_seed_ignored(self, commits):
        assert list(AncestorWalker(commits, [None])) == []

    def test_early_stop_reads_only_yielded(self, commits, graph):
        counting = CountingCommits(commits)
        walker = AncestorWalker(counting, [graph["m"]])
        assert next(walker) == graph["m"]
        assert next(walker) == graph["b"]
        assert counting.reads == [graph["m"], graph["b"]]

    def test_exhausted_walker_stays_exhausted(self, commits):
        c1 = commits.write(TREE, [], "1")
        walker = AncestorWalker(commits, [c1])
        assert list(walker) == [c1]
        assert list(walker) == []
