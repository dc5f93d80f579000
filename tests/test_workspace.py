"""WorkingTree tests: capture, empty and materialize."""

import pytest

from conftest import read_files, write_files
from twig.cas import ObjectType
from twig.errors import UnexpectedFilenameError
from twig.tree import IgnoreRules, TreeCodec, TreeEntry
from twig.workspace import WorkingTree


@pytest.fixture
def worktree(tmp_path, store):
    root = tmp_path / "work"
    root.mkdir()
    return WorkingTree(root, store, TreeCodec(store, IgnoreRules(["*.log"])))


class TestCapture:
    def test_captures_files_as_blobs(self, worktree, store):
        write_files(worktree.root, {"a.txt": "A", "dir/b.txt": "B"})
        captured = worktree.capture()
        assert captured == {
            "a.txt": store.hash_content(b"A", ObjectType.BLOB),
            "dir/b.txt": store.hash_content(b"B", ObjectType.BLOB),
        }
        assert store.read_blob(captured["dir/b.txt"]) == b"B"

    def test_skips_metadata_and_ignored(self, worktree):
        write_files(worktree.root, {
            "keep.txt": "k",
            ".twig/HEAD": "ref: refs/heads/main\n",
            "debug.log": "noise",
            "node_modules/x.js": "x",
        })
        assert sorted(worktree.capture()) == ["keep.txt"]

    def test_matches_written_tree(self, worktree):
        write_files(worktree.root, {"a.txt": "A", "d/e/f.txt": "F"})
        tree = worktree.trees.write(worktree.root)
        assert worktree.trees.flatten(tree) == worktree.capture()


class TestEmpty:
    def test_removes_tracked_content(self, worktree):
        write_files(worktree.root, {"a.txt": "A", "d/e/f.txt": "F"})
        worktree.empty()
        assert list(worktree.root.iterdir()) == []

    def test_keeps_ignored_files_and_their_directories(self, worktree):
        write_files(worktree.root, {
            "a.txt": "A",
            "logs/run.log": "kept",
            "logs/tracked.txt": "gone",
            ".twig/HEAD": "ref: refs/heads/main\n",
        })
        worktree.empty()
        assert (worktree.root / "logs" / "run.log").read_text() == "kept"
        assert not (worktree.root / "logs" / "tracked.txt").exists()
        assert (worktree.root / ".twig" / "HEAD").exists()
        assert not (worktree.root / "a.txt").exists()


class TestMaterialize:
    def test_round_trip(self, worktree):
        files = {"a.txt": b"A", "d/e/f.txt": b"F", "bin.dat": bytes(range(10))}
        write_files(worktree.root, files)
        tree = worktree.trees.write(worktree.root)

        write_files(worktree.root, {"a.txt": "changed", "extra.txt": "new"})
        worktree.materialize(tree)
        assert read_files(worktree.root) == files

    def test_removes_stale_directories(self, worktree):
        write_files(worktree.root, {"a.txt": "A"})
        tree = worktree.trees.write(worktree.root)
        write_files(worktree.root, {"stale/deep/x.txt": "x"})

        worktree.materialize(tree)
        assert not (worktree.root / "stale").exists()

    def test_ignored_files_survive(self, worktree):
        write_files(worktree.root, {"a.txt": "A"})
        tree = worktree.trees.write(worktree.root)
        write_files(worktree.root, {"build.log": "keep me"})

        worktree.materialize(tree)
        assert (worktree.root / "build.log").read_text() == "keep me"

    def test_unsafe_tree_rejected_before_deleting(self, worktree, store):
        write_files(worktree.root, {"precious.txt": "do not delete"})
        blob = store.store_blob(b"evil")
        bad = store.store(f"blob {blob} ..\n".encode(), ObjectType.TREE)
        root = worktree.trees.store_entries([TreeEntry("tree", bad, "sub")])

        with pytest.raises(UnexpectedFilenameError):
            worktree.materialize(root)
        assert (worktree.root / "precious.txt").read_text() == "do not delete"


def _symlink(link, target):
    try:
        link.symlink_to(target)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")


class TestSymlinks:
    def test_capture_skips_symlinks(self, worktree):
        write_files(worktree.root, {"real.txt": "r"})
        _symlink(worktree.root / "link.txt", worktree.root / "real.txt")
        assert sorted(worktree.capture()) == ["real.txt"]

    def test_empty_unlinks_without_following(self, worktree, tmp_path):
        outside = tmp_path / "outside"
        write_files(outside, {"keep.txt": "outside data"})
        _symlink(worktree.root / "linkdir", outside)
        _symlink(worktree.root / "linkfile", outside / "keep.txt")

        worktree.empty()

        assert list(worktree.root.iterdir()) == []
        assert (outside / "keep.txt").read_text() == "outside data"

    def test_checkout_does_not_write_through_symlink(self, repo, tmp_path):
        outside = tmp_path / "outside.txt"
        outside.write_text("precious")

        write_files(repo.root, {"config": "tracked v1"})
        first = repo.commit("tracked file")
        (repo.root / "config").unlink()
        _symlink(repo.root / "config", outside)
        repo.commit("replaced by a symlink")

        repo.checkout(first)

        assert outside.read_text() == "precious"
        assert not (repo.root / "config").is_symlink()
        assert (repo.root / "config").read_text() == "tracked v1"

    def test_refuses_symlinked_ignored_parent(self, worktree, store, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        _symlink(worktree.root / "node_modules", outside)

        blob = store.store_blob(b"payload")
        sub = worktree.trees.store_entries([TreeEntry("blob", blob, "x.js")])
        root = worktree.trees.store_entries([TreeEntry("tree", sub, "node_modules")])

        with pytest.raises(UnexpectedFilenameError, match="symlink"):
            worktree.materialize(root)
        assert list(outside.iterdir()) == []


class TestUnstorableNames:
    def test_newline_name_skipped_by_capture_and_tree(self, worktree):
        write_files(worktree.root, {"ok.txt": "fine"})
        try:
            (worktree.root / "bad\nname.txt").write_text("x")
        except OSError:
            pytest.skip("file system rejects newlines in names")

        tree = worktree.trees.write(worktree.root)
        assert worktree.trees.flatten(tree) == worktree.capture()
        assert sorted(worktree.capture()) == ["ok.txt"]
