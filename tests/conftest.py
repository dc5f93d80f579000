"""Shared pytest fixtures and helpers."""

import shutil

import pytest

from twig.cas import ObjectStore
from twig.refs import RefStore
from twig.repo import Repository

requires_diff = pytest.mark.skipif(shutil.which("diff") is None, reason="diff not installed")
requires_diff3 = pytest.mark.skipif(shutil.which("diff3") is None, reason="diff3 not installed")


def write_files(root, files: dict):
    """Write {relative_path: str|bytes} under root, creating directories."""
    for rel, content in files.items():
        path = root.joinpath(*rel.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode()
        path.write_bytes(content)


def read_files(root) -> dict:
    """Read every file under root except the metadata directory."""
    result = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root)
        if rel.parts[0] == ".twig" or not path.is_file():
            continue
        result["/".join(rel.parts)] = path.read_bytes()
    return result


@pytest.fixture
def store(tmp_path):
    return ObjectStore(tmp_path / "objects")


@pytest.fixture
def refs(tmp_path):
    twig_dir = tmp_path / ".twig"
    twig_dir.mkdir()
    return RefStore(twig_dir)


@pytest.fixture
def repo(tmp_path):
    """Empty initialized repository."""
    return Repository.init(tmp_path / "project")


@pytest.fixture
def repo_with_commit(repo):
    """Repository with one commit on main holding hello.txt and sub/data.txt."""
    write_files(repo.root, {"hello.txt": "hello world", "sub/data.txt": "data"})
    repo.commit("Initial commit")
    return repo
