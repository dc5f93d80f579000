"""
twig: a minimal content-addressed version control system.

A single-user engine that snapshots a directory tree into an object
store, names history with branches and tags, and reconciles divergent
histories with fast-forward or three-way merges.
"""

__version__ = "0.1.0"

__all__ = [
    # Core
    "Repository",
    # Object store
    "ObjectStore",
    "ObjectType",
    "CASObject",
    # Refs, trees, commits
    "RefStore",
    "Ref",
    "TreeCodec",
    "TreeEntry",
    "CommitStore",
    "Commit",
    # History and merging
    "AncestorWalker",
    "MergeEngine",
    "MergeOutcome",
]


# Lazy imports: only resolve when accessed
_LAZY = {
    "Repository": ("repo", "Repository"),
    "ObjectStore": ("cas", "ObjectStore"),
    "ObjectType": ("cas", "ObjectType"),
    "CASObject": ("cas", "CASObject"),
    "RefStore": ("refs", "RefStore"),
    "Ref": ("refs", "Ref"),
    "TreeCodec": ("tree", "TreeCodec"),
    "TreeEntry": ("tree", "TreeEntry"),
    "CommitStore": ("commit", "CommitStore"),
    "Commit": ("commit", "Commit"),
    "AncestorWalker": ("history", "AncestorWalker"),
    "MergeEngine": ("merge", "MergeEngine"),
    "MergeOutcome": ("merge", "MergeOutcome"),
}


def __getattr__(name):
    if name in _LAZY:
        import importlib

        module_name, attr = _LAZY[name]
        module = importlib.import_module(f".{module_name}", __name__)
        return getattr(module, attr)
    raise AttributeError(f"module 'twig' has no attribute {name!r}")
