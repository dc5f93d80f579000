"""
twig CLI

A thin argparse layer over Repository. Most commands accept --json
for structured output; human-readable output is the default.

Usage:
    twig init
    twig write-tree
    twig read-tree TREE
    twig commit -m MESSAGE
    twig log [REF]
    twig checkout REF
    twig branch [NAME [START]]
    twig tag NAME [REF]
    twig status
    twig reset COMMIT
    twig show [REF]
    twig diff [REF]
    twig merge REF
    twig merge-base REF REF
    twig hash-object FILE
    twig cat-file OBJECT [TYPE]
"""

import argparse
import difflib
import json
import logging
import sys
import textwrap
from pathlib import Path

import twig as _twig_pkg

from .cas import ObjectType
from .errors import NoCommonAncestorError, NotARepository, TwigError
from .repo import HEAD_ALIAS, Repository


def open_repo(args) -> Repository:
    return Repository.find(Path(args.path or "."))


def short_hash(h: str | None) -> str:
    return h[:10] if h else "none"


def print_json(data):
    print(json.dumps(data, indent=2, default=str))


def get_verbosity(args) -> int:
    """Return verbosity level: 0=quiet, 1=normal, 2=verbose."""
    if getattr(args, "json", False):
        return 1
    if getattr(args, "verbose", False):
        return 2
    if getattr(args, "quiet", False):
        return 0
    return 1


def write_bytes(data: bytes):
    sys.stdout.flush()
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


def print_commit(commit, refs: dict | None = None):
    names = (refs or {}).get(commit.oid)
    ref_str = f" ({', '.join(names)})" if names else ""
    print(f"commit {commit.oid}{ref_str}")
    if len(commit.parents) > 1:
        print(f"Merge: {' '.join(short_hash(p) for p in commit.parents)}")
    print()
    print(textwrap.indent(commit.message, "    "))
    print()


# ── Commands ──────────────────────────────────────────────────


def cmd_init(args):
    path = Path(args.path or ".").resolve()
    repo = Repository.init(path)
    if args.json:
        print_json({"root": str(repo.root), "twig_dir": str(repo.twig_dir)})
    elif get_verbosity(args) > 0:
        print(f"Initialized empty twig repository in {repo.twig_dir}")


def cmd_write_tree(args):
    repo = open_repo(args)
    tree = repo.write_tree()
    if args.json:
        print_json({"tree": tree})
    else:
        print(tree)


def cmd_read_tree(args):
    repo = open_repo(args)
    repo.read_tree(args.tree)


def cmd_commit(args):
    repo = open_repo(args)
    oid = repo.commit(args.message)
    if args.json:
        print_json(repo.commits.read(oid).to_dict())
    else:
        print(oid)


def cmd_log(args):
    repo = open_repo(args)
    refs = repo.ref_decorations()
    if args.json:
        print_json([c.to_dict() for c in repo.log(args.ref)])
        return
    for commit in repo.log(args.ref):
        if get_verbosity(args) == 0:
            print(commit.oid)
        else:
            print_commit(commit, refs)


def cmd_checkout(args):
    repo = open_repo(args)
    repo.checkout(args.ref)
    if get_verbosity(args) > 0 and not args.json:
        branch = repo.current_branch()
        if branch:
            print(f"Switched to branch '{branch}'")
        else:
            print(f"HEAD is now at {short_hash(repo.head())}")


def cmd_branch(args):
    repo = open_repo(args)
    if args.name is None:
        current = repo.current_branch()
        branches = repo.branches()
        if args.json:
            print_json({"current": current, "branches": branches})
            return
        for name in branches:
            marker = "*" if name == current else " "
            print(f"{marker} {name}")
        return

    oid = repo.create_branch(args.name, args.start)
    if args.json:
        print_json({"branch": args.name, "commit": oid})
    elif get_verbosity(args) > 0:
        print(f"Branch {args.name} created at {short_hash(oid)}")


def cmd_tag(args):
    repo = open_repo(args)
    oid = repo.create_tag(args.name, args.ref)
    if args.json:
        print_json({"tag": args.name, "commit": oid})


def cmd_status(args):
    repo = open_repo(args)
    status = repo.status()
    if args.json:
        print_json(status)
        return

    if status["branch"]:
        print(f"On branch {status['branch']}")
    else:
        print(f"HEAD detached at {short_hash(status['head'])}")
    if status["merge_head"]:
        print(f"Merging with {short_hash(status['merge_head'])}")

    print("\nChanges to be committed:")
    for change in status["changes"]:
        action = f"{change['action']}:".ljust(12)
        print(f"    {action}{change['path']}")


def cmd_reset(args):
    repo = open_repo(args)
    repo.reset(args.commit)


def cmd_show(args):
    repo = open_repo(args)
    commit, patch = repo.show(args.ref)
    if args.json:
        data = commit.to_dict()
        data["diff"] = patch.decode("utf-8", errors="replace")
        print_json(data)
        return
    print_commit(commit, repo.ref_decorations())
    write_bytes(patch)


def cmd_diff(args):
    repo = open_repo(args)
    patch = repo.diff(args.ref)
    if args.json:
        print_json({"diff": patch.decode("utf-8", errors="replace")})
    else:
        write_bytes(patch)


def cmd_merge(args):
    repo = open_repo(args)
    outcome = repo.merge(args.ref)
    if args.json:
        print_json(outcome.to_dict())
        return
    if outcome.up_to_date:
        print("Already up to date.")
    elif outcome.fast_forward:
        print("Fast-forward merge, no need to commit")
    else:
        for path in outcome.conflicts:
            print(f"CONFLICT (content): Merge conflict in {path}")
        print("Merged in working tree")
        print("Please commit")


def cmd_merge_base(args):
    repo = open_repo(args)
    base = repo.merge_base(args.commit1, args.commit2)
    if base is None:
        raise NoCommonAncestorError(args.commit1, args.commit2)
    if args.json:
        print_json({"merge_base": base})
    else:
        print(base)


def cmd_hash_object(args):
    repo = open_repo(args)
    oid = repo.hash_object(Path(args.file))
    if args.json:
        print_json({"hash": oid, "type": "blob"})
    else:
        print(oid)


def cmd_cat_file(args):
    """Low-level object inspector."""
    repo = open_repo(args)
    obj = repo.cat_file(args.object, args.type)
    if not args.json:
        write_bytes(obj.data)
        return

    data = {"hash": obj.hash, "type": obj.type.value, "size": obj.size}
    if obj.type == ObjectType.TREE:
        data["entries"] = [
            {"type": e.type, "hash": e.oid, "name": e.name}
            for e in repo.trees.read(obj.hash)
        ]
    elif obj.type == ObjectType.COMMIT:
        data.update(repo.commits.read(obj.hash).to_dict())
    else:
        data["content"] = obj.data.decode("utf-8", errors="replace")
    print_json(data)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="twig",
        description="twig: a minimal content-addressed version control system",
    )
    parser.add_argument(
        "--version", "-V", action="version", version=f"twig {_twig_pkg.__version__}"
    )
    parser.add_argument("--path", "-C", default=".", help="Repository path")
    parser.add_argument("--json", "-j", action="store_true", help="JSON output")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    verbosity.add_argument("--quiet", "-q", action="store_true", help="Quiet output")

    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("init", help="Create an empty repository")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("write-tree", help="Store the working tree and print its tree id")
    p.set_defaults(func=cmd_write_tree)

    p = sub.add_parser("read-tree", help="Replace the working tree with a stored tree")
    p.add_argument("tree", help="Ref or id of the tree")
    p.set_defaults(func=cmd_read_tree)

    p = sub.add_parser("commit", help="Record the working tree as a new commit")
    p.add_argument("--message", "-m", required=True, help="Commit message")
    p.set_defaults(func=cmd_commit)

    p = sub.add_parser("log", help="Show commit history")
    p.add_argument("ref", nargs="?", default=HEAD_ALIAS)
    p.set_defaults(func=cmd_log)

    p = sub.add_parser("checkout", help="Switch the working tree and HEAD to a commit")
    p.add_argument("ref")
    p.set_defaults(func=cmd_checkout)

    p = sub.add_parser("branch", help="List branches, or create one")
    p.add_argument("name", nargs="?", default=None)
    p.add_argument("start", nargs="?", default=HEAD_ALIAS, help="Start point (default: HEAD)")
    p.set_defaults(func=cmd_branch)

    p = sub.add_parser("tag", help="Name a commit")
    p.add_argument("name")
    p.add_argument("ref", nargs="?", default=HEAD_ALIAS)
    p.set_defaults(func=cmd_tag)

    p = sub.add_parser("status", help="Show the current branch and changed files")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("reset", help="Move the current branch to a commit")
    p.add_argument("commit")
    p.set_defaults(func=cmd_reset)

    p = sub.add_parser("show", help="Show a commit and its changes")
    p.add_argument("ref", nargs="?", default=HEAD_ALIAS)
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("diff", help="Diff a commit against the working tree")
    p.add_argument("ref", nargs="?", default=HEAD_ALIAS)
    p.set_defaults(func=cmd_diff)

    p = sub.add_parser("merge", help="Merge a commit into HEAD")
    p.add_argument("ref")
    p.set_defaults(func=cmd_merge)

    p = sub.add_parser("merge-base", help="Find a common ancestor of two commits")
    p.add_argument("commit1")
    p.add_argument("commit2")
    p.set_defaults(func=cmd_merge_base)

    p = sub.add_parser("hash-object", help="Store a file as a blob")
    p.add_argument("file")
    p.set_defaults(func=cmd_hash_object)

    p = sub.add_parser("cat-file", help="Print an object from the store")
    p.add_argument("object")
    p.add_argument("type", nargs="?", default=None, choices=[t.value for t in ObjectType])
    p.set_defaults(func=cmd_cat_file)

    return parser


def _error_hint(msg: str) -> str | None:
    """Return a hint for common error messages, or None."""
    lower = msg.lower()
    if "unknown name" in lower:
        return "Hint: Use 'twig branch' or 'twig log' to find valid names."
    if "not found" in lower and "installed" not in lower:
        return "Hint: Object ids are the full 40 hex digits; refs are resolved by name."
    if "no commits yet" in lower:
        return "Hint: Run 'twig commit -m <msg>' first."
    if "installed" in lower:
        return "Hint: Set diff_command/merge_command in .twig/config.json."
    return None


_KNOWN_COMMANDS = [
    "init",
    "write-tree",
    "read-tree",
    "commit",
    "log",
    "checkout",
    "branch",
    "tag",
    "status",
    "reset",
    "show",
    "diff",
    "merge",
    "merge-base",
    "hash-object",
    "cat-file",
]


def _configure_logging(args):
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", stream=sys.stderr)


def main():
    # Check for "did you mean?" before argparse (which exits with code 2)
    if len(sys.argv) > 1 and not sys.argv[1].startswith("-"):
        attempted = sys.argv[1]
        if attempted not in _KNOWN_COMMANDS:
            matches = difflib.get_close_matches(attempted, _KNOWN_COMMANDS, n=3, cutoff=0.6)
            if matches:
                print(f"Unknown command: '{attempted}'", file=sys.stderr)
                print(f"  Did you mean: {', '.join(matches)}?", file=sys.stderr)
                sys.exit(1)

    parser = build_parser()
    args = parser.parse_args()
    _configure_logging(args)

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except NotARepository as e:
        if args.json:
            print_json({"error": str(e)})
        else:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (TwigError, ValueError, OSError) as e:
        msg = str(e)
        if args.json:
            print_json({"error": msg, "kind": type(e).__name__})
        else:
            print(f"Error: {msg}", file=sys.stderr)
            hint = _error_hint(msg)
            if hint:
                print(f"  {hint}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
