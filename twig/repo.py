"""
Repository

The high-level API the CLI talks to. It ties together the object store,
refs, the tree and commit codecs, the working tree and the merge engine.

    repo = Repository.init("/path/to/project")
    (repo.root / "hello.txt").write_text("hello")
    first = repo.commit("Initial commit")

    repo.create_branch("feature")
    repo.checkout("feature")
    ...
    repo.checkout("main")
    outcome = repo.merge("feature")

Layout:

    project/
    ├── .twig/
    │   ├── config.json
    │   ├── HEAD
    │   ├── objects/<oid>
    │   └── refs/{heads,tags}/...
    └── (working files)

Every commit snapshots the whole working tree; there is no staging area.
"""

import json
import logging
import re
import time
from pathlib import Path

from .cas import ObjectStore, ObjectType
from .commit import Commit, CommitStore
from .diff import diff_trees, iter_changed_files
from .errors import NotARepository, UnknownNameError
from .history import AncestorWalker
from .merge import MergeEngine, MergeOutcome
from .refs import HEAD, HEADS_PREFIX, MERGE_HEAD, REFS_DIR, TAGS_PREFIX, RefStore
from .tools import ExternalTool
from .tree import METADATA_DIR, IgnoreRules, TreeCodec
from .workspace import WorkingTree

logger = logging.getLogger(__name__)

REPO_DIR_NAME = METADATA_DIR
HEAD_ALIAS = "@"
DEFAULT_BRANCH = "main"

CONFIG_VERSION = "0.1.0"

# Known config keys for validation
KNOWN_CONFIG_KEYS = frozenset(
    {
        "version",
        "default_branch",
        "created_at",
        "ignore",
        "diff_command",
        "merge_command",
        "tool_timeout",
    }
)

_OID_RE = re.compile(r"^[0-9a-fA-F]{40}$")


class Repository:
    """
    A twig repository.

    Stores all data in a .twig directory at the repository root; the
    root itself is the working tree.
    """

    def __init__(self, root: Path):
        self.root = Path(root).resolve()
        self.twig_dir = self.root / REPO_DIR_NAME

        if not self.twig_dir.is_dir():
            raise NotARepository(self.root)

        self.config = self._read_config()
        self._validate_config(self.config)

        tool_timeout = self.config.get("tool_timeout", 0)
        if (
            isinstance(tool_timeout, bool)
            or not isinstance(tool_timeout, (int, float))
            or tool_timeout < 0
        ):
            raise ValueError(
                f"Invalid config: tool_timeout must be a number >= 0, got {tool_timeout!r}\n"
                f"  Use 0 for the default timeout"
            )

        self.store = ObjectStore(self.twig_dir / "objects")
        self.refs = RefStore(self.twig_dir)
        self.trees = TreeCodec(self.store, IgnoreRules(self.config.get("ignore", [])))
        self.commits = CommitStore(self.store, self.refs)
        self.worktree = WorkingTree(self.root, self.store, self.trees)
        self.tool = ExternalTool(
            diff_command=self.config.get("diff_command", "diff"),
            merge_command=self.config.get("merge_command", "diff3"),
            timeout=tool_timeout,
        )
        self.merger = MergeEngine(self.refs, self.commits, self.worktree, self.tool)

    @classmethod
    def init(cls, path: Path, initial_branch: str = DEFAULT_BRANCH) -> "Repository":
        """
        Initialize a new repository.

        Creates the .twig directory with an empty object store, a config
        file and HEAD pointing at the (unborn) initial branch. Existing
        files are left alone; the first commit snapshots them.
        """
        root = Path(path).resolve()
        twig_dir = root / REPO_DIR_NAME

        if twig_dir.exists():
            raise ValueError(f"Repository already exists at {root}")

        (twig_dir / "objects").mkdir(parents=True)
        (twig_dir / "config.json").write_text(json.dumps({
            "version": CONFIG_VERSION,
            "default_branch": initial_branch,
            "created_at": time.time(),
            "ignore": [],
            "diff_command": "diff",
            "merge_command": "diff3",
            "tool_timeout": 0,
        }, indent=2))

        repo = cls(root)
        repo.refs.write(HEAD, HEADS_PREFIX + initial_branch, symbolic=True, deref=False)
        logger.info("Initialized twig repository at %s", root)
        return repo

    @classmethod
    def find(cls, start_path: Path | None = None) -> "Repository":
        """Find a repository by walking up from the given path."""
        path = Path(start_path or Path.cwd()).resolve()
        while True:
            if (path / REPO_DIR_NAME).is_dir():
                return cls(path)
            parent = path.parent
            if parent == path:
                break
            path = parent
        raise NotARepository(start_path or Path.cwd())

    # ── Configuration ─────────────────────────────────────────────

    def _read_config(self) -> dict:
        """Read repository configuration."""
        config_path = self.twig_dir / "config.json"
        if config_path.exists():
            return json.loads(config_path.read_text())
        return {}

    @staticmethod
    def _validate_config(config: dict) -> None:
        """Validate config version and warn on unknown keys."""
        repo_version = config.get("version")
        if repo_version and repo_version > CONFIG_VERSION:
            raise ValueError(
                f"Repository config version {repo_version} is newer than "
                f"this version of twig ({CONFIG_VERSION}). "
                f"Please upgrade twig to open this repository."
            )

        # Unknown keys are tolerated so newer configs still open
        unknown_keys = set(config.keys()) - KNOWN_CONFIG_KEYS
        if unknown_keys:
            logger.warning("Unknown config keys (ignored): %s", ", ".join(sorted(unknown_keys)))

    # ── Name Resolution ───────────────────────────────────────────

    def resolve(self, name: str) -> str:
        """
        Turn a ref name or object id into an object id.

        Tries, in order: the name as a ref, refs/<name>, refs/tags/<name>
        and refs/heads/<name>. The name itself is only tried when it is
        HEAD, MERGE_HEAD or starts with refs/, so other files in the
        metadata directory are never read as refs. ``@`` is an alias for
        HEAD. If no ref matches, a full 40-digit hex id is accepted as is
        (lower-cased).
        """
        if name == HEAD_ALIAS:
            name = HEAD

        candidates = [f"{REFS_DIR}/{name}", f"{TAGS_PREFIX}{name}", f"{HEADS_PREFIX}{name}"]
        if name in (HEAD, MERGE_HEAD) or name.startswith(f"{REFS_DIR}/"):
            candidates.insert(0, name)
        for candidate in candidates:
            if not self.refs.is_valid_name(candidate):
                continue
            if self.refs.read(candidate, deref=False).value:
                value = self.refs.read(candidate).value
                if value is None:
                    # Symbolic ref to an unborn branch
                    raise UnknownNameError(name)
                return value

        if _OID_RE.match(name):
            return name.lower()

        raise UnknownNameError(name)

    def head(self) -> str | None:
        """The commit HEAD resolves to, or None before the first commit."""
        return self.refs.read(HEAD).value

    def current_branch(self) -> str | None:
        """Branch HEAD is attached to, or None when HEAD is detached."""
        ref = self.refs.read(HEAD, deref=False)
        if not ref.symbolic:
            return None
        if not ref.value.startswith(HEADS_PREFIX):
            raise ValueError(f"Expected HEAD to point at a branch, got {ref.value}")
        return ref.value[len(HEADS_PREFIX):]

    def is_branch(self, name: str) -> bool:
        if not self.refs.is_valid_name(HEADS_PREFIX + name):
            return False
        return self.refs.read(HEADS_PREFIX + name).value is not None

    def ref_decorations(self) -> dict[str, list[str]]:
        """Map commit ids to the ref names pointing at them."""
        result: dict[str, list[str]] = {}
        for name, ref in self.refs.iter_refs():
            if ref.value:
                result.setdefault(ref.value, []).append(name)
        for names in result.values():
            names.sort(key=lambda n: (n != HEAD, n))
        return result

    # ── Objects and Trees ─────────────────────────────────────────

    def hash_object(self, path: Path) -> str:
        """Store a file's content as a blob."""
        return self.store.store_blob(Path(path).read_bytes())

    def cat_file(self, name: str, expected_type: str | None = None):
        obj_type = ObjectType(expected_type) if expected_type else None
        return self.store.retrieve(self.resolve(name), obj_type)

    def write_tree(self) -> str:
        """Snapshot the working tree into the store and return the root tree id."""
        return self.trees.write(self.root)

    def read_tree(self, name: str):
        """Replace the working tree with a stored tree. HEAD is not moved."""
        self.worktree.materialize(self.resolve(name))

    # ── Commits and History ───────────────────────────────────────

    def get_commit(self, name: str) -> Commit:
        return self.commits.read(self.resolve(name))

    def commit(self, message: str) -> str:
        """
        Snapshot the working tree as a new commit on top of HEAD.

        Completes an in-progress merge (MERGE_HEAD becomes the second
        parent). HEAD, or the branch it points to, moves to the commit.
        """
        tree = self.write_tree()
        head = self.head()
        oid = self.commits.write(tree, [head] if head else [], message)
        self.refs.write(HEAD, oid)
        logger.debug("Committed %s on tree %s", oid, tree)
        return oid

    def log(self, name: str = HEAD_ALIAS):
        """Yield Commit objects for a commit and all of its ancestors."""
        for oid in AncestorWalker(self.commits, {self.resolve(name)}):
            yield self.commits.read(oid)

    def checkout(self, name: str):
        """
        Materialize a commit and move HEAD to it.

        Checking out a branch attaches HEAD to it; anything else detaches
        HEAD at the resolved commit.
        """
        oid = self.resolve(name)
        commit = self.commits.read(oid)
        self.worktree.materialize(commit.tree)

        if name != HEAD_ALIAS and name != HEAD and self.is_branch(name):
            self.refs.write(HEAD, HEADS_PREFIX + name, symbolic=True, deref=False)
        else:
            self.refs.write(HEAD, oid, deref=False)
        logger.info("Checked out %s (%s)", name, oid)

    def reset(self, name: str):
        """Move HEAD (or its branch) to a commit without touching the working tree."""
        oid = self.resolve(name)
        self.commits.read(oid)
        self.refs.write(HEAD, oid)

    # ── Branches and Tags ─────────────────────────────────────────

    def create_branch(self, name: str, start: str = HEAD_ALIAS) -> str:
        oid = self.resolve(start)
        self.refs.write(HEADS_PREFIX + name, oid)
        return oid

    def branches(self) -> list[str]:
        """Names of all branches, sorted."""
        return sorted(
            name[len(HEADS_PREFIX):]
            for name, _ in self.refs.iter_refs(prefix=HEADS_PREFIX)
        )

    def create_tag(self, name: str, target: str = HEAD_ALIAS) -> str:
        oid = self.resolve(target)
        self.refs.write(TAGS_PREFIX + name, oid)
        return oid

    # ── Status and Diff ───────────────────────────────────────────

    def _tree_of(self, commit_oid: str | None) -> dict[str, str]:
        if commit_oid is None:
            return {}
        return self.trees.flatten(self.commits.read(commit_oid).tree)

    def status(self) -> dict:
        """Branch, HEAD, pending merge and the working-tree changes against HEAD."""
        head = self.head()
        changes = [
            {"path": path, "action": action}
            for path, action in iter_changed_files(self._tree_of(head), self.worktree.capture())
        ]
        return {
            "root": str(self.root),
            "branch": self.current_branch(),
            "head": head,
            "merge_head": self.refs.read(MERGE_HEAD, deref=False).value,
            "changes": changes,
        }

    def diff(self, name: str = HEAD_ALIAS) -> bytes:
        """Unified diff from a commit's tree to the working tree."""
        return diff_trees(
            self.store,
            self.tool,
            self._tree_of(self.resolve(name)),
            self.worktree.capture(),
        )

    def show(self, name: str = HEAD_ALIAS) -> tuple[Commit, bytes]:
        """A commit and its diff against its first parent."""
        commit = self.get_commit(name)
        patch = diff_trees(
            self.store,
            self.tool,
            self._tree_of(commit.parent),
            self.trees.flatten(commit.tree),
        )
        return commit, patch

    # ── Merging ───────────────────────────────────────────────────

    def merge_base(self, a: str, b: str) -> str | None:
        return self.merger.merge_base(self.resolve(a), self.resolve(b))

    def merge(self, name: str) -> MergeOutcome:
        """Merge a commit into HEAD, fast-forwarding when possible."""
        head = self.head()
        if head is None:
            raise ValueError("Cannot merge: HEAD has no commits yet")
        return self.merger.merge(head, self.resolve(name))
