"""
References

Named, mutable pointers into the object store. A ref file under the
metadata directory holds either a bare object id or ``ref: <target>``,
which makes it a symbolic ref pointing at another ref by name.

    .twig/HEAD                 ← usually "ref: refs/heads/main"
    .twig/refs/heads/<branch>  ← commit id
    .twig/refs/tags/<tag>      ← commit id
    .twig/MERGE_HEAD           ← only during an unfinished merge

Ref names always use ``/`` as the separator, regardless of platform.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .errors import RefCycleError

logger = logging.getLogger(__name__)

HEAD = "HEAD"
MERGE_HEAD = "MERGE_HEAD"
REFS_DIR = "refs"
HEADS_PREFIX = "refs/heads/"
TAGS_PREFIX = "refs/tags/"

SYMREF_PREFIX = "ref:"

# Symbolic chains longer than this are treated as cycles
MAX_SYMREF_DEPTH = 32


def _atomic_write(path: Path, content: str):
    """
    Write content to a file atomically via write-to-temp + rename.

    A ref is never observed half-written, even if the process dies
    mid-update.
    """
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        Path(tmp_path).replace(path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


@dataclass(frozen=True)
class Ref:
    """The result of reading a ref.

    ``name`` is the ref that was finally read (the end of the symbolic
    chain when dereferencing). ``value`` is an object id, the target ref
    name when ``symbolic`` is true, or None for a missing/unborn ref.
    """

    name: str
    value: str | None
    symbolic: bool = False


class RefStore:
    """Reads and writes refs under the metadata directory."""

    def __init__(self, twig_dir: Path):
        self.twig_dir = Path(twig_dir)

    @staticmethod
    def is_valid_name(name: str) -> bool:
        """Check that a ref name stays inside the metadata directory."""
        if not name or "\0" in name or "\\" in name or name.startswith("/"):
            return False
        return all(part and not part.startswith(".") for part in name.split("/"))

    def _path(self, name: str) -> Path:
        if not self.is_valid_name(name):
            raise ValueError(f"Invalid ref name: {name!r}")
        return self.twig_dir.joinpath(*name.split("/"))

    def _read_raw(self, name: str) -> str | None:
        path = self._path(name)
        if not path.is_file():
            return None
        return path.read_text().strip()

    # ── Reading ───────────────────────────────────────────────────

    def read(self, name: str, deref: bool = True) -> Ref:
        """
        Read a ref. A ref that does not exist reads as value=None.

        With deref=False a symbolic ref returns its immediate target.
        With deref=True the chain is followed to the final direct ref.
        """
        for _ in range(MAX_SYMREF_DEPTH + 1):
            raw = self._read_raw(name)
            if raw is not None and raw.startswith(SYMREF_PREFIX):
                target = raw[len(SYMREF_PREFIX):].strip()
                if not deref:
                    return Ref(name=name, value=target, symbolic=True)
                name = target
                continue
            return Ref(name=name, value=raw or None, symbolic=False)
        raise RefCycleError(
            f"Symbolic ref chain starting at {name!r} exceeds {MAX_SYMREF_DEPTH} hops"
        )

    def iter_refs(self, prefix: str = "", deref: bool = True):
        """
        Yield (name, Ref) for HEAD and then every ref under refs/.

        Order after HEAD is filesystem walk order; callers that need a
        stable order must sort. Names not starting with prefix are skipped.
        """
        if HEAD.startswith(prefix):
            yield HEAD, self.read(HEAD, deref=deref)

        refs_root = self.twig_dir / REFS_DIR
        for dirpath, dirnames, filenames in os.walk(refs_root):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            rel_parts = Path(dirpath).relative_to(self.twig_dir).parts
            for filename in filenames:
                # Temp files from in-flight atomic writes
                if filename.startswith("."):
                    continue
                name = "/".join((*rel_parts, filename))
                if name.startswith(prefix):
                    yield name, self.read(name, deref=deref)

    # ── Writing ───────────────────────────────────────────────────

    def write(self, name: str, value: str, symbolic: bool = False, deref: bool = True):
        """
        Point a ref at an object id, or at another ref when symbolic.

        With deref=True and name being symbolic, the ref at the end of
        the chain is updated instead (moving HEAD moves its branch).
        """
        if not value:
            raise ValueError(f"Refusing to write an empty value to ref {name!r}")
        if symbolic and not self.is_valid_name(value):
            raise ValueError(f"Invalid symbolic ref target: {value!r}")

        if deref:
            name = self.read(name, deref=True).name

        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        content = f"{SYMREF_PREFIX} {value}" if symbolic else value
        _atomic_write(path, content + "\n")
        logger.debug("Updated ref %s -> %s", name, content)

    def delete(self, name: str, deref: bool = False):
        """Remove a ref. Deleting a ref that does not exist is a no-op."""
        if deref:
            name = self.read(name, deref=True).name
        self._path(name).unlink(missing_ok=True)
        logger.debug("Deleted ref %s", name)
