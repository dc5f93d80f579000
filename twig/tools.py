"""
External diff/merge tools.

Line-level diffs and three-way text merges are delegated to the
standard ``diff`` and ``diff3`` programs via subprocess calls. Inputs
are copied into a temporary directory that lives only as long as the
single invocation that needs it.
"""

import logging
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .errors import ToolInvocationError

logger = logging.getLogger(__name__)

TOOL_TIMEOUT_SECONDS = 60


@dataclass(frozen=True)
class ToolResult:
    output: bytes
    clean: bool  # False: differences found (diff) or conflicts present (merge)


class ExternalTool:
    """Runs the configured diff and diff3 executables."""

    def __init__(
        self,
        diff_command: str = "diff",
        merge_command: str = "diff3",
        timeout: int | None = None,
    ):
        self.diff_command = diff_command
        self.merge_command = merge_command
        self.timeout = timeout if timeout else TOOL_TIMEOUT_SECONDS

    def _run(self, args: list) -> ToolResult:
        """Run a tool; exit 0 is clean, 1 is differences/conflicts, else an error."""
        try:
            result = subprocess.run(args, capture_output=True, timeout=self.timeout)
        except FileNotFoundError:
            raise ToolInvocationError(f"{args[0]} not found; is it installed and on PATH?")
        except subprocess.TimeoutExpired:
            raise ToolInvocationError(f"{args[0]} timed out after {self.timeout}s")

        if result.returncode not in (0, 1):
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise ToolInvocationError(
                f"{args[0]} exited with status {result.returncode}: {stderr}"
            )
        return ToolResult(output=result.stdout, clean=result.returncode == 0)

    def diff(
        self,
        old: bytes | None,
        new: bytes | None,
        old_label: str,
        new_label: str,
    ) -> ToolResult:
        """Unified diff of two byte strings; None stands for a missing file."""
        with tempfile.TemporaryDirectory(prefix="twig-diff-") as tmp:
            old_path = _write_temp(tmp, "old", old)
            new_path = _write_temp(tmp, "new", new)
            return self._run([
                self.diff_command, "--unified", "--show-c-function",
                "--label", old_label, old_path,
                "--label", new_label, new_path,
            ])

    def merge(
        self,
        head: bytes | None,
        base: bytes | None,
        other: bytes | None,
        labels: tuple[str, str, str] = ("HEAD", "BASE", "MERGE_HEAD"),
    ) -> ToolResult:
        """
        Three-way merge of head and other against base.

        A result with clean=False carries conflict markers in its output.
        """
        with tempfile.TemporaryDirectory(prefix="twig-merge-") as tmp:
            head_path = _write_temp(tmp, "head", head)
            base_path = _write_temp(tmp, "base", base)
            other_path = _write_temp(tmp, "other", other)
            args = [self.merge_command, "-m"]
            for label in labels:
                args.extend(["-L", label])
            args.extend([head_path, base_path, other_path])
            result = self._run(args)
        if not result.clean:
            logger.debug("%s reported conflicts", self.merge_command)
        return result


def _write_temp(directory: str, name: str, content: bytes | None) -> str:
    path = Path(directory) / name
    path.write_bytes(content or b"")
    return str(path)
