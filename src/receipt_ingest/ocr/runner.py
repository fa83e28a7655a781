from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class ToolResult:
    output: str
    exit_code: int
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ToolRunner(Protocol):
    def run(self, args: Sequence[str]) -> ToolResult: ...


@dataclass(frozen=True, slots=True)
class SubprocessRunner:
    """Runs an external binary and captures its stdout as text.

    Launch errors (binary missing, permission denied) surface as ``OSError``.
    A timeout surfaces as ``subprocess.TimeoutExpired``.
    """

    timeout_s: float | None = None

    def run(self, args: Sequence[str]) -> ToolResult:
        completed = subprocess.run(
            list(args),
            capture_output=True,
            timeout=self.timeout_s,
            check=False,
        )
        return ToolResult(
            output=completed.stdout.decode("utf-8", errors="replace"),
            exit_code=completed.returncode,
            stderr=completed.stderr.decode("utf-8", errors="replace"),
        )
