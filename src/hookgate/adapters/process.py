"""
hookgate — subprocess adapter

File: src/hookgate/adapters/process.py
Last updated: 2026-10-19

Purpose
- Single seam through which hookgate launches external programs (git, linters,
  test runners, audit tools).

Functional requirements
- Never uses a shell; command strings from config are split with ``shlex``.
- A timeout kills the child and yields ``timed_out=True`` instead of raising.
- A missing executable yields ``returncode=127`` with the OS error text.

Non-functional requirements
- Tests replace the runner through the ``CommandRunner`` protocol.
"""

from __future__ import annotations

import os
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

_MISSING_EXECUTABLE_RC = 127


class CommandError(RuntimeError):
    """Raised when a required external command exits non-zero or times out."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int | None,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        rc = "timeout" if returncode is None else str(returncode)
        message = f"command failed ({rc}): {' '.join(self.command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess outcome."""

    argv: tuple[str, ...]
    cwd: str
    returncode: int | None
    stdout: str
    stderr: str
    duration_ms: float = 0.0
    timed_out: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.error is None and self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined; tool reports are split across both streams."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

    def describe_failure(self, timeout: float | None = None) -> str:
        if self.timed_out:
            limit = f"{timeout:g}s" if timeout is not None else "its time limit"
            return f"timed out after {limit}"
        if self.error is not None:
            return self.error
        tail = self.output.strip().splitlines()[-5:]
        suffix = f": {' | '.join(tail)}" if tail else ""
        return f"exit code {self.returncode}{suffix}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "argv": list(self.argv),
            "cwd": self.cwd,
            "returncode": self.returncode,
            "durationMs": round(self.duration_ms, 3),
            "timedOut": self.timed_out,
            "error": self.error,
        }


class CommandRunner(Protocol):
    """Callable that executes one argv and returns a ``CommandResult``."""

    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult: ...


def split_command(command: str) -> tuple[str, ...]:
    """Split a configured command line; an empty string means "disabled"."""

    return tuple(shlex.split(command.strip())) if command and command.strip() else ()


def run_command(
    argv: Sequence[str],
    *,
    cwd: Path,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
    input_text: str | None = None,
) -> CommandResult:
    """Run ``argv`` without a shell and capture text output."""

    command = tuple(argv)
    if not command:
        raise ValueError("argv must not be empty")
    run_cwd = Path(cwd)
    run_env = os.environ.copy()
    if env:
        run_env.update(env)

    started = time.perf_counter()
    try:
        completed = subprocess.run(
            command,
            cwd=run_cwd,
            env=run_env,
            text=True,
            capture_output=True,
            input=input_text,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        return CommandResult(
            argv=command,
            cwd=run_cwd.as_posix(),
            returncode=None,
            stdout=_as_text(exc.stdout),
            stderr=_as_text(exc.stderr),
            duration_ms=_elapsed_ms(started),
            timed_out=True,
        )
    except FileNotFoundError as exc:
        return CommandResult(
            argv=command,
            cwd=run_cwd.as_posix(),
            returncode=_MISSING_EXECUTABLE_RC,
            stdout="",
            stderr=str(exc),
            duration_ms=_elapsed_ms(started),
            error=f"executable not found: {command[0]}",
        )
    except OSError as exc:
        return CommandResult(
            argv=command,
            cwd=run_cwd.as_posix(),
            returncode=None,
            stdout="",
            stderr=str(exc),
            duration_ms=_elapsed_ms(started),
            error=f"{type(exc).__name__}: {exc}",
        )

    return CommandResult(
        argv=command,
        cwd=run_cwd.as_posix(),
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        duration_ms=_elapsed_ms(started),
    )


def _as_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _elapsed_ms(started: float) -> float:
    return max(0.0, (time.perf_counter() - started) * 1000.0)


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "run_command",
    "split_command",
]
