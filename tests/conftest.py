"""
hookgate — shared test fixtures

File: tests/conftest.py
Last updated: 2026-10-19

Purpose
- Provide a recording fake command runner and a factory for fully wired
  ``HookEnvironment`` instances rooted in ``tmp_path``.

Functional requirements
- No test in the unit tree spawns a real subprocess.
- The fake runner answers by argv prefix; the most recently registered rule wins and
  unmatched commands succeed with empty output.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from hookgate.adapters.process import CommandResult
from hookgate.config import default_config, merge_config
from hookgate.pipeline import HookEnvironment

FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FakeRunner:
    """Command runner double that records every argv it receives."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self._rules: list[tuple[tuple[str, ...], dict[str, Any]]] = []

    def on(
        self,
        *prefix: str,
        returncode: int | None = 0,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
        error: str | None = None,
    ) -> FakeRunner:
        self._rules.append(
            (
                tuple(prefix),
                {
                    "returncode": returncode,
                    "stdout": stdout,
                    "stderr": stderr,
                    "timed_out": timed_out,
                    "error": error,
                },
            )
        )
        return self

    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        del timeout, env, input_text
        args = tuple(argv)
        self.calls.append(args)
        for prefix, outcome in reversed(self._rules):
            if args[: len(prefix)] == prefix:
                return CommandResult(argv=args, cwd=str(cwd), **outcome)
        return CommandResult(argv=args, cwd=str(cwd), returncode=0, stdout="", stderr="")

    def ran(self, *prefix: str) -> bool:
        return any(call[: len(prefix)] == prefix for call in self.calls)

    def count(self, *prefix: str) -> int:
        return sum(1 for call in self.calls if call[: len(prefix)] == prefix)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_env(
    tmp_path: Path, fake_runner: FakeRunner
) -> Callable[..., HookEnvironment]:
    """Factory: ``make_env(overrides, environ=..., runner=...)``."""

    def factory(
        overrides: Mapping[str, object] | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        runner: FakeRunner | None = None,
    ) -> HookEnvironment:
        config = merge_config(default_config(), overrides or {})
        return HookEnvironment.from_config(
            tmp_path,
            config,
            runner=runner if runner is not None else fake_runner,
            environ=dict(environ or {}),
            clock=lambda: FIXED_NOW,
        )

    return factory
