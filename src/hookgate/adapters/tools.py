"""
hookgate — external tool wrappers and report parsers

File: src/hookgate/adapters/tools.py
Last updated: 2026-10-19

Purpose
- Launch the configured linter, formatter, test runner, build, audit, docs and
  workflow commands, and turn their textual reports into typed summaries.

Functional requirements
- An empty configured command disables the tool: wrappers return ``None``.
- Parsers never raise on unexpected text; missing numbers default to zero or ``None``.

Non-functional requirements
- Only exit codes and text output are consumed; no tool-specific libraries.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from hookgate.adapters.process import CommandResult, CommandRunner, run_command, split_command

AUDIT_SEVERITIES: Final[tuple[str, ...]] = ("critical", "high", "moderate", "low", "info")

_TESTS_PASSED_RE = re.compile(r"(\d+)\s+passed")
_TESTS_FAILED_RE = re.compile(r"(\d+)\s+failed")
_TESTS_TIME_RE = re.compile(r"Time:\s+([\d.]+)\s*s")
_COVERAGE_RE = re.compile(
    r"All files\s+\|\s+([\d.]+)\s+\|\s+([\d.]+)\s+\|\s+([\d.]+)\s+\|\s+([\d.]+)"
)
_AUDIT_TOTAL_RE = re.compile(r"(\d+)\s+vulnerabilities")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_FILES_CHANGED_RE = re.compile(r"(\d+)\s+files?\s+changed")
_INSERTIONS_RE = re.compile(r"(\d+)\s+insertions?\(\+\)")
_DELETIONS_RE = re.compile(r"(\d+)\s+deletions?\(-\)")


@dataclass(frozen=True, slots=True)
class TestSummary:
    __test__ = False  # not a pytest class

    passed: int = 0
    failed: int = 0
    duration_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "failed": self.failed,
            "durationSeconds": self.duration_seconds,
        }


@dataclass(frozen=True, slots=True)
class CoverageSummary:
    statements: float
    branches: float
    functions: float
    lines: float

    def to_dict(self) -> dict[str, float]:
        return {
            "statements": self.statements,
            "branches": self.branches,
            "functions": self.functions,
            "lines": self.lines,
        }


@dataclass(frozen=True, slots=True)
class AuditSummary:
    counts: Mapping[str, int] = field(default_factory=dict)
    recommendations: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def blocking(self) -> bool:
        """Critical or high findings fail the push."""
        return self.counts.get("critical", 0) > 0 or self.counts.get("high", 0) > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "vulnerabilities": {name: self.counts.get(name, 0) for name in AUDIT_SEVERITIES},
            "total": self.total,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True, slots=True)
class DiffStat:
    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "filesChanged": self.files_changed,
            "insertions": self.insertions,
            "deletions": self.deletions,
        }


def parse_test_output(text: str) -> TestSummary:
    passed = _TESTS_PASSED_RE.search(text)
    failed = _TESTS_FAILED_RE.search(text)
    duration = _TESTS_TIME_RE.search(text)
    return TestSummary(
        passed=int(passed.group(1)) if passed else 0,
        failed=int(failed.group(1)) if failed else 0,
        duration_seconds=float(duration.group(1)) if duration else None,
    )


def parse_coverage(text: str) -> CoverageSummary | None:
    """Read the ``All files`` row of a tabular coverage report (stmts, branch, funcs, lines)."""
    match = _COVERAGE_RE.search(text)
    if match is None:
        return None
    statements, branches, functions, lines = (float(group) for group in match.groups())
    return CoverageSummary(
        statements=statements, branches=branches, functions=functions, lines=lines
    )


def parse_audit(text: str) -> AuditSummary:
    """
    Parse scanner output into severity counts.

    A JSON report with a ``vulnerabilities`` or ``metadata.vulnerabilities`` object of
    integer counts is preferred; otherwise ``"<n> <severity>"`` phrases are scanned.
    """

    counts = _audit_counts_from_json(text)
    if counts is None:
        counts = {}
        for severity in AUDIT_SEVERITIES:
            match = re.search(rf"(\d+)\s+{severity}", text, flags=re.IGNORECASE)
            if match:
                counts[severity] = int(match.group(1))
        if not counts:
            total = _AUDIT_TOTAL_RE.search(text)
            if total and int(total.group(1)) > 0:
                counts["moderate"] = int(total.group(1))

    recommendations: tuple[str, ...] = ()
    if sum(counts.values()) > 0:
        recommendations = ('Run "npm audit fix" to automatically fix vulnerabilities',)
    return AuditSummary(counts=counts, recommendations=recommendations)


def parse_diff_stat(text: str) -> DiffStat:
    files = _FILES_CHANGED_RE.search(text)
    insertions = _INSERTIONS_RE.search(text)
    deletions = _DELETIONS_RE.search(text)
    return DiffStat(
        files_changed=int(files.group(1)) if files else 0,
        insertions=int(insertions.group(1)) if insertions else 0,
        deletions=int(deletions.group(1)) if deletions else 0,
    )


def _audit_counts_from_json(text: str) -> dict[str, int] | None:
    match = _JSON_OBJECT_RE.search(text)
    if match is None:
        return None
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, Mapping):
        return None
    metadata = payload.get("metadata")
    candidates = (
        metadata.get("vulnerabilities") if isinstance(metadata, Mapping) else None,
        payload.get("vulnerabilities"),
    )
    for candidate in candidates:
        if not isinstance(candidate, Mapping):
            continue
        counts = {
            str(name): int(value)
            for name, value in candidate.items()
            if str(name) in AUDIT_SEVERITIES
            and isinstance(value, int)
            and not isinstance(value, bool)
        }
        if counts or not candidate:
            return counts
    return None


class ToolRunner:
    """Runs configured external commands from the repository root."""

    def __init__(
        self,
        repo_root: Path | str,
        *,
        commands: Mapping[str, str],
        timeouts: Mapping[str, float],
        runner: CommandRunner | None = None,
    ) -> None:
        self.repo_root = Path(repo_root)
        self._commands = dict(commands)
        self._timeouts = dict(timeouts)
        self._runner: CommandRunner = runner if runner is not None else run_command

    def command(self, name: str) -> tuple[str, ...]:
        return split_command(str(self._commands.get(name, "")))

    def timeout(self, name: str) -> float | None:
        value = self._timeouts.get(name)
        return float(value) if value is not None else None

    def is_enabled(self, name: str) -> bool:
        return bool(self.command(name))

    def lint(self, files: Sequence[str]) -> CommandResult | None:
        return self._run("lint", "lint", extra=files)

    def format(self, files: Sequence[str]) -> CommandResult | None:
        return self._run("format", "lint", extra=files)

    def fast_tests(self) -> CommandResult | None:
        return self._run("test", "fastTests")

    def full_tests(self) -> CommandResult | None:
        return self._run("fullTest", "fullTests")

    def build(self) -> CommandResult | None:
        return self._run("build", "build")

    def audit(self) -> CommandResult | None:
        return self._run("audit", "audit")

    def docs(self) -> CommandResult | None:
        return self._run("docs", "docs")

    def workflow(self) -> CommandResult | None:
        return self._run("workflow", "workflow")

    def gatekeeper(self, stage: str) -> CommandResult | None:
        return self._run("gatekeeper", "workflow", extra=(stage,))

    def _run(
        self,
        command_key: str,
        timeout_key: str,
        *,
        extra: Sequence[str] = (),
    ) -> CommandResult | None:
        argv = self.command(command_key)
        if not argv:
            return None
        return self._runner(
            (*argv, *extra), cwd=self.repo_root, timeout=self.timeout(timeout_key)
        )


__all__ = [
    "AUDIT_SEVERITIES",
    "AuditSummary",
    "CoverageSummary",
    "DiffStat",
    "TestSummary",
    "ToolRunner",
    "parse_audit",
    "parse_coverage",
    "parse_diff_stat",
    "parse_test_output",
]
