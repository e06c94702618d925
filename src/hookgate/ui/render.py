"""Output rendering for hookgate CLI.

File: src/hookgate/ui/render.py
Last updated: 2026-10-19

Purpose
- Render stage reports and diagnostics for humans. Git shows hook output from
  stderr, so the renderer writes there by default; ``--json`` payloads go to stdout
  through the CLI instead.
- Respect NO_COLOR environment variable and --no-color CLI flag.

Functional requirements
- Plain-text rendering must always work; color is a decoration only.
- Failed commit messages show the full format guidance block.

Non-functional requirements
- No dependencies beyond the standard library.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final, TextIO

from hookgate.domain import StageReport, ValidationStatus
from hookgate.pipeline.engine import summarize

if TYPE_CHECKING:
    from collections.abc import Sequence

_LABELS: Final[dict[ValidationStatus, str]] = {
    ValidationStatus.PASSED: "OK",
    ValidationStatus.FAILED: "FAIL",
    ValidationStatus.WARNING: "WARN",
    ValidationStatus.SKIPPED: "SKIP",
    ValidationStatus.WAIVED: "WAIVED",
}
_COLORS: Final[dict[ValidationStatus, str]] = {
    ValidationStatus.PASSED: "\033[32m",
    ValidationStatus.FAILED: "\033[31m",
    ValidationStatus.WARNING: "\033[33m",
    ValidationStatus.SKIPPED: "\033[2m",
    ValidationStatus.WAIVED: "\033[35m",
}
_RESET: Final[str] = "\033[0m"


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces clean, deterministic plain-text output.
    Respects ``NO_COLOR`` env var and ``--no-color`` flag.
    """

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stderr
        self._color = _color_allowed(no_color, self._stream)

    def text(self, line: str) -> None:
        print(line, file=self._stream)

    def kv(self, key: str, value: object) -> None:
        self.text(f"{key}: {value}")

    def section(self, title: str) -> None:
        self.text(f"\n{title}")

    def warning(self, text: str) -> None:
        self.text(f"  Warning: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self.text(f"  {prefix}{entry}")

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return
        widths = [len(header) for header in headers]
        for row in rows:
            for index, cell in enumerate(row[: len(headers)]):
                widths[index] = max(widths[index], len(str(cell)))

        def _pad(cells: Sequence[str]) -> str:
            return "  ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(cells))

        self.text(f"  {_pad(headers)}")
        self.text(f"  {'  '.join('-' * width for width in widths)}")
        for row in rows:
            self.text(f"  {_pad(row)}")

    def status(self, status: ValidationStatus, label: str) -> None:
        tag = _LABELS[status]
        if self._color:
            tag = f"{_COLORS[status]}{tag}{_RESET}"
        self.text(f"  {tag:<6}  {label}")

    def report(self, report: StageReport) -> None:
        """Render one stage report: verdict line, per-validator results, guidance."""

        verdict = "PASSED" if report.success else "FAILED"
        counts = ", ".join(
            f"{count} {status}" for status, count in summarize(report.results).items() if count
        )
        self.text(
            f"hookgate {report.stage.value}: {verdict} "
            f"[{report.state.value}] in {report.duration_ms:.0f}ms"
            + (f" ({counts})" if counts else "")
        )
        for name, result in report.results.items():
            if result.status is ValidationStatus.SKIPPED and not self.verbose:
                continue
            suffix = " (cached)" if result.cached else ""
            self.status(result.status, f"{name}: {result.detail}{suffix}")

        if report.warnings:
            self.section("Warnings:")
            self.items(report.warnings)

        rollback = (report.recovery or {}).get("rollbackRecommendations") or ()
        if rollback:
            self.section("Rollback options:")
            for option in rollback:
                self.text(f"  $ {option['command']}  ({option['priority']})")
                self.text(f"      {option['description']}")

        if report.success:
            return
        for name in report.failed_validators:
            guidance = report.results[name].remediation
            if guidance:
                self.section(f"{name}:")
                self.text(guidance.rstrip("\n"))
        if report.remediation and self.verbose:
            self.section("Remediation:")
            self.text(report.remediation)
        if report.recovery and self.verbose:
            self.section("Recovery:")
            for key, value in report.recovery.items():
                self.kv(f"  {key}", value)


def create_renderer(
    *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None
) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer"]
