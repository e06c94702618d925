"""
hookgate — bounded automatic recovery

File: src/hookgate/policy/recovery.py
Last updated: 2026-10-19

Purpose
- Given a failure, run at most one category-specific corrective action and report
  a structured ``RecoveryOutcome``.

Functional requirements
- Only recoverable classifications are attempted.
- Attempts are counted per ``(stage, category)``; at the configured maximum the
  engine refuses without running. Success resets the counter, failure increments it.
- Strategy errors become failed outcomes; ``attempt_recovery`` never raises.

Non-functional requirements
- Side effects stay inside the working tree and the local hook cache; the bypass
  ledger and remotes are never touched.
- Attempt counters are process-local.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

import structlog

from hookgate.adapters.tools import CoverageSummary, ToolRunner
from hookgate.constants import (
    DEFAULT_COVERAGE_THRESHOLD,
    DEFAULT_MAX_RECOVERY_ATTEMPTS,
    HOOK_CACHE_DIR,
    RESULT_CACHE_PATH,
)
from hookgate.domain import (
    ErrorCategory,
    ErrorClassification,
    RecoveryOutcome,
    Stage,
    format_timestamp,
    utc_now,
)
from hookgate.observability.metrics import PerformanceTracker
from hookgate.policy.classifier import classify
from hookgate.utils.fs import reset_directory
from hookgate.workflow.context_document import ContextStore

NOT_RECOVERABLE_REASON: Final[str] = "error is not recoverable"
MAX_ATTEMPTS_REASON: Final[str] = "max attempts exceeded"
COVERAGE_METRICS: Final[tuple[str, ...]] = ("branches", "functions", "lines", "statements")


@dataclass(frozen=True, slots=True)
class RecoveryContext:
    """What a strategy may look at: the stage and the work that triggered it."""

    stage: Stage
    files: tuple[str, ...] = ()
    persona: str | None = None
    commit_message: str | None = None
    coverage: Mapping[str, float] | CoverageSummary = field(default_factory=dict)
    coverage_threshold: float = DEFAULT_COVERAGE_THRESHOLD

    def __post_init__(self) -> None:
        object.__setattr__(self, "stage", Stage(self.stage))
        object.__setattr__(self, "files", tuple(self.files))
        coverage = self.coverage
        if isinstance(coverage, CoverageSummary):
            coverage = coverage.to_dict()
        object.__setattr__(self, "coverage", dict(coverage or {}))


Strategy = Callable[[RecoveryContext], RecoveryOutcome]


class RecoveryEngine:
    """Runs one corrective action per recoverable failure, with a retry cap."""

    def __init__(
        self,
        repo_root: Path | str,
        *,
        tools: ToolRunner | None = None,
        tracker: PerformanceTracker | None = None,
        context_store: ContextStore | None = None,
        max_attempts: int = DEFAULT_MAX_RECOVERY_ATTEMPTS,
        strict: bool = True,
        enabled: bool = True,
        logger: Any | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.repo_root = Path(repo_root)
        self._tools = tools
        self._tracker = tracker if tracker is not None else PerformanceTracker()
        self._context_store = (
            context_store
            if context_store is not None
            else ContextStore(self.repo_root / "activeContext.md")
        )
        self._max_attempts = max_attempts
        self._strict = strict
        self._enabled = enabled
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._attempts: dict[tuple[Stage, ErrorCategory], int] = {}
        self._strategies: dict[ErrorCategory, Strategy] = {
            ErrorCategory.LINT_ERROR: self._fix_lint,
            ErrorCategory.MISSING_CONTEXT_UPDATE: self._append_context_entry,
            ErrorCategory.PERFORMANCE_THRESHOLD: self._enable_optimizations,
            ErrorCategory.LOW_COVERAGE: self._coverage_guidance,
            ErrorCategory.CACHE_ERROR: self._rebuild_cache,
        }

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def attempts(self, stage: Stage | str, category: ErrorCategory) -> int:
        return self._attempts.get((Stage(stage), category), 0)

    def attempt_recovery(
        self, error: object, context: RecoveryContext
    ) -> RecoveryOutcome:
        if not self._enabled:
            return RecoveryOutcome(successful=False, reason="Auto-recovery disabled")

        classification = (
            error
            if isinstance(error, ErrorClassification)
            else classify(error, context.stage, strict=self._strict)
        )
        if not classification.recoverable:
            return RecoveryOutcome(
                successful=False,
                reason=NOT_RECOVERABLE_REASON,
                data={"category": classification.category.value},
            )

        key = (context.stage, classification.category)
        attempts = self._attempts.get(key, 0)
        if attempts >= self._max_attempts:
            self._logger.warning(
                "recovery_attempts_exhausted",
                stage=context.stage.value,
                category=classification.category.value,
                attempts=attempts,
            )
            return RecoveryOutcome(
                successful=False,
                reason=MAX_ATTEMPTS_REASON,
                data={"attempts": attempts, "category": classification.category.value},
            )

        strategy = self._strategies.get(classification.category)
        if strategy is None:
            outcome = RecoveryOutcome(successful=False, reason="No recovery strategy available")
        else:
            try:
                outcome = strategy(context)
            except Exception as exc:  # noqa: BLE001 - recovery boundary
                outcome = RecoveryOutcome(
                    successful=False,
                    reason="Recovery attempt failed",
                    data={"error": f"{type(exc).__name__}: {exc}"},
                )

        if outcome.successful:
            self._attempts.pop(key, None)
        else:
            self._attempts[key] = attempts + 1
        self._logger.info(
            "recovery_attempted",
            stage=context.stage.value,
            category=classification.category.value,
            successful=outcome.successful,
            action=outcome.action,
            reason=outcome.reason,
        )
        return outcome

    def _fix_lint(self, context: RecoveryContext) -> RecoveryOutcome:
        if not context.files:
            return RecoveryOutcome(successful=False, reason="No files to fix")
        if self._tools is None:
            return RecoveryOutcome(successful=False, reason="No lint or format command configured")

        ran = False
        for run in (self._tools.lint, self._tools.format):
            result = run(context.files)
            if result is None:
                continue
            ran = True
            if not result.ok:
                return RecoveryOutcome(
                    successful=False,
                    reason="Auto-fix failed",
                    data={"error": result.describe_failure(self._tools.timeout("lint"))},
                )
        if not ran:
            return RecoveryOutcome(successful=False, reason="No lint or format command configured")
        return RecoveryOutcome(
            successful=True,
            action="auto-fix",
            details=f"Fixed lint errors in {len(context.files)} file(s)",
            data={"filesFixed": list(context.files)},
        )

    def _append_context_entry(self, context: RecoveryContext) -> RecoveryOutcome:
        text = self._context_store.read_text()
        if text is None:
            return RecoveryOutcome(successful=False, reason="Context file does not exist")

        entry = (
            f"\n## {format_timestamp(utc_now())}\n"
            f"**Persona**: {context.persona or 'DEVELOPER'}\n"
            f"**Action**: {context.commit_message or 'Context update'}\n"
        )
        write_hash = self._context_store.atomic_write(text + entry)
        return RecoveryOutcome(
            successful=True,
            action="auto-generate-context",
            details="Generated basic context entry",
            data={"entry": entry, "writeHash": write_hash},
        )

    def _enable_optimizations(self, context: RecoveryContext) -> RecoveryOutcome:
        del context
        enabled = self._tracker.apply_optimizations()
        return RecoveryOutcome(
            successful=True,
            action="enable-optimizations",
            details=f"Enabled optimizations: {', '.join(enabled) or 'none (already enabled)'}",
            data={"optimizations": list(enabled), "thresholdMs": self._tracker.threshold_ms},
        )

    def _coverage_guidance(self, context: RecoveryContext) -> RecoveryOutcome:
        recommendations = coverage_gaps(context.coverage, context.coverage_threshold)
        gaps = [item["metric"] for item in recommendations]
        return RecoveryOutcome(
            successful=True,
            action="coverage-guidance",
            details=f"Coverage below threshold in: {', '.join(gaps)}",
            data={"gaps": gaps, "recommendations": recommendations},
        )

    def _rebuild_cache(self, context: RecoveryContext) -> RecoveryOutcome:
        del context
        reset_directory(self.repo_root / HOOK_CACHE_DIR, self.repo_root)
        (self.repo_root / RESULT_CACHE_PATH).unlink(missing_ok=True)
        return RecoveryOutcome(
            successful=True, action="cache-rebuild", details="Cleared and rebuilt cache"
        )


def coverage_gaps(
    coverage: Mapping[str, float],
    threshold: float,
    metrics: Sequence[str] = COVERAGE_METRICS,
) -> list[dict[str, str]]:
    """Per-metric gap report; metrics missing from ``coverage`` are not reported."""

    report: list[dict[str, str]] = []
    for metric in metrics:
        if metric not in coverage:
            continue
        current = float(coverage[metric])
        if current >= threshold:
            continue
        needed = threshold - current
        report.append(
            {
                "metric": metric,
                "current": f"{current:.2f}%",
                "threshold": f"{threshold:g}%",
                "gap": f"{needed:.2f}%",
                "suggestion": f"Add tests to improve {metric} coverage by {needed:.2f}%",
            }
        )
    return report


__all__ = [
    "COVERAGE_METRICS",
    "MAX_ATTEMPTS_REASON",
    "NOT_RECOVERABLE_REASON",
    "RecoveryContext",
    "RecoveryEngine",
    "coverage_gaps",
]
