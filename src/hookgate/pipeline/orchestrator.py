"""
hookgate — hook orchestrator

File: src/hookgate/pipeline/orchestrator.py
Last updated: 2026-10-19

Purpose
- One entry point per git lifecycle stage. Each entry point builds the stage's
  validators, runs them, then applies the shared failure policy and returns a
  ``StageReport``.

Normative behavior
- Stage flow: validate -> classify -> recover -> bypass -> report.
- Recovery is attempted for every recoverable failure. Lint and cache failures whose
  recovery succeeded are re-validated exactly once; the gatekeeper step is re-run
  when the re-validation leaves the stage clean.
- A bypass request converts failures into ``waived`` results only when every failed
  classification admits the requested method; each waiver is written to the audit
  ledger. Otherwise the refusal is reported as a warning and the failures stand.
- Every invocation is timed and recorded in the performance tracker; exceeding the
  budget adds a warning and triggers the performance recovery.
- Any exception escaping the flow yields a synthetic failed report. Post-commit,
  post-merge and post-checkout always report success.
- A failed post-merge check writes the recovery report with rollback
  recommendations and troubleshooting steps.
- Every stage, crashed or not, leaves a JSON run report (stage report plus the
  performance snapshot) at ``.git/hooks/reports/<stage>-<invocation_id>.json``.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

import structlog

from hookgate.constants import RECOVERY_REPORT_PATH, RUN_REPORT_DIR
from hookgate.domain import (
    ErrorCategory,
    Stage,
    StageReport,
    ValidationResult,
    ValidationStatus,
    format_timestamp,
)
from hookgate.observability.logging import correlation_scope
from hookgate.pipeline.engine import (
    EARLIER_FAILURE_REASON,
    PipelineOutcome,
    ValidationPipeline,
    ValidatorSpec,
)
from hookgate.pipeline.environment import HookEnvironment
from hookgate.pipeline.post_hooks import post_commit_validators, post_merge_validators
from hookgate.pipeline.reports import (
    EXECUTION_ERROR,
    FALLBACK_ROLLBACK,
    error_report,
    failure_type,
    recovery_report,
    rollback_recommendations,
    stage_report,
    troubleshooting,
    write_json_report,
)
from hookgate.pipeline.validators import (
    commit_msg_validators,
    post_checkout_validators,
    pre_commit_validators,
    pre_push_validators,
    pre_rebase_validators,
    pre_receive_validators,
)
from hookgate.policy.bypass import evaluate_bypass, match_bypass_trigger
from hookgate.policy.recovery import RecoveryContext
from hookgate.workflow.messages import commit_subject
from hookgate.workflow.personas import extract_persona_from_message

RERUN_CATEGORIES = frozenset({ErrorCategory.LINT_ERROR, ErrorCategory.CACHE_ERROR})

RefUpdate = tuple[str, str, str]


class HookOrchestrator:
    """Runs the validators of a lifecycle stage and applies the failure policy."""

    def __init__(
        self,
        env: HookEnvironment,
        *,
        invocation_id: str | None = None,
        logger: Any | None = None,
    ) -> None:
        self.env = env
        self.invocation_id = invocation_id or uuid.uuid4().hex[:12]
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    # -- stage entry points ---------------------------------------------------------

    def pre_commit(self, staged_files: Sequence[str] | None = None) -> StageReport:
        def specs() -> list[ValidatorSpec]:
            files = self.env.git.staged_files() if staged_files is None else staged_files
            return pre_commit_validators(self.env, files)

        return self._execute(Stage.PRE_COMMIT, specs)

    def commit_msg(self, message: str) -> StageReport:
        subject = commit_subject(message)
        return self._execute(
            Stage.COMMIT_MSG,
            lambda: commit_msg_validators(self.env, message),
            bypass_text=subject,
            recovery_context=RecoveryContext(
                Stage.COMMIT_MSG,
                persona=extract_persona_from_message(subject),
                commit_message=subject,
            ),
        )

    def pre_push(self, remote: str | None = None, branch: str | None = None) -> StageReport:
        return self._execute(
            Stage.PRE_PUSH,
            lambda: pre_push_validators(self.env, remote, branch or self.env.git.current_branch()),
        )

    def post_commit(self, commit_hash: str | None = None) -> StageReport:
        return self._execute(
            Stage.POST_COMMIT,
            lambda: post_commit_validators(self.env, commit_hash or self.env.git.head()),
        )

    def post_merge(self, merge_type: str = "standard") -> StageReport:
        return self._execute(
            Stage.POST_MERGE,
            lambda: post_merge_validators(self.env, merge_type),
            on_failure=lambda outcome: self._merge_recovery(merge_type, outcome),
            on_error=_merge_error_recovery,
        )

    def pre_rebase(self, upstream: str | None = None, branch: str | None = None) -> StageReport:
        return self._execute(
            Stage.PRE_REBASE, lambda: pre_rebase_validators(self.env, upstream, branch)
        )

    def post_checkout(
        self,
        previous: str | None = None,
        new: str | None = None,
        branch_flag: str | None = None,
    ) -> StageReport:
        del previous, new
        return self._execute(
            Stage.POST_CHECKOUT, lambda: post_checkout_validators(self.env, branch_flag)
        )

    def pre_receive(self, updates: Sequence[RefUpdate]) -> StageReport:
        return self._execute(
            Stage.PRE_RECEIVE, lambda: pre_receive_validators(self.env, list(updates))
        )

    def run_stage(self, stage: Stage | str, **arguments: Any) -> StageReport:
        """Dispatch by stage name; ``arguments`` are the entry point's keyword arguments."""

        entry: Callable[..., StageReport] = getattr(self, Stage(stage).value.replace("-", "_"))
        return entry(**arguments)

    # -- shared flow -----------------------------------------------------------------

    def _execute(
        self,
        stage: Stage,
        build_specs: Callable[[], list[ValidatorSpec]],
        *,
        bypass_text: str = "",
        recovery_context: RecoveryContext | None = None,
        on_failure: Callable[[PipelineOutcome], Mapping[str, Any]] | None = None,
        on_error: Callable[[BaseException], Mapping[str, Any]] | None = None,
    ) -> StageReport:
        started = time.perf_counter()
        timestamp = format_timestamp(self.env.clock())
        with correlation_scope(stage=stage.value, invocation_id=self.invocation_id):
            try:
                specs = build_specs()
                pipeline = ValidationPipeline(stage, strict=self.env.strict, logger=self._logger)
                outcome = pipeline.run(specs)
                context = recovery_context or self._recovery_context(stage, outcome)
                outcome, attempts = self._recover(pipeline, specs, outcome, context)
                outcome, bypass_warnings = self._apply_bypass(stage, outcome, bypass_text)

                recovery: dict[str, Any] = {}
                if attempts:
                    recovery["attempts"] = attempts
                if on_failure is not None and _has_failed(outcome.results):
                    recovery.update(on_failure(outcome))

                duration_ms = _elapsed_ms(started)
                warnings = [*bypass_warnings, *self._check_budget(stage, duration_ms, recovery)]
                self.env.tracker.record(stage.value, duration_ms, outcome.success)
                report = stage_report(
                    outcome,
                    timestamp=timestamp,
                    duration_ms=duration_ms,
                    recovery=recovery or None,
                    warnings=warnings,
                )
            except Exception as exc:  # noqa: BLE001 - stage boundary
                duration_ms = _elapsed_ms(started)
                self._logger.error(
                    "hook_stage_crashed",
                    stage=stage.value,
                    error=f"{type(exc).__name__}: {exc}",
                )
                self.env.tracker.record(stage.value, duration_ms, False)
                report = error_report(
                    stage,
                    exc,
                    timestamp=timestamp,
                    duration_ms=duration_ms,
                    recovery=on_error(exc) if on_error is not None else None,
                )

            self._write_run_report(stage, report)
            self._logger.info(
                "hook_stage_completed",
                stage=stage.value,
                success=report.success,
                state=report.state.value,
                duration_ms=round(report.duration_ms, 3),
                failures=list(report.failed_validators),
            )
        return report

    def run_report_path(self, stage: Stage | str) -> Path:
        name = f"{Stage(stage).value}-{self.invocation_id}.json"
        return self.env.repo_root / RUN_REPORT_DIR / name

    def _write_run_report(self, stage: Stage, report: StageReport) -> None:
        path = self.run_report_path(stage)
        payload = {
            "invocationId": self.invocation_id,
            "report": report.to_dict(),
            "metrics": self.env.tracker.snapshot(),
        }
        try:
            write_json_report(path, payload)
        except (OSError, TypeError, ValueError) as exc:
            self._logger.warning("run_report_unwritable", path=str(path), error=str(exc))

    def _recovery_context(self, stage: Stage, outcome: PipelineOutcome) -> RecoveryContext:
        files: tuple[str, ...] = ()
        lint = outcome.results.get("linting")
        if lint is not None:
            files = tuple(lint.data.get("files", ()))
        coverage: Mapping[str, float] = {}
        tests = outcome.results.get("fullTestSuite")
        if tests is not None and isinstance(tests.data.get("coverage"), Mapping):
            coverage = tests.data["coverage"]
        return RecoveryContext(
            stage,
            files=files,
            coverage=coverage,
            coverage_threshold=self.env.coverage_threshold,
        )

    def _recover(
        self,
        pipeline: ValidationPipeline,
        specs: Sequence[ValidatorSpec],
        outcome: PipelineOutcome,
        context: RecoveryContext,
    ) -> tuple[PipelineOutcome, list[dict[str, Any]]]:
        by_name = {spec.name: spec for spec in specs}
        attempts: list[dict[str, Any]] = []
        reran = False
        for name, classification in dict(outcome.classifications).items():
            if not classification.recoverable:
                continue
            result = self.env.recovery.attempt_recovery(classification, context)
            entry: dict[str, Any] = {
                "validator": name,
                "category": classification.category.value,
                **result.to_dict(),
            }
            if result.successful and classification.category in RERUN_CATEGORIES:
                outcome = pipeline.rerun(by_name[name], outcome)
                entry["revalidated"] = outcome.results[name].status.value
                reran = True
            attempts.append(entry)

        if reran and outcome.success:
            # gate steps skipped behind the recovered failure get their turn now
            for spec in specs:
                skipped = outcome.results.get(spec.name)
                if (
                    spec.requires_success
                    and skipped is not None
                    and skipped.detail == EARLIER_FAILURE_REASON
                ):
                    outcome = pipeline.rerun(spec, outcome)
        return outcome, attempts

    def _apply_bypass(
        self, stage: Stage, outcome: PipelineOutcome, text: str
    ) -> tuple[PipelineOutcome, list[str]]:
        if outcome.success or not stage.blocking:
            return outcome, []
        trigger = match_bypass_trigger(
            text, development_mode=self.env.development_mode, environ=self.env.environ
        )
        if trigger is None:
            return outcome, []

        refused = [
            decision.reason or "bypass not permitted"
            for decision in (
                evaluate_bypass(classification, trigger.method)
                for classification in outcome.classifications.values()
            )
            if not decision.approved
        ]
        if refused:
            self._logger.warning(
                "bypass_refused", stage=stage.value, bypass_method=trigger.method
            )
            return outcome, [f"bypass via {trigger.method} refused: {refused[0]}"]

        for name, classification in dict(outcome.classifications).items():
            original = outcome.results[name]
            self.env.ledger.record_bypass(stage, classification, trigger.method, trigger.reason)
            outcome = outcome.with_result(
                name,
                ValidationResult.waived(
                    f"bypassed via {trigger.method}: {original.detail}",
                    **{**original.data, "bypassReason": trigger.reason},
                ),
                strict=self.env.strict,
            )
        return outcome, []

    def _check_budget(
        self, stage: Stage, duration_ms: float, recovery: dict[str, Any]
    ) -> list[str]:
        if not self.env.tracker.exceeded_budget(stage.value, duration_ms):
            return []
        message = (
            f"performance threshold exceeded: {stage.value} took {duration_ms:.0f}ms "
            f"(budget {self.env.tracker.threshold_ms:g}ms)"
        )
        outcome = self.env.recovery.attempt_recovery(message, RecoveryContext(stage))
        recovery["performance"] = outcome.to_dict()
        return [message]

    def _merge_recovery(self, merge_type: str, outcome: PipelineOutcome) -> dict[str, Any]:
        failed = {
            name: result
            for name, result in outcome.results.items()
            if result.status is ValidationStatus.FAILED
        }
        first = next(iter(failed.values()))
        diagnostics = troubleshooting(
            failure_type(list(failed)), first.detail, failure_count=len(failed)
        )
        recommendations = rollback_recommendations(self.env.git, self.env.protected_branches)
        previous = self.env.git.previous_head()
        affected = self.env.git.changed_between(previous) if previous else ()
        payload = {
            "rollbackRecommendations": [item.to_dict() for item in recommendations],
            "troubleshooting": diagnostics,
        }
        report = recovery_report(
            merge_type,
            outcome.results,
            timestamp=format_timestamp(self.env.clock()),
            affected_files=affected,
            recommendations=recommendations,
            diagnostics=diagnostics,
        )
        try:
            path = write_json_report(self.env.repo_root / RECOVERY_REPORT_PATH, report)
        except OSError as exc:
            self._logger.warning("recovery_report_unwritable", error=str(exc))
        else:
            payload["reportPath"] = path.relative_to(self.env.repo_root).as_posix()
        return payload


def _merge_error_recovery(error: BaseException) -> dict[str, Any]:
    return {
        "rollbackRecommendations": [FALLBACK_ROLLBACK.to_dict()],
        "troubleshooting": troubleshooting(EXECUTION_ERROR, str(error)),
    }


def _has_failed(results: Mapping[str, ValidationResult]) -> bool:
    return any(result.status is ValidationStatus.FAILED for result in results.values())


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


__all__ = ["RERUN_CATEGORIES", "HookOrchestrator", "RefUpdate"]
