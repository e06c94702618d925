"""
hookgate — validation pipeline engine

File: src/hookgate/pipeline/engine.py
Last updated: 2026-10-19

Purpose
- Run an ordered list of named validators for one lifecycle stage and fold their
  results into a single stage outcome.

Normative behavior
- Validators run strictly in the order given; one validator never observes a later
  one's result.
- Every call is wrapped: an exception becomes a ``failed`` result whose detail is
  ``"<ExceptionType>: <message>"``; a subprocess timeout becomes ``failed`` with
  ``"timed out after Ns"``. Nothing raised by a validator escapes ``run``.
- Validator output is normalized from ``ValidationResult``, ``bool`` or a mapping.
- A stage succeeds iff every result is ``passed``, ``skipped`` or ``waived``.
- Stage state moves ``SKIPPED -> RUNNING -> PASSED | FAILED | WAIVED``.
- Each result that prevents success yields one ``FailureEntry``; its severity and
  category come from the classifier, and the remediation text concatenates the
  guidance for the distinct categories.
"""

from __future__ import annotations

import subprocess
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final, TypeAlias

import structlog

from hookgate.domain import (
    ErrorClassification,
    FailureEntry,
    Stage,
    StageState,
    ValidationResult,
    ValidationStatus,
)
from hookgate.policy.classifier import classify
from hookgate.policy.remediation import remediation_text

ValidatorOutput: TypeAlias = ValidationResult | bool | Mapping[str, object]
ValidatorFn: TypeAlias = Callable[[Mapping[str, ValidationResult]], ValidatorOutput]

DISABLED_REASON: Final[str] = "disabled by configuration"
EARLIER_FAILURE_REASON: Final[str] = "earlier validators failed"


@dataclass(frozen=True, slots=True)
class ValidatorSpec:
    """
    One named step of a stage.

    ``run`` receives the results recorded so far. ``requires_success`` skips the step
    when an earlier result already prevents success. An ``advisory`` step never fails
    the stage: its ``warning`` results are recorded as ``passed`` and the warning text
    is surfaced on the outcome instead.
    """

    name: str
    run: ValidatorFn
    enabled: bool = True
    skip_reason: str = DISABLED_REASON
    requires_success: bool = False
    advisory: bool = False
    timeout_seconds: float | None = None


@dataclass(frozen=True, slots=True)
class PipelineOutcome:
    stage: Stage
    state: StageState
    results: Mapping[str, ValidationResult] = field(default_factory=dict)
    failures: tuple[FailureEntry, ...] = ()
    classifications: Mapping[str, ErrorClassification] = field(default_factory=dict)
    remediation: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return stage_succeeded(self.results.values())

    def with_result(
        self, name: str, result: ValidationResult, *, strict: bool = True
    ) -> PipelineOutcome:
        """Copy with ``name`` replaced by ``result`` and the aggregates recomputed."""

        results = dict(self.results)
        results[name] = result
        return build_outcome(self.stage, results, strict=strict, warnings=self.warnings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "state": self.state.value,
            "success": self.success,
            "results": {name: result.to_dict() for name, result in self.results.items()},
            "failures": [entry.to_dict() for entry in self.failures],
            "remediation": self.remediation,
            "warnings": list(self.warnings),
        }


def stage_succeeded(results: Iterable[ValidationResult]) -> bool:
    return all(result.status.is_success for result in results)


def aggregate_state(results: Iterable[ValidationResult]) -> StageState:
    statuses = {result.status for result in results}
    if not statuses:
        return StageState.SKIPPED
    if any(not status.is_success for status in statuses):
        return StageState.FAILED
    if ValidationStatus.WAIVED in statuses:
        return StageState.WAIVED
    return StageState.PASSED


def summarize(results: Mapping[str, ValidationResult]) -> dict[str, int]:
    """Count results per status, in status declaration order."""

    counts = {status.value: 0 for status in ValidationStatus}
    for result in results.values():
        counts[result.status.value] += 1
    return counts


def build_outcome(
    stage: Stage | str,
    results: Mapping[str, ValidationResult],
    *,
    strict: bool = True,
    warnings: Sequence[str] = (),
) -> PipelineOutcome:
    resolved = Stage(stage)
    failures: list[FailureEntry] = []
    classifications: dict[str, ErrorClassification] = {}
    for name, result in results.items():
        if result.is_success:
            continue
        classification = classify(result.detail, resolved, strict=strict)
        classifications[name] = classification
        failures.append(
            FailureEntry(
                validator=name,
                severity=classification.severity,
                detail=result.detail,
                category=classification.category,
            )
        )
    return PipelineOutcome(
        stage=resolved,
        state=aggregate_state(results.values()),
        results=dict(results),
        failures=tuple(failures),
        classifications=classifications,
        remediation=remediation_text(entry.category for entry in failures),
        warnings=tuple(warnings),
    )


class ValidationPipeline:
    """Sequential validator runner for one stage invocation."""

    def __init__(
        self,
        stage: Stage | str,
        *,
        strict: bool = True,
        logger: Any | None = None,
    ) -> None:
        self.stage = Stage(stage)
        self._strict = strict
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._state = StageState.SKIPPED

    @property
    def state(self) -> StageState:
        return self._state

    def run(self, specs: Sequence[ValidatorSpec]) -> PipelineOutcome:
        names = [spec.name for spec in specs]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate validator names in {self.stage.value} pipeline")

        self._state = StageState.RUNNING
        results: dict[str, ValidationResult] = {}
        warnings: list[str] = []
        for spec in specs:
            result = self._run_one(spec, results)
            if spec.advisory and result.status is ValidationStatus.WARNING:
                warnings.append(f"{spec.name}: {result.detail}")
                notes = result.data.get("notes")
                if isinstance(notes, Sequence) and not isinstance(notes, str):
                    warnings.extend(f"{spec.name}: {note}" for note in notes)
                result = ValidationResult(
                    ValidationStatus.PASSED,
                    result.detail,
                    remediation=result.remediation,
                    cached=result.cached,
                    data={**result.data, "advisory": True},
                )
            results[spec.name] = result

        outcome = build_outcome(self.stage, results, strict=self._strict, warnings=warnings)
        self._state = outcome.state
        self._logger.info(
            "pipeline_completed",
            stage=self.stage.value,
            state=outcome.state.value,
            failures=[entry.validator for entry in outcome.failures],
        )
        return outcome

    def rerun(self, spec: ValidatorSpec, outcome: PipelineOutcome) -> PipelineOutcome:
        """Run ``spec`` once more against the other recorded results."""

        previous = {name: result for name, result in outcome.results.items() if name != spec.name}
        rerun = build_outcome(
            self.stage,
            {**outcome.results, spec.name: self._run_one(spec, previous)},
            strict=self._strict,
            warnings=outcome.warnings,
        )
        self._state = rerun.state
        return rerun

    def _run_one(
        self, spec: ValidatorSpec, previous: Mapping[str, ValidationResult]
    ) -> ValidationResult:
        if not spec.enabled:
            return ValidationResult.skipped(spec.skip_reason)
        if spec.requires_success and not stage_succeeded(previous.values()):
            return ValidationResult.skipped(EARLIER_FAILURE_REASON)

        started = time.perf_counter()
        try:
            result = normalize_output(spec.run(previous))
        except subprocess.TimeoutExpired as exc:
            limit = spec.timeout_seconds if spec.timeout_seconds is not None else exc.timeout
            result = ValidationResult.failed(f"timed out after {limit:g}s")
        except Exception as exc:  # noqa: BLE001 - validator boundary
            result = ValidationResult.failed(f"{type(exc).__name__}: {exc}")

        self._logger.info(
            "validator_completed",
            stage=self.stage.value,
            validator=spec.name,
            status=result.status.value,
            cached=result.cached,
            duration_ms=round((time.perf_counter() - started) * 1000.0, 3),
        )
        return result


def normalize_output(output: object) -> ValidationResult:
    if isinstance(output, ValidationResult):
        return output

    if isinstance(output, bool):
        return ValidationResult.passed() if output else ValidationResult.failed("check failed")

    if isinstance(output, Mapping):
        status = _coerce_status(output.get("status", ValidationStatus.PASSED))
        detail = output.get("detail", output.get("message", output.get("error", "")))
        remediation = output.get("remediation")
        extra = output.get("data", {})
        return ValidationResult(
            status,
            "" if detail is None else str(detail),
            remediation=None if remediation is None else str(remediation),
            cached=bool(output.get("cached", False)),
            data=extra if isinstance(extra, Mapping) else {},
        )

    raise TypeError(
        "validator output must be ValidationResult, bool, or Mapping[str, object]; "
        f"got {type(output).__name__}"
    )


def _coerce_status(value: object) -> ValidationStatus:
    if isinstance(value, ValidationStatus):
        return value
    if isinstance(value, str):
        return ValidationStatus(value.strip().lower())
    raise ValueError(f"invalid validation status value: {value!r}")


__all__ = [
    "DISABLED_REASON",
    "EARLIER_FAILURE_REASON",
    "PipelineOutcome",
    "ValidationPipeline",
    "ValidatorFn",
    "ValidatorOutput",
    "ValidatorSpec",
    "aggregate_state",
    "build_outcome",
    "normalize_output",
    "stage_succeeded",
    "summarize",
]
