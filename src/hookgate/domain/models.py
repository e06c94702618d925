"""
hookgate — domain models

File: src/hookgate/domain/models.py
Last updated: 2026-10-19

Purpose
- Immutable value types shared by the classifier, recovery engine, bypass ledger,
  validation pipeline and workflow synchronizer.

Functional requirements
- Every record emitted to callers (stage reports, bypass records, sync results)
  is frozen once constructed and serializes to a JSON-compatible mapping.
- Lifecycle stages carry their own ``blocking`` attribute so aggregation never
  special-cases stage names.

Non-functional requirements
- Pure data: no I/O, no logging, no clock reads except the explicit helpers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class Stage(StrEnum):
    PRE_COMMIT = "pre-commit"
    COMMIT_MSG = "commit-msg"
    PRE_PUSH = "pre-push"
    POST_COMMIT = "post-commit"
    POST_MERGE = "post-merge"
    PRE_REBASE = "pre-rebase"
    POST_CHECKOUT = "post-checkout"
    PRE_RECEIVE = "pre-receive"

    @property
    def blocking(self) -> bool:
        """Whether a failed stage may prevent the underlying git operation."""
        return self not in _NON_BLOCKING_STAGES


_NON_BLOCKING_STAGES = frozenset({Stage.POST_COMMIT, Stage.POST_MERGE, Stage.POST_CHECKOUT})


class ValidationStatus(StrEnum):
    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"
    SKIPPED = "skipped"
    WAIVED = "waived"

    @property
    def is_success(self) -> bool:
        return self in _SUCCESS_STATUSES


_SUCCESS_STATUSES = frozenset(
    {ValidationStatus.PASSED, ValidationStatus.SKIPPED, ValidationStatus.WAIVED}
)


class StageState(StrEnum):
    SKIPPED = "skipped"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    WAIVED = "waived"


class Severity(StrEnum):
    BLOCKING = "blocking"
    WARNING = "warning"
    NON_BLOCKING = "non-blocking"


class BlockingType(StrEnum):
    HARD = "hard"
    SOFT = "soft"
    NONE = "none"


class ErrorCategory(StrEnum):
    TEST_FAILURE = "TEST_FAILURE"
    BUILD_FAILURE = "BUILD_FAILURE"
    SECURITY_VULNERABILITY = "SECURITY_VULNERABILITY"
    INVALID_COMMIT_MESSAGE = "INVALID_COMMIT_MESSAGE"
    LINT_ERROR = "LINT_ERROR"
    SYNTAX_ERROR = "SYNTAX_ERROR"
    MISSING_CONTEXT_UPDATE = "MISSING_CONTEXT_UPDATE"
    PERFORMANCE_THRESHOLD = "PERFORMANCE_THRESHOLD"
    DEPRECATED_USAGE = "DEPRECATED_USAGE"
    LOW_COVERAGE = "LOW_COVERAGE"
    NOTIFICATION_FAILURE = "NOTIFICATION_FAILURE"
    DOCUMENTATION_FAILURE = "DOCUMENTATION_FAILURE"
    METRICS_FAILURE = "METRICS_FAILURE"
    CACHE_ERROR = "CACHE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    UNKNOWN_POST_HOOK_ERROR = "UNKNOWN_POST_HOOK_ERROR"


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` as an ISO-8601 UTC string with millisecond precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of one named validator within a stage."""

    status: ValidationStatus
    detail: str = ""
    remediation: str | None = None
    cached: bool = False
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", ValidationStatus(self.status))
        object.__setattr__(self, "detail", str(self.detail))
        object.__setattr__(self, "data", dict(self.data))

    @property
    def is_success(self) -> bool:
        return self.status.is_success

    @classmethod
    def passed(cls, detail: str = "", **data: Any) -> ValidationResult:
        return cls(ValidationStatus.PASSED, detail, data=data)

    @classmethod
    def failed(
        cls, detail: str, *, remediation: str | None = None, **data: Any
    ) -> ValidationResult:
        return cls(ValidationStatus.FAILED, detail, remediation=remediation, data=data)

    @classmethod
    def warning(
        cls, detail: str, *, remediation: str | None = None, **data: Any
    ) -> ValidationResult:
        return cls(ValidationStatus.WARNING, detail, remediation=remediation, data=data)

    @classmethod
    def skipped(cls, detail: str = "", **data: Any) -> ValidationResult:
        return cls(ValidationStatus.SKIPPED, detail, data=data)

    @classmethod
    def waived(cls, detail: str, **data: Any) -> ValidationResult:
        return cls(ValidationStatus.WAIVED, detail, data=data)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status.value, "detail": self.detail}
        if self.remediation is not None:
            payload["remediation"] = self.remediation
        if self.cached:
            payload["cached"] = True
        if self.data:
            payload["data"] = dict(self.data)
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ValidationResult:
        remediation = data.get("remediation")
        extra = data.get("data", {})
        return cls(
            status=ValidationStatus(str(data["status"])),
            detail=str(data.get("detail", "")),
            remediation=None if remediation is None else str(remediation),
            cached=bool(data.get("cached", False)),
            data=extra if isinstance(extra, Mapping) else {},
        )


@dataclass(frozen=True, slots=True)
class ErrorClassification:
    category: ErrorCategory
    severity: Severity
    blocking_type: BlockingType
    recoverable: bool
    bypassable: bool
    message: str = ""

    @property
    def is_blocking(self) -> bool:
        return self.severity is Severity.BLOCKING

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "blockingType": self.blocking_type.value,
            "recoverable": self.recoverable,
            "bypassable": self.bypassable,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class FailureEntry:
    validator: str
    severity: Severity
    detail: str
    category: ErrorCategory

    def to_dict(self) -> dict[str, str]:
        return {
            "validator": self.validator,
            "severity": self.severity.value,
            "detail": self.detail,
            "category": self.category.value,
        }


@dataclass(frozen=True, slots=True)
class RecoveryOutcome:
    successful: bool
    action: str | None = None
    details: str | None = None
    reason: str | None = None
    data: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"successful": self.successful}
        for key in ("action", "details", "reason"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.data:
            payload["data"] = dict(self.data)
        return payload


@dataclass(frozen=True, slots=True)
class BypassMethod:
    name: str
    command: str
    description: str
    requires_audit: bool = True
    requires_followup: bool = False
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "method": self.name,
            "command": self.command,
            "description": self.description,
            "requiresAudit": self.requires_audit,
        }
        if self.requires_followup:
            payload["requiresFollowup"] = True
        if self.warning is not None:
            payload["warning"] = self.warning
        return payload


@dataclass(frozen=True, slots=True)
class BypassOptions:
    available: bool
    methods: tuple[BypassMethod, ...] = ()
    reason: str | None = None

    @property
    def method_names(self) -> tuple[str, ...]:
        return tuple(method.name for method in self.methods)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "available": self.available,
            "methods": [method.to_dict() for method in self.methods],
        }
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


_BYPASS_RECORD_KEYS = (
    ("timestamp", "timestamp"),
    ("stage", "stage"),
    ("error_category", "errorCategory"),
    ("error_severity", "errorSeverity"),
    ("bypass_method", "bypassMethod"),
    ("reason", "reason"),
    ("actor", "actor"),
)


@dataclass(frozen=True, slots=True)
class BypassRecord:
    """One approved policy override; the audit log stores these as JSON lines."""

    timestamp: str
    stage: str
    error_category: str
    error_severity: str
    bypass_method: str
    reason: str
    actor: str

    def to_dict(self) -> dict[str, str]:
        return {wire: getattr(self, attr) for attr, wire in _BYPASS_RECORD_KEYS}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BypassRecord:
        missing = [wire for _, wire in _BYPASS_RECORD_KEYS if wire not in data]
        if missing:
            raise ValueError(f"bypass record missing keys: {', '.join(missing)}")
        return cls(**{attr: str(data[wire]) for attr, wire in _BYPASS_RECORD_KEYS})


@dataclass(frozen=True, slots=True)
class SyncResult:
    success: bool
    persona: str | None
    step_id: str | None
    timestamp: str
    results: Mapping[str, Any] = field(default_factory=dict)
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "persona": self.persona,
            "stepId": self.step_id,
            "timestamp": self.timestamp,
            "results": dict(self.results),
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class StageReport:
    """Final, immutable outcome of one lifecycle invocation."""

    stage: Stage
    timestamp: str
    duration_ms: float
    success: bool
    state: StageState
    results: Mapping[str, ValidationResult] = field(default_factory=dict)
    failure_report: tuple[FailureEntry, ...] = ()
    remediation: str | None = None
    recovery: Mapping[str, Any] | None = None
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "stage", Stage(self.stage))
        object.__setattr__(self, "state", StageState(self.state))
        object.__setattr__(self, "results", dict(self.results))
        object.__setattr__(self, "failure_report", tuple(self.failure_report))
        object.__setattr__(self, "warnings", tuple(self.warnings))

    @property
    def failed_validators(self) -> tuple[str, ...]:
        return tuple(entry.validator for entry in self.failure_report)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "stage": self.stage.value,
            "timestamp": self.timestamp,
            "durationMs": round(self.duration_ms, 3),
            "success": self.success,
            "state": self.state.value,
            "results": {name: result.to_dict() for name, result in self.results.items()},
        }
        if self.failure_report:
            payload["failureReport"] = [entry.to_dict() for entry in self.failure_report]
        if self.remediation is not None:
            payload["remediation"] = self.remediation
        if self.recovery is not None:
            payload["recovery"] = dict(self.recovery)
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        return payload


__all__ = [
    "BlockingType",
    "BypassMethod",
    "BypassOptions",
    "BypassRecord",
    "ErrorCategory",
    "ErrorClassification",
    "FailureEntry",
    "RecoveryOutcome",
    "Severity",
    "Stage",
    "StageReport",
    "StageState",
    "SyncResult",
    "ValidationResult",
    "ValidationStatus",
    "format_timestamp",
    "utc_now",
]
