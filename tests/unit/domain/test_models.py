"""Unit tests for hookgate domain models and their wire formats."""

from __future__ import annotations

import json
from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from hookgate.domain import (
    BypassRecord,
    ErrorCategory,
    FailureEntry,
    RecoveryOutcome,
    Severity,
    Stage,
    StageReport,
    StageState,
    ValidationResult,
    ValidationStatus,
    format_timestamp,
)


@pytest.mark.parametrize(
    ("stage", "blocking"),
    [
        (Stage.PRE_COMMIT, True),
        (Stage.COMMIT_MSG, True),
        (Stage.PRE_PUSH, True),
        (Stage.PRE_REBASE, True),
        (Stage.PRE_RECEIVE, True),
        (Stage.POST_COMMIT, False),
        (Stage.POST_MERGE, False),
        (Stage.POST_CHECKOUT, False),
    ],
)
def test_stage_blocking(stage: Stage, blocking: bool) -> None:
    assert stage.blocking is blocking
    assert Stage(stage.value) is stage


def test_success_statuses() -> None:
    assert {status for status in ValidationStatus if status.is_success} == {
        ValidationStatus.PASSED,
        ValidationStatus.SKIPPED,
        ValidationStatus.WAIVED,
    }


def test_format_timestamp_normalizes_to_utc_millis() -> None:
    plus_two = timezone(timedelta(hours=2))

    assert format_timestamp(datetime(2026, 10, 19, 14, 0, tzinfo=plus_two)) == (
        "2026-10-19T12:00:00.000Z"
    )
    assert format_timestamp(datetime(2026, 10, 19, 12, 0, 0, 123456)) == (
        "2026-10-19T12:00:00.123Z"
    )


def test_validation_result_dict_round_trip() -> None:
    result = ValidationResult.failed("lint errors found", remediation="fix them", files=["a.ts"])

    payload = result.to_dict()

    assert payload == {
        "status": "failed",
        "detail": "lint errors found",
        "remediation": "fix them",
        "data": {"files": ["a.ts"]},
    }
    assert ValidationResult.from_dict(json.loads(json.dumps(payload))) == result
    assert ValidationResult.skipped().to_dict() == {"status": "skipped", "detail": ""}


def test_validation_result_is_frozen() -> None:
    result = ValidationResult.passed("ok")

    with pytest.raises(FrozenInstanceError):
        result.detail = "changed"  # type: ignore[misc]


def test_recovery_outcome_omits_unset_fields() -> None:
    assert RecoveryOutcome(successful=False, reason="Auto-fix failed").to_dict() == {
        "successful": False,
        "reason": "Auto-fix failed",
    }


def test_bypass_record_wire_keys() -> None:
    record = BypassRecord(
        timestamp="2026-10-19T12:00:00.000Z",
        stage="pre-commit",
        error_category="LINT_ERROR",
        error_severity="blocking",
        bypass_method="EMERGENCY_OVERRIDE",
        reason="hotfix",
        actor="dana",
    )

    payload = record.to_dict()

    assert sorted(payload) == [
        "actor",
        "bypassMethod",
        "errorCategory",
        "errorSeverity",
        "reason",
        "stage",
        "timestamp",
    ]
    assert BypassRecord.from_dict(payload) == record
    with pytest.raises(ValueError, match="missing keys: actor"):
        BypassRecord.from_dict({key: value for key, value in payload.items() if key != "actor"})


def test_stage_report_coerces_and_serializes() -> None:
    report = StageReport(
        stage="pre-push",  # type: ignore[arg-type]
        timestamp="2026-10-19T12:00:00.000Z",
        duration_ms=12.34567,
        success=False,
        state="failed",  # type: ignore[arg-type]
        results={"security": ValidationResult.failed("2 high vulnerabilities")},
        failure_report=[
            FailureEntry(
                "security",
                Severity.BLOCKING,
                "2 high vulnerabilities",
                ErrorCategory.SECURITY_VULNERABILITY,
            )
        ],  # type: ignore[arg-type]
        warnings=["coverage below threshold"],  # type: ignore[arg-type]
    )

    assert report.stage is Stage.PRE_PUSH
    assert report.state is StageState.FAILED
    assert report.failed_validators == ("security",)
    payload = report.to_dict()
    assert payload["durationMs"] == 12.346
    assert payload["failureReport"][0]["category"] == "SECURITY_VULNERABILITY"
    assert payload["warnings"] == ["coverage below threshold"]
    assert "recovery" not in payload
