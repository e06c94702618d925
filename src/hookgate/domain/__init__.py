"""
hookgate — domain package

File: src/hookgate/domain/__init__.py
Last updated: 2026-10-19

Purpose
- Value types shared across the gate: stages, validation results, classifications,
  bypass records and stage reports.

Functional requirements
- Domain objects are immutable and serialize to JSON-compatible mappings.

Non-functional requirements
- Domain layer stays free of IO side effects.
"""

from hookgate.domain.models import (
    BlockingType,
    BypassMethod,
    BypassOptions,
    BypassRecord,
    ErrorCategory,
    ErrorClassification,
    FailureEntry,
    RecoveryOutcome,
    Severity,
    Stage,
    StageReport,
    StageState,
    SyncResult,
    ValidationResult,
    ValidationStatus,
    format_timestamp,
    utc_now,
)

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
