"""
hookgate — bypass policy and audit ledger

File: src/hookgate/policy/bypass.py
Last updated: 2026-10-19

Purpose
- Decide which override methods a classified failure admits, recognize operator
  override requests, and record every approved override in an append-only ledger.

Functional requirements
- Non-blocking failures never offer a bypass.
- Blocking failures that are not bypassable never offer one, whatever the method.
- Trigger recognition is a single ordered table; adding a trigger means adding a row.
- Every approved override appends exactly one JSON line; existing lines are never
  rewritten or removed.

Non-functional requirements
- A missing ledger reads as an empty trail.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog

from hookgate.domain import (
    BypassMethod,
    BypassOptions,
    BypassRecord,
    ErrorClassification,
    Severity,
    Stage,
    format_timestamp,
    utc_now,
)
from hookgate.utils.fs import append_line

DEVELOPMENT_MODE: Final[str] = "development-mode"
EMERGENCY_OVERRIDE: Final[str] = "emergency-override"
SKIP_HOOK: Final[str] = "skip-hook"

BYPASS_METHODS: Final[tuple[BypassMethod, ...]] = (
    BypassMethod(
        name=DEVELOPMENT_MODE,
        command="BMAD_DEV_MODE=true git commit ...",
        description="Bypass validation in development mode",
    ),
    BypassMethod(
        name=EMERGENCY_OVERRIDE,
        command="BMAD_EMERGENCY_BYPASS=true git commit ...",
        description="Emergency bypass with mandatory follow-up",
        requires_followup=True,
    ),
    BypassMethod(
        name=SKIP_HOOK,
        command="git commit --no-verify ...",
        description="Skip all hooks (use with extreme caution)",
        warning="This bypasses all validation - use only in emergencies",
    ),
)

NON_BLOCKING_REASON: Final[str] = "Non-blocking errors do not require bypass"
CRITICAL_REASON: Final[str] = "Critical blocking errors cannot be bypassed"

_DEV_PREFIXES: Final[tuple[str, ...]] = ("WIP:", "TEMP:", "DEV:")
_DEV_KEYWORDS: Final[tuple[str, ...]] = ("emergency", "hotfix")


@dataclass(frozen=True, slots=True)
class TriggerContext:
    text: str
    development_mode: bool
    environ: Mapping[str, str]


@dataclass(frozen=True, slots=True)
class BypassTrigger:
    """One row of the trigger table: a predicate and the method it requests."""

    name: str
    method: str
    reason: str
    predicate: Callable[[TriggerContext], bool]


def _env_flag(name: str) -> Callable[[TriggerContext], bool]:
    return lambda ctx: ctx.environ.get(name, "").strip().lower() == "true"


BYPASS_TRIGGERS: Final[tuple[BypassTrigger, ...]] = (
    BypassTrigger(
        name="dev-prefix",
        method=DEVELOPMENT_MODE,
        reason="Development mode bypass with WIP/TEMP/DEV prefix",
        predicate=lambda ctx: ctx.development_mode and ctx.text.startswith(_DEV_PREFIXES),
    ),
    BypassTrigger(
        name="dev-keyword",
        method=DEVELOPMENT_MODE,
        reason="Emergency/hotfix bypass in development mode",
        predicate=lambda ctx: ctx.development_mode
        and any(keyword in ctx.text.lower() for keyword in _DEV_KEYWORDS),
    ),
    BypassTrigger(
        name="env-commit-msg",
        method=EMERGENCY_OVERRIDE,
        reason="Environment variable bypass (BMAD_BYPASS_COMMIT_MSG=true)",
        predicate=_env_flag("BMAD_BYPASS_COMMIT_MSG"),
    ),
    BypassTrigger(
        name="env-emergency",
        method=EMERGENCY_OVERRIDE,
        reason="Environment variable bypass (BMAD_EMERGENCY_BYPASS=true)",
        predicate=_env_flag("BMAD_EMERGENCY_BYPASS"),
    ),
)


def development_mode_enabled(
    config: Mapping[str, Any], environ: Mapping[str, str] | None = None
) -> bool:
    """Config ``gatekeeper.developmentMode`` or ``BMAD_DEV_MODE=true``."""

    env = os.environ if environ is None else environ
    gatekeeper = config.get("gatekeeper", {})
    if bool(gatekeeper.get("developmentMode", False)):
        return True
    return env.get("BMAD_DEV_MODE", "").strip().lower() == "true"


def match_bypass_trigger(
    text: str,
    *,
    development_mode: bool,
    environ: Mapping[str, str] | None = None,
) -> BypassTrigger | None:
    context = TriggerContext(
        text=text or "",
        development_mode=development_mode,
        environ=os.environ if environ is None else environ,
    )
    for trigger in BYPASS_TRIGGERS:
        if trigger.predicate(context):
            return trigger
    return None


def is_bypass_trigger(
    text: str,
    *,
    development_mode: bool,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """Return the bypass method requested by ``text``/environment, or ``None``."""

    trigger = match_bypass_trigger(text, development_mode=development_mode, environ=environ)
    return trigger.method if trigger is not None else None


def get_bypass_options(classification: ErrorClassification) -> BypassOptions:
    if classification.severity is Severity.NON_BLOCKING:
        return BypassOptions(available=False, reason=NON_BLOCKING_REASON)
    if classification.severity is Severity.BLOCKING and not classification.bypassable:
        return BypassOptions(available=False, reason=CRITICAL_REASON)
    return BypassOptions(available=True, methods=BYPASS_METHODS)


@dataclass(frozen=True, slots=True)
class BypassDecision:
    approved: bool
    method: str
    reason: str | None = None


def evaluate_bypass(classification: ErrorClassification, method: str) -> BypassDecision:
    """Approve ``method`` only when it is offered for ``classification``."""

    options = get_bypass_options(classification)
    if not options.available:
        return BypassDecision(approved=False, method=method, reason=options.reason)
    if method not in options.method_names:
        return BypassDecision(
            approved=False, method=method, reason=f"Unknown bypass method: {method}"
        )
    return BypassDecision(approved=True, method=method)


class AuditLedger:
    """Append-only JSON-lines log of approved bypasses."""

    def __init__(
        self,
        path: Path | str,
        *,
        environ: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        self.path = Path(path)
        self._environ = os.environ if environ is None else environ
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def record_bypass(
        self,
        stage: Stage | str,
        classification: ErrorClassification,
        method: str,
        reason: str,
    ) -> BypassRecord:
        record = BypassRecord(
            timestamp=format_timestamp(utc_now()),
            stage=Stage(stage).value,
            error_category=classification.category.value,
            error_severity=classification.severity.value,
            bypass_method=method,
            reason=reason,
            actor=self._environ.get("USER") or "unknown",
        )
        append_line(self.path, json.dumps(record.to_dict(), sort_keys=True))
        self._logger.warning(
            "bypass_recorded",
            stage=record.stage,
            error_category=record.error_category,
            bypass_method=method,
            actor=record.actor,
        )
        return record

    def read_trail(self) -> list[BypassRecord]:
        """Replay the ledger in write order; malformed lines are skipped and logged."""

        if not self.path.exists():
            return []
        records: list[BypassRecord] = []
        with self.path.open("r", encoding="utf-8") as handle:
            for line_no, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    payload = json.loads(line)
                    if not isinstance(payload, dict):
                        raise ValueError("audit entry must be an object")
                    records.append(BypassRecord.from_dict(payload))
                except ValueError as exc:
                    self._logger.warning(
                        "audit_entry_unreadable",
                        path=str(self.path),
                        line_no=line_no,
                        error=str(exc),
                    )
        return records


__all__ = [
    "BYPASS_METHODS",
    "BYPASS_TRIGGERS",
    "CRITICAL_REASON",
    "DEVELOPMENT_MODE",
    "EMERGENCY_OVERRIDE",
    "NON_BLOCKING_REASON",
    "SKIP_HOOK",
    "AuditLedger",
    "BypassDecision",
    "BypassTrigger",
    "TriggerContext",
    "development_mode_enabled",
    "evaluate_bypass",
    "get_bypass_options",
    "is_bypass_trigger",
    "match_bypass_trigger",
]
