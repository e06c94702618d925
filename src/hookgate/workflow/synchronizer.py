"""
hookgate — context synchronizer

File: src/hookgate/workflow/synchronizer.py
Last updated: 2026-10-19

Purpose
- Keep the active context document in step with commits and persona changes, and
  report how consistent it is with recent history and the BMAD handover file.

Functional requirements
- ``update_active_context`` regenerates the current-work and recent-changes sections
  and prepends a history entry, keeping at most ``max_history`` entries.
- ``sync_context`` validates the persona and its transition from the persona
  recorded in the document, rewrites the document and compares the handover file.
  Persona transitions outside the graph only warn.
- ``validate_consistency`` runs the persona, workflow phase, handover and git-state
  checks and derives recommendations; it never raises.

Non-functional requirements
- All writes go through ``ContextStore.atomic_write``.
- Clock and git client are injectable for tests.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path, PurePosixPath
from typing import Any, Final

import structlog

from hookgate.adapters.git import GitClient
from hookgate.adapters.process import CommandError
from hookgate.constants import HANDOVER_PATH
from hookgate.domain import SyncResult, ValidationResult, format_timestamp, utc_now
from hookgate.workflow.context_document import (
    ContextDocument,
    ContextDocumentError,
    ContextStore,
    HistoryEntry,
    extract_history,
)
from hookgate.workflow.messages import BMAD_RE
from hookgate.workflow.personas import (
    PERSONA_PHASES,
    TRANSITIONS,
    UNKNOWN_PHASE,
    extract_persona_from_document,
    extract_persona_from_message,
    extract_step_id_from_message,
    is_valid_persona,
    step_regression_warning,
    validate_step_progression,
    validate_transition,
    workflow_phase,
)

CODE_FILE_RE: Final[re.Pattern[str]] = re.compile(
    r"\.(js|ts|jsx|tsx|py|rb|go|rs|java|c|cpp|h|hpp)$"
)
FRESHNESS_WINDOW: Final[timedelta] = timedelta(hours=24)
RECENT_COMMIT_COUNT: Final[int] = 5
GIT_STATE_BASE: Final[str] = "HEAD~3"

_RECENT_PERSONA_RE = re.compile(r"\[([A-Z_]+)\]")
_WORKFLOW_PHASE_RE = re.compile(r"\*\*Workflow Phase:\*\*\s*([a-z-]+)")
_LAST_UPDATED_RE = re.compile(r"\*\*Last Updated:\*\*\s*(\d{4}-\d{2}-\d{2}T[\d:.-]+Z?)")

RECOMMENDATIONS: Final[Mapping[str, str]] = {
    "contextFileExists": (
        "Create activeContext.md to track current work and maintain BMAD workflow state"
    ),
    "personaConsistency": (
        "Update activeContext.md to reflect the current persona and ensure consistency "
        "with recent commits"
    ),
    "workflowConsistency": (
        "Align workflow phase in activeContext.md with the current persona and work "
        "being performed"
    ),
    "handoverConsistency": (
        "Synchronize BMAD handover state with activeContext.md to maintain consistency "
        "across components"
    ),
    "gitStateConsistency": (
        "Update activeContext.md to reflect recent changes and maintain currency with "
        "git state"
    ),
}
ALL_CONSISTENT_RECOMMENDATION: Final[str] = (
    "Context consistency is good - continue maintaining regular updates"
)


@dataclass(frozen=True, slots=True)
class CommitInfo:
    """What a context update is about; ``changed_files=None`` asks git."""

    message: str = ""
    hash: str | None = None
    persona: str | None = None
    step_id: str | None = None
    changed_files: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.changed_files is not None:
            object.__setattr__(self, "changed_files", tuple(self.changed_files))


@dataclass(frozen=True, slots=True)
class UpdateResult:
    success: bool
    context_existed: bool
    path: str
    write_hash: str | None = None
    document: ContextDocument | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "contextExists": self.context_existed,
            "contextPath": self.path,
        }
        if self.write_hash is not None:
            payload["writeHash"] = self.write_hash
        if self.document is not None:
            payload["update"] = self.document.to_dict()
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True, slots=True)
class ConsistencyCheck:
    consistent: bool
    reason: str
    data: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"consistent": self.consistent, "reason": self.reason, **dict(self.data)}


@dataclass(frozen=True, slots=True)
class ConsistencyReport:
    consistent: bool
    timestamp: str
    context_exists: bool
    checks: Mapping[str, ConsistencyCheck]
    recommendations: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "consistent": self.consistent,
            "timestamp": self.timestamp,
            "results": {
                "contextFileExists": self.context_exists,
                **{name: check.to_dict() for name, check in self.checks.items()},
            },
            "recommendations": list(self.recommendations),
        }


def commit_summary(
    persona: str | None, step_id: str | None, files: Sequence[str], message: str
) -> str:
    summary = f"{persona or 'Unknown'} persona"
    if step_id:
        summary += f" working on {step_id}"
    if files:
        summary += f" - modified {len(files)} file(s)"
        if len(files) <= 3:
            summary += f" ({', '.join(files)})"
    match = BMAD_RE.match(message.strip())
    if match:
        summary += f" - {match.group(3)}"
    return summary


class ContextSynchronizer:
    """Reads and rewrites the active context document on behalf of the hooks."""

    def __init__(
        self,
        repo_root: Path | str,
        *,
        git: GitClient | None = None,
        context_file: str = "activeContext.md",
        max_history: int = 10,
        handover_path: PurePosixPath | str = HANDOVER_PATH,
        store: ContextStore | None = None,
        clock: Callable[[], datetime] = utc_now,
        logger: Any | None = None,
    ) -> None:
        if max_history < 1:
            raise ValueError("max_history must be >= 1")
        self.repo_root = Path(repo_root)
        self.context_file = context_file
        self.max_history = max_history
        self.handover_path = self.repo_root / handover_path
        self._git = git
        self._store = store if store is not None else ContextStore(self.repo_root / context_file)
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def store(self) -> ContextStore:
        return self._store

    def update_active_context(self, commit_info: CommitInfo) -> UpdateResult:
        path = self._store.path.as_posix()
        timestamp = format_timestamp(self._clock())
        persona = commit_info.persona or extract_persona_from_message(commit_info.message)
        step_id = commit_info.step_id or extract_step_id_from_message(commit_info.message)
        files = (
            commit_info.changed_files
            if commit_info.changed_files is not None
            else self._changed_files()
        )
        summary = commit_summary(persona, step_id, files, commit_info.message)

        try:
            previous_text = self._store.read_text()
            document = ContextDocument(
                last_updated=timestamp,
                persona=persona,
                step_id=step_id,
                workflow_phase=workflow_phase(commit_info.message, persona),
                summary=summary,
                changed_files=files,
                latest_commit=commit_info.message or None,
                commit_hash=commit_info.hash,
            ).with_entry(
                HistoryEntry(timestamp=timestamp, summary=summary),
                extract_history(previous_text),
                self.max_history,
            )
            write_hash = self._store.atomic_write(document)
        except ContextDocumentError as exc:
            self._logger.error("context_update_failed", path=path, error=str(exc))
            return UpdateResult(
                success=False, context_existed=self._store.exists(), path=path, error=str(exc)
            )

        self._logger.info(
            "context_updated",
            path=path,
            commit=commit_info.hash or "staged",
            write_hash=write_hash[:8],
            history=len(document.history),
        )
        return UpdateResult(
            success=True,
            context_existed=previous_text is not None,
            path=path,
            write_hash=write_hash,
            document=document,
        )

    def register_commit(
        self, commit_hash: str | None, message: str, files: Sequence[str]
    ) -> UpdateResult | None:
        """Record a finished commit; ``None`` when it touched no source code."""

        if not any(CODE_FILE_RE.search(path) for path in files):
            return None
        return self.update_active_context(
            CommitInfo(message=message, hash=commit_hash, changed_files=tuple(files))
        )

    def sync_context(self, persona: str | None, step_id: str | None) -> SyncResult:
        persona_check = _persona_validation(persona)
        transition_check = self._transition_validation(persona)

        if persona_check["valid"]:
            update = self.update_active_context(
                CommitInfo(
                    message=f"[{persona}] [{step_id}] Context synchronization",
                    persona=persona,
                    step_id=step_id,
                )
            )
            context_sync: dict[str, Any] = {
                "success": update.success,
                "message": (
                    "Context synchronized with persona"
                    if update.success
                    else "Context sync failed"
                ),
            }
            if update.error is not None:
                context_sync["error"] = update.error
            if update.write_hash is not None:
                context_sync["writeHash"] = update.write_hash
        else:
            context_sync = {"success": False, "message": "Context sync failed"}

        results: dict[str, dict[str, Any]] = {
            "personaValidation": persona_check,
            "transitionValidation": transition_check,
            "contextSync": context_sync,
            "handoverSync": self._handover_sync(persona),
        }
        success = all(
            result.get("valid") is not False and result.get("success") is not False
            for result in results.values()
        )
        self._logger.info(
            "persona_state_synchronized", persona=persona, step_id=step_id, success=success
        )
        return SyncResult(
            success=success,
            persona=persona,
            step_id=step_id,
            timestamp=format_timestamp(self._clock()),
            results=results,
            message=(
                "Persona state synchronized successfully"
                if success
                else "Persona state synchronization completed with issues"
            ),
        )

    def validate_consistency(
        self, recent_log: str | Sequence[str] | None = None
    ) -> ConsistencyReport:
        try:
            content = self._store.read_text()
        except ContextDocumentError as exc:
            self._logger.warning("context_unreadable", error=str(exc))
            content = None
        if recent_log is None:
            recent_log = self._recent_log()
        log_text = recent_log if isinstance(recent_log, str) else "\n".join(recent_log)

        checks = {
            "personaConsistency": _persona_consistency(content, log_text),
            "workflowConsistency": _workflow_consistency(content),
            "handoverConsistency": self._handover_consistency(content),
            "gitStateConsistency": self._git_state_consistency(content),
        }
        context_exists = content is not None
        recommendations: list[str] = []
        if not context_exists:
            recommendations.append(RECOMMENDATIONS["contextFileExists"])
        recommendations.extend(
            RECOMMENDATIONS[name] for name, check in checks.items() if not check.consistent
        )
        if not recommendations:
            recommendations.append(ALL_CONSISTENT_RECOMMENDATION)

        consistent = context_exists and all(check.consistent for check in checks.values())
        self._logger.info("context_consistency_validated", consistent=consistent)
        return ConsistencyReport(
            consistent=consistent,
            timestamp=format_timestamp(self._clock()),
            context_exists=context_exists,
            checks=checks,
            recommendations=tuple(recommendations),
        )

    def check_commit_context(self, persona: str, step_id: str | None) -> ValidationResult:
        """Compare a BMAD commit's persona and step with the context document."""

        text = self._store.read_text()
        if text is None:
            return ValidationResult.warning(
                f"{self.context_file} not found - consider creating it for better traceability",
                contextExists=False,
                personaConsistent=False,
            )

        current = extract_persona_from_document(text)
        transition = validate_transition(current, persona)
        persona_consistent = transition.standard
        step_consistent = validate_step_progression(text, step_id)
        notes = [
            note
            for note in (transition.warning, step_regression_warning(text, step_id))
            if note
        ]
        data = {
            "contextExists": True,
            "personaConsistent": persona_consistent,
            "stepIdConsistent": step_consistent,
            "currentPersona": current,
            "commitPersona": persona,
            "stepId": step_id,
            "notes": notes,
        }
        if persona_consistent and step_consistent:
            return ValidationResult.passed("Context validation passed", **data)
        return ValidationResult.warning("Context may be inconsistent with commit message", **data)

    def _transition_validation(self, persona: str | None) -> dict[str, Any]:
        try:
            text = self._store.read_text()
        except ContextDocumentError as exc:
            return {
                "valid": False,
                "errors": [f"Transition validation failed: {exc}"],
                "warnings": [],
            }
        if text is None:
            return {
                "valid": True,
                "transition": None,
                "warnings": ["No previous context found - transition validation skipped"],
            }
        current = extract_persona_from_document(text)
        if current is None:
            return {
                "valid": True,
                "transition": None,
                "warnings": [
                    "No current persona found in context - transition validation skipped"
                ],
            }
        check = validate_transition(current, persona or "")
        return {
            "valid": check.valid,
            "transition": {"from": current, "to": persona},
            "warnings": [check.warning] if check.warning else [],
        }

    def _handover_sync(self, persona: str | None) -> dict[str, Any]:
        try:
            content = self.handover_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {
                "success": True,
                "handoverExists": False,
                "message": "No BMAD handover file found - sync skipped",
            }
        except (OSError, UnicodeDecodeError) as exc:
            return {"success": False, "handoverExists": False, "error": str(exc)}

        handover_persona = extract_persona_from_document(content)
        consistent = handover_persona is None or handover_persona == persona
        return {
            "success": True,
            "consistent": consistent,
            "handoverExists": True,
            "handoverPersona": handover_persona,
            "currentPersona": persona,
            "message": (
                "Handover state is consistent"
                if consistent
                else "Handover state may be inconsistent"
            ),
        }

    def _handover_consistency(self, content: str | None) -> ConsistencyCheck:
        try:
            handover = self.handover_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ConsistencyCheck(
                True, "No handover file to validate against", {"handoverExists": False}
            )
        except (OSError, UnicodeDecodeError) as exc:
            return ConsistencyCheck(
                False, "Handover consistency validation failed", {"error": str(exc)}
            )
        handover_persona = extract_persona_from_document(handover)
        context_persona = extract_persona_from_document(content)
        consistent = (
            handover_persona is None
            or context_persona is None
            or handover_persona == context_persona
        )
        return ConsistencyCheck(
            consistent,
            (
                "Handover and context personas are consistent"
                if consistent
                else "Handover and context persona mismatch"
            ),
            {
                "handoverExists": True,
                "handoverPersona": handover_persona,
                "contextPersona": context_persona,
            },
        )

    def _git_state_consistency(self, content: str | None) -> ConsistencyCheck:
        if content is None:
            return ConsistencyCheck(False, "No context content to validate")
        recent_files = self._recent_files()
        if not recent_files:
            return ConsistencyCheck(
                True, "No recent changes to validate against", {"recentFiles": []}
            )

        reflects_changes = any(
            path in content or PurePosixPath(path).name in content for path in recent_files
        )
        recent_timestamp = self._updated_recently(content)
        consistent = reflects_changes or recent_timestamp
        return ConsistencyCheck(
            consistent,
            (
                "Context is consistent with git state"
                if consistent
                else "Context may be outdated relative to git state"
            ),
            {
                "contextReflectsChanges": reflects_changes,
                "hasRecentTimestamp": recent_timestamp,
                "recentFiles": list(recent_files),
            },
        )

    def _updated_recently(self, content: str) -> bool:
        match = _LAST_UPDATED_RE.search(content)
        if match is None:
            return False
        raw = match.group(1)
        try:
            stamp = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return False
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=self._clock().tzinfo)
        return self._clock() - stamp < FRESHNESS_WINDOW

    def _changed_files(self) -> tuple[str, ...]:
        if self._git is None:
            return ()
        try:
            return self._git.changed_files()
        except CommandError as exc:
            self._logger.warning("changed_files_unavailable", error=str(exc))
            return ()

    def _recent_files(self) -> tuple[str, ...]:
        if self._git is None:
            return ()
        try:
            return self._git.changed_between(GIT_STATE_BASE)
        except CommandError as exc:
            self._logger.warning("recent_files_unavailable", error=str(exc))
            return ()

    def _recent_log(self) -> tuple[str, ...]:
        if self._git is None:
            return ()
        try:
            return self._git.recent_messages(RECENT_COMMIT_COUNT)
        except CommandError as exc:
            self._logger.warning("recent_log_unavailable", error=str(exc))
            return ()


def _persona_validation(persona: str | None) -> dict[str, Any]:
    if not persona:
        return {
            "valid": False,
            "persona": persona,
            "errors": ["Persona is required"],
            "warnings": [],
        }
    warnings: list[str] = []
    if not is_valid_persona(persona):
        warnings.append(f"Persona '{persona}' is not a standard BMAD persona")
    return {"valid": True, "persona": persona, "errors": [], "warnings": warnings}


def _persona_consistency(content: str | None, log_text: str) -> ConsistencyCheck:
    if content is None:
        return ConsistencyCheck(False, "No context content to validate")
    context_persona = extract_persona_from_document(content)
    commit_personas = _RECENT_PERSONA_RE.findall(log_text)
    if not commit_personas:
        return ConsistencyCheck(
            True, "No BMAD commits to validate against", {"contextPersona": context_persona}
        )
    recent = commit_personas[0]
    consistent = (
        context_persona is None
        or context_persona == recent
        or context_persona in TRANSITIONS.get(recent, frozenset())
    )
    return ConsistencyCheck(
        consistent,
        "Persona consistency validated" if consistent else "Persona inconsistency detected",
        {"contextPersona": context_persona, "recentPersona": recent},
    )


def _workflow_consistency(content: str | None) -> ConsistencyCheck:
    if content is None:
        return ConsistencyCheck(False, "No context content to validate")
    phase_match = _WORKFLOW_PHASE_RE.search(content)
    phase = phase_match.group(1) if phase_match else None
    persona = extract_persona_from_document(content)
    if phase is None or persona is None:
        return ConsistencyCheck(
            False,
            "Missing workflow phase or persona in context",
            {"contextPhase": phase, "contextPersona": persona},
        )
    expected = PERSONA_PHASES.get(persona, UNKNOWN_PHASE)
    consistent = phase in (expected, UNKNOWN_PHASE)
    return ConsistencyCheck(
        consistent,
        (
            "Workflow phase is consistent with persona"
            if consistent
            else "Workflow phase inconsistency detected"
        ),
        {"contextPhase": phase, "expectedPhase": expected, "contextPersona": persona},
    )


__all__ = [
    "ALL_CONSISTENT_RECOMMENDATION",
    "CODE_FILE_RE",
    "RECOMMENDATIONS",
    "CommitInfo",
    "ConsistencyCheck",
    "ConsistencyReport",
    "ContextSynchronizer",
    "UpdateResult",
    "commit_summary",
]
