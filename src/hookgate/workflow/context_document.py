"""
hookgate — active context document

File: src/hookgate/workflow/context_document.py
Last updated: 2026-10-19

Purpose
- Model, render and parse the shared "current work" document (``activeContext.md``)
  and store it behind a narrow ``read()`` / ``atomic_write()`` interface.

Functional requirements
- ``render`` and ``parse`` agree on the section layout: header with the last-update
  timestamp, ``Current Work``, ``Recent Changes`` and ``Context History``.
- History is bounded by the caller; the newest entry is listed first.
- A missing document reads as ``None``; writes replace the file in one step and
  return the SHA-256 of the written text.

Non-functional requirements
- Advisory locking across hook processes is left to the caller; the store only
  guarantees readers never observe a partial write.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Final

from hookgate.utils.fs import atomic_write
from hookgate.utils.hashing import sha256_text

DOCUMENT_TITLE: Final[str] = "# Active Context - BMAD Workflow"
UNKNOWN_PERSONA: Final[str] = "Unknown"
NO_STEP: Final[str] = "N/A"

_HISTORY_RE = re.compile(r"## Context History\s*\n\n([\s\S]*?)(?=\n##|$)")
_LAST_UPDATED_RE = re.compile(r"\*\*Last Updated:\*\*\s*(\S+)")
_FIELD_RE_TEMPLATE = r"\*\*{label}:\*\*[ \t]*(.*)"
_MODIFIED_FILES_RE = re.compile(r"\*\*Modified Files:\*\*\n((?:- .*\n?)+)")
_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_DESCRIPTIVE_WORDS: Final[tuple[str, ...]] = ("current", "working", "implementing")
MIN_MEANINGFUL_LENGTH: Final[int] = 50


class ContextDocumentError(ValueError):
    """Raised when the context document cannot be read or written."""


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    timestamp: str
    summary: str

    def render(self) -> str:
        return f"- {self.timestamp}: {self.summary}"

    @classmethod
    def parse(cls, line: str) -> HistoryEntry | None:
        """Parse ``- <timestamp>: <summary>``; other lines yield ``None``."""
        text = line.strip()
        if not text.startswith("- ") or ":" not in text:
            return None
        body = text[2:]
        timestamp, separator, summary = body.partition(": ")
        if not separator:
            return cls(timestamp=body, summary="")
        return cls(timestamp=timestamp, summary=summary)


@dataclass(frozen=True, slots=True)
class ContextDocument:
    last_updated: str
    persona: str | None = None
    step_id: str | None = None
    workflow_phase: str = "unknown"
    summary: str = ""
    changed_files: tuple[str, ...] = ()
    latest_commit: str | None = None
    commit_hash: str | None = None
    history: tuple[HistoryEntry, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "changed_files", tuple(self.changed_files))
        object.__setattr__(self, "history", tuple(self.history))

    def render(self) -> str:
        parts = [f"{DOCUMENT_TITLE}\n\n**Last Updated:** {self.last_updated}\n\n"]

        parts.append("## Current Work\n\n")
        parts.append(f"**Persona:** {self.persona or UNKNOWN_PERSONA}\n")
        parts.append(f"**Step ID:** {self.step_id or NO_STEP}\n")
        parts.append(f"**Workflow Phase:** {self.workflow_phase}\n")
        parts.append(f"**Summary:** {self.summary}\n\n")

        parts.append("## Recent Changes\n\n")
        if self.changed_files:
            parts.append("**Modified Files:**\n")
            parts.extend(f"- {path}\n" for path in self.changed_files)
            parts.append("\n")
        if self.latest_commit:
            parts.append(f"**Latest Commit:** {self.latest_commit}\n")
            if self.commit_hash:
                parts.append(f"**Commit Hash:** {self.commit_hash}\n")
            parts.append("\n")

        parts.append("## Context History\n\n")
        if self.history:
            parts.extend(f"{entry.render()}\n" for entry in self.history)
            parts.append("\n")
        return "".join(parts)

    @classmethod
    def parse(cls, text: str) -> ContextDocument:
        """
        Parse a rendered document.

        Hand-edited documents are accepted: absent fields fall back to defaults and
        the placeholder values ``Unknown`` and ``N/A`` read as ``None``.
        """

        last_updated = _LAST_UPDATED_RE.search(text)
        persona = _field(text, "Persona")
        step_id = _field(text, "Step ID")
        files_match = _MODIFIED_FILES_RE.search(text)
        changed_files: tuple[str, ...] = ()
        if files_match:
            changed_files = tuple(
                line[2:].strip()
                for line in files_match.group(1).splitlines()
                if line.startswith("- ")
            )
        return cls(
            last_updated=last_updated.group(1) if last_updated else "",
            persona=None if persona in (None, UNKNOWN_PERSONA) else persona,
            step_id=None if step_id in (None, NO_STEP) else step_id,
            workflow_phase=_field(text, "Workflow Phase") or "unknown",
            summary=_field(text, "Summary") or "",
            changed_files=changed_files,
            latest_commit=_field(text, "Latest Commit"),
            commit_hash=_field(text, "Commit Hash"),
            history=extract_history(text),
        )

    def with_entry(
        self, entry: HistoryEntry, previous: Sequence[HistoryEntry], limit: int
    ) -> ContextDocument:
        """Copy with ``entry`` first and at most ``limit - 1`` of ``previous`` after it."""
        kept = tuple(previous[: max(0, limit - 1)])
        return replace(self, history=(entry, *kept))

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastUpdated": self.last_updated,
            "persona": self.persona,
            "stepId": self.step_id,
            "workflowPhase": self.workflow_phase,
            "summary": self.summary,
            "changedFiles": list(self.changed_files),
            "latestCommit": self.latest_commit,
            "commitHash": self.commit_hash,
            "history": [entry.render()[2:] for entry in self.history],
        }


def extract_history(text: str | None) -> tuple[HistoryEntry, ...]:
    if not text:
        return ()
    match = _HISTORY_RE.search(text)
    if match is None:
        return ()
    entries = (HistoryEntry.parse(line) for line in match.group(1).split("\n"))
    return tuple(entry for entry in entries if entry is not None)


def has_meaningful_content(text: str) -> bool:
    """A staged context document should carry a date or describe the current work."""
    if len(text) < MIN_MEANINGFUL_LENGTH:
        return False
    lowered = text.lower()
    return bool(_DATE_RE.search(text)) or any(word in lowered for word in _DESCRIPTIVE_WORDS)


class ContextStore:
    """File-backed store for the context document."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read_text(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise ContextDocumentError(f"cannot read {self.path}: {exc}") from exc

    def read(self) -> ContextDocument | None:
        text = self.read_text()
        return None if text is None else ContextDocument.parse(text)

    def atomic_write(self, document: ContextDocument | str) -> str:
        text = document if isinstance(document, str) else document.render()
        try:
            atomic_write(self.path, text, create_parents=True)
        except OSError as exc:
            raise ContextDocumentError(f"cannot write {self.path}: {exc}") from exc
        return sha256_text(text)


def _field(text: str, label: str) -> str | None:
    match = re.search(_FIELD_RE_TEMPLATE.format(label=re.escape(label)), text)
    if match is None:
        return None
    value = match.group(1).strip()
    return value or None


__all__ = [
    "DOCUMENT_TITLE",
    "ContextDocument",
    "ContextDocumentError",
    "ContextStore",
    "HistoryEntry",
    "extract_history",
    "has_meaningful_content",
]
