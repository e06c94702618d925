"""
hookgate — persona transition graph and step identifiers

File: src/hookgate/workflow/personas.py
Last updated: 2026-10-19

Purpose
- Static persona graph, transition checks, step-identifier rules and the helpers that
  pull persona, step and workflow phase out of commit messages and documents.

Functional requirements
- The identity transition is always valid.
- A transition outside the graph is valid but carries a warning; it never blocks.
- Step identifiers are ``PREFIX-NUMBER`` with ``0 < NUMBER <= 9999``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from hookgate.constants import STEP_NUMBER_MAX, VALID_PERSONAS

TRANSITIONS: Final[Mapping[str, frozenset[str]]] = {
    "PM": frozenset({"ARCHITECT", "DEVELOPER", "QA"}),
    "ARCHITECT": frozenset({"DEVELOPER", "PM", "SECURITY"}),
    "DEVELOPER": frozenset({"QA", "ARCHITECT", "DEVOPS"}),
    "QA": frozenset({"DEVELOPER", "DEVOPS", "RELEASE"}),
    "DEVOPS": frozenset({"DEVELOPER", "QA", "SECURITY", "RELEASE"}),
    "SECURITY": frozenset({"DEVELOPER", "ARCHITECT", "DEVOPS"}),
    "RELEASE": frozenset({"PM", "QA", "DEVOPS"}),
    "RECOVERY": frozenset({"DEVELOPER", "ARCHITECT", "DEVOPS"}),
    "ORCHESTRATOR": frozenset(
        {"PM", "ARCHITECT", "DEVELOPER", "QA", "DEVOPS", "SECURITY", "RELEASE"}
    ),
}

PERSONA_PHASES: Final[Mapping[str, str]] = {
    "PM": "planning",
    "ARCHITECT": "design",
    "DEVELOPER": "implementation",
    "QA": "testing",
    "DEVOPS": "deployment",
    "SECURITY": "security-review",
    "RELEASE": "release",
    "RECOVERY": "maintenance",
    "ORCHESTRATOR": "coordination",
}

# Checked in order against the message before falling back to the persona.
MESSAGE_PHASES: Final[tuple[tuple[re.Pattern[str], str], ...]] = tuple(
    (re.compile(pattern, re.IGNORECASE), phase)
    for pattern, phase in (
        (r"planning|requirements|analysis", "planning"),
        (r"design|architecture|modeling", "design"),
        (r"implementation|coding|development", "implementation"),
        (r"testing|qa|validation", "testing"),
        (r"deployment|release|production", "deployment"),
        (r"security|audit|vulnerability", "security-review"),
        (r"maintenance|support|monitoring", "maintenance"),
    )
)

UNKNOWN_PHASE: Final[str] = "unknown"

STEP_ID_RE: Final[re.Pattern[str]] = re.compile(r"^([A-Z]+)-(\d+)$")
_MESSAGE_PERSONA_RE = re.compile(r"^\[([A-Z_]+)\]")
_MESSAGE_STEP_RE = re.compile(r"\[([A-Z]+-\d+)\]")
_DOCUMENT_PERSONA_RE = re.compile(r"\*\*Persona(?::\*\*|\*\*:)\s*([A-Z_]+)")
_LABELLED_PERSONA_RE = re.compile(r"(?:persona|role|acting as):\s*([A-Za-z_]+)", re.IGNORECASE)
_BRACKETED_PERSONA_RE = re.compile(r"\[([A-Z_]+)\]")


@dataclass(frozen=True, slots=True)
class TransitionCheck:
    valid: bool
    from_persona: str | None
    to_persona: str
    warning: str | None = None

    @property
    def standard(self) -> bool:
        return self.warning is None

    def to_dict(self) -> dict[str, object]:
        return {
            "valid": self.valid,
            "from": self.from_persona,
            "to": self.to_persona,
            "warning": self.warning,
        }


def is_valid_persona(persona: str | None) -> bool:
    return bool(persona) and str(persona).upper() in VALID_PERSONAS


def is_standard_transition(from_persona: str, to_persona: str) -> bool:
    if from_persona == to_persona:
        return True
    return to_persona in TRANSITIONS.get(from_persona, frozenset())


def validate_transition(from_persona: str | None, to_persona: str) -> TransitionCheck:
    """Check ``from_persona -> to_persona``; unknown edges warn instead of failing."""

    if not from_persona or is_standard_transition(from_persona, to_persona):
        return TransitionCheck(valid=True, from_persona=from_persona, to_persona=to_persona)
    return TransitionCheck(
        valid=True,
        from_persona=from_persona,
        to_persona=to_persona,
        warning=(
            f"Persona transition from {from_persona} to {to_persona} "
            "is not standard in BMAD workflow"
        ),
    )


def parse_step_id(step_id: str | None) -> tuple[str, int] | None:
    if not step_id:
        return None
    match = STEP_ID_RE.match(step_id.strip())
    if match is None:
        return None
    return match.group(1), int(match.group(2))


def validate_step_progression(history: str | None, step_id: str | None) -> bool:
    """
    Validate ``step_id`` against the workflow history.

    The identifier must be ``PREFIX-NUMBER`` with the number in ``(0, 9999]``. An empty
    history does not waive the check.
    """

    del history  # range rules do not depend on earlier steps
    parsed = parse_step_id(step_id)
    if parsed is None:
        return False
    _, number = parsed
    return 0 < number <= STEP_NUMBER_MAX


def step_ids_in(text: str | None) -> tuple[str, ...]:
    """Bracketed step identifiers in ``text``, in document order."""
    if not text:
        return ()
    return tuple(_MESSAGE_STEP_RE.findall(text))


def step_regression_warning(history: str | None, step_id: str | None) -> str | None:
    """Warn when ``step_id`` is numbered below the latest same-prefix step in ``history``."""

    parsed = parse_step_id(step_id)
    if parsed is None:
        return None
    prefix, number = parsed
    for previous in step_ids_in(history):
        earlier = parse_step_id(previous)
        if earlier is None or earlier[0] != prefix:
            continue
        if earlier[1] > number:
            return f"Step {step_id} follows {previous} - step numbers usually increase"
        return None
    return None


def extract_persona_from_message(message: str | None) -> str | None:
    if not message:
        return None
    match = _MESSAGE_PERSONA_RE.match(message.strip())
    return match.group(1) if match else None


def extract_step_id_from_message(message: str | None) -> str | None:
    if not message:
        return None
    match = _MESSAGE_STEP_RE.search(message.strip())
    return match.group(1) if match else None


def extract_persona_from_document(text: str | None) -> str | None:
    """Current persona recorded in a context or handover document."""

    if not text:
        return None
    for pattern in (_DOCUMENT_PERSONA_RE, _LABELLED_PERSONA_RE, _BRACKETED_PERSONA_RE):
        match = pattern.search(text)
        if match:
            return match.group(1).upper()
    return None


def workflow_phase(message: str | None, persona: str | None = None) -> str:
    text = message or ""
    for pattern, phase in MESSAGE_PHASES:
        if pattern.search(text):
            return phase
    resolved = persona or extract_persona_from_message(text)
    return PERSONA_PHASES.get(resolved or "", UNKNOWN_PHASE)


__all__ = [
    "MESSAGE_PHASES",
    "PERSONA_PHASES",
    "STEP_ID_RE",
    "TRANSITIONS",
    "UNKNOWN_PHASE",
    "TransitionCheck",
    "extract_persona_from_document",
    "extract_persona_from_message",
    "extract_step_id_from_message",
    "is_standard_transition",
    "is_valid_persona",
    "parse_step_id",
    "step_ids_in",
    "step_regression_warning",
    "validate_step_progression",
    "validate_transition",
    "workflow_phase",
]
