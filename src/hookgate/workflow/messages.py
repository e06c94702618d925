"""
hookgate — commit message validation

File: src/hookgate/workflow/messages.py
Last updated: 2026-10-19

Purpose
- Validate commit subjects against the BMAD pattern ``[PERSONA] [STEP-ID] Description``
  with conventional commits ``type(scope): description`` as the fallback format.

Functional requirements
- BMAD is tried first; conventional commits only when enabled.
- Persona, step identifier and description rules yield errors or warnings exactly
  as documented on each helper.
- ``error_text`` renders the block shown to the committer on rejection.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Final

from hookgate.constants import STEP_ID_PREFIXES, STEP_NUMBER_MAX, VALID_PERSONAS
from hookgate.workflow.personas import STEP_ID_RE

BMAD_RE: Final[re.Pattern[str]] = re.compile(r"^\[([A-Z_]+)\] \[([A-Z]+-\d+)\] (.+)$")
CONVENTIONAL_TYPES: Final[tuple[str, ...]] = (
    "feat",
    "fix",
    "docs",
    "style",
    "refactor",
    "perf",
    "test",
    "build",
    "ci",
    "chore",
    "revert",
)
CONVENTIONAL_RE: Final[re.Pattern[str]] = re.compile(
    rf"^({'|'.join(CONVENTIONAL_TYPES)})(\([\w-]+\))?: (.+)"
)
VAGUE_PHRASES: Final[tuple[str, ...]] = ("fix", "update", "change", "modify", "improve")

BMAD_FORMAT: Final[str] = "bmad"
CONVENTIONAL_FORMAT: Final[str] = "conventional"


@dataclass(frozen=True, slots=True)
class ParsedMessage:
    format: str
    description: str
    full_message: str
    persona: str | None = None
    step_id: str | None = None
    type: str | None = None
    scope: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "format": self.format,
            "description": self.description,
            "fullMessage": self.full_message,
        }
        if self.format == BMAD_FORMAT:
            payload["persona"] = self.persona
            payload["stepId"] = self.step_id
        else:
            payload["type"] = self.type
            payload["scope"] = self.scope
        return payload


@dataclass(frozen=True, slots=True)
class MessageValidation:
    valid: bool
    format: str | None = None
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    parsed: ParsedMessage | None = None

    @property
    def is_bmad(self) -> bool:
        return self.valid and self.format == BMAD_FORMAT

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "format": self.format,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "parsed": self.parsed.to_dict() if self.parsed else None,
        }


@dataclass(slots=True)
class _Findings:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def commit_subject(message: str) -> str:
    """First non-comment, non-blank line of a commit message file."""

    for line in message.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            return stripped
    return ""


class MessageValidator:
    """Validates commit subjects; one instance per configuration."""

    def __init__(
        self,
        *,
        allow_bmad: bool = True,
        allow_conventional: bool = True,
        require_uppercase_persona: bool = True,
    ) -> None:
        self.allow_bmad = allow_bmad
        self.allow_conventional = allow_conventional
        self.require_uppercase_persona = require_uppercase_persona

    def validate(self, message: str | None) -> MessageValidation:
        if message is None or not isinstance(message, str):
            return MessageValidation(
                valid=False, errors=("Commit message is required and must be a string",)
            )
        subject = commit_subject(message)
        if not subject:
            return MessageValidation(valid=False, errors=("Commit message cannot be empty",))
        if not self.allow_bmad and not self.allow_conventional:
            return MessageValidation(
                valid=True, warnings=("Commit message format validation is disabled",)
            )

        errors: list[str] = []
        if self.allow_bmad:
            bmad = self._validate_bmad(subject)
            if bmad.valid:
                return bmad
            errors.extend(bmad.errors)

        if self.allow_conventional:
            conventional = self._validate_conventional(subject)
            if conventional.valid:
                warnings = conventional.warnings
                if self.allow_bmad:
                    warnings = ("Using conventional commits format as fallback", *warnings)
                return MessageValidation(
                    valid=True,
                    format=CONVENTIONAL_FORMAT,
                    warnings=warnings,
                    parsed=conventional.parsed,
                )
            prefix = "Conventional format: " if self.allow_bmad else ""
            errors.extend(f"{prefix}{error}" for error in conventional.errors)

        return MessageValidation(valid=False, errors=tuple(errors))

    def is_valid(self, message: str | None) -> bool:
        return self.validate(message).valid

    def error_text(self, result: MessageValidation) -> str | None:
        """Human-readable rejection block, or ``None`` for a valid message."""

        if result.valid:
            return None
        lines = ["COMMIT MESSAGE VALIDATION FAILED", ""]
        if result.errors:
            lines.append("ERRORS:")
            lines.extend(f"  {index}. {error}" for index, error in enumerate(result.errors, 1))
            lines.append("")
        lines.append("REQUIRED FORMATS:")
        lines.append("")
        number = 1
        if self.allow_bmad:
            lines.extend(
                [
                    f"{number}. BMAD Pattern (Preferred):",
                    "   [PERSONA] [STEP-ID] Description",
                    "",
                    "   Examples:",
                    "   - [DEVELOPER] [STEP-001] Implement user authentication",
                    "   - [ARCHITECT] [ARCH-042] Design database schema",
                    "   - [QA] [TEST-123] Add integration tests for API",
                    "",
                ]
            )
            number += 1
        if self.allow_conventional:
            lines.extend(
                [
                    f"{number}. Conventional Commits (Fallback):",
                    "   type(scope): description",
                    "",
                    "   Examples:",
                    "   - feat(auth): add user login functionality",
                    "   - fix(api): resolve validation error handling",
                    "   - docs(readme): update installation instructions",
                    "",
                ]
            )
        if self.allow_bmad:
            lines.extend(
                [
                    "BMAD PATTERN RULES:",
                    f"  - PERSONA: Must be uppercase ({', '.join(VALID_PERSONAS)})",
                    "  - STEP-ID: Format like STEP-001, ARCH-042, TEST-123, etc.",
                    "  - Description: Must be meaningful and descriptive",
                ]
            )
        return "\n".join(lines) + "\n"

    @staticmethod
    def summary(result: MessageValidation) -> str:
        if not result.valid:
            return f"Invalid format ({len(result.errors)} errors)"
        label = {BMAD_FORMAT: "BMAD", CONVENTIONAL_FORMAT: "Conventional Commits"}.get(
            result.format or "", "unchecked"
        )
        suffix = f" ({len(result.warnings)} warnings)" if result.warnings else ""
        return f"Valid {label} format{suffix}"

    def _validate_bmad(self, subject: str) -> MessageValidation:
        match = BMAD_RE.match(subject)
        if match is None:
            return MessageValidation(
                valid=False,
                errors=("Message does not match BMAD pattern: [PERSONA] [STEP-ID] Description",),
            )
        persona, step_id, description = match.groups()
        findings = _Findings()
        self._check_persona(persona, findings)
        _check_step_id(step_id, findings)
        _check_description(description, findings)
        if findings.errors:
            return MessageValidation(
                valid=False, errors=tuple(findings.errors), warnings=tuple(findings.warnings)
            )
        return MessageValidation(
            valid=True,
            format=BMAD_FORMAT,
            warnings=tuple(findings.warnings),
            parsed=ParsedMessage(
                format=BMAD_FORMAT,
                description=description,
                full_message=subject,
                persona=persona,
                step_id=step_id,
            ),
        )

    def _validate_conventional(self, subject: str) -> MessageValidation:
        match = CONVENTIONAL_RE.match(subject)
        if match is None:
            return MessageValidation(
                valid=False,
                errors=(
                    "Message does not match conventional commits pattern: "
                    "type(scope): description",
                ),
            )
        type_, scope_group, description = match.groups()
        description = description.strip()
        if not description:
            return MessageValidation(
                valid=False, errors=("Description is required in conventional commits",)
            )
        warnings: tuple[str, ...] = ()
        if len(description) < 3:
            warnings = ("Description is very short - consider adding more detail",)
        return MessageValidation(
            valid=True,
            format=CONVENTIONAL_FORMAT,
            warnings=warnings,
            parsed=ParsedMessage(
                format=CONVENTIONAL_FORMAT,
                description=description,
                full_message=subject,
                type=type_,
                scope=scope_group[1:-1] if scope_group else None,
            ),
        )

    def _check_persona(self, persona: str, findings: _Findings) -> None:
        if not persona:
            findings.errors.append("Persona is required")
            return
        if self.require_uppercase_persona and persona != persona.upper():
            findings.errors.append("Persona must be uppercase")
        if persona.upper() not in VALID_PERSONAS:
            findings.warnings.append(
                f"Persona '{persona}' is not a standard BMAD persona. "
                f"Valid personas: {', '.join(VALID_PERSONAS)}"
            )


def _check_step_id(step_id: str, findings: _Findings) -> None:
    match = STEP_ID_RE.match(step_id)
    if match is None:
        findings.errors.append(
            "Step ID must follow format: PREFIX-NUMBER (e.g., STEP-001, ARCH-042)"
        )
        return
    prefix, digits = match.groups()
    if prefix not in STEP_ID_PREFIXES:
        findings.warnings.append(
            f"Step ID prefix '{prefix}' is not standard. "
            f"Common prefixes: {', '.join(STEP_ID_PREFIXES)}"
        )
    number = int(digits)
    if number < 1:
        findings.errors.append("Step ID number must be greater than 0")
    elif number > STEP_NUMBER_MAX:
        findings.warnings.append("Step ID number is very large - consider using smaller numbers")
    if len(digits) < 3 and number < 100:
        findings.warnings.append("Consider padding step ID numbers to 3 digits (e.g., STEP-001)")


def _check_description(description: str, findings: _Findings) -> None:
    text = description.strip()
    if not text:
        findings.errors.append("Description is required")
        return
    if len(text) < 5:
        findings.warnings.append("Description is very short - consider adding more detail")
    if len(text) > 100:
        findings.warnings.append(
            "Description is very long - consider shortening for better readability"
        )
    lowered = text.lower()
    for phrase in VAGUE_PHRASES:
        if (lowered == phrase or lowered.startswith(f"{phrase} ")) and len(text) < 20:
            findings.warnings.append(
                f'Description "{phrase}" is too generic - be more specific about what was '
                f"{phrase}ed"
            )
    if text[0] != text[0].upper():
        findings.warnings.append("Description should start with a capital letter")
    if text.endswith("."):
        findings.warnings.append("Commit descriptions typically do not end with a period")


__all__ = [
    "BMAD_FORMAT",
    "BMAD_RE",
    "CONVENTIONAL_FORMAT",
    "CONVENTIONAL_RE",
    "CONVENTIONAL_TYPES",
    "MessageValidation",
    "MessageValidator",
    "ParsedMessage",
    "commit_subject",
]
