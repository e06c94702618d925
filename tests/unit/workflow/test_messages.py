"""
hookgate — unit tests for commit message validation

File: tests/unit/workflow/test_messages.py
Last updated: 2026-10-19

Purpose
- Verify BMAD-first validation with the conventional commits fallback, the warning
  rules and the rejection text shown to committers.

What this test file should cover
- Valid and invalid BMAD subjects, including non-standard personas and prefixes.
- Conventional fallback and its toggles.
- Subject extraction from commit message files with comments.
"""

from __future__ import annotations

import pytest

from hookgate.workflow.messages import (
    BMAD_FORMAT,
    CONVENTIONAL_FORMAT,
    MessageValidator,
    commit_subject,
)


def test_bmad_subject_is_parsed() -> None:
    result = MessageValidator().validate("[DEVELOPER] [STEP-001] Implement user authentication")

    assert result.valid is True
    assert result.is_bmad is True
    assert result.warnings == ()
    assert result.parsed is not None
    assert result.parsed.to_dict() == {
        "format": BMAD_FORMAT,
        "description": "Implement user authentication",
        "fullMessage": "[DEVELOPER] [STEP-001] Implement user authentication",
        "persona": "DEVELOPER",
        "stepId": "STEP-001",
    }


@pytest.mark.parametrize(
    ("subject", "fragment"),
    [
        ("[JANITOR] [STEP-001] Sweep the floors", "not a standard BMAD persona"),
        ("[QA] [QQ-001] Cover login edge cases", "prefix 'QQ' is not standard"),
        ("[QA] [TEST-12] Cover login edge cases", "padding step ID numbers"),
        ("[QA] [TEST-12345] Cover login edge cases", "very large"),
        ("[QA] [TEST-001] Add", "very short"),
        ("[QA] [TEST-001] fix login", "too generic"),
        ("[QA] [TEST-001] cover login edge cases", "capital letter"),
        ("[QA] [TEST-001] Cover login edge cases.", "end with a period"),
    ],
)
def test_bmad_warnings_do_not_invalidate(subject: str, fragment: str) -> None:
    result = MessageValidator().validate(subject)

    assert result.valid is True
    assert any(fragment in warning for warning in result.warnings)


def test_step_zero_is_an_error() -> None:
    result = MessageValidator(allow_conventional=False).validate("[QA] [TEST-000] Cover login")

    assert result.valid is False
    assert "Step ID number must be greater than 0" in result.errors


def test_conventional_fallback_carries_a_warning() -> None:
    result = MessageValidator().validate("feat(auth): add user login functionality")

    assert result.valid is True
    assert result.format == CONVENTIONAL_FORMAT
    assert result.warnings[0] == "Using conventional commits format as fallback"
    assert result.parsed is not None
    assert (result.parsed.type, result.parsed.scope) == ("feat", "auth")


def test_fix_without_colon_is_rejected() -> None:
    validator = MessageValidator()

    result = validator.validate("fix bug")

    assert result.valid is False
    assert len(result.errors) == 2
    assert result.errors[1].startswith("Conventional format: ")
    assert validator.summary(result) == "Invalid format (2 errors)"


def test_conventional_only_configuration() -> None:
    validator = MessageValidator(allow_bmad=False)

    assert validator.validate("[QA] [TEST-001] Cover login").valid is False
    ok = validator.validate("docs: explain hooks")
    assert ok.valid is True
    assert ok.warnings == ()
    assert validator.summary(ok) == "Valid Conventional Commits format"


def test_disabled_format_checks_accept_anything() -> None:
    result = MessageValidator(allow_bmad=False, allow_conventional=False).validate("whatever")

    assert result.valid is True
    assert result.format is None
    assert MessageValidator.summary(result) == "Valid unchecked format (1 warnings)"


@pytest.mark.parametrize("message", ["", "   \n", "# only a comment\n", None])
def test_empty_messages_are_rejected(message: str | None) -> None:
    assert MessageValidator().is_valid(message) is False


def test_commit_subject_skips_comments_and_blank_lines() -> None:
    text = "\n# Please enter the commit message\n\n  feat: add login  \n\nbody\n"

    assert commit_subject(text) == "feat: add login"
    assert commit_subject("") == ""


def test_error_text_lists_errors_and_formats() -> None:
    validator = MessageValidator()
    result = validator.validate("fixed stuff")

    text = validator.error_text(result)

    assert text is not None
    assert text.startswith("COMMIT MESSAGE VALIDATION FAILED\n")
    assert "  1. Message does not match BMAD pattern" in text
    assert "1. BMAD Pattern (Preferred):" in text
    assert "2. Conventional Commits (Fallback):" in text
    assert validator.error_text(validator.validate("feat: x")) is None
