"""
hookgate — error classifier

File: src/hookgate/policy/classifier.py
Last updated: 2026-10-19

Purpose
- Map a raw failure (exception, text, or mapping with ``message``) plus the lifecycle
  stage into an ``ErrorClassification``.

Functional requirements
- Ordered ``(pattern, category, severity, blocking_type)`` rule table, first match wins.
- Unmatched errors fall back to a stage default: non-blocking stages yield
  ``UNKNOWN_POST_HOOK_ERROR``; every other stage yields hard-blocking ``UNKNOWN_ERROR``.
- ``recoverable`` and ``bypassable`` come from fixed per-category lookups.

Non-functional requirements
- Pure and deterministic: no I/O, no clock, no logging.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from hookgate.domain import BlockingType, ErrorCategory, ErrorClassification, Severity, Stage


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    """One row of the ordered classification table."""

    pattern: re.Pattern[str]
    category: ErrorCategory
    severity: Severity
    blocking_type: BlockingType

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _rule(
    pattern: str, category: ErrorCategory, severity: Severity, blocking: BlockingType
) -> ClassificationRule:
    return ClassificationRule(re.compile(pattern, re.IGNORECASE), category, severity, blocking)


CLASSIFICATION_RULES: Final[tuple[ClassificationRule, ...]] = (
    _rule(r"test.*fail", ErrorCategory.TEST_FAILURE, Severity.BLOCKING, BlockingType.HARD),
    _rule(r"build.*fail", ErrorCategory.BUILD_FAILURE, Severity.BLOCKING, BlockingType.HARD),
    _rule(
        r"security.*vulnerabilit",
        ErrorCategory.SECURITY_VULNERABILITY,
        Severity.BLOCKING,
        BlockingType.HARD,
    ),
    _rule(
        r"invalid.*commit.*message",
        ErrorCategory.INVALID_COMMIT_MESSAGE,
        Severity.BLOCKING,
        BlockingType.HARD,
    ),
    _rule(r"lint.*error", ErrorCategory.LINT_ERROR, Severity.BLOCKING, BlockingType.HARD),
    _rule(r"syntax.*error", ErrorCategory.SYNTAX_ERROR, Severity.BLOCKING, BlockingType.HARD),
    _rule(
        r"context.*not.*updated",
        ErrorCategory.MISSING_CONTEXT_UPDATE,
        Severity.WARNING,
        BlockingType.SOFT,
    ),
    _rule(
        r"performance.*threshold",
        ErrorCategory.PERFORMANCE_THRESHOLD,
        Severity.WARNING,
        BlockingType.SOFT,
    ),
    _rule(r"deprecated", ErrorCategory.DEPRECATED_USAGE, Severity.WARNING, BlockingType.SOFT),
    _rule(r"coverage.*below", ErrorCategory.LOW_COVERAGE, Severity.WARNING, BlockingType.SOFT),
    _rule(
        r"notification.*fail",
        ErrorCategory.NOTIFICATION_FAILURE,
        Severity.NON_BLOCKING,
        BlockingType.NONE,
    ),
    _rule(
        r"documentation.*generation",
        ErrorCategory.DOCUMENTATION_FAILURE,
        Severity.NON_BLOCKING,
        BlockingType.NONE,
    ),
    _rule(
        r"metrics.*update",
        ErrorCategory.METRICS_FAILURE,
        Severity.NON_BLOCKING,
        BlockingType.NONE,
    ),
    _rule(r"cache.*error", ErrorCategory.CACHE_ERROR, Severity.NON_BLOCKING, BlockingType.NONE),
)

RECOVERABLE_CATEGORIES: Final[frozenset[ErrorCategory]] = frozenset(
    {
        ErrorCategory.LINT_ERROR,
        ErrorCategory.MISSING_CONTEXT_UPDATE,
        ErrorCategory.PERFORMANCE_THRESHOLD,
        ErrorCategory.LOW_COVERAGE,
        ErrorCategory.CACHE_ERROR,
    }
)

# Never bypassable, whatever the mode.
HARD_SAFETY_CATEGORIES: Final[frozenset[ErrorCategory]] = frozenset(
    {ErrorCategory.TEST_FAILURE, ErrorCategory.BUILD_FAILURE}
)


def error_text(error: object) -> str:
    """Extract the text the rule table is matched against."""

    if isinstance(error, BaseException):
        message = str(error)
        return message or type(error).__name__
    if isinstance(error, Mapping):
        for key in ("message", "detail", "error"):
            value = error.get(key)
            if value:
                return str(value)
        return ""
    if error is None:
        return ""
    return str(error)


def is_bypassable(category: ErrorCategory, *, strict: bool = True) -> bool:
    if category in HARD_SAFETY_CATEGORIES:
        return False
    if category is ErrorCategory.SECURITY_VULNERABILITY:
        return not strict
    return True


def classify(
    error: object, stage: Stage | str, *, strict: bool = True
) -> ErrorClassification:
    """Classify ``error`` raised or reported during ``stage``."""

    text = error_text(error)
    for rule in CLASSIFICATION_RULES:
        if rule.matches(text):
            return ErrorClassification(
                category=rule.category,
                severity=rule.severity,
                blocking_type=rule.blocking_type,
                recoverable=rule.category in RECOVERABLE_CATEGORIES,
                bypassable=is_bypassable(rule.category, strict=strict),
                message=text,
            )
    return default_classification(stage, text)


def default_classification(stage: Stage | str, message: str = "") -> ErrorClassification:
    """Stage-based fallback for text that matched no rule."""

    if not Stage(stage).blocking:
        return ErrorClassification(
            category=ErrorCategory.UNKNOWN_POST_HOOK_ERROR,
            severity=Severity.NON_BLOCKING,
            blocking_type=BlockingType.NONE,
            recoverable=False,
            bypassable=False,
            message=message,
        )
    return ErrorClassification(
        category=ErrorCategory.UNKNOWN_ERROR,
        severity=Severity.BLOCKING,
        blocking_type=BlockingType.HARD,
        recoverable=False,
        bypassable=True,
        message=message,
    )


__all__ = [
    "CLASSIFICATION_RULES",
    "HARD_SAFETY_CATEGORIES",
    "RECOVERABLE_CATEGORIES",
    "ClassificationRule",
    "classify",
    "default_classification",
    "error_text",
    "is_bypassable",
]
