"""Per-category remediation guidance and the human-readable error report."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Final

from hookgate.constants import VALID_PERSONAS
from hookgate.domain import ErrorCategory, ErrorClassification, RecoveryOutcome, Severity


@dataclass(frozen=True, slots=True)
class Guidance:
    steps: tuple[str, ...]
    commands: tuple[str, ...] = ()


GUIDANCE: Final[dict[ErrorCategory, Guidance]] = {
    ErrorCategory.TEST_FAILURE: Guidance(
        steps=(
            "Review test output for specific failures",
            "Run tests locally: npm test",
            "Fix failing tests or update test expectations",
            "Ensure all dependencies are installed",
        ),
        commands=("npm test", "npm test -- --verbose"),
    ),
    ErrorCategory.BUILD_FAILURE: Guidance(
        steps=(
            "Check build logs for compilation errors",
            "Verify all dependencies are installed: npm install",
            "Check for syntax errors in recent changes",
            "Run build locally: npm run build",
        ),
        commands=("npm install", "npm run build"),
    ),
    ErrorCategory.SECURITY_VULNERABILITY: Guidance(
        steps=(
            "Review npm audit output for vulnerabilities",
            "Update vulnerable dependencies: npm audit fix",
            "For breaking changes, review and test updates",
            "Consider using npm audit fix --force for major updates",
        ),
        commands=("npm audit", "npm audit fix", "npm audit fix --force"),
    ),
    ErrorCategory.INVALID_COMMIT_MESSAGE: Guidance(
        steps=(
            "Use BMAD pattern: [PERSONA] [STEP-ID] Description",
            f"Valid personas: {', '.join(VALID_PERSONAS)}",
            "Step ID format: STEP-XXX where XXX is a number",
            "Example: [DEVELOPER] [STEP-001] Implement user authentication",
        ),
        commands=('git commit --amend -m "[PERSONA] [STEP-ID] Description"',),
    ),
    ErrorCategory.LINT_ERROR: Guidance(
        steps=(
            "Run linter to see specific issues: npm run lint",
            "Auto-fix issues: npm run lint:fix",
            "Review and fix remaining manual issues",
            "Ensure code follows project style guide",
        ),
        commands=("npm run lint", "npm run lint:fix"),
    ),
    ErrorCategory.SYNTAX_ERROR: Guidance(
        steps=(
            "Open the file and line reported by the tool",
            "Fix the syntax error and re-stage the file",
        ),
    ),
    ErrorCategory.MISSING_CONTEXT_UPDATE: Guidance(
        steps=(
            "Update activeContext.md with current work details",
            "Include persona, step ID, and description",
            "Ensure context reflects current development phase",
            "Use bypass only if context is truly not applicable",
        ),
    ),
    ErrorCategory.PERFORMANCE_THRESHOLD: Guidance(
        steps=(
            "Review performance metrics in hook output",
            "Enable lint-staged for faster pre-commit checks",
            "Use parallel test execution",
            "Consider splitting large commits",
        ),
    ),
    ErrorCategory.LOW_COVERAGE: Guidance(
        steps=(
            "Review the coverage report for uncovered branches and functions",
            "Add tests for the reported gaps",
        ),
        commands=("npm test -- --coverage",),
    ),
    ErrorCategory.CACHE_ERROR: Guidance(
        steps=("Clear the hook cache directory and re-run the hook",),
        commands=("rm -rf .git/hooks/cache",),
    ),
}

DEFAULT_GUIDANCE: Final[Guidance] = Guidance(
    steps=("Review error message for details", "Check hook logs for more information"),
)

IMPACTS: Final[dict[Severity, dict[str, str]]] = {
    Severity.BLOCKING: {
        "workflow": "Blocks current operation",
        "team": "Prevents commit/push from completing",
        "project": "May delay development progress",
    },
    Severity.WARNING: {
        "workflow": "Allows operation with warnings",
        "team": "May require follow-up action",
        "project": "Minimal immediate impact",
    },
    Severity.NON_BLOCKING: {
        "workflow": "Does not block operation",
        "team": "No immediate action required",
        "project": "No impact on development flow",
    },
}


@dataclass(frozen=True, slots=True)
class Remediation:
    steps: tuple[str, ...]
    commands: tuple[str, ...]
    auto_recovery: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"steps": list(self.steps), "commands": list(self.commands)}
        if self.auto_recovery is not None:
            payload["autoRecovery"] = dict(self.auto_recovery)
        return payload


def guidance_for(category: ErrorCategory) -> Guidance:
    return GUIDANCE.get(category, DEFAULT_GUIDANCE)


def build_remediation(
    classification: ErrorClassification, recovery: RecoveryOutcome | None = None
) -> Remediation:
    guidance = guidance_for(classification.category)
    auto_recovery: dict[str, Any] | None = None
    if recovery is not None and recovery.successful:
        auto_recovery = {
            "status": "successful",
            "action": recovery.action,
            "details": recovery.details,
        }
    elif recovery is not None:
        auto_recovery = {"status": "failed", "reason": recovery.reason}
    return Remediation(
        steps=guidance.steps, commands=guidance.commands, auto_recovery=auto_recovery
    )


def assess_impact(classification: ErrorClassification) -> dict[str, str]:
    return dict(IMPACTS.get(classification.severity, IMPACTS[Severity.BLOCKING]))


def remediation_text(categories: Iterable[ErrorCategory]) -> str | None:
    """
    Concatenate guidance for each distinct category, in first-seen order.

    Returns ``None`` when there is nothing to remediate.
    """

    seen: list[ErrorCategory] = []
    for category in categories:
        if category not in seen:
            seen.append(category)
    if not seen:
        return None

    blocks: list[str] = []
    for category in seen:
        guidance = guidance_for(category)
        lines = [f"{category.value}:"]
        lines.extend(f"  {index}. {step}" for index, step in enumerate(guidance.steps, start=1))
        lines.extend(f"  $ {command}" for command in guidance.commands)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def render_error_report(
    stage: str,
    classification: ErrorClassification,
    remediation: Remediation,
    *,
    width: int = 80,
) -> str:
    rule = "=" * width
    lines: list[str] = [
        "",
        rule,
        f"{stage.upper()} HOOK ERROR",
        rule,
        "",
        f"Category: {classification.category.value}",
        f"Severity: {classification.severity.value.upper()}",
        f"Message: {classification.message}",
    ]
    if remediation.auto_recovery is not None:
        lines.append("")
        lines.append(f"Auto-Recovery: {remediation.auto_recovery['status']}")
        details = remediation.auto_recovery.get("details")
        if details:
            lines.append(f"Details: {details}")
    lines.append("")
    lines.append("Remediation Steps:")
    lines.extend(_numbered(remediation.steps))
    if remediation.commands:
        lines.append("")
        lines.append("Suggested Commands:")
        lines.extend(f"  $ {command}" for command in remediation.commands)
    lines.extend(["", rule, ""])
    return "\n".join(lines)


def _numbered(items: Sequence[str]) -> list[str]:
    return [f"  {index}. {item}" for index, item in enumerate(items, start=1)]


__all__ = [
    "DEFAULT_GUIDANCE",
    "GUIDANCE",
    "IMPACTS",
    "Guidance",
    "Remediation",
    "assess_impact",
    "build_remediation",
    "guidance_for",
    "remediation_text",
    "render_error_report",
]
