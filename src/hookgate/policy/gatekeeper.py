"""
hookgate — workflow gatekeeper

File: src/hookgate/policy/gatekeeper.py
Last updated: 2026-10-19

Purpose
- Produce the final PASS/FAIL/WAIVED gate verdict for a stage from the facts the
  earlier validators established (lint and test outcomes, message shape, branch
  metadata, repository state).

What should be included in this file
- Per-stage context checks emitting named validations, errors and warnings.
- Development-mode waiver (``gatekeeper.developmentMode`` and ``gatekeeper.bypassEnabled``).
- Optional external verdict from the ``commands.gatekeeper`` command line.

Functional requirements
- Any error or failed validation yields FAIL; otherwise an active waiver yields
  WAIVED; otherwise PASS.
- post-commit and post-checkout gates always PASS; their findings are warnings.

Non-functional requirements
- Deterministic ordering of validations, errors and warnings.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final

import structlog

from hookgate.domain import Stage, ValidationStatus, format_timestamp, utc_now

if TYPE_CHECKING:
    from hookgate.adapters.tools import ToolRunner


BMAD_GATE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\[([A-Z_]+)\] \[([A-Z]+-\d+)\] .+")
CONVENTIONAL_GATE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(feat|fix|docs|style|refactor|perf|test|build|ci|chore|revert)(\([\w-]+\))?: .+"
)


class GateStatus(StrEnum):
    PASS = "PASS"
    FAIL = "FAIL"
    WAIVED = "WAIVED"


@dataclass(frozen=True, slots=True)
class GateCheck:
    name: str
    status: ValidationStatus
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "status": self.status.value, "message": self.message}


@dataclass(frozen=True, slots=True)
class GateIssue:
    type: str
    message: str
    remediation: str | None = None
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "message": self.message}
        if self.remediation is not None:
            payload["remediation"] = self.remediation
        if self.details is not None:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True, slots=True)
class Waiver:
    reason: str
    approved_by: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": True,
            "reason": self.reason,
            "approvedBy": self.approved_by,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class GateContext:
    """
    Facts handed to the gate. ``None`` means "not established by this stage".

    The orchestrator fills in what its validators already learned; the gate never
    re-runs tools itself.
    """

    staged_files: tuple[str, ...] | None = None
    lint_ok: bool | None = None
    tests_ok: bool | None = None
    tests_output: str | None = None
    context_updated: bool | None = None
    message: str | None = None
    persona: str | None = None
    step_id: str | None = None
    branch: str | None = None
    remote: str | None = None
    coverage_lines: float | None = None
    coverage_threshold: float = 80.0
    build_ok: bool | None = None
    vulnerabilities: int | None = None
    vulnerability_severity: str | None = None
    commit_hash: str | None = None
    metrics_updated: bool | None = None
    docs_generated: bool | None = None
    merge_type: str | None = None
    workflow_ok: bool | None = None
    workflow_error: str | None = None
    repository_state_ok: bool | None = None
    state_error: str | None = None
    source_branch: str | None = None
    target_branch: str | None = None
    rebase_safe: bool | None = None
    rebase_reason: str | None = None
    new_branch: str | None = None
    context_restored: bool | None = None
    old_commit: str | None = None
    new_commit: str | None = None
    ref_name: str | None = None
    commits_valid: bool | None = None
    invalid_commits: tuple[str, ...] = ()
    branch_protected: bool | None = None


@dataclass(slots=True)
class _Findings:
    validations: list[GateCheck] = field(default_factory=list)
    errors: list[GateIssue] = field(default_factory=list)
    warnings: list[GateIssue] = field(default_factory=list)
    hook_specific: dict[str, Any] = field(default_factory=dict)

    def check(self, name: str, status: ValidationStatus, message: str) -> None:
        self.validations.append(GateCheck(name, status, message))

    def error(
        self, type_: str, message: str, remediation: str, details: str | None = None
    ) -> None:
        self.errors.append(GateIssue(type_, message, remediation, details))

    def warn(self, type_: str, message: str, remediation: str | None = None) -> None:
        self.warnings.append(GateIssue(type_, message, remediation))


@dataclass(frozen=True, slots=True)
class GateDecision:
    stage: Stage
    gate: GateStatus
    timestamp: str
    validations: tuple[GateCheck, ...] = ()
    errors: tuple[GateIssue, ...] = ()
    warnings: tuple[GateIssue, ...] = ()
    waiver: Waiver | None = None
    hook_specific: Mapping[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.gate is not GateStatus.FAIL

    @property
    def summary(self) -> str:
        outcome = {
            GateStatus.PASS: "passed",
            GateStatus.WAIVED: "waived",
            GateStatus.FAIL: "failed",
        }[self.gate]
        counts: list[str] = []
        if self.errors:
            counts.append(f"{len(self.errors)} error(s)")
        if self.warnings:
            counts.append(f"{len(self.warnings)} warning(s)")
        text = f"{self.stage.value} hook validation {outcome}"
        return f"{text} with {' and '.join(counts)}" if counts else text

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "gate": self.gate.value,
            "timestamp": self.timestamp,
            "summary": self.summary,
            "validations": [item.to_dict() for item in self.validations],
            "errors": [item.to_dict() for item in self.errors],
            "warnings": [item.to_dict() for item in self.warnings],
            "waiver": self.waiver.to_dict() if self.waiver else {"active": False},
            "hookSpecific": dict(self.hook_specific),
        }


class Gatekeeper:
    """Evaluates the per-stage gate and optionally consults an external gate command."""

    def __init__(
        self,
        *,
        development_mode: bool = False,
        bypass_enabled: bool = False,
        tools: ToolRunner | None = None,
        logger: Any | None = None,
    ) -> None:
        self._development_mode = development_mode
        self._bypass_enabled = bypass_enabled
        self._tools = tools
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def waiver_active(self) -> bool:
        return self._development_mode and self._bypass_enabled

    def evaluate(self, stage: Stage | str, context: GateContext | None = None) -> GateDecision:
        resolved = Stage(stage)
        ctx = context if context is not None else GateContext()
        timestamp = format_timestamp(utc_now())

        if self.waiver_active:
            waiver = Waiver(
                reason="Development mode bypass enabled",
                approved_by="Developer (Development Mode)",
                timestamp=timestamp,
            )
            self._logger.warning("gate_waived", stage=resolved.value, reason=waiver.reason)
            return GateDecision(
                stage=resolved, gate=GateStatus.WAIVED, timestamp=timestamp, waiver=waiver
            )

        findings = _Findings()
        _STAGE_CHECKS[resolved](ctx, findings)
        waiver = self._consult_external(resolved, findings, timestamp)

        if resolved in (Stage.POST_COMMIT, Stage.POST_CHECKOUT):
            gate = GateStatus.PASS
        elif findings.errors or any(
            item.status is ValidationStatus.FAILED for item in findings.validations
        ):
            gate = GateStatus.FAIL
        elif waiver is not None:
            gate = GateStatus.WAIVED
        else:
            gate = GateStatus.PASS

        decision = GateDecision(
            stage=resolved,
            gate=gate,
            timestamp=timestamp,
            validations=tuple(findings.validations),
            errors=tuple(findings.errors),
            warnings=tuple(findings.warnings),
            waiver=waiver,
            hook_specific=dict(findings.hook_specific),
        )
        self._logger.info(
            "gate_evaluated",
            stage=resolved.value,
            gate=gate.value,
            errors=len(decision.errors),
            warnings=len(decision.warnings),
        )
        return decision

    def _consult_external(
        self, stage: Stage, findings: _Findings, timestamp: str
    ) -> Waiver | None:
        if self._tools is None:
            return None
        result = self._tools.gatekeeper(stage.value)
        if result is None:
            return None
        if not result.ok:
            findings.error(
                "EXTERNAL_GATE_FAILED",
                "External gatekeeper rejected the stage",
                "Review the external gatekeeper output",
                details=result.describe_failure(self._tools.timeout("workflow")),
            )
            return None
        if "WAIVED" in result.output:
            findings.check("external_gate", ValidationStatus.WAIVED, "External gatekeeper waived")
            return Waiver(
                reason="External gatekeeper waiver",
                approved_by="External gatekeeper",
                timestamp=timestamp,
            )
        findings.check("external_gate", ValidationStatus.PASSED, "External gatekeeper passed")
        return None


def is_gate_message(message: str) -> bool:
    """BMAD or conventional shape, as the gate understands it."""
    return bool(BMAD_GATE_PATTERN.match(message) or CONVENTIONAL_GATE_PATTERN.match(message))


def _outcome(
    findings: _Findings,
    ok: bool | None,
    *,
    name: str,
    passed: str,
    failed: str,
    error_type: str,
    error_message: str,
    remediation: str,
    details: str | None = None,
) -> None:
    if ok is None:
        return
    if ok:
        findings.check(name, ValidationStatus.PASSED, passed)
        return
    findings.check(name, ValidationStatus.FAILED, failed)
    findings.error(error_type, error_message, remediation, details)


def _check_pre_commit(ctx: GateContext, findings: _Findings) -> None:
    if not ctx.staged_files:
        findings.warn(
            "NO_STAGED_FILES",
            "No staged files detected",
            "Stage files with git add before committing",
        )
    else:
        findings.check(
            "staged_files",
            ValidationStatus.PASSED,
            f"{len(ctx.staged_files)} staged file(s) detected",
        )
    _outcome(
        findings,
        ctx.lint_ok,
        name="linting",
        passed="Linting completed successfully",
        failed="Linting failed",
        error_type="LINTING_ERROR",
        error_message="Code linting failed",
        remediation="Fix linting errors or run npm run lint:fix",
    )
    _outcome(
        findings,
        ctx.tests_ok,
        name="fast_tests",
        passed="Fast tests passed",
        failed="Fast tests failed",
        error_type="TEST_FAILURE",
        error_message="Fast test suite failed",
        remediation="Fix failing tests before committing",
        details=ctx.tests_output,
    )
    _outcome(
        findings,
        ctx.context_updated,
        name="context_update",
        passed="Context update requirements satisfied",
        failed="Code changes detected without activeContext.md update",
        error_type="CONTEXT_UPDATE_ERROR",
        error_message="Code changes require activeContext.md update",
        remediation="Update activeContext.md to reflect current changes",
    )


def _check_commit_msg(ctx: GateContext, findings: _Findings) -> None:
    if not ctx.message:
        findings.error(
            "MISSING_COMMIT_MESSAGE", "No commit message provided", "Provide a commit message"
        )
        return
    first_line = ctx.message.strip().splitlines()[0] if ctx.message.strip() else ""
    if is_gate_message(first_line):
        findings.check("commit_message", ValidationStatus.PASSED, "Commit message format is valid")
    else:
        findings.check("commit_message", ValidationStatus.FAILED, "Invalid commit message format")
        findings.error(
            "COMMIT_FORMAT_ERROR",
            "Commit message does not follow required format",
            "Use format: [PERSONA] [STEP-ID] Description or conventional commits format",
        )
    if ctx.persona and ctx.step_id:
        findings.check(
            "bmad_metadata",
            ValidationStatus.PASSED,
            f"BMAD metadata validated: {ctx.persona} {ctx.step_id}",
        )
        findings.hook_specific["persona"] = ctx.persona
        findings.hook_specific["stepId"] = ctx.step_id


def _check_pre_push(ctx: GateContext, findings: _Findings) -> None:
    if not ctx.branch or not ctx.remote:
        findings.warn(
            "MISSING_PUSH_INFO",
            "Branch or remote information missing",
            "Ensure git push includes branch and remote",
        )
    else:
        findings.check(
            "push_metadata", ValidationStatus.PASSED, f"Pushing {ctx.branch} to {ctx.remote}"
        )

    _outcome(
        findings,
        ctx.tests_ok,
        name="full_test_suite",
        passed="Full test suite passed",
        failed="Full test suite failed",
        error_type="TEST_FAILURE",
        error_message="Full test suite execution failed",
        remediation="Fix failing tests before pushing",
        details=ctx.tests_output,
    )
    if ctx.tests_ok and ctx.coverage_lines is not None:
        threshold = ctx.coverage_threshold
        _outcome(
            findings,
            ctx.coverage_lines >= threshold,
            name="coverage",
            passed=f"Coverage {ctx.coverage_lines:g}% meets threshold {threshold:g}%",
            failed=f"Coverage {ctx.coverage_lines:g}% below threshold {threshold:g}%",
            error_type="COVERAGE_ERROR",
            error_message="Test coverage below threshold",
            remediation="Add tests to improve coverage",
            details=f"Current: {ctx.coverage_lines:g}%, Required: {threshold:g}%",
        )
    _outcome(
        findings,
        ctx.build_ok,
        name="build",
        passed="Build validation passed",
        failed="Build validation failed",
        error_type="BUILD_ERROR",
        error_message="Build validation failed",
        remediation="Fix build errors before pushing",
    )

    if ctx.vulnerabilities is None:
        return
    if ctx.vulnerabilities == 0:
        findings.check(
            "security_audit", ValidationStatus.PASSED, "No security vulnerabilities detected"
        )
        return
    severity = ctx.vulnerability_severity or "unknown"
    text = f"{ctx.vulnerabilities} {severity} vulnerabilities found"
    if severity in ("high", "critical"):
        findings.check("security_audit", ValidationStatus.FAILED, text)
        findings.error(
            "SECURITY_ERROR",
            "Security vulnerabilities detected",
            "Run npm audit fix to resolve vulnerabilities",
        )
    else:
        findings.check("security_audit", ValidationStatus.WARNING, text)
        findings.warn(
            "SECURITY_WARNING",
            "Low/moderate security vulnerabilities detected",
            "Consider running npm audit fix",
        )


def _check_post_commit(ctx: GateContext, findings: _Findings) -> None:
    if not ctx.commit_hash:
        findings.warn(
            "MISSING_COMMIT_HASH",
            "Commit hash not provided",
            "Ensure commit hash is passed to post-commit hook",
        )
    else:
        findings.check(
            "commit_hash", ValidationStatus.PASSED, f"Commit hash validated: {ctx.commit_hash[:8]}"
        )
    for flag, name, passed, warning_type, warning in (
        (
            ctx.metrics_updated,
            "metrics_update",
            "Project metrics updated",
            "METRICS_WARNING",
            "Metrics update failed (non-blocking)",
        ),
        (
            ctx.docs_generated,
            "documentation",
            "Documentation regenerated",
            "DOCS_WARNING",
            "Documentation generation failed (non-blocking)",
        ),
    ):
        if flag is None:
            continue
        if flag:
            findings.check(name, ValidationStatus.PASSED, passed)
        else:
            findings.warn(warning_type, warning, f"Check {name.replace('_', ' ')} logs")


def _check_post_merge(ctx: GateContext, findings: _Findings) -> None:
    if not ctx.merge_type:
        findings.warn(
            "MISSING_MERGE_TYPE",
            "Merge type not provided",
            "Ensure merge type is passed to post-merge hook",
        )
    else:
        findings.check("merge_type", ValidationStatus.PASSED, f"Merge type: {ctx.merge_type}")
    _outcome(
        findings,
        ctx.workflow_ok,
        name="bmad_workflow",
        passed="BMAD workflow executed successfully",
        failed="BMAD workflow execution failed",
        error_type="WORKFLOW_ERROR",
        error_message="BMAD workflow execution failed",
        remediation="Check workflow logs and retry",
        details=ctx.workflow_error,
    )
    _outcome(
        findings,
        ctx.repository_state_ok,
        name="repository_state",
        passed="Repository state validated",
        failed="Repository state validation failed",
        error_type="REPOSITORY_STATE_ERROR",
        error_message="Repository state validation failed",
        remediation="Review repository state and resolve conflicts",
        details=ctx.state_error,
    )


def _check_pre_rebase(ctx: GateContext, findings: _Findings) -> None:
    if not ctx.source_branch or not ctx.target_branch:
        findings.error(
            "MISSING_REBASE_INFO",
            "Source or target branch missing",
            "Ensure rebase includes source and target branches",
        )
        return
    findings.check(
        "rebase_metadata",
        ValidationStatus.PASSED,
        f"Rebasing {ctx.source_branch} onto {ctx.target_branch}",
    )
    _outcome(
        findings,
        ctx.rebase_safe,
        name="rebase_safety",
        passed="Rebase safety validated",
        failed="Rebase operation is unsafe",
        error_type="REBASE_SAFETY_ERROR",
        error_message="Rebase operation is unsafe",
        remediation="Review conflicts and resolve before rebasing",
        details=ctx.rebase_reason,
    )


def _check_post_checkout(ctx: GateContext, findings: _Findings) -> None:
    if not ctx.new_branch:
        findings.warn(
            "MISSING_BRANCH_INFO",
            "New branch information missing",
            "Ensure branch name is passed to post-checkout hook",
        )
    else:
        findings.check(
            "checkout_metadata", ValidationStatus.PASSED, f"Checked out branch: {ctx.new_branch}"
        )
    if ctx.context_restored is None:
        return
    if ctx.context_restored:
        findings.check("context_restoration", ValidationStatus.PASSED, "Branch context restored")
    else:
        findings.warn(
            "CONTEXT_WARNING",
            "Context restoration failed (non-blocking)",
            "Manually restore context if needed",
        )


def _check_pre_receive(ctx: GateContext, findings: _Findings) -> None:
    if not ctx.old_commit or not ctx.new_commit or not ctx.ref_name:
        findings.error(
            "MISSING_RECEIVE_INFO",
            "Commit or ref information missing",
            "Ensure pre-receive hook receives all required parameters",
        )
        return
    findings.check(
        "receive_metadata",
        ValidationStatus.PASSED,
        f"Receiving {ctx.ref_name}: {ctx.old_commit[:8]}..{ctx.new_commit[:8]}",
    )
    _outcome(
        findings,
        ctx.commits_valid,
        name="commit_validation",
        passed="All pushed commits validated",
        failed="Invalid commits detected",
        error_type="COMMIT_VALIDATION_ERROR",
        error_message="Invalid commits detected",
        remediation="Fix invalid commits before pushing",
        details=", ".join(ctx.invalid_commits) or None,
    )
    if ctx.branch_protected:
        findings.error(
            "BRANCH_PROTECTION_ERROR",
            "Cannot push to protected branch",
            "Use pull request workflow for protected branches",
        )


_STAGE_CHECKS: Final[dict[Stage, Callable[[GateContext, _Findings], None]]] = {
    Stage.PRE_COMMIT: _check_pre_commit,
    Stage.COMMIT_MSG: _check_commit_msg,
    Stage.PRE_PUSH: _check_pre_push,
    Stage.POST_COMMIT: _check_post_commit,
    Stage.POST_MERGE: _check_post_merge,
    Stage.PRE_REBASE: _check_pre_rebase,
    Stage.POST_CHECKOUT: _check_post_checkout,
    Stage.PRE_RECEIVE: _check_pre_receive,
}


def gate_issues_text(issues: Sequence[GateIssue]) -> str:
    return "; ".join(issue.message for issue in issues)


__all__ = [
    "BMAD_GATE_PATTERN",
    "CONVENTIONAL_GATE_PATTERN",
    "GateCheck",
    "GateContext",
    "GateDecision",
    "GateIssue",
    "GateStatus",
    "Gatekeeper",
    "Waiver",
    "gate_issues_text",
    "is_gate_message",
]
