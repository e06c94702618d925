"""
hookgate — per-stage validators

File: src/hookgate/pipeline/validators.py
Last updated: 2026-10-19

Purpose
- Build the ordered validator lists for the blocking stages (pre-commit, commit-msg,
  pre-push, pre-rebase, pre-receive) and for post-checkout, plus the gatekeeper step
  shared by every stage.

Functional requirements
- Each validator returns a ``ValidationResult``; failure details use the wording the
  classifier recognizes ("lint errors found", "tests failed", "build failed",
  "security vulnerabilities found", "invalid commit message", "coverage below
  threshold").
- Disabled tools and toggles yield ``skipped`` results, never failures.
- The gatekeeper step runs last and only when every earlier step succeeded.

Non-functional requirements
- Validators only read repository state, except the lint fixer and the result cache.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from pathlib import PurePosixPath
from typing import Final

from hookgate.adapters.ci_workflows import (
    compare_with_local,
    remote_will_run,
    scan_workflows,
    validation_recommendation,
)
from hookgate.adapters.git import GitCommandError, is_zero_sha
from hookgate.adapters.process import CommandResult
from hookgate.adapters.tools import (
    AUDIT_SEVERITIES,
    CoverageSummary,
    parse_audit,
    parse_coverage,
    parse_test_output,
)
from hookgate.domain import Stage, ValidationResult, ValidationStatus
from hookgate.pipeline.engine import ValidatorSpec
from hookgate.pipeline.environment import HookEnvironment
from hookgate.policy.gatekeeper import GateContext, GateStatus, gate_issues_text
from hookgate.policy.recovery import COVERAGE_METRICS
from hookgate.workflow.context_document import has_meaningful_content
from hookgate.workflow.messages import commit_subject
from hookgate.workflow.personas import (
    extract_persona_from_document,
    extract_persona_from_message,
    extract_step_id_from_message,
    is_standard_transition,
)

LINT_SUFFIXES: Final[tuple[str, ...]] = (".js", ".ts", ".jsx", ".tsx")
CONTEXT_CODE_RE: Final[re.Pattern[str]] = re.compile(
    r"\.(js|ts|jsx|tsx|py|rb|go|rs|java|c|cpp|h|hpp|css|scss|html|vue|svelte)$"
)
_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
RECENT_PERSONA_COMMITS: Final[int] = 10
GATE_VALIDATOR: Final[str] = "gatekeeper"


def _failure_text(result: CommandResult, timeout: float | None) -> str:
    return result.describe_failure(timeout)


def _timed_out(result: CommandResult, timeout: float | None) -> ValidationResult | None:
    if result.timed_out:
        return ValidationResult.failed(result.describe_failure(timeout))
    return None


# -- pre-commit ------------------------------------------------------------------


def lint_staged_files(env: HookEnvironment, staged: Sequence[str]) -> ValidationResult:
    files = tuple(path for path in staged if path.endswith(LINT_SUFFIXES))
    if not files:
        return ValidationResult.skipped("No JavaScript/TypeScript files to lint")

    result = env.tools.lint(files)
    if result is None:
        return ValidationResult.skipped("No lint command configured")
    timeout = env.tools.timeout("lint")
    timed_out = _timed_out(result, timeout)
    if timed_out is not None:
        return timed_out
    if not result.ok:
        return ValidationResult.failed(
            f"lint errors found: {_failure_text(result, timeout)}",
            remediation="Fix the reported lint errors and re-stage the files",
            files=list(files),
        )

    data: dict[str, object] = {"filesLinted": len(files)}
    formatted = env.tools.format(files)
    if formatted is not None and not formatted.ok:
        # formatter problems never block the commit
        data["formatWarning"] = _failure_text(formatted, timeout)
    return ValidationResult.passed("Linting completed successfully", **data)


def run_fast_tests(env: HookEnvironment, staged: Sequence[str]) -> ValidationResult:
    if not env.tools.is_enabled("test"):
        return ValidationResult.skipped("No test command configured")
    index_tree = env.git.index_tree()
    # without an index tree id the staged content is unknown, so nothing is cached
    key = env.cache.key(env.git.head(), index_tree, staged) if index_tree else None
    cached = env.cache.get(key) if key is not None else None
    if cached is not None:
        return cached

    result = env.tools.fast_tests()
    if result is None:
        return ValidationResult.skipped("No test command configured")
    timeout = env.tools.timeout("fastTests")
    timed_out = _timed_out(result, timeout)
    if timed_out is not None:
        return timed_out

    summary = parse_test_output(result.output)
    if not result.ok:
        return ValidationResult.failed(
            f"tests failed: {summary.failed} failed, {summary.passed} passed"
            if summary.failed
            else f"tests failed: {_failure_text(result, timeout)}",
            remediation="Run the test suite locally and fix the failing tests",
            tests=summary.to_dict(),
        )

    passed = ValidationResult.passed("Fast tests passed", tests=summary.to_dict())
    if key is not None:
        env.cache.put(key, passed)
    return passed


def validate_context_freshness(env: HookEnvironment, staged: Sequence[str]) -> ValidationResult:
    context_file = env.context_file
    code_changes = [path for path in staged if CONTEXT_CODE_RE.search(path)]
    if not code_changes:
        return ValidationResult.passed(
            "No code changes detected, context validation not required"
        )
    if context_file not in staged:
        return ValidationResult.failed(
            f"Code changes detected but {context_file} not updated",
            remediation=f"Update {context_file} to reflect current changes and stage it",
            codeFiles=code_changes,
        )

    content = env.synchronizer.store.read_text()
    if content is None:
        return ValidationResult.warning("Context validation completed with warnings")
    if has_meaningful_content(content):
        return ValidationResult.passed("Context validation passed", codeFiles=code_changes)
    return ValidationResult.warning(
        "Context file may need more detail",
        remediation=f"Describe the current work, persona and date in {context_file}",
    )


def pre_commit_validators(
    env: HookEnvironment, staged: Sequence[str]
) -> list[ValidatorSpec]:
    files = tuple(staged)

    def gate_context(results: Mapping[str, ValidationResult]) -> GateContext:
        return GateContext(
            staged_files=files,
            lint_ok=_outcome_flag(results, "linting"),
            tests_ok=_outcome_flag(results, "fastTests"),
            context_updated=_outcome_flag(results, "contextValidation"),
        )

    return [
        ValidatorSpec(
            "linting",
            lambda _results: lint_staged_files(env, files),
            enabled=env.enabled("preCommit", "linting"),
            timeout_seconds=env.tools.timeout("lint"),
        ),
        ValidatorSpec(
            "fastTests",
            lambda _results: run_fast_tests(env, files),
            enabled=env.enabled("preCommit", "testing"),
            timeout_seconds=env.tools.timeout("fastTests"),
        ),
        ValidatorSpec(
            "contextValidation",
            lambda _results: validate_context_freshness(env, files),
            enabled=env.enabled("preCommit", "contextValidation"),
        ),
        gate_validator(env, Stage.PRE_COMMIT, gate_context),
    ]


# -- commit-msg ------------------------------------------------------------------


def validate_message_format(env: HookEnvironment, message: str) -> ValidationResult:
    validation = env.messages.validate(message)
    summary = env.messages.summary(validation)
    if not validation.valid:
        return ValidationResult.failed(
            f"invalid commit message: {'; '.join(validation.errors)}",
            remediation=env.messages.error_text(validation),
            validation=validation.to_dict(),
        )
    return ValidationResult.passed(summary, validation=validation.to_dict())


def validate_commit_context(env: HookEnvironment, message: str) -> ValidationResult:
    subject = commit_subject(message)
    validation = env.messages.validate(subject)
    if not validation.is_bmad or validation.parsed is None:
        return ValidationResult.skipped("Not a BMAD commit message")
    parsed = validation.parsed
    return env.synchronizer.check_commit_context(parsed.persona or "", parsed.step_id)


def commit_msg_validators(env: HookEnvironment, message: str) -> list[ValidatorSpec]:
    subject = commit_subject(message)

    def gate_context(results: Mapping[str, ValidationResult]) -> GateContext:
        del results
        return GateContext(
            message=subject,
            persona=extract_persona_from_message(subject),
            step_id=extract_step_id_from_message(subject),
        )

    return [
        ValidatorSpec("messageValidation", lambda _results: validate_message_format(env, message)),
        ValidatorSpec(
            "contextValidation",
            lambda _results: validate_commit_context(env, message),
            advisory=True,
        ),
        gate_validator(env, Stage.COMMIT_MSG, gate_context),
    ]


# -- pre-push --------------------------------------------------------------------


def coverage_shortfall(coverage: CoverageSummary | None, threshold: float) -> list[str]:
    if coverage is None:
        return []
    values = coverage.to_dict()
    return [
        f"{metric} {values[metric]:.2f}% < {threshold:g}%"
        for metric in COVERAGE_METRICS
        if values[metric] < threshold
    ]


def run_full_test_suite(env: HookEnvironment) -> ValidationResult:
    result = env.tools.full_tests()
    if result is None:
        return ValidationResult.skipped("No full test command configured")
    timeout = env.tools.timeout("fullTests")
    timed_out = _timed_out(result, timeout)
    if timed_out is not None:
        return timed_out

    summary = parse_test_output(result.output)
    coverage = parse_coverage(result.output)
    threshold = env.coverage_threshold
    data: dict[str, object] = {
        "tests": summary.to_dict(),
        "coverage": coverage.to_dict() if coverage else None,
        "coverageThreshold": threshold,
    }
    if not result.ok or summary.failed:
        return ValidationResult.failed(
            f"tests failed: {summary.failed} failed, {summary.passed} passed"
            if summary.failed
            else f"tests failed: {_failure_text(result, timeout)}",
            remediation="Fix failing tests before pushing",
            **data,
        )
    shortfall = coverage_shortfall(coverage, threshold)
    if shortfall:
        return ValidationResult.failed(
            f"coverage below threshold: {', '.join(shortfall)}",
            remediation="Add tests for the uncovered code before pushing",
            **data,
        )
    return ValidationResult.passed("Full test suite passed", **data)


def validate_build(env: HookEnvironment) -> ValidationResult:
    result = env.tools.build()
    if result is None:
        return ValidationResult.skipped("No build command configured")
    timeout = env.tools.timeout("build")
    timed_out = _timed_out(result, timeout)
    if timed_out is not None:
        return timed_out
    if not result.ok:
        return ValidationResult.failed(
            f"build failed: {_failure_text(result, timeout)}",
            remediation="Fix build errors before pushing",
        )
    return ValidationResult.passed("Build validation successful")


def run_security_audit(env: HookEnvironment) -> ValidationResult:
    result = env.tools.audit()
    if result is None:
        return ValidationResult.skipped("No audit command configured")
    timeout = env.tools.timeout("audit")
    timed_out = _timed_out(result, timeout)
    if timed_out is not None:
        return timed_out
    if result.error is not None:
        return ValidationResult.failed(f"security audit could not run: {result.error}")

    # scanners exit non-zero whenever they find anything; the counts decide
    summary = parse_audit(result.output)
    counts = ", ".join(
        f"{summary.counts[name]} {name}"
        for name in AUDIT_SEVERITIES
        if summary.counts.get(name, 0) > 0
    )
    if summary.blocking:
        return ValidationResult.failed(
            f"security vulnerabilities found: {counts}",
            remediation="\n".join(summary.recommendations) or None,
            audit=summary.to_dict(),
        )
    if summary.total:
        return ValidationResult.passed(
            f"No blocking vulnerabilities ({counts})", audit=summary.to_dict()
        )
    return ValidationResult.passed("No security vulnerabilities detected", audit=summary.to_dict())


def synchronize_workflow(
    env: HookEnvironment, branch: str | None, remote: str | None
) -> ValidationResult:
    content = env.synchronizer.store.read_text()
    if content is None:
        return ValidationResult.warning(
            "No active BMAD workflow detected",
            remediation=f"Create {env.context_file} to track the current persona and step",
            workflowActive=False,
        )

    current = extract_persona_from_document(content)
    recent = [
        persona
        for persona in (
            extract_persona_from_message(subject)
            for subject in env.git.recent_messages(RECENT_PERSONA_COMMITS)
        )
        if persona
    ]
    persona_consistent = (
        current is None or not recent or is_standard_transition(recent[0], current)
    )

    changed = env.git.changed_between("HEAD~5")
    context_synchronized = (
        (branch is not None and branch in content)
        or "branch" in content
        or bool(_DATE_RE.search(content))
        or any(path in content or PurePosixPath(path).name in content for path in changed)
    )
    data = {
        "workflowActive": True,
        "currentPersona": current,
        "recentPersona": recent[0] if recent else None,
        "personaConsistency": persona_consistent,
        "contextSynchronized": context_synchronized,
        "branch": branch,
        "remote": remote,
    }
    if persona_consistent and context_synchronized:
        return ValidationResult.passed("BMAD workflow synchronization completed", **data)
    return ValidationResult.warning(
        "BMAD workflow may be out of sync with recent commits",
        remediation=f"Update {env.context_file} to match the latest persona and changes",
        **data,
    )


def check_ci_consistency(env: HookEnvironment, branch: str | None) -> ValidationResult:
    scan = scan_workflows(env.repo_root)
    inconsistencies = compare_with_local(env.config, scan)
    will_run = remote_will_run(branch)
    data = {
        "workflows": sorted(scan.workflows),
        "workflowErrors": dict(scan.errors),
        "remoteWillRun": will_run,
        "recommendation": validation_recommendation(will_run, inconsistencies),
        "inconsistencies": [item.to_dict() for item in inconsistencies],
    }
    if inconsistencies and env.enabled("githubActionsSync", "reportInconsistencies"):
        return ValidationResult.warning(
            f"{len(inconsistencies)} CI configuration inconsistencies found",
            notes=[item.message for item in inconsistencies],
            **data,
        )
    return ValidationResult.passed("Local and remote validation are consistent", **data)


def pre_push_validators(
    env: HookEnvironment, remote: str | None, branch: str | None
) -> list[ValidatorSpec]:
    threshold = env.coverage_threshold

    def gate_context(results: Mapping[str, ValidationResult]) -> GateContext:
        tests = results.get("fullTestSuite")
        coverage = tests.data.get("coverage") if tests is not None else None
        audit = results.get("securityAudit")
        audit_counts = audit.data.get("audit", {}) if audit is not None else {}
        vulnerabilities: int | None = None
        severity: str | None = None
        if audit_counts:
            counts = audit_counts.get("vulnerabilities", {})
            vulnerabilities = int(audit_counts.get("total", 0))
            severity = next((name for name in AUDIT_SEVERITIES if counts.get(name)), None)
        return GateContext(
            branch=branch,
            remote=remote,
            tests_ok=_outcome_flag(results, "fullTestSuite"),
            coverage_lines=coverage.get("lines") if isinstance(coverage, Mapping) else None,
            coverage_threshold=threshold,
            build_ok=_outcome_flag(results, "buildValidation"),
            vulnerabilities=vulnerabilities,
            vulnerability_severity=severity,
        )

    return [
        ValidatorSpec(
            "fullTestSuite",
            lambda _results: run_full_test_suite(env),
            enabled=env.enabled("prePush", "fullTests"),
            timeout_seconds=env.tools.timeout("fullTests"),
        ),
        ValidatorSpec(
            "buildValidation",
            lambda _results: validate_build(env),
            enabled=env.enabled("prePush", "build"),
            timeout_seconds=env.tools.timeout("build"),
        ),
        ValidatorSpec(
            "securityAudit",
            lambda _results: run_security_audit(env),
            enabled=env.enabled("prePush", "security"),
            timeout_seconds=env.tools.timeout("audit"),
        ),
        ValidatorSpec(
            "bmadWorkflowSync",
            lambda _results: synchronize_workflow(env, branch, remote),
            enabled=env.enabled("prePush", "bmadSync"),
        ),
        ValidatorSpec(
            "ciConsistency",
            lambda _results: check_ci_consistency(env, branch),
            enabled=env.enabled("githubActionsSync", "enabled")
            and env.enabled("githubActionsSync", "monitorConsistency"),
            advisory=True,
        ),
        gate_validator(env, Stage.PRE_PUSH, gate_context),
    ]


# -- pre-rebase ------------------------------------------------------------------


def check_rebase_safety(env: HookEnvironment, branch: str | None) -> ValidationResult:
    target = branch or env.git.current_branch()
    if target and target in env.protected_branches:
        return ValidationResult.failed(
            f"rebase of protected branch {target} refused",
            remediation="Rebase a feature branch instead, or merge through a pull request",
            branch=target,
        )
    dirty = env.git.status_porcelain()
    if dirty:
        return ValidationResult.failed(
            f"working tree has {len(dirty)} uncommitted change(s); rebase refused",
            remediation="Commit or stash local changes before rebasing",
            branch=target,
        )
    return ValidationResult.passed("Rebase safety validated", branch=target)


def pre_rebase_validators(
    env: HookEnvironment, upstream: str | None, branch: str | None
) -> list[ValidatorSpec]:
    def gate_context(results: Mapping[str, ValidationResult]) -> GateContext:
        safety = results.get("rebaseSafety")
        source = branch or (safety.data.get("branch") if safety is not None else None)
        return GateContext(
            source_branch=source,
            target_branch=upstream,
            rebase_safe=_outcome_flag(results, "rebaseSafety"),
            rebase_reason=safety.detail if safety is not None else None,
        )

    return [
        ValidatorSpec("rebaseSafety", lambda _results: check_rebase_safety(env, branch)),
        gate_validator(env, Stage.PRE_REBASE, gate_context),
    ]


# -- pre-receive -----------------------------------------------------------------


def branch_name(ref: str) -> str | None:
    prefix = "refs/heads/"
    return ref[len(prefix) :] if ref.startswith(prefix) else None


def check_ref_update(
    env: HookEnvironment, old: str, new: str, ref: str
) -> ValidationResult:
    branch = branch_name(ref)
    protected = branch is not None and branch in env.protected_branches
    if is_zero_sha(new):
        if protected:
            return ValidationResult.failed(
                f"deletion of protected branch {branch} refused", ref=ref
            )
        return ValidationResult.passed(f"Deleted {ref}", ref=ref)

    if protected and not is_zero_sha(old):
        try:
            fast_forward = env.git.is_ancestor(old, new)
        except GitCommandError as exc:
            return ValidationResult.failed(f"cannot verify update of {ref}: {exc}", ref=ref)
        if not fast_forward:
            return ValidationResult.failed(
                f"non-fast-forward update of protected branch {branch} refused",
                remediation="Merge or rebase onto the remote branch instead of force-pushing",
                ref=ref,
            )

    commits = env.git.commits_between(old, new)
    invalid = [
        f"{record.sha[:8]} {record.subject}"
        for record in commits
        if not env.messages.is_valid(record.subject)
    ]
    if invalid:
        return ValidationResult.failed(
            f"invalid commit message in {len(invalid)} pushed commit(s)",
            remediation="Reword the listed commits to the BMAD or conventional format",
            ref=ref,
            invalidCommits=invalid,
        )
    return ValidationResult.passed(f"{len(commits)} commit(s) validated on {ref}", ref=ref)


def pre_receive_validators(
    env: HookEnvironment, updates: Sequence[tuple[str, str, str]]
) -> list[ValidatorSpec]:
    names = [f"refUpdate:{ref}" for _, _, ref in updates]

    def gate_context(results: Mapping[str, ValidationResult]) -> GateContext:
        old, new, ref = updates[0]
        invalid: list[str] = []
        for name in names:
            result = results.get(name)
            if result is not None:
                invalid.extend(result.data.get("invalidCommits", ()))
        return GateContext(
            old_commit=old,
            new_commit=new,
            ref_name=ref,
            commits_valid=not invalid,
            invalid_commits=tuple(invalid),
        )

    specs = [
        ValidatorSpec(
            name,
            lambda _results, update=update: check_ref_update(env, *update),
        )
        for name, update in zip(names, updates)
    ]
    gate = gate_validator(env, Stage.PRE_RECEIVE, gate_context)
    if updates:
        specs.append(gate)
    return specs


# -- post-checkout ---------------------------------------------------------------


def describe_checkout(env: HookEnvironment, branch_flag: str | None) -> ValidationResult:
    if branch_flag is not None and branch_flag.strip() != "1":
        return ValidationResult.skipped("File checkout, branch unchanged")
    branch = env.git.current_branch()
    if branch is None:
        return ValidationResult.passed("Checked out detached HEAD", branch=None)
    return ValidationResult.passed(f"Checked out branch {branch}", branch=branch)


def resync_context(env: HookEnvironment) -> ValidationResult:
    document = env.synchronizer.store.read()
    if document is None:
        return ValidationResult.skipped("No context document to synchronize")
    sync = env.synchronizer.sync_context(document.persona, document.step_id)
    if sync.success:
        return ValidationResult.passed(sync.message, sync=sync.to_dict())
    return ValidationResult.warning(sync.message, sync=sync.to_dict())


def post_checkout_validators(
    env: HookEnvironment, branch_flag: str | None
) -> list[ValidatorSpec]:
    def gate_context(results: Mapping[str, ValidationResult]) -> GateContext:
        checkout = results.get("checkout")
        return GateContext(
            new_branch=checkout.data.get("branch") if checkout is not None else None,
            context_restored=_outcome_flag(results, "contextSync"),
        )

    return [
        ValidatorSpec("checkout", lambda _results: describe_checkout(env, branch_flag)),
        ValidatorSpec(
            "contextSync",
            lambda _results: resync_context(env),
            enabled=env.enabled("postMerge", "personaSync"),
        ),
        gate_validator(env, Stage.POST_CHECKOUT, gate_context),
    ]


# -- gatekeeper ------------------------------------------------------------------


def gate_validator(
    env: HookEnvironment,
    stage: Stage,
    context: Callable[[Mapping[str, ValidationResult]], GateContext],
) -> ValidatorSpec:
    def run(results: Mapping[str, ValidationResult]) -> ValidationResult:
        decision = env.gatekeeper.evaluate(stage, context(results))
        data = {"decision": decision.to_dict()}
        if decision.gate is GateStatus.FAIL:
            return ValidationResult.failed(
                f"gatekeeper rejected {stage.value}: {gate_issues_text(decision.errors)}",
                remediation="\n".join(
                    issue.remediation for issue in decision.errors if issue.remediation
                )
                or None,
                **data,
            )
        if decision.gate is GateStatus.WAIVED:
            reason = decision.waiver.reason if decision.waiver else "waiver"
            return ValidationResult.waived(f"gatekeeper waived: {reason}", **data)
        return ValidationResult.passed(decision.summary, **data)

    return ValidatorSpec(
        GATE_VALIDATOR,
        run,
        enabled=env.enabled("preCommit", "gatekeeper"),
        requires_success=True,
    )


def _outcome_flag(results: Mapping[str, ValidationResult], name: str) -> bool | None:
    """Gate view of an earlier result: ``None`` when it never ran."""

    result = results.get(name)
    if result is None or result.status is ValidationStatus.SKIPPED:
        return None
    return result.is_success


__all__ = [
    "CONTEXT_CODE_RE",
    "GATE_VALIDATOR",
    "LINT_SUFFIXES",
    "branch_name",
    "check_ci_consistency",
    "check_rebase_safety",
    "check_ref_update",
    "commit_msg_validators",
    "coverage_shortfall",
    "describe_checkout",
    "gate_validator",
    "lint_staged_files",
    "post_checkout_validators",
    "pre_commit_validators",
    "pre_push_validators",
    "pre_rebase_validators",
    "pre_receive_validators",
    "resync_context",
    "run_fast_tests",
    "run_full_test_suite",
    "run_security_audit",
    "synchronize_workflow",
    "validate_build",
    "validate_commit_context",
    "validate_context_freshness",
    "validate_message_format",
]
