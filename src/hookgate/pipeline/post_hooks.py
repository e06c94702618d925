"""
hookgate — post-commit and post-merge validators

File: src/hookgate/pipeline/post_hooks.py
Last updated: 2026-10-19

Purpose
- Bookkeeping that runs after git has already recorded a commit or a merge: project
  metrics, documentation regeneration, context registration, the merge workflow,
  repository state validation, merge analysis and persona synchronization.

Functional requirements
- Metrics accumulate in ``.github/metrics/project-metrics.json``: commit count, lines
  added and deleted, and a running average of files per commit.
- Documentation is regenerated only when the commit touched JS/TS or Markdown files
  under ``src/``, ``scripts/`` or ``docs/``.
- Repository validation checks a clean tree, conflict markers, the branch, the
  configured critical files and ``git fsck``; any issue fails the check.
- The merge analysis report is written to ``.github/reports/merge-analysis.json``.

Non-functional requirements
- These stages never block git; failures surface as results and reports only.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any, Final

from hookgate.adapters.tools import parse_diff_stat
from hookgate.constants import MERGE_ANALYSIS_PATH, PROJECT_METRICS_PATH
from hookgate.domain import Stage, ValidationResult, format_timestamp
from hookgate.pipeline.engine import ValidatorSpec
from hookgate.pipeline.environment import HookEnvironment
from hookgate.pipeline.reports import merge_analysis, write_json_report
from hookgate.pipeline.validators import gate_validator
from hookgate.policy.gatekeeper import GateContext

DOCS_SOURCE_RE: Final[re.Pattern[str]] = re.compile(r"\.(js|ts|jsx|tsx|md)$")
DOCS_SOURCE_DIRS: Final[tuple[str, ...]] = ("src/", "scripts/", "docs/")
CONFLICT_MARKER: Final[str] = "conflict marker"

_EMPTY_METRICS: Final[Mapping[str, Any]] = {
    "totalCommits": 0,
    "totalLinesAdded": 0,
    "totalLinesDeleted": 0,
    "averageFilesPerCommit": 0,
    "lastUpdated": None,
}


# -- post-commit -----------------------------------------------------------------


def update_project_metrics(env: HookEnvironment, commit_hash: str | None) -> ValidationResult:
    stat = parse_diff_stat(env.git.show_stat(commit_hash or "HEAD"))
    path = env.repo_root / PROJECT_METRICS_PATH
    try:
        existing = dict(_EMPTY_METRICS)
        if path.is_file():
            loaded = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(loaded, dict):
                raise ValueError("metrics file must hold a JSON object")
            existing.update(loaded)
        commits = int(existing["totalCommits"])
        updated = {
            "totalCommits": commits + 1,
            "totalLinesAdded": int(existing["totalLinesAdded"]) + stat.insertions,
            "totalLinesDeleted": int(existing["totalLinesDeleted"]) + stat.deletions,
            "averageFilesPerCommit": (
                float(existing["averageFilesPerCommit"]) * commits + stat.files_changed
            )
            / (commits + 1),
            "lastUpdated": format_timestamp(env.clock()),
        }
        write_json_report(path, updated)
    except (OSError, ValueError, TypeError) as exc:
        return ValidationResult.failed(f"metrics update failed: {exc}")
    return ValidationResult.passed(
        "Project metrics updated",
        filesChanged=stat.files_changed,
        linesAdded=stat.insertions,
        linesDeleted=stat.deletions,
        totalCommits=updated["totalCommits"],
    )


def documentation_sources(files: tuple[str, ...]) -> list[str]:
    return [
        path
        for path in files
        if DOCS_SOURCE_RE.search(path) and path.startswith(DOCS_SOURCE_DIRS)
    ]


def regenerate_documentation(env: HookEnvironment, files: tuple[str, ...]) -> ValidationResult:
    sources = documentation_sources(files)
    if not sources:
        return ValidationResult.skipped("No source file changes detected")
    result = env.tools.docs()
    if result is None:
        return ValidationResult.skipped("No documentation command configured")
    if not result.ok:
        detail = result.describe_failure(env.tools.timeout("docs"))
        return ValidationResult.failed(f"documentation generation failed: {detail}")
    return ValidationResult.passed(
        "Documentation regenerated successfully", sourceFiles=sources
    )


def register_commit_context(
    env: HookEnvironment, commit_hash: str | None, files: tuple[str, ...]
) -> ValidationResult:
    message = env.git.commit_message(commit_hash or "HEAD")
    update = env.synchronizer.register_commit(commit_hash, message, files)
    if update is None:
        return ValidationResult.skipped("No code changes detected")
    if not update.success:
        return ValidationResult.failed(
            f"context update failed: {update.error or 'unknown error'}",
            update=update.to_dict(),
        )
    return ValidationResult.passed("Commit registered in active context", update=update.to_dict())


def post_commit_validators(
    env: HookEnvironment, commit_hash: str | None
) -> list[ValidatorSpec]:
    files = env.git.files_in_commit(commit_hash or "HEAD")

    def gate_context(results: Mapping[str, ValidationResult]) -> GateContext:
        metrics = results.get("metricsUpdate")
        docs = results.get("documentation")
        return GateContext(
            commit_hash=commit_hash,
            metrics_updated=metrics.is_success if metrics is not None else None,
            docs_generated=docs.is_success if docs is not None else None,
        )

    return [
        ValidatorSpec(
            "metricsUpdate",
            lambda _results: update_project_metrics(env, commit_hash),
            enabled=env.enabled("postCommit", "metrics"),
        ),
        ValidatorSpec(
            "documentation",
            lambda _results: regenerate_documentation(env, files),
            enabled=env.enabled("postCommit", "documentation"),
            timeout_seconds=env.tools.timeout("docs"),
        ),
        ValidatorSpec(
            "contextUpdate",
            lambda _results: register_commit_context(env, commit_hash, files),
            enabled=env.enabled("postCommit", "contextUpdate"),
        ),
        gate_validator(env, Stage.POST_COMMIT, gate_context),
    ]


# -- post-merge ------------------------------------------------------------------


def execute_workflow(env: HookEnvironment) -> ValidationResult:
    result = env.tools.workflow()
    if result is None:
        return ValidationResult.skipped("No workflow command configured")
    if not result.ok:
        detail = result.describe_failure(env.tools.timeout("workflow"))
        return ValidationResult.failed(f"workflow execution failed: {detail}")
    return ValidationResult.passed("BMAD workflow executed successfully")


def validate_repository_state(env: HookEnvironment) -> ValidationResult:
    issues: list[str] = []

    dirty = env.git.status_porcelain()
    if dirty:
        issues.append("Working tree has uncommitted changes")

    diff_check = env.git.diff_check()
    unmerged = CONFLICT_MARKER in diff_check.output
    if unmerged:
        issues.append("Repository has unmerged paths or conflict markers")

    branch = env.git.current_branch()
    if branch is None:
        issues.append("Invalid branch state: HEAD is detached")

    critical = {name: (env.repo_root / name).exists() for name in env.critical_files}
    issues.extend(f"Critical file missing: {name}" for name, ok in critical.items() if not ok)

    fsck = env.git.fsck()
    fsck_errors = not fsck.ok or "error:" in fsck.output
    if fsck_errors:
        issues.append(
            "Repository integrity check found errors"
            if fsck.ok
            else f"Integrity check failed: {fsck.describe_failure(None)}"
        )

    data = {
        "workingTreeClean": not dirty,
        "hasUnmergedPaths": unmerged,
        "branchValid": branch is not None,
        "criticalFiles": critical,
        "integrityCheck": {"hasErrors": fsck_errors},
        "issues": issues,
    }
    if issues:
        return ValidationResult.failed(
            f"repository state validation found {len(issues)} issue(s)",
            remediation="\n".join(issues),
            **data,
        )
    return ValidationResult.passed("Repository state is valid", **data)


def analyze_merge(env: HookEnvironment, merge_type: str) -> ValidationResult:
    previous = env.git.previous_head()
    if previous is not None:
        stat = parse_diff_stat(env.git.diff_stat(previous))
        files = env.git.changed_between(previous)
    else:
        stat = parse_diff_stat("")
        files = ()

    merge_commit: dict[str, str] | None = None
    log = env.git.run("log", "--merges", "-1", "--format=%H%x09%s", check=False)
    if log.ok and log.stdout.strip():
        sha, _, subject = log.stdout.strip().partition("\t")
        merge_commit = {"hash": sha, "message": subject}

    report = merge_analysis(
        merge_type,
        timestamp=format_timestamp(env.clock()),
        files=files,
        stat=stat,
        merge_commit=merge_commit,
    )
    try:
        path = write_json_report(env.repo_root / MERGE_ANALYSIS_PATH, report)
    except OSError as exc:
        return ValidationResult.warning(f"merge analysis failed: {exc}")
    return ValidationResult.passed(
        "Merge analysis report generated",
        reportPath=path.relative_to(env.repo_root).as_posix(),
        statistics=report["statistics"],
    )


def synchronize_personas(env: HookEnvironment) -> ValidationResult:
    report = env.synchronizer.validate_consistency()
    if report.consistent:
        return ValidationResult.passed("Persona context is consistent", report=report.to_dict())
    return ValidationResult.warning(
        "Persona context is out of sync",
        remediation="\n".join(report.recommendations),
        report=report.to_dict(),
    )


def post_merge_validators(env: HookEnvironment, merge_type: str) -> list[ValidatorSpec]:
    def gate_context(results: Mapping[str, ValidationResult]) -> GateContext:
        workflow = results.get("workflow")
        state = results.get("repositoryValidation")
        return GateContext(
            merge_type=merge_type,
            workflow_ok=workflow.is_success if workflow is not None else None,
            workflow_error=workflow.detail if workflow and not workflow.is_success else None,
            repository_state_ok=state.is_success if state is not None else None,
            state_error=state.detail if state and not state.is_success else None,
        )

    return [
        ValidatorSpec(
            "workflow",
            lambda _results: execute_workflow(env),
            enabled=env.enabled("postMerge", "workflow"),
            timeout_seconds=env.tools.timeout("workflow"),
        ),
        ValidatorSpec(
            "repositoryValidation",
            lambda _results: validate_repository_state(env),
            enabled=env.enabled("postMerge", "validation"),
        ),
        ValidatorSpec(
            "mergeAnalysis",
            lambda _results: analyze_merge(env, merge_type),
            enabled=env.enabled("postMerge", "reporting"),
        ),
        ValidatorSpec(
            "personaSync",
            lambda _results: synchronize_personas(env),
            enabled=env.enabled("postMerge", "personaSync"),
        ),
        gate_validator(env, Stage.POST_MERGE, gate_context),
    ]


__all__ = [
    "CONFLICT_MARKER",
    "DOCS_SOURCE_DIRS",
    "DOCS_SOURCE_RE",
    "analyze_merge",
    "documentation_sources",
    "execute_workflow",
    "post_commit_validators",
    "post_merge_validators",
    "register_commit_context",
    "regenerate_documentation",
    "synchronize_personas",
    "update_project_metrics",
    "validate_repository_state",
]
