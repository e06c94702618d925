"""
hookgate — stage reports and post-merge recovery artifacts

File: src/hookgate/pipeline/reports.py
Last updated: 2026-10-19

Purpose
- Turn pipeline outcomes into ``StageReport`` objects and write the JSON artifacts the
  post-merge stage leaves behind: the merge analysis and, after a failed check, the
  recovery report with rollback recommendations and troubleshooting steps.

Functional requirements
- Rollback advice depends on repository context: protected branches get a revert of
  the merge commit, other branches a hard reset to the pre-merge commit; remotes add
  a lease-guarded push, a stash adds ``git stash pop``; ``git reflog`` is always
  offered. When the repository cannot be inspected a single reset is offered.
- Troubleshooting steps are chosen by failure type.
- Report files are written atomically, creating parent directories.

Non-functional requirements
- Report builders are pure; only ``write_json_report`` touches the filesystem.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from hookgate.adapters.git import GitClient, GitCommandError
from hookgate.adapters.tools import DiffStat
from hookgate.domain import (
    Stage,
    StageReport,
    StageState,
    ValidationResult,
    ValidationStatus,
)
from hookgate.pipeline.engine import PipelineOutcome
from hookgate.utils.fs import atomic_write

WORKFLOW_FAILURE: Final[str] = "workflow_execution_failed"
REPOSITORY_FAILURE: Final[str] = "repository_validation_failed"
TEST_FAILURE: Final[str] = "test_suite_failed"
EXECUTION_ERROR: Final[str] = "execution_error"

DIAGNOSTIC_STEPS: Final[Mapping[str, tuple[str, ...]]] = {
    WORKFLOW_FAILURE: (
        "Check if the workflow command is properly configured",
        "Verify all workflow dependencies are installed",
        "Review workflow logs for specific errors",
    ),
    REPOSITORY_FAILURE: (
        "Run git status to check repository state",
        "Check for unmerged files or conflicts",
        "Verify .git directory integrity",
    ),
    TEST_FAILURE: (
        "Run the test suite to see specific test failures",
        "Check if merge introduced breaking changes",
        "Review test output for failure details",
    ),
    EXECUTION_ERROR: (
        "Check git status for repository state",
        "Review error logs for specific issues",
        "Verify all dependencies are installed",
    ),
}
DEFAULT_DIAGNOSTIC_STEPS: Final[tuple[str, ...]] = (
    "Review error message for specific issues",
    "Check system logs for additional context",
    "Verify repository is in a consistent state",
)
_FAILURE_TYPES: Final[Mapping[str, str]] = {
    "workflow": WORKFLOW_FAILURE,
    "repositoryValidation": REPOSITORY_FAILURE,
}


@dataclass(frozen=True, slots=True)
class RollbackRecommendation:
    command: str
    description: str
    warning: str
    priority: str

    def to_dict(self) -> dict[str, str]:
        return {
            "command": self.command,
            "description": self.description,
            "warning": self.warning,
            "priority": self.priority,
        }


FALLBACK_ROLLBACK: Final[RollbackRecommendation] = RollbackRecommendation(
    command="git reset --hard HEAD~1",
    description="Reset to previous commit",
    warning="This will discard the merge",
    priority="high",
)


def stage_report(
    outcome: PipelineOutcome,
    *,
    timestamp: str,
    duration_ms: float,
    recovery: Mapping[str, Any] | None = None,
    warnings: Sequence[str] = (),
) -> StageReport:
    """Fold a pipeline outcome into the final report; non-blocking stages always succeed."""

    return StageReport(
        stage=outcome.stage,
        timestamp=timestamp,
        duration_ms=duration_ms,
        success=outcome.success or not outcome.stage.blocking,
        state=outcome.state,
        results=outcome.results,
        failure_report=outcome.failures,
        remediation=outcome.remediation,
        recovery=recovery,
        warnings=(*outcome.warnings, *warnings),
    )


def error_report(
    stage: Stage,
    error: BaseException,
    *,
    timestamp: str,
    duration_ms: float,
    recovery: Mapping[str, Any] | None = None,
) -> StageReport:
    """Synthetic report for an invocation that raised before producing an outcome."""

    detail = f"{type(error).__name__}: {error}"
    result = ValidationResult.failed(detail)
    return StageReport(
        stage=stage,
        timestamp=timestamp,
        duration_ms=duration_ms,
        success=not stage.blocking,
        state=StageState.FAILED,
        results={"orchestrator": result},
        remediation="Re-run with --verbose and inspect the hook log for the failing step",
        recovery=recovery,
        warnings=(f"{stage.value} hook aborted: {detail}",),
    )


def failure_type(failed: Sequence[str]) -> str:
    for name in failed:
        if name in _FAILURE_TYPES:
            return _FAILURE_TYPES[name]
    return "unknown"


def troubleshooting(
    kind: str, error_message: str, *, failure_count: int = 1
) -> dict[str, Any]:
    steps = DIAGNOSTIC_STEPS.get(kind, DEFAULT_DIAGNOSTIC_STEPS)
    payload: dict[str, Any] = {
        "failureType": kind,
        "errorMessage": error_message,
        "diagnosticSteps": [{"description": step} for step in steps],
    }
    if failure_count > 1:
        payload["multipleFailures"] = True
        payload["failureCount"] = failure_count
    return payload


def rollback_recommendations(
    git: GitClient, protected_branches: Sequence[str]
) -> list[RollbackRecommendation]:
    try:
        head = git.run("rev-parse", "HEAD").stdout.strip()
        previous = git.run("rev-parse", "HEAD~1").stdout.strip()
        branch = git.current_branch()
        has_remote = bool(git.remotes())
        has_stash = bool(git.stash_list())
    except GitCommandError:
        return [FALLBACK_ROLLBACK]

    recommendations: list[RollbackRecommendation] = []
    if branch is not None and branch in protected_branches:
        recommendations.append(
            RollbackRecommendation(
                command=f"git revert -m 1 {head}",
                description="Revert the merge commit (safe for protected branches)",
                warning="This creates a new commit that undoes the merge",
                priority="high",
            )
        )
    else:
        recommendations.append(
            RollbackRecommendation(
                command=f"git reset --hard {previous[:7]}",
                description="Reset to state before merge",
                warning="This will discard the merge. Cannot be undone easily.",
                priority="high",
            )
        )
    if has_remote:
        recommendations.append(
            RollbackRecommendation(
                command="git push --force-with-lease",
                description="Push rollback to remote (if already pushed)",
                warning="Force push affects remote repository. Coordinate with team.",
                priority="medium",
            )
        )
    if has_stash:
        recommendations.append(
            RollbackRecommendation(
                command="git stash pop",
                description="Restore stashed changes after rollback",
                warning="Only if you had stashed changes before merge",
                priority="low",
            )
        )
    recommendations.append(
        RollbackRecommendation(
            command="git reflog",
            description="View recent Git operations to find recovery point",
            warning="Use this to manually identify the correct state to restore",
            priority="low",
        )
    )
    return recommendations


def recovery_report(
    merge_type: str,
    results: Mapping[str, ValidationResult],
    *,
    timestamp: str,
    affected_files: Sequence[str],
    recommendations: Sequence[RollbackRecommendation],
    diagnostics: Mapping[str, Any],
) -> dict[str, Any]:
    failures = [
        {"check": name, "error": result.detail or "Unknown error", "status": result.status.value}
        for name, result in results.items()
        if result.status is ValidationStatus.FAILED
    ]
    return {
        "mergeType": merge_type,
        "failureDetected": True,
        "timestamp": timestamp,
        "affectedFiles": list(affected_files),
        "failureCount": len(failures),
        "failures": failures,
        "recoveryOptions": [
            {"command": item.command, "description": item.description, "priority": item.priority}
            for item in recommendations
        ],
        "troubleshooting": dict(diagnostics),
    }


def merge_analysis(
    merge_type: str,
    *,
    timestamp: str,
    files: Sequence[str],
    stat: DiffStat,
    merge_commit: Mapping[str, str] | None,
) -> dict[str, Any]:
    return {
        "mergeType": merge_type,
        "timestamp": timestamp,
        "filesChanged": list(files),
        "statistics": {
            "filesCount": stat.files_changed,
            "linesAdded": stat.insertions,
            "linesDeleted": stat.deletions,
            "netChange": stat.insertions - stat.deletions,
        },
        "mergeCommit": dict(merge_commit) if merge_commit else None,
    }


def write_json_report(path: Path, payload: Mapping[str, Any]) -> Path:
    atomic_write(path, json.dumps(payload, indent=2) + "\n", create_parents=True)
    return path


__all__ = [
    "DEFAULT_DIAGNOSTIC_STEPS",
    "DIAGNOSTIC_STEPS",
    "EXECUTION_ERROR",
    "FALLBACK_ROLLBACK",
    "REPOSITORY_FAILURE",
    "TEST_FAILURE",
    "WORKFLOW_FAILURE",
    "RollbackRecommendation",
    "error_report",
    "failure_type",
    "merge_analysis",
    "recovery_report",
    "rollback_recommendations",
    "stage_report",
    "troubleshooting",
    "write_json_report",
]
