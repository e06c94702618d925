"""
hookgate — remote CI workflow inspection

File: src/hookgate/adapters/ci_workflows.py
Last updated: 2026-10-19

Purpose
- Read ``.github/workflows/*.yml`` and reduce each workflow to the four booleans the
  gate cares about: does remote CI lint, test, build and audit?
- Compare those booleans with the local hook configuration.

Functional requirements
- Unreadable or malformed workflow files are reported, not raised.
- Comparison emits ``missing_workflows``, ``missing_remote_validation`` and
  ``missing_local_validation`` inconsistencies.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

import yaml

from hookgate.constants import CI_WORKFLOWS_DIR

REMOTE_PROTECTED_BRANCHES: Final[tuple[str, ...]] = ("main", "develop", "master")


@dataclass(frozen=True, slots=True)
class RemoteValidation:
    linting: bool = False
    testing: bool = False
    build: bool = False
    security: bool = False

    def merge(self, other: RemoteValidation) -> RemoteValidation:
        return RemoteValidation(
            linting=self.linting or other.linting,
            testing=self.testing or other.testing,
            build=self.build or other.build,
            security=self.security or other.security,
        )

    def to_dict(self) -> dict[str, bool]:
        return {
            "linting": self.linting,
            "testing": self.testing,
            "build": self.build,
            "security": self.security,
        }


@dataclass(frozen=True, slots=True)
class Inconsistency:
    type: str
    message: str
    validation: str | None = None
    severity: str = "warning"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "message": self.message,
            "severity": self.severity,
        }
        if self.validation is not None:
            payload["validation"] = self.validation
        return payload


@dataclass(frozen=True, slots=True)
class WorkflowScan:
    workflows: Mapping[str, RemoteValidation] = field(default_factory=dict)
    errors: Mapping[str, str] = field(default_factory=dict)

    @property
    def aggregated(self) -> RemoteValidation:
        total = RemoteValidation()
        for name in sorted(self.workflows):
            total = total.merge(self.workflows[name])
        return total


def scan_workflows(repo_root: Path | str) -> WorkflowScan:
    directory = Path(repo_root) / CI_WORKFLOWS_DIR
    if not directory.is_dir():
        return WorkflowScan()

    workflows: dict[str, RemoteValidation] = {}
    errors: dict[str, str] = {}
    for path in sorted([*directory.glob("*.yml"), *directory.glob("*.yaml")]):
        try:
            document = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            errors[path.name] = f"{type(exc).__name__}: {exc}"
            continue
        workflows[path.name] = detect_validation_steps(document)
    return WorkflowScan(workflows=workflows, errors=errors)


def detect_validation_steps(document: object) -> RemoteValidation:
    """Classify workflow steps by their ``name`` and ``run`` text."""

    if not isinstance(document, Mapping):
        return RemoteValidation()
    jobs = document.get("jobs")
    if not isinstance(jobs, Mapping):
        return RemoteValidation()

    found = RemoteValidation()
    for job in jobs.values():
        steps = job.get("steps") if isinstance(job, Mapping) else None
        if not isinstance(steps, list):
            continue
        for step in steps:
            if not isinstance(step, Mapping):
                continue
            name = str(step.get("name") or "").lower()
            run = str(step.get("run") or "").lower()
            found = found.merge(
                RemoteValidation(
                    linting="lint" in name or "npm run lint" in run,
                    testing="test" in name or "npm test" in run or "npm run test" in run,
                    build="build" in name or "npm run build" in run,
                    security="audit" in name or "security" in name or "npm audit" in run,
                )
            )
    return found


def compare_with_local(
    config: Mapping[str, Any], scan: WorkflowScan
) -> tuple[Inconsistency, ...]:
    if not scan.workflows:
        return (Inconsistency("missing_workflows", "No GitHub Actions workflows found"),)

    remote = scan.aggregated
    pre_commit = config.get("preCommit", {})
    pre_push = config.get("prePush", {})
    local = {
        "linting": bool(pre_commit.get("linting", False)),
        "testing": bool(pre_commit.get("testing", False)),
        "build": bool(pre_push.get("build", False)),
        "security": bool(pre_push.get("security", False)),
    }
    labels = {
        "linting": "Linting",
        "testing": "Testing",
        "build": "Build validation",
        "security": "Security audit",
    }

    found: list[Inconsistency] = []
    for key, remote_enabled in remote.to_dict().items():
        if local[key] and not remote_enabled:
            found.append(
                Inconsistency(
                    "missing_remote_validation",
                    f"{labels[key]} enabled locally but not in GitHub Actions",
                    validation=key,
                )
            )
        elif remote_enabled and not local[key]:
            found.append(
                Inconsistency(
                    "missing_local_validation",
                    f"{labels[key]} runs in GitHub Actions but is disabled locally",
                    validation=key,
                )
            )
    return tuple(found)


def remote_will_run(branch: str | None) -> bool:
    if not branch:
        return False
    return branch in REMOTE_PROTECTED_BRANCHES or branch.startswith("feature/")


def validation_recommendation(
    will_run_remote: bool, inconsistencies: tuple[Inconsistency, ...]
) -> dict[str, str]:
    if not will_run_remote:
        return {
            "level": "comprehensive",
            "reason": "GitHub Actions will not run for this branch - comprehensive local "
            "validation required",
        }
    if inconsistencies:
        return {
            "level": "comprehensive",
            "reason": "Configuration inconsistencies detected - comprehensive local "
            "validation recommended",
        }
    return {
        "level": "standard",
        "reason": "GitHub Actions will run and configurations are consistent - standard "
        "validation sufficient",
    }


__all__ = [
    "REMOTE_PROTECTED_BRANCHES",
    "Inconsistency",
    "RemoteValidation",
    "WorkflowScan",
    "compare_with_local",
    "detect_validation_steps",
    "remote_will_run",
    "scan_workflows",
    "validation_recommendation",
]
