"""
hookgate — unit tests for CI workflow inspection

File: tests/unit/adapters/test_ci_workflows.py
Last updated: 2026-10-19

Purpose
- Verify workflow scanning, validation step detection and the comparison with the
  local hook configuration.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from hookgate.adapters.ci_workflows import (
    RemoteValidation,
    WorkflowScan,
    compare_with_local,
    detect_validation_steps,
    remote_will_run,
    scan_workflows,
    validation_recommendation,
)
from hookgate.config import default_config, merge_config

CI_YAML = """\
name: ci
on: [push]
jobs:
  check:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
      - name: Lint
        run: npm run lint
      - run: npm test -- --ci
"""

RELEASE_YAML = """\
name: release
jobs:
  publish:
    steps:
      - name: Security scan
        run: npm audit --audit-level=high
"""


def _write_workflow(root: Path, name: str, text: str) -> None:
    directory = root / ".github" / "workflows"
    directory.mkdir(parents=True, exist_ok=True)
    (directory / name).write_text(text, encoding="utf-8")


def test_scan_merges_workflows_and_reports_bad_yaml(tmp_path: Path) -> None:
    _write_workflow(tmp_path, "ci.yml", CI_YAML)
    _write_workflow(tmp_path, "release.yaml", RELEASE_YAML)
    _write_workflow(tmp_path, "broken.yml", "jobs: [unclosed\n")

    scan = scan_workflows(tmp_path)

    assert sorted(scan.workflows) == ["ci.yml", "release.yaml"]
    assert scan.workflows["ci.yml"] == RemoteValidation(linting=True, testing=True)
    assert scan.aggregated.to_dict() == {
        "linting": True,
        "testing": True,
        "build": False,
        "security": True,
    }
    assert list(scan.errors) == ["broken.yml"]


def test_scan_without_directory_is_empty(tmp_path: Path) -> None:
    assert scan_workflows(tmp_path) == WorkflowScan()


@pytest.mark.parametrize("document", [None, "text", {"jobs": []}, {"jobs": {"a": {"steps": 3}}}])
def test_detect_tolerates_odd_documents(document: object) -> None:
    assert detect_validation_steps(document) == RemoteValidation()


def test_compare_reports_both_directions() -> None:
    config = merge_config(default_config(), {"prePush": {"build": True, "security": False}})
    scan = WorkflowScan(
        workflows={"ci.yml": RemoteValidation(linting=True, testing=True, security=True)}
    )

    found = compare_with_local(config, scan)

    assert [(item.type, item.validation) for item in found] == [
        ("missing_remote_validation", "build"),
        ("missing_local_validation", "security"),
    ]
    assert found[0].to_dict() == {
        "type": "missing_remote_validation",
        "message": "Build validation enabled locally but not in GitHub Actions",
        "severity": "warning",
        "validation": "build",
    }


def test_compare_without_workflows() -> None:
    (only,) = compare_with_local(default_config(), WorkflowScan())

    assert only.type == "missing_workflows"
    assert "validation" not in only.to_dict()


@pytest.mark.parametrize(
    ("branch", "expected"),
    [
        ("main", True),
        ("develop", True),
        ("feature/login", True),
        ("hotfix/x", False),
        (None, False),
    ],
)
def test_remote_will_run(branch: str | None, expected: bool) -> None:
    assert remote_will_run(branch) is expected


def test_validation_recommendation_levels() -> None:
    scan = WorkflowScan()
    inconsistencies = compare_with_local(default_config(), scan)

    assert validation_recommendation(False, ())["level"] == "comprehensive"
    assert validation_recommendation(True, inconsistencies)["level"] == "comprehensive"
    assert validation_recommendation(True, ())["level"] == "standard"
