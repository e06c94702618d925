"""
hookgate — unit tests for the per-stage gatekeeper

File: tests/unit/policy/test_gatekeeper.py
Last updated: 2026-10-19

Purpose
- Verify gate verdicts for each lifecycle stage given the facts the orchestrator
  already established.

What this test file should cover
- Development-mode waiver.
- Pre-commit, commit-msg, pre-push, pre-rebase and pre-receive error paths.
- Post stages always pass, recording warnings only.
- External gate command: rejection and waiver.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from hookgate.adapters.tools import ToolRunner
from hookgate.domain import Stage
from hookgate.policy.gatekeeper import (
    GateContext,
    Gatekeeper,
    GateStatus,
    gate_issues_text,
    is_gate_message,
)

if TYPE_CHECKING:
    from tests.conftest import FakeRunner


def test_waiver_requires_dev_mode_and_bypass() -> None:
    waived = Gatekeeper(development_mode=True, bypass_enabled=True).evaluate(
        Stage.PRE_COMMIT, GateContext(lint_ok=False)
    )
    dev_only = Gatekeeper(development_mode=True, bypass_enabled=False).evaluate(
        Stage.PRE_COMMIT, GateContext(lint_ok=False)
    )

    assert waived.gate is GateStatus.WAIVED
    assert waived.passed is True
    assert waived.waiver is not None
    assert waived.waiver.reason == "Development mode bypass enabled"
    assert waived.to_dict()["waiver"]["active"] is True
    assert dev_only.gate is GateStatus.FAIL


def test_pre_commit_without_staged_files_only_warns() -> None:
    decision = Gatekeeper().evaluate(Stage.PRE_COMMIT, GateContext(staged_files=()))

    assert decision.gate is GateStatus.PASS
    assert [issue.type for issue in decision.warnings] == ["NO_STAGED_FILES"]
    assert decision.summary == "pre-commit hook validation passed with 1 warning(s)"


def test_pre_commit_failures_become_errors() -> None:
    decision = Gatekeeper().evaluate(
        Stage.PRE_COMMIT,
        GateContext(
            staged_files=("src/a.ts",),
            lint_ok=False,
            tests_ok=True,
            context_updated=False,
        ),
    )

    assert decision.gate is GateStatus.FAIL
    assert [issue.type for issue in decision.errors] == [
        "LINTING_ERROR",
        "CONTEXT_UPDATE_ERROR",
    ]
    assert gate_issues_text(decision.errors) == (
        "Code linting failed; Code changes require activeContext.md update"
    )
    assert decision.summary == "pre-commit hook validation failed with 2 error(s)"


def test_commit_msg_shapes() -> None:
    gate = Gatekeeper()

    good = gate.evaluate(
        Stage.COMMIT_MSG,
        GateContext(
            message="[DEVELOPER] [STEP-001] Add auth\n\nbody",
            persona="DEVELOPER",
            step_id="STEP-001",
        ),
    )
    bad = gate.evaluate(Stage.COMMIT_MSG, GateContext(message="fixed stuff"))
    empty = gate.evaluate(Stage.COMMIT_MSG, GateContext(message=""))

    assert good.gate is GateStatus.PASS
    assert good.hook_specific == {"persona": "DEVELOPER", "stepId": "STEP-001"}
    assert bad.errors[0].type == "COMMIT_FORMAT_ERROR"
    assert empty.errors[0].type == "MISSING_COMMIT_MESSAGE"


def test_gate_message_recognizes_both_formats() -> None:
    assert is_gate_message("[QA] [TEST-12] Cover edge cases")
    assert is_gate_message("feat(api): add endpoint")
    assert not is_gate_message("fix bug")


def test_pre_push_coverage_and_security() -> None:
    decision = Gatekeeper().evaluate(
        Stage.PRE_PUSH,
        GateContext(
            branch="feature/x",
            remote="origin",
            tests_ok=True,
            coverage_lines=72.0,
            coverage_threshold=80.0,
            build_ok=True,
            vulnerabilities=2,
            vulnerability_severity="moderate",
        ),
    )

    assert decision.gate is GateStatus.FAIL
    assert [issue.type for issue in decision.errors] == ["COVERAGE_ERROR"]
    assert [issue.type for issue in decision.warnings] == ["SECURITY_WARNING"]


def test_pre_push_high_vulnerabilities_fail() -> None:
    decision = Gatekeeper().evaluate(
        Stage.PRE_PUSH,
        GateContext(
            branch="main", remote="origin", vulnerabilities=1, vulnerability_severity="high"
        ),
    )

    assert decision.gate is GateStatus.FAIL
    assert decision.errors[0].type == "SECURITY_ERROR"


def test_post_stages_always_pass() -> None:
    gate = Gatekeeper()

    post_commit = gate.evaluate(
        Stage.POST_COMMIT, GateContext(metrics_updated=False, docs_generated=False)
    )
    post_checkout = gate.evaluate(Stage.POST_CHECKOUT, GateContext(context_restored=False))

    assert post_commit.gate is GateStatus.PASS
    assert {issue.type for issue in post_commit.warnings} == {
        "MISSING_COMMIT_HASH",
        "METRICS_WARNING",
        "DOCS_WARNING",
    }
    assert post_checkout.gate is GateStatus.PASS
    assert "CONTEXT_WARNING" in {issue.type for issue in post_checkout.warnings}


def test_post_merge_workflow_failure_fails_gate() -> None:
    decision = Gatekeeper().evaluate(
        Stage.POST_MERGE,
        GateContext(merge_type="merge", workflow_ok=False, workflow_error="exit code 2"),
    )

    assert decision.gate is GateStatus.FAIL
    assert decision.errors[0].details == "exit code 2"


def test_pre_rebase_requires_both_branches() -> None:
    gate = Gatekeeper()

    missing = gate.evaluate(Stage.PRE_REBASE, GateContext(source_branch="feature"))
    unsafe = gate.evaluate(
        Stage.PRE_REBASE,
        GateContext(
            source_branch="main",
            target_branch="origin/main",
            rebase_safe=False,
            rebase_reason="Rebasing protected branch main is not allowed",
        ),
    )

    assert missing.errors[0].type == "MISSING_REBASE_INFO"
    assert unsafe.gate is GateStatus.FAIL
    assert unsafe.errors[0].type == "REBASE_SAFETY_ERROR"


def test_pre_receive_checks() -> None:
    gate = Gatekeeper()
    old, new = "a" * 40, "b" * 40

    missing = gate.evaluate(Stage.PRE_RECEIVE, GateContext(old_commit=old))
    invalid = gate.evaluate(
        Stage.PRE_RECEIVE,
        GateContext(
            old_commit=old,
            new_commit=new,
            ref_name="refs/heads/feature",
            commits_valid=False,
            invalid_commits=("1234567",),
        ),
    )
    protected = gate.evaluate(
        Stage.PRE_RECEIVE,
        GateContext(
            old_commit=old,
            new_commit=new,
            ref_name="refs/heads/main",
            commits_valid=True,
            branch_protected=True,
        ),
    )

    assert missing.errors[0].type == "MISSING_RECEIVE_INFO"
    assert invalid.errors[0].type == "COMMIT_VALIDATION_ERROR"
    assert invalid.errors[0].details == "1234567"
    assert [issue.type for issue in protected.errors] == ["BRANCH_PROTECTION_ERROR"]


def _gate_tools(tmp_path: Path, runner: FakeRunner) -> ToolRunner:
    return ToolRunner(
        tmp_path,
        commands={"gatekeeper": "./scripts/gate"},
        timeouts={"workflow": 10.0},
        runner=runner,
    )


def test_external_gate_rejection(tmp_path: Path, fake_runner: FakeRunner) -> None:
    fake_runner.on("./scripts/gate", returncode=3, stderr="policy violated")
    gate = Gatekeeper(tools=_gate_tools(tmp_path, fake_runner))

    decision = gate.evaluate(Stage.PRE_PUSH, GateContext(branch="main", remote="origin"))

    assert fake_runner.calls == [("./scripts/gate", "pre-push")]
    assert decision.gate is GateStatus.FAIL
    assert decision.errors[0].type == "EXTERNAL_GATE_FAILED"
    assert "policy violated" in (decision.errors[0].details or "")


def test_external_gate_waiver(tmp_path: Path, fake_runner: FakeRunner) -> None:
    fake_runner.on("./scripts/gate", stdout="gate WAIVED by release manager")
    gate = Gatekeeper(tools=_gate_tools(tmp_path, fake_runner))

    decision = gate.evaluate(Stage.PRE_PUSH, GateContext(branch="main", remote="origin"))

    assert decision.gate is GateStatus.WAIVED
    assert decision.waiver is not None
    assert decision.waiver.approved_by == "External gatekeeper"
