"""
hookgate — unit tests for the hook orchestrator

File: tests/unit/pipeline/test_orchestrator.py
Last updated: 2026-10-19

Purpose
- Drive whole lifecycle stages through ``HookOrchestrator`` against a fake command
  runner and a ``tmp_path`` repository root.

What this test file should cover
- validate -> recover -> bypass -> report flow on pre-commit and commit-msg.
- Lint recovery re-validates once and then runs the gatekeeper step.
- Approved bypasses waive failures and land in the audit ledger; refusals warn.
- Post stages never block; post-merge failures produce rollback guidance.
- Pre-receive and pre-rebase protections.
- Exceptions become synthetic reports.

Non-functional requirements
- No real subprocesses: every command goes through the recording fake runner.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from hookgate.adapters.process import CommandResult
from hookgate.domain import Stage, StageState, ValidationStatus
from hookgate.pipeline import HookEnvironment
from hookgate.pipeline.engine import EARLIER_FAILURE_REASON
from hookgate.pipeline.orchestrator import HookOrchestrator
from hookgate.pipeline.reports import (
    EXECUTION_ERROR,
    FALLBACK_ROLLBACK,
    REPOSITORY_FAILURE,
    WORKFLOW_FAILURE,
)
from hookgate.policy.bypass import CRITICAL_REASON, DEVELOPMENT_MODE, EMERGENCY_OVERRIDE

if TYPE_CHECKING:
    from tests.conftest import FakeRunner

EnvFactory = Callable[..., HookEnvironment]

CONTEXT_TEXT = (
    "# Active Context\n\n"
    "**Last Updated:** 2026-10-19\n\n"
    "Currently implementing the login form validation.\n"
)
OLD_SHA = "a" * 40
NEW_SHA = "b" * 40


def _write_context(root: Path, text: str = CONTEXT_TEXT) -> None:
    (root / "activeContext.md").write_text(text, encoding="utf-8")


class _FirstCallFails:
    """Runner wrapper: the first command matching ``prefix`` fails, the rest delegate."""

    def __init__(self, delegate: FakeRunner, prefix: Sequence[str]) -> None:
        self.delegate = delegate
        self.prefix = tuple(prefix)
        self.failed = False

    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        args = tuple(argv)
        if not self.failed and args[: len(self.prefix)] == self.prefix:
            self.failed = True
            self.delegate.calls.append(args)
            return CommandResult(
                argv=args, cwd=str(cwd), returncode=1, stdout="2 problems", stderr=""
            )
        return self.delegate(argv, cwd=cwd, timeout=timeout, env=env, input_text=input_text)


class _RaisingRunner:
    """Runner wrapper that raises for one argv prefix."""

    def __init__(self, delegate: FakeRunner, prefix: Sequence[str]) -> None:
        self.delegate = delegate
        self.prefix = tuple(prefix)

    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        if tuple(argv[: len(self.prefix)]) == self.prefix:
            raise RuntimeError("object store unavailable")
        return self.delegate(argv, cwd=cwd, timeout=timeout, env=env, input_text=input_text)


# -- pre-commit ------------------------------------------------------------------


def test_pre_commit_passes_with_clean_tools(
    tmp_path: Path, make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    _write_context(tmp_path)
    fake_runner.on("git", "write-tree", stdout="tree-1\n")

    report = HookOrchestrator(make_env()).pre_commit(["src/app.js", "activeContext.md"])

    assert report.success is True
    assert report.state is StageState.PASSED
    assert report.results["gatekeeper"].status is ValidationStatus.PASSED
    assert fake_runner.ran("npx", "eslint", "--fix", "src/app.js")
    assert (tmp_path / ".git" / "hooks-cache.json").is_file()


def test_fast_test_cache_follows_staged_content(
    tmp_path: Path, make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    _write_context(tmp_path)
    staged = ["src/app.js", "activeContext.md"]
    fake_runner.on("git", "rev-parse", "--verify", "HEAD", stdout="feedface\n")
    fake_runner.on("git", "write-tree", stdout="tree-1\n")
    first = HookOrchestrator(make_env()).pre_commit(staged)

    fake_runner.on("npm", "test", returncode=1, stdout="Tests: 1 failed, 4 passed")
    unchanged = HookOrchestrator(make_env()).pre_commit(staged)

    # the file was edited and re-staged: same HEAD and paths, new index tree
    fake_runner.on("git", "write-tree", stdout="tree-2\n")
    edited = HookOrchestrator(make_env()).pre_commit(staged)

    assert first.results["fastTests"].cached is False
    assert unchanged.results["fastTests"].cached is True
    assert unchanged.success is True
    assert edited.success is False
    assert edited.results["fastTests"].status is ValidationStatus.FAILED
    assert edited.results["fastTests"].cached is False
    assert fake_runner.count("npm", "test") == 2


def test_fast_tests_are_not_cached_without_an_index_tree(
    tmp_path: Path, make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    _write_context(tmp_path)
    fake_runner.on("git", "write-tree", returncode=128, stderr="error: unmerged entries")

    report = HookOrchestrator(make_env()).pre_commit(["src/app.js", "activeContext.md"])

    assert report.results["fastTests"].status is ValidationStatus.PASSED
    assert not (tmp_path / ".git" / "hooks-cache.json").exists()


def test_pre_commit_lint_failure_blocks_after_failed_auto_fix(
    tmp_path: Path, make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    _write_context(tmp_path)
    fake_runner.on("npx", "eslint", returncode=1, stdout="src/app.js: 2 problems")

    report = HookOrchestrator(make_env()).pre_commit(["src/app.js", "activeContext.md"])

    assert report.success is False
    assert report.failed_validators == ("linting",)
    assert report.results["linting"].detail.startswith("lint errors found")
    assert report.results["gatekeeper"].detail == EARLIER_FAILURE_REASON
    assert report.recovery is not None
    attempt = report.recovery["attempts"][0]
    assert attempt["validator"] == "linting"
    assert attempt["category"] == "LINT_ERROR"
    assert attempt["reason"] == "Auto-fix failed"
    assert "revalidated" not in attempt
    assert report.remediation is not None


def test_pre_commit_lint_recovery_revalidates_and_runs_gate(
    tmp_path: Path, make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    _write_context(tmp_path)
    runner = _FirstCallFails(fake_runner, ("npx", "eslint"))

    report = HookOrchestrator(make_env(runner=runner)).pre_commit(
        ["src/app.js", "activeContext.md"]
    )

    assert report.success is True
    assert report.results["linting"].status is ValidationStatus.PASSED
    assert report.results["gatekeeper"].status is ValidationStatus.PASSED
    assert report.recovery is not None
    attempt = report.recovery["attempts"][0]
    assert attempt["successful"] is True
    assert attempt["revalidated"] == "passed"
    # initial lint, auto-fix, re-validation
    assert fake_runner.count("npx", "eslint") == 3


def test_pre_commit_code_without_context_update_fails(
    make_env: EnvFactory,
) -> None:
    report = HookOrchestrator(make_env()).pre_commit(["src/app.py"])

    result = report.results["contextValidation"]
    assert result.status is ValidationStatus.FAILED
    assert result.detail == "Code changes detected but activeContext.md not updated"
    assert report.success is False


def test_emergency_bypass_waives_lint_failure_and_is_audited(
    tmp_path: Path, make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    _write_context(tmp_path)
    fake_runner.on("npx", "eslint", returncode=1, stdout="2 problems")
    env = make_env(environ={"BMAD_EMERGENCY_BYPASS": "true", "USER": "dana"})

    report = HookOrchestrator(env).pre_commit(["src/app.js", "activeContext.md"])

    linting = report.results["linting"]
    assert report.success is True
    assert report.state is StageState.WAIVED
    assert linting.status is ValidationStatus.WAIVED
    assert linting.detail.startswith(f"bypassed via {EMERGENCY_OVERRIDE}: lint errors found")
    assert "BMAD_EMERGENCY_BYPASS" in linting.data["bypassReason"]

    trail = env.ledger.read_trail()
    assert len(trail) == 1
    assert trail[0].bypass_method == EMERGENCY_OVERRIDE
    assert trail[0].error_category == "LINT_ERROR"
    assert trail[0].actor == "dana"
    assert env.ledger.path == tmp_path.resolve() / ".git" / "hooks" / "audit.log"


def test_bypass_is_refused_for_test_failures(
    make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    fake_runner.on("npm", "test", returncode=1, stdout="Tests: 2 failed, 5 passed")
    env = make_env(environ={"BMAD_EMERGENCY_BYPASS": "true"})

    report = HookOrchestrator(env).pre_commit(["docs/notes.txt"])

    assert report.success is False
    assert report.failed_validators == ("fastTests",)
    assert f"bypass via {EMERGENCY_OVERRIDE} refused: {CRITICAL_REASON}" in report.warnings
    assert env.ledger.read_trail() == []


def test_pre_commit_crash_becomes_failed_report(
    make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    runner = _RaisingRunner(fake_runner, ("git", "diff", "--cached"))

    report = HookOrchestrator(make_env(runner=runner)).pre_commit()

    assert report.success is False
    assert list(report.results) == ["orchestrator"]
    assert report.warnings[0].startswith("pre-commit hook aborted: RuntimeError")


def test_each_stage_writes_a_run_report(tmp_path: Path, make_env: EnvFactory) -> None:
    orchestrator = HookOrchestrator(make_env(), invocation_id="run42")

    report = orchestrator.commit_msg("fixed stuff")

    path = orchestrator.run_report_path(Stage.COMMIT_MSG)
    assert path == tmp_path.resolve() / ".git" / "hooks" / "reports" / "commit-msg-run42.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["invocationId"] == "run42"
    assert payload["report"] == json.loads(json.dumps(report.to_dict()))
    assert payload["metrics"]["executions"][0]["stage"] == "commit-msg"
    assert payload["metrics"]["executions"][0]["success"] is False
    assert not list(path.parent.glob("*.tmp"))


def test_crashed_stage_still_writes_a_run_report(
    make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    runner = _RaisingRunner(fake_runner, ("git", "diff", "--cached"))
    orchestrator = HookOrchestrator(make_env(runner=runner), invocation_id="boom")

    orchestrator.pre_commit()

    payload = json.loads(
        orchestrator.run_report_path("pre-commit").read_text(encoding="utf-8")
    )
    assert list(payload["report"]["results"]) == ["orchestrator"]


# -- commit-msg ------------------------------------------------------------------


def test_commit_msg_accepts_bmad_message_with_advisory_context_warning(
    make_env: EnvFactory,
) -> None:
    report = HookOrchestrator(make_env()).commit_msg(
        "[DEVELOPER] [STEP-001] Add login form validation\n\nDetails follow.\n"
    )

    assert report.success is True
    assert report.results["messageValidation"].status is ValidationStatus.PASSED
    assert report.results["contextValidation"].data["advisory"] is True
    assert any("activeContext.md not found" in warning for warning in report.warnings)
    assert report.results["gatekeeper"].status is ValidationStatus.PASSED


def test_commit_msg_rejects_free_form_message(make_env: EnvFactory) -> None:
    report = HookOrchestrator(make_env()).commit_msg("fixed stuff")

    assert report.success is False
    assert report.failed_validators == ("messageValidation",)
    assert report.results["messageValidation"].detail.startswith("invalid commit message")
    assert report.results["contextValidation"].status is ValidationStatus.SKIPPED
    assert report.failure_report[0].category.value == "INVALID_COMMIT_MESSAGE"
    assert report.recovery is None


def test_commit_msg_wip_prefix_bypasses_in_development_mode(make_env: EnvFactory) -> None:
    env = make_env({"gatekeeper": {"developmentMode": True}})

    report = HookOrchestrator(env).commit_msg("WIP: half done")

    assert report.success is True
    assert report.results["messageValidation"].status is ValidationStatus.WAIVED
    assert env.ledger.read_trail()[-1].bypass_method == DEVELOPMENT_MODE


def test_run_stage_dispatches_by_stage_name(make_env: EnvFactory) -> None:
    report = HookOrchestrator(make_env()).run_stage("commit-msg", message="feat(api): add route")

    assert report.stage is Stage.COMMIT_MSG
    assert report.success is True


# -- post stages -----------------------------------------------------------------


def test_post_commit_never_blocks(
    tmp_path: Path, make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    fake_runner.on("git", "diff-tree", stdout="src/app.js\n")
    fake_runner.on("git", "show", "--stat", stdout=" 1 file changed, 4 insertions(+)\n")
    fake_runner.on("npm", "run", "bmad:docs", returncode=1, stderr="generator crashed")

    report = HookOrchestrator(make_env()).post_commit("c0ffee")

    assert report.success is True
    assert report.results["documentation"].status is ValidationStatus.FAILED
    assert report.results["metricsUpdate"].status is ValidationStatus.PASSED
    metrics = json.loads(
        (tmp_path / ".github" / "metrics" / "project-metrics.json").read_text(encoding="utf-8")
    )
    assert metrics["totalCommits"] == 1
    assert metrics["totalLinesAdded"] == 4


def test_post_merge_workflow_failure_writes_recovery_report(
    tmp_path: Path, make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    fake_runner.on("npm", "run", "bmad:workflow", returncode=2, stderr="missing step")
    fake_runner.on("git", "rev-parse", "HEAD~1", stdout="1234567890abcdef\n")

    report = HookOrchestrator(make_env()).post_merge("fast-forward")

    assert report.success is True
    assert report.results["workflow"].detail.startswith("workflow execution failed")
    assert report.recovery is not None
    diagnostics = report.recovery["troubleshooting"]
    assert diagnostics["failureType"] == WORKFLOW_FAILURE
    assert diagnostics["multipleFailures"] is True
    commands = [item["command"] for item in report.recovery["rollbackRecommendations"]]
    assert commands[0] == "git reset --hard 1234567"
    assert commands[-1] == "git reflog"
    assert report.recovery["reportPath"] == ".github/reports/recovery-report.json"

    written = json.loads(
        (tmp_path / ".github" / "reports" / "recovery-report.json").read_text(encoding="utf-8")
    )
    assert written["mergeType"] == "fast-forward"
    assert [failure["check"] for failure in written["failures"]] == [
        "workflow",
        "repositoryValidation",
    ]
    assert (tmp_path / ".github" / "reports" / "merge-analysis.json").is_file()


def test_post_merge_repository_failure_on_protected_branch_recommends_revert(
    make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    fake_runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main\n")
    fake_runner.on("git", "rev-parse", "HEAD", stdout="feedface\n")
    fake_runner.on("git", "remote", stdout="origin\n")

    report = HookOrchestrator(make_env()).post_merge()

    assert report.results["workflow"].status is ValidationStatus.PASSED
    assert report.results["repositoryValidation"].status is ValidationStatus.FAILED
    assert report.recovery is not None
    assert report.recovery["troubleshooting"]["failureType"] == REPOSITORY_FAILURE
    commands = [item["command"] for item in report.recovery["rollbackRecommendations"]]
    assert commands == ["git revert -m 1 feedface", "git push --force-with-lease", "git reflog"]


def test_post_merge_unresolvable_head_falls_back_to_reset(
    make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    fake_runner.on("git", "rev-parse", "HEAD~1", returncode=128, stderr="unknown revision")

    report = HookOrchestrator(make_env()).post_merge()

    assert report.recovery is not None
    assert report.recovery["rollbackRecommendations"] == [FALLBACK_ROLLBACK.to_dict()]


def test_post_merge_crash_still_reports_success_with_fallback(
    make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    runner = _RaisingRunner(fake_runner, ("git", "rev-parse", "HEAD~1"))

    report = HookOrchestrator(make_env(runner=runner)).post_merge()

    assert report.success is True
    assert list(report.results) == ["orchestrator"]
    assert report.warnings[0].startswith("post-merge hook aborted: RuntimeError")
    assert report.recovery is not None
    assert report.recovery["rollbackRecommendations"] == [FALLBACK_ROLLBACK.to_dict()]
    assert report.recovery["troubleshooting"]["failureType"] == EXECUTION_ERROR


def test_post_checkout_file_checkout_is_skipped(make_env: EnvFactory) -> None:
    report = HookOrchestrator(make_env()).post_checkout("abc", "def", "0")

    assert report.success is True
    assert report.results["checkout"].status is ValidationStatus.SKIPPED


# -- pre-rebase / pre-receive ----------------------------------------------------


def test_pre_rebase_refuses_protected_branch(
    make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    fake_runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main\n")

    report = HookOrchestrator(make_env()).pre_rebase("origin/main")

    assert report.success is False
    assert report.results["rebaseSafety"].detail == "rebase of protected branch main refused"
    assert not fake_runner.ran("git", "status")


def test_pre_rebase_refuses_dirty_tree(make_env: EnvFactory, fake_runner: FakeRunner) -> None:
    fake_runner.on("git", "status", "--porcelain", stdout=" M src/app.js\n?? notes.txt\n")

    report = HookOrchestrator(make_env()).pre_rebase("origin/main", "feature/login")

    assert report.success is False
    assert "2 uncommitted change(s)" in report.results["rebaseSafety"].detail


def test_pre_receive_rejects_invalid_commit_subjects(
    make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    fake_runner.on(
        "git",
        "rev-list",
        stdout=(
            f"commit {NEW_SHA}\n{NEW_SHA}\tfixed stuff\n"
            f"commit {OLD_SHA}\n{OLD_SHA}\tfeat(api): add route\n"
        ),
    )

    report = HookOrchestrator(make_env()).pre_receive(
        [(OLD_SHA, NEW_SHA, "refs/heads/feature/login")]
    )

    result = report.results["refUpdate:refs/heads/feature/login"]
    assert report.success is False
    assert result.data["invalidCommits"] == ["bbbbbbbb fixed stuff"]
    assert report.failure_report[0].category.value == "INVALID_COMMIT_MESSAGE"


def test_pre_receive_rejects_protected_non_fast_forward(
    make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    fake_runner.on("git", "merge-base", "--is-ancestor", returncode=1)

    report = HookOrchestrator(make_env()).pre_receive([(OLD_SHA, NEW_SHA, "refs/heads/main")])

    assert report.success is False
    assert report.results["refUpdate:refs/heads/main"].detail == (
        "non-fast-forward update of protected branch main refused"
    )
    assert not fake_runner.ran("git", "rev-list")


def test_pre_receive_accepts_feature_branch_creation(
    make_env: EnvFactory, fake_runner: FakeRunner
) -> None:
    fake_runner.on("git", "rev-list", stdout=f"commit {NEW_SHA}\n{NEW_SHA}\tfeat: add login\n")

    report = HookOrchestrator(make_env()).pre_receive(
        [("0" * 40, NEW_SHA, "refs/heads/feature/login")]
    )

    assert report.success is True
    assert ("git", "rev-list", "--max-count=100", "--format=%H%x09%s", NEW_SHA) in (
        fake_runner.calls
    )
    assert report.results["gatekeeper"].status is ValidationStatus.PASSED


def test_pre_receive_without_updates_is_skipped(make_env: EnvFactory) -> None:
    report = HookOrchestrator(make_env()).pre_receive([])

    assert report.success is True
    assert report.state is StageState.SKIPPED
    assert report.results == {}
