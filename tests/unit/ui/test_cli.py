"""
hookgate — unit tests for the CLI router

File: tests/unit/ui/test_cli.py
Last updated: 2026-10-19

Purpose
- Exercise the maintenance commands and the exit-code contract in-process, without
  launching any hook stage that would spawn external tools.

What this test file should cover
- ``pre-receive`` stdin parsing.
- ``classify``, ``audit``, ``config`` and ``metrics`` in JSON and text modes.
- Usage errors and maintenance-command config errors map to exit code 2.
- An unreadable config turns a hook stage into a failed report: exit 1 for blocking
  stages, exit 0 for post stages.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from hookgate.domain import ErrorCategory, Stage
from hookgate.main import ExitCode, cli_entrypoint
from hookgate.policy.bypass import BYPASS_METHODS, CRITICAL_REASON, AuditLedger
from hookgate.policy.classifier import classify
from hookgate.ui.cli import CLIError, parse_ref_updates, run_cli

OLD = "a" * 40
NEW = "b" * 40


def _json_out(capsys: pytest.CaptureFixture[str]) -> dict[str, object]:
    return json.loads(capsys.readouterr().out)


def test_parse_ref_updates_skips_blank_lines() -> None:
    text = f"{OLD} {NEW} refs/heads/main\n\n{'0' * 40} {NEW} refs/heads/feature/x\n"

    assert parse_ref_updates(text) == [
        (OLD, NEW, "refs/heads/main"),
        ("0" * 40, NEW, "refs/heads/feature/x"),
    ]


def test_parse_ref_updates_rejects_malformed_lines() -> None:
    with pytest.raises(CLIError) as excinfo:
        parse_ref_updates(f"{OLD} refs/heads/main\n")

    assert excinfo.value.exit_code == 2
    assert "malformed ref update on line 1" in str(excinfo.value)


def test_classify_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = run_cli(["classify", "lint error in src/a.ts", "--repo-root", str(tmp_path), "--json"])

    payload = _json_out(capsys)
    assert code == 0
    assert payload["command"] == "classify"
    classification = payload["classification"]
    assert classification["category"] == ErrorCategory.LINT_ERROR.value  # type: ignore[index]
    assert payload["bypass"]["available"] is True  # type: ignore[index]


def test_classify_text_reports_critical_errors(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(
        ["classify", "unit test failed", "--stage", "pre-push", "--repo-root", str(tmp_path)]
    )

    err = capsys.readouterr().err
    assert code == 0
    assert "PRE-PUSH HOOK ERROR" in err
    assert f"Bypass: {CRITICAL_REASON}" in err


def test_audit_lists_recorded_bypasses(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    ledger = AuditLedger(tmp_path / ".git" / "hooks" / "audit.log", environ={"USER": "dana"})
    method = BYPASS_METHODS[0].name
    classification = classify("lint error", Stage.PRE_COMMIT)
    ledger.record_bypass(Stage.PRE_COMMIT, classification, method, "hotfix")
    capsys.readouterr()

    assert run_cli(["audit", "--repo-root", str(tmp_path), "--json"]) == 0
    (entry,) = _json_out(capsys)["entries"]  # type: ignore[misc]
    assert entry["actor"] == "dana"
    assert entry["bypassMethod"] == method

    assert run_cli(["audit", "--repo-root", str(tmp_path), "--verbose"]) == 0
    err = capsys.readouterr().err
    assert "dana" in err
    assert "hotfix" in err


def test_audit_without_ledger(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["audit", "--repo-root", str(tmp_path)]) == 0
    assert "No bypasses recorded." in capsys.readouterr().err


def test_config_reports_validity(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["config", "--repo-root", str(tmp_path), "--json"]) == 0
    assert _json_out(capsys)["valid"] is True

    (tmp_path / ".hookgate.json").write_text(
        json.dumps({"gatekeeper": {"strictMode": "yes"}}), encoding="utf-8"
    )
    assert run_cli(["config", "--repo-root", str(tmp_path), "--json"]) == 2
    payload = _json_out(capsys)
    assert payload["config"] is None
    (issue,) = payload["issues"]  # type: ignore[misc]
    assert issue["path"] == "gatekeeper.strictMode"
    assert issue["message"] == "expected boolean, got str"


def test_metrics_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["metrics", "--repo-root", str(tmp_path), "--json"]) == 0
    assert _json_out(capsys)["metrics"] is None

    metrics = tmp_path / ".github" / "metrics" / "project-metrics.json"
    metrics.parent.mkdir(parents=True)
    metrics.write_text(json.dumps({"totalCommits": 3}), encoding="utf-8")

    assert run_cli(["metrics", "--repo-root", str(tmp_path)]) == 0
    assert "totalCommits: 3" in capsys.readouterr().err


def test_unreadable_config_fails_blocking_stage_with_report(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / ".hookgate.json").write_text("{broken", encoding="utf-8")

    code = cli_entrypoint(["pre-commit", "--repo-root", str(tmp_path), "--json"])

    assert code == ExitCode.GATE_REJECTED
    report = _json_out(capsys)
    assert report["stage"] == "pre-commit"
    assert report["success"] is False
    assert report["state"] == "failed"
    detail = report["results"]["orchestrator"]["detail"]  # type: ignore[index]
    assert detail.startswith("ConfigLoadError: invalid JSON")


@pytest.mark.parametrize("stage", ["post-commit", "post-merge", "post-checkout"])
def test_unreadable_config_never_blocks_post_stages(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], stage: str
) -> None:
    (tmp_path / ".hookgate.json").write_text("{not json", encoding="utf-8")

    code = cli_entrypoint([stage, "--repo-root", str(tmp_path)])

    assert code == ExitCode.SUCCESS
    err = capsys.readouterr().err
    assert f"hookgate {stage}: PASSED [failed]" in err
    assert f"{stage} hook aborted: ConfigLoadError" in err


def test_wrong_typed_config_fails_stage_naming_the_option(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / ".hookgate.json").write_text(
        json.dumps({"preCommit": {"linting": "yes"}}), encoding="utf-8"
    )

    code = cli_entrypoint(["pre-commit", "--repo-root", str(tmp_path)])

    assert code == ExitCode.GATE_REJECTED
    assert "preCommit.linting" in capsys.readouterr().err


def test_missing_commit_message_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli_entrypoint(["commit-msg", "COMMIT_EDITMSG", "--repo-root", str(tmp_path)])

    assert code == ExitCode.CONFIG_ERROR
    assert "cannot read commit message file" in capsys.readouterr().err


def test_missing_repo_root(tmp_path: Path) -> None:
    assert cli_entrypoint(["audit", "--repo-root", str(tmp_path / "nowhere")]) == 2


@pytest.mark.parametrize(("argv", "expected"), [(["--help"], 0), (["bogus"], 2), ([], 2)])
def test_argparse_exits_are_normalized(argv: list[str], expected: int) -> None:
    assert cli_entrypoint(argv) == expected
