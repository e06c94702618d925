"""
hookgate — unit tests for the context synchronizer

File: tests/unit/workflow/test_synchronizer.py
Last updated: 2026-10-19

Purpose
- Exercise context updates, persona synchronization, consistency validation and the
  commit-msg context check against a ``tmp_path`` repository.

What this test file should cover
- Update creates or rewrites the document and bounds history.
- Non-standard persona transitions warn without failing.
- Consistency checks and their recommendations.
- The handover document is compared, never written.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from hookgate.adapters.git import GitClient
from hookgate.domain import ValidationStatus
from hookgate.workflow.context_document import ContextDocument
from hookgate.workflow.synchronizer import (
    ALL_CONSISTENT_RECOMMENDATION,
    RECOMMENDATIONS,
    CommitInfo,
    ContextSynchronizer,
    commit_summary,
)

if TYPE_CHECKING:
    from tests.conftest import FakeRunner

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


def _sync(
    root: Path, runner: FakeRunner | None = None, *, max_history: int = 10
) -> ContextSynchronizer:
    git = GitClient(root, runner=runner) if runner is not None else None
    return ContextSynchronizer(root, git=git, max_history=max_history, clock=lambda: NOW)


def test_commit_summary_shapes() -> None:
    assert commit_summary(None, None, (), "") == "Unknown persona"
    assert commit_summary(
        "QA", "TEST-001", ("a.ts",), "[QA] [TEST-001] Cover login"
    ) == "QA persona working on TEST-001 - modified 1 file(s) (a.ts) - Cover login"
    assert commit_summary("PM", None, ("a", "b", "c", "d"), "plan") == (
        "PM persona - modified 4 file(s)"
    )


def test_update_creates_document_from_commit(tmp_path: Path) -> None:
    sync = _sync(tmp_path)

    result = sync.update_active_context(
        CommitInfo(
            message="[ARCHITECT] [ARCH-042] Design database schema",
            hash="abc123",
            changed_files=("docs/schema.md",),
        )
    )

    assert result.success is True
    assert result.context_existed is False
    assert result.document is not None
    assert result.document.persona == "ARCHITECT"
    assert result.document.step_id == "ARCH-042"
    assert result.document.workflow_phase == "design"
    assert result.document.last_updated == "2026-10-19T12:00:00.000Z"
    stored = sync.store.read()
    assert stored == result.document
    assert result.to_dict()["contextPath"].endswith("activeContext.md")


def test_update_bounds_history_newest_first(tmp_path: Path) -> None:
    sync = _sync(tmp_path, max_history=2)

    for step in (1, 2, 3):
        sync.update_active_context(
            CommitInfo(message=f"[DEVELOPER] [STEP-00{step}] Build part {step}", changed_files=())
        )

    document = sync.store.read()
    assert document is not None
    assert [entry.summary for entry in document.history] == [
        "DEVELOPER persona working on STEP-003 - Build part 3",
        "DEVELOPER persona working on STEP-002 - Build part 2",
    ]


def test_update_asks_git_for_changed_files(tmp_path: Path, fake_runner: FakeRunner) -> None:
    fake_runner.on("git", "diff", "--cached", "--name-only", stdout="src/a.ts\nsrc/b.ts\n")
    sync = _sync(tmp_path, fake_runner)

    result = sync.update_active_context(CommitInfo(message="feat: add parser"))

    assert result.document is not None
    assert result.document.changed_files == ("src/a.ts", "src/b.ts")


def test_update_failure_is_reported(tmp_path: Path) -> None:
    (tmp_path / "activeContext.md").mkdir()

    result = _sync(tmp_path).update_active_context(CommitInfo(message="feat: x"))

    assert result.success is False
    assert result.error is not None
    assert result.to_dict()["error"] == result.error


def test_register_commit_ignores_non_code_changes(tmp_path: Path) -> None:
    sync = _sync(tmp_path)

    assert sync.register_commit("abc", "docs: readme", ["README.md"]) is None
    registered = sync.register_commit("abc", "feat: parser", ["src/parser.py"])
    assert registered is not None
    assert registered.success is True


def test_sync_context_warns_on_non_standard_transition(tmp_path: Path) -> None:
    sync = _sync(tmp_path)
    sync.update_active_context(
        CommitInfo(message="[PM] [STEP-001] Plan release", changed_files=())
    )

    result = sync.sync_context("RELEASE", "REL-001")

    assert result.success is True
    transition = result.results["transitionValidation"]
    assert transition["transition"] == {"from": "PM", "to": "RELEASE"}
    assert transition["warnings"] == [
        "Persona transition from PM to RELEASE is not standard in BMAD workflow"
    ]
    document = sync.store.read()
    assert document is not None
    assert document.persona == "RELEASE"
    assert result.results["handoverSync"]["handoverExists"] is False


def test_sync_context_requires_a_persona(tmp_path: Path) -> None:
    result = _sync(tmp_path).sync_context(None, None)

    assert result.success is False
    assert result.results["personaValidation"]["errors"] == ["Persona is required"]
    assert not (tmp_path / "activeContext.md").exists()


def test_sync_context_compares_but_never_writes_handover(tmp_path: Path) -> None:
    handover = tmp_path / ".github" / "BMAD_HANDOVER.md"
    handover.parent.mkdir(parents=True)
    handover.write_text("**Persona:** QA\n", encoding="utf-8")

    result = _sync(tmp_path).sync_context("DEVELOPER", "STEP-010")

    assert result.results["handoverSync"]["consistent"] is False
    assert handover.read_text(encoding="utf-8") == "**Persona:** QA\n"
    assert result.to_dict()["stepId"] == "STEP-010"


def test_consistency_without_context_file(tmp_path: Path) -> None:
    report = _sync(tmp_path).validate_consistency(recent_log=[])

    assert report.consistent is False
    assert report.context_exists is False
    assert report.recommendations[0] == RECOMMENDATIONS["contextFileExists"]
    assert report.to_dict()["results"]["contextFileExists"] is False


def test_consistency_of_fresh_document(tmp_path: Path) -> None:
    sync = _sync(tmp_path)
    sync.update_active_context(
        CommitInfo(message="[DEVELOPER] [STEP-002] Implement parser", changed_files=())
    )

    report = sync.validate_consistency("[DEVELOPER] [STEP-001] Start parser")

    assert report.consistent is True
    assert report.recommendations == (ALL_CONSISTENT_RECOMMENDATION,)


def test_consistency_flags_phase_and_persona_drift(tmp_path: Path) -> None:
    sync = _sync(tmp_path)
    sync.store.atomic_write(
        ContextDocument(
            last_updated="2026-10-19T11:00:00.000Z",
            persona="QA",
            workflow_phase="design",
        )
    )

    report = sync.validate_consistency(["[SECURITY] [SEC-001] Audit tokens"])

    assert report.consistent is False
    assert report.checks["personaConsistency"].consistent is False
    assert report.checks["workflowConsistency"].consistent is False
    assert RECOMMENDATIONS["workflowConsistency"] in report.recommendations


def test_git_state_consistency_uses_recent_files(
    tmp_path: Path, fake_runner: FakeRunner
) -> None:
    fake_runner.on("git", "diff", "--name-only", "HEAD~3..HEAD", stdout="src/untracked.ts\n")
    sync = _sync(tmp_path, fake_runner)
    sync.store.atomic_write(
        ContextDocument(last_updated="2026-10-01T00:00:00.000Z", persona="DEVELOPER")
    )

    report = sync.validate_consistency([])

    check = report.checks["gitStateConsistency"]
    assert check.consistent is False
    assert check.data["recentFiles"] == ["src/untracked.ts"]


@pytest.mark.parametrize(
    ("context", "persona", "step_id", "status"),
    [
        (None, "DEVELOPER", "STEP-001", ValidationStatus.WARNING),
        ("**Persona:** DEVELOPER\n", "QA", "STEP-002", ValidationStatus.PASSED),
        ("**Persona:** DEVELOPER\n", "RELEASE", "STEP-002", ValidationStatus.WARNING),
    ],
)
def test_check_commit_context(
    tmp_path: Path, context: str | None, persona: str, step_id: str, status: ValidationStatus
) -> None:
    sync = _sync(tmp_path)
    if context is not None:
        sync.store.atomic_write(context)

    result = sync.check_commit_context(persona, step_id)

    assert result.status is status
    assert result.data["contextExists"] is (context is not None)


def test_max_history_must_be_positive(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="max_history"):
        ContextSynchronizer(tmp_path, max_history=0)
