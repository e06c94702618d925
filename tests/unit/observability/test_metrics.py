"""
hookgate — unit tests for stage performance tracking

File: tests/unit/observability/test_metrics.py
Last updated: 2026-10-19

Purpose
- Verify the rolling execution window, budget checks, optimizations and deterministic
  snapshot/export behavior.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import pytest

from hookgate.observability import KNOWN_OPTIMIZATIONS, PerformanceTracker

if TYPE_CHECKING:
    from pathlib import Path

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


def test_record_updates_rolling_aggregates() -> None:
    tracker = PerformanceTracker(window=3)

    tracker.record("pre-commit", 1000, True, timestamp=NOW)
    tracker.record("pre-commit", 6000, False, timestamp=NOW)
    execution = tracker.record("pre-push", 2000, True, timestamp=NOW)

    assert execution.as_dict() == {
        "stage": "pre-push",
        "timestamp": "2026-10-19T12:00:00.000Z",
        "durationMs": 2000.0,
        "success": True,
        "thresholdMet": True,
    }
    assert tracker.average_duration_ms == 3000.0
    assert tracker.success_rate == pytest.approx(2 / 3)

    tracker.record("pre-push", 4000, True, timestamp=NOW)

    assert len(tracker) == 3
    assert [item.duration_ms for item in tracker.executions()] == [6000.0, 2000.0, 4000.0]
    assert tracker.average_duration_ms == 4000.0


def test_empty_tracker_reports_zeroes() -> None:
    tracker = PerformanceTracker()

    assert len(tracker) == 0
    assert tracker.average_duration_ms == 0.0
    assert tracker.success_rate == 0.0
    assert tracker.threshold_ms == 5000.0


def test_budget_and_optimizations() -> None:
    tracker = PerformanceTracker()

    assert tracker.exceeded_budget("pre-commit", 4000) is False
    assert tracker.apply_optimizations() == KNOWN_OPTIMIZATIONS
    assert tracker.threshold_ms == 3000.0
    assert tracker.exceeded_budget("pre-commit", 4000) is True
    assert tracker.apply_optimizations() == ()
    assert tracker.optimizations == ("lint-staged", "parallel-tests")


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"window": 0}, "window must be a positive integer"),
        ({"window": True}, "window must be a positive integer"),
        ({"threshold_ms": float("inf")}, "threshold_ms must be finite"),
    ],
)
def test_invalid_tracker_settings(kwargs: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        PerformanceTracker(**kwargs)  # type: ignore[arg-type]


def test_negative_duration_is_rejected() -> None:
    with pytest.raises(ValueError, match="duration_ms must be >= 0"):
        PerformanceTracker().record("pre-commit", -1, True)


def test_concurrent_records_respect_window() -> None:
    tracker = PerformanceTracker(window=50)

    def worker() -> None:
        for _ in range(100):
            tracker.record("pre-push", 10, True)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(tracker) == 50
    assert tracker.success_rate == 1.0


def test_snapshot_groups_stages_deterministically() -> None:
    tracker = PerformanceTracker()
    tracker.record("pre-push", 7000, False, timestamp=NOW)
    tracker.record("pre-commit", 100, True, timestamp=NOW)
    tracker.record("pre-commit", 300, True, timestamp=NOW)

    snapshot = tracker.snapshot()

    assert list(snapshot["stages"]) == ["pre-commit", "pre-push"]  # type: ignore[arg-type]
    assert snapshot["stages"]["pre-push"] == {  # type: ignore[index]
        "count": 1,
        "averageDurationMs": 7000.0,
        "successRate": 0.0,
        "thresholdExceeded": 1,
    }
    assert snapshot["stages"]["pre-commit"]["averageDurationMs"] == 200.0  # type: ignore[index]
    assert snapshot["metadata"]["window"] == 100  # type: ignore[index]
    assert ": " not in tracker.to_json()


def test_export_json_writes_file(tmp_path: Path) -> None:
    tracker = PerformanceTracker()
    tracker.record("commit-msg", 42, True, timestamp=NOW)

    out = tracker.export_json(tmp_path / "perf" / "metrics.json")

    assert out.exists()
    parsed = json.loads(out.read_text(encoding="utf-8"))
    assert parsed["thresholdMs"] == 5000.0
    assert parsed["executions"][0]["stage"] == "commit-msg"
    assert [path.name for path in out.parent.iterdir()] == ["metrics.json"]
