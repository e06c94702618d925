"""Rolling stage-duration tracker with deterministic JSON export."""

from __future__ import annotations

import json
import math
import threading
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from hookgate.constants import (
    METRICS_WINDOW,
    OPTIMIZED_PERFORMANCE_THRESHOLD_MS,
    PERFORMANCE_THRESHOLD_MS,
)
from hookgate.utils.fs import atomic_write

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

KNOWN_OPTIMIZATIONS: Final[tuple[str, ...]] = ("lint-staged", "parallel-tests")


@dataclass(frozen=True, slots=True)
class StageExecution:
    stage: str
    timestamp: str
    duration_ms: float
    success: bool
    threshold_met: bool

    def as_dict(self) -> dict[str, JSONValue]:
        return {
            "stage": self.stage,
            "timestamp": self.timestamp,
            "durationMs": self.duration_ms,
            "success": self.success,
            "thresholdMet": self.threshold_met,
        }


class PerformanceTracker:
    """
    Bounded ring buffer of stage executions.

    The aggregates are recomputed from the buffer after every append, so they always
    describe exactly the last ``window`` executions.
    """

    def __init__(
        self,
        *,
        window: int = METRICS_WINDOW,
        threshold_ms: float = PERFORMANCE_THRESHOLD_MS,
        optimized_threshold_ms: float = OPTIMIZED_PERFORMANCE_THRESHOLD_MS,
    ) -> None:
        if isinstance(window, bool) or not isinstance(window, int) or window <= 0:
            raise ValueError("window must be a positive integer")
        self._lock = threading.RLock()
        self._created_at = datetime.now(tz=UTC)
        self._window = window
        self._threshold_ms = _as_finite_float(threshold_ms, path="threshold_ms")
        self._optimized_threshold_ms = _as_finite_float(
            optimized_threshold_ms, path="optimized_threshold_ms"
        )
        self._executions: deque[StageExecution] = deque(maxlen=window)
        self._optimizations: list[str] = []
        self._average_duration_ms = 0.0
        self._success_rate = 0.0

    @property
    def threshold_ms(self) -> float:
        with self._lock:
            return self._threshold_ms

    @property
    def average_duration_ms(self) -> float:
        with self._lock:
            return self._average_duration_ms

    @property
    def success_rate(self) -> float:
        with self._lock:
            return self._success_rate

    @property
    def optimizations(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._optimizations)

    def __len__(self) -> int:
        with self._lock:
            return len(self._executions)

    def executions(self) -> tuple[StageExecution, ...]:
        with self._lock:
            return tuple(self._executions)

    def record(
        self,
        stage: str,
        duration_ms: float,
        success: bool,
        *,
        timestamp: datetime | None = None,
    ) -> StageExecution:
        """Append one execution and refresh the rolling aggregates."""

        duration = _as_finite_float(duration_ms, path="duration_ms")
        if duration < 0:
            raise ValueError("duration_ms must be >= 0")
        moment = timestamp if timestamp is not None else datetime.now(tz=UTC)
        with self._lock:
            execution = StageExecution(
                stage=str(stage),
                timestamp=_iso(moment),
                duration_ms=duration,
                success=bool(success),
                threshold_met=duration <= self._threshold_ms,
            )
            self._executions.append(execution)
            self._recompute()
            return execution

    def exceeded_budget(self, stage: str, duration_ms: float) -> bool:
        """Return True when ``duration_ms`` is over the active threshold for ``stage``."""

        del stage  # one budget applies to every stage
        return _as_finite_float(duration_ms, path="duration_ms") > self.threshold_ms

    def apply_optimizations(self) -> tuple[str, ...]:
        """
        Enable the known optimizations that are not yet on and lower the threshold.

        Returns the optimizations enabled by this call (empty when all were already on).
        """

        with self._lock:
            enabled = tuple(name for name in KNOWN_OPTIMIZATIONS if name not in self._optimizations)
            self._optimizations.extend(enabled)
            self._threshold_ms = min(self._threshold_ms, self._optimized_threshold_ms)
            return enabled

    def snapshot(self) -> dict[str, JSONValue]:
        """Return deterministic snapshot with stable key ordering."""

        with self._lock:
            created_at = self._created_at
            executions = tuple(self._executions)
            average = self._average_duration_ms
            success_rate = self._success_rate
            threshold = self._threshold_ms
            optimizations = list(self._optimizations)

        per_stage: dict[str, JSONValue] = {}
        for stage in sorted({item.stage for item in executions}):
            stage_items = [item for item in executions if item.stage == stage]
            per_stage[stage] = {
                "count": len(stage_items),
                "averageDurationMs": sum(item.duration_ms for item in stage_items)
                / len(stage_items),
                "successRate": sum(1 for item in stage_items if item.success) / len(stage_items),
                "thresholdExceeded": sum(1 for item in stage_items if not item.threshold_met),
            }

        now = datetime.now(tz=UTC)
        return {
            "metadata": {
                "created_at": _iso(created_at),
                "snapshot_at": _iso(now),
                "uptime_seconds": max(0.0, (now - created_at).total_seconds()),
                "window": self._window,
            },
            "averageDurationMs": average,
            "successRate": success_rate,
            "thresholdMs": threshold,
            "optimizations": list(optimizations),
            "stages": per_stage,
            "executions": [item.as_dict() for item in executions],
        }

    def to_json(self, *, indent: int | None = None) -> str:
        payload = self.snapshot()
        if indent is None:
            return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return json.dumps(payload, sort_keys=True, indent=indent, ensure_ascii=False)

    def export_json(self, path: str | Path, *, indent: int = 2) -> Path:
        """Write snapshot JSON to ``path`` and return normalized path."""

        output_path = Path(path)
        atomic_write(output_path, self.to_json(indent=indent), create_parents=True)
        return output_path

    def _recompute(self) -> None:
        count = len(self._executions)
        if count == 0:
            self._average_duration_ms = 0.0
            self._success_rate = 0.0
            return
        self._average_duration_ms = sum(item.duration_ms for item in self._executions) / count
        self._success_rate = sum(1 for item in self._executions if item.success) / count


def _iso(moment: datetime) -> str:
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_finite_float(value: float, *, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{path} must be numeric, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed):
        raise ValueError(f"{path} must be finite")
    return parsed


__all__ = ["KNOWN_OPTIMIZATIONS", "JSONScalar", "JSONValue", "PerformanceTracker", "StageExecution"]
