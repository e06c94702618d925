"""Stable constants shared across hookgate components."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Persisted state layout (relative to the repository root).
DEFAULT_CONFIG_FILE: Final[str] = ".hookgate.json"
AUDIT_LOG_PATH: Final[PurePosixPath] = PurePosixPath(".git/hooks/audit.log")
RESULT_CACHE_PATH: Final[PurePosixPath] = PurePosixPath(".git/hooks-cache.json")
HOOK_CACHE_DIR: Final[PurePosixPath] = PurePosixPath(".git/hooks/cache")
HANDOVER_PATH: Final[PurePosixPath] = PurePosixPath(".github/BMAD_HANDOVER.md")
PROJECT_METRICS_PATH: Final[PurePosixPath] = PurePosixPath(
    ".github/metrics/project-metrics.json"
)
MERGE_ANALYSIS_PATH: Final[PurePosixPath] = PurePosixPath(".github/reports/merge-analysis.json")
RECOVERY_REPORT_PATH: Final[PurePosixPath] = PurePosixPath(
    ".github/reports/recovery-report.json"
)
CI_WORKFLOWS_DIR: Final[PurePosixPath] = PurePosixPath(".github/workflows")
RUN_REPORT_DIR: Final[PurePosixPath] = PurePosixPath(".git/hooks/reports")

# Persona vocabulary.
VALID_PERSONAS: Final[tuple[str, ...]] = (
    "DEVELOPER",
    "ARCHITECT",
    "PM",
    "QA",
    "DEVOPS",
    "SECURITY",
    "RELEASE",
    "RECOVERY",
    "ORCHESTRATOR",
)
STEP_ID_PREFIXES: Final[tuple[str, ...]] = (
    "STEP",
    "ARCH",
    "TEST",
    "DEV",
    "SEC",
    "OPS",
    "REL",
    "REC",
)
STEP_NUMBER_MAX: Final[int] = 9999

# Result cache and metrics bounds.
CACHE_TTL_SECONDS: Final[float] = 300.0
CACHE_MAX_ENTRIES: Final[int] = 10
METRICS_WINDOW: Final[int] = 100
PERFORMANCE_THRESHOLD_MS: Final[int] = 5000
OPTIMIZED_PERFORMANCE_THRESHOLD_MS: Final[int] = 3000
DEFAULT_MAX_RECOVERY_ATTEMPTS: Final[int] = 3
DEFAULT_COVERAGE_THRESHOLD: Final[float] = 80.0

DEFAULT_PROTECTED_BRANCHES: Final[tuple[str, ...]] = ("main", "master", "production")

__all__ = [
    "AUDIT_LOG_PATH",
    "CACHE_MAX_ENTRIES",
    "CACHE_TTL_SECONDS",
    "CI_WORKFLOWS_DIR",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_COVERAGE_THRESHOLD",
    "DEFAULT_MAX_RECOVERY_ATTEMPTS",
    "DEFAULT_PROTECTED_BRANCHES",
    "HANDOVER_PATH",
    "HOOK_CACHE_DIR",
    "MERGE_ANALYSIS_PATH",
    "METRICS_WINDOW",
    "OPTIMIZED_PERFORMANCE_THRESHOLD_MS",
    "PERFORMANCE_THRESHOLD_MS",
    "PROJECT_METRICS_PATH",
    "RECOVERY_REPORT_PATH",
    "RESULT_CACHE_PATH",
    "RUN_REPORT_DIR",
    "STEP_ID_PREFIXES",
    "STEP_NUMBER_MAX",
    "VALID_PERSONAS",
]
