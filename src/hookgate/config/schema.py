"""
hookgate — configuration schema and validation.

File: src/hookgate/config/schema.py
Last updated: 2026-10-19

Purpose
- Define authoritative configuration defaults and validation rules for ``.hookgate.json``.

What should be included in this file
- Per-section toggles for every lifecycle stage, external command lines, timeouts,
  thresholds and repository policy.
- Deterministic deep-merge helpers used by the loader.

Functional requirements
- Wrong-typed values are errors with a dotted field path.
- Unknown keys, deprecated options and weak combinations are warnings with a
  recommendation; they never reject the document.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypedDict

from hookgate.constants import (
    CACHE_TTL_SECONDS,
    DEFAULT_COVERAGE_THRESHOLD,
    DEFAULT_MAX_RECOVERY_ATTEMPTS,
    DEFAULT_PROTECTED_BRANCHES,
    OPTIMIZED_PERFORMANCE_THRESHOLD_MS,
    PERFORMANCE_THRESHOLD_MS,
)

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")


class PreCommitConfig(TypedDict):
    linting: bool
    testing: bool
    contextValidation: bool
    gatekeeper: bool


class CommitMsgConfig(TypedDict):
    bmadPattern: bool
    conventionalCommits: bool


class PrePushConfig(TypedDict):
    fullTests: bool
    build: bool
    security: bool
    bmadSync: bool


class PostCommitConfig(TypedDict):
    metrics: bool
    documentation: bool
    notifications: bool
    contextUpdate: bool


class PostMergeConfig(TypedDict):
    workflow: bool
    validation: bool
    reporting: bool
    personaSync: bool


class GithubActionsSyncConfig(TypedDict):
    enabled: bool
    monitorConsistency: bool
    reportInconsistencies: bool


class GatekeeperConfig(TypedDict):
    developmentMode: bool
    bypassEnabled: bool
    strictMode: bool


class CommandsConfig(TypedDict):
    lint: str
    format: str
    test: str
    fullTest: str
    build: str
    audit: str
    docs: str
    workflow: str
    gatekeeper: str


class TimeoutsConfig(TypedDict):
    lint: float
    fastTests: float
    fullTests: float
    build: float
    audit: float
    docs: float
    workflow: float
    git: float


class ThresholdsConfig(TypedDict):
    coverage: float
    performanceMs: int
    optimizedPerformanceMs: int
    cacheTtlSeconds: float


class RecoveryConfig(TypedDict):
    maxAttempts: int


class ContextConfig(TypedDict):
    file: str
    maxHistory: int


class RepositoryConfig(TypedDict):
    protectedBranches: list[str]
    criticalFiles: list[str]


class ObservabilityConfig(TypedDict):
    logLevel: str
    logDir: str


class HookgateConfig(TypedDict):
    preCommit: PreCommitConfig
    commitMsg: CommitMsgConfig
    prePush: PrePushConfig
    postCommit: PostCommitConfig
    postMerge: PostMergeConfig
    githubActionsSync: GithubActionsSyncConfig
    gatekeeper: GatekeeperConfig
    commands: CommandsConfig
    timeouts: TimeoutsConfig
    thresholds: ThresholdsConfig
    recovery: RecoveryConfig
    context: ContextConfig
    repository: RepositoryConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[HookgateConfig] = {
    "preCommit": {
        "linting": True,
        "testing": True,
        "contextValidation": True,
        "gatekeeper": True,
    },
    "commitMsg": {
        "bmadPattern": True,
        "conventionalCommits": True,
    },
    "prePush": {
        "fullTests": True,
        "build": True,
        "security": True,
        "bmadSync": True,
    },
    "postCommit": {
        "metrics": True,
        "documentation": True,
        "notifications": False,
        "contextUpdate": True,
    },
    "postMerge": {
        "workflow": True,
        "validation": True,
        "reporting": True,
        "personaSync": True,
    },
    "githubActionsSync": {
        "enabled": True,
        "monitorConsistency": True,
        "reportInconsistencies": True,
    },
    "gatekeeper": {
        "developmentMode": False,
        "bypassEnabled": False,
        "strictMode": True,
    },
    "commands": {
        "lint": "npx eslint --fix",
        "format": "npx prettier --write",
        "test": "npm test -- --bail --maxWorkers=1",
        "fullTest": "npm test -- --coverage",
        "build": "npm run build",
        "audit": "npm audit --audit-level=moderate",
        "docs": "npm run bmad:docs",
        "workflow": "npm run bmad:workflow",
        "gatekeeper": "",
    },
    "timeouts": {
        "lint": 60.0,
        "fastTests": 15.0,
        "fullTests": 300.0,
        "build": 300.0,
        "audit": 60.0,
        "docs": 120.0,
        "workflow": 120.0,
        "git": 30.0,
    },
    "thresholds": {
        "coverage": DEFAULT_COVERAGE_THRESHOLD,
        "performanceMs": PERFORMANCE_THRESHOLD_MS,
        "optimizedPerformanceMs": OPTIMIZED_PERFORMANCE_THRESHOLD_MS,
        "cacheTtlSeconds": CACHE_TTL_SECONDS,
    },
    "recovery": {
        "maxAttempts": DEFAULT_MAX_RECOVERY_ATTEMPTS,
    },
    "context": {
        "file": "activeContext.md",
        "maxHistory": 10,
    },
    "repository": {
        "protectedBranches": list(DEFAULT_PROTECTED_BRANCHES),
        "criticalFiles": [".git"],
    },
    "observability": {
        "logLevel": "INFO",
        "logDir": ".git/hooks/logs",
    },
}

TOGGLE_SECTIONS: Final[dict[str, tuple[str, ...]]] = {
    "preCommit": ("linting", "testing", "contextValidation", "gatekeeper"),
    "commitMsg": ("bmadPattern", "conventionalCommits"),
    "prePush": ("fullTests", "build", "security", "bmadSync"),
    "postCommit": ("metrics", "documentation", "notifications", "contextUpdate"),
    "postMerge": ("workflow", "validation", "reporting", "personaSync"),
    "githubActionsSync": ("enabled", "monitorConsistency", "reportInconsistencies"),
    "gatekeeper": ("developmentMode", "bypassEnabled", "strictMode"),
}

DEPRECATED_OPTIONS: Final[dict[str, str]] = {
    "preCommit.fastTests": "Use testing instead",
    "prePush.coverage": "Coverage is now included in fullTests",
}

_UNKNOWN_OPTION_RECOMMENDATION = "Remove unknown option or check for typos"


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation finding."""

    path: str
    message: str
    recommendation: str | None = None


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no errors were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]
    warnings: tuple[ConfigValidationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str, recommendation: str | None = None) -> None:
        self._items.append(
            ConfigValidationIssue(path=path, message=message, recommendation=recommendation)
        )

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> dict[str, Any]:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(dict(DEFAULT_CONFIG))


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured errors and warnings with deterministic paths."""

    issues = _IssueCollector()
    warnings = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized: dict[str, Any] = {}
    validators: dict[str, Callable[[dict[str, object], str], dict[str, Any]]] = {
        "commands": lambda payload, path: _validate_commands(payload, path, issues, warnings),
        "timeouts": lambda payload, path: _validate_timeouts(payload, path, issues, warnings),
        "thresholds": lambda payload, path: _validate_thresholds(payload, path, issues, warnings),
        "recovery": lambda payload, path: _validate_recovery(payload, path, issues, warnings),
        "context": lambda payload, path: _validate_context(payload, path, issues, warnings),
        "repository": lambda payload, path: _validate_repository(payload, path, issues, warnings),
        "observability": lambda payload, path: _validate_observability(
            payload, path, issues, warnings
        ),
    }
    for section in TOGGLE_SECTIONS:
        validators[section] = _toggle_validator(section, issues, warnings)

    for key in sorted(root):
        if key not in validators:
            warnings.add(key, f"unknown section '{key}'", _UNKNOWN_OPTION_RECOMMENDATION)
            continue
        _section(root, key=key, path="", issues=issues, validator=validators[key], out=normalized)

    if issues.has_issues:
        return ConfigValidationResult(
            config=None, issues=issues.items(), warnings=warnings.items()
        )

    _check_consistency(normalized, warnings)
    return ConfigValidationResult(config=normalized, issues=(), warnings=warnings.items())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    path: str,
    issues: _IssueCollector,
    validator: Callable[[dict[str, object], str], dict[str, Any]],
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_path = _join(path, key)
    section_obj = _as_object(raw, section_path, issues)
    if section_obj is None:
        return
    out[key] = validator(section_obj, section_path)


def _toggle_validator(
    section: str,
    issues: _IssueCollector,
    warnings: _IssueCollector,
) -> Callable[[dict[str, object], str], dict[str, Any]]:
    allowed = TOGGLE_SECTIONS[section]

    def validate(payload: dict[str, object], path: str) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key in sorted(payload):
            key_path = _join(path, key)
            if key_path in DEPRECATED_OPTIONS:
                warnings.add(
                    key_path,
                    f"Option '{key}' in {section} is deprecated",
                    DEPRECATED_OPTIONS[key_path],
                )
                continue
            if key not in allowed:
                warnings.add(
                    key_path,
                    f"Unknown option '{key}' in {section} configuration",
                    _UNKNOWN_OPTION_RECOMMENDATION,
                )
                continue
            parsed = _as_bool(payload[key], key_path, issues)
            if parsed is not None:
                out[key] = parsed
        return out

    return validate


def _validate_commands(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    warnings: _IssueCollector,
) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["commands"])
    _warn_unknown_keys(payload, allowed, path, warnings)

    out: dict[str, Any] = {}
    for key in sorted(allowed & set(payload)):
        parsed = _as_text(payload[key], _join(path, key), issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _validate_timeouts(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    warnings: _IssueCollector,
) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["timeouts"])
    _warn_unknown_keys(payload, allowed, path, warnings)

    out: dict[str, Any] = {}
    for key in sorted(allowed & set(payload)):
        parsed = _as_float(payload[key], _join(path, key), issues, minimum=0.1)
        if parsed is not None:
            out[key] = parsed
    return out


def _validate_thresholds(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    warnings: _IssueCollector,
) -> dict[str, Any]:
    allowed = {"coverage", "performanceMs", "optimizedPerformanceMs", "cacheTtlSeconds"}
    _warn_unknown_keys(payload, allowed, path, warnings)

    out: dict[str, Any] = {}
    if "coverage" in payload:
        parsed_coverage = _as_float(
            payload["coverage"], _join(path, "coverage"), issues, minimum=0.0, maximum=100.0
        )
        if parsed_coverage is not None:
            out["coverage"] = parsed_coverage

    for key in ("performanceMs", "optimizedPerformanceMs"):
        if key in payload:
            parsed_ms = _as_int(payload[key], _join(path, key), issues, minimum=1)
            if parsed_ms is not None:
                out[key] = parsed_ms

    if "cacheTtlSeconds" in payload:
        parsed_ttl = _as_float(
            payload["cacheTtlSeconds"], _join(path, "cacheTtlSeconds"), issues, minimum=0.0
        )
        if parsed_ttl is not None:
            out["cacheTtlSeconds"] = parsed_ttl
    return out


def _validate_recovery(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    warnings: _IssueCollector,
) -> dict[str, Any]:
    _warn_unknown_keys(payload, {"maxAttempts"}, path, warnings)
    out: dict[str, Any] = {}
    if "maxAttempts" in payload:
        parsed = _as_int(payload["maxAttempts"], _join(path, "maxAttempts"), issues, minimum=1)
        if parsed is not None:
            out["maxAttempts"] = parsed
    return out


def _validate_context(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    warnings: _IssueCollector,
) -> dict[str, Any]:
    _warn_unknown_keys(payload, {"file", "maxHistory"}, path, warnings)
    out: dict[str, Any] = {}
    if "file" in payload:
        parsed_file = _as_str(payload["file"], _join(path, "file"), issues)
        if parsed_file is not None:
            if "\x00" in parsed_file:
                issues.add(_join(path, "file"), "must not contain NUL bytes")
            else:
                out["file"] = parsed_file
    if "maxHistory" in payload:
        parsed_history = _as_int(
            payload["maxHistory"], _join(path, "maxHistory"), issues, minimum=1
        )
        if parsed_history is not None:
            out["maxHistory"] = parsed_history
    return out


def _validate_repository(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    warnings: _IssueCollector,
) -> dict[str, Any]:
    allowed = {"protectedBranches", "criticalFiles"}
    _warn_unknown_keys(payload, allowed, path, warnings)
    out: dict[str, Any] = {}
    for key in sorted(allowed & set(payload)):
        parsed = _as_str_list(payload[key], _join(path, key), issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _validate_observability(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    warnings: _IssueCollector,
) -> dict[str, Any]:
    _warn_unknown_keys(payload, {"logLevel", "logDir"}, path, warnings)
    out: dict[str, Any] = {}
    if "logLevel" in payload:
        parsed_level = _as_enum(
            payload["logLevel"], _join(path, "logLevel"), issues, allowed_values=LOG_LEVELS
        )
        if parsed_level is not None:
            out["logLevel"] = parsed_level
    if "logDir" in payload:
        parsed_dir = _as_str(payload["logDir"], _join(path, "logDir"), issues)
        if parsed_dir is not None:
            out["logDir"] = parsed_dir
    return out


def _check_consistency(config: Mapping[str, Any], warnings: _IssueCollector) -> None:
    defaults: Mapping[str, Any] = DEFAULT_CONFIG

    def flag(section: str, option: str) -> bool:
        values = config.get(section)
        if not isinstance(values, Mapping) or option not in values:
            return bool(defaults[section][option])
        return bool(values[option])

    if not any(flag("preCommit", key) for key in ("linting", "testing", "contextValidation")):
        warnings.add(
            "preCommit",
            "All pre-commit validations are disabled",
            "Enable at least linting or testing for code quality",
        )
    if not flag("commitMsg", "bmadPattern") and not flag("commitMsg", "conventionalCommits"):
        warnings.add(
            "commitMsg",
            "No commit message validation is enabled",
            "Enable bmadPattern or conventionalCommits for message validation",
        )
    if not flag("prePush", "security"):
        warnings.add(
            "prePush.security",
            "Security audit is disabled in pre-push",
            "Enable security audits to catch vulnerabilities before pushing",
        )
    if not flag("prePush", "fullTests"):
        warnings.add(
            "prePush.fullTests",
            "Full test suite is disabled in pre-push",
            "Enable full tests to ensure code quality before pushing",
        )
    if not flag("postMerge", "workflow"):
        warnings.add(
            "postMerge.workflow",
            "BMAD workflow automation is disabled in post-merge",
            "Enable workflow to maintain BMAD automation after merges",
        )
    if not flag("githubActionsSync", "enabled"):
        warnings.add(
            "githubActionsSync.enabled",
            "GitHub Actions synchronization is disabled",
            "Enable sync to maintain consistency between local and remote validation",
        )
    if flag("prePush", "bmadSync") and not flag("preCommit", "contextValidation"):
        warnings.add(
            "prePush.bmadSync",
            "BMAD sync is enabled but context validation is disabled",
            "Enable preCommit.contextValidation for consistent BMAD workflow",
        )
    if flag("githubActionsSync", "enabled") and not flag(
        "githubActionsSync", "monitorConsistency"
    ):
        warnings.add(
            "githubActionsSync.monitorConsistency",
            "GitHub Actions sync is enabled but consistency monitoring is disabled",
            "Enable githubActionsSync.monitorConsistency for full sync benefits",
        )


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    """Like ``_as_str`` but an empty string is a valid value (disabled command)."""
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    return value.strip()


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if not isinstance(value, list):
        issues.add(path, f"expected array, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is None:
            return None
        if parsed not in out:
            out.append(parsed)
    return out


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    if maximum is not None and parsed > maximum:
        issues.add(path, f"must be <= {maximum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    normalized = parsed.upper()
    if normalized not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return normalized


def _warn_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    warnings: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        warnings.add(
            _join(path, key),
            f"Unknown option '{key}' in {path} configuration",
            _UNKNOWN_OPTION_RECOMMENDATION,
        )


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            elif isinstance(existing, Mapping):
                nested = _deep_copy_mapping(existing)
                _merge_into(nested, value)
                target[key] = nested
            else:
                nested_new: dict[str, Any] = {}
                _merge_into(nested_new, value)
                target[key] = nested_new
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        out[key] = _deep_copy_value(value[key])
    return out


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for key, item in value.items():
            if isinstance(key, str):
                out[key] = _deep_copy_value(item)
        return out
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


__all__ = [
    "DEFAULT_CONFIG",
    "DEPRECATED_OPTIONS",
    "LOG_LEVELS",
    "TOGGLE_SECTIONS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "HookgateConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]
