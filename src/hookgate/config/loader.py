"""
hookgate — runtime config loader.

File: src/hookgate/config/loader.py
Last updated: 2026-10-19

Purpose
- Load effective runtime config from defaults, the JSON config file, env vars, and
  CLI overrides.

What should be included in this file
- Precedence logic: CLI > env (HOOKGATE_) > file > defaults.
- JSON loading of ``.hookgate.json`` at the repository root.
- Deterministic environment variable mapping and coercion.

Functional requirements
- Reject wrong-typed values via schema validation; surface schema warnings to callers
  that ask for them.

Non-functional requirements
- Keep loading deterministic and reproducible.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

from hookgate.config.schema import (
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    default_config,
    merge_config,
    validate_config,
)
from hookgate.constants import DEFAULT_CONFIG_FILE

ENV_PREFIX: Final[str] = "HOOKGATE_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    value_type: Literal["str", "int", "float", "bool"]


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    repo_root: str | Path | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: CLI > env > file > defaults."""

    result = load_config_report(
        config_path, repo_root=repo_root, cli_overrides=cli_overrides, environ=environ
    )
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def load_config_report(
    config_path: str | Path | None = None,
    *,
    repo_root: str | Path | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConfigValidationResult:
    """
    Load the effective config and return the full validation result.

    Warnings collected from the file (unknown keys, deprecated options) are kept even
    though env and CLI layers are applied afterwards.
    """

    resolved_path = _resolve_config_path(config_path, repo_root)
    explicit_path = config_path is not None
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_json_file(resolved_path, required=explicit_path)
    merged = merge_config(default_config(), file_payload)
    file_result = validate_config(merged)
    if file_result.config is None:
        return file_result

    env_overrides = _collect_env_overrides(file_result.config, env_map)
    cli_payload = _materialize_cli_overrides(dict(cli_overrides or {}))

    layered = merge_config(file_result.config, env_overrides)
    layered = merge_config(layered, cli_payload)
    final_result = validate_config(layered)
    return ConfigValidationResult(
        config=final_result.config,
        issues=final_result.issues,
        warnings=_unique_warnings(file_result.warnings + final_result.warnings),
    )


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Return a deterministic deep copy of the effective config for display."""

    return merge_config({}, config)


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Return deterministic JSON dump of the effective config."""

    return json.dumps(
        effective_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def env_name_for(path: str) -> str:
    """Return the environment variable bound to a dotted config path."""

    return _env_name_for_path(tuple(part for part in path.split(".") if part))


def _resolve_config_path(config_path: str | Path | None, repo_root: str | Path | None) -> Path:
    base = Path.cwd() if repo_root is None else Path(repo_root)
    if config_path is None:
        return (base / DEFAULT_CONFIG_FILE).resolve()
    candidate = Path(config_path).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return candidate.resolve()


def _load_json_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("r", encoding="utf-8") as handle:
            parsed = json.load(handle)
    except json.JSONDecodeError as exc:
        raise ConfigLoadError(f"invalid JSON in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ConfigLoadError(f"config root must be an object: {path}")

    return parsed


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    bindings = _build_bindings(config)
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        value = _coerce_env(raw, binding.value_type, env_name, binding.path)
        _set_nested(overrides, binding.path, value)
    return overrides


def _build_bindings(config: Mapping[str, object]) -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for path, value in _iter_scalar_paths(config):
        kind = _kind_for_value(value)
        if kind is None:
            continue
        bindings[_env_name_for_path(path)] = _Binding(path=path, value_type=kind)
    return bindings


def _iter_scalar_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[tuple[str, ...], object]]:
    pairs: list[tuple[tuple[str, ...], object]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            pairs.extend(_iter_scalar_paths(value, path))
        else:
            pairs.append((path, value))
    return pairs


def _kind_for_value(value: object) -> Literal["str", "int", "float", "bool"] | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    return None


def _coerce_env(
    raw: str,
    value_type: Literal["str", "int", "float", "bool"],
    env_name: str,
    path: tuple[str, ...],
) -> object:
    value = raw.strip()
    if value_type == "str":
        return value
    if value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be an integer") from exc
    if value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {'.'.join(path)} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(cli_overrides):
        value = cli_overrides[key]
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


def _unique_warnings(
    warnings: tuple[ConfigValidationIssue, ...],
) -> tuple[ConfigValidationIssue, ...]:
    seen: set[tuple[str, str]] = set()
    out: list[ConfigValidationIssue] = []
    for item in warnings:
        key = (item.path, item.message)
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return tuple(out)


def _env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "effective_config",
    "env_name_for",
    "load_config",
    "load_config_report",
]
