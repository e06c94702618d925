"""
hookgate — validation result cache

File: src/hookgate/pipeline/cache.py
Last updated: 2026-10-19

Purpose
- Remember passing fast-test results for an unchanged HEAD and index content so a
  repeated commit attempt does not re-run the suite.

Functional requirements
- Key: SHA-256 over HEAD, the index tree id and the sorted staged paths. Editing and
  re-staging a file changes the tree id and therefore the key.
- Entries expire after the configured TTL (300 s by default); at most
  ``max_entries`` are kept and the oldest is evicted first.
- Only ``passed`` results are stored. A hit is returned with ``cached=True``.
- A missing or corrupt cache file reads as empty.

Non-functional requirements
- Writes replace the file atomically; a failed write raises ``CacheError``.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Final

import structlog

from hookgate.constants import CACHE_MAX_ENTRIES, CACHE_TTL_SECONDS
from hookgate.domain import ValidationResult, ValidationStatus
from hookgate.utils.fs import atomic_write
from hookgate.utils.hashing import sha256_fingerprint

CACHE_FORMAT_VERSION: Final[int] = 1


class CacheError(RuntimeError):
    """Raised when the result cache cannot be persisted."""


@dataclass(frozen=True, slots=True)
class CacheEntry:
    stored_at: float
    result: ValidationResult

    def to_dict(self) -> dict[str, Any]:
        return {"storedAt": self.stored_at, "result": self.result.to_dict()}

    @classmethod
    def from_dict(cls, payload: object) -> CacheEntry:
        if not isinstance(payload, dict):
            raise ValueError("cache entry must be an object")
        stored_at = payload.get("storedAt")
        if isinstance(stored_at, bool) or not isinstance(stored_at, (int, float)):
            raise ValueError("cache entry storedAt must be numeric")
        result = payload.get("result")
        if not isinstance(result, dict):
            raise ValueError("cache entry result must be an object")
        return cls(stored_at=float(stored_at), result=ValidationResult.from_dict(result))


class ResultCache:
    """JSON-file cache of passing validator results keyed by repository state."""

    def __init__(
        self,
        path: Path | str,
        *,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_entries: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
        logger: Any | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.path = Path(path)
        self._ttl = float(ttl_seconds)
        self._max_entries = max_entries
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @staticmethod
    def key(head: str | None, index_tree: str, staged: Sequence[str]) -> str:
        return sha256_fingerprint((head or "", index_tree, *sorted(staged)))

    def get(self, key: str) -> ValidationResult | None:
        entry = self._load().get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self._ttl:
            return None
        self._logger.debug("cache_hit", key=key[:12])
        return replace(entry.result, cached=True)

    def put(self, key: str, result: ValidationResult) -> bool:
        """Store ``result`` under ``key``; returns False when it was not cacheable."""

        if result.status is not ValidationStatus.PASSED:
            return False
        now = self._clock()
        entries = {
            name: entry
            for name, entry in self._load().items()
            if now - entry.stored_at <= self._ttl
        }
        entries[key] = CacheEntry(stored_at=now, result=replace(result, cached=False))
        ordered = sorted(entries.items(), key=lambda item: item[1].stored_at)
        kept = dict(ordered[-self._max_entries :])
        self._save(kept)
        return True

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise CacheError(f"cache error: cannot remove {self.path}: {exc}") from exc

    def __len__(self) -> int:
        return len(self._load())

    def _load(self) -> dict[str, CacheEntry]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as exc:
            self._logger.warning("cache_unreadable", path=str(self.path), error=str(exc))
            return {}
        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("cache root must be an object")
            raw_entries = payload.get("entries", {})
            if not isinstance(raw_entries, dict):
                raise ValueError("cache entries must be an object")
            return {
                str(name): CacheEntry.from_dict(entry) for name, entry in raw_entries.items()
            }
        except (ValueError, KeyError) as exc:
            self._logger.warning("cache_corrupt", path=str(self.path), error=str(exc))
            return {}

    def _save(self, entries: dict[str, CacheEntry]) -> None:
        payload = {
            "version": CACHE_FORMAT_VERSION,
            "entries": {name: entry.to_dict() for name, entry in entries.items()},
        }
        try:
            atomic_write(
                self.path, json.dumps(payload, indent=2, sort_keys=True), create_parents=True
            )
        except OSError as exc:
            raise CacheError(f"cache error: cannot write {self.path}: {exc}") from exc


__all__ = ["CACHE_FORMAT_VERSION", "CacheEntry", "CacheError", "ResultCache"]
