"""
hookgate — hashing utilities

File: src/hookgate/utils/hashing.py
Last updated: 2026-10-19

Purpose
- Deterministic SHA-256 helpers for context-document revisions and result-cache keys.

Functional requirements
- Fingerprints over ordered string parts are insensitive to how the parts would
  concatenate (each part is length-prefixed).

Non-functional requirements
- Standard library only.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = [
    "sha256_bytes",
    "sha256_fingerprint",
    "sha256_text",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding))


def sha256_fingerprint(parts: Iterable[str]) -> str:
    """
    Return a digest over an ordered sequence of strings.

    ``("ab", "c")`` and ``("a", "bc")`` hash differently.
    """

    digest = hashlib.sha256()
    for part in parts:
        encoded = part.encode("utf-8")
        digest.update(len(encoded).to_bytes(8, "big"))
        digest.update(encoded)
    return digest.hexdigest()
