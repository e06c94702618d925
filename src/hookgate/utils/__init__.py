"""Utility exports for filesystem and hashing helpers."""

from hookgate.utils.fs import append_line, atomic_write, reset_directory
from hookgate.utils.hashing import sha256_bytes, sha256_fingerprint, sha256_text

__all__ = [
    "append_line",
    "atomic_write",
    "reset_directory",
    "sha256_bytes",
    "sha256_fingerprint",
    "sha256_text",
]
