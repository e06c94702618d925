"""
hookgate — package root

File: src/hookgate/__init__.py
Last updated: 2026-10-19

Purpose
- Package root for the git lifecycle validation gate.

What should be included in this file
- Version export and a deliberately small public surface.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).

Non-functional requirements
- Import time stays fast: submodules are imported lazily by the CLI.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
