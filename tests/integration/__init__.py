"""
hookgate — integration test package

File: tests/integration/__init__.py
Last updated: 2026-10-19

Purpose
- Test package marker for suites that drive a real git repository through the CLI.

Functional requirements
- Must not import heavy modules at import time; keep test collection fast.
- Must not trigger network access.
"""
