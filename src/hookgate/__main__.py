"""Module entrypoint for ``python -m hookgate``."""

from __future__ import annotations

from hookgate.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
