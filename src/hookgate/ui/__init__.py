"""UI package exports for the CLI and report rendering."""

from hookgate.ui.cli import build_parser, main, parse_ref_updates, run_cli
from hookgate.ui.render import CLIRenderer, create_renderer

__all__ = [
    "CLIRenderer",
    "build_parser",
    "create_renderer",
    "main",
    "parse_ref_updates",
    "run_cli",
]
