"""Command-line interface router for hookgate."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, TextIO

from hookgate.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
    load_config_report,
)
from hookgate.constants import AUDIT_LOG_PATH, PROJECT_METRICS_PATH
from hookgate.domain import Stage, StageReport, format_timestamp, utc_now
from hookgate.observability.logging import setup_hook_logging, shutdown_logging
from hookgate.pipeline import HookEnvironment, HookOrchestrator
from hookgate.pipeline.reports import error_report
from hookgate.policy.bypass import AuditLedger, get_bypass_options
from hookgate.policy.classifier import classify
from hookgate.policy.remediation import build_remediation, render_error_report
from hookgate.ui.render import CLIRenderer, create_renderer

STAGE_COMMANDS: Final[tuple[str, ...]] = tuple(stage.value for stage in Stage)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for hook stages and maintenance commands."""

    parser = argparse.ArgumentParser(
        prog="hookgate",
        description=(
            "hookgate — git lifecycle validation gate.\n\n"
            "Hook scripts call one stage command each, for example:\n"
            '  hookgate pre-commit\n'
            '  hookgate commit-msg "$1"\n'
            '  hookgate pre-push "$1" "$2"\n'
            '  hookgate post-checkout "$1" "$2" "$3"\n'
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--repo-root",
        default=".",
        help="Repository root directory (default: current working directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to the JSON config (default: ./.hookgate.json if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show skipped checks, remediation and recovery details.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Write the machine-readable report to stdout.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    pre_commit = subparsers.add_parser(
        "pre-commit", parents=[common], help="Validate staged changes before a commit"
    )
    pre_commit.add_argument(
        "files", nargs="*", help="Staged paths to validate (default: ask git)."
    )
    pre_commit.set_defaults(handler=_cmd_pre_commit)

    commit_msg = subparsers.add_parser(
        "commit-msg", parents=[common], help="Validate the commit message file"
    )
    commit_msg.add_argument("message_file", help="Path git passes to the commit-msg hook.")
    commit_msg.set_defaults(handler=_cmd_commit_msg)

    pre_push = subparsers.add_parser(
        "pre-push", parents=[common], help="Run the full suite before a push"
    )
    pre_push.add_argument("remote", nargs="?", default=None, help="Remote name.")
    pre_push.add_argument("url", nargs="?", default=None, help="Remote URL (unused).")
    pre_push.add_argument("--branch", default=None, help="Branch being pushed.")
    pre_push.set_defaults(handler=_cmd_pre_push)

    post_commit = subparsers.add_parser(
        "post-commit", parents=[common], help="Record metrics and context after a commit"
    )
    post_commit.add_argument("--commit", default=None, help="Commit hash (default: HEAD).")
    post_commit.set_defaults(handler=_cmd_post_commit)

    post_merge = subparsers.add_parser(
        "post-merge", parents=[common], help="Validate repository state after a merge"
    )
    post_merge.add_argument(
        "squash", nargs="?", default="0", help="Squash flag git passes (1 for squash merges)."
    )
    post_merge.set_defaults(handler=_cmd_post_merge)

    pre_rebase = subparsers.add_parser(
        "pre-rebase", parents=[common], help="Refuse unsafe rebases"
    )
    pre_rebase.add_argument("upstream", nargs="?", default=None)
    pre_rebase.add_argument("branch", nargs="?", default=None)
    pre_rebase.set_defaults(handler=_cmd_pre_rebase)

    post_checkout = subparsers.add_parser(
        "post-checkout", parents=[common], help="Resynchronize context after a checkout"
    )
    post_checkout.add_argument("previous", nargs="?", default=None)
    post_checkout.add_argument("new", nargs="?", default=None)
    post_checkout.add_argument("branch_flag", nargs="?", default=None)
    post_checkout.set_defaults(handler=_cmd_post_checkout)

    pre_receive = subparsers.add_parser(
        "pre-receive",
        parents=[common],
        help="Validate pushed ref updates (reads '<old> <new> <ref>' lines from stdin)",
    )
    pre_receive.set_defaults(handler=_cmd_pre_receive)

    classify_parser = subparsers.add_parser(
        "classify", parents=[common], help="Classify an error message"
    )
    classify_parser.add_argument("message", help="Error text to classify.")
    classify_parser.add_argument(
        "--stage", choices=STAGE_COMMANDS, default=Stage.PRE_COMMIT.value
    )
    classify_parser.set_defaults(handler=_cmd_classify)

    audit_parser = subparsers.add_parser(
        "audit", parents=[common], help="Print the bypass audit trail"
    )
    audit_parser.set_defaults(handler=_cmd_audit)

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Show effective config and validation warnings"
    )
    config_parser.set_defaults(handler=_cmd_config)

    metrics_parser = subparsers.add_parser(
        "metrics", parents=[common], help="Show accumulated project metrics"
    )
    metrics_parser.set_defaults(handler=_cmd_metrics)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None, *, stdin: TextIO | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    namespace.stdin = stdin if stdin is not None else sys.stdin
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Stage handlers
# ---------------------------------------------------------------------------


def _cmd_pre_commit(args: argparse.Namespace) -> int:
    files = list(args.files) or None
    return _run_stage(args, Stage.PRE_COMMIT, staged_files=files)


def _cmd_commit_msg(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    path = Path(args.message_file)
    if not path.is_absolute():
        path = repo_root / path
    try:
        message = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"cannot read commit message file {path}: {exc}", exit_code=2) from exc
    return _run_stage(args, Stage.COMMIT_MSG, message=message)


def _cmd_pre_push(args: argparse.Namespace) -> int:
    return _run_stage(args, Stage.PRE_PUSH, remote=args.remote, branch=args.branch)


def _cmd_post_commit(args: argparse.Namespace) -> int:
    return _run_stage(args, Stage.POST_COMMIT, commit_hash=args.commit)


def _cmd_post_merge(args: argparse.Namespace) -> int:
    merge_type = "squash" if str(args.squash).strip() == "1" else "standard"
    return _run_stage(args, Stage.POST_MERGE, merge_type=merge_type)


def _cmd_pre_rebase(args: argparse.Namespace) -> int:
    return _run_stage(args, Stage.PRE_REBASE, upstream=args.upstream, branch=args.branch)


def _cmd_post_checkout(args: argparse.Namespace) -> int:
    return _run_stage(
        args,
        Stage.POST_CHECKOUT,
        previous=args.previous,
        new=args.new,
        branch_flag=args.branch_flag,
    )


def _cmd_pre_receive(args: argparse.Namespace) -> int:
    updates = parse_ref_updates(args.stdin.read())
    return _run_stage(args, Stage.PRE_RECEIVE, updates=updates)


def parse_ref_updates(text: str) -> list[tuple[str, str, str]]:
    """Parse ``<old> <new> <ref>`` lines as git feeds them to pre-receive."""

    updates: list[tuple[str, str, str]] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        parts = line.split()
        if len(parts) != 3:
            raise CLIError(f"malformed ref update on line {line_no}: {line!r}", exit_code=2)
        updates.append((parts[0], parts[1], parts[2]))
    return updates


def _run_stage(args: argparse.Namespace, stage: Stage, **arguments: Any) -> int:
    repo_root = _repo_root(args)
    try:
        config = load_config(_optional_str(args.config_path), repo_root=repo_root)
        orchestrator = HookOrchestrator(HookEnvironment.from_config(repo_root, config))
    except (ConfigLoadError, ConfigValidationError, ValueError, OSError) as exc:
        # an unreadable configuration is a stage failure, never a crash of the hook
        return _emit_report(
            args,
            error_report(stage, exc, timestamp=format_timestamp(utc_now()), duration_ms=0.0),
        )
    handle = setup_hook_logging(
        config.get("observability"),
        repo_root=repo_root,
        invocation_id=orchestrator.invocation_id,
    )
    try:
        report = orchestrator.run_stage(stage, **arguments)
    finally:
        shutdown_logging(handle)
    return _emit_report(args, report)


def _emit_report(args: argparse.Namespace, report: StageReport) -> int:
    if _flag(args, "json"):
        _emit_json(report.to_dict())
    else:
        _get_renderer(args).report(report)
    return 0 if report.success else 1


# ---------------------------------------------------------------------------
# Maintenance handlers
# ---------------------------------------------------------------------------


def _cmd_classify(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    config = _load_effective_config(args, repo_root)
    strict = bool(config.get("gatekeeper", {}).get("strictMode", True))
    classification = classify(args.message, args.stage, strict=strict)
    options = get_bypass_options(classification)

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "classify",
                "classification": classification.to_dict(),
                "bypass": options.to_dict(),
            }
        )
        return 0

    renderer = _get_renderer(args)
    renderer.text(
        render_error_report(args.stage, classification, build_remediation(classification))
    )
    if options.available:
        renderer.section("Bypass options:")
        renderer.items([f"{method.name}: {method.command}" for method in options.methods])
    else:
        renderer.kv("Bypass", options.reason)
    return 0


def _cmd_audit(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    trail = AuditLedger(repo_root / AUDIT_LOG_PATH).read_trail()

    if _flag(args, "json"):
        _emit_json({"command": "audit", "entries": [record.to_dict() for record in trail]})
        return 0

    renderer = _get_renderer(args)
    if not trail:
        renderer.text("No bypasses recorded.")
        return 0
    renderer.table(
        ("timestamp", "stage", "category", "method", "actor"),
        [
            (
                record.timestamp,
                record.stage,
                record.error_category,
                record.bypass_method,
                record.actor,
            )
            for record in trail
        ],
    )
    if renderer.verbose:
        renderer.section("Reasons:")
        renderer.items([f"{record.timestamp}: {record.reason}" for record in trail])
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    try:
        result = load_config_report(_optional_str(args.config_path), repo_root=repo_root)
    except ConfigLoadError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    payload: dict[str, object] = {
        "command": "config",
        "valid": result.is_valid,
        "config": effective_config(result.config) if result.config is not None else None,
        "issues": [_issue_payload(item) for item in result.issues],
        "warnings": [_issue_payload(item) for item in result.warnings],
    }
    if _flag(args, "json"):
        _emit_json(payload)
        return 0 if result.is_valid else 2

    renderer = _get_renderer(args)
    if result.config is not None:
        renderer.text(json.dumps(payload["config"], indent=2, sort_keys=True))
    for title, items in (("Errors:", result.issues), ("Warnings:", result.warnings)):
        if not items:
            continue
        renderer.section(title)
        for item in items:
            line = f"{item.path}: {item.message}"
            if item.recommendation:
                line = f"{line} ({item.recommendation})"
            renderer.items([line])
    return 0 if result.is_valid else 2


def _cmd_metrics(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    path = repo_root / PROJECT_METRICS_PATH
    metrics: dict[str, Any] | None = None
    if path.is_file():
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CLIError(f"cannot read project metrics {path}: {exc}") from exc
        metrics = loaded if isinstance(loaded, dict) else None

    if _flag(args, "json"):
        _emit_json({"command": "metrics", "metrics": metrics})
        return 0

    renderer = _get_renderer(args)
    if metrics is None:
        renderer.text("No project metrics recorded yet.")
        return 0
    for key in sorted(metrics):
        renderer.kv(key, metrics[key])
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


def _repo_root(args: argparse.Namespace) -> Path:
    raw = _optional_str(getattr(args, "repo_root", None)) or "."
    candidate = Path(raw).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(f"repo root is not a directory: {candidate}", exit_code=2)
    return candidate


def _load_effective_config(args: argparse.Namespace, repo_root: Path) -> dict[str, Any]:
    try:
        return load_config(_optional_str(args.config_path), repo_root=repo_root)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _issue_payload(item: Any) -> dict[str, object]:
    return {"path": item.path, "message": item.message, "recommendation": item.recommendation}


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = ["STAGE_COMMANDS", "CLIError", "build_parser", "main", "parse_ref_updates", "run_cli"]
