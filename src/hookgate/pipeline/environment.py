"""Collaborators of one hook invocation, wired from the effective configuration."""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from hookgate.adapters.git import GitClient
from hookgate.adapters.process import CommandRunner, run_command
from hookgate.adapters.tools import ToolRunner
from hookgate.constants import (
    AUDIT_LOG_PATH,
    CACHE_MAX_ENTRIES,
    DEFAULT_COVERAGE_THRESHOLD,
    DEFAULT_PROTECTED_BRANCHES,
    METRICS_WINDOW,
    RESULT_CACHE_PATH,
)
from hookgate.domain import utc_now
from hookgate.observability.metrics import PerformanceTracker
from hookgate.pipeline.cache import ResultCache
from hookgate.policy.bypass import AuditLedger, development_mode_enabled
from hookgate.policy.gatekeeper import Gatekeeper
from hookgate.policy.recovery import RecoveryEngine
from hookgate.workflow.messages import MessageValidator
from hookgate.workflow.synchronizer import ContextSynchronizer


@dataclass(slots=True)
class HookEnvironment:
    repo_root: Path
    config: Mapping[str, Any]
    git: GitClient
    tools: ToolRunner
    cache: ResultCache
    synchronizer: ContextSynchronizer
    messages: MessageValidator
    gatekeeper: Gatekeeper
    recovery: RecoveryEngine
    ledger: AuditLedger
    tracker: PerformanceTracker
    environ: Mapping[str, str]
    clock: Callable[[], datetime]
    development_mode: bool
    strict: bool

    @classmethod
    def from_config(
        cls,
        repo_root: Path | str,
        config: Mapping[str, Any],
        *,
        runner: CommandRunner | None = None,
        environ: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] = utc_now,
        tracker: PerformanceTracker | None = None,
        logger: Any | None = None,
    ) -> HookEnvironment:
        root = Path(repo_root).resolve()
        env = dict(os.environ if environ is None else environ)
        run = runner if runner is not None else run_command
        log = logger if logger is not None else structlog.get_logger("hookgate")

        gate_cfg = config.get("gatekeeper", {})
        timeouts = config.get("timeouts", {})
        thresholds = config.get("thresholds", {})
        context_cfg = config.get("context", {})
        commit_msg = config.get("commitMsg", {})
        strict = bool(gate_cfg.get("strictMode", True))
        development_mode = development_mode_enabled(config, env)
        context_file = str(context_cfg.get("file", "activeContext.md"))

        git = GitClient(root, runner=run, timeout_seconds=float(timeouts.get("git", 30.0)))
        tools = ToolRunner(
            root, commands=config.get("commands", {}), timeouts=timeouts, runner=run
        )
        if tracker is None:
            tracker = PerformanceTracker(
                window=METRICS_WINDOW,
                threshold_ms=float(thresholds.get("performanceMs", 5000)),
                optimized_threshold_ms=float(thresholds.get("optimizedPerformanceMs", 3000)),
            )
        synchronizer = ContextSynchronizer(
            root,
            git=git,
            context_file=context_file,
            max_history=int(context_cfg.get("maxHistory", 10)),
            clock=clock,
            logger=log,
        )
        return cls(
            repo_root=root,
            config=config,
            git=git,
            tools=tools,
            cache=ResultCache(
                root / RESULT_CACHE_PATH,
                ttl_seconds=float(thresholds.get("cacheTtlSeconds", 300.0)),
                max_entries=CACHE_MAX_ENTRIES,
                logger=log,
            ),
            synchronizer=synchronizer,
            messages=MessageValidator(
                allow_bmad=bool(commit_msg.get("bmadPattern", True)),
                allow_conventional=bool(commit_msg.get("conventionalCommits", True)),
            ),
            gatekeeper=Gatekeeper(
                development_mode=development_mode,
                bypass_enabled=bool(gate_cfg.get("bypassEnabled", False)),
                tools=tools,
                logger=log,
            ),
            recovery=RecoveryEngine(
                root,
                tools=tools,
                tracker=tracker,
                context_store=synchronizer.store,
                max_attempts=int(config.get("recovery", {}).get("maxAttempts", 3)),
                strict=strict,
                logger=log,
            ),
            ledger=AuditLedger(root / AUDIT_LOG_PATH, environ=env, logger=log),
            tracker=tracker,
            environ=env,
            clock=clock,
            development_mode=development_mode,
            strict=strict,
        )

    def enabled(self, section: str, option: str) -> bool:
        return bool(self.config.get(section, {}).get(option, False))

    @property
    def context_file(self) -> str:
        return self.synchronizer.context_file

    @property
    def coverage_threshold(self) -> float:
        value = self.config.get("thresholds", {}).get("coverage", DEFAULT_COVERAGE_THRESHOLD)
        return float(value)

    @property
    def protected_branches(self) -> tuple[str, ...]:
        repository = self.config.get("repository", {})
        return tuple(repository.get("protectedBranches", DEFAULT_PROTECTED_BRANCHES))

    @property
    def critical_files(self) -> tuple[str, ...]:
        return tuple(self.config.get("repository", {}).get("criticalFiles", (".git",)))


__all__ = ["HookEnvironment"]
