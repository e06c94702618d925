"""Adapters for external collaborators: subprocesses, git, tool reports, remote CI."""

from hookgate.adapters.git import CommitRecord, GitClient, GitCommandError
from hookgate.adapters.process import (
    CommandError,
    CommandResult,
    CommandRunner,
    run_command,
    split_command,
)
from hookgate.adapters.tools import ToolRunner

__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "CommitRecord",
    "GitClient",
    "GitCommandError",
    "ToolRunner",
    "run_command",
    "split_command",
]
