"""Thin git CLI wrapper for the queries hook validators need."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from hookgate.adapters.process import CommandError, CommandResult, run_command

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from hookgate.adapters.process import CommandRunner

_ZERO_SHA_RE = re.compile(r"^0+$")
_GIT_ENV: dict[str, str] = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_CONFIG_NOSYSTEM": "1",
    "LC_ALL": "C",
}


class GitCommandError(CommandError):
    """Raised when a git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int | None,
        stdout: str,
        stderr: str,
    ) -> None:
        super().__init__(command=command, returncode=returncode, stdout=stdout, stderr=stderr)
        rc = "timeout" if returncode is None else str(returncode)
        message = f"git command failed ({rc}): {' '.join(self.command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        self.args = (message,)


@dataclass(frozen=True, slots=True)
class CommitRecord:
    sha: str
    subject: str


def is_zero_sha(value: str) -> bool:
    """Return True for git's all-zero object id (branch creation or deletion)."""
    return bool(_ZERO_SHA_RE.fullmatch(value.strip()))


class GitClient:
    """Deterministic wrapper around git CLI queries used by the hooks."""

    def __init__(
        self,
        repo_root: Path | str,
        *,
        runner: CommandRunner | None = None,
        timeout_seconds: float = 30.0,
        env_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self.repo_root = Path(repo_root).resolve()
        self._runner: CommandRunner = runner if runner is not None else run_command
        self._timeout = timeout_seconds
        self._env = {**_GIT_ENV, **dict(env_overrides or {})}

    def run(self, *args: str, check: bool = True) -> CommandResult:
        result = self._runner(
            ("git", *args), cwd=self.repo_root, timeout=self._timeout, env=self._env
        )
        if check and not result.ok:
            raise GitCommandError(
                command=result.argv,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr or (result.error or ""),
            )
        return result

    def staged_files(self) -> tuple[str, ...]:
        """Added, copied or modified paths in the index."""
        return _lines(self.run("diff", "--cached", "--name-only", "--diff-filter=ACM").stdout)

    def changed_files(self) -> tuple[str, ...]:
        """Staged changes when there are any, otherwise unstaged working-tree changes."""
        staged = _lines(self.run("diff", "--cached", "--name-only", check=False).stdout)
        if staged:
            return staged
        return _lines(self.run("diff", "--name-only", check=False).stdout)

    def files_in_commit(self, ref: str = "HEAD") -> tuple[str, ...]:
        result = self.run(
            "diff-tree", "--no-commit-id", "--name-only", "-r", "--root", ref, check=False
        )
        return _lines(result.stdout) if result.ok else ()

    def head(self) -> str | None:
        result = self.run("rev-parse", "--verify", "HEAD", check=False)
        return (result.stdout.strip() or None) if result.ok else None

    def index_tree(self) -> str | None:
        """Tree object id of the current index; changes whenever staged content does."""
        result = self.run("write-tree", check=False)
        return (result.stdout.strip() or None) if result.ok else None

    def previous_head(self) -> str | None:
        """Commit HEAD pointed at before the last merge/reset (``ORIG_HEAD``, then reflog)."""
        for ref in ("ORIG_HEAD", "HEAD@{1}"):
            result = self.run("rev-parse", "--verify", "--quiet", ref, check=False)
            if result.ok and result.stdout.strip():
                return result.stdout.strip()
        return None

    def current_branch(self) -> str | None:
        result = self.run("rev-parse", "--abbrev-ref", "HEAD", check=False)
        branch = result.stdout.strip()
        if not result.ok or not branch or branch == "HEAD":
            return None
        return branch

    def status_porcelain(self) -> tuple[str, ...]:
        return _lines(self.run("status", "--porcelain").stdout)

    def diff_check(self) -> CommandResult:
        """``git diff --check`` against HEAD; non-zero exit means whitespace or conflict markers."""
        return self.run("diff", "--check", "HEAD", check=False)

    def fsck(self) -> CommandResult:
        return self.run("fsck", "--no-progress", "--no-dangling", check=False)

    def remotes(self) -> tuple[str, ...]:
        return _lines(self.run("remote", check=False).stdout)

    def stash_list(self) -> tuple[str, ...]:
        return _lines(self.run("stash", "list", check=False).stdout)

    def recent_commits(self, count: int = 10) -> tuple[CommitRecord, ...]:
        result = self.run("log", f"-n{max(1, count)}", "--format=%H%x09%s", check=False)
        if not result.ok:
            return ()
        records: list[CommitRecord] = []
        for line in _lines(result.stdout):
            sha, _, subject = line.partition("\t")
            records.append(CommitRecord(sha=sha, subject=subject))
        return tuple(records)

    def recent_messages(self, count: int = 10) -> tuple[str, ...]:
        return tuple(record.subject for record in self.recent_commits(count))

    def commit_message(self, ref: str = "HEAD") -> str:
        result = self.run("log", "-1", "--format=%B", ref, check=False)
        return result.stdout.strip() if result.ok else ""

    def changed_between(self, from_ref: str, to_ref: str = "HEAD") -> tuple[str, ...]:
        """Paths touched in ``from_ref..to_ref``; empty when either ref does not resolve."""
        result = self.run("diff", "--name-only", f"{from_ref}..{to_ref}", check=False)
        return _lines(result.stdout) if result.ok else ()

    def show_stat(self, ref: str = "HEAD") -> str:
        result = self.run("show", "--stat", "--format=", ref, check=False)
        return result.stdout if result.ok else ""

    def diff_stat(self, from_ref: str, to_ref: str = "HEAD") -> str:
        result = self.run("diff", "--stat", from_ref, to_ref, check=False)
        return result.stdout if result.ok else ""

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = self.run("merge-base", "--is-ancestor", ancestor, descendant, check=False)
        if result.returncode in (0, 1):
            return result.returncode == 0
        raise GitCommandError(
            command=result.argv,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    def commits_between(self, old: str, new: str, *, limit: int = 100) -> tuple[CommitRecord, ...]:
        """Commits reachable from ``new`` but not ``old``; a zero ``old`` means a new ref."""
        revision = new if is_zero_sha(old) else f"{old}..{new}"
        result = self.run("rev-list", f"--max-count={limit}", "--format=%H%x09%s", revision)
        records: list[CommitRecord] = []
        for line in _lines(result.stdout):
            if line.startswith("commit "):
                continue
            sha, _, subject = line.partition("\t")
            records.append(CommitRecord(sha=sha, subject=subject))
        return tuple(records)


def _lines(text: str) -> tuple[str, ...]:
    return tuple(line.strip() for line in text.splitlines() if line.strip())


__all__ = ["CommitRecord", "GitClient", "GitCommandError", "is_zero_sha"]
