"""
hookgate — filesystem utilities

File: src/hookgate/utils/fs.py
Last updated: 2026-10-19

Purpose
- Filesystem helpers for the state hookgate shares between git hook processes:
  the context document, the result cache, the audit log and the hook cache dir.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step.
- Appends are durable (flushed and fsynced) and never truncate existing content.
- Directory resets refuse paths outside the repository root.

Non-functional requirements
- Standard library only and cross-platform behavior where feasible.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "append_line",
    "atomic_write",
    "reset_directory",
]


def atomic_write(
    path: PathLike,
    data: bytes | str,
    *,
    encoding: str = "utf-8",
    create_parents: bool = False,
) -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.

    Concurrent readers observe either the previous content or the new content.
    """

    target = Path(path)
    if create_parents:
        target.parent.mkdir(parents=True, exist_ok=True)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)
    payload = data if isinstance(data, bytes) else data.encode(encoding)

    try:
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())

        os.replace(temp_path, target)
        _fsync_directory(target_parent)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def append_line(path: PathLike, line: str, *, encoding: str = "utf-8") -> None:
    """
    Append one newline-terminated line to ``path``, creating parent directories.

    Lines are written with a single ``write`` call in append mode, so records from
    concurrent hook processes never interleave within a line.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    text = line if line.endswith("\n") else f"{line}\n"
    with target.open("a", encoding=encoding) as file_handle:
        file_handle.write(text)
        file_handle.flush()
        os.fsync(file_handle.fileno())


def reset_directory(path: PathLike, root: PathLike) -> Path:
    """
    Remove ``path`` (if present) and recreate it empty.

    ``path`` must resolve inside ``root``; symlinks are unlinked, not followed.
    """

    root_dir = Path(root).resolve(strict=True)
    if not root_dir.is_dir():
        raise NotADirectoryError(f"{root_dir!s} is not a directory")

    target = Path(path)
    candidate = target.parent.resolve() / target.name
    if not _is_relative_to(candidate, root_dir) or candidate == root_dir:
        raise ValueError(f"refusing to reset directory outside repository root: {target!s}")

    if target.is_symlink() or target.is_file():
        target.unlink()
    elif target.is_dir():
        shutil.rmtree(target)

    target.mkdir(parents=True, exist_ok=True)
    return target


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True


def _fsync_directory(path: Path) -> None:
    """Best-effort directory fsync; some filesystems reject it."""

    if os.name == "nt":
        return

    flags = os.O_RDONLY
    if hasattr(os, "O_DIRECTORY"):
        flags |= os.O_DIRECTORY

    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return

    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)
