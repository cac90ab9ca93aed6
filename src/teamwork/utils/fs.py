"""
teamwork — filesystem utilities

File: src/teamwork/utils/fs.py
Last updated: 2026-10-19

Purpose
- Atomic record writes, tolerant reads and guarded deletion for the shared state tree.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step,
  so readers observe either the previous or the new content, never a torn file.
- Deletion refuses paths outside the project directory.
"""

from __future__ import annotations

import contextlib
import json
import os
import shutil
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "atomic_write_json",
    "ensure_directory",
    "is_within",
    "read_text_if_exists",
    "safe_delete",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        payload = data if isinstance(data, bytes) else data.encode(encoding)
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


def atomic_write_json(path: PathLike, payload: object) -> None:
    """Serialize ``payload`` as stable, human-readable JSON and write it atomically."""

    text = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n"
    atomic_write(path, text)


def read_text_if_exists(path: PathLike, *, encoding: str = "utf-8") -> str | None:
    """Return file contents, or ``None`` when the file does not exist."""

    try:
        return Path(path).read_text(encoding=encoding)
    except FileNotFoundError:
        return None


def ensure_directory(path: PathLike) -> Path:
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if resolved ``child`` is within resolved ``parent``."""

    try:
        resolved_parent = Path(parent).resolve(strict=True)
        resolved_child = Path(child).resolve(strict=True)
    except FileNotFoundError:
        return False
    if not resolved_parent.is_dir():
        return False
    return _is_relative_to(resolved_child, resolved_parent)


def safe_delete(path: PathLike, root: PathLike) -> None:
    """
    Delete ``path`` only if it is contained within ``root``.

    Symlinks are unlinked without traversing into their targets. Missing paths are ignored.
    """

    boundary = Path(root).resolve(strict=True)
    if not boundary.is_dir():
        raise NotADirectoryError(f"{boundary!s} is not a directory")

    target = Path(path)
    if not target.exists() and not target.is_symlink():
        return
    candidate = target.parent.resolve(strict=True) / target.name
    if not _is_relative_to(candidate, boundary) or candidate == boundary:
        raise ValueError(f"refusing to delete path outside {boundary!s}: {target!s}")

    if target.is_symlink():
        target.unlink()
        return
    if target.is_dir():
        shutil.rmtree(target)
        return
    target.unlink()


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True


def _fsync_directory(path: Path) -> None:
    """
    Best-effort directory fsync for metadata durability after ``os.replace``.

    Some platforms/filesystems do not support fsync on directories.
    """

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
