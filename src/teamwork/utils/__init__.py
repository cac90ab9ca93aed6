"""Utility exports for filesystem and concurrency helpers."""

from teamwork.utils.concurrency import (
    CancellationToken,
    Deadline,
    RetryPolicy,
    pid_is_alive,
)
from teamwork.utils.fs import (
    atomic_write,
    atomic_write_json,
    ensure_directory,
    is_within,
    read_text_if_exists,
    safe_delete,
)

__all__ = [
    "CancellationToken",
    "Deadline",
    "RetryPolicy",
    "atomic_write",
    "atomic_write_json",
    "ensure_directory",
    "is_within",
    "pid_is_alive",
    "read_text_if_exists",
    "safe_delete",
]
