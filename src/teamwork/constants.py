"""Stable constants shared across the coordination components."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
TASK_SCHEMA_VERSION: Final[int] = 1
WAVES_SCHEMA_VERSION: Final[int] = 1
INBOX_SCHEMA_VERSION: Final[int] = 1
PROJECT_SCHEMA_VERSION: Final[int] = 1

# Directory layout beneath ``<base_dir>/<project>/<team>``.
PROJECT_FILE: Final[PurePosixPath] = PurePosixPath("project.json")
WAVES_FILE: Final[PurePosixPath] = PurePosixPath("waves.json")
TASKS_DIR: Final[PurePosixPath] = PurePosixPath("tasks")
INBOXES_DIR: Final[PurePosixPath] = PurePosixPath("inboxes")
VERIFICATION_DIR: Final[PurePosixPath] = PurePosixPath("verification")
LOGS_DIR: Final[PurePosixPath] = PurePosixPath("logs")
RECORD_SUFFIX: Final[str] = ".json"

# Lock directory naming.
LOCK_SUFFIX: Final[str] = ".lock"
LOCK_HOLDER_FILE: Final[str] = "holder.json"
LOCK_BREAK_SUFFIX: Final[str] = ".break"

# Timing defaults (seconds).
DEFAULT_LOCK_TIMEOUT_SECONDS: Final[float] = 10.0
DEFAULT_LOCK_POLL_INTERVAL_SECONDS: Final[float] = 0.1
DEFAULT_LOCK_STALE_AFTER_SECONDS: Final[float] = 60.0
LOCK_HOLDER_GRACE_SECONDS: Final[float] = 5.0
DEFAULT_CLAIM_STALE_AFTER_SECONDS: Final[float] = 3600.0
DEFAULT_CLAIM_MAX_ATTEMPTS: Final[int] = 3
DEFAULT_CLAIM_RETRY_DELAY_SECONDS: Final[float] = 0.1
DEFAULT_MAILBOX_POLL_INTERVAL_SECONDS: Final[float] = 0.5

DEFAULT_ROLE: Final[str] = "worker"
SESSION_ENV_VAR: Final[str] = "TEAMWORK_SESSION_ID"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CLAIM_MAX_ATTEMPTS",
    "DEFAULT_CLAIM_RETRY_DELAY_SECONDS",
    "DEFAULT_CLAIM_STALE_AFTER_SECONDS",
    "DEFAULT_LOCK_POLL_INTERVAL_SECONDS",
    "DEFAULT_LOCK_STALE_AFTER_SECONDS",
    "DEFAULT_LOCK_TIMEOUT_SECONDS",
    "DEFAULT_MAILBOX_POLL_INTERVAL_SECONDS",
    "DEFAULT_ROLE",
    "INBOXES_DIR",
    "INBOX_SCHEMA_VERSION",
    "LOCK_BREAK_SUFFIX",
    "LOCK_HOLDER_FILE",
    "LOCK_HOLDER_GRACE_SECONDS",
    "LOCK_SUFFIX",
    "LOGS_DIR",
    "PROJECT_FILE",
    "PROJECT_SCHEMA_VERSION",
    "RECORD_SUFFIX",
    "SESSION_ENV_VAR",
    "TASKS_DIR",
    "TASK_SCHEMA_VERSION",
    "VERIFICATION_DIR",
    "WAVES_FILE",
    "WAVES_SCHEMA_VERSION",
]
