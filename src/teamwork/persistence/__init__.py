"""
teamwork — persistence layer

File: src/teamwork/persistence/__init__.py
Last updated: 2026-10-19

Purpose
- File-per-record storage, directory locks and typed stores for tasks, project metadata,
  wave plans and verification records.

Functional requirements
- Every mutation is a locked read-modify-write with an atomic replace.
- Corrupt records surface as ``CorruptStateError``; they are never skipped silently.
"""

from teamwork.persistence.backend import FileSystemBackend, StorageBackend
from teamwork.persistence.layout import ProjectLayout
from teamwork.persistence.locks import LockHandle, LockHolder, LockManager
from teamwork.persistence.project_store import CleanResult, ProjectStore
from teamwork.persistence.records import RecordStore
from teamwork.persistence.task_store import TaskDeletion, TaskFilter, TaskStore
from teamwork.persistence.wave_store import WaveStore

__all__ = [
    "CleanResult",
    "FileSystemBackend",
    "LockHandle",
    "LockHolder",
    "LockManager",
    "ProjectLayout",
    "ProjectStore",
    "RecordStore",
    "StorageBackend",
    "TaskDeletion",
    "TaskFilter",
    "TaskStore",
    "WaveStore",
]
