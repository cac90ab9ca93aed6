"""
teamwork — domain layer

File: src/teamwork/domain/__init__.py
Last updated: 2026-10-19

Purpose
- Domain types shared across components: Task, Evidence, Wave, WavePlan, Project, Message.

Functional requirements
- Domain objects must be serializable and versioned.
- Keep the domain layer free of IO side effects.
"""

from teamwork.domain.errors import (
    AlreadyClaimedError,
    AlreadyExistsError,
    BlockedError,
    ContentionError,
    CorruptStateError,
    CycleError,
    InvalidTransitionError,
    NotFoundError,
    OwnershipError,
    RoleMismatchError,
    TeamworkError,
)
from teamwork.domain.messages import (
    IdleNotification,
    Inbox,
    Message,
    MessageType,
    Payload,
    ShutdownRequest,
    ShutdownResponse,
    TextPayload,
)
from teamwork.domain.models import (
    CheckStatus,
    CommandEvidence,
    Evidence,
    EvidenceType,
    FileAction,
    FileEvidence,
    NoteEvidence,
    Project,
    ProjectStats,
    Task,
    TaskStatus,
    TestEvidence,
    VerificationCheck,
    VerificationRecord,
    VerificationStatus,
    Wave,
    WavePlan,
    WaveStatus,
    utc_now,
)

__all__ = [
    "AlreadyClaimedError",
    "AlreadyExistsError",
    "BlockedError",
    "CheckStatus",
    "CommandEvidence",
    "ContentionError",
    "CorruptStateError",
    "CycleError",
    "Evidence",
    "EvidenceType",
    "FileAction",
    "FileEvidence",
    "IdleNotification",
    "Inbox",
    "InvalidTransitionError",
    "Message",
    "MessageType",
    "NotFoundError",
    "NoteEvidence",
    "OwnershipError",
    "Payload",
    "Project",
    "ProjectStats",
    "RoleMismatchError",
    "ShutdownRequest",
    "ShutdownResponse",
    "Task",
    "TaskStatus",
    "TeamworkError",
    "TestEvidence",
    "TextPayload",
    "VerificationCheck",
    "VerificationRecord",
    "VerificationStatus",
    "Wave",
    "WavePlan",
    "WaveStatus",
    "utc_now",
]
