"""Typed mailbox messages: a tagged union of payloads keyed by message ``type``."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import ClassVar, assert_never, cast

from teamwork.constants import INBOX_SCHEMA_VERSION
from teamwork.domain import ids as domain_ids
from teamwork.domain.models import (
    CanonicalModel,
    JSONValue,
    _as_datetime,
    _as_enum,
    _as_int,
    _as_mapping,
    _as_optional_str,
    _as_sequence,
    _as_str,
    _expect_object,
    _fail,
    to_iso8601z,
)


class MessageType(StrEnum):
    TEXT = "text"
    IDLE_NOTIFICATION = "idle_notification"
    SHUTDOWN_REQUEST = "shutdown_request"
    SHUTDOWN_RESPONSE = "shutdown_response"


@dataclass(frozen=True, slots=True)
class TextPayload(CanonicalModel):
    message_type: ClassVar[MessageType] = MessageType.TEXT

    text: str

    def __post_init__(self) -> None:
        _as_str(self.text, "TextPayload.text", strip=False)


@dataclass(frozen=True, slots=True)
class IdleNotification(CanonicalModel):
    """A worker finished its task (or found none) and is waiting for work."""

    message_type: ClassVar[MessageType] = MessageType.IDLE_NOTIFICATION

    worker_id: str
    completed_task_id: str | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        _as_str(self.worker_id, "IdleNotification.worker_id", max_len=128)
        _as_optional_str(self.completed_task_id, "IdleNotification.completed_task_id")
        _as_optional_str(self.reason, "IdleNotification.reason")


@dataclass(frozen=True, slots=True)
class ShutdownRequest(CanonicalModel):
    message_type: ClassVar[MessageType] = MessageType.SHUTDOWN_REQUEST

    reason: str | None = None

    def __post_init__(self) -> None:
        _as_optional_str(self.reason, "ShutdownRequest.reason")


@dataclass(frozen=True, slots=True)
class ShutdownResponse(CanonicalModel):
    message_type: ClassVar[MessageType] = MessageType.SHUTDOWN_RESPONSE

    approved: bool
    reason: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.approved, bool):
            _fail("ShutdownResponse.approved", "expected boolean")
        _as_optional_str(self.reason, "ShutdownResponse.reason")


Payload = TextPayload | IdleNotification | ShutdownRequest | ShutdownResponse


def payload_type(payload: Payload) -> MessageType:
    match payload:
        case TextPayload():
            return MessageType.TEXT
        case IdleNotification():
            return MessageType.IDLE_NOTIFICATION
        case ShutdownRequest():
            return MessageType.SHUTDOWN_REQUEST
        case ShutdownResponse():
            return MessageType.SHUTDOWN_RESPONSE
        case _:
            assert_never(payload)


def payload_from_dict(message_type: MessageType, raw: object, path: str = "payload") -> Payload:
    """Decode ``raw`` for ``message_type``; a bare string is accepted for ``text``."""
    match message_type:
        case MessageType.TEXT:
            if isinstance(raw, str):
                return TextPayload(text=raw)
            data = _expect_object(_as_mapping(raw, path), path, required={"text"})
            return TextPayload(text=cast("str", data["text"]))
        case MessageType.IDLE_NOTIFICATION:
            data = _expect_object(
                _as_mapping(raw, path),
                path,
                required={"worker_id"},
                optional={"completed_task_id", "reason"},
            )
            return IdleNotification(
                worker_id=cast("str", data["worker_id"]),
                completed_task_id=cast("str | None", data.get("completed_task_id")),
                reason=cast("str | None", data.get("reason")),
            )
        case MessageType.SHUTDOWN_REQUEST:
            data = _expect_object(_as_mapping(raw or {}, path), path, required=set(), optional={"reason"})
            return ShutdownRequest(reason=cast("str | None", data.get("reason")))
        case MessageType.SHUTDOWN_RESPONSE:
            data = _expect_object(
                _as_mapping(raw, path), path, required={"approved"}, optional={"reason"}
            )
            return ShutdownResponse(
                approved=cast("bool", data["approved"]),
                reason=cast("str | None", data.get("reason")),
            )
        case _:
            assert_never(message_type)


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    sender: str
    recipient: str
    payload: Payload
    timestamp: datetime
    read: bool = False

    def __post_init__(self) -> None:
        domain_ids.validate_message_id(self.id)
        _as_str(self.sender, "Message.from", max_len=128)
        domain_ids.validate_actor_id(self.recipient)
        _as_datetime(self.timestamp, "Message.timestamp")
        if not isinstance(self.read, bool):
            _fail("Message.read", "expected boolean")

    @property
    def type(self) -> MessageType:
        return payload_type(self.payload)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "type": self.type.value,
            "payload": cast("JSONValue", self.payload.to_dict()),
            "timestamp": to_iso8601z(self.timestamp),
            "read": self.read,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str = "Message") -> Message:
        parsed = _expect_object(
            data,
            path,
            required={"id", "from", "to", "type", "payload", "timestamp"},
            optional={"read"},
        )
        message_type = _as_enum(MessageType, parsed["type"], f"{path}.type")
        read = parsed.get("read", False)
        if not isinstance(read, bool):
            _fail(f"{path}.read", "expected boolean")
        return cls(
            id=cast("str", parsed["id"]),
            sender=cast("str", parsed["from"]),
            recipient=cast("str", parsed["to"]),
            payload=payload_from_dict(message_type, parsed["payload"], f"{path}.payload"),
            timestamp=_as_datetime(parsed["timestamp"], f"{path}.timestamp"),
            read=read,
        )


@dataclass(frozen=True, slots=True)
class Inbox:
    """One actor's message log, oldest first."""

    actor: str
    messages: tuple[Message, ...] = ()
    schema_version: int = INBOX_SCHEMA_VERSION

    def __post_init__(self) -> None:
        domain_ids.validate_actor_id(self.actor)
        _as_int(self.schema_version, "Inbox.schema_version", minimum=1)
        for index, message in enumerate(self.messages):
            if not isinstance(message, Message):
                _fail(f"Inbox.messages[{index}]", f"expected Message, got {type(message).__name__}")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": self.schema_version,
            "actor": self.actor,
            "messages": [message.to_dict() for message in self.messages],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Inbox:
        parsed = _expect_object(
            data, "Inbox", required={"actor", "messages"}, optional={"schema_version"}
        )
        raw_messages = _as_sequence(parsed["messages"], "Inbox.messages")
        return cls(
            actor=cast("str", parsed["actor"]),
            messages=tuple(
                Message.from_dict(
                    _as_mapping(item, f"Inbox.messages[{index}]"), f"Inbox.messages[{index}]"
                )
                for index, item in enumerate(raw_messages)
            ),
            schema_version=cast("int", parsed.get("schema_version", INBOX_SCHEMA_VERSION)),
        )


__all__ = [
    "IdleNotification",
    "Inbox",
    "Message",
    "MessageType",
    "Payload",
    "ShutdownRequest",
    "ShutdownResponse",
    "TextPayload",
    "payload_from_dict",
    "payload_type",
]
