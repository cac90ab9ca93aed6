"""
Per-actor inboxes under ``inboxes/<actor>.json``.

Sends are lock-guarded appends, so concurrent senders never lose a message and each
inbox keeps send order. Reads are lock-free snapshots of the last atomic write.
"""

from __future__ import annotations

import dataclasses
import time
from typing import Any

import structlog

from teamwork.constants import DEFAULT_MAILBOX_POLL_INTERVAL_SECONDS
from teamwork.domain.ids import generate_message_id, validate_actor_id
from teamwork.domain.messages import Inbox, Message, MessageType, Payload, TextPayload
from teamwork.domain.models import Clock, utc_now
from teamwork.persistence.backend import FileSystemBackend
from teamwork.persistence.layout import ProjectLayout
from teamwork.persistence.locks import LockManager
from teamwork.persistence.records import RecordStore
from teamwork.utils.concurrency import Deadline, MonotonicClock, Sleeper


class Mailbox:
    def __init__(
        self,
        layout: ProjectLayout,
        locks: LockManager,
        *,
        poll_interval_seconds: float = DEFAULT_MAILBOX_POLL_INTERVAL_SECONDS,
        clock: Clock = utc_now,
        monotonic: MonotonicClock = time.monotonic,
        sleep: Sleeper = time.sleep,
        logger: Any | None = None,
    ) -> None:
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be > 0")
        self._layout = layout
        self._records: RecordStore[Inbox] = RecordStore(
            FileSystemBackend(layout.inboxes_dir),
            locks,
            decode=Inbox.from_dict,
            encode=Inbox.to_dict,
            label="inbox",
        )
        self._poll_interval_seconds = poll_interval_seconds
        self._clock = clock
        self._monotonic = monotonic
        self._sleep = sleep
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def create_inbox(self, actor: str) -> Inbox:
        """Create an empty inbox for ``actor``; an existing inbox is returned unchanged."""
        validate_actor_id(actor)

        def apply(current: Inbox | None) -> Inbox:
            return current if current is not None else Inbox(actor=actor)

        inbox = self._records.upsert(actor, apply, actor)
        self._logger.debug("inbox_ready", actor=actor, messages=len(inbox.messages))
        return inbox

    def send(self, sender: str, recipient: str, payload: Payload | str) -> Message:
        """Append a message to ``recipient``'s inbox, creating the inbox when missing."""
        validate_actor_id(recipient)
        message = Message(
            id=generate_message_id(),
            sender=sender,
            recipient=recipient,
            payload=TextPayload(text=payload) if isinstance(payload, str) else payload,
            timestamp=self._clock(),
        )

        def apply(current: Inbox | None) -> Inbox:
            inbox = current if current is not None else Inbox(actor=recipient)
            return dataclasses.replace(inbox, messages=(*inbox.messages, message))

        self._records.upsert(recipient, apply, sender)
        self._logger.info(
            "message_sent",
            message_id=message.id,
            sender=sender,
            recipient=recipient,
            message_type=message.type.value,
        )
        return message

    def read(
        self,
        actor: str,
        *,
        unread_only: bool = False,
        message_type: MessageType | None = None,
    ) -> list[Message]:
        """Messages in send order; an actor without an inbox has no messages."""
        validate_actor_id(actor)
        inbox = self._records.read(actor)
        if inbox is None:
            return []
        return [
            message
            for message in inbox.messages
            if (not unread_only or not message.read)
            and (message_type is None or message.type is message_type)
        ]

    def mark_as_read(self, actor: str, message_id: str) -> bool:
        """
        Flip the read flag of one message.

        Returns ``False`` when the inbox or message does not exist or was already read.
        """
        validate_actor_id(actor)
        if self._records.read(actor) is None:
            return False
        changed = False

        def apply(current: Inbox) -> Inbox:
            nonlocal changed
            messages = list(current.messages)
            for index, message in enumerate(messages):
                if message.id == message_id and not message.read:
                    messages[index] = dataclasses.replace(message, read=True)
                    changed = True
                    return dataclasses.replace(current, messages=tuple(messages))
            return current

        self._records.update(actor, apply, actor)
        if changed:
            self._logger.debug("message_marked_read", actor=actor, message_id=message_id)
        return changed

    def poll(
        self,
        actor: str,
        *,
        timeout_seconds: float,
        message_type: MessageType | None = None,
        interval_seconds: float | None = None,
    ) -> list[Message]:
        """
        Wait until ``actor`` has unread messages (optionally of one type) and return them.

        Returns an empty list once ``timeout_seconds`` elapsed. Messages are not marked read.
        """
        interval = self._poll_interval_seconds if interval_seconds is None else interval_seconds
        if interval <= 0:
            raise ValueError("interval_seconds must be > 0")
        deadline = Deadline(timeout_seconds, clock=self._monotonic)
        while True:
            messages = self.read(actor, unread_only=True, message_type=message_type)
            if messages:
                return messages
            if deadline.expired:
                self._logger.debug("mailbox_poll_timeout", actor=actor, timeout=timeout_seconds)
                return []
            self._sleep(deadline.next_sleep(interval))


__all__ = ["Mailbox"]
