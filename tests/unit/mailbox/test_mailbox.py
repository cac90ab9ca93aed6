"""Unit tests for mailbox.mailbox."""

from __future__ import annotations

import json
import threading
from datetime import UTC, datetime
from pathlib import Path

import pytest

from teamwork.domain.messages import (
    IdleNotification,
    MessageType,
    ShutdownRequest,
    ShutdownResponse,
    TextPayload,
)
from teamwork.mailbox import Mailbox
from teamwork.persistence import LockManager, ProjectLayout

_T0 = datetime(2026, 10, 1, 9, 0, 0, tzinfo=UTC)


class _FakeTime:
    """Monotonic clock and sleeper that only advance when slept on."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self.on_sleep: list[object] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep:
            callback = self.on_sleep.pop(0)
            callback()  # type: ignore[operator]


def _mailbox(tmp_path: Path, fake: _FakeTime | None = None) -> Mailbox:
    layout = ProjectLayout(tmp_path, "app", "core")
    layout.ensure()
    fake = fake if fake is not None else _FakeTime()
    return Mailbox(
        layout,
        LockManager(poll_interval_seconds=0.001, timeout_seconds=10),
        poll_interval_seconds=0.5,
        clock=lambda: _T0,
        monotonic=fake.monotonic,
        sleep=fake.sleep,
    )


def test_create_inbox_is_idempotent(tmp_path: Path) -> None:
    mailbox = _mailbox(tmp_path)

    first = mailbox.create_inbox("lead")
    mailbox.send("alice", "lead", "hello")
    again = mailbox.create_inbox("lead")

    assert first.messages == ()
    assert len(again.messages) == 1
    assert (tmp_path / "app" / "core" / "inboxes" / "lead.json").is_file()


def test_send_appends_in_order_and_creates_inbox(tmp_path: Path) -> None:
    mailbox = _mailbox(tmp_path)

    first = mailbox.send("alice", "lead", "one")
    second = mailbox.send("bob", "lead", IdleNotification(worker_id="bob", completed_task_id="t1"))

    messages = mailbox.read("lead")
    assert [message.id for message in messages] == [first.id, second.id]
    assert messages[0].payload == TextPayload(text="one")
    assert messages[1].type is MessageType.IDLE_NOTIFICATION
    assert first.id.startswith("msg-")

    stored = json.loads((tmp_path / "app" / "core" / "inboxes" / "lead.json").read_text())
    assert stored["messages"][0] == {
        "id": first.id,
        "from": "alice",
        "to": "lead",
        "type": "text",
        "payload": {"text": "one"},
        "timestamp": "2026-10-01T09:00:00.000000Z",
        "read": False,
    }


def test_read_filters_by_type_and_unread(tmp_path: Path) -> None:
    mailbox = _mailbox(tmp_path)
    text = mailbox.send("alice", "lead", "status?")
    mailbox.send("alice", "lead", ShutdownRequest(reason="done"))
    mailbox.send("bob", "lead", ShutdownResponse(approved=True))

    assert mailbox.mark_as_read("lead", text.id) is True

    unread = mailbox.read("lead", unread_only=True)
    assert [message.type for message in unread] == [
        MessageType.SHUTDOWN_REQUEST,
        MessageType.SHUTDOWN_RESPONSE,
    ]
    requests = mailbox.read("lead", message_type=MessageType.SHUTDOWN_REQUEST)
    assert len(requests) == 1
    assert requests[0].payload == ShutdownRequest(reason="done")
    assert mailbox.read("lead")[0].read is True


def test_reading_missing_inbox_returns_nothing(tmp_path: Path) -> None:
    mailbox = _mailbox(tmp_path)

    assert mailbox.read("nobody") == []
    assert mailbox.mark_as_read("nobody", "msg-01JABCDEFGHJKMNPQRSTVWXYZ0") is False


def test_mark_as_read_reports_unknown_and_repeated(tmp_path: Path) -> None:
    mailbox = _mailbox(tmp_path)
    message = mailbox.send("alice", "lead", "hi")

    assert mailbox.mark_as_read("lead", message.id) is True
    assert mailbox.mark_as_read("lead", message.id) is False
    assert mailbox.mark_as_read("lead", "msg-unknown") is False


def test_mark_as_read_leaves_other_messages_unread(tmp_path: Path) -> None:
    mailbox = _mailbox(tmp_path)
    sent = [mailbox.send("alice", "lead", f"update {index}") for index in range(3)]

    assert mailbox.mark_as_read("lead", sent[1].id) is True

    inbox = mailbox.read("lead")
    assert [message.id for message in inbox] == [message.id for message in sent]
    assert [message.read for message in inbox] == [False, True, False]
    assert [message.payload for message in inbox] == [message.payload for message in sent]
    assert [message.id for message in mailbox.read("lead", unread_only=True)] == [
        sent[0].id,
        sent[2].id,
    ]


def test_invalid_recipient_is_rejected(tmp_path: Path) -> None:
    mailbox = _mailbox(tmp_path)

    with pytest.raises(ValueError):
        mailbox.send("alice", "../lead", "hi")


def test_concurrent_senders_lose_no_messages(tmp_path: Path) -> None:
    mailbox = _mailbox(tmp_path)
    senders = 6
    per_sender = 10
    barrier = threading.Barrier(senders)

    def send_all(index: int) -> None:
        barrier.wait()
        for count in range(per_sender):
            mailbox.send(f"worker-{index}", "lead", f"{index}:{count}")

    threads = [threading.Thread(target=send_all, args=(index,)) for index in range(senders)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    messages = mailbox.read("lead")
    assert len(messages) == senders * per_sender
    assert len({message.id for message in messages}) == senders * per_sender
    for index in range(senders):
        mine = [m.payload.text for m in messages if m.sender == f"worker-{index}"]  # type: ignore[union-attr]
        assert mine == [f"{index}:{count}" for count in range(per_sender)]


def test_poll_returns_as_soon_as_a_message_arrives(tmp_path: Path) -> None:
    fake = _FakeTime()
    mailbox = _mailbox(tmp_path, fake)
    fake.on_sleep.append(lambda: None)
    fake.on_sleep.append(lambda: mailbox.send("alice", "lead", "ping"))

    messages = mailbox.poll("lead", timeout_seconds=10)

    assert [message.payload for message in messages] == [TextPayload(text="ping")]
    assert fake.sleeps == [0.5, 0.5]
    assert mailbox.read("lead", unread_only=True) == messages


def test_poll_times_out_with_empty_list(tmp_path: Path) -> None:
    fake = _FakeTime()
    mailbox = _mailbox(tmp_path, fake)

    assert mailbox.poll("lead", timeout_seconds=1.2) == []
    assert fake.sleeps == [0.5, 0.5, pytest.approx(0.2)]


def test_poll_filters_by_type(tmp_path: Path) -> None:
    fake = _FakeTime()
    mailbox = _mailbox(tmp_path, fake)
    mailbox.send("alice", "lead", "chatter")
    mailbox.send("bob", "lead", IdleNotification(worker_id="bob"))

    idle = mailbox.poll("lead", timeout_seconds=0, message_type=MessageType.IDLE_NOTIFICATION)

    assert [message.sender for message in idle] == ["bob"]
    assert mailbox.poll("lead", timeout_seconds=0, message_type=MessageType.SHUTDOWN_REQUEST) == []


def test_poll_rejects_non_positive_interval(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        _mailbox(tmp_path).poll("lead", timeout_seconds=1, interval_seconds=0)
