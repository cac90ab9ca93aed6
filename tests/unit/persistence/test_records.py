"""Record store and filesystem backend behavior."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

import pytest

from teamwork.domain.errors import AlreadyExistsError, CorruptStateError, NotFoundError
from teamwork.persistence.backend import FileSystemBackend, StorageBackend
from teamwork.persistence.layout import ProjectLayout
from teamwork.persistence.locks import LockManager
from teamwork.persistence.records import RecordStore

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path


@dataclass(frozen=True)
class _Counter:
    value: int

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> _Counter:
        value = data.get("value")
        if not isinstance(value, int):
            raise ValueError("Counter.value: expected integer")
        return cls(value=value)

    def to_dict(self) -> dict[str, object]:
        return {"value": self.value}


def _store(directory: Path) -> RecordStore[_Counter]:
    return RecordStore(
        FileSystemBackend(directory),
        LockManager(timeout_seconds=5, poll_interval_seconds=0.005),
        decode=_Counter.from_dict,
        encode=_Counter.to_dict,
        label="counter",
    )


def test_backend_keys_skip_hidden_and_foreign_files(tmp_path: Path) -> None:
    backend = FileSystemBackend(tmp_path / "records")
    assert isinstance(backend, StorageBackend)
    assert backend.keys() == []

    backend.write("b", "{}")
    backend.write("a", "{}")
    (tmp_path / "records" / ".a.json.tmp").write_text("", encoding="utf-8")
    (tmp_path / "records" / "notes.txt").write_text("", encoding="utf-8")
    (tmp_path / "records" / "a.json.lock").mkdir()

    assert backend.keys() == ["a", "b"]
    assert backend.delete("a") is True
    assert backend.delete("a") is False


def test_backend_rejects_path_like_keys(tmp_path: Path) -> None:
    backend = FileSystemBackend(tmp_path)

    with pytest.raises(ValueError):
        backend.resource("../escape")
    with pytest.raises(ValueError, match="suffix"):
        FileSystemBackend(tmp_path, suffix="json")


def test_create_read_update_delete(tmp_path: Path) -> None:
    store = _store(tmp_path)

    store.create("c1", _Counter(1), "alice")
    with pytest.raises(AlreadyExistsError):
        store.create("c1", _Counter(9), "alice")

    updated = store.update("c1", lambda current: _Counter(current.value + 1), "alice")
    assert updated == _Counter(2)
    assert store.read("c1") == _Counter(2)
    assert store.read_all() == [_Counter(2)]

    removed = store.delete("c1", "alice")
    assert removed == _Counter(2)
    assert store.read("c1") is None
    with pytest.raises(NotFoundError, match="counter c1 not found"):
        store.update("c1", lambda current: current, "alice")


def test_unchanged_mutation_skips_the_write(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.create("c1", _Counter(1), "alice")
    path = tmp_path / "c1.json"
    path.write_text('{"value": 1}', encoding="utf-8")
    marker = path.read_text(encoding="utf-8")

    store.update("c1", lambda current: current, "alice")

    assert path.read_text(encoding="utf-8") == marker


def test_delete_guard_can_veto(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.create("c1", _Counter(1), "alice")

    def guard(record: _Counter) -> None:
        raise ValueError(f"still needed: {record.value}")

    with pytest.raises(ValueError, match="still needed"):
        store.delete("c1", "alice", guard=guard)
    assert store.exists("c1")
    assert not (tmp_path / "c1.json.lock").exists()


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ("{not json", "invalid JSON"),
        ("[1, 2]", "JSON root must be an object"),
        ('{"value": "x"}', "Counter.value"),
    ],
)
def test_corrupt_records_raise_with_location(tmp_path: Path, raw: str, message: str) -> None:
    (tmp_path / "bad.json").write_text(raw, encoding="utf-8")

    with pytest.raises(CorruptStateError, match=message) as excinfo:
        _store(tmp_path).read("bad")
    assert excinfo.value.path.endswith("bad.json")


def test_concurrent_upserts_do_not_lose_increments(tmp_path: Path) -> None:
    store = _store(tmp_path)
    per_thread = 15

    def bump(worker: int) -> None:
        for _ in range(per_thread):
            store.upsert(
                "shared",
                lambda current: _Counter((current.value if current else 0) + 1),
                f"worker-{worker}",
            )

    threads = [threading.Thread(target=bump, args=(index,)) for index in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.read("shared") == _Counter(4 * per_thread)


def test_layout_paths(tmp_path: Path) -> None:
    layout = ProjectLayout(tmp_path, "app", "core")

    assert layout.root == tmp_path / "app" / "core"
    assert layout.task_path("t1") == layout.root / "tasks" / "t1.json"
    assert layout.inbox_path("lead") == layout.root / "inboxes" / "lead.json"
    assert layout.verification_key(2) == "wave-2"
    assert layout.logs_dir == tmp_path / "logs"
    assert not layout.exists()

    layout.ensure()
    assert layout.tasks_dir.is_dir()
    assert layout.verification_dir.is_dir()
    with pytest.raises(ValueError):
        layout.verification_key(0)
    with pytest.raises(ValueError):
        ProjectLayout(tmp_path, "../app", "core")
