"""
teamwork — unit tests for observability logging

File: tests/unit/observability/test_logging.py
Last updated: 2026-10-19

Purpose
- Validate structured JSON logging with redaction, correlation metadata, and queue-backed reliability.

What this test file should cover
- JSON line validity and redaction guarantees.
- Correlation field propagation, including structlog events.
- Multi-threaded logging stability.
- Queue drain/shutdown behavior and the disabled mode.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from teamwork.observability.logging import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"teamwork.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_logging_redacts_secrets_and_preserves_correlation_fields(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(actor="worker-1", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(project="app", team="core"):
        logger.info(
            "payload token=tok-FAKE and api_key=sk-FAKE123456789012345",
            extra={"nested": {"password": "hunter2", "safe": "ok"}},
        )

    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "worker-1" / "teamwork.jsonl"
    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 1
    first = parsed[0]
    assert first["actor"] == "worker-1"
    assert first["project"] == "app"
    assert first["team"] == "core"
    assert first["fields"] == {"nested": {"password": "***REDACTED***", "safe": "ok"}}

    line = handle.log_path.read_text(encoding="utf-8")
    assert "tok-FAKE" not in line
    assert "sk-FAKE" not in line
    assert "hunter2" not in line


def test_setup_logging_routes_structlog_events(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_logging(
        {"enabled": True, "log_level": "INFO", "log_to_stderr": False},
        actor="lead",
        log_dir=tmp_path,
        logger_name=logger_name,
    )
    assert handle is not None
    log = structlog.get_logger(f"{logger_name}.claims")

    with correlation_scope(project="app"):
        log.info("task_claimed", task_id="t1", owner="lead", attempt=1)
        log.debug("not_recorded")

    shutdown_logging(handle)

    parsed = _read_json_lines(tmp_path / "lead" / "teamwork.jsonl")
    assert len(parsed) == 1
    event = parsed[0]
    assert event["event"] == "task_claimed"
    assert event["level"] == "INFO"
    assert event["task_id"] == "t1"
    assert event["owner"] == "lead"
    assert event["project"] == "app"
    assert event["fields"] == {"attempt": 1}


def test_disabled_logging_writes_nothing(tmp_path: Path) -> None:
    logger_name = _logger_name()

    handle = setup_logging({"enabled": False}, actor="lead", log_dir=tmp_path, logger_name=logger_name)
    structlog.get_logger(logger_name).error("dropped")

    assert handle is None
    assert not (tmp_path / "lead").exists()


def test_correlation_scope_nests_and_unbinds() -> None:
    with correlation_scope(project="app", task_id="t1"):
        with correlation_scope(task_id=None, wave_id="2"):
            assert get_correlation_context() == {"project": "app", "wave_id": "2"}
        assert get_correlation_context() == {"project": "app", "task_id": "t1"}
    assert get_correlation_context() == {}

    with pytest.raises(ValueError):
        with correlation_scope(**{" ": "x"}):
            pass


def test_default_redactor_is_recursive() -> None:
    redacted = default_log_redactor(
        {"auth": {"api_key": "k", "user": "bob"}, "notes": ["Bearer abc.def", "plain"]}
    )

    assert redacted == {
        "auth": {"api_key": "***REDACTED***", "user": "bob"},
        "notes": ["Bearer ***REDACTED***", "plain"],
    }


def test_multithreaded_logging_produces_valid_json_lines(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(actor="threads", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    total_threads = 8
    per_thread = 40

    def worker(thread_idx: int) -> None:
        for i in range(per_thread):
            logger.info(
                f"thread={thread_idx} index={i} token=tok-secret-{thread_idx}-{i}",
                extra={"api_key": f"sk-FAKE-{thread_idx}-{i}"},
            )

    threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(total_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == total_threads * per_thread
    for line in lines:
        parsed = json.loads(line)
        assert isinstance(parsed, dict)
        assert "event" in parsed
        assert "tok-secret" not in line
        assert "sk-FAKE" not in line


def test_queue_handler_shutdown_flushes_every_record(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            actor="flush",
            base_log_dir=tmp_path,
            logger_name=logger_name,
        )
    )
    logger = logging.getLogger(logger_name)

    queue_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]
    assert queue_handlers, "expected queue-backed logging"

    expected = 300
    for i in range(expected):
        logger.info("message %s", i)

    shutdown_logging(handle)
    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert handle.is_shutdown is True
    assert len(lines) == expected


@pytest.mark.parametrize("actor", ["", "a/b"])
def test_actor_must_be_a_plain_directory_name(tmp_path: Path, actor: str) -> None:
    with pytest.raises(ValueError):
        setup_structured_logging(LoggingConfig(actor=actor, base_log_dir=tmp_path))
