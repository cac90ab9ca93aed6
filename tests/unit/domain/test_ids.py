"""Unit tests for canonical ID helpers."""

from __future__ import annotations

import pytest

from teamwork.domain import ids


def _zero_bytes(size: int) -> bytes:
    return b"\x00" * size


def _ff_bytes(size: int) -> bytes:
    return b"\xff" * size


def test_generate_ulid_no_collision_10000() -> None:
    generated = {ids.generate_ulid() for _ in range(10_000)}
    assert len(generated) == 10_000


def test_ulid_charset_length_and_reject_invalid_chars() -> None:
    ulid_value = ids.generate_ulid(timestamp_ms=123_456, randbytes=_ff_bytes)
    assert len(ulid_value) == ids.ULID_LENGTH
    assert ulid_value == ulid_value.upper()
    assert all(char in ids.CROCKFORD_BASE32_ALPHABET for char in ulid_value)

    ids.validate_ulid(ulid_value.lower())

    with pytest.raises(ValueError, match="ulid length must be"):
        ids.validate_ulid("0" * 25)

    for invalid in ["I" + "0" * 25, "O" + "0" * 25, "u" + "0" * 25, "*" + "0" * 25]:
        with pytest.raises(ValueError, match="invalid ULID character"):
            ids.validate_ulid(invalid)


def test_ulid_overflow_and_timestamp_boundaries() -> None:
    ids.validate_ulid("7" + "Z" * 25)

    with pytest.raises(ValueError, match="overflow"):
        ids.validate_ulid("8" + "0" * 25)

    assert ids.parse_ulid_timestamp_ms("0" * 26) == 0
    top = ids.generate_ulid(timestamp_ms=ids.ULID_MAX_TIMESTAMP_MS, randbytes=_zero_bytes)
    assert ids.parse_ulid_timestamp_ms(top) == ids.ULID_MAX_TIMESTAMP_MS

    with pytest.raises(ValueError):
        ids.generate_ulid(timestamp_ms=ids.ULID_MAX_TIMESTAMP_MS + 1)


def test_ulids_sort_by_timestamp() -> None:
    earlier = ids.generate_ulid(timestamp_ms=1_000, randbytes=_ff_bytes)
    later = ids.generate_ulid(timestamp_ms=1_001, randbytes=_zero_bytes)

    assert earlier < later


def test_message_ids_carry_prefix() -> None:
    message_id = ids.generate_message_id(timestamp_ms=1, randbytes=_ff_bytes)

    assert message_id.startswith("msg-")
    ids.validate_message_id(message_id)
    with pytest.raises(ValueError, match="expected prefix"):
        ids.validate_message_id("note-" + message_id[4:])
    with pytest.raises(ValueError, match="invalid ULID part"):
        ids.validate_message_id("msg-short")
    with pytest.raises(ValueError, match="must not contain"):
        ids.generate_prefixed_id("a-b")


@pytest.mark.parametrize("value", ["t1", "api.v2", "Fix_login-bug", "9", "a" * 128])
def test_valid_names(value: str) -> None:
    assert ids.validate_task_id(value) == value
    assert ids.validate_actor_id(value) == value


@pytest.mark.parametrize(
    "value", ["", ".hidden", "-dash", "a/b", "..", "with space", "a" * 129, "ü"]
)
def test_names_that_are_not_safe_path_components(value: str) -> None:
    with pytest.raises(ValueError, match="task id must be"):
        ids.validate_task_id(value)


def test_default_worker_id_uses_pid() -> None:
    assert ids.default_worker_id(4242) == "worker-4242"
    assert ids.validate_actor_id(ids.default_worker_id()).startswith("worker-")
