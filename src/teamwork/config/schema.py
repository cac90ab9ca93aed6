"""
teamwork — configuration schema and validation.

File: src/teamwork/config/schema.py
Last updated: 2026-10-19

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from teamwork.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_CLAIM_MAX_ATTEMPTS,
    DEFAULT_CLAIM_RETRY_DELAY_SECONDS,
    DEFAULT_CLAIM_STALE_AFTER_SECONDS,
    DEFAULT_LOCK_POLL_INTERVAL_SECONDS,
    DEFAULT_LOCK_STALE_AFTER_SECONDS,
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    DEFAULT_MAILBOX_POLL_INTERVAL_SECONDS,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
RECLAIM_POLICIES: Final[tuple[str, ...]] = ("claim_age", "last_activity")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "base_dir"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    base_dir: str


class LocksConfig(TypedDict):
    timeout_seconds: float
    poll_interval_seconds: float
    stale_after_seconds: float


class ClaimsConfig(TypedDict):
    max_attempts: int
    retry_delay_seconds: float
    require_evidence: bool
    stale_after_seconds: float
    reclaim_policy: Literal["claim_age", "last_activity"]


class MailboxConfig(TypedDict):
    poll_interval_seconds: float


class ObservabilityConfig(TypedDict):
    enabled: bool
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stderr: bool


class TeamworkConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    locks: LocksConfig
    claims: ClaimsConfig
    mailbox: MailboxConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[TeamworkConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "paths": {
        "base_dir": "~/.teamwork",
    },
    "locks": {
        "timeout_seconds": DEFAULT_LOCK_TIMEOUT_SECONDS,
        "poll_interval_seconds": DEFAULT_LOCK_POLL_INTERVAL_SECONDS,
        "stale_after_seconds": DEFAULT_LOCK_STALE_AFTER_SECONDS,
    },
    "claims": {
        "max_attempts": DEFAULT_CLAIM_MAX_ATTEMPTS,
        "retry_delay_seconds": DEFAULT_CLAIM_RETRY_DELAY_SECONDS,
        "require_evidence": True,
        "stale_after_seconds": DEFAULT_CLAIM_STALE_AFTER_SECONDS,
        "reclaim_policy": "claim_age",
    },
    "mailbox": {
        "poll_interval_seconds": DEFAULT_MAILBOX_POLL_INTERVAL_SECONDS,
    },
    "observability": {
        "enabled": True,
        "log_level": "INFO",
        "log_dir": "",
        "log_to_stderr": False,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


FieldParser = Callable[[object, str, _IssueCollector], object | None]


def default_config() -> TeamworkConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade teamwork.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the teamwork runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())

    return ConfigValidationResult(config=normalized, issues=issues.items())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(_SECTIONS), "", issues)
    _require_keys(payload, set(_SECTIONS), "", issues)

    out: dict[str, Any] = {}
    for key in sorted(_SECTIONS):
        raw = payload.get(key)
        if raw is None:
            continue
        section = _as_object(raw, key, issues)
        if section is None:
            continue
        out[key] = _validate_section(section, key, _SECTIONS[key], issues)

    meta = out.get("meta")
    if isinstance(meta, dict):
        version = meta.get("schema_version")
        if isinstance(version, int) and version != ConfigSchemaVersion:
            issues.add("meta.schema_version", migration_guidance(version))

    locks = out.get("locks")
    if isinstance(locks, dict):
        poll = locks.get("poll_interval_seconds")
        stale = locks.get("stale_after_seconds")
        if isinstance(poll, float) and isinstance(stale, float) and poll >= stale:
            issues.add(
                "locks.poll_interval_seconds", "must be smaller than locks.stale_after_seconds"
            )
    return out


def _validate_section(
    payload: Mapping[str, object],
    path: str,
    fields: Mapping[str, FieldParser],
    issues: _IssueCollector,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(fields), path, issues)
    _require_keys(payload, set(fields), path, issues)

    out: dict[str, Any] = {}
    for key in sorted(fields):
        if key not in payload:
            continue
        parsed = fields[key](payload[key], _join(path, key), issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_optional_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    # Empty means "derive from paths.base_dir".
    if isinstance(value, str) and not value.strip():
        return ""
    return _as_path_text(value, path, issues)


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _int_field(*, minimum: int | None = None) -> FieldParser:
    def parse(value: object, path: str, issues: _IssueCollector) -> int | None:
        if isinstance(value, bool) or not isinstance(value, int):
            issues.add(path, f"expected integer, got {type(value).__name__}")
            return None
        if minimum is not None and value < minimum:
            issues.add(path, f"must be >= {minimum}")
            return None
        return value

    return parse


def _float_field(*, minimum: float | None = None, positive: bool = False) -> FieldParser:
    def parse(value: object, path: str, issues: _IssueCollector) -> float | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            issues.add(path, f"expected number, got {type(value).__name__}")
            return None
        parsed = float(value)
        if not math.isfinite(parsed):
            issues.add(path, "must be finite")
            return None
        if positive and parsed <= 0:
            issues.add(path, "must be > 0")
            return None
        if minimum is not None and parsed < minimum:
            issues.add(path, f"must be >= {minimum}")
            return None
        return parsed

    return parse


def _enum_field(allowed_values: tuple[str, ...]) -> FieldParser:
    def parse(value: object, path: str, issues: _IssueCollector) -> str | None:
        parsed = _as_str(value, path, issues)
        if parsed is None:
            return None
        if parsed not in allowed_values:
            expected = ", ".join(sorted(allowed_values))
            issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
            return None
        return parsed

    return parse


_SECTIONS: Final[dict[str, dict[str, FieldParser]]] = {
    "meta": {
        "schema_version": _int_field(minimum=1),
    },
    "paths": {
        "base_dir": _as_path_text,
    },
    "locks": {
        "timeout_seconds": _float_field(minimum=0.0),
        "poll_interval_seconds": _float_field(positive=True),
        "stale_after_seconds": _float_field(positive=True),
    },
    "claims": {
        "max_attempts": _int_field(minimum=1),
        "retry_delay_seconds": _float_field(minimum=0.0),
        "require_evidence": _as_bool,
        "stale_after_seconds": _float_field(minimum=0.0),
        "reclaim_policy": _enum_field(RECLAIM_POLICIES),
    },
    "mailbox": {
        "poll_interval_seconds": _float_field(positive=True),
    },
    "observability": {
        "enabled": _as_bool,
        "log_level": _enum_field(LOG_LEVELS),
        "log_dir": _as_optional_path_text,
        "log_to_stderr": _as_bool,
    },
}


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        item = value[key]
        out[key] = _deep_copy_mapping(item) if isinstance(item, Mapping) else copy.deepcopy(item)
    return out


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "RECLAIM_POLICIES",
    "TeamworkConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
