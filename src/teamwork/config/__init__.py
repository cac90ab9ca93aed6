"""
teamwork config package public API.

File: src/teamwork/config/__init__.py
Last updated: 2026-10-19

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``teamwork.toml`` + ``TEAMWORK_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from teamwork.config.loader import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    load_config,
    normalize_paths,
)
from teamwork.config.schema import (
    DEFAULT_CONFIG,
    LOG_LEVELS,
    PATH_FIELDS,
    RECLAIM_POLICIES,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    TeamworkConfig,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)

__all__ = [
    "CONFIG_PATH_ENV",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "RECLAIM_POLICIES",
    "TeamworkConfig",
    "assert_valid_config",
    "default_config",
    "load_config",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "validate_config",
]
