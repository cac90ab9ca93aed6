"""Executable CLI entrypoint for ``teamwork``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Process exit-code contract: every failure is reported as ``FAILURE``."""

    SUCCESS = 0
    FAILURE = 1


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m teamwork`` and the console script."""

    try:
        from teamwork.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except KeyboardInterrupt:
        _write_stderr("error: interrupted")
        return int(ExitCode.FAILURE)
    except Exception as exc:  # noqa: BLE001 - CLI boundary normalization.
        _emit_failure(exc)
        return int(ExitCode.FAILURE)


def _normalize_exit_code(raw_code: object) -> int:
    if raw_code is None or raw_code == 0:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(f"error: {raw_code.strip()}")
    return int(ExitCode.FAILURE)


def _is_expected(exc: BaseException) -> bool:
    expected = _load_expected_error_types()
    return any(isinstance(item, expected) for item in _iter_exception_chain(exc))


def _load_expected_error_types() -> tuple[type[BaseException], ...]:
    from teamwork.config.loader import ConfigLoadError
    from teamwork.config.schema import ConfigValidationError
    from teamwork.domain.errors import TeamworkError

    return (TeamworkError, ConfigLoadError, ConfigValidationError, OSError, ValueError)


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None:
        marker = id(current)
        if marker in seen:
            break
        seen.add(marker)
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
            continue
        if current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
            continue
        break
    return items


def _emit_failure(exc: BaseException) -> None:
    if not _is_expected(exc):
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
    _write_stderr(f"error: {str(exc).strip() or exc.__class__.__name__}")


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint"]
