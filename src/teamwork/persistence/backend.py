"""Pluggable key-value storage backends for persisted records."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from teamwork.constants import RECORD_SUFFIX
from teamwork.domain import ids as domain_ids
from teamwork.utils.fs import atomic_write, ensure_directory, read_text_if_exists


@runtime_checkable
class StorageBackend(Protocol):
    """
    Minimal key-value contract used by ``RecordStore``.

    ``resource(key)`` names the path the lock manager serializes on; writes must be atomic
    so readers never observe a torn record.
    """

    def resource(self, key: str) -> Path: ...

    def read(self, key: str) -> str | None: ...

    def write(self, key: str, text: str) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...


class FileSystemBackend:
    """One ``<key>.json`` file per record inside ``directory``."""

    def __init__(self, directory: str | os.PathLike[str], *, suffix: str = RECORD_SUFFIX) -> None:
        if not suffix.startswith("."):
            raise ValueError("suffix must start with '.'")
        self._directory = Path(directory)
        self._suffix = suffix

    @property
    def directory(self) -> Path:
        return self._directory

    def resource(self, key: str) -> Path:
        domain_ids.validate_name(key, "record key")
        return self._directory / f"{key}{self._suffix}"

    def read(self, key: str) -> str | None:
        return read_text_if_exists(self.resource(key))

    def write(self, key: str, text: str) -> None:
        path = self.resource(key)
        ensure_directory(path.parent)
        atomic_write(path, text)

    def delete(self, key: str) -> bool:
        try:
            self.resource(key).unlink()
        except FileNotFoundError:
            return False
        return True

    def keys(self) -> list[str]:
        if not self._directory.is_dir():
            return []
        found: list[str] = []
        for entry in self._directory.iterdir():
            name = entry.name
            if name.startswith(".") or not name.endswith(self._suffix) or not entry.is_file():
                continue
            found.append(name[: -len(self._suffix)])
        return sorted(found)


__all__ = ["FileSystemBackend", "StorageBackend"]
