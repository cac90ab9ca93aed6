"""Persistence for the wave plan (``waves.json``) and per-wave verification records."""

from __future__ import annotations

from collections.abc import Callable

from teamwork.domain.errors import NotFoundError
from teamwork.domain.models import VerificationRecord, WavePlan
from teamwork.persistence.backend import FileSystemBackend
from teamwork.persistence.layout import ProjectLayout
from teamwork.persistence.locks import LockManager
from teamwork.persistence.records import RecordStore

_WAVES_KEY = "waves"


class WaveStore:
    def __init__(self, layout: ProjectLayout, locks: LockManager) -> None:
        self._layout = layout
        self._plans: RecordStore[WavePlan] = RecordStore(
            FileSystemBackend(layout.root),
            locks,
            decode=WavePlan.from_dict,
            encode=WavePlan.to_dict,
            label="wave plan",
        )
        self._verifications: RecordStore[VerificationRecord] = RecordStore(
            FileSystemBackend(layout.verification_dir),
            locks,
            decode=VerificationRecord.from_dict,
            encode=VerificationRecord.to_dict,
            label="verification record",
        )

    def get(self) -> WavePlan | None:
        return self._plans.read(_WAVES_KEY)

    def require(self) -> WavePlan:
        plan = self.get()
        if plan is None:
            raise NotFoundError(
                f"no wave plan for {self._layout.project}/{self._layout.team}; calculate waves first"
            )
        return plan

    def save(self, plan: WavePlan, owner: str) -> WavePlan:
        return self._plans.upsert(_WAVES_KEY, lambda _current: plan, owner)

    def update(self, mutator: Callable[[WavePlan], WavePlan], owner: str) -> WavePlan:
        self.require()
        return self._plans.update(_WAVES_KEY, mutator, owner)

    def put_verification(self, record: VerificationRecord, owner: str) -> VerificationRecord:
        key = self._layout.verification_key(record.wave_id)
        return self._verifications.upsert(key, lambda _current: record, owner)

    def get_verification(self, wave_id: int) -> VerificationRecord | None:
        return self._verifications.read(self._layout.verification_key(wave_id))

    def list_verifications(self) -> list[VerificationRecord]:
        return sorted(self._verifications.read_all(), key=lambda record: record.wave_id)


__all__ = ["WaveStore"]
