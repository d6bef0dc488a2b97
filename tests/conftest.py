from __future__ import annotations

import itertools
from unittest.mock import AsyncMock

import pytest

from vetting_bot import (
    CommissionRepository,
    CommissionService,
    DeferredActions,
    MemoryBackend,
    VettingRepository,
    VettingService,
)
from vetting_bot.errors import NotificationFailure


class FakePlatform:
    """Records every platform call; channel ids are handed out sequentially."""

    def __init__(self) -> None:
        self._ids = itertools.count(1000)
        self.create_vetting_channel = AsyncMock(side_effect=self._next_id)
        self.post_vetting_prompt = AsyncMock()
        self.create_commission_channel = AsyncMock(side_effect=self._next_id)
        self.create_artwork_thread = AsyncMock(side_effect=self._next_id)
        self.post_commission_status = AsyncMock()
        self.refresh_commission_status = AsyncMock(return_value=True)
        self.rename_channel = AsyncMock()
        self.post_closure_notice = AsyncMock()
        self.notify_user = AsyncMock()
        self.delete_channel = AsyncMock()
        self.audit = AsyncMock()

    async def _next_id(self, *_args, **_kwargs) -> str:
        return str(next(self._ids))

    def refuse_dms(self) -> None:
        self.notify_user.side_effect = NotificationFailure("DMs closed")


class RecordingDeferred(DeferredActions):
    """Keeps scheduled actions instead of running them; tests await them directly."""

    def __init__(self) -> None:
        super().__init__()
        self.scheduled: dict[str, tuple[float, object, str]] = {}

    def __len__(self) -> int:
        return len(self.scheduled)

    def __contains__(self, key: object) -> bool:
        return key in self.scheduled

    def pending(self) -> list[str]:
        return list(self.scheduled)

    def schedule(self, key, delay, action, *, description=""):
        self.scheduled[key] = (delay, action, description)

    def cancel(self, key: str) -> bool:
        return self.scheduled.pop(key, None) is not None

    def cancel_all(self) -> int:
        count = len(self.scheduled)
        self.scheduled.clear()
        return count

    async def run(self, key: str) -> None:
        _delay, action, _description = self.scheduled.pop(key)
        await action()


class FakeVerificationClient:
    def __init__(self, records: dict[str, dict] | None = None) -> None:
        self.records = dict(records or {})
        self.updates: list[tuple[str, str, dict]] = []
        self.failure: Exception | None = None

    async def get_verification_by_ckey(self, ckey: str):
        return self.records.get(ckey)

    async def create_or_update_verification(self, discord_id: str, ckey: str, flags: dict):
        if self.failure is not None:
            raise self.failure
        self.updates.append((discord_id, ckey, flags))
        record = {"discord_id": discord_id, "ckey": ckey, "verified_flags": flags}
        self.records[ckey] = record
        return record


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def api() -> FakeVerificationClient:
    return FakeVerificationClient()


@pytest.fixture
def deferred() -> RecordingDeferred:
    return RecordingDeferred()


@pytest.fixture
def vetting_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def commission_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def vettings(vetting_backend) -> VettingRepository:
    return VettingRepository.from_backend(vetting_backend)


@pytest.fixture
def commissions(commission_backend) -> CommissionRepository:
    return CommissionRepository.from_backend(commission_backend)


@pytest.fixture
def vetting_service(vettings, platform, api, deferred) -> VettingService:
    return VettingService(vettings, platform, api, deferred)


@pytest.fixture
def commission_service(commissions, platform, deferred) -> CommissionService:
    return CommissionService(commissions, platform, deferred)
