from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from datetime import timedelta
from typing import Final

from .errors import AlreadyProcessed, AlreadyRep, NotFound, NotRep, ValidationError
from .models import (
    Commission,
    CommissionStatus,
    VettingRequest,
    VettingStatus,
    utc_now,
)
from .store import JsonFileBackend, KeyValueStore, StoreBackend

log: Final = logging.getLogger("vetting-bot")

VETTING_RETENTION: Final = timedelta(days=30)
COMMISSION_RETENTION: Final = timedelta(days=7)
DEFAULT_VETTING_CLEANUP_STATUSES: Final = (
    VettingStatus.APPROVED,
    VettingStatus.DENIED,
)


class VettingRepository:
    """Typed queries and status transitions over the vetting collection."""

    def __init__(self, store: KeyValueStore[VettingRequest]) -> None:
        self.store = store

    @classmethod
    def from_backend(cls, backend: StoreBackend) -> VettingRepository:
        return cls(KeyValueStore(backend, VettingRequest.from_item, name="vetting"))

    @classmethod
    def from_path(cls, path) -> VettingRepository:
        return cls.from_backend(JsonFileBackend(path))

    async def init(self) -> None:
        await self.store.init()

    def guard(self, key: str):
        return self.store.guard(key)

    async def get(self, request_id: str) -> VettingRequest | None:
        return await self.store.get(request_id)

    async def save(self, request: VettingRequest) -> VettingRequest:
        return await self.store.set(request.id, request)

    async def get_pending_by_user(self, user_id: str) -> VettingRequest | None:
        return await self.store.find(
            lambda v: v.user_id == user_id and v.status is VettingStatus.PENDING
        )

    async def latest_for_user(self, user_id: str) -> VettingRequest | None:
        pending = await self.get_pending_by_user(user_id)
        if pending is not None:
            return pending
        requests = await self.store.filter(lambda v: v.user_id == user_id)
        if not requests:
            return None
        return max(requests, key=lambda v: v.created_at)

    async def list_pending(self) -> list[VettingRequest]:
        pending = await self.store.filter(lambda v: v.status is VettingStatus.PENDING)
        pending.sort(key=lambda v: v.created_at)
        return pending

    async def transition_status(
        self, request_id: str, new_status: VettingStatus, actor_id: str
    ) -> VettingRequest:
        """Move a pending request to a terminal status.

        Callers are expected to hold ``guard(request_id)`` when the check
        and the write must not interleave with another decision.
        """
        if not new_status.terminal:
            raise ValidationError(f"Cannot transition to {new_status.value}")
        request = await self.store.get(request_id)
        if request is None:
            raise NotFound(f"Vetting request {request_id} not found")
        if not request.is_pending:
            raise AlreadyProcessed(request.status.value)
        request.status = new_status
        request.processed_by = actor_id
        request.processed_at = utc_now()
        await self.save(request)
        log.info(
            "Vetting %s transitioned to %s by %s", request_id, new_status.value, actor_id
        )
        return request

    async def cleanup(
        self,
        retention: timedelta = VETTING_RETENTION,
        statuses: Iterable[VettingStatus] = DEFAULT_VETTING_CLEANUP_STATUSES,
    ) -> list[str]:
        """Delete resolved requests created before the retention window."""
        eligible = frozenset(statuses)
        cutoff = utc_now() - retention
        removed: list[str] = []
        for request_id, request in await self.store.entries():
            if request.status in eligible and request.created_at < cutoff:
                if await self.store.delete(request_id):
                    removed.append(request_id)
        log.info("Cleaned up %d old vetting records", len(removed))
        return removed

    async def count_by_status(self) -> dict[str, int]:
        counts = Counter(v.status.value for v in await self.store.values())
        return {status.value: counts.get(status.value, 0) for status in VettingStatus}


class CommissionRepository:
    """Typed queries and roster changes over the commission collection."""

    def __init__(self, store: KeyValueStore[Commission]) -> None:
        self.store = store

    @classmethod
    def from_backend(cls, backend: StoreBackend) -> CommissionRepository:
        return cls(KeyValueStore(backend, Commission.from_item, name="commission"))

    @classmethod
    def from_path(cls, path) -> CommissionRepository:
        return cls.from_backend(JsonFileBackend(path))

    async def init(self) -> None:
        await self.store.init()

    def guard(self, key: str):
        return self.store.guard(key)

    async def get(self, commission_id: str) -> Commission | None:
        return await self.store.get(commission_id)

    async def save(self, commission: Commission) -> Commission:
        return await self.store.set(commission.id, commission)

    async def get_by_channel(self, channel_id: str) -> Commission | None:
        return await self.store.find(lambda c: c.channel_id == channel_id)

    async def get_active_by_creator(self, creator_id: str) -> Commission | None:
        return await self.store.find(
            lambda c: c.creator_id == creator_id and c.status is CommissionStatus.ACTIVE
        )

    async def resolve(self, key: str) -> Commission | None:
        """Look a commission up by id, falling back to its channel id."""
        commission = await self.get(key)
        if commission is None:
            commission = await self.get_by_channel(key)
        return commission

    async def list_active(self) -> list[Commission]:
        active = await self.store.filter(lambda c: c.status is CommissionStatus.ACTIVE)
        active.sort(key=lambda c: c.created_at)
        return active

    async def _require(self, commission_id: str) -> Commission:
        commission = await self.get(commission_id)
        if commission is None:
            raise NotFound(
                f"Commission {commission_id} not found",
                user_message="This command can only be used in commission channels.",
            )
        return commission

    async def add_rep(self, commission_id: str, user_id: str) -> Commission:
        commission = await self._require(commission_id)
        if commission.has_rep(user_id):
            raise AlreadyRep()
        commission.reps.append(user_id)
        return await self.save(commission)

    async def remove_rep(self, commission_id: str, user_id: str) -> Commission:
        commission = await self._require(commission_id)
        if not commission.has_rep(user_id):
            raise NotRep()
        commission.reps.remove(user_id)
        return await self.save(commission)

    async def update_channel_name(self, commission_id: str, name: str) -> Commission:
        commission = await self._require(commission_id)
        commission.channel_name = name
        return await self.save(commission)

    async def set_status(
        self, commission_id: str, status: CommissionStatus
    ) -> Commission:
        commission = await self._require(commission_id)
        if commission.status is CommissionStatus.INACTIVE:
            raise AlreadyProcessed(
                commission.status.value,
                user_message="This commission has already been closed.",
            )
        commission.status = status
        return await self.save(commission)

    async def cleanup(self, retention: timedelta = COMMISSION_RETENTION) -> list[str]:
        """Delete closed commissions created before the retention window."""
        cutoff = utc_now() - retention
        removed: list[str] = []
        for commission_id, commission in await self.store.entries():
            if (
                commission.status is CommissionStatus.INACTIVE
                and commission.created_at < cutoff
            ):
                if await self.store.delete(commission_id):
                    removed.append(commission_id)
        log.info("Cleaned up %d old commission records", len(removed))
        return removed

    async def count_by_status(self) -> dict[str, int]:
        counts = Counter(c.status.value for c in await self.store.values())
        return {
            status.value: counts.get(status.value, 0) for status in CommissionStatus
        }


__all__ = [
    "COMMISSION_RETENTION",
    "CommissionRepository",
    "DEFAULT_VETTING_CLEANUP_STATUSES",
    "VETTING_RETENTION",
    "VettingRepository",
]
