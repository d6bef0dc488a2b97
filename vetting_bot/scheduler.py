from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Final

from .models import VettingStatus
from .repositories import (
    COMMISSION_RETENTION,
    DEFAULT_VETTING_CLEANUP_STATUSES,
    VETTING_RETENTION,
    CommissionRepository,
    VettingRepository,
)

if TYPE_CHECKING:
    from .vetting import VettingService

log: Final = logging.getLogger("vetting-bot")

DeferredAction = Callable[[], Awaitable[None]]


class DeferredActions:
    """Delayed side effects keyed by entity id.

    Scheduling under a key that already has a pending action replaces it.
    Actions can be cancelled individually (when their entity goes away) or
    all at once on shutdown.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def pending(self) -> list[str]:
        return list(self._tasks)

    def schedule(
        self,
        key: str,
        delay: float,
        action: DeferredAction,
        *,
        description: str = "",
    ) -> asyncio.Task[None]:
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(
            self._run(key, delay, action, description or key),
            name=f"deferred:{key}",
        )
        self._tasks[key] = task
        task.add_done_callback(lambda done, key=key: self._forget(key, done))
        log.info("Scheduled %s in %.0f seconds", description or key, delay)
        return task

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        log.info("Cancelled deferred action for %s", key)
        return True

    def cancel_all(self) -> int:
        cancelled = 0
        for key in list(self._tasks):
            if self.cancel(key):
                cancelled += 1
        return cancelled

    async def wait_all(self) -> None:
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _forget(self, key: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    @staticmethod
    async def _run(
        key: str, delay: float, action: DeferredAction, description: str
    ) -> None:
        await asyncio.sleep(delay)
        try:
            await action()
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Deferred action %s failed: %s", description, exc)


@dataclass(slots=True)
class MaintenanceReport:
    expired_vettings: list[str] = field(default_factory=list)
    removed_vettings: list[str] = field(default_factory=list)
    removed_commissions: list[str] = field(default_factory=list)

    @property
    def total_removed(self) -> int:
        return len(self.removed_vettings) + len(self.removed_commissions)


class MaintenanceJob:
    """Startup sweep and periodic cleanup of both collections."""

    def __init__(
        self,
        vettings: VettingRepository,
        commissions: CommissionRepository,
        deferred: DeferredActions,
        *,
        vetting_service: VettingService | None = None,
        vetting_retention: timedelta = VETTING_RETENTION,
        commission_retention: timedelta = COMMISSION_RETENTION,
        vetting_cleanup_statuses: Iterable[VettingStatus] = DEFAULT_VETTING_CLEANUP_STATUSES,
        timeout_days: int | None = None,
    ) -> None:
        self.vettings = vettings
        self.commissions = commissions
        self.deferred = deferred
        self.vetting_service = vetting_service
        self.vetting_retention = vetting_retention
        self.commission_retention = commission_retention
        self.vetting_cleanup_statuses = tuple(vetting_cleanup_statuses)
        self.timeout_days = timeout_days

    async def run_once(self) -> MaintenanceReport:
        report = MaintenanceReport()
        if self.vetting_service is not None and self.timeout_days:
            expired = await self.vetting_service.expire_stale(self.timeout_days)
            report.expired_vettings = [request.id for request in expired]

        report.removed_vettings = await self.vettings.cleanup(
            self.vetting_retention, self.vetting_cleanup_statuses
        )
        report.removed_commissions = await self.commissions.cleanup(
            self.commission_retention
        )

        for entity_id in report.removed_vettings + report.removed_commissions:
            self.deferred.cancel(entity_id)

        log.info(
            "Maintenance finished: %d expired, %d vetting and %d commission records removed",
            len(report.expired_vettings),
            len(report.removed_vettings),
            len(report.removed_commissions),
        )
        return report


__all__ = ["DeferredActions", "MaintenanceJob", "MaintenanceReport"]
