"""Age vetting lifecycle.

A request starts ``pending`` and ends in exactly one of ``approved``,
``denied`` or ``timeout``. Approval commits the local status first and only
then pushes the verification flag upstream; an upstream failure is reported
back to the admin but does not undo the approval.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from typing import Final

from .errors import (
    AlreadyVerified,
    DuplicateActiveRequest,
    NotificationFailure,
    PermissionDenied,
    PersistenceFailure,
    UpstreamFailure,
)
from .models import Actor, VettingRequest, VettingStatus, mint_id, sanitize_name
from .platform import ChatPlatform, VerificationClient
from .repositories import VettingRepository
from .scheduler import DeferredActions
from .veyra_api import is_age_vetted

log: Final = logging.getLogger("vetting-bot")

APPROVE_CHANNEL_DELETE_DELAY: Final[int] = 30
DENY_CHANNEL_DELETE_DELAY: Final[int] = 60
SYSTEM_ACTOR_ID: Final[str] = "system"


class Decision(StrEnum):
    APPROVE = "approve"
    DENY = "deny"


@dataclass(slots=True)
class DecisionOutcome:
    request: VettingRequest
    decision: Decision
    upstream_ok: bool = True
    upstream_error: UpstreamFailure | None = None
    notified: bool = False
    channel_delete_delay: int = 0


class VettingService:
    def __init__(
        self,
        repository: VettingRepository,
        platform: ChatPlatform,
        api: VerificationClient,
        deferred: DeferredActions,
        *,
        approve_delete_delay: int = APPROVE_CHANNEL_DELETE_DELAY,
        deny_delete_delay: int = DENY_CHANNEL_DELETE_DELAY,
    ) -> None:
        self.repository = repository
        self.platform = platform
        self.api = api
        self.deferred = deferred
        self.approve_delete_delay = approve_delete_delay
        self.deny_delete_delay = deny_delete_delay

    async def create(self, user: Actor, raw_ckey: str) -> VettingRequest:
        ckey = sanitize_name(raw_ckey, label="ckey")

        async with self.repository.guard(f"user:{user.id}"):
            existing = await self.repository.get_pending_by_user(user.id)
            if existing is not None:
                raise DuplicateActiveRequest(existing.channel_id)

            if is_age_vetted(await self.api.get_verification_by_ckey(ckey)):
                raise AlreadyVerified(ckey)

            channel_id = await self.platform.create_vetting_channel(user.id, ckey)
            request = VettingRequest(
                id=mint_id(user.id),
                user_id=user.id,
                ckey=ckey,
                channel_id=channel_id,
            )
            try:
                await self.repository.save(request)
            except PersistenceFailure:
                log.error(
                    "Could not store vetting request for %s; removing channel %s",
                    user.id,
                    channel_id,
                )
                await self._delete_channel_quietly(
                    channel_id, "Vetting request could not be saved"
                )
                raise

        log.info("Created vetting %s for %s (ckey %s)", request.id, user.id, ckey)
        try:
            await self.platform.post_vetting_prompt(request)
        except NotificationFailure as exc:
            log.warning("Could not post vetting prompt for %s: %s", request.id, exc)
        return request

    async def decide(
        self, request_id: str, actor: Actor, decision: Decision | str
    ) -> DecisionOutcome:
        decision = Decision(decision)
        if not actor.is_admin:
            raise PermissionDenied(
                user_message="You don't have permission to process vetting requests."
            )

        status = (
            VettingStatus.APPROVED
            if decision is Decision.APPROVE
            else VettingStatus.DENIED
        )
        async with self.repository.guard(request_id):
            request = await self.repository.transition_status(
                request_id, status, actor.id
            )

        outcome = DecisionOutcome(request=request, decision=decision)

        if decision is Decision.APPROVE:
            try:
                await self.api.create_or_update_verification(
                    request.user_id,
                    request.ckey,
                    {"age_vetted": True, "vetted": True, "vetted_by": actor.id},
                )
            except UpstreamFailure as exc:
                log.error(
                    "Vetting %s approved locally but upstream update failed: %s",
                    request.id,
                    exc,
                )
                outcome.upstream_ok = False
                outcome.upstream_error = exc
            message = (
                f"Your age vetting request for ckey `{request.ckey}` has been approved."
            )
            outcome.channel_delete_delay = self.approve_delete_delay
        else:
            message = (
                f"Your age vetting request for ckey `{request.ckey}` has been denied. "
                "Please contact an admin if you have questions."
            )
            outcome.channel_delete_delay = self.deny_delete_delay

        outcome.notified = await self._notify(request.user_id, message)
        self._schedule_channel_removal(
            request,
            outcome.channel_delete_delay,
            f"Vetting {status.value} by {actor.display_name or actor.id}",
        )
        await self.platform.audit(
            f"Vetting {status.value}",
            user=f"<@{request.user_id}>",
            ckey=request.ckey,
            admin=actor.mention,
            upstream="ok" if outcome.upstream_ok else "failed",
        )
        return outcome

    async def expire(self, request_id: str, max_age_days: float) -> VettingRequest | None:
        """Time out a request that has been pending longer than ``max_age_days``."""
        async with self.repository.guard(request_id):
            request = await self.repository.get(request_id)
            if (
                request is None
                or not request.is_pending
                or request.age_days() < max_age_days
            ):
                return None
            request = await self.repository.transition_status(
                request_id, VettingStatus.TIMEOUT, SYSTEM_ACTOR_ID
            )

        await self._notify(
            request.user_id,
            f"Your age vetting request for ckey `{request.ckey}` expired without a "
            "decision. You can submit a new request with /vet.",
        )
        self._schedule_channel_removal(
            request, self.deny_delete_delay, "Vetting request timed out"
        )
        return request

    async def expire_stale(self, max_age_days: float) -> list[VettingRequest]:
        expired: list[VettingRequest] = []
        for request in await self.repository.list_pending():
            result = await self.expire(request.id, max_age_days)
            if result is not None:
                expired.append(result)
        if expired:
            log.info("Timed out %d stale vetting request(s)", len(expired))
        return expired

    async def _notify(self, user_id: str, message: str) -> bool:
        try:
            await self.platform.notify_user(user_id, message)
        except NotificationFailure as exc:
            log.warning("Could not notify %s: %s", user_id, exc)
            return False
        return True

    def _schedule_channel_removal(
        self, request: VettingRequest, delay: int, reason: str
    ) -> None:
        self.deferred.schedule(
            request.id,
            delay,
            partial(self.platform.delete_channel, request.channel_id, reason),
            description=f"deletion of vetting channel {request.channel_id}",
        )

    async def _delete_channel_quietly(self, channel_id: str, reason: str) -> None:
        try:
            await self.platform.delete_channel(channel_id, reason)
        except NotificationFailure as exc:
            log.warning("Could not remove channel %s: %s", channel_id, exc)


__all__ = [
    "APPROVE_CHANNEL_DELETE_DELAY",
    "DENY_CHANNEL_DELETE_DELAY",
    "Decision",
    "DecisionOutcome",
    "VettingService",
]
