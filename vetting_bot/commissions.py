from __future__ import annotations

import logging
from enum import StrEnum
from functools import partial
from typing import Final

from .errors import (
    DuplicateActiveCommission,
    NotFound,
    NotificationFailure,
    PermissionDenied,
    ValidationError,
)
from .models import Actor, Commission, CommissionStatus, mint_id, sanitize_name
from .platform import ChatPlatform
from .repositories import CommissionRepository
from .scheduler import DeferredActions

log: Final = logging.getLogger("vetting-bot")

CLOSE_CHANNEL_DELETE_DELAY: Final[int] = 30

_NOT_A_COMMISSION = "This command can only be used in commission channels."


class RepAction(StrEnum):
    ADD = "add"
    REMOVE = "remove"


class CommissionService:
    def __init__(
        self,
        repository: CommissionRepository,
        platform: ChatPlatform,
        deferred: DeferredActions,
        *,
        close_delete_delay: int = CLOSE_CHANNEL_DELETE_DELAY,
    ) -> None:
        self.repository = repository
        self.platform = platform
        self.deferred = deferred
        self.close_delete_delay = close_delete_delay

    async def create(self, creator: Actor, raw_name: str) -> Commission:
        name = sanitize_name(raw_name, label="commission name")

        async with self.repository.guard(f"creator:{creator.id}"):
            existing = await self.repository.get_active_by_creator(creator.id)
            if existing is not None:
                raise DuplicateActiveCommission(existing.channel_id)

            channel_id = await self.platform.create_commission_channel(creator.id, name)
            try:
                thread_id = await self.platform.create_artwork_thread(channel_id)
                commission = Commission(
                    id=mint_id(creator.id),
                    creator_id=creator.id,
                    channel_id=channel_id,
                    channel_name=name,
                    artwork_thread_id=thread_id,
                )
                await self.repository.save(commission)
            except Exception:
                log.error(
                    "Could not set up commission for %s; removing channel %s",
                    creator.id,
                    channel_id,
                )
                await self._delete_channel_quietly(
                    channel_id, "Commission could not be saved"
                )
                raise

        log.info("Created commission %s for %s (%s)", commission.id, creator.id, name)
        try:
            await self.platform.post_commission_status(commission)
        except NotificationFailure as exc:
            log.warning("Could not post status for commission %s: %s", commission.id, exc)
        return commission

    async def toggle_rep(
        self,
        key: str,
        actor: Actor,
        action: RepAction | str,
        target_id: str | None = None,
    ) -> Commission:
        """Add or remove a rep on the commission identified by id or channel id."""
        action = RepAction(action)
        target_id = target_id or actor.id

        commission = await self._resolve(key)
        async with self.repository.guard(commission.id):
            commission = await self._resolve(commission.id)
            if not commission.is_active:
                raise ValidationError(
                    user_message="This commission is closed and no longer accepts reps."
                )
            is_creator = commission.creator_id == actor.id
            if target_id != actor.id and not is_creator:
                raise PermissionDenied(
                    user_message="Only the commission creator can manage other reps."
                )
            if action is RepAction.ADD:
                commission = await self.repository.add_rep(commission.id, target_id)
            else:
                commission = await self.repository.remove_rep(commission.id, target_id)

        log.info(
            "Rep %s %s on commission %s by %s",
            target_id,
            "added" if action is RepAction.ADD else "removed",
            commission.id,
            actor.id,
        )
        await self._refresh_display(commission)
        return commission

    async def rename(self, channel_id: str, actor: Actor, new_name: str) -> Commission:
        name = sanitize_name(new_name, label="commission name")
        commission = await self._resolve(channel_id)
        async with self.repository.guard(commission.id):
            commission = await self._resolve(commission.id)
            self._require_creator(commission, actor, "rename")
            commission = await self.repository.update_channel_name(commission.id, name)

        try:
            await self.platform.rename_channel(
                commission.channel_id, commission.display_channel_name
            )
        except NotificationFailure as exc:
            log.warning("Could not rename channel for %s: %s", commission.id, exc)
        await self._refresh_display(commission)
        return commission

    async def close(self, channel_id: str, actor: Actor) -> Commission:
        commission = await self._resolve(channel_id)
        async with self.repository.guard(commission.id):
            commission = await self._resolve(commission.id)
            self._require_creator(commission, actor, "close")
            commission = await self.repository.set_status(
                commission.id, CommissionStatus.INACTIVE
            )

        log.info("Commission %s closed by %s", commission.id, actor.id)
        try:
            await self.platform.post_closure_notice(commission)
        except NotificationFailure as exc:
            log.warning("Could not post closure notice for %s: %s", commission.id, exc)

        self.deferred.schedule(
            commission.id,
            self.close_delete_delay,
            partial(
                self.platform.delete_channel,
                commission.channel_id,
                f"Commission closed by {actor.display_name or actor.id}",
            ),
            description=f"deletion of commission channel {commission.channel_id}",
        )
        await self.platform.audit(
            "Commission closed",
            commission=commission.channel_name,
            creator=actor.mention,
        )
        return commission

    async def _resolve(self, key: str) -> Commission:
        commission = await self.repository.resolve(key)
        if commission is None:
            raise NotFound(f"No commission for {key}", user_message=_NOT_A_COMMISSION)
        return commission

    @staticmethod
    def _require_creator(commission: Commission, actor: Actor, verb: str) -> None:
        if commission.creator_id != actor.id:
            raise PermissionDenied(
                user_message=f"Only the commission creator can {verb} the channel."
            )

    async def _refresh_display(self, commission: Commission) -> None:
        try:
            found = await self.platform.refresh_commission_status(commission)
        except NotificationFailure as exc:
            log.warning("Could not refresh commission %s display: %s", commission.id, exc)
            return
        if not found:
            log.info("Could not find commission embed to update for %s", commission.id)

    async def _delete_channel_quietly(self, channel_id: str, reason: str) -> None:
        try:
            await self.platform.delete_channel(channel_id, reason)
        except NotificationFailure as exc:
            log.warning("Could not remove channel %s: %s", channel_id, exc)


__all__ = ["CLOSE_CHANNEL_DELETE_DELAY", "CommissionService", "RepAction"]
