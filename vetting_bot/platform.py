"""Contract between the services and the chat platform.

The services only ever talk to the platform through these calls; the
discord.py implementation lives in ``bots.discord_platform``. Ids are
passed as strings on both sides.
"""

from __future__ import annotations

from typing import Any, Protocol

from .models import Commission, VettingRequest


class ChatPlatform(Protocol):
    async def create_vetting_channel(self, user_id: str, ckey: str) -> str:
        """Create a channel visible to the user and the admin role; return its id."""

    async def post_vetting_prompt(self, request: VettingRequest) -> None:
        """Post the decision prompt with approve/deny buttons."""

    async def create_commission_channel(self, creator_id: str, name: str) -> str: ...

    async def create_artwork_thread(self, channel_id: str) -> str: ...

    async def post_commission_status(self, commission: Commission) -> None:
        """Post and pin the status display for a new commission."""

    async def refresh_commission_status(self, commission: Commission) -> bool:
        """Re-render the pinned display; ``False`` when it cannot be found."""

    async def rename_channel(self, channel_id: str, name: str) -> None: ...

    async def post_closure_notice(self, commission: Commission) -> None: ...

    async def notify_user(self, user_id: str, message: str) -> None:
        """Direct-message a user; raises ``NotificationFailure`` on failure."""

    async def delete_channel(self, channel_id: str, reason: str) -> None:
        """Delete a channel; a channel that is already gone is not an error."""

    async def audit(self, message: str, **fields: Any) -> None:
        """Post a line to the admin log channel, best-effort."""


class VerificationClient(Protocol):
    async def get_verification_by_ckey(self, ckey: str) -> dict[str, Any] | None: ...

    async def create_or_update_verification(
        self, discord_id: str, ckey: str, flags: dict[str, Any]
    ) -> dict[str, Any]: ...


__all__ = ["ChatPlatform", "VerificationClient"]
