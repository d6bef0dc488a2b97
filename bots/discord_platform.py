"""discord.py implementation of the chat platform used by the services."""

from __future__ import annotations

import logging
from typing import Any, Final

import discord

from bots import embeds
from bots.config import BotConfig
from bots.logging_utils import resolve_log_channel
from vetting_bot.commissions import CLOSE_CHANNEL_DELETE_DELAY
from vetting_bot.errors import NotificationFailure
from vetting_bot.models import Commission, VettingRequest

log: Final = logging.getLogger("vetting-bot")

ARTWORK_THREAD_NAME: Final[str] = "artwork"


class DiscordPlatform:
    def __init__(
        self,
        bot: discord.Client,
        config: BotConfig,
        *,
        close_delete_delay: int = CLOSE_CHANNEL_DELETE_DELAY,
    ) -> None:
        self.bot = bot
        self.config = config
        self.close_delete_delay = close_delete_delay

    async def guild(self) -> discord.Guild:
        guild = self.bot.get_guild(self.config.guild_id)
        if guild is not None:
            return guild
        try:
            return await self.bot.fetch_guild(self.config.guild_id)
        except discord.HTTPException as exc:
            raise NotificationFailure(f"Guild {self.config.guild_id} unavailable: {exc}") from exc

    async def _member(self, guild: discord.Guild, user_id: str) -> discord.Member:
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except discord.HTTPException as exc:
            raise NotificationFailure(f"Member {user_id} unavailable: {exc}") from exc

    async def _channel(self, channel_id: str) -> discord.abc.GuildChannel | discord.Thread:
        channel = self.bot.get_channel(int(channel_id))
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(int(channel_id))
        except discord.HTTPException as exc:
            raise NotificationFailure(f"Channel {channel_id} unavailable: {exc}") from exc

    @staticmethod
    def _category(guild: discord.Guild, category_id: int | None) -> discord.CategoryChannel | None:
        if category_id is None:
            return None
        category = guild.get_channel(category_id)
        if isinstance(category, discord.CategoryChannel):
            return category
        log.warning("Category %s not found in guild %s", category_id, guild.id)
        return None

    # ---------- vetting ----------
    async def create_vetting_channel(self, user_id: str, ckey: str) -> str:
        guild = await self.guild()
        member = await self._member(guild, user_id)
        overwrites: dict[Any, discord.PermissionOverwrite] = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
            member: discord.PermissionOverwrite(
                view_channel=True, send_messages=True, read_message_history=True
            ),
        }
        admin_role = guild.get_role(self.config.admin_role_id)
        if admin_role is not None:
            overwrites[admin_role] = discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                read_message_history=True,
                manage_channels=True,
            )
        else:
            log.warning("Admin role %s not found", self.config.admin_role_id)

        channel = await guild.create_text_channel(
            f"vet-{ckey}-{member.name}"[:100],
            category=self._category(guild, self.config.vetting_category_id),
            overwrites=overwrites,
            reason=f"Age vetting request for {member}",
        )
        return str(channel.id)

    async def post_vetting_prompt(self, request: VettingRequest) -> None:
        channel = await self._channel(request.channel_id)
        user = self.bot.get_user(int(request.user_id))
        try:
            await channel.send(
                content=f"<@&{self.config.admin_role_id}> New age vetting request from "
                f"<@{request.user_id}>",
                embed=embeds.vetting_prompt_embed(request, user),
                view=embeds.decision_view(request.id),
            )
        except discord.HTTPException as exc:
            raise NotificationFailure(f"Could not post prompt: {exc}") from exc

    # ---------- commissions ----------
    async def create_commission_channel(self, creator_id: str, name: str) -> str:
        guild = await self.guild()
        member = await self._member(guild, creator_id)
        overwrites: dict[Any, discord.PermissionOverwrite] = {
            guild.default_role: discord.PermissionOverwrite(
                view_channel=True, send_messages=False, read_message_history=True
            ),
            member: discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                read_message_history=True,
                manage_messages=True,
                manage_threads=True,
                create_private_threads=True,
                send_messages_in_threads=True,
            ),
        }
        if guild.me is not None:
            overwrites[guild.me] = discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                manage_channels=True,
                manage_messages=True,
                manage_threads=True,
            )

        channel = await guild.create_text_channel(
            f"commission-{name}",
            category=self._category(guild, self.config.commission_category_id),
            overwrites=overwrites,
            reason=f"Commission channel for {member}",
        )
        return str(channel.id)

    async def create_artwork_thread(self, channel_id: str) -> str:
        channel = await self._channel(channel_id)
        if not isinstance(channel, discord.TextChannel):
            raise TypeError(f"Channel {channel_id} cannot hold threads")
        thread = await channel.create_thread(
            name=ARTWORK_THREAD_NAME,
            type=discord.ChannelType.private_thread,
            invitable=False,
            reason="Artwork thread for commission",
        )
        return str(thread.id)

    async def post_commission_status(self, commission: Commission) -> None:
        channel = await self._channel(commission.channel_id)
        creator = self.bot.get_user(int(commission.creator_id))
        try:
            message = await channel.send(
                embed=embeds.commission_status_embed(commission, creator),
                view=embeds.commission_view(commission),
            )
            await message.pin(reason="Commission status")
        except discord.HTTPException as exc:
            raise NotificationFailure(f"Could not post commission status: {exc}") from exc

    async def refresh_commission_status(self, commission: Commission) -> bool:
        channel = await self._channel(commission.channel_id)
        if not isinstance(channel, discord.TextChannel):
            return False
        marker = f"{embeds.COMMISSION_FOOTER_PREFIX}{commission.id}"
        creator = self.bot.get_user(int(commission.creator_id))
        try:
            for message in await channel.pins():
                if message.author.id != getattr(self.bot.user, "id", None):
                    continue
                if not any(
                    embed.footer and embed.footer.text and marker in embed.footer.text
                    for embed in message.embeds
                ):
                    continue
                await message.edit(
                    embed=embeds.commission_status_embed(commission, creator),
                    view=embeds.commission_view(commission),
                )
                return True
        except discord.HTTPException as exc:
            raise NotificationFailure(f"Could not refresh commission status: {exc}") from exc
        return False

    async def rename_channel(self, channel_id: str, name: str) -> None:
        channel = await self._channel(channel_id)
        try:
            await channel.edit(name=name, reason="Commission renamed")
        except discord.HTTPException as exc:
            raise NotificationFailure(f"Could not rename channel {channel_id}: {exc}") from exc

    async def post_closure_notice(self, commission: Commission) -> None:
        channel = await self._channel(commission.channel_id)
        try:
            await channel.send(
                embed=embeds.closure_embed(commission, self.close_delete_delay)
            )
        except discord.HTTPException as exc:
            raise NotificationFailure(f"Could not post closure notice: {exc}") from exc
        await self.refresh_commission_status(commission)

    # ---------- shared ----------
    async def notify_user(self, user_id: str, message: str) -> None:
        try:
            user = self.bot.get_user(int(user_id)) or await self.bot.fetch_user(int(user_id))
            await user.send(message)
        except discord.Forbidden as exc:
            raise NotificationFailure(f"User {user_id} does not accept DMs") from exc
        except discord.HTTPException as exc:
            raise NotificationFailure(f"Could not DM {user_id}: {exc}") from exc

    async def delete_channel(self, channel_id: str, reason: str) -> None:
        try:
            channel = self.bot.get_channel(int(channel_id)) or await self.bot.fetch_channel(
                int(channel_id)
            )
            await channel.delete(reason=reason)
        except discord.NotFound:
            log.info("Channel %s already deleted", channel_id)
            return
        except discord.HTTPException as exc:
            raise NotificationFailure(f"Could not delete channel {channel_id}: {exc}") from exc
        log.info("Deleted channel %s (%s)", channel_id, reason)

    async def audit(self, message: str, **fields: Any) -> None:
        guild = self.bot.get_guild(self.config.guild_id)
        log_chan = await resolve_log_channel(
            self.bot, self.config.admin_log_channel_id, guild
        )
        if log_chan is None:
            return
        embed = discord.Embed(
            title=message,
            color=discord.Color.blurple(),
            timestamp=discord.utils.utcnow(),
        )
        for name, value in fields.items():
            embed.add_field(name=name.replace("_", " ").capitalize(), value=str(value))
        try:
            await log_chan.send(embed=embed)
        except discord.Forbidden:
            log.warning("No send permission in log channel %s", log_chan.id)
        except discord.HTTPException as exc:
            log.warning("Failed to post audit entry: %s", exc)


__all__ = ["ARTWORK_THREAD_NAME", "DiscordPlatform"]
