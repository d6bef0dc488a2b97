from __future__ import annotations

import logging
from typing import Final

import discord

LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

log: Final = logging.getLogger("vetting-bot")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # discord.py is chatty at INFO about gateway reconnects
    logging.getLogger("discord").setLevel(logging.WARNING)


async def resolve_log_channel(
    bot: discord.Client,
    admin_log_channel_id: int | None,
    guild: discord.Guild | None,
) -> discord.TextChannel | None:
    """Return a TextChannel object or None if unavailable.

    Looks in guild cache first, then tries REST fetch as fallback.
    """
    if not admin_log_channel_id:
        return None

    if guild is not None:
        channel = guild.get_channel(admin_log_channel_id)
        if isinstance(channel, discord.TextChannel):
            return channel

    try:
        channel = await bot.fetch_channel(admin_log_channel_id)
    except discord.NotFound:
        log.warning("Channel %s not found", admin_log_channel_id)
        return None
    except discord.Forbidden:
        log.warning(
            "No access to channel %s – check bot permissions",
            admin_log_channel_id,
        )
        return None
    except discord.HTTPException as exc:
        log.warning(
            "Cannot fetch channel %s – HTTP error: %s",
            admin_log_channel_id,
            exc,
        )
        return None

    if not isinstance(channel, discord.TextChannel):
        log.warning("Channel ID %s is not a text channel", admin_log_channel_id)
        return None
    if guild is not None and channel.guild.id != guild.id:
        log.warning(
            "Channel %s belongs to different guild (%s) than expected (%s)",
            admin_log_channel_id,
            channel.guild.id,
            guild.id,
        )
        return None
    return channel
