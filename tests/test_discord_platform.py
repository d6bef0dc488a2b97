"""Tests for the discord.py platform adapter."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from bots.config import BotConfig
from bots.discord_platform import ARTWORK_THREAD_NAME, DiscordPlatform
from bots.embeds import commission_status_embed
from vetting_bot.errors import NotificationFailure
from vetting_bot.models import Commission, VettingRequest


def http_error(cls, status: int):
    return cls(MagicMock(status=status, reason="error"), "error")


def make_config(**overrides) -> BotConfig:
    values = dict(
        discord_token="token",
        guild_id=1,
        admin_role_id=77,
        vetting_category_id=3,
        veyra_base_url="https://veyra.test",
        veyra_username="bot",
        veyra_password="secret",
    )
    values.update(overrides)
    return BotConfig(**values)


def make_bot():
    bot = MagicMock()
    bot.user.id = 1
    guild = MagicMock()
    guild.id = 1
    guild.get_channel.return_value = None
    guild.create_text_channel = AsyncMock(return_value=SimpleNamespace(id=555))
    member = MagicMock()
    member.name = "player"
    guild.get_member.return_value = member
    bot.get_guild.return_value = guild
    bot.get_user.return_value = None
    return bot, guild, member


@pytest.mark.asyncio
async def test_vetting_channel_is_private_to_user_and_admins():
    bot, guild, member = make_bot()
    platform = DiscordPlatform(bot, make_config())

    channel_id = await platform.create_vetting_channel("101", "test_key")

    assert channel_id == "555"
    args, kwargs = guild.create_text_channel.await_args
    assert args[0] == "vet-test_key-player"
    overwrites = kwargs["overwrites"]
    assert overwrites[guild.default_role].view_channel is False
    assert overwrites[member].send_messages is True
    admin_role = guild.get_role.return_value
    assert overwrites[admin_role].manage_channels is True


@pytest.mark.asyncio
async def test_commission_channel_is_read_only_for_everyone():
    bot, guild, member = make_bot()
    platform = DiscordPlatform(bot, make_config(commission_category_id=9))

    await platform.create_commission_channel("300", "my_stall")

    args, kwargs = guild.create_text_channel.await_args
    assert args[0] == "commission-my_stall"
    overwrites = kwargs["overwrites"]
    assert overwrites[guild.default_role].view_channel is True
    assert overwrites[guild.default_role].send_messages is False
    assert overwrites[member].create_private_threads is True


@pytest.mark.asyncio
async def test_artwork_thread_is_private():
    bot, _guild, _member = make_bot()
    channel = MagicMock(spec=discord.TextChannel)
    channel.create_thread = AsyncMock(return_value=SimpleNamespace(id=777))
    bot.get_channel.return_value = channel

    thread_id = await DiscordPlatform(bot, make_config()).create_artwork_thread("555")

    assert thread_id == "777"
    kwargs = channel.create_thread.await_args.kwargs
    assert kwargs["name"] == ARTWORK_THREAD_NAME
    assert kwargs["type"] is discord.ChannelType.private_thread


@pytest.mark.asyncio
async def test_vetting_prompt_mentions_admin_role():
    bot, _guild, _member = make_bot()
    channel = MagicMock()
    channel.send = AsyncMock()
    bot.get_channel.return_value = channel
    request = VettingRequest(id="101-1-abcdef", user_id="101", ckey="abc", channel_id="555")

    await DiscordPlatform(bot, make_config()).post_vetting_prompt(request)

    kwargs = channel.send.await_args.kwargs
    assert "<@&77>" in kwargs["content"]
    assert kwargs["embed"].footer.text == "Vetting ID: 101-1-abcdef"
    assert [item.custom_id for item in kwargs["view"].children] == [
        "approve_101-1-abcdef",
        "deny_101-1-abcdef",
    ]


@pytest.mark.asyncio
async def test_prompt_failure_raises_notification_failure():
    bot, _guild, _member = make_bot()
    channel = MagicMock()
    channel.send = AsyncMock(side_effect=http_error(discord.Forbidden, 403))
    bot.get_channel.return_value = channel
    request = VettingRequest(id="x", user_id="101", ckey="abc", channel_id="555")

    with pytest.raises(NotificationFailure):
        await DiscordPlatform(bot, make_config()).post_vetting_prompt(request)


@pytest.mark.asyncio
async def test_refresh_finds_pinned_status_by_footer():
    bot, _guild, _member = make_bot()
    commission = Commission(id="c1", creator_id="300", channel_id="555", channel_name="art")
    other = MagicMock()
    other.author.id = 2
    pinned = MagicMock()
    pinned.author.id = 1
    pinned.embeds = [commission_status_embed(commission)]
    pinned.edit = AsyncMock()
    channel = MagicMock(spec=discord.TextChannel)
    channel.pins = AsyncMock(return_value=[other, pinned])
    bot.get_channel.return_value = channel
    commission.reps.append("400")

    found = await DiscordPlatform(bot, make_config()).refresh_commission_status(commission)

    assert found is True
    embed = pinned.edit.await_args.kwargs["embed"]
    assert "<@400>" in embed.fields[3].value


@pytest.mark.asyncio
async def test_refresh_without_pinned_status():
    bot, _guild, _member = make_bot()
    channel = MagicMock(spec=discord.TextChannel)
    channel.pins = AsyncMock(return_value=[])
    bot.get_channel.return_value = channel
    commission = Commission(id="c1", creator_id="300", channel_id="555", channel_name="art")

    assert await DiscordPlatform(bot, make_config()).refresh_commission_status(commission) is False


@pytest.mark.asyncio
async def test_notify_user_with_closed_dms():
    bot, _guild, _member = make_bot()
    user = MagicMock()
    user.send = AsyncMock(side_effect=http_error(discord.Forbidden, 403))
    bot.get_user.return_value = user

    with pytest.raises(NotificationFailure):
        await DiscordPlatform(bot, make_config()).notify_user("101", "hello")


@pytest.mark.asyncio
async def test_delete_channel_tolerates_missing_channel():
    bot, _guild, _member = make_bot()
    bot.get_channel.return_value = None
    bot.fetch_channel = AsyncMock(side_effect=http_error(discord.NotFound, 404))

    await DiscordPlatform(bot, make_config()).delete_channel("555", "done")


@pytest.mark.asyncio
async def test_delete_channel_other_errors_raise():
    bot, _guild, _member = make_bot()
    channel = MagicMock()
    channel.delete = AsyncMock(side_effect=http_error(discord.Forbidden, 403))
    bot.get_channel.return_value = channel

    with pytest.raises(NotificationFailure):
        await DiscordPlatform(bot, make_config()).delete_channel("555", "done")


@pytest.mark.asyncio
async def test_audit_without_log_channel_is_silent():
    bot, _guild, _member = make_bot()
    bot.fetch_channel = AsyncMock()

    await DiscordPlatform(bot, make_config()).audit("Vetting approved", user="<@1>")

    bot.fetch_channel.assert_not_awaited()


@pytest.mark.asyncio
async def test_audit_posts_embed():
    bot, guild, _member = make_bot()
    log_channel = MagicMock(spec=discord.TextChannel)
    log_channel.send = AsyncMock()
    guild.get_channel.return_value = log_channel

    await DiscordPlatform(bot, make_config(admin_log_channel_id=42)).audit(
        "Vetting approved", user="<@1>", ckey="abc"
    )

    embed = log_channel.send.await_args.kwargs["embed"]
    assert embed.title == "Vetting approved"
    assert [field.name for field in embed.fields] == ["User", "Ckey"]
