"""Tests for slash command handlers and button routing."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from discord import app_commands

from bots.commands import (
    GENERIC_FAILURE,
    BotContext,
    actor_from,
    handle_component,
    handle_errors,
    register_commands,
)
from bots.config import BotConfig
from vetting_bot import Actor, MaintenanceJob, VettingStatus
from vetting_bot.errors import NotificationFailure, PermissionDenied

ADMIN_ROLE = 77
GUILD = discord.Object(id=1)


def make_config() -> BotConfig:
    return BotConfig(
        discord_token="token",
        guild_id=1,
        admin_role_id=ADMIN_ROLE,
        vetting_category_id=3,
        veyra_base_url="https://veyra.test",
        veyra_username="bot",
        veyra_password="secret",
    )


def make_interaction(
    user_id: int = 101,
    *,
    admin: bool = False,
    channel_id: int | None = None,
    custom_id: str | None = None,
    message=None,
):
    interaction = MagicMock()
    interaction.user.id = user_id
    interaction.user.display_name = f"user{user_id}"
    interaction.user.roles = [SimpleNamespace(id=ADMIN_ROLE)] if admin else []
    interaction.channel_id = channel_id
    interaction.guild = None
    interaction.data = {"custom_id": custom_id} if custom_id else {}
    interaction.message = message
    interaction.response.is_done.return_value = False

    async def defer(**_kwargs):
        interaction.response.is_done.return_value = True

    interaction.response.defer = AsyncMock(side_effect=defer)
    interaction.response.send_message = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


def sent_text(interaction) -> str:
    for mock in (interaction.followup.send, interaction.response.send_message):
        if mock.await_args is not None and mock.await_args.args:
            return mock.await_args.args[0] or ""
    return ""


def prompt_message():
    message = MagicMock()
    message.embeds = [discord.Embed(title="Age Vetting Request")]
    message.edit = AsyncMock()
    return message


@pytest.fixture
def ctx(platform, vettings, commissions, vetting_service, commission_service, deferred):
    return BotContext(
        config=make_config(),
        platform=platform,
        vettings=vettings,
        commissions=commissions,
        vetting_service=vetting_service,
        commission_service=commission_service,
        deferred=deferred,
        maintenance=MaintenanceJob(vettings, commissions, deferred),
    )


@pytest.fixture
def tree(ctx):
    client = discord.Client(intents=discord.Intents.none())
    command_tree = app_commands.CommandTree(client)
    register_commands(command_tree, ctx, guild=GUILD)
    return command_tree


def command(tree, name: str):
    registered = tree.get_command(name, guild=GUILD)
    assert registered is not None, name
    return registered.callback


class TestHandleErrors:
    @pytest.mark.asyncio
    async def test_bot_error_becomes_private_reply(self):
        @handle_errors
        async def handler(interaction):
            raise PermissionDenied(user_message="Nope.")

        interaction = make_interaction()
        await handler(interaction)

        interaction.response.send_message.assert_awaited_once_with("❌ Nope.", ephemeral=True)

    @pytest.mark.asyncio
    async def test_internal_error_text_is_not_shown(self):
        @handle_errors
        async def handler(interaction):
            raise NotificationFailure("Channel 1000 unavailable: 403 Forbidden")

        interaction = make_interaction()
        await handler(interaction)

        text = sent_text(interaction)
        assert "1000" not in text
        assert text == f"❌ {NotificationFailure.default_message}"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic_and_uses_followup(self, caplog):
        @handle_errors
        async def handler(interaction):
            await interaction.response.defer(ephemeral=True)
            raise KeyError("internal detail")

        interaction = make_interaction()
        await handler(interaction)

        interaction.followup.send.assert_awaited_once_with(
            f"❌ {GENERIC_FAILURE}", ephemeral=True
        )
        assert "internal detail" not in sent_text(interaction)
        assert "Unhandled error in handler" in caplog.text


def test_actor_from_detects_admin_role():
    assert actor_from(make_interaction(admin=True), ADMIN_ROLE).is_admin
    actor = actor_from(make_interaction(5), ADMIN_ROLE)
    assert actor == Actor(id="5", display_name="user5", is_admin=False)


def test_register_commands(tree):
    names = {cmd.name for cmd in tree.get_commands(guild=GUILD)}
    assert names == {
        "vet",
        "vetstatus",
        "vetlist",
        "create-commission",
        "rep",
        "rename-commission",
        "close-commission",
        "cleanup",
        "stats",
    }


class TestVettingCommands:
    @pytest.mark.asyncio
    async def test_vet_creates_request(self, tree, vettings):
        interaction = make_interaction(101)

        await command(tree, "vet")(interaction, ckey="Test_Key!")

        request = await vettings.get_pending_by_user("101")
        assert request.ckey == "test_key"
        assert request.channel_id in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_vet_duplicate_is_reported(self, tree):
        await command(tree, "vet")(make_interaction(101), ckey="abc")
        interaction = make_interaction(101)

        await command(tree, "vet")(interaction, ckey="abc")

        assert "already have an active vetting request" in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_vetstatus_without_requests(self, tree):
        interaction = make_interaction(101)

        await command(tree, "vetstatus")(interaction)

        assert "no vetting requests" in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_vetstatus_shows_embed(self, tree):
        await command(tree, "vet")(make_interaction(101), ckey="abc")
        interaction = make_interaction(101)

        await command(tree, "vetstatus")(interaction)

        embed = interaction.response.send_message.await_args.kwargs["embed"]
        assert embed.title == "Your Vetting Status"

    @pytest.mark.asyncio
    async def test_vetlist_requires_admin(self, tree):
        interaction = make_interaction(101)

        await command(tree, "vetlist")(interaction)

        assert "restricted to admins" in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_vetlist_for_admin(self, tree):
        await command(tree, "vet")(make_interaction(101), ckey="abc")
        interaction = make_interaction(900, admin=True)

        await command(tree, "vetlist")(interaction)

        embed = interaction.response.send_message.await_args.kwargs["embed"]
        assert "`abc`" in embed.description


class TestCommissionCommands:
    @pytest.mark.asyncio
    async def test_create_rep_rename_close(self, tree, commissions, deferred):
        await command(tree, "create-commission")(make_interaction(300), name="My Stall!!")
        commission = await commissions.get_active_by_creator("300")
        channel_id = int(commission.channel_id)

        rep_interaction = make_interaction(400, channel_id=channel_id)
        await command(tree, "rep")(rep_interaction, action=app_commands.Choice(name="add", value="add"))
        assert "You are now a rep" in sent_text(rep_interaction)

        await command(tree, "rename-commission")(
            make_interaction(300, channel_id=channel_id), name="portraits"
        )
        close_interaction = make_interaction(300, channel_id=channel_id)
        await command(tree, "close-commission")(close_interaction)

        stored = await commissions.get(commission.id)
        assert stored.reps == ["400"]
        assert stored.channel_name == "portraits"
        assert not stored.is_active
        assert commission.id in deferred
        assert "will be deleted" in sent_text(close_interaction)

    @pytest.mark.asyncio
    async def test_rep_defaults_to_adding_self(self, tree, commissions):
        await command(tree, "create-commission")(make_interaction(300), name="art")
        commission = await commissions.get_active_by_creator("300")

        await command(tree, "rep")(make_interaction(400, channel_id=int(commission.channel_id)))

        assert (await commissions.get(commission.id)).reps == ["400"]

    @pytest.mark.asyncio
    async def test_rep_outside_commission_channel(self, tree):
        interaction = make_interaction(400, channel_id=42)

        await command(tree, "rep")(interaction, action=app_commands.Choice(name="add", value="add"))

        assert "commission channels" in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_creator_adds_other_member(self, tree, commissions):
        await command(tree, "create-commission")(make_interaction(300), name="art")
        commission = await commissions.get_active_by_creator("300")
        member = MagicMock()
        member.id = 400
        interaction = make_interaction(300, channel_id=int(commission.channel_id))

        await command(tree, "rep")(
            interaction, action=app_commands.Choice(name="add", value="add"), member=member
        )

        assert (await commissions.get(commission.id)).reps == ["400"]
        assert "<@400> is now a rep" in sent_text(interaction)


class TestAdminCommands:
    @pytest.mark.asyncio
    async def test_stats(self, tree):
        interaction = make_interaction(900, admin=True)

        await command(tree, "stats")(interaction)

        embed = interaction.response.send_message.await_args.kwargs["embed"]
        assert embed.title == "Bot Statistics"

    @pytest.mark.asyncio
    async def test_cleanup(self, tree, platform):
        interaction = make_interaction(900, admin=True)

        await command(tree, "cleanup")(interaction)

        assert "removed 0 vetting" in sent_text(interaction)
        platform.audit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cleanup_requires_admin(self, tree, platform):
        interaction = make_interaction(101)

        await command(tree, "cleanup")(interaction)

        assert "restricted to admins" in sent_text(interaction)
        platform.audit.assert_not_awaited()


class TestButtons:
    @pytest.mark.asyncio
    async def test_unknown_custom_id_is_ignored(self, ctx):
        assert await handle_component(make_interaction(custom_id="other_123"), ctx) is False

    @pytest.mark.asyncio
    async def test_approve_button(self, ctx, vettings, vetting_service):
        request = await vetting_service.create(Actor(id="101"), "abc")
        message = prompt_message()
        interaction = make_interaction(
            900, admin=True, custom_id=f"approve_{request.id}", message=message
        )

        assert await handle_component(interaction, ctx) is True

        assert (await vettings.get(request.id)).status is VettingStatus.APPROVED
        view = message.edit.await_args.kwargs["view"]
        assert all(item.disabled for item in view.children)
        assert message.edit.await_args.kwargs["embed"].fields[-1].name == "Result"
        assert "Approved by <@900>" in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_deny_button_by_non_admin(self, ctx, vettings, vetting_service):
        request = await vetting_service.create(Actor(id="101"), "abc")
        message = prompt_message()
        interaction = make_interaction(555, custom_id=f"deny_{request.id}", message=message)

        await handle_component(interaction, ctx)

        assert (await vettings.get(request.id)).status is VettingStatus.PENDING
        message.edit.assert_not_awaited()
        assert "restricted to admins" in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_already_processed_locks_prompt(self, ctx, vetting_service):
        request = await vetting_service.create(Actor(id="101"), "abc")
        await vetting_service.decide(request.id, Actor(id="900", is_admin=True), "deny")
        message = prompt_message()
        interaction = make_interaction(
            901, admin=True, custom_id=f"approve_{request.id}", message=message
        )

        await handle_component(interaction, ctx)

        message.edit.assert_awaited_once()
        assert "already been processed (denied)" in sent_text(interaction)

    @pytest.mark.asyncio
    async def test_rep_buttons(self, ctx, commissions, commission_service):
        commission = await commission_service.create(Actor(id="300"), "art")

        add = make_interaction(400, custom_id=f"rep_add_{commission.id}")
        await handle_component(add, ctx)
        assert (await commissions.get(commission.id)).reps == ["400"]

        again = make_interaction(400, custom_id=f"rep_add_{commission.id}")
        await handle_component(again, ctx)
        assert "already registered as a rep" in sent_text(again)

        remove = make_interaction(400, custom_id=f"rep_remove_{commission.id}")
        await handle_component(remove, ctx)
        assert (await commissions.get(commission.id)).reps == []
