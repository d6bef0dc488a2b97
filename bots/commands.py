"""Slash commands and button routing."""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Final

import discord
from discord import app_commands

from bots import embeds
from bots.config import BotConfig
from vetting_bot.commissions import CommissionService, RepAction
from vetting_bot.errors import AlreadyProcessed, BotError, NotFound, PermissionDenied
from vetting_bot.models import Actor, VettingStatus
from vetting_bot.platform import ChatPlatform
from vetting_bot.repositories import CommissionRepository, VettingRepository
from vetting_bot.scheduler import DeferredActions, MaintenanceJob
from vetting_bot.vetting import Decision, DecisionOutcome, VettingService

log: Final = logging.getLogger("vetting-bot")

GENERIC_FAILURE: Final[str] = "An unexpected error occurred. Please try again later."

Handler = Callable[..., Awaitable[Any]]


@dataclass(slots=True)
class BotContext:
    config: BotConfig
    platform: ChatPlatform
    vettings: VettingRepository
    commissions: CommissionRepository
    vetting_service: VettingService
    commission_service: CommissionService
    deferred: DeferredActions
    maintenance: MaintenanceJob


def actor_from(interaction: discord.Interaction, admin_role_id: int) -> Actor:
    user = interaction.user
    roles = getattr(user, "roles", None) or []
    return Actor(
        id=str(user.id),
        display_name=getattr(user, "display_name", "") or str(user),
        is_admin=any(role.id == admin_role_id for role in roles),
    )


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise PermissionDenied(user_message="This command is restricted to admins.")


async def reply(interaction: discord.Interaction, content: str | None = None, **kwargs: Any) -> None:
    """Send a private reply, following up if the response was already used."""
    kwargs.setdefault("ephemeral", True)
    try:
        if interaction.response.is_done():
            await interaction.followup.send(content, **kwargs)
        else:
            await interaction.response.send_message(content, **kwargs)
    except discord.HTTPException as exc:
        log.warning("Could not reply to interaction %s: %s", interaction.id, exc)


def handle_errors(func: Handler) -> Handler:
    """Turn known failures into private replies and log everything else."""

    @functools.wraps(func)
    async def wrapper(interaction: discord.Interaction, *args: Any, **kwargs: Any) -> Any:
        try:
            return await func(interaction, *args, **kwargs)
        except BotError as exc:
            log.info("%s refused for %s: %s", func.__name__, interaction.user, exc)
            await reply(interaction, f"❌ {exc.user_message}")
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Unhandled error in %s: %s", func.__name__, exc)
            await reply(interaction, f"❌ {GENERIC_FAILURE}")
        return None

    return wrapper


def _channel_key(interaction: discord.Interaction) -> str:
    if interaction.channel_id is None:
        raise NotFound(user_message="This command can only be used in commission channels.")
    return str(interaction.channel_id)


def register_commands(
    tree: app_commands.CommandTree,
    ctx: BotContext,
    *,
    guild: discord.abc.Snowflake | None = None,
) -> None:
    admin_role_id = ctx.config.admin_role_id

    # ---------- vetting ----------
    @tree.command(name="vet", description="Request age vetting for your ckey.", guild=guild)
    @app_commands.describe(ckey="Your BYOND ckey")
    @handle_errors
    async def vet(interaction: discord.Interaction, ckey: str) -> None:
        await interaction.response.defer(ephemeral=True)
        actor = actor_from(interaction, admin_role_id)
        request = await ctx.vetting_service.create(actor, ckey)
        await reply(
            interaction,
            f"✅ Your vetting request has been created: <#{request.channel_id}>",
        )

    @tree.command(
        name="vetstatus", description="Check the status of your latest vetting request.", guild=guild
    )
    @handle_errors
    async def vetstatus(interaction: discord.Interaction) -> None:
        request = await ctx.vettings.latest_for_user(str(interaction.user.id))
        if request is None:
            await reply(interaction, "You have no vetting requests. Use /vet to start one.")
            return
        await reply(interaction, embed=embeds.vetting_status_embed(request))

    @tree.command(name="vetlist", description="List pending vetting requests (admin).", guild=guild)
    @handle_errors
    async def vetlist(interaction: discord.Interaction) -> None:
        require_admin(actor_from(interaction, admin_role_id))
        pending = await ctx.vettings.list_pending()
        await reply(
            interaction, embed=embeds.pending_list_embed(pending, interaction.guild)
        )

    # ---------- commissions ----------
    @tree.command(
        name="create-commission", description="Open your commission channel.", guild=guild
    )
    @app_commands.describe(name="Name for the commission channel")
    @handle_errors
    async def create_commission(interaction: discord.Interaction, name: str) -> None:
        await interaction.response.defer(ephemeral=True)
        actor = actor_from(interaction, admin_role_id)
        commission = await ctx.commission_service.create(actor, name)
        await reply(
            interaction,
            f"✅ Your commission channel has been created: <#{commission.channel_id}>",
        )

    @tree.command(name="rep", description="Add or remove a rep in this commission.", guild=guild)
    @app_commands.describe(
        action="Whether to add or remove the rep",
        member="Member to change (defaults to yourself; creator only for others)",
    )
    @app_commands.choices(
        action=[
            app_commands.Choice(name="add", value=RepAction.ADD.value),
            app_commands.Choice(name="remove", value=RepAction.REMOVE.value),
        ]
    )
    @handle_errors
    async def rep(
        interaction: discord.Interaction,
        action: app_commands.Choice[str] | None = None,
        member: discord.Member | None = None,
    ) -> None:
        actor = actor_from(interaction, admin_role_id)
        target_id = str(member.id) if member is not None else actor.id
        chosen = RepAction(action.value) if action is not None else RepAction.ADD
        await ctx.commission_service.toggle_rep(
            _channel_key(interaction), actor, chosen, target_id
        )
        who = "You are" if target_id == actor.id else f"<@{target_id}> is"
        verb = "now" if chosen is RepAction.ADD else "no longer"
        await reply(interaction, f"✅ {who} {verb} a rep for this commission.")

    @tree.command(
        name="rename-commission", description="Rename your commission channel.", guild=guild
    )
    @app_commands.describe(name="New commission name")
    @handle_errors
    async def rename_commission(interaction: discord.Interaction, name: str) -> None:
        await interaction.response.defer(ephemeral=True)
        actor = actor_from(interaction, admin_role_id)
        commission = await ctx.commission_service.rename(
            _channel_key(interaction), actor, name
        )
        await reply(
            interaction, f"✅ Commission renamed to `{commission.display_channel_name}`."
        )

    @tree.command(
        name="close-commission", description="Close your commission channel.", guild=guild
    )
    @handle_errors
    async def close_commission(interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        actor = actor_from(interaction, admin_role_id)
        await ctx.commission_service.close(_channel_key(interaction), actor)
        await reply(
            interaction,
            "✅ Commission closed. The channel will be deleted in "
            f"{ctx.commission_service.close_delete_delay} seconds.",
        )

    # ---------- admin ----------
    @tree.command(name="cleanup", description="Run the cleanup sweep now (admin).", guild=guild)
    @handle_errors
    async def cleanup(interaction: discord.Interaction) -> None:
        actor = actor_from(interaction, admin_role_id)
        require_admin(actor)
        await interaction.response.defer(ephemeral=True)
        report = await ctx.maintenance.run_once()
        summary = (
            f"Timed out {len(report.expired_vettings)} request(s), removed "
            f"{len(report.removed_vettings)} vetting and "
            f"{len(report.removed_commissions)} commission record(s)."
        )
        await ctx.platform.audit("Manual cleanup", admin=actor.mention, result=summary)
        await reply(interaction, f"✅ {summary}")

    @tree.command(name="stats", description="Show bot statistics (admin).", guild=guild)
    @handle_errors
    async def stats(interaction: discord.Interaction) -> None:
        require_admin(actor_from(interaction, admin_role_id))
        embed = embeds.stats_embed(
            await ctx.vettings.count_by_status(),
            await ctx.commissions.count_by_status(),
            len(ctx.deferred),
        )
        await reply(interaction, embed=embed)


# ---------- buttons ----------
async def handle_component(interaction: discord.Interaction, ctx: BotContext) -> bool:
    """Route a button press by custom id; ``False`` when the id is not ours."""
    data = interaction.data or {}
    parsed = embeds.parse_custom_id(str(data.get("custom_id", "")))
    if parsed is None:
        return False

    prefix, entity_id = parsed
    if prefix in (embeds.APPROVE_PREFIX, embeds.DENY_PREFIX):
        decision = Decision.APPROVE if prefix == embeds.APPROVE_PREFIX else Decision.DENY
        await _handle_decision(interaction, ctx, entity_id, decision)
    else:
        action = RepAction.ADD if prefix == embeds.REP_ADD_PREFIX else RepAction.REMOVE
        await _handle_rep_button(interaction, ctx, entity_id, action)
    return True


@handle_errors
async def _handle_decision(
    interaction: discord.Interaction,
    ctx: BotContext,
    request_id: str,
    decision: Decision,
) -> None:
    actor = actor_from(interaction, ctx.config.admin_role_id)
    require_admin(actor)
    await interaction.response.defer(ephemeral=True)

    try:
        outcome = await ctx.vetting_service.decide(request_id, actor, decision)
    except AlreadyProcessed as exc:
        if exc.status:
            await _lock_prompt(interaction, request_id, VettingStatus(exc.status))
        raise

    result_text = _decision_result_text(outcome, actor)
    await _lock_prompt(
        interaction, request_id, outcome.request.status, actor.display_name, result_text
    )
    await reply(interaction, result_text)


def _decision_result_text(outcome: DecisionOutcome, actor: Actor) -> str:
    request = outcome.request
    if outcome.decision is Decision.APPROVE:
        parts = [f"✅ Approved by {actor.mention}"]
        if outcome.upstream_ok:
            parts.append("✅ Verification service updated")
        else:
            parts.append(
                "⚠️ Verification service update failed, the flag must be set manually"
            )
    else:
        parts = [f"❌ Denied by {actor.mention}"]
    parts.append(
        "✅ User notified" if outcome.notified else "⚠️ Could not DM the user"
    )
    parts.append(f"Channel will be deleted in {outcome.channel_delete_delay} seconds")
    return f"`{request.ckey}`: " + " | ".join(parts)


async def _lock_prompt(
    interaction: discord.Interaction,
    request_id: str,
    status: VettingStatus,
    actor_name: str | None = None,
    result_text: str | None = None,
) -> None:
    message = interaction.message
    if message is None:
        return
    kwargs: dict[str, Any] = {
        "view": embeds.resolved_decision_view(request_id, status, actor_name)
    }
    if result_text and message.embeds:
        kwargs["embed"] = embeds.with_result(message.embeds[0].copy(), status, result_text)
    try:
        await message.edit(**kwargs)
    except discord.NotFound:
        log.warning("Prompt for %s disappeared before it could be updated", request_id)
    except discord.HTTPException as exc:
        log.warning("Could not update prompt for %s: %s", request_id, exc)


@handle_errors
async def _handle_rep_button(
    interaction: discord.Interaction,
    ctx: BotContext,
    commission_id: str,
    action: RepAction,
) -> None:
    actor = actor_from(interaction, ctx.config.admin_role_id)
    await ctx.commission_service.toggle_rep(commission_id, actor, action)
    if action is RepAction.ADD:
        await reply(interaction, "✅ You are now a rep for this commission.")
    else:
        await reply(interaction, "✅ You are no longer a rep for this commission.")


__all__ = [
    "BotContext",
    "GENERIC_FAILURE",
    "actor_from",
    "handle_component",
    "handle_errors",
    "register_commands",
    "reply",
]
