"""Embeds and button rows shown by the bot."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

import discord

from vetting_bot.models import Commission, VettingRequest, VettingStatus

APPROVE_PREFIX: Final[str] = "approve_"
DENY_PREFIX: Final[str] = "deny_"
REP_ADD_PREFIX: Final[str] = "rep_add_"
REP_REMOVE_PREFIX: Final[str] = "rep_remove_"

VETTING_FOOTER_PREFIX: Final[str] = "Vetting ID: "
COMMISSION_FOOTER_PREFIX: Final[str] = "Commission ID: "

VETTING_QUESTIONS: Final[str] = (
    'In your own words, what does "high roleplay" mean to you?\n\n'
    "Your character is offered something they really want, but it goes against "
    "their morals. How would you handle this situation in character?\n\n"
    "Give a short example of a character concept you would play here. "
    "What drives them?\n\n"
    "You are in the middle of roleplay, and another player does something that "
    "breaks immersion (metagaming, powergaming, etc.). How do you respond?\n\n"
    "What is the difference between your characters knowledge and your own "
    "knowledge as a player? Can you give an example?"
)

_STATUS_COLORS: Final = {
    VettingStatus.PENDING: discord.Color(0xF39C12),
    VettingStatus.APPROVED: discord.Color(0x27AE60),
    VettingStatus.DENIED: discord.Color(0xE74C3C),
    VettingStatus.TIMEOUT: discord.Color.dark_grey(),
}
_COMMISSION_COLOR: Final = discord.Color(0x9B59B6)


def relative_timestamp(value) -> str:
    return f"<t:{int(value.timestamp())}:R>"


def vetting_prompt_embed(
    request: VettingRequest, user: discord.abc.User | None = None
) -> discord.Embed:
    embed = discord.Embed(
        title="Age Vetting Request",
        description="A new age vetting request has been submitted.",
        color=discord.Color.blue(),
    )
    user_value = f"<@{request.user_id}>"
    if user is not None:
        user_value = f"{user.mention} ({user})"
        embed.set_thumbnail(url=user.display_avatar.url)
    embed.add_field(name="User", value=user_value, inline=True)
    embed.add_field(name="Ckey", value=f"`{request.ckey}`", inline=True)
    embed.add_field(
        name="Requested", value=relative_timestamp(request.created_at), inline=True
    )
    embed.add_field(name="Instructions", value=VETTING_QUESTIONS, inline=False)
    embed.set_footer(text=f"{VETTING_FOOTER_PREFIX}{request.id}")
    return embed


def decision_view(request_id: str) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            label="Approve",
            style=discord.ButtonStyle.success,
            custom_id=f"{APPROVE_PREFIX}{request_id}",
        )
    )
    view.add_item(
        discord.ui.Button(
            label="Deny",
            style=discord.ButtonStyle.danger,
            custom_id=f"{DENY_PREFIX}{request_id}",
        )
    )
    return view


def resolved_decision_view(
    request_id: str, status: VettingStatus, actor_name: str | None = None
) -> discord.ui.View:
    """Both decision buttons disabled, the label saying who resolved it."""
    suffix = f" by {actor_name}" if actor_name else ""
    approved = status is VettingStatus.APPROVED
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            label=f"Approved{suffix}" if approved else "Approve",
            style=discord.ButtonStyle.success,
            custom_id=f"{APPROVE_PREFIX}{request_id}",
            disabled=True,
        )
    )
    view.add_item(
        discord.ui.Button(
            label="Deny" if approved else f"{status.value.capitalize()}{suffix}",
            style=discord.ButtonStyle.danger
            if not approved
            else discord.ButtonStyle.secondary,
            custom_id=f"{DENY_PREFIX}{request_id}",
            disabled=True,
        )
    )
    return view


def with_result(embed: discord.Embed, status: VettingStatus, result_text: str) -> discord.Embed:
    embed.color = _STATUS_COLORS[status]
    embed.add_field(name="Result", value=result_text, inline=False)
    return embed


def vetting_status_embed(request: VettingRequest) -> discord.Embed:
    embed = discord.Embed(
        title="Your Vetting Status",
        color=_STATUS_COLORS[request.status],
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(name="Ckey", value=f"`{request.ckey}`", inline=True)
    embed.add_field(name="Status", value=request.status.value, inline=True)
    embed.add_field(name="Channel", value=f"<#{request.channel_id}>", inline=True)
    embed.add_field(
        name="Created", value=relative_timestamp(request.created_at), inline=True
    )
    return embed


def pending_list_embed(
    requests: Sequence[VettingRequest], guild: discord.Guild | None = None
) -> discord.Embed:
    embed = discord.Embed(
        title="Pending Vetting Requests",
        color=discord.Color.blue(),
        timestamp=discord.utils.utcnow(),
    )
    lines = []
    for index, request in enumerate(requests, start=1):
        member = guild.get_member(int(request.user_id)) if guild else None
        name = member.display_name if member else "Unknown User"
        lines.append(
            f"**{index}.** {name} - `{request.ckey}` - <#{request.channel_id}>"
            f" - {relative_timestamp(request.created_at)}"
        )
    description = "\n".join(lines) or "No pending requests"
    # embed descriptions are capped at 4096 characters
    if len(description) > 4000:
        description = description[:4000].rsplit("\n", 1)[0] + "\n…"
    embed.description = description
    return embed


def commission_status_embed(
    commission: Commission, creator: discord.Member | discord.User | None = None
) -> discord.Embed:
    creator_name = creator.display_name if creator else "the artist"
    embed = discord.Embed(
        title=f"Commission: {commission.channel_name}",
        description=f"Welcome to {creator_name}'s commission channel!",
        color=_COMMISSION_COLOR,
    )
    artist = f"<@{commission.creator_id}>"
    if creator is not None:
        artist = f"{creator.mention} ({creator})"
        embed.set_thumbnail(url=creator.display_avatar.url)
    embed.add_field(name="Artist", value=artist, inline=True)
    embed.add_field(
        name="Commission Name", value=f"`{commission.channel_name}`", inline=True
    )
    embed.add_field(
        name="Created", value=relative_timestamp(commission.created_at), inline=True
    )
    reps = "\n".join(f"<@{rep}>" for rep in commission.reps) or "No reps yet"
    embed.add_field(name="Reps", value=reps[:1024], inline=False)
    if not commission.is_active:
        embed.add_field(name="Status", value="Closed", inline=False)
    embed.set_footer(text=f"{COMMISSION_FOOTER_PREFIX}{commission.id}")
    return embed


def commission_view(commission: Commission) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            label="Become a rep",
            style=discord.ButtonStyle.primary,
            custom_id=f"{REP_ADD_PREFIX}{commission.id}",
            disabled=not commission.is_active,
        )
    )
    view.add_item(
        discord.ui.Button(
            label="Stop being a rep",
            style=discord.ButtonStyle.secondary,
            custom_id=f"{REP_REMOVE_PREFIX}{commission.id}",
            disabled=not commission.is_active,
        )
    )
    return view


def closure_embed(commission: Commission, delay_seconds: int) -> discord.Embed:
    return discord.Embed(
        title="Commission closed",
        description=(
            f"This commission channel has been closed by <@{commission.creator_id}> "
            f"and will be deleted in {delay_seconds} seconds."
        ),
        color=discord.Color.dark_grey(),
    )


def stats_embed(
    vetting_counts: dict[str, int],
    commission_counts: dict[str, int],
    scheduled_deletions: int,
) -> discord.Embed:
    embed = discord.Embed(
        title="Bot Statistics",
        color=discord.Color.blurple(),
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(
        name="Vetting requests",
        value="\n".join(f"{status}: **{count}**" for status, count in vetting_counts.items()),
        inline=True,
    )
    embed.add_field(
        name="Commissions",
        value="\n".join(
            f"{status}: **{count}**" for status, count in commission_counts.items()
        ),
        inline=True,
    )
    embed.add_field(
        name="Scheduled channel deletions", value=str(scheduled_deletions), inline=False
    )
    return embed


def parse_custom_id(custom_id: str) -> tuple[str, str] | None:
    """Split a button id into ``(prefix, entity id)`` for the known prefixes."""
    # rep_remove_/rep_add_ before any shorter prefix that could shadow them
    for prefix in (REP_REMOVE_PREFIX, REP_ADD_PREFIX, APPROVE_PREFIX, DENY_PREFIX):
        if custom_id.startswith(prefix) and len(custom_id) > len(prefix):
            return prefix, custom_id[len(prefix) :]
    return None
