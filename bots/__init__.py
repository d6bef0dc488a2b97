"""Discord runtime for the vetting bot.

The workflow itself lives in :mod:`vetting_bot`; this package adapts it to
discord.py (commands, embeds, channel management) and runs it.
"""

__all__ = ["commands", "config", "discord_platform", "embeds", "runtime"]
