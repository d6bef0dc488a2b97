"""Bot runtime that wires storage, services and the Discord client together."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from datetime import timedelta

import boto3
import discord
from discord import app_commands
from discord.ext import tasks

from bots.commands import BotContext, handle_component, register_commands
from bots.config import BotConfig, ConfigError
from bots.discord_platform import DiscordPlatform
from bots.logging_utils import configure_logging
from vetting_bot.commissions import CommissionService
from vetting_bot.errors import BotError, PersistenceFailure, UpstreamFailure
from vetting_bot.models import VettingStatus
from vetting_bot.repositories import (
    DEFAULT_VETTING_CLEANUP_STATUSES,
    CommissionRepository,
    VettingRepository,
)
from vetting_bot.scheduler import DeferredActions, MaintenanceJob
from vetting_bot.store import DynamoDBBackend
from vetting_bot.vetting import VettingService
from vetting_bot.veyra_api import VeyraClient

log = logging.getLogger("vetting-bot")


def build_repositories(
    config: BotConfig, dynamodb_resource=None
) -> tuple[VettingRepository, CommissionRepository]:
    if config.storage_backend == "dynamodb":
        resource = dynamodb_resource or boto3.resource(
            "dynamodb", region_name=config.aws_region
        )
        table = resource.Table(config.ddb_table_name)
        return (
            VettingRepository.from_backend(DynamoDBBackend(table, "vetting")),
            CommissionRepository.from_backend(DynamoDBBackend(table, "commission")),
        )
    return (
        VettingRepository.from_path(config.vettings_path),
        CommissionRepository.from_path(config.commissions_path),
    )


class BotRuntime:
    def __init__(
        self,
        config: BotConfig,
        *,
        dynamodb_resource=None,
        api: VeyraClient | None = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True

        self.config = config
        self.bot = discord.Client(intents=intents)
        self.tree = app_commands.CommandTree(self.bot)
        self.guild = discord.Object(id=config.guild_id)

        self.vettings, self.commissions = build_repositories(config, dynamodb_resource)
        self.api = api or VeyraClient(
            config.veyra_base_url, config.veyra_username, config.veyra_password
        )
        self.deferred = DeferredActions()
        self.platform = DiscordPlatform(self.bot, config)
        self.vetting_service = VettingService(
            self.vettings, self.platform, self.api, self.deferred
        )
        self.commission_service = CommissionService(
            self.commissions,
            self.platform,
            self.deferred,
            close_delete_delay=self.platform.close_delete_delay,
        )

        statuses = DEFAULT_VETTING_CLEANUP_STATUSES
        if config.cleanup_include_timeout:
            statuses = (*statuses, VettingStatus.TIMEOUT)
        self.maintenance = MaintenanceJob(
            self.vettings,
            self.commissions,
            self.deferred,
            vetting_service=self.vetting_service,
            vetting_retention=timedelta(days=config.vetting_retention_days),
            commission_retention=timedelta(days=config.commission_retention_days),
            vetting_cleanup_statuses=statuses,
            timeout_days=config.vetting_timeout_days or None,
        )

        self.ctx = BotContext(
            config=config,
            platform=self.platform,
            vettings=self.vettings,
            commissions=self.commissions,
            vetting_service=self.vetting_service,
            commission_service=self.commission_service,
            deferred=self.deferred,
            maintenance=self.maintenance,
        )
        register_commands(self.tree, self.ctx, guild=self.guild)

        self.cleanup_loop = tasks.loop(hours=config.cleanup_interval_hours)(
            self.scheduled_cleanup
        )
        self._started = False
        self._closing = False
        self._shutdown_task: asyncio.Task[None] | None = None

        self.bot.event(self.on_ready)
        self.bot.event(self.on_interaction)

    # ---------- lifecycle ----------
    async def on_ready(self) -> None:
        if self._started:
            log.info("Reconnected as %s", self.bot.user)
            return
        self._started = True

        await self.tree.sync(guild=self.guild)

        log.info("Signing in to the verification service...")
        try:
            await self.api.login()
        except UpstreamFailure as exc:
            # Requests re-authenticate on demand, so keep going.
            log.error("Verification service login failed: %s", exc)

        try:
            await self.maintenance.run_once()
        except BotError as exc:
            log.exception("Startup cleanup failed: %s", exc)

        if not self.cleanup_loop.is_running():
            self.cleanup_loop.start()
        log.info("Bot ready as %s (%s)", self.bot.user, getattr(self.bot.user, "id", None))

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        await handle_component(interaction, self.ctx)

    async def scheduled_cleanup(self) -> None:
        try:
            report = await self.maintenance.run_once()
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Scheduled cleanup failed: %s", exc)
            return
        if report.total_removed or report.expired_vettings:
            await self.platform.audit(
                "Scheduled cleanup",
                timed_out=len(report.expired_vettings),
                vetting_removed=len(report.removed_vettings),
                commissions_removed=len(report.removed_commissions),
            )

    async def shutdown(self) -> None:
        if self._closing:
            return
        self._closing = True
        try:
            pending = len(await self.vettings.list_pending())
            active = len(await self.commissions.list_active())
            log.info(
                "Shutting down with %d pending vetting request(s) and %d active commission(s)",
                pending,
                active,
            )
        except BotError as exc:
            log.warning("Could not summarize state on shutdown: %s", exc)

        cancelled = self.deferred.cancel_all()
        if cancelled:
            log.info("Cancelled %d scheduled channel deletion(s)", cancelled)
        if self.cleanup_loop.is_running():
            self.cleanup_loop.cancel()
        await self.api.close()
        await self.bot.close()

    def _request_shutdown(self) -> None:
        if self._shutdown_task is None:
            log.info("Received termination signal")
            self._shutdown_task = asyncio.get_running_loop().create_task(self.shutdown())

    async def run(self) -> None:
        # Unreadable storage is fatal before we ever connect.
        await self.vettings.init()
        await self.commissions.init()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, self._request_shutdown)

        try:
            async with self.bot:
                await self.bot.start(self.config.discord_token)
        finally:
            await self.shutdown()

    @classmethod
    def create(cls) -> BotRuntime:
        return cls(BotConfig.load())


async def main() -> int:
    try:
        config = BotConfig.load()
    except ConfigError as exc:
        configure_logging()
        log.error("Configuration error: %s", exc)
        return 1

    configure_logging(config.log_level)
    runtime = BotRuntime(config)
    try:
        await runtime.run()
    except PersistenceFailure as exc:
        log.error("Could not load stored data: %s", exc)
        return 1
    return 0


def run_cli() -> None:
    sys.exit(asyncio.run(main()))


__all__ = ["BotRuntime", "build_repositories", "main", "run_cli"]
