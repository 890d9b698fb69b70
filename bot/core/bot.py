from __future__ import annotations

import logging

import discord
from discord.ext import commands

from core.config import AppConfig
from core.errors import handle_app_command_error
from core.extensions import load_extensions
from core.platform import DiscordPlatform
from database.base import Database
from database.migrations.runner import run_migrations
from database.repositories import BanRepository, CategoryRepository, GuildConfigRepository, TicketRepository
from services.cache import CacheBackend, build_cache
from services.category_registry import CategoryRegistry
from services.interaction_router import InteractionRouter
from services.setup_wizard import SetupWizard
from services.ticket_service import TicketService, TicketServiceDeps
from services.transcript_service import TranscriptService

LOGGER = logging.getLogger(__name__)

ACTIVITY_TYPES = {
    "playing": discord.ActivityType.playing,
    "listening": discord.ActivityType.listening,
    "watching": discord.ActivityType.watching,
    "competing": discord.ActivityType.competing,
}


def _intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.members = True
    # Transcripts need message bodies.
    intents.message_content = True
    return intents


class TicketBot(commands.Bot):
    """Owns the database, cache and service graph; cogs only forward interactions."""

    def __init__(self, config: AppConfig) -> None:
        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=_intents(),
            application_id=config.discord.application_id,
            allowed_mentions=discord.AllowedMentions(everyone=False, roles=True, users=True, replied_user=False),
            help_command=None,
        )
        self.config = config
        self.database = Database(
            url=config.database.url,
            timeout_seconds=config.database.timeout_seconds,
            pool_min_size=config.database.pool_min_size,
            pool_max_size=config.database.pool_max_size,
        )
        self.cache: CacheBackend | None = None
        self.platform = DiscordPlatform(self)

        # Filled in by setup_hook once the database is reachable.
        self.guild_config_repo: GuildConfigRepository
        self.category_repo: CategoryRepository
        self.ticket_repo: TicketRepository
        self.ban_repo: BanRepository
        self.category_registry: CategoryRegistry
        self.transcript_service: TranscriptService
        self.ticket_service: TicketService
        self.setup_wizard: SetupWizard
        self.router: InteractionRouter

    def _wire_services(self, cache: CacheBackend) -> None:
        self.guild_config_repo = GuildConfigRepository(
            self.database, cache=cache, cache_ttl=self.config.redis.default_ttl
        )
        self.category_repo = CategoryRepository(self.database)
        self.ticket_repo = TicketRepository(self.database)
        self.ban_repo = BanRepository(self.database)

        self.category_registry = CategoryRegistry(self.category_repo, self.guild_config_repo)
        self.transcript_service = TranscriptService(self.config.transcripts, self.platform)
        self.ticket_service = TicketService(
            self.config.tickets,
            TicketServiceDeps(
                tickets=self.ticket_repo,
                guild_configs=self.guild_config_repo,
                bans=self.ban_repo,
                registry=self.category_registry,
                transcripts=self.transcript_service,
                platform=self.platform,
                cache=cache,
            ),
        )
        self.setup_wizard = SetupWizard(self.category_registry, self.platform)
        self.router = InteractionRouter(self.ticket_service, self.setup_wizard)

    async def setup_hook(self) -> None:
        await self.database.connect()
        applied = await run_migrations(self.database)
        if applied:
            LOGGER.info("Applied migrations: %s", ", ".join(applied))
        self.cache = await build_cache(self.config.redis)
        self._wire_services(self.cache)

        loaded = await load_extensions(self, self.config.enabled_extensions)
        LOGGER.info("Loaded %d extension(s)", len(loaded))

        self.tree.on_error = handle_app_command_error  # type: ignore[assignment]
        if self.config.discord.sync_commands_on_start:
            synced = await self.tree.sync()
            LOGGER.info("Synced %d application command(s)", len(synced))

    async def on_ready(self) -> None:
        LOGGER.info("Logged in as %s (%s)", self.user, self.user.id if self.user else "n/a")
        activity = discord.Activity(
            type=ACTIVITY_TYPES.get(self.config.discord.activity_type.lower(), discord.ActivityType.watching),
            name=self.config.discord.status_text,
        )
        await self.change_presence(status=discord.Status.online, activity=activity)

    async def close(self) -> None:
        await super().close()
        await self.database.close()
        if self.cache is not None:
            await self.cache.close()
