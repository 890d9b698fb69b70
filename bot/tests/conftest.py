from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

from core.config import TicketConfig, TranscriptConfig
from database.base import Database
from database.migrations.runner import run_migrations
from database.repositories import BanRepository, CategoryRepository, GuildConfigRepository, TicketRepository
from fakes import FakePlatform, Services
from services.cache import MemoryCache
from services.category_registry import CategoryRegistry
from services.interaction_router import InteractionRouter
from services.setup_wizard import SetupWizard
from services.ticket_service import TicketService, TicketServiceDeps
from services.transcript_service import TranscriptService


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncIterator[Database]:
    database = Database(url=f"sqlite:///{tmp_path / 'tickets.db'}")
    await database.connect()
    await run_migrations(database)
    yield database
    await database.close()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def ticket_config() -> TicketConfig:
    return TicketConfig(close_delete_delay_seconds=0.01, creation_cooldown_seconds=0)


@pytest.fixture
def transcript_config(tmp_path: Path) -> TranscriptConfig:
    return TranscriptConfig(storage_directory=str(tmp_path / "transcripts"), public_url="https://tickets.example")


@pytest.fixture
def services(
    db: Database,
    platform: FakePlatform,
    ticket_config: TicketConfig,
    transcript_config: TranscriptConfig,
) -> Services:
    cache = MemoryCache()
    guild_configs = GuildConfigRepository(db, cache=cache)
    categories = CategoryRepository(db)
    tickets = TicketRepository(db)
    bans = BanRepository(db)
    registry = CategoryRegistry(categories, guild_configs)
    transcripts = TranscriptService(transcript_config, platform)
    ticket_service = TicketService(
        ticket_config,
        TicketServiceDeps(
            tickets=tickets,
            guild_configs=guild_configs,
            bans=bans,
            registry=registry,
            transcripts=transcripts,
            platform=platform,
            cache=cache,
        ),
    )
    wizard = SetupWizard(registry, platform)
    return Services(
        db=db,
        platform=platform,
        guild_configs=guild_configs,
        categories=categories,
        tickets=tickets,
        bans=bans,
        registry=registry,
        transcripts=transcripts,
        ticket_service=ticket_service,
        wizard=wizard,
        router=InteractionRouter(ticket_service, wizard),
    )
