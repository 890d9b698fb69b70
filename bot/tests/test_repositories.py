from __future__ import annotations

import pytest

from database.base import Database, _affected_rows, _qmark_to_dollar, parse_database_dsn
from database.models import CategoryQuestion, TicketRecord
from database.repositories import CategoryRepository, GuildConfigRepository, TicketRepository
from services.cache import MemoryCache
from utils.constants import LIVE_STATUSES, STATUS_CLOSED, STATUS_OPEN


def _ticket(ticket_id: str = "t1", channel_id: int = 500, opener_id: int = 42) -> TicketRecord:
    return TicketRecord(id=ticket_id, guild_id=1, channel_id=channel_id, opener_id=opener_id, opener_tag="alice#0001")


def test_dsn_and_placeholder_helpers() -> None:
    assert parse_database_dsn("sqlite:///data/x.db").driver == "sqlite"
    assert parse_database_dsn("postgresql://u@h/db").driver == "postgresql"
    with pytest.raises(ValueError):
        parse_database_dsn("mysql://nope")
    assert _qmark_to_dollar("a = ? AND b = ?") == "a = $1 AND b = $2"
    assert _affected_rows("UPDATE 1") == 1
    assert _affected_rows("INSERT 0 3") == 3
    assert _affected_rows("") == 0


@pytest.mark.asyncio
async def test_claim_is_conditional(db: Database) -> None:
    tickets = TicketRepository(db)
    await tickets.create(_ticket())

    assert await tickets.conditional_set_claimant("t1", 7) is True
    assert await tickets.conditional_set_claimant("t1", 8) is False
    assert (await tickets.get_by_id("t1")).claimed_by_id == 7


@pytest.mark.asyncio
async def test_close_is_conditional(db: Database) -> None:
    tickets = TicketRepository(db)
    await tickets.create(_ticket())

    first = await tickets.conditional_update_status("t1", LIVE_STATUSES, STATUS_CLOSED, {"closed_by_id": 7})
    second = await tickets.conditional_update_status("t1", LIVE_STATUSES, STATUS_CLOSED, {"closed_by_id": 8})

    assert (first, second) == (True, False)
    stored = await tickets.get_by_id("t1")
    assert stored.status == STATUS_CLOSED
    assert stored.closed_by_id == 7
    assert await tickets.conditional_set_claimant("t1", 9) is False
    assert await tickets.mark_close_requested("t1", 42) is False


@pytest.mark.asyncio
async def test_close_request_marker(db: Database) -> None:
    tickets = TicketRepository(db)
    await tickets.create(_ticket())

    assert await tickets.mark_close_requested("t1", 42) is True
    assert await tickets.mark_close_requested("t1", 43) is False
    assert (await tickets.get_by_id("t1")).close_pending is True

    assert await tickets.clear_close_requested("t1") is True
    stored = await tickets.get_by_id("t1")
    assert stored.close_pending is False
    assert stored.status == STATUS_OPEN


@pytest.mark.asyncio
async def test_open_counts_and_listing(db: Database) -> None:
    tickets = TicketRepository(db)
    await tickets.create(_ticket("a", 501))
    await tickets.create(_ticket("b", 502))
    await tickets.create(_ticket("c", 503, opener_id=43))
    await tickets.conditional_update_status("b", LIVE_STATUSES, STATUS_CLOSED)

    assert await tickets.count_open_by_user(1, 42) == 1
    assert [ticket.id for ticket in await tickets.list_open(1)] == ["a", "c"]
    assert await tickets.get_by_channel(999) is None


@pytest.mark.asyncio
async def test_guild_config_upsert_invalidates_cache(db: Database) -> None:
    configs = GuildConfigRepository(db, cache=MemoryCache())
    await configs.ensure(1)
    assert (await configs.get(1)).support_role_id is None

    updated = await configs.upsert(1, support_role_id=555, auto_close_hours=12)

    assert updated.support_role_id == 555
    assert (await configs.get(1)).support_role_id == 555
    assert [config.guild_id for config in await configs.list_with_auto_close()] == [1]
    with pytest.raises(ValueError):
        await configs.upsert(1, prefix="!")


@pytest.mark.asyncio
async def test_categories_keep_creation_order_and_questions(db: Database) -> None:
    configs = GuildConfigRepository(db)
    categories = CategoryRepository(db)
    await configs.ensure(1)

    first = await categories.create(1, "Support", "🛠", [CategoryQuestion("What broke?", style="long")])
    second = await categories.create(1, "Billing", "💳")

    listed = await categories.list_by_config(1)
    assert [category.id for category in listed] == [first.id, second.id]
    assert listed[0].questions[0].label == "What broke?"
    assert listed[0].questions[0].style == "long"
    assert listed[1].questions == []
    assert await categories.list_by_config(2) == []
