from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from database.base import Database
from database.models import BanRecord, CategoryQuestion, GuildConfig, TicketCategory, TicketRecord
from services.cache import CacheBackend
from utils.constants import LIVE_STATUSES, STATUS_CLOSED, STATUS_OPEN

LOGGER = logging.getLogger(__name__)


def _json_load(value: str | None, default: Any) -> Any:
    if value is None:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


def _json_dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, separators=(",", ":"))


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _optional_int(value: Any) -> int | None:
    return int(value) if value is not None else None


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class GuildConfigRepository:
    """Per-guild settings, read through the cache and invalidated on every write."""

    _FIELDS = (
        "ticket_parent_id",
        "support_role_id",
        "transcript_channel_id",
        "welcome_message",
        "max_tickets_per_user",
        "auto_close_hours",
    )

    def __init__(self, db: Database, cache: CacheBackend | None = None, cache_ttl: int = 120) -> None:
        self.db = db
        self.cache = cache
        self.cache_ttl = cache_ttl

    @staticmethod
    def _cache_key(guild_id: int) -> str:
        return f"guild_config:{guild_id}"

    async def _invalidate(self, guild_id: int) -> None:
        if self.cache is not None:
            await self.cache.delete(self._cache_key(guild_id))

    async def get(self, guild_id: int) -> GuildConfig | None:
        if self.cache is not None:
            cached = await self.cache.get(self._cache_key(guild_id))
            if cached:
                return GuildConfig(**json.loads(cached))

        row = await self.db.fetchone("SELECT * FROM guild_configs WHERE guild_id = ?;", [guild_id])
        if not row:
            return None
        config = self._row_to_config(row)
        if self.cache is not None:
            await self.cache.set(self._cache_key(guild_id), _json_dump(asdict(config)), ttl=self.cache_ttl)
        return config

    async def ensure(self, guild_id: int) -> GuildConfig:
        now = _now_iso()
        await self.db.execute(
            """
            INSERT INTO guild_configs(guild_id, created_at, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(guild_id) DO NOTHING;
            """,
            [guild_id, now, now],
        )
        config = await self.get(guild_id)
        assert config is not None
        return config

    async def upsert(self, guild_id: int, **changes: Any) -> GuildConfig:
        unknown = set(changes) - set(self._FIELDS)
        if unknown:
            raise ValueError(f"Unknown guild config fields: {sorted(unknown)}")
        await self.ensure(guild_id)
        if changes:
            assignments = ", ".join(f"{name} = ?" for name in changes)
            await self.db.execute(
                f"UPDATE guild_configs SET {assignments}, updated_at = ? WHERE guild_id = ?;",
                [*changes.values(), _now_iso(), guild_id],
            )
        await self._invalidate(guild_id)
        config = await self.get(guild_id)
        assert config is not None
        return config

    async def list_with_auto_close(self) -> list[GuildConfig]:
        rows = await self.db.fetchall(
            "SELECT * FROM guild_configs WHERE auto_close_hours IS NOT NULL AND auto_close_hours > 0;"
        )
        return [self._row_to_config(row) for row in rows]

    def _row_to_config(self, row: dict[str, Any]) -> GuildConfig:
        return GuildConfig(
            guild_id=int(row["guild_id"]),
            ticket_parent_id=_optional_int(row["ticket_parent_id"]),
            support_role_id=_optional_int(row["support_role_id"]),
            transcript_channel_id=_optional_int(row["transcript_channel_id"]),
            welcome_message=row["welcome_message"],
            max_tickets_per_user=_optional_int(row["max_tickets_per_user"]),
            auto_close_hours=_optional_int(row["auto_close_hours"]),
        )


class CategoryRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def create(
        self,
        config_id: int,
        name: str,
        emoji: str | None,
        questions: list[CategoryQuestion] | None = None,
        parent_channel_id: int | None = None,
    ) -> TicketCategory:
        category = TicketCategory(
            id=str(uuid4()),
            config_id=config_id,
            name=name,
            emoji=emoji,
            questions=list(questions or []),
            parent_channel_id=parent_channel_id,
            created_at=_now_iso(),
        )
        await self.db.execute(
            """
            INSERT INTO ticket_categories (
                id, config_id, name, emoji, questions_json, parent_channel_id, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            [
                category.id,
                category.config_id,
                category.name,
                category.emoji,
                _json_dump([asdict(question) for question in category.questions]),
                category.parent_channel_id,
                category.created_at,
            ],
        )
        return category

    async def get(self, category_id: str) -> TicketCategory | None:
        row = await self.db.fetchone("SELECT * FROM ticket_categories WHERE id = ?;", [category_id])
        if not row:
            return None
        return self._row_to_category(row)

    async def list_by_config(self, config_id: int) -> list[TicketCategory]:
        rows = await self.db.fetchall(
            """
            SELECT * FROM ticket_categories
            WHERE config_id = ?
            ORDER BY created_at ASC, id ASC;
            """,
            [config_id],
        )
        return [self._row_to_category(row) for row in rows]

    def _row_to_category(self, row: dict[str, Any]) -> TicketCategory:
        questions: list[CategoryQuestion] = []
        for raw in _json_load(row["questions_json"], []):
            if not isinstance(raw, dict) or not raw.get("label"):
                LOGGER.warning("Skipping malformed question on category %s: %r", row["id"], raw)
                continue
            questions.append(
                CategoryQuestion(
                    label=str(raw["label"]),
                    style=str(raw.get("style") or "short"),
                    placeholder=raw.get("placeholder"),
                    required=bool(raw.get("required", True)),
                    min_length=_optional_int(raw.get("min_length")),
                    max_length=_optional_int(raw.get("max_length")),
                )
            )
        return TicketCategory(
            id=row["id"],
            config_id=int(row["config_id"]),
            name=row["name"],
            emoji=row["emoji"],
            questions=questions,
            parent_channel_id=_optional_int(row["parent_channel_id"]),
            created_at=row["created_at"],
        )


class TicketRepository:
    """Ticket rows. Status, claim and close-request changes are conditional updates.

    Each ``conditional_*`` / ``mark_*`` method returns ``True`` only when its
    guard held at write time, which is what makes concurrent claims and
    closes resolve to exactly one winner.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def create(self, ticket: TicketRecord) -> TicketRecord:
        now = _now_iso()
        ticket.created_at = ticket.created_at or now
        ticket.updated_at = now
        await self.db.execute(
            """
            INSERT INTO tickets (
                id, channel_id, guild_id, opener_id, opener_tag, status, claimed_by_id,
                close_requested_by_id, category_id, category_label, description, transcript,
                closed_by_id, closed_at, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            [
                ticket.id,
                ticket.channel_id,
                ticket.guild_id,
                ticket.opener_id,
                ticket.opener_tag,
                ticket.status,
                ticket.claimed_by_id,
                ticket.close_requested_by_id,
                ticket.category_id,
                ticket.category_label,
                ticket.description,
                ticket.transcript,
                ticket.closed_by_id,
                ticket.closed_at,
                ticket.created_at,
                ticket.updated_at,
            ],
        )
        return ticket

    async def get_by_channel(self, channel_id: int) -> TicketRecord | None:
        row = await self.db.fetchone("SELECT * FROM tickets WHERE channel_id = ?;", [channel_id])
        return self._row_to_ticket(row) if row else None

    async def get_by_id(self, ticket_id: str) -> TicketRecord | None:
        row = await self.db.fetchone("SELECT * FROM tickets WHERE id = ?;", [ticket_id])
        return self._row_to_ticket(row) if row else None

    async def conditional_update_status(
        self,
        ticket_id: str,
        from_statuses: tuple[str, ...],
        to_status: str,
        fields: dict[str, Any] | None = None,
    ) -> bool:
        fields = dict(fields or {})
        assignments = ["status = ?", *(f"{name} = ?" for name in fields), "updated_at = ?"]
        affected = await self.db.execute(
            f"""
            UPDATE tickets
            SET {", ".join(assignments)}
            WHERE id = ? AND status IN ({_placeholders(len(from_statuses))});
            """,
            [to_status, *fields.values(), _now_iso(), ticket_id, *from_statuses],
        )
        return affected == 1

    async def conditional_set_claimant(self, ticket_id: str, staff_id: int) -> bool:
        affected = await self.db.execute(
            """
            UPDATE tickets
            SET claimed_by_id = ?, updated_at = ?
            WHERE id = ? AND claimed_by_id IS NULL AND status <> ?;
            """,
            [staff_id, _now_iso(), ticket_id, STATUS_CLOSED],
        )
        return affected == 1

    async def mark_close_requested(self, ticket_id: str, requester_id: int) -> bool:
        affected = await self.db.execute(
            """
            UPDATE tickets
            SET close_requested_by_id = ?, updated_at = ?
            WHERE id = ? AND close_requested_by_id IS NULL AND status = ?;
            """,
            [requester_id, _now_iso(), ticket_id, STATUS_OPEN],
        )
        return affected == 1

    async def clear_close_requested(self, ticket_id: str) -> bool:
        affected = await self.db.execute(
            """
            UPDATE tickets
            SET close_requested_by_id = NULL, updated_at = ?
            WHERE id = ? AND status <> ?;
            """,
            [_now_iso(), ticket_id, STATUS_CLOSED],
        )
        return affected == 1

    async def count_open_by_user(self, guild_id: int, opener_id: int) -> int:
        row = await self.db.fetchone(
            f"""
            SELECT COUNT(*) AS total FROM tickets
            WHERE guild_id = ? AND opener_id = ? AND status IN ({_placeholders(len(LIVE_STATUSES))});
            """,
            [guild_id, opener_id, *LIVE_STATUSES],
        )
        return int(row["total"]) if row else 0

    async def list_open(self, guild_id: int, limit: int = 500) -> list[TicketRecord]:
        rows = await self.db.fetchall(
            f"""
            SELECT * FROM tickets
            WHERE guild_id = ? AND status IN ({_placeholders(len(LIVE_STATUSES))})
            ORDER BY created_at ASC
            LIMIT ?;
            """,
            [guild_id, *LIVE_STATUSES, limit],
        )
        return [self._row_to_ticket(row) for row in rows]

    def _row_to_ticket(self, row: dict[str, Any]) -> TicketRecord:
        return TicketRecord(
            id=row["id"],
            guild_id=int(row["guild_id"]),
            channel_id=int(row["channel_id"]),
            opener_id=int(row["opener_id"]),
            opener_tag=row["opener_tag"] or "",
            status=row["status"],
            claimed_by_id=_optional_int(row["claimed_by_id"]),
            close_requested_by_id=_optional_int(row["close_requested_by_id"]),
            category_id=row["category_id"],
            category_label=row["category_label"],
            description=row["description"] or "",
            transcript=row["transcript"],
            closed_by_id=_optional_int(row["closed_by_id"]),
            closed_at=row["closed_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class BanRepository:
    """Global ticket-creation bans keyed by user id."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def get(self, user_id: int) -> BanRecord | None:
        row = await self.db.fetchone("SELECT * FROM banned_users WHERE user_id = ?;", [user_id])
        if not row:
            return None
        return BanRecord(
            user_id=int(row["user_id"]),
            username=row["username"],
            is_banned=bool(row["is_banned"]),
            ban_reason=row["ban_reason"],
            banned_by_id=_optional_int(row["banned_by_id"]),
            updated_at=row["updated_at"],
        )

    async def upsert(
        self,
        user_id: int,
        username: str,
        is_banned: bool,
        reason: str | None = None,
        banned_by_id: int | None = None,
    ) -> BanRecord:
        now = _now_iso()
        await self.db.execute(
            """
            INSERT INTO banned_users(user_id, username, is_banned, ban_reason, banned_by_id, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                username = excluded.username,
                is_banned = excluded.is_banned,
                ban_reason = excluded.ban_reason,
                banned_by_id = excluded.banned_by_id,
                updated_at = excluded.updated_at;
            """,
            [user_id, username, is_banned, reason, banned_by_id, now],
        )
        return BanRecord(
            user_id=user_id,
            username=username,
            is_banned=is_banned,
            ban_reason=reason,
            banned_by_id=banned_by_id,
            updated_at=now,
        )
