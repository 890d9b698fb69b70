from __future__ import annotations

from dataclasses import dataclass, field

from utils.constants import STATUS_CLOSED, STATUS_OPEN, STATUS_REQUEST_CLOSE


@dataclass(slots=True)
class CategoryQuestion:
    label: str
    style: str = "short"
    placeholder: str | None = None
    required: bool = True
    min_length: int | None = None
    max_length: int | None = None


@dataclass(slots=True)
class TicketCategory:
    id: str
    config_id: int
    name: str
    emoji: str | None = None
    questions: list[CategoryQuestion] = field(default_factory=list)
    parent_channel_id: int | None = None
    created_at: str | None = None


@dataclass(slots=True)
class GuildConfig:
    guild_id: int
    ticket_parent_id: int | None = None
    support_role_id: int | None = None
    transcript_channel_id: int | None = None
    welcome_message: str | None = None
    max_tickets_per_user: int | None = None
    auto_close_hours: int | None = None


@dataclass(slots=True)
class TicketRecord:
    id: str
    guild_id: int
    channel_id: int
    opener_id: int
    opener_tag: str = ""
    status: str = STATUS_OPEN
    claimed_by_id: int | None = None
    close_requested_by_id: int | None = None
    category_id: str | None = None
    category_label: str = "ticket"
    description: str = ""
    transcript: str | None = None
    closed_by_id: int | None = None
    closed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.status == STATUS_CLOSED

    @property
    def close_pending(self) -> bool:
        return self.status == STATUS_REQUEST_CLOSE or self.close_requested_by_id is not None


@dataclass(slots=True)
class BanRecord:
    user_id: int
    username: str
    is_banned: bool
    ban_reason: str | None = None
    banned_by_id: int | None = None
    updated_at: str | None = None
