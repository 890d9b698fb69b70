"""Recording test doubles for the platform client and the interaction responder."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from core.components import ActionRow, Attachment, Button, Form
from core.events import Actor
from core.platform import ChannelMessage, PermissionGrant, TextChannelInfo
from database.base import Database
from database.repositories import BanRepository, CategoryRepository, GuildConfigRepository, TicketRepository
from services.category_registry import CategoryRegistry
from services.interaction_router import InteractionRouter
from services.setup_wizard import SetupWizard
from services.ticket_service import TicketService
from services.transcript_service import TranscriptService

GUILD_ID = 1000
BOT_USER_ID = 999
SUPPORT_ROLE_ID = 555
LOG_CHANNEL_ID = 777


def button_count(rows: list[ActionRow]) -> int:
    return sum(1 for row in rows for item in row.items if isinstance(item, Button))


@dataclass
class SentMessage:
    channel_id: int
    content: str | None
    embed: Any
    components: list[ActionRow] | None
    files: list[Attachment] | None


@dataclass
class CreatedChannel:
    id: int
    guild_id: int
    name: str
    parent_id: int | None
    grants: list[PermissionGrant]


class FakePlatform:
    """Records every outbound call instead of talking to Discord."""

    def __init__(self) -> None:
        self.sent: list[SentMessage] = []
        self.created: list[CreatedChannel] = []
        self.deleted: list[int] = []
        self.permissions: dict[int, dict[int, PermissionGrant]] = {}
        self.history: dict[int, list[ChannelMessage]] = {}
        self.text_channels: list[TextChannelInfo] = []
        self.existing: set[int] = set()
        self.fail_create = False
        self.fail_history = False
        self.fail_send_to: set[int] = set()
        self._next_id = 50_000

    @property
    def bot_user_id(self) -> int:
        return BOT_USER_ID

    async def send_message(
        self,
        channel_id: int,
        content: str | None = None,
        *,
        embed: Any = None,
        components: list[ActionRow] | None = None,
        files: list[Attachment] | None = None,
    ) -> int:
        if channel_id in self.fail_send_to:
            raise RuntimeError(f"send to {channel_id} failed")
        self.sent.append(SentMessage(channel_id, content, embed, components, files))
        self._next_id += 1
        return self._next_id

    async def create_channel(
        self, guild_id: int, name: str, parent_id: int | None, grants: list[PermissionGrant]
    ) -> int:
        if self.fail_create:
            raise RuntimeError("missing permissions")
        self._next_id += 1
        channel = CreatedChannel(self._next_id, guild_id, name, parent_id, list(grants))
        self.created.append(channel)
        self.existing.add(channel.id)
        self.permissions[channel.id] = {grant.principal_id: grant for grant in grants}
        return channel.id

    async def delete_channel(self, channel_id: int, reason: str | None = None) -> None:
        self.deleted.append(channel_id)
        self.existing.discard(channel_id)

    async def set_permission(self, channel_id: int, grant: PermissionGrant) -> None:
        self.permissions.setdefault(channel_id, {})[grant.principal_id] = grant

    async def clear_permission(self, channel_id: int, principal_id: int) -> None:
        self.permissions.get(channel_id, {}).pop(principal_id, None)

    async def fetch_messages(self, channel_id: int, limit: int | None) -> list[ChannelMessage]:
        if self.fail_history:
            raise RuntimeError("history unavailable")
        messages = self.history.get(channel_id, [])
        return list(messages if limit is None else messages[-limit:])

    async def list_text_channels(self, guild_id: int) -> list[TextChannelInfo]:
        return list(self.text_channels)

    async def channel_exists(self, channel_id: int) -> bool:
        return channel_id in self.existing

    def messages_to(self, channel_id: int) -> list[SentMessage]:
        return [message for message in self.sent if message.channel_id == channel_id]


@dataclass
class Reply:
    content: str | None
    embed: Any = None
    components: list[ActionRow] | None = None
    ephemeral: bool = True


@dataclass
class FakeResponder:
    """Mimics the one-initial-response rule of an interaction."""

    fail_reply: bool = False
    replies: list[Reply] = field(default_factory=list)
    edits: list[Reply] = field(default_factory=list)
    updates: list[Reply] = field(default_factory=list)
    forms: list[Form] = field(default_factory=list)
    defers: list[bool] = field(default_factory=list)
    update_deferred: bool = False
    source_deleted: bool = False
    _done: bool = False
    _awaiting: bool = False

    @property
    def awaiting_reply(self) -> bool:
        return self._awaiting

    def is_done(self) -> bool:
        return self._done

    def _respond(self) -> None:
        if self._done:
            raise RuntimeError("interaction already acknowledged")
        self._done = True

    async def reply(
        self,
        content: str | None = None,
        *,
        embed: Any = None,
        components: list[ActionRow] | None = None,
        ephemeral: bool = True,
    ) -> None:
        if self.fail_reply:
            raise RuntimeError("reply failed")
        self._respond()
        self.replies.append(Reply(content, embed, components, ephemeral))

    async def defer(self, ephemeral: bool = True) -> None:
        self._respond()
        self._awaiting = True
        self.defers.append(ephemeral)

    async def edit_reply(
        self,
        content: str | None = None,
        *,
        embed: Any = None,
        components: list[ActionRow] | None = None,
    ) -> None:
        self.edits.append(Reply(content, embed, components))
        self._awaiting = False

    async def update(
        self,
        content: str | None = None,
        *,
        embed: Any = None,
        components: list[ActionRow] | None = None,
    ) -> None:
        self._respond()
        self.updates.append(Reply(content, embed, components))

    async def defer_update(self) -> None:
        self._respond()
        self.update_deferred = True

    async def present_form(self, form: Form) -> None:
        self._respond()
        self.forms.append(form)

    async def delete_source_message(self) -> None:
        if not self._done:
            self._done = True
        self.source_deleted = True


def make_actor(
    user_id: int, name: str = "member", *, roles: tuple[int, ...] = (), is_admin: bool = False
) -> Actor:
    return Actor(id=user_id, name=name, tag=f"{name}#0001", role_ids=frozenset(roles), is_admin=is_admin)


@dataclass
class Services:
    db: Database
    platform: FakePlatform
    guild_configs: GuildConfigRepository
    categories: CategoryRepository
    tickets: TicketRepository
    bans: BanRepository
    registry: CategoryRegistry
    transcripts: TranscriptService
    ticket_service: TicketService
    wizard: SetupWizard
    router: InteractionRouter


