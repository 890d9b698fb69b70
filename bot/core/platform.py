"""Outbound side of the bot: the chat-platform client and the per-event responder.

Services only talk to the two protocols defined here. ``DiscordPlatform`` and
``DiscordResponder`` are the discord.py adapters wired in by ``TicketBot``;
tests substitute recording fakes.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

import discord

from core.components import ActionRow, Attachment, Form
from views.components import RoutedModal, build_view

if TYPE_CHECKING:
    from discord.ext import commands

LOGGER = logging.getLogger(__name__)

ROLE = "role"
MEMBER = "member"

OPENER_PERMISSIONS = ("view_channel", "send_messages", "attach_files", "read_message_history")
BOT_PERMISSIONS = ("view_channel", "send_messages", "manage_channels", "read_message_history")
STAFF_PERMISSIONS = ("view_channel", "send_messages", "attach_files", "read_message_history")


class ChannelNotFound(LookupError):
    pass


@dataclass(slots=True)
class PermissionGrant:
    principal_id: int
    kind: str = MEMBER
    allow: tuple[str, ...] = ()
    deny: tuple[str, ...] = ()

    def to_overwrite(self) -> discord.PermissionOverwrite:
        values = {name: True for name in self.allow}
        values.update({name: False for name in self.deny})
        return discord.PermissionOverwrite(**values)


@dataclass(slots=True)
class ChannelMessage:
    author_id: int
    author_tag: str
    content: str
    created_at: datetime
    attachments: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TextChannelInfo:
    id: int
    name: str


class PlatformClient(Protocol):
    @property
    def bot_user_id(self) -> int: ...

    async def send_message(
        self,
        channel_id: int,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        components: list[ActionRow] | None = None,
        files: list[Attachment] | None = None,
    ) -> int: ...

    async def create_channel(
        self, guild_id: int, name: str, parent_id: int | None, grants: list[PermissionGrant]
    ) -> int: ...

    async def delete_channel(self, channel_id: int, reason: str | None = None) -> None: ...

    async def set_permission(self, channel_id: int, grant: PermissionGrant) -> None: ...

    async def clear_permission(self, channel_id: int, principal_id: int) -> None: ...

    async def fetch_messages(self, channel_id: int, limit: int | None) -> list[ChannelMessage]: ...

    async def list_text_channels(self, guild_id: int) -> list[TextChannelInfo]: ...

    async def channel_exists(self, channel_id: int) -> bool: ...


class Responder(Protocol):
    @property
    def awaiting_reply(self) -> bool: ...

    def is_done(self) -> bool: ...

    async def reply(
        self,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        components: list[ActionRow] | None = None,
        ephemeral: bool = True,
    ) -> None: ...

    async def defer(self, ephemeral: bool = True) -> None: ...

    async def edit_reply(
        self,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        components: list[ActionRow] | None = None,
    ) -> None: ...

    async def update(
        self,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        components: list[ActionRow] | None = None,
    ) -> None: ...

    async def defer_update(self) -> None: ...

    async def present_form(self, form: Form) -> None: ...

    async def delete_source_message(self) -> None: ...


def _to_files(files: list[Attachment] | None) -> list[discord.File]:
    return [discord.File(io.BytesIO(item.content), filename=item.filename) for item in files or []]


def _release(view: discord.ui.View | None) -> None:
    if view is not None:
        view.stop()


class DiscordPlatform:
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @property
    def bot_user_id(self) -> int:
        assert self.bot.user is not None
        return self.bot.user.id

    async def _channel(self, channel_id: int) -> discord.abc.GuildChannel:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except (discord.NotFound, discord.Forbidden) as exc:
                raise ChannelNotFound(f"Channel {channel_id} is not reachable") from exc
        if not isinstance(channel, discord.abc.GuildChannel):
            raise ChannelNotFound(f"Channel {channel_id} is not a guild channel")
        return channel

    async def _text_channel(self, channel_id: int) -> discord.TextChannel:
        channel = await self._channel(channel_id)
        if not isinstance(channel, discord.TextChannel):
            raise ChannelNotFound(f"Channel {channel_id} is not a text channel")
        return channel

    async def _principal(
        self, guild: discord.Guild, principal_id: int, kind: str
    ) -> discord.Role | discord.Member | None:
        if kind == ROLE:
            return guild.get_role(principal_id)
        member = guild.get_member(principal_id)
        if member is None:
            try:
                member = await guild.fetch_member(principal_id)
            except discord.NotFound:
                return None
        return member

    async def send_message(
        self,
        channel_id: int,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        components: list[ActionRow] | None = None,
        files: list[Attachment] | None = None,
    ) -> int:
        channel = await self._text_channel(channel_id)
        view = build_view(components)
        kwargs: dict[str, object] = {"content": content, "embed": embed, "files": _to_files(files)}
        if view is not None:
            kwargs["view"] = view
        message = await channel.send(**kwargs)
        _release(view)
        return message.id

    async def create_channel(
        self, guild_id: int, name: str, parent_id: int | None, grants: list[PermissionGrant]
    ) -> int:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            raise ChannelNotFound(f"Guild {guild_id} is not available")

        overwrites: dict[discord.Role | discord.Member, discord.PermissionOverwrite] = {}
        for grant in grants:
            target = await self._principal(guild, grant.principal_id, grant.kind)
            if target is None:
                LOGGER.warning("Skipping overwrite for missing %s %s", grant.kind, grant.principal_id)
                continue
            overwrites[target] = grant.to_overwrite()

        parent = guild.get_channel(parent_id) if parent_id else None
        if parent is not None and not isinstance(parent, discord.CategoryChannel):
            parent = None

        channel = await guild.create_text_channel(name=name, category=parent, overwrites=overwrites)
        return channel.id

    async def delete_channel(self, channel_id: int, reason: str | None = None) -> None:
        channel = await self._channel(channel_id)
        await channel.delete(reason=reason)

    async def set_permission(self, channel_id: int, grant: PermissionGrant) -> None:
        channel = await self._channel(channel_id)
        target = await self._principal(channel.guild, grant.principal_id, grant.kind)
        if target is None:
            raise ChannelNotFound(f"{grant.kind} {grant.principal_id} not found in guild {channel.guild.id}")
        await channel.set_permissions(target, overwrite=grant.to_overwrite())

    async def clear_permission(self, channel_id: int, principal_id: int) -> None:
        channel = await self._channel(channel_id)
        target = channel.guild.get_role(principal_id) or await self._principal(channel.guild, principal_id, MEMBER)
        if target is None:
            return
        await channel.set_permissions(target, overwrite=None)

    async def fetch_messages(self, channel_id: int, limit: int | None) -> list[ChannelMessage]:
        channel = await self._text_channel(channel_id)
        newest_first = [message async for message in channel.history(limit=limit)]
        return [
            ChannelMessage(
                author_id=message.author.id,
                author_tag=str(message.author),
                content=message.content,
                created_at=message.created_at,
                attachments=[attachment.url for attachment in message.attachments],
            )
            for message in reversed(newest_first)
        ]

    async def list_text_channels(self, guild_id: int) -> list[TextChannelInfo]:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            return []
        return [TextChannelInfo(id=channel.id, name=channel.name) for channel in guild.text_channels]

    async def channel_exists(self, channel_id: int) -> bool:
        return self.bot.get_channel(channel_id) is not None


class DiscordResponder:
    def __init__(self, interaction: discord.Interaction) -> None:
        self.interaction = interaction
        self._awaiting_reply = False

    @property
    def awaiting_reply(self) -> bool:
        return self._awaiting_reply

    def is_done(self) -> bool:
        return self.interaction.response.is_done()

    async def reply(
        self,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        components: list[ActionRow] | None = None,
        ephemeral: bool = True,
    ) -> None:
        view = build_view(components)
        kwargs: dict[str, object] = {"content": content, "ephemeral": ephemeral}
        if embed is not None:
            kwargs["embed"] = embed
        if view is not None:
            kwargs["view"] = view
        await self.interaction.response.send_message(**kwargs)
        _release(view)

    async def defer(self, ephemeral: bool = True) -> None:
        await self.interaction.response.defer(ephemeral=ephemeral, thinking=True)
        self._awaiting_reply = True

    async def edit_reply(
        self,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        components: list[ActionRow] | None = None,
    ) -> None:
        view = build_view(components)
        await self.interaction.edit_original_response(content=content, embed=embed, view=view)
        _release(view)
        self._awaiting_reply = False

    async def update(
        self,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        components: list[ActionRow] | None = None,
    ) -> None:
        view = build_view(components)
        await self.interaction.response.edit_message(content=content, embed=embed, view=view)
        _release(view)

    async def defer_update(self) -> None:
        await self.interaction.response.defer()

    async def present_form(self, form: Form) -> None:
        modal = RoutedModal(form)
        await self.interaction.response.send_modal(modal)
        modal.stop()

    async def delete_source_message(self) -> None:
        if not self.interaction.response.is_done():
            await self.interaction.response.defer()
        await self.interaction.delete_original_response()
