from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import uuid4

import discord

from core.components import ActionRow, Attachment, Button
from core.config import TicketConfig
from core.errors import (
    AlreadyClaimedError,
    AlreadyClosedError,
    AlreadyPendingError,
    BannedUserError,
    ChannelCreateError,
    PermissionDeniedError,
    TicketLimitReachedError,
    TranscriptError,
    UnknownTicketChannelError,
    ValidationError,
)
from core.events import Actor
from core.platform import (
    BOT_PERMISSIONS,
    MEMBER,
    OPENER_PERMISSIONS,
    ROLE,
    STAFF_PERMISSIONS,
    PermissionGrant,
    PlatformClient,
    Responder,
)
from database.models import GuildConfig, TicketRecord
from database.repositories import BanRepository, GuildConfigRepository, TicketRepository
from services.cache import CacheBackend
from services.category_registry import CategoryRegistry
from services.transcript_service import Transcript, TranscriptService
from utils.constants import (
    DEFAULT_CATEGORY_LABEL,
    ID_CANCEL_CLOSE,
    ID_CLAIM_TICKET,
    ID_CLOSE_TICKET,
    ID_CONFIRM_CLOSE,
    ID_OPEN_TICKET,
    ID_TICKET_MODAL,
    LIVE_STATUSES,
    PREFIX_TICKET_MODAL,
    STATUS_CLOSED,
)
from utils.embeds import close_summary_embed, make_embed, panel_embed, ticket_intro_embed
from utils.rate_limit import DistributedRateLimiter
from utils.time import from_iso, to_iso, utc_now

LOGGER = logging.getLogger(__name__)

CLOSE_PROMPT = "❓ Are you sure you want to close this ticket?"
NOT_OPEN_TICKET = "❌ This is not an open ticket channel."


@dataclass(slots=True)
class TicketServiceDeps:
    tickets: TicketRepository
    guild_configs: GuildConfigRepository
    bans: BanRepository
    registry: CategoryRegistry
    transcripts: TranscriptService
    platform: PlatformClient
    cache: CacheBackend


def ticket_controls() -> list[ActionRow]:
    return [
        ActionRow(
            items=[
                Button(custom_id=ID_CLOSE_TICKET, label="Close", style="danger", emoji="🔒"),
                Button(custom_id=ID_CLAIM_TICKET, label="Claim", style="secondary", emoji="🙋‍♂️"),
            ]
        )
    ]


def close_confirmation() -> list[ActionRow]:
    return [
        ActionRow(
            items=[
                Button(custom_id=ID_CONFIRM_CLOSE, label="Yes, Close", style="danger"),
                Button(custom_id=ID_CANCEL_CLOSE, label="Cancel", style="secondary"),
            ]
        )
    ]


class TicketService:
    """Ticket lifecycle: OPEN -> (close requested) -> CLOSED.

    Claim and close are conditional writes in ``TicketRepository``; this class
    decides who may trigger them and performs the platform side effects that
    follow a successful write.
    """

    def __init__(self, config: TicketConfig, deps: TicketServiceDeps) -> None:
        self.config = config
        self.deps = deps
        self.rate_limiter = DistributedRateLimiter(deps.cache)
        self.pending_deletions: set[asyncio.Task[None]] = set()

    @staticmethod
    def sanitize_channel_fragment(name: str) -> str:
        return re.sub(r"[^a-zA-Z0-9]", "", name)

    def build_channel_name(self, category_label: str, opener_name: str) -> str:
        name = f"{category_label}-{self.sanitize_channel_fragment(opener_name)}"
        return name[: self.config.channel_name_max_length]

    @staticmethod
    def is_staff(actor: Actor, guild_config: GuildConfig | None) -> bool:
        if actor.is_admin:
            return True
        return guild_config is not None and actor.has_role(guild_config.support_role_id)

    async def require_ticket(self, channel_id: int) -> TicketRecord:
        ticket = await self.deps.tickets.get_by_channel(channel_id)
        if ticket is None:
            raise UnknownTicketChannelError()
        return ticket

    def _max_tickets(self, guild_config: GuildConfig | None) -> int:
        if guild_config is not None and guild_config.max_tickets_per_user is not None:
            return guild_config.max_tickets_per_user
        return self.config.default_max_tickets_per_user

    async def present_ticket_form(self, category_id: str | None, responder: Responder) -> None:
        category = await self.deps.registry.get_category(category_id)
        if category_id and category is None:
            LOGGER.info("Category %s no longer exists; presenting the default form", category_id)
        form_id = f"{PREFIX_TICKET_MODAL}{category_id}" if category_id else ID_TICKET_MODAL
        await responder.present_form(self.deps.registry.build_form(category, form_id=form_id))

    async def create(
        self,
        guild_id: int,
        opener: Actor,
        category_id: str | None,
        fields: list[tuple[str, str]],
        responder: Responder,
    ) -> TicketRecord:
        ban = await self.deps.bans.get(opener.id)
        if ban is not None and ban.is_banned:
            raise BannedUserError(
                user_message=f"❌ You are banned from creating tickets.\nReason: {ban.ban_reason or 'No reason'}"
            )

        await responder.defer(ephemeral=True)
        guild_config = await self.deps.guild_configs.get(guild_id)

        limit = self._max_tickets(guild_config)
        if limit > 0 and await self.deps.tickets.count_open_by_user(guild_id, opener.id) >= limit:
            raise TicketLimitReachedError()

        cooldown_key = f"ticket:create:{guild_id}:{opener.id}"
        cooldown = await self.rate_limiter.hit(
            cooldown_key,
            limit=1,
            window_seconds=self.config.creation_cooldown_seconds,
        )
        if not cooldown.allowed:
            raise ValidationError(
                user_message=f"Ticket creation cooldown active ({self.config.creation_cooldown_seconds}s)."
            )

        category = await self.deps.registry.get_category(category_id)
        category_label = category.name.lower() if category else DEFAULT_CATEGORY_LABEL
        parent_id = category.parent_channel_id if category and category.parent_channel_id else None
        if parent_id is None and guild_config is not None:
            parent_id = guild_config.ticket_parent_id
        description = self.deps.registry.extract_description(fields)

        platform = self.deps.platform
        grants = [
            PermissionGrant(guild_id, ROLE, deny=("view_channel",)),
            PermissionGrant(opener.id, MEMBER, allow=OPENER_PERMISSIONS),
            PermissionGrant(platform.bot_user_id, MEMBER, allow=BOT_PERMISSIONS),
        ]
        try:
            channel_id = await platform.create_channel(
                guild_id, self.build_channel_name(category_label, opener.name), parent_id, grants
            )
        except Exception as exc:
            LOGGER.exception("Failed to create ticket channel for %s in guild %s", opener.id, guild_id)
            await self.rate_limiter.reset(cooldown_key)
            raise ChannelCreateError() from exc

        if guild_config is not None and guild_config.support_role_id:
            try:
                await platform.set_permission(
                    channel_id, PermissionGrant(guild_config.support_role_id, ROLE, allow=STAFF_PERMISSIONS)
                )
            except Exception:
                LOGGER.warning("Failed to add support role permissions on %s", channel_id, exc_info=True)

        record = TicketRecord(
            id=str(uuid4()),
            guild_id=guild_id,
            channel_id=channel_id,
            opener_id=opener.id,
            opener_tag=opener.tag,
            category_id=category.id if category else None,
            category_label=category_label,
            description=description,
        )
        try:
            await self.deps.tickets.create(record)
        except Exception:
            LOGGER.exception("Failed to persist ticket for channel %s; removing the channel", channel_id)
            await self._discard_channel(channel_id)
            await self.rate_limiter.reset(cooldown_key)
            raise

        closing_line = guild_config.welcome_message if guild_config and guild_config.welcome_message else None
        try:
            await platform.send_message(
                channel_id,
                opener.mention,
                embed=ticket_intro_embed(opener.tag, category_label, description, closing_line),
                components=ticket_controls(),
            )
        except Exception:
            LOGGER.warning("Ticket %s created but the intro message failed", record.id, exc_info=True)

        await responder.edit_reply(f"✅ Ticket created: <#{channel_id}>")
        LOGGER.info(
            "Ticket %s opened by %s in channel %s",
            record.id,
            opener.id,
            channel_id,
            extra={"ticket_id": record.id, "guild_id": guild_id, "user_id": opener.id},
        )
        return record

    async def _discard_channel(self, channel_id: int) -> None:
        try:
            await self.deps.platform.delete_channel(channel_id, reason="Ticket could not be saved")
        except Exception:
            LOGGER.warning("Could not remove orphan ticket channel %s", channel_id, exc_info=True)

    async def request_close(self, actor: Actor, channel_id: int, responder: Responder) -> None:
        ticket = await self.require_ticket(channel_id)
        if ticket.is_closed:
            raise AlreadyClosedError()
        guild_config = await self.deps.guild_configs.get(ticket.guild_id)
        if self.is_staff(actor, guild_config):
            await self.close(ticket, actor.id, responder, guild_config)
            return

        if ticket.close_pending:
            raise AlreadyPendingError()
        if not await self.deps.tickets.mark_close_requested(ticket.id, actor.id):
            current = await self.deps.tickets.get_by_id(ticket.id)
            if current is None or current.is_closed:
                raise AlreadyClosedError()
            raise AlreadyPendingError()

        try:
            await responder.reply(CLOSE_PROMPT, components=close_confirmation(), ephemeral=False)
        except Exception:
            await self.deps.tickets.clear_close_requested(ticket.id)
            raise

    def _close_requester(self, ticket: TicketRecord) -> int:
        return ticket.close_requested_by_id or ticket.opener_id

    async def confirm_close(self, actor: Actor, channel_id: int, responder: Responder) -> None:
        ticket = await self.require_ticket(channel_id)
        if ticket.is_closed:
            raise AlreadyClosedError()
        guild_config = await self.deps.guild_configs.get(ticket.guild_id)
        if not self.is_staff(actor, guild_config) and actor.id != self._close_requester(ticket):
            raise PermissionDeniedError(user_message="Only the member who asked to close this ticket can confirm.")
        await self.close(ticket, actor.id, responder, guild_config)

    async def cancel_close(self, actor: Actor, channel_id: int, responder: Responder) -> None:
        ticket = await self.require_ticket(channel_id)
        if ticket.is_closed:
            raise AlreadyClosedError()
        guild_config = await self.deps.guild_configs.get(ticket.guild_id)
        if not self.is_staff(actor, guild_config) and actor.id != self._close_requester(ticket):
            raise PermissionDeniedError(user_message="Only the member who asked to close this ticket can cancel.")
        await self.deps.tickets.clear_close_requested(ticket.id)
        await responder.delete_source_message()

    async def close(
        self,
        ticket: TicketRecord,
        closer_id: int,
        responder: Responder | None = None,
        guild_config: GuildConfig | None = None,
    ) -> TicketRecord:
        if ticket.is_closed:
            raise AlreadyClosedError()
        if responder is not None:
            await responder.defer(ephemeral=True)

        transcript: Transcript | None = None
        try:
            transcript = await self.deps.transcripts.capture(ticket)
        except TranscriptError:
            LOGGER.warning("Transcript capture failed for ticket %s; closing without it", ticket.id, exc_info=True)

        closed_at = to_iso(utc_now())
        applied = await self.deps.tickets.conditional_update_status(
            ticket.id,
            LIVE_STATUSES,
            STATUS_CLOSED,
            {
                "transcript": transcript.text if transcript else None,
                "closed_by_id": closer_id,
                "closed_at": closed_at,
                "close_requested_by_id": None,
            },
        )
        if not applied:
            raise AlreadyClosedError()

        ticket.status = STATUS_CLOSED
        ticket.transcript = transcript.text if transcript else None
        ticket.closed_by_id = closer_id
        ticket.closed_at = closed_at
        ticket.close_requested_by_id = None
        LOGGER.info(
            "Ticket %s closed by %s",
            ticket.id,
            closer_id,
            extra={"ticket_id": ticket.id, "guild_id": ticket.guild_id, "user_id": closer_id},
        )

        self._schedule_channel_deletion(ticket.channel_id)
        if responder is not None:
            await responder.edit_reply("🔒 Closing ticket...")

        if guild_config is None:
            guild_config = await self.deps.guild_configs.get(ticket.guild_id)
        await self._post_close_summary(ticket, closer_id, transcript, guild_config)
        return ticket

    async def _post_close_summary(
        self,
        ticket: TicketRecord,
        closer_id: int,
        transcript: Transcript | None,
        guild_config: GuildConfig | None,
    ) -> None:
        if guild_config is None or not guild_config.transcript_channel_id:
            return
        files: list[Attachment] = []
        if transcript is not None and transcript.text:
            files.append(Attachment(f"transcript-{ticket.id}.txt", transcript.text.encode("utf-8")))
        if transcript is not None and transcript.html_path is not None:
            try:
                files.append(Attachment(f"transcript-{ticket.id}.html", transcript.html_path.read_bytes()))
            except OSError:
                LOGGER.warning("HTML transcript for ticket %s is unreadable", ticket.id, exc_info=True)
        embed = close_summary_embed(
            channel_id=ticket.channel_id,
            opener_id=ticket.opener_id,
            closer_id=closer_id,
            claimant_id=ticket.claimed_by_id,
            transcript_url=self.deps.transcripts.public_link(ticket.id),
        )
        try:
            await self.deps.platform.send_message(guild_config.transcript_channel_id, embed=embed, files=files)
        except Exception:
            LOGGER.warning("Failed to send transcript log for ticket %s", ticket.id, exc_info=True)

    def _schedule_channel_deletion(self, channel_id: int) -> None:
        task = asyncio.create_task(self._delete_after_grace(channel_id))
        self.pending_deletions.add(task)
        task.add_done_callback(self.pending_deletions.discard)

    async def _delete_after_grace(self, channel_id: int) -> None:
        await asyncio.sleep(self.config.close_delete_delay_seconds)
        try:
            await self.deps.platform.delete_channel(channel_id, reason="Ticket closed")
        except Exception:
            LOGGER.debug("Deferred deletion of channel %s failed", channel_id, exc_info=True)

    async def claim(self, actor: Actor, channel_id: int, responder: Responder) -> None:
        ticket = await self.require_ticket(channel_id)
        guild_config = await self.deps.guild_configs.get(ticket.guild_id)
        if not self.is_staff(actor, guild_config):
            raise PermissionDeniedError(user_message="Only support staff can claim tickets.")
        if ticket.is_closed:
            raise AlreadyClosedError()

        if not await self.deps.tickets.conditional_set_claimant(ticket.id, actor.id):
            current = await self.deps.tickets.get_by_id(ticket.id)
            if current is None or current.is_closed:
                raise AlreadyClosedError()
            raise AlreadyClaimedError()

        await responder.defer_update()
        await self.deps.platform.send_message(
            channel_id,
            embed=make_embed(None, f"✅ Ticket claimed by {actor.mention}", color=discord.Color.green()),
        )
        LOGGER.info("Ticket %s claimed by %s", ticket.id, actor.id)

    async def _require_open_ticket(self, actor: Actor, channel_id: int) -> TicketRecord:
        ticket = await self.deps.tickets.get_by_channel(channel_id)
        if ticket is None or ticket.is_closed:
            raise ValidationError(user_message=NOT_OPEN_TICKET)
        guild_config = await self.deps.guild_configs.get(ticket.guild_id)
        if not self.is_staff(actor, guild_config) and actor.id != ticket.opener_id:
            raise PermissionDeniedError()
        return ticket

    async def add_user(self, actor: Actor, channel_id: int, user_id: int, responder: Responder) -> None:
        await self._require_open_ticket(actor, channel_id)
        await self.deps.platform.set_permission(
            channel_id, PermissionGrant(user_id, MEMBER, allow=OPENER_PERMISSIONS)
        )
        await responder.reply(f"✅ Added <@{user_id}> to the ticket.", ephemeral=False)

    async def remove_user(self, actor: Actor, channel_id: int, user_id: int, responder: Responder) -> None:
        ticket = await self._require_open_ticket(actor, channel_id)
        if user_id == ticket.opener_id:
            raise ValidationError(user_message="The ticket opener cannot be removed from their own ticket.")
        await self.deps.platform.clear_permission(channel_id, user_id)
        await responder.reply(f"✅ Removed <@{user_id}> from the ticket.", ephemeral=False)

    async def ban_user(
        self, actor: Actor, user_id: int, username: str, reason: str, responder: Responder
    ) -> None:
        if not actor.is_admin:
            raise PermissionDeniedError()
        await self.deps.bans.upsert(user_id, username, True, reason, banned_by_id=actor.id)
        LOGGER.info("User %s banned from tickets by %s", user_id, actor.id)
        await responder.reply(f"🚫 Banned <@{user_id}> from using tickets.\nReason: {reason}")

    async def unban_user(self, actor: Actor, user_id: int, username: str, responder: Responder) -> None:
        if not actor.is_admin:
            raise PermissionDeniedError()
        existing = await self.deps.bans.get(user_id)
        await self.deps.bans.upsert(
            user_id, username or (existing.username if existing else ""), False, None, banned_by_id=actor.id
        )
        LOGGER.info("User %s unbanned by %s", user_id, actor.id)
        await responder.reply(f"✅ Unbanned <@{user_id}>.")

    async def send_legacy_panel(self, actor: Actor, channel_id: int, responder: Responder) -> None:
        if not actor.is_admin:
            raise PermissionDeniedError()
        await responder.reply("✅ Panel sent!")
        await self.deps.platform.send_message(
            channel_id,
            embed=panel_embed(
                "🎫 Support Tickets",
                "Click the button below to open a support ticket.\n\nOur team will assist you as soon as possible.",
                footer="Powered by TicketBot",
            ),
            components=[
                ActionRow(items=[Button(custom_id=ID_OPEN_TICKET, label="Open Ticket", style="primary", emoji="📩")])
            ],
        )

    async def sweep_inactive(self, now: datetime | None = None) -> int:
        """Close live tickets idle for longer than their guild's ``auto_close_hours``."""
        now = now or utc_now()
        closed = 0
        for guild_config in await self.deps.guild_configs.list_with_auto_close():
            cutoff = now - timedelta(hours=guild_config.auto_close_hours or 0)
            for ticket in await self.deps.tickets.list_open(guild_config.guild_id):
                last_activity = await self._last_activity(ticket)
                if last_activity is None or last_activity > cutoff:
                    continue
                try:
                    await self.close(ticket, self.deps.platform.bot_user_id, None, guild_config)
                except AlreadyClosedError:
                    continue
                except Exception:
                    LOGGER.exception("Auto-close failed for ticket %s", ticket.id)
                    continue
                closed += 1
        if closed:
            LOGGER.info("Auto-closed %d inactive ticket(s)", closed)
        return closed

    async def _last_activity(self, ticket: TicketRecord) -> datetime | None:
        try:
            latest = await self.deps.platform.fetch_messages(ticket.channel_id, 1)
        except Exception:
            LOGGER.debug("Could not read history for ticket %s", ticket.id, exc_info=True)
            latest = []
        if latest:
            return latest[-1].created_at
        return from_iso(ticket.created_at)
