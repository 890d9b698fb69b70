from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from core.errors import BotError, UnknownTicketChannelError
from core.events import (
    ROUTE_TYPES,
    AddUserCommand,
    BanUserCommand,
    CancelClose,
    ClaimTicket,
    CloseTicket,
    ConfirmClose,
    InboundEvent,
    OpenCategory,
    OpenTicket,
    RemoveUserCommand,
    SelectSetupChannel,
    SetupAddCategory,
    SetupCategorySubmit,
    SetupFinish,
    SetupPanelCommand,
    SetupTicketCommand,
    TicketFormSubmit,
    UnbanUserCommand,
    Unrouted,
    parse_route,
)
from core.platform import Responder
from services.setup_wizard import SetupWizard
from services.ticket_service import TicketService
from utils.embeds import error_embed

LOGGER = logging.getLogger(__name__)

GENERIC_FAILURE = "❌ An error occurred."

Handler = Callable[[Any, InboundEvent, Responder], Awaitable[None]]


class InteractionRouter:
    """Single entry point for every normalized inbound event.

    The event identifier is parsed into a typed route, the route's handler is
    looked up in a table that must cover every route type, and any failure is
    turned into at most one user-facing notice.
    """

    def __init__(self, tickets: TicketService, wizard: SetupWizard) -> None:
        self.tickets = tickets
        self.wizard = wizard
        self.handlers: dict[type, Handler] = {
            OpenTicket: self._open_ticket,
            OpenCategory: self._open_category,
            TicketFormSubmit: self._submit_ticket_form,
            CloseTicket: self._close_ticket,
            ConfirmClose: self._confirm_close,
            CancelClose: self._cancel_close,
            ClaimTicket: self._claim_ticket,
            SetupPanelCommand: self._setup_panel,
            SelectSetupChannel: self._select_setup_channel,
            SetupAddCategory: self._setup_add_category,
            SetupCategorySubmit: self._setup_category_submit,
            SetupFinish: self._setup_finish,
            SetupTicketCommand: self._setup_ticket,
            AddUserCommand: self._add_user,
            RemoveUserCommand: self._remove_user,
            BanUserCommand: self._ban_user,
            UnbanUserCommand: self._unban_user,
            Unrouted: self._unrouted,
        }
        missing = [route_type.__name__ for route_type in ROUTE_TYPES if route_type not in self.handlers]
        if missing:
            raise RuntimeError(f"Interaction routes without a handler: {', '.join(missing)}")

    async def dispatch(self, event: InboundEvent, responder: Responder) -> None:
        route = parse_route(event)
        handler = self.handlers[type(route)]
        try:
            await handler(route, event, responder)
        except UnknownTicketChannelError:
            LOGGER.debug("Ignoring %s outside a ticket channel %s", event.identifier, event.context.channel_id)
        except BotError as exc:
            LOGGER.info(
                "Interaction %s rejected for user %s: %s",
                event.identifier,
                event.actor.id,
                type(exc).__name__,
            )
            await self._notify(responder, exc.user_message)
        except Exception:
            LOGGER.exception(
                "Interaction failed. kind=%s id=%s guild=%s user=%s",
                event.kind.value,
                event.identifier,
                event.context.guild_id,
                event.actor.id,
            )
            await self._notify(responder, GENERIC_FAILURE)

    async def _notify(self, responder: Responder, message: str) -> None:
        embed = error_embed(message)
        try:
            if not responder.is_done():
                await responder.reply(embed=embed, ephemeral=True)
            elif responder.awaiting_reply:
                await responder.edit_reply(embed=embed)
            else:
                LOGGER.info("Response already sent; not notifying user: %s", message)
        except Exception:
            LOGGER.exception("Failed to deliver error notice")

    async def _unrouted(self, route: Unrouted, event: InboundEvent, responder: Responder) -> None:
        LOGGER.warning(
            "Unrouted %s event %r (%s) from user %s",
            event.kind.value,
            route.identifier,
            route.reason,
            event.actor.id,
        )

    async def _open_ticket(self, route: OpenTicket, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.present_ticket_form(None, responder)

    async def _open_category(self, route: OpenCategory, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.present_ticket_form(route.category_id, responder)

    async def _submit_ticket_form(
        self, route: TicketFormSubmit, event: InboundEvent, responder: Responder
    ) -> None:
        await self.tickets.create(
            event.context.guild_id,
            event.actor,
            route.category_id,
            event.context.fields,
            responder,
        )

    async def _close_ticket(self, route: CloseTicket, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.request_close(event.actor, event.context.channel_id, responder)

    async def _confirm_close(self, route: ConfirmClose, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.confirm_close(event.actor, event.context.channel_id, responder)

    async def _cancel_close(self, route: CancelClose, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.cancel_close(event.actor, event.context.channel_id, responder)

    async def _claim_ticket(self, route: ClaimTicket, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.claim(event.actor, event.context.channel_id, responder)

    async def _setup_panel(self, route: SetupPanelCommand, event: InboundEvent, responder: Responder) -> None:
        await self.wizard.start(event.actor, event.context.guild_id, responder)

    async def _select_setup_channel(
        self, route: SelectSetupChannel, event: InboundEvent, responder: Responder
    ) -> None:
        await self.wizard.select_channel(event.actor, route.channel_id, responder)

    async def _setup_add_category(
        self, route: SetupAddCategory, event: InboundEvent, responder: Responder
    ) -> None:
        await self.wizard.prompt_add_category(event.actor, route.channel_id, responder)

    async def _setup_category_submit(
        self, route: SetupCategorySubmit, event: InboundEvent, responder: Responder
    ) -> None:
        await self.wizard.submit_category(
            event.actor, event.context.guild_id, route.channel_id, event.context.fields, responder
        )

    async def _setup_finish(self, route: SetupFinish, event: InboundEvent, responder: Responder) -> None:
        await self.wizard.finish(event.actor, route.channel_id, responder)

    async def _setup_ticket(self, route: SetupTicketCommand, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.send_legacy_panel(event.actor, event.context.channel_id, responder)

    async def _add_user(self, route: AddUserCommand, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.add_user(event.actor, event.context.channel_id, route.user_id, responder)

    async def _remove_user(self, route: RemoveUserCommand, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.remove_user(event.actor, event.context.channel_id, route.user_id, responder)

    async def _ban_user(self, route: BanUserCommand, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.ban_user(event.actor, route.user_id, route.username, route.reason, responder)

    async def _unban_user(self, route: UnbanUserCommand, event: InboundEvent, responder: Responder) -> None:
        await self.tickets.unban_user(event.actor, route.user_id, route.username, responder)
