from __future__ import annotations

import logging

from core.components import ActionRow, Button, Form, Select, SelectOption, TextField
from core.errors import PermissionDeniedError, ValidationError
from core.events import Actor
from core.platform import PlatformClient, Responder
from database.models import TicketCategory
from services.category_registry import CategoryRegistry
from utils.constants import (
    DEFAULT_CATEGORY_EMOJI,
    FIELD_CATEGORY_EMOJI,
    FIELD_CATEGORY_NAME,
    ID_SETUP_SELECT_CHANNEL,
    MAX_SELECT_OPTIONS,
    PREFIX_SETUP_ADD_CATEGORY,
    PREFIX_SETUP_CATEGORY_MODAL,
    PREFIX_SETUP_FINISH,
)
from utils.embeds import panel_embed

LOGGER = logging.getLogger(__name__)

PANEL_TITLE = "🎫 Support Tickets"
PANEL_DESCRIPTION = "Select a category below to open a ticket."


def _wizard_buttons(channel_id: int, add_label: str) -> list[ActionRow]:
    return [
        ActionRow(
            items=[
                Button(custom_id=f"{PREFIX_SETUP_ADD_CATEGORY}{channel_id}", label=add_label, style="success"),
                Button(custom_id=f"{PREFIX_SETUP_FINISH}{channel_id}", label="Finish Setup", style="secondary"),
            ]
        )
    ]


class SetupWizard:
    """Three-step panel setup. The destination channel travels inside every
    component identifier, so no session state is kept between steps."""

    def __init__(self, registry: CategoryRegistry, platform: PlatformClient) -> None:
        self.registry = registry
        self.platform = platform

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise PermissionDeniedError(user_message="Only administrators can configure ticket panels.")

    async def start(self, actor: Actor, guild_id: int, responder: Responder) -> None:
        self._require_admin(actor)
        channels = await self.platform.list_text_channels(guild_id)
        if not channels:
            raise ValidationError(user_message="This server has no text channels to host a ticket panel.")
        options = [
            SelectOption(label=f"#{channel.name}", value=str(channel.id))
            for channel in channels[:MAX_SELECT_OPTIONS]
        ]
        await responder.reply(
            "Step 1: Where should the ticket panel be sent?",
            components=[
                ActionRow(
                    items=[
                        Select(
                            custom_id=ID_SETUP_SELECT_CHANNEL,
                            placeholder="Select a channel for the panel",
                            options=options,
                        )
                    ]
                )
            ],
        )

    async def select_channel(self, actor: Actor, channel_id: int, responder: Responder) -> None:
        self._require_admin(actor)
        await responder.update(
            f"✅ Channel selected: <#{channel_id}>\n\n"
            "Click **Add Category** to create a button on the panel (e.g. Support, Billing).\n"
            "When you are done adding categories, click **Finish Setup**.",
            components=_wizard_buttons(channel_id, "Add Category"),
        )

    async def prompt_add_category(self, actor: Actor, channel_id: int, responder: Responder) -> None:
        self._require_admin(actor)
        await responder.present_form(
            Form(
                custom_id=f"{PREFIX_SETUP_CATEGORY_MODAL}{channel_id}",
                title="New Ticket Category",
                fields=[
                    TextField(
                        custom_id=FIELD_CATEGORY_NAME,
                        label="Category Name (e.g. Support)",
                        style="short",
                        required=True,
                    ),
                    TextField(
                        custom_id=FIELD_CATEGORY_EMOJI,
                        label=f"Emoji (e.g. {DEFAULT_CATEGORY_EMOJI})",
                        style="short",
                        required=False,
                    ),
                ],
            )
        )

    async def submit_category(
        self,
        actor: Actor,
        guild_id: int,
        channel_id: int,
        fields: list[tuple[str, str]],
        responder: Responder,
    ) -> TicketCategory:
        self._require_admin(actor)
        submitted = dict(fields)
        name = (submitted.get(FIELD_CATEGORY_NAME) or "").strip()
        if not name:
            raise ValidationError(user_message="A category name is required.")
        category = await self.registry.create_category(
            guild_id, name, (submitted.get(FIELD_CATEGORY_EMOJI) or "").strip() or DEFAULT_CATEGORY_EMOJI
        )

        if not await self.platform.channel_exists(channel_id):
            raise ValidationError(
                user_message=f"Category **{category.name}** was saved, but <#{channel_id}> is no longer available."
            )

        categories = await self.registry.list_categories(guild_id)
        await self.platform.send_message(
            channel_id,
            embed=panel_embed(PANEL_TITLE, PANEL_DESCRIPTION),
            components=self.registry.render_panel_rows(categories),
        )
        await responder.reply(
            f"✅ Added category **{category.name}**!\nDo you want to add another one?",
            components=_wizard_buttons(channel_id, "Add Another Category"),
        )
        return category

    async def finish(self, actor: Actor, channel_id: int, responder: Responder) -> None:
        self._require_admin(actor)
        await responder.update(
            f"🎉 **Setup Complete!**\nThe ticket panel has been sent to <#{channel_id}>.\n"
            "You can now dismiss this message.",
            components=[],
        )
