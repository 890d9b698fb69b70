from __future__ import annotations

import logging
from typing import Any

import discord
from discord import app_commands
from discord.ext import commands, tasks

from core.bot import TicketBot
from core.events import Actor, EventContext, EventKind, InboundEvent
from core.platform import DiscordResponder
from utils.constants import (
    CMD_ADD_USER,
    CMD_BAN_USER,
    CMD_REMOVE_USER,
    CMD_SETUP_PANEL,
    CMD_SETUP_TICKET,
    CMD_UNBAN_USER,
)

LOGGER = logging.getLogger(__name__)


def actor_from_interaction(interaction: discord.Interaction) -> Actor:
    user = interaction.user
    permissions = getattr(user, "guild_permissions", None)
    return Actor(
        id=user.id,
        name=user.name,
        tag=str(user),
        role_ids=frozenset(role.id for role in getattr(user, "roles", [])),
        is_admin=bool(permissions and permissions.administrator),
    )


def _form_fields(data: dict[str, Any]) -> list[tuple[str, str]]:
    fields: list[tuple[str, str]] = []
    for row in data.get("components", []):
        for component in row.get("components", []):
            if "custom_id" in component:
                fields.append((component["custom_id"], component.get("value") or ""))
    return fields


def event_from_interaction(interaction: discord.Interaction) -> InboundEvent | None:
    """Normalize a component or modal interaction; anything else returns ``None``."""
    if interaction.guild_id is None or interaction.channel_id is None:
        return None
    data: dict[str, Any] = dict(interaction.data or {})
    custom_id = str(data.get("custom_id", ""))
    context = EventContext(guild_id=interaction.guild_id, channel_id=interaction.channel_id)

    if interaction.type is discord.InteractionType.component:
        component_type = data.get("component_type")
        if component_type == discord.ComponentType.button.value:
            kind = EventKind.BUTTON
        elif component_type == discord.ComponentType.select.value:
            kind = EventKind.SELECT
            context.values = [str(value) for value in data.get("values", [])]
        else:
            return None
    elif interaction.type is discord.InteractionType.modal_submit:
        kind = EventKind.FORM_SUBMIT
        context.fields = _form_fields(data)
    else:
        return None

    return InboundEvent(kind=kind, identifier=custom_id, actor=actor_from_interaction(interaction), context=context)


class TicketsCog(commands.Cog):
    def __init__(self, bot: TicketBot) -> None:
        self.bot = bot
        self.inactivity_sweep.change_interval(minutes=max(1, bot.config.tickets.auto_close_sweep_minutes))
        self.inactivity_sweep.start()

    def cog_unload(self) -> None:
        self.inactivity_sweep.cancel()

    async def _dispatch_command(self, interaction: discord.Interaction, name: str, **options: Any) -> None:
        if interaction.guild_id is None or interaction.channel_id is None:
            await interaction.response.send_message("This command only works inside a server.", ephemeral=True)
            return
        event = InboundEvent(
            kind=EventKind.COMMAND,
            identifier=name,
            actor=actor_from_interaction(interaction),
            context=EventContext(
                guild_id=interaction.guild_id,
                channel_id=interaction.channel_id,
                options=options,
            ),
        )
        await self.bot.router.dispatch(event, DiscordResponder(interaction))

    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type not in (discord.InteractionType.component, discord.InteractionType.modal_submit):
            return
        event = event_from_interaction(interaction)
        if event is None:
            return
        await self.bot.router.dispatch(event, DiscordResponder(interaction))

    @app_commands.command(name=CMD_SETUP_TICKET, description="Send the ticket panel to the current channel")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def setup_ticket(self, interaction: discord.Interaction) -> None:
        await self._dispatch_command(interaction, CMD_SETUP_TICKET)

    @app_commands.command(name=CMD_SETUP_PANEL, description="Start interactive setup wizard for ticket panel")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def setup_panel(self, interaction: discord.Interaction) -> None:
        await self._dispatch_command(interaction, CMD_SETUP_PANEL)

    @app_commands.command(name=CMD_ADD_USER, description="Add a user to the ticket")
    @app_commands.describe(user="The user to add")
    @app_commands.guild_only()
    async def add_user(self, interaction: discord.Interaction, user: discord.Member) -> None:
        await self._dispatch_command(interaction, CMD_ADD_USER, user=user.id, username=user.name)

    @app_commands.command(name=CMD_REMOVE_USER, description="Remove a user from the ticket")
    @app_commands.describe(user="The user to remove")
    @app_commands.guild_only()
    async def remove_user(self, interaction: discord.Interaction, user: discord.Member) -> None:
        await self._dispatch_command(interaction, CMD_REMOVE_USER, user=user.id, username=user.name)

    @app_commands.command(name=CMD_BAN_USER, description="Ban a user from creating tickets")
    @app_commands.describe(user="The user to ban", reason="Reason for ban")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def ban_user(
        self, interaction: discord.Interaction, user: discord.User, reason: str | None = None
    ) -> None:
        await self._dispatch_command(interaction, CMD_BAN_USER, user=user.id, username=user.name, reason=reason)

    @app_commands.command(name=CMD_UNBAN_USER, description="Unban a user from creating tickets")
    @app_commands.describe(user="The user to unban")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def unban_user(self, interaction: discord.Interaction, user: discord.User) -> None:
        await self._dispatch_command(interaction, CMD_UNBAN_USER, user=user.id, username=user.name)

    @tasks.loop(minutes=10)
    async def inactivity_sweep(self) -> None:
        try:
            await self.bot.ticket_service.sweep_inactive()
        except Exception:
            LOGGER.exception("Inactivity sweep failed")

    @inactivity_sweep.before_loop
    async def before_inactivity_sweep(self) -> None:
        await self.bot.wait_until_ready()


async def setup(bot: TicketBot) -> None:
    await bot.add_cog(TicketsCog(bot))
