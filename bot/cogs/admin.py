from __future__ import annotations

from typing import Any, Optional

import discord
from discord import app_commands
from discord.ext import commands

from core.bot import TicketBot
from core.errors import PermissionDeniedError
from database.models import GuildConfig
from utils.embeds import make_embed, success_embed


def _is_admin(interaction: discord.Interaction) -> bool:
    permissions = getattr(interaction.user, "guild_permissions", None)
    return bool(permissions and permissions.administrator)


def _mention(value: int | None, prefix: str) -> str:
    return f"<{prefix}{value}>" if value else "not set"


def _or_default(value: int | None) -> str:
    return "default" if value is None else str(value)


def describe_config(config: GuildConfig) -> str:
    return "\n".join(
        [
            f"**Ticket parent:** {_mention(config.ticket_parent_id, '#')}",
            f"**Support role:** {_mention(config.support_role_id, '@&')}",
            f"**Log channel:** {_mention(config.transcript_channel_id, '#')}",
            f"**Welcome message:** {config.welcome_message or 'default'}",
            f"**Max open tickets per user:** {_or_default(config.max_tickets_per_user)}",
            f"**Auto-close after:** {f'{config.auto_close_hours}h' if config.auto_close_hours else 'disabled'}",
        ]
    )


class AdminCog(commands.Cog):
    """``/ticket-config`` commands that write the per-guild ticket settings."""

    config_group = app_commands.Group(
        name="ticket-config",
        description="Configure ticket settings for this server.",
        guild_only=True,
        default_permissions=discord.Permissions(administrator=True),
    )

    def __init__(self, bot: TicketBot) -> None:
        self.bot = bot

    async def _update(self, interaction: discord.Interaction, **changes: Any) -> None:
        if interaction.guild_id is None or not _is_admin(interaction):
            raise PermissionDeniedError(user_message="Administrator permission required.")
        config = await self.bot.guild_config_repo.upsert(interaction.guild_id, **changes)
        await interaction.response.send_message(
            embed=success_embed("Ticket settings updated.\n\n" + describe_config(config)),
            ephemeral=True,
        )

    @config_group.command(name="show", description="Show the current ticket settings.")
    async def show(self, interaction: discord.Interaction) -> None:
        if interaction.guild_id is None or not _is_admin(interaction):
            raise PermissionDeniedError(user_message="Administrator permission required.")
        config = await self.bot.guild_config_repo.get(interaction.guild_id) or GuildConfig(interaction.guild_id)
        categories = await self.bot.category_registry.list_categories(interaction.guild_id)
        category_lines = [f"{cat.emoji or ''} {cat.name} (`{cat.id}`)" for cat in categories] or ["none"]
        embed = make_embed(
            "Ticket Settings",
            describe_config(config),
            fields=[("Categories", "\n".join(category_lines)[:1024], False)],
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @config_group.command(name="parent", description="Channel category that new tickets are created under.")
    @app_commands.describe(category="Leave empty to create tickets at the top level")
    async def parent(self, interaction: discord.Interaction, category: discord.CategoryChannel | None = None) -> None:
        await self._update(interaction, ticket_parent_id=category.id if category else None)

    @config_group.command(name="support-role", description="Role that can claim and close tickets.")
    async def support_role(self, interaction: discord.Interaction, role: discord.Role | None = None) -> None:
        await self._update(interaction, support_role_id=role.id if role else None)

    @config_group.command(name="log-channel", description="Channel that receives closed-ticket summaries.")
    async def log_channel(self, interaction: discord.Interaction, channel: discord.TextChannel | None = None) -> None:
        await self._update(interaction, transcript_channel_id=channel.id if channel else None)

    @config_group.command(name="welcome", description="Closing line of the ticket intro message.")
    async def welcome(
        self, interaction: discord.Interaction, message: Optional[app_commands.Range[str, 1, 1000]] = None
    ) -> None:
        await self._update(interaction, welcome_message=message)

    @config_group.command(name="limits", description="Per-user open ticket limit and inactivity auto-close.")
    @app_commands.describe(
        max_tickets="Open tickets allowed per user (0 = unlimited)",
        auto_close_hours="Close tickets idle for this many hours (0 = disabled)",
    )
    async def limits(
        self,
        interaction: discord.Interaction,
        max_tickets: Optional[app_commands.Range[int, 0, 50]] = None,
        auto_close_hours: Optional[app_commands.Range[int, 0, 720]] = None,
    ) -> None:
        changes: dict[str, Any] = {}
        if max_tickets is not None:
            changes["max_tickets_per_user"] = max_tickets
        if auto_close_hours is not None:
            changes["auto_close_hours"] = auto_close_hours or None
        await self._update(interaction, **changes)


async def setup(bot: TicketBot) -> None:
    await bot.add_cog(AdminCog(bot))
