from __future__ import annotations

import logging
from dataclasses import dataclass

import discord
from discord import app_commands
from discord.ext import commands

from utils.embeds import error_embed

LOGGER = logging.getLogger(__name__)


class BotError(RuntimeError):
    user_message: str = "An unexpected error occurred."


@dataclass(slots=True, eq=False)
class BannedUserError(BotError):
    user_message: str = "❌ You are banned from creating tickets."


@dataclass(slots=True, eq=False)
class AlreadyClaimedError(BotError):
    user_message: str = "❌ Ticket is already claimed."


@dataclass(slots=True, eq=False)
class AlreadyPendingError(BotError):
    user_message: str = "⚠ Close request already pending."


@dataclass(slots=True, eq=False)
class AlreadyClosedError(BotError):
    user_message: str = "This ticket is already closed."


@dataclass(slots=True, eq=False)
class ChannelCreateError(BotError):
    user_message: str = "❌ Failed to create ticket channel. Please contact an admin."


@dataclass(slots=True, eq=False)
class TranscriptError(BotError):
    user_message: str = "The ticket transcript could not be captured."


@dataclass(slots=True, eq=False)
class UnknownTicketChannelError(BotError):
    user_message: str = "This channel is not a ticket."


@dataclass(slots=True, eq=False)
class PermissionDeniedError(BotError):
    user_message: str = "You do not have permission to run this action."


@dataclass(slots=True, eq=False)
class TicketLimitReachedError(BotError):
    user_message: str = "You reached the maximum open ticket limit."


@dataclass(slots=True, eq=False)
class ValidationError(BotError):
    user_message: str = "The provided input is not valid."


def _humanize_app_command_error(error: Exception) -> str:
    if isinstance(error, BotError):
        return error.user_message
    if isinstance(error, app_commands.CommandOnCooldown):
        return f"Cooldown active. Retry in {error.retry_after:.1f} seconds."
    if isinstance(error, app_commands.MissingPermissions):
        return "You are missing required Discord permissions."
    if isinstance(error, app_commands.CheckFailure):
        return "You are not authorized for this command."
    return "An unexpected slash-command error occurred."


async def handle_app_command_error(
    interaction: discord.Interaction[commands.Bot], error: app_commands.AppCommandError
) -> None:
    original = getattr(error, "original", error)
    message = _humanize_app_command_error(original)
    LOGGER.exception(
        "Slash command failed. command=%s guild=%s user=%s",
        getattr(interaction.command, "qualified_name", None),
        getattr(interaction.guild, "id", None),
        interaction.user.id if interaction.user else None,
        exc_info=error,
    )
    embed = error_embed(message)
    if interaction.response.is_done():
        await interaction.followup.send(embed=embed, ephemeral=True)
    else:
        await interaction.response.send_message(embed=embed, ephemeral=True)
