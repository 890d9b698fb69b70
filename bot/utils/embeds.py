from __future__ import annotations

from datetime import UTC, datetime

import discord

from utils.constants import MAX_EMBED_DESCRIPTION_LENGTH


def make_embed(
    title: str | None,
    description: str | None,
    color: discord.Color | None = None,
    footer: str | None = None,
    fields: list[tuple[str, str, bool]] | None = None,
) -> discord.Embed:
    resolved_color = color if color is not None else discord.Color.blurple()
    embed = discord.Embed(
        title=title,
        description=description,
        color=resolved_color,
        timestamp=datetime.now(UTC),
    )
    for name, value, inline in fields or []:
        embed.add_field(name=name, value=value, inline=inline)
    if footer:
        embed.set_footer(text=footer)
    return embed


def panel_embed(title: str, description: str, footer: str | None = None) -> discord.Embed:
    return make_embed(title=title, description=description, color=discord.Color.blurple(), footer=footer)


def ticket_intro_embed(
    opener_tag: str, category_label: str, details: str, closing_line: str | None = None
) -> discord.Embed:
    head = f"**Category:** {category_label}\n**Details:**\n"
    tail = f"\n\n{closing_line or 'Support will be with you shortly.'}"
    budget = MAX_EMBED_DESCRIPTION_LENGTH - len(head) - len(tail)
    if len(details) > budget:
        details = details[: max(budget - 1, 0)] + "…"
    return make_embed(
        title=f"Ticket: {opener_tag}",
        description=f"{head}{details}{tail}"[:MAX_EMBED_DESCRIPTION_LENGTH],
        color=discord.Color.green(),
    )


def close_summary_embed(
    channel_id: int,
    opener_id: int,
    closer_id: int,
    claimant_id: int | None,
    transcript_url: str | None,
) -> discord.Embed:
    fields = [
        ("Opener", f"<@{opener_id}>", True),
        ("Closed By", f"<@{closer_id}>", True),
    ]
    if claimant_id is not None:
        fields.append(("Claimed By", f"<@{claimant_id}>", True))
    if transcript_url:
        fields.append(("Transcript", f"[View Online]({transcript_url})", False))
    return make_embed(
        title=f"📄 Ticket Closed: {channel_id}",
        description=None,
        color=discord.Color.red(),
        fields=fields,
    )


def success_embed(message: str) -> discord.Embed:
    return make_embed(title="Success", description=message, color=discord.Color.green())


def error_embed(message: str) -> discord.Embed:
    return make_embed(title="Error", description=message, color=discord.Color.red())
