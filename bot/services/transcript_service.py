from __future__ import annotations

import html
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from core.config import TranscriptConfig
from core.errors import TranscriptError
from core.platform import ChannelMessage, PlatformClient
from database.models import TicketRecord
from utils.time import transcript_stamp

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Transcript:
    text: str
    message_count: int
    html_path: Path | None = None


class TranscriptService:
    def __init__(self, config: TranscriptConfig, platform: PlatformClient) -> None:
        self.config = config
        self.platform = platform
        self.base_dir = Path(config.storage_directory)

    @property
    def history_limit(self) -> int | None:
        return None if self.config.mode == "full" else self.config.history_limit

    def public_link(self, ticket_id: str) -> str | None:
        if not self.config.public_url:
            return None
        return f"{self.config.public_url.rstrip('/')}/tickets/{ticket_id}/transcript"

    async def capture(self, ticket: TicketRecord) -> Transcript:
        try:
            messages = await self.platform.fetch_messages(ticket.channel_id, self.history_limit)
        except Exception as exc:
            raise TranscriptError() from exc

        transcript = Transcript(text=self.render_text(messages), message_count=len(messages))
        if self.config.html_enabled:
            transcript.html_path = self._write_html(ticket, messages)
        return transcript

    def _write_html(self, ticket: TicketRecord, messages: list[ChannelMessage]) -> Path | None:
        target = self.base_dir / str(ticket.guild_id) / f"{ticket.id}.html"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(self.render_html(ticket, messages), encoding="utf-8")
        except OSError:
            LOGGER.warning("Could not write HTML transcript for ticket %s", ticket.id, exc_info=True)
            return None
        return target

    @staticmethod
    def render_text(messages: Iterable[ChannelMessage]) -> str:
        lines: list[str] = []
        for msg in messages:
            lines.append(f"[{transcript_stamp(msg.created_at)}] {msg.author_tag}: {msg.content or ''}")
            for url in msg.attachments:
                lines.append(f"  attachment: {url}")
        return "\n".join(lines)

    @staticmethod
    def render_html(ticket: TicketRecord, messages: Iterable[ChannelMessage]) -> str:
        rows: list[str] = []
        for msg in messages:
            attachment_html = ""
            if msg.attachments:
                links = "".join(
                    f'<li><a href="{html.escape(url)}">{html.escape(url.rsplit("/", 1)[-1])}</a></li>'
                    for url in msg.attachments
                )
                attachment_html = f"<ul>{links}</ul>"
            rows.append(
                "<div class='msg'>"
                f"<div class='meta'>{html.escape(msg.author_tag)} | {transcript_stamp(msg.created_at)}</div>"
                f"<div class='content'>{html.escape(msg.content or '')}</div>"
                f"{attachment_html}"
                "</div>"
            )

        return (
            "<!doctype html><html><head><meta charset='utf-8'>"
            "<style>"
            "body{font-family:Arial,sans-serif;background:#f5f7fb;color:#1f2937;padding:16px;}"
            ".msg{background:white;border:1px solid #e5e7eb;border-radius:8px;padding:10px;margin-bottom:8px;}"
            ".meta{font-size:12px;color:#6b7280;margin-bottom:6px;}"
            ".content{white-space:pre-wrap;}"
            "</style></head><body>"
            f"<h1>Transcript - {html.escape(ticket.category_label)} ({html.escape(ticket.opener_tag)})</h1>"
            + "".join(rows)
            + "</body></html>"
        )
