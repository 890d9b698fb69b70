from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import PlainTextResponse

if TYPE_CHECKING:
    from core.bot import TicketBot


def _auth(x_api_key: str | None, expected: str) -> None:
    if not expected:
        return
    if x_api_key != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


def create_api_app(bot: TicketBot) -> FastAPI:
    """Read-only HTTP surface: a liveness probe and closed-ticket transcripts as plain text."""
    app = FastAPI(title="Ticket Bot API", version="1.0.0")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/tickets/{ticket_id}/transcript", response_class=PlainTextResponse)
    async def transcript(ticket_id: str, x_api_key: str | None = Header(default=None)) -> str:
        _auth(x_api_key, bot.config.fastapi.api_key)
        ticket = await bot.ticket_repo.get_by_id(ticket_id)
        if ticket is None or not ticket.transcript:
            raise HTTPException(status_code=404, detail="Transcript not found")
        return ticket.transcript

    return app
