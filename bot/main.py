from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from pathlib import Path

import uvicorn

from core.api import create_api_app
from core.bot import TicketBot
from core.config import AppConfig, load_config
from core.logging import configure_logging

LOGGER = logging.getLogger("ticketbot")

DEFAULT_CONFIG = Path(__file__).resolve().parent / "config" / "config.yaml"


def _api_server(bot: TicketBot, config: AppConfig) -> uvicorn.Server:
    return uvicorn.Server(
        uvicorn.Config(
            app=create_api_app(bot),
            host=config.fastapi.host,
            port=config.fastapi.port,
            log_level=config.logging.level.lower(),
            log_config=None,
        )
    )


async def run(config: AppConfig) -> None:
    """Run the bot, plus the HTTP API when enabled, until the gateway disconnects."""
    async with TicketBot(config=config) as bot:
        api_task: asyncio.Task[None] | None = None
        if config.fastapi.enabled:
            LOGGER.info("Serving HTTP API on %s:%s", config.fastapi.host, config.fastapi.port)
            api_task = asyncio.create_task(_api_server(bot, config).serve())
        try:
            await bot.start(config.discord.token)
        finally:
            if api_task is not None:
                api_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await api_task


def main() -> None:
    config = load_config(Path(os.getenv("TICKET_BOT_CONFIG", str(DEFAULT_CONFIG))))
    configure_logging(config.logging)
    asyncio.run(run(config))


if __name__ == "__main__":
    main()
