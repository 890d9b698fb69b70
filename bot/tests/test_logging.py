from __future__ import annotations

import json
import logging
from pathlib import Path

from core.config import LoggingConfig
from core.logging import JsonFormatter, configure_logging


def test_json_formatter_keeps_ticket_context() -> None:
    record = logging.LogRecord("services.ticket_service", logging.INFO, __file__, 1, "Ticket %s closed", ("t1",), None)
    record.ticket_id = "t1"
    record.guild_id = 10

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Ticket t1 closed"
    assert payload["ticket_id"] == "t1"
    assert payload["guild_id"] == 10
    assert "user_id" not in payload


def test_configure_logging_installs_handlers(tmp_path: Path) -> None:
    root = logging.getLogger()
    previous_handlers, previous_level = root.handlers[:], root.level
    try:
        configure_logging(LoggingConfig(level="debug", directory=str(tmp_path / "logs")))

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert (tmp_path / "logs").is_dir()
        assert logging.getLogger("discord.http").level == logging.WARNING
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = previous_handlers
        root.setLevel(previous_level)
