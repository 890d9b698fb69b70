from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv


class ConfigError(RuntimeError):
    pass


DEFAULT_EXTENSIONS = ("cogs.tickets", "cogs.admin")


@dataclass(slots=True)
class DiscordConfig:
    token: str
    application_id: int | None = None
    sync_commands_on_start: bool = True
    status_text: str = "Support tickets"
    activity_type: str = "watching"


@dataclass(slots=True)
class DatabaseConfig:
    url: str = "sqlite:///./data/tickets.db"
    pool_min_size: int = 2
    pool_max_size: int = 10
    timeout_seconds: int = 30


@dataclass(slots=True)
class RedisConfig:
    enabled: bool = False
    url: str = "redis://localhost:6379/0"
    default_ttl: int = 120


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    directory: str = "logs"
    file_name: str = "bot.log"
    max_bytes: int = 10_000_000
    backup_count: int = 10
    json_console: bool = False


@dataclass(slots=True)
class TicketConfig:
    channel_name_max_length: int = 25
    close_delete_delay_seconds: float = 5.0
    default_max_tickets_per_user: int = 3
    creation_cooldown_seconds: int = 10
    auto_close_sweep_minutes: int = 10


@dataclass(slots=True)
class TranscriptConfig:
    mode: str = "recent"
    history_limit: int = 100
    html_enabled: bool = False
    storage_directory: str = "artifacts/transcripts"
    public_url: str = ""


@dataclass(slots=True)
class FastApiConfig:
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str = ""


@dataclass(slots=True)
class AppConfig:
    discord: DiscordConfig
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    tickets: TicketConfig = field(default_factory=TicketConfig)
    transcripts: TranscriptConfig = field(default_factory=TranscriptConfig)
    fastapi: FastApiConfig = field(default_factory=FastApiConfig)
    enabled_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    return raw


class _Settings:
    """Looks a key up in the environment first, then in one yaml section."""

    def __init__(self, raw: dict[str, Any]) -> None:
        self.raw = raw

    def value(self, section: str, key: str, default: Any = None, env: str | None = None) -> Any:
        if env:
            from_env = os.getenv(env)
            if from_env is not None and from_env.strip():
                return from_env.strip()
        node = self.raw.get(section)
        if isinstance(node, dict) and node.get(key) is not None:
            return node[key]
        return default

    def text(self, section: str, key: str, default: str, env: str | None = None) -> str:
        return str(self.value(section, key, default, env))

    def flag(self, section: str, key: str, default: bool, env: str | None = None) -> bool:
        return _as_bool(self.value(section, key, None, env), default)

    def number(self, section: str, key: str, default: int, env: str | None = None) -> int:
        return _as_int(self.value(section, key, None, env), default)

    def seconds(self, section: str, key: str, default: float) -> float:
        return _as_float(self.value(section, key), default)


def _discord_section(settings: _Settings) -> DiscordConfig:
    token = settings.value("discord", "token", env="DISCORD_TOKEN")
    if not token or "${" in str(token):
        raise ConfigError("DISCORD_TOKEN is required")
    application_id = settings.value("discord", "application_id", env="DISCORD_APPLICATION_ID")
    return DiscordConfig(
        token=str(token),
        application_id=_as_int(application_id, 0) or None,
        sync_commands_on_start=settings.flag("discord", "sync_commands_on_start", True, env="SYNC_COMMANDS"),
        status_text=settings.text("discord", "status_text", "Support tickets"),
        activity_type=settings.text("discord", "activity_type", "watching"),
    )


def _transcript_section(settings: _Settings) -> TranscriptConfig:
    mode = settings.text("transcripts", "mode", "recent").lower()
    if mode not in {"recent", "full"}:
        raise ConfigError("transcripts.mode must be 'recent' or 'full'")
    return TranscriptConfig(
        mode=mode,
        history_limit=settings.number("transcripts", "history_limit", 100),
        html_enabled=settings.flag("transcripts", "html_enabled", False),
        storage_directory=settings.text("transcripts", "storage_directory", "artifacts/transcripts"),
        public_url=settings.text("transcripts", "public_url", "", env="PUBLIC_URL"),
    )


def load_config(config_path: Path) -> AppConfig:
    """Build the application config from ``config.yaml`` plus environment overrides.

    ``.env`` is read from the directory above the config folder; variables
    already present in the environment win over it.
    """
    load_dotenv(config_path.parent.parent / ".env")
    raw = _load_yaml(config_path)
    settings = _Settings(raw)

    extensions = raw.get("enabled_extensions")
    return AppConfig(
        discord=_discord_section(settings),
        database=DatabaseConfig(
            url=settings.text("database", "url", "sqlite:///./data/tickets.db", env="DATABASE_URL"),
            pool_min_size=settings.number("database", "pool_min_size", 2, env="DB_POOL_MIN"),
            pool_max_size=settings.number("database", "pool_max_size", 10, env="DB_POOL_MAX"),
            timeout_seconds=settings.number("database", "timeout_seconds", 30, env="DB_TIMEOUT_SECONDS"),
        ),
        redis=RedisConfig(
            enabled=settings.flag("redis", "enabled", False, env="REDIS_ENABLED"),
            url=settings.text("redis", "url", "redis://localhost:6379/0", env="REDIS_URL"),
            default_ttl=settings.number("redis", "default_ttl", 120, env="REDIS_DEFAULT_TTL"),
        ),
        logging=LoggingConfig(
            level=settings.text("logging", "level", "INFO", env="LOG_LEVEL"),
            directory=settings.text("logging", "directory", "logs"),
            file_name=settings.text("logging", "file_name", "bot.log"),
            max_bytes=settings.number("logging", "max_bytes", 10_000_000),
            backup_count=settings.number("logging", "backup_count", 10),
            json_console=settings.flag("logging", "json_console", False),
        ),
        tickets=TicketConfig(
            channel_name_max_length=settings.number("tickets", "channel_name_max_length", 25),
            close_delete_delay_seconds=settings.seconds("tickets", "close_delete_delay_seconds", 5.0),
            default_max_tickets_per_user=settings.number("tickets", "default_max_tickets_per_user", 3),
            creation_cooldown_seconds=settings.number("tickets", "creation_cooldown_seconds", 10),
            auto_close_sweep_minutes=settings.number("tickets", "auto_close_sweep_minutes", 10),
        ),
        transcripts=_transcript_section(settings),
        fastapi=FastApiConfig(
            enabled=settings.flag("fastapi", "enabled", False),
            host=settings.text("fastapi", "host", "0.0.0.0"),
            port=settings.number("fastapi", "port", 8000, env="PORT"),
            api_key=settings.text("fastapi", "api_key", "", env="API_KEY"),
        ),
        enabled_extensions=(
            [str(name) for name in extensions] if isinstance(extensions, list) else list(DEFAULT_EXTENSIONS)
        ),
    )
