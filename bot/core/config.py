from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv


class ConfigError(RuntimeError):
    pass


@dataclass(slots=True)
class DiscordConfig:
    token: str
    prefix: str = "!"
    application_id: int | None = None
    sync_commands_on_start: bool = True
    status_text: str = "your tickets"


@dataclass(slots=True)
class DatabaseConfig:
    url: str = "sqlite:///./data/tickets.db"
    pool_min_size: int = 2
    pool_max_size: int = 10
    timeout_seconds: int = 30


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    directory: str = "logs"
    file_name: str = "tickets.log"
    max_bytes: int = 10_000_000
    backup_count: int = 10
    json_console: bool = False


@dataclass(slots=True)
class I18NConfig:
    default_locale: str = "en-GB"
    # Empty falls back to the bundled `config/locales` directory.
    directory: str = ""


@dataclass(slots=True)
class TicketsConfig:
    encryption_key: str = ""
    max_listeners: int = 10
    close_grace_seconds: float = 5.0
    topic_timeout_seconds: float = 120.0
    category_channel_limit: int = 50
    claim_emoji: str = "🙌"
    number_retry_attempts: int = 3


@dataclass(slots=True)
class TicketCategoryConfig:
    category_id: int
    guild_id: int
    name: str
    name_format: str = "ticket-{number}"
    opening_message: str = (
        "Hello {name}, thank you for creating a ticket. "
        "A member of staff will soon be available to assist you."
    )
    ping: list[str] = field(default_factory=list)
    image: str | None = None
    claiming: bool = False
    require_topic: bool = False
    opening_questions: list[str] | None = None
    roles: list[int] = field(default_factory=list)


@dataclass(slots=True)
class AppConfig:
    discord: DiscordConfig
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    i18n: I18NConfig = field(default_factory=I18NConfig)
    tickets: TicketsConfig = field(default_factory=TicketsConfig)
    enabled_extensions: list[str] = field(default_factory=lambda: ["cogs.tickets"])
    ticket_categories: list[TicketCategoryConfig] = field(default_factory=list)


def _get_env_str(key: str, fallback: str | None = None) -> str | None:
    value = os.getenv(key)
    if value is None:
        return fallback
    cleaned = value.strip()
    return cleaned if cleaned else fallback


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _deep_get(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    node: Any = data
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    return raw


def _load_category_configs(raw_categories: list[dict[str, Any]]) -> list[TicketCategoryConfig]:
    categories: list[TicketCategoryConfig] = []
    for row in raw_categories:
        if row.get("category_id") is None or row.get("guild_id") is None:
            raise ConfigError("Ticket categories need both category_id and guild_id")
        questions = row.get("opening_questions")
        categories.append(
            TicketCategoryConfig(
                category_id=int(row["category_id"]),
                guild_id=int(row["guild_id"]),
                name=str(row.get("name", "Support")),
                name_format=str(row.get("name_format", "ticket-{number}")),
                opening_message=str(
                    row.get(
                        "opening_message",
                        "Hello {name}, thank you for creating a ticket. "
                        "A member of staff will soon be available to assist you.",
                    )
                ),
                ping=[str(entry) for entry in list(row.get("ping", []))],
                image=str(row["image"]) if row.get("image") else None,
                claiming=_as_bool(row.get("claiming"), False),
                require_topic=_as_bool(row.get("require_topic"), False),
                opening_questions=[str(q) for q in questions] if questions else None,
                roles=[int(role_id) for role_id in list(row.get("roles", []))],
            )
        )
    return categories


def load_config(config_path: Path) -> AppConfig:
    env_path = config_path.parent.parent / ".env"
    load_dotenv(env_path)
    raw = _load_yaml(config_path)

    discord_token = _get_env_str("DISCORD_TOKEN", _deep_get(raw, "discord", "token"))
    if not discord_token or "${" in discord_token:
        raise ConfigError("DISCORD_TOKEN is required")

    encryption_key = _get_env_str("ENCRYPTION_KEY", _deep_get(raw, "tickets", "encryption_key"))
    if not encryption_key or "${" in encryption_key:
        raise ConfigError("ENCRYPTION_KEY is required")

    discord_cfg = DiscordConfig(
        token=discord_token,
        prefix=str(_get_env_str("BOT_PREFIX", _deep_get(raw, "discord", "prefix", default="!"))),
        application_id=(
            int(_get_env_str("DISCORD_APPLICATION_ID"))
            if _get_env_str("DISCORD_APPLICATION_ID")
            else _deep_get(raw, "discord", "application_id")
        ),
        sync_commands_on_start=_as_bool(
            _get_env_str("SYNC_COMMANDS"),
            _as_bool(_deep_get(raw, "discord", "sync_commands_on_start"), True),
        ),
        status_text=str(_deep_get(raw, "discord", "status_text", default="your tickets")),
    )

    database_cfg = DatabaseConfig(
        url=str(_get_env_str("DATABASE_URL", _deep_get(raw, "database", "url", default="sqlite:///./data/tickets.db"))),
        pool_min_size=_as_int(
            _get_env_str("DB_POOL_MIN", None),
            _as_int(_deep_get(raw, "database", "pool_min_size"), 2),
        ),
        pool_max_size=_as_int(
            _get_env_str("DB_POOL_MAX", None),
            _as_int(_deep_get(raw, "database", "pool_max_size"), 10),
        ),
        timeout_seconds=_as_int(
            _get_env_str("DB_TIMEOUT_SECONDS", None),
            _as_int(_deep_get(raw, "database", "timeout_seconds"), 30),
        ),
    )

    logging_cfg = LoggingConfig(
        level=str(_get_env_str("LOG_LEVEL", _deep_get(raw, "logging", "level", default="INFO"))),
        directory=str(_deep_get(raw, "logging", "directory", default="logs")),
        file_name=str(_deep_get(raw, "logging", "file_name", default="tickets.log")),
        max_bytes=_as_int(_deep_get(raw, "logging", "max_bytes"), 10_000_000),
        backup_count=_as_int(_deep_get(raw, "logging", "backup_count"), 10),
        json_console=_as_bool(_deep_get(raw, "logging", "json_console"), False),
    )

    i18n_cfg = I18NConfig(
        default_locale=str(_deep_get(raw, "i18n", "default_locale", default="en-GB")),
        directory=str(
            _get_env_str("LOCALES_DIR", _deep_get(raw, "i18n", "directory")) or config_path.parent / "locales"
        ),
    )

    tickets_cfg = TicketsConfig(
        encryption_key=encryption_key,
        max_listeners=_as_int(_deep_get(raw, "tickets", "max_listeners"), 10),
        close_grace_seconds=_as_float(_deep_get(raw, "tickets", "close_grace_seconds"), 5.0),
        topic_timeout_seconds=_as_float(_deep_get(raw, "tickets", "topic_timeout_seconds"), 120.0),
        category_channel_limit=_as_int(_deep_get(raw, "tickets", "category_channel_limit"), 50),
        claim_emoji=str(_deep_get(raw, "tickets", "claim_emoji", default="🙌")),
        number_retry_attempts=_as_int(_deep_get(raw, "tickets", "number_retry_attempts"), 3),
    )

    enabled_extensions = [
        str(ext) for ext in list(_deep_get(raw, "enabled_extensions", default=["cogs.tickets"]))
    ]

    category_rows = list(_deep_get(raw, "ticket_categories", default=[]))
    category_cfgs = _load_category_configs(category_rows)

    return AppConfig(
        discord=discord_cfg,
        database=database_cfg,
        logging=logging_cfg,
        i18n=i18n_cfg,
        tickets=tickets_cfg,
        enabled_extensions=enabled_extensions,
        ticket_categories=category_cfgs,
    )
