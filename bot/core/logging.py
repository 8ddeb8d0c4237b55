from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from core.config import LoggingConfig

PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Passed through ``extra=`` by the ticket services.
CONTEXT_FIELDS = ("ticket_id", "guild_id")

# Third-party loggers that are too chatty at the root level.
QUIET_LOGGERS = {
    "discord": logging.INFO,
    "discord.gateway": logging.WARNING,
    "discord.http": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "asyncpg": logging.WARNING,
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            {key: getattr(record, key) for key in CONTEXT_FIELDS if getattr(record, key, None) is not None}
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def _plain_formatter() -> logging.Formatter:
    return logging.Formatter(fmt=PLAIN_FORMAT, datefmt=DATE_FORMAT)


def _file_handler(config: LoggingConfig) -> logging.Handler:
    log_dir = Path(config.directory)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=log_dir / config.file_name,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(_plain_formatter())
    return handler


def configure_logging(config: LoggingConfig) -> None:
    console = logging.StreamHandler()
    console.setFormatter(JsonFormatter() if config.json_console else _plain_formatter())

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(console)
    root.addHandler(_file_handler(config))

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
