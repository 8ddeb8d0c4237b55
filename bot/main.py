from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from core.bot import TicketBot
from core.config import AppConfig, ConfigError, load_config
from core.logging import configure_logging

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config" / "config.yaml"


def resolve_config_path() -> Path:
    """Config file from ``TICKET_BOT_CONFIG``, else ``config/config.yaml`` beside this module."""
    override = os.getenv("TICKET_BOT_CONFIG", "").strip()
    return Path(override).expanduser() if override else DEFAULT_CONFIG_PATH


async def _run_bot(config: AppConfig) -> None:
    async with TicketBot(config=config) as bot:
        await bot.start(config.discord.token)


def main() -> None:
    config_path = resolve_config_path()
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise SystemExit(f"Invalid configuration ({config_path}): {exc}") from exc
    configure_logging(config.logging)
    LOGGER.info("Starting ticket bot with config %s", config_path)
    asyncio.run(_run_bot(config))


if __name__ == "__main__":
    main()
