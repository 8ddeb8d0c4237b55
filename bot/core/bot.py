from __future__ import annotations

import logging
from pathlib import Path

import discord
from discord.ext import commands

from core.config import AppConfig
from core.errors import handle_app_command_error, handle_prefix_command_error
from database.base import Database
from database.migrations.runner import run_migrations
from database.repositories import (
    CategoryRepository,
    GuildRepository,
    MemberSnapshotRepository,
    TicketRepository,
)
from services.archive_service import ArchiveService
from services.ticket_service import TicketService, TicketServiceDeps
from utils.crypto import TextCipher
from utils.i18n import I18N

LOGGER = logging.getLogger(__name__)


class TicketBot(commands.Bot):
    def __init__(self, config: AppConfig) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.messages = True
        intents.message_content = True
        intents.reactions = True

        super().__init__(
            command_prefix=config.discord.prefix,
            intents=intents,
            application_id=config.discord.application_id,
            allowed_mentions=discord.AllowedMentions(everyone=True, roles=True, users=True, replied_user=False),
            help_command=None,
        )
        self.config = config
        self.root_dir = Path(__file__).resolve().parent.parent
        self.database = Database(
            url=config.database.url,
            timeout_seconds=config.database.timeout_seconds,
            pool_min_size=config.database.pool_min_size,
            pool_max_size=config.database.pool_max_size,
        )
        self.cipher = TextCipher(config.tickets.encryption_key)
        locales_dir = Path(config.i18n.directory) if config.i18n.directory else self.root_dir / "config" / "locales"
        self.i18n = I18N(locales_dir, config.i18n.default_locale)

        # Repositories and services are initialized during setup_hook.
        self.guild_repo: GuildRepository
        self.category_repo: CategoryRepository
        self.ticket_repo: TicketRepository
        self.member_repo: MemberSnapshotRepository
        self.archives: ArchiveService
        self.ticket_service: TicketService

    async def setup_hook(self) -> None:
        await self.database.connect()
        await run_migrations(self.database)

        self.guild_repo = GuildRepository(self.database)
        self.category_repo = CategoryRepository(self.database)
        self.ticket_repo = TicketRepository(self.database)
        self.member_repo = MemberSnapshotRepository(self.database)
        self.archives = ArchiveService(self.member_repo, self.cipher)

        deps = TicketServiceDeps(
            guild_repo=self.guild_repo,
            category_repo=self.category_repo,
            ticket_repo=self.ticket_repo,
            archives=self.archives,
            cipher=self.cipher,
            i18n=self.i18n,
        )
        self.ticket_service = TicketService(self, self.config, deps)
        await self.ticket_service.bootstrap_categories_from_config()

        for ext in self.config.enabled_extensions:
            try:
                await self.load_extension(ext)
                LOGGER.info("Loaded extension: %s", ext)
            except commands.ExtensionError:
                LOGGER.exception("Failed to load extension: %s", ext)

        if self.config.discord.sync_commands_on_start:
            synced = await self.tree.sync()
            LOGGER.info("Synced %s application commands", len(synced))

        self.tree.on_error = handle_app_command_error  # type: ignore[assignment]

    async def on_ready(self) -> None:
        LOGGER.info("Bot ready as %s (%s)", self.user, self.user.id if self.user else "n/a")
        activity = discord.Activity(type=discord.ActivityType.watching, name=self.config.discord.status_text)
        await self.change_presence(status=discord.Status.online, activity=activity)

    async def on_command_error(self, ctx: commands.Context[commands.Bot], error: commands.CommandError) -> None:
        if ctx.command and ctx.command.has_error_handler():
            return
        await handle_prefix_command_error(ctx, error)

    async def close(self) -> None:
        await super().close()
        await self.database.close()
