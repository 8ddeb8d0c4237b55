from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
import pytest_asyncio

from core.config import AppConfig, DiscordConfig, TicketsConfig
from database.base import Database
from database.migrations.runner import run_migrations
from database.models import TicketCategory
from database.repositories import (
    CategoryRepository,
    GuildRepository,
    MemberSnapshotRepository,
    TicketRepository,
)
from services.archive_service import ArchiveService
from services.events import TicketEvent, TicketEventKind
from services.ticket_service import TicketService, TicketServiceDeps
from utils.crypto import TextCipher
from utils.i18n import I18N

LOCALES_DIR = Path(__file__).resolve().parents[1] / "config" / "locales"

GUILD_ID = 123
CATEGORY_ID = 555
CREATOR_ID = 999
STAFF_ID = 42


def _not_found() -> discord.NotFound:
    return discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Channel")


async def _iterate(items: list[Any]) -> AsyncIterator[Any]:
    for item in items:
        yield item


def make_member(member_id: int, display_name: str) -> MagicMock:
    member = MagicMock()
    member.id = member_id
    member.display_name = display_name
    member.name = display_name.lower()
    member.mention = f"<@{member_id}>"
    member.bot = False
    member.display_avatar.url = f"https://cdn.example/avatars/{member_id}.png"
    member.__str__.return_value = display_name.lower()
    return member


class FakeDiscord:
    """In-memory stand-in for the handful of discord.py calls the ticket service makes."""

    def __init__(self) -> None:
        self._ids = itertools.count(10_000)
        self.channels: dict[int, Any] = {}
        self.created: list[MagicMock] = []
        # (author_id, content) pairs posted into the newest ticket channel while a topic is awaited.
        self.replies: list[tuple[int, str]] = []
        self.history: list[MagicMock] = []
        # ("send" | "delete", message id) in the order the service performed them.
        self.timeline: list[tuple[str, int]] = []
        self.member = make_member(CREATOR_ID, "Ava")
        self.staff = make_member(STAFF_ID, "Morgan")
        self.members = {CREATOR_ID: self.member, STAFF_ID: self.staff}

        self.category_channel = MagicMock(spec=discord.CategoryChannel)
        self.category_channel.id = CATEGORY_ID
        self.category_channel.channels = []
        self.channels[CATEGORY_ID] = self.category_channel

        self.guild = MagicMock()
        self.guild.id = GUILD_ID
        self.guild.name = "Test Guild"
        self.guild.icon = None
        self.guild.get_member = MagicMock(side_effect=self.members.get)
        self.guild.fetch_member = AsyncMock(side_effect=lambda member_id: self.members[member_id])
        self.guild.create_text_channel = AsyncMock(side_effect=self._create_text_channel)

        self.client = MagicMock()
        self.client.get_channel = MagicMock(side_effect=self.channels.get)
        self.client.fetch_channel = AsyncMock(side_effect=self._fetch_channel)
        self.client.get_guild = MagicMock(return_value=self.guild)
        self.client.wait_for = AsyncMock(side_effect=self._wait_for)

    def next_id(self) -> int:
        return next(self._ids)

    def make_message(self, content: str | None = None, author_id: int | None = None, channel_id: int = 0) -> MagicMock:
        message = MagicMock()
        message.id = self.next_id()
        message.content = content
        message.type = discord.MessageType.default
        message.author.id = author_id
        message.channel.id = channel_id
        message.pin = AsyncMock()
        message.edit = AsyncMock()
        message.delete = AsyncMock(side_effect=lambda *args, **kwargs: self.timeline.append(("delete", message.id)))
        message.add_reaction = AsyncMock()
        return message

    def make_text_channel(self, channel_id: int, name: str = "ticket") -> MagicMock:
        channel = MagicMock()
        channel.id = channel_id
        channel.name = name
        channel.mention = f"<#{channel_id}>"
        channel.sent = []

        async def send(content: str | None = None, **kwargs: Any) -> MagicMock:
            message = self.make_message(content=content, channel_id=channel_id)
            message.embed = kwargs.get("embed")
            channel.sent.append(message)
            self.timeline.append(("send", message.id))
            return message

        channel.send = AsyncMock(side_effect=send)
        channel.set_permissions = AsyncMock()
        channel.edit = AsyncMock()
        channel.delete = AsyncMock()
        channel.pins = AsyncMock(side_effect=lambda: [m for m in channel.sent if m.pin.await_count])
        channel.history = MagicMock(side_effect=lambda **kwargs: _iterate(self.history))
        return channel

    async def _create_text_channel(self, name: str, **kwargs: Any) -> MagicMock:
        await asyncio.sleep(0)
        channel = self.make_text_channel(self.next_id(), name)
        channel.creation_kwargs = kwargs
        self.channels[channel.id] = channel
        self.created.append(channel)
        return channel

    async def _fetch_channel(self, channel_id: int) -> Any:
        if channel_id in self.channels:
            return self.channels[channel_id]
        raise _not_found()

    async def _wait_for(self, event: str, *, check: Any, timeout: float) -> Any:
        assert event == "message"
        channel_id = self.created[-1].id if self.created else 0
        for author_id, content in self.replies:
            message = self.make_message(content=content, author_id=author_id, channel_id=channel_id)
            if check(message):
                return message
        await asyncio.sleep(timeout)
        raise asyncio.TimeoutError

    def forget_channel(self, channel_id: int) -> None:
        self.channels.pop(channel_id, None)


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[TicketEvent] = []

    async def __call__(self, event: TicketEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[TicketEventKind]:
        return [event.kind for event in self.events]


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    db = Database(url=f"sqlite:///{tmp_path / 'tickets.db'}")
    await db.connect()
    await run_migrations(db)
    yield db
    await db.close()


@pytest.fixture
def cipher() -> TextCipher:
    return TextCipher("test-secret")


@pytest.fixture
def fake_discord() -> FakeDiscord:
    return FakeDiscord()


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        discord=DiscordConfig(token="x"),
        tickets=TicketsConfig(
            encryption_key="test-secret",
            close_grace_seconds=0.01,
            topic_timeout_seconds=0.05,
        ),
    )


@pytest.fixture
def category() -> TicketCategory:
    return TicketCategory(
        id=CATEGORY_ID,
        guild_id=GUILD_ID,
        name="Support",
        name_format="ticket-{name}-{number}",
        opening_message="Hello {name}, thanks for reaching out {mention}.",
    )


@pytest_asyncio.fixture
async def service(
    database: Database,
    cipher: TextCipher,
    fake_discord: FakeDiscord,
    app_config: AppConfig,
    category: TicketCategory,
) -> TicketService:
    deps = TicketServiceDeps(
        guild_repo=GuildRepository(database),
        category_repo=CategoryRepository(database),
        ticket_repo=TicketRepository(database),
        archives=ArchiveService(MemberSnapshotRepository(database), cipher),
        cipher=cipher,
        i18n=I18N(LOCALES_DIR, "en-GB"),
    )
    await deps.category_repo.upsert(category)
    return TicketService(fake_discord.client, app_config, deps)


@pytest.fixture
def recorder(service: TicketService) -> EventRecorder:
    rec = EventRecorder()
    for kind in TicketEventKind:
        service.events.subscribe(kind, rec)
    return rec


async def settle(service: TicketService, ticket_id: int) -> None:
    task = service.pending_setup(ticket_id)
    if task is not None:
        await task
    # Let event listener tasks run.
    await asyncio.sleep(0)
