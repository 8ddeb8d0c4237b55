from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from functools import partial
from typing import Any, TypeVar

import discord

from core.config import AppConfig
from core.errors import (
    CategoryFullError,
    CategoryNotFoundError,
    TicketNotFoundError,
    TicketNumberConflictError,
)
from database.models import GuildSettings, TicketCategory, TicketRecord
from database.repositories import CategoryRepository, GuildRepository, TicketRepository
from services.archive_service import ArchiveService
from services.events import TicketEvent, TicketEventBus, TicketEventKind
from services.numbering import TicketNumberAssigner
from services.topic_collector import TopicCollector
from utils.constants import (
    BROADCAST_MENTIONS,
    SYSTEM_PIN_SCAN_LIMIT,
    TOPIC_ACCEPTED_EMOJI,
    TOPIC_PROMPT_EMOJI,
)
from utils.crypto import TextCipher
from utils.embeds import settings_embed
from utils.i18n import I18N, Translator
from utils.naming import format_questions, render_name, render_opening_message

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class TicketServiceDeps:
    guild_repo: GuildRepository
    category_repo: CategoryRepository
    ticket_repo: TicketRepository
    archives: ArchiveService
    cipher: TextCipher
    i18n: I18N


@dataclass(slots=True)
class _SetupContext:
    record: TicketRecord
    category: TicketCategory
    guild: discord.Guild
    member: discord.Member
    channel: discord.TextChannel
    settings: GuildSettings
    i18n: Translator
    description: str
    opening: discord.Message | None = None


class TicketService:
    """Opens and closes ticket channels and keeps the ticket row in step with them.

    ``create`` does the ordered, must-succeed work (number, channel, permission
    overwrite, row) before returning, then hands the cosmetic setup of the
    channel to a background task registered under the ticket id. ``close``
    cancels that task if it is still running, posts the close notice, snapshots
    the pins and schedules the channel for deletion after a grace delay.
    """

    def __init__(self, client: discord.Client, config: AppConfig, deps: TicketServiceDeps) -> None:
        self.client = client
        self.config = config
        self.deps = deps
        self.events = TicketEventBus(max_listeners=config.tickets.max_listeners)
        self.numbering = TicketNumberAssigner(deps.ticket_repo)
        self._setup_tasks: dict[int, asyncio.Task[None]] = {}
        self._deletions: set[asyncio.Task[None]] = set()

    async def bootstrap_categories_from_config(self) -> None:
        for category_cfg in self.config.ticket_categories:
            await self.deps.guild_repo.ensure_guild(category_cfg.guild_id)
            await self.deps.category_repo.upsert(
                TicketCategory(
                    id=category_cfg.category_id,
                    guild_id=category_cfg.guild_id,
                    name=category_cfg.name,
                    name_format=category_cfg.name_format,
                    opening_message=category_cfg.opening_message,
                    ping=list(category_cfg.ping),
                    image=category_cfg.image,
                    claiming=category_cfg.claiming,
                    require_topic=category_cfg.require_topic,
                    opening_questions=(
                        list(category_cfg.opening_questions) if category_cfg.opening_questions else None
                    ),
                    roles=list(category_cfg.roles),
                )
            )
        if self.config.ticket_categories:
            LOGGER.info("Loaded %s ticket categories from config", len(self.config.ticket_categories))

    def pending_setup(self, ticket_id: int) -> asyncio.Task[None] | None:
        return self._setup_tasks.get(ticket_id)

    async def resolve(self, ticket_ref: int | str, guild_id: int | None = None) -> TicketRecord | None:
        try:
            ref = int(ticket_ref)
        except (TypeError, ValueError):
            return None
        if self.client.get_channel(ref) is not None:
            return await self.deps.ticket_repo.get_by_id(ref)
        if guild_id is None:
            return None
        return await self.deps.ticket_repo.get_by_number(guild_id, ref)

    async def create(
        self,
        guild_id: int,
        creator_id: int,
        category_id: int,
        topic: str | None = None,
    ) -> TicketRecord:
        topic = (topic or "").strip()

        category = await self.deps.category_repo.get(category_id)
        if not category:
            raise CategoryNotFoundError(f"Ticket category {category_id} does not exist")
        category_channel = await self._fetch_channel(category_id)
        if not isinstance(category_channel, discord.CategoryChannel):
            raise CategoryNotFoundError(f"Ticket category channel {category_id} does not exist")

        limit = self.config.tickets.category_channel_limit
        if len(category_channel.channels) >= limit:
            raise CategoryFullError(f"Ticket category has reached child channel limit ({limit})")

        guild = self.client.get_guild(guild_id) or await self.client.fetch_guild(guild_id)
        member = guild.get_member(creator_id) or await guild.fetch_member(creator_id)

        async with self.numbering.lock(guild_id):
            number = await self.numbering.next_number(guild_id)
            channel = await guild.create_text_channel(
                name=render_name(category.name_format, member.display_name, number),
                category=category_channel,
                topic=f"{member.mention} | {topic}" if topic else member.mention,
                reason=f"{member} requested a new ticket channel",
            )
            await channel.set_permissions(
                member,
                view_channel=True,
                read_message_history=True,
                send_messages=True,
                attach_files=True,
                reason=f"Ticket channel created by {member}",
            )
            await self._grant_staff_roles(guild, channel, category)
            record = await self._insert_ticket(
                TicketRecord(
                    id=channel.id,
                    number=number,
                    guild_id=guild_id,
                    category_id=category_id,
                    creator_id=creator_id,
                    topic=self.deps.cipher.encrypt_optional(topic),
                ),
                category,
                channel,
                member,
            )

        task = asyncio.create_task(
            self._prepare_ticket(record, category, guild, member, channel),
            name=f"ticket-setup-{record.id}",
        )
        self._setup_tasks[record.id] = task
        task.add_done_callback(partial(self._forget_setup, record.id))

        LOGGER.info(
            '%s created a new ticket in "%s"',
            member,
            guild.name,
            extra={"ticket_id": record.id, "guild_id": guild_id},
        )
        self.events.emit(TicketEvent(TicketEventKind.CREATE, record.id, creator_id))
        return record

    async def close(
        self,
        ticket_ref: int | str,
        closer_id: int | None = None,
        guild_id: int | None = None,
        reason: str | None = None,
    ) -> TicketRecord:
        record = await self.resolve(ticket_ref, guild_id)
        if not record:
            raise TicketNotFoundError(f'A ticket with the ID or number "{ticket_ref}" could not be resolved')
        if not record.open:
            LOGGER.info("Ticket %s is already closed", record.id, extra={"ticket_id": record.id})
            return record

        self._cancel_setup(record.id)
        self.events.emit(TicketEvent(TicketEventKind.BEFORE_CLOSE, record.id))

        reason = (reason or "").strip() or None
        guild = self.client.get_guild(record.guild_id) or await self.client.fetch_guild(record.guild_id)
        settings = await self.deps.guild_repo.get_settings(record.guild_id)
        i18n = self.deps.i18n.get_locale(settings.locale)
        channel = await self._fetch_channel(record.id)
        grace = f"{self.config.tickets.close_grace_seconds:g}"
        reason_suffix = f': "{reason}"' if reason else ""

        if closer_id is not None:
            member = guild.get_member(closer_id) or await guild.fetch_member(closer_id)
            await self.deps.archives.update_member(record.id, member)
            deletion_reason = f"Ticket channel closed by {member}{reason_suffix}"
            if channel:
                description = (
                    i18n("ticket.closed_by_member_with_reason.description", member.mention, reason, grace)
                    if reason
                    else i18n("ticket.closed_by_member.description", member.mention, grace)
                )
                embed = settings_embed(
                    settings, guild, title=i18n("ticket.closed.title"), description=description, success=True
                )
                embed.set_author(name=member.name, icon_url=member.display_avatar.url)
                await channel.send(embed=embed)
            LOGGER.info(
                "%s closed a ticket (%s)%s",
                member,
                record.id,
                reason_suffix,
                extra={"ticket_id": record.id, "guild_id": record.guild_id},
            )
        else:
            deletion_reason = f"Ticket channel closed{reason_suffix}"
            if channel:
                description = (
                    i18n("ticket.closed_with_reason.description", reason, grace)
                    if reason
                    else i18n("ticket.closed.description", grace)
                )
                await channel.send(
                    embed=settings_embed(
                        settings, guild, title=i18n("ticket.closed.title"), description=description, success=True
                    )
                )
            LOGGER.info(
                "A ticket was closed (%s)%s",
                record.id,
                reason_suffix,
                extra={"ticket_id": record.id, "guild_id": record.guild_id},
            )

        updated = await self.deps.ticket_repo.update(
            record.id,
            open=False,
            closed_by_id=closer_id,
            closed_reason=self.deps.cipher.encrypt_optional(reason),
            pinned_messages=await self._pinned_message_ids(record.id, channel),
        )
        # The channel only goes away once the row says the ticket is closed.
        if channel:
            self._schedule_deletion(channel, deletion_reason)
        self.events.emit(TicketEvent(TicketEventKind.CLOSE, record.id))
        return updated or record

    async def _pinned_message_ids(self, ticket_id: int, channel: discord.TextChannel | None) -> list[int]:
        if channel is None:
            return []
        try:
            return [message.id for message in await channel.pins()]
        except discord.HTTPException:
            LOGGER.warning("Failed to read pinned messages of ticket %s", ticket_id, extra={"ticket_id": ticket_id})
            return []

    async def _grant_staff_roles(
        self, guild: discord.Guild, channel: discord.TextChannel, category: TicketCategory
    ) -> None:
        for role_id in category.roles:
            role = guild.get_role(role_id)
            if role is None:
                LOGGER.warning(
                    "Staff role %s of category %s no longer exists", role_id, category.id, extra={"guild_id": guild.id}
                )
                continue
            await channel.set_permissions(
                role,
                view_channel=True,
                read_message_history=True,
                send_messages=True,
                attach_files=True,
                manage_messages=True,
                reason=f"Staff access for {category.name} tickets",
            )

    async def _insert_ticket(
        self,
        record: TicketRecord,
        category: TicketCategory,
        channel: discord.TextChannel,
        member: discord.Member,
    ) -> TicketRecord:
        attempts = max(1, self.config.tickets.number_retry_attempts)
        attempt = 1
        while True:
            try:
                return await self.deps.ticket_repo.create(record)
            except TicketNumberConflictError:
                if attempt >= attempts:
                    LOGGER.error(
                        "Giving up on ticket number after %s attempts. guild=%s", attempts, record.guild_id
                    )
                    try:
                        await channel.delete(reason="Ticket could not be numbered")
                    except discord.HTTPException:
                        LOGGER.warning("Failed to remove unnumbered ticket channel %s", channel.id)
                    raise
                attempt += 1
                taken = record.number
                record.number = await self.numbering.recover_number(record.guild_id)
                LOGGER.warning(
                    "Ticket number %s was taken in guild %s, retrying with %s",
                    taken,
                    record.guild_id,
                    record.number,
                )
                await channel.edit(
                    name=render_name(category.name_format, member.display_name, record.number),
                    reason="Ticket number was already taken",
                )

    async def _fetch_channel(self, channel_id: int) -> Any:
        channel = self.client.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self.client.fetch_channel(channel_id)
        except discord.NotFound:
            return None

    def _forget_setup(self, ticket_id: int, task: asyncio.Task[None]) -> None:
        if self._setup_tasks.get(ticket_id) is task:
            del self._setup_tasks[ticket_id]
        if task.cancelled():
            LOGGER.info("Setup of ticket %s was cancelled", ticket_id, extra={"ticket_id": ticket_id})
            return
        error = task.exception()
        if error is not None:
            LOGGER.error("Setup of ticket %s failed", ticket_id, exc_info=error, extra={"ticket_id": ticket_id})

    def _cancel_setup(self, ticket_id: int) -> None:
        task = self._setup_tasks.pop(ticket_id, None)
        if task and not task.done():
            task.cancel()

    def _schedule_deletion(self, channel: discord.abc.GuildChannel, reason: str) -> None:
        task = asyncio.create_task(self._delete_after_grace(channel, reason), name=f"ticket-delete-{channel.id}")
        self._deletions.add(task)
        task.add_done_callback(self._deletions.discard)

    async def _delete_after_grace(self, channel: discord.abc.GuildChannel, reason: str) -> None:
        await asyncio.sleep(self.config.tickets.close_grace_seconds)
        try:
            await channel.delete(reason=reason)
        except discord.HTTPException:
            LOGGER.warning("Failed to delete ticket channel %s", channel.id, extra={"ticket_id": channel.id})

    async def _best_effort(self, step: str, ticket_id: int, action: Awaitable[T]) -> T | None:
        try:
            return await action
        except Exception:
            LOGGER.exception("Ticket setup step failed. step=%s ticket=%s", step, ticket_id)
            return None

    async def _prepare_ticket(
        self,
        record: TicketRecord,
        category: TicketCategory,
        guild: discord.Guild,
        member: discord.Member,
        channel: discord.TextChannel,
    ) -> None:
        settings = await self.deps.guild_repo.get_settings(guild.id)
        ctx = _SetupContext(
            record=record,
            category=category,
            guild=guild,
            member=member,
            channel=channel,
            settings=settings,
            i18n=self.deps.i18n.get_locale(settings.locale),
            description=render_opening_message(category.opening_message, member.display_name, member.mention),
        )
        topic = self.deps.cipher.decrypt(record.topic) if record.topic else ""

        if category.ping:
            mentions = ", ".join(BROADCAST_MENTIONS.get(entry, f"<@&{entry}>") for entry in category.ping)
            await self._best_effort("ping", record.id, channel.send(mentions))

        if category.image:
            await self._best_effort("image", record.id, channel.send(category.image))

        ctx.opening = await self._best_effort(
            "opening message",
            record.id,
            channel.send(content=member.mention, embed=self._opening_embed(ctx, topic)),
        )
        if ctx.opening is not None:
            await self._best_effort("pin opening message", record.id, self._pin_opening_message(ctx))
            if category.claiming:
                await self._best_effort(
                    "claim reaction", record.id, ctx.opening.add_reaction(self.config.tickets.claim_emoji)
                )

        if category.require_topic and not topic:
            await self._collect_topic(ctx)

        if category.opening_questions:
            questions = ctx.i18n("commands.new.questions", format_questions(category.opening_questions))
            await self._best_effort(
                "opening questions",
                record.id,
                channel.send(embed=settings_embed(settings, guild, description=questions)),
            )

        self.events.emit(TicketEvent(TicketEventKind.READY, record.id, record.creator_id))

    def _opening_embed(self, ctx: _SetupContext, topic: str) -> discord.Embed:
        embed = settings_embed(ctx.settings, ctx.guild, description=ctx.description)
        embed.set_author(name=ctx.member.name, icon_url=ctx.member.display_avatar.url)
        if topic:
            embed.add_field(name=ctx.i18n("commands.new.opening_message.fields.topic"), value=topic, inline=False)
        return embed

    async def _pin_opening_message(self, ctx: _SetupContext) -> None:
        assert ctx.opening is not None
        await ctx.opening.pin(reason="Ticket opening message")
        await self.deps.ticket_repo.update(ctx.record.id, opening_message_id=ctx.opening.id)
        ctx.record.opening_message_id = ctx.opening.id

        try:
            async for message in ctx.channel.history(limit=SYSTEM_PIN_SCAN_LIMIT):
                if message.type is discord.MessageType.pins_add:
                    await message.delete()
                    break
        except discord.HTTPException:
            LOGGER.warning("Failed to delete system pin message", extra={"ticket_id": ctx.record.id})

    async def _collect_topic(self, ctx: _SetupContext) -> None:
        timeout = self.config.tickets.topic_timeout_seconds
        prompt = await self._best_effort(
            "topic prompt",
            ctx.record.id,
            ctx.channel.send(
                embed=settings_embed(
                    ctx.settings,
                    ctx.guild,
                    title=f"{TOPIC_PROMPT_EMOJI} {ctx.i18n('commands.new.request_topic.title')}",
                    description=ctx.i18n("commands.new.request_topic.description"),
                    footer_extra=ctx.i18n("collector_expires_in", f"{timeout:g}"),
                )
            ),
        )

        collector = TopicCollector(self.client, ctx.channel.id, ctx.record.creator_id, timeout)
        message = await collector.collect()
        topic = message.content.strip() if message is not None else ""
        if topic:
            await self._apply_topic(ctx, message, topic)
        elif message is not None:
            LOGGER.info("Ignoring empty topic message", extra={"ticket_id": ctx.record.id})
        else:
            LOGGER.info("No topic was provided before the collector expired", extra={"ticket_id": ctx.record.id})

        if prompt is not None:
            try:
                await prompt.delete()
            except discord.HTTPException:
                LOGGER.warning("Failed to delete topic collector message", extra={"ticket_id": ctx.record.id})

    async def _apply_topic(self, ctx: _SetupContext, message: discord.Message, topic: str) -> None:
        ticket_id = ctx.record.id
        encrypted = self.deps.cipher.encrypt(topic)
        stored = await self._best_effort(
            "store topic", ticket_id, self.deps.ticket_repo.update(ticket_id, topic=encrypted)
        )
        if stored is not None:
            ctx.record.topic = encrypted
        await self._best_effort(
            "channel topic",
            ticket_id,
            ctx.channel.edit(topic=f"{ctx.member.mention} | {topic}", reason="User updated ticket topic"),
        )
        if ctx.opening is not None:
            await self._best_effort(
                "opening message topic", ticket_id, ctx.opening.edit(embed=self._opening_embed(ctx, topic))
            )
        await self._best_effort("topic reaction", ticket_id, message.add_reaction(TOPIC_ACCEPTED_EMOJI))
