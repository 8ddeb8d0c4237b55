from __future__ import annotations

import logging

import discord
from discord.ext import commands

from core.bot import TicketBot
from services.events import TicketEvent, TicketEventKind
from utils.embeds import settings_embed

LOGGER = logging.getLogger(__name__)


class TicketsCog(commands.Cog):
    def __init__(self, bot: TicketBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.bot.ticket_service.events.subscribe(TicketEventKind.READY, self._on_ticket_ready)

    async def cog_unload(self) -> None:
        self.bot.ticket_service.events.unsubscribe(TicketEventKind.READY, self._on_ticket_ready)

    async def _on_ticket_ready(self, event: TicketEvent) -> None:
        LOGGER.debug("Ticket %s finished setup", event.ticket_id, extra={"ticket_id": event.ticket_id})

    @commands.hybrid_group(name="ticket", with_app_command=True, description="Ticket command group.")
    @commands.guild_only()
    async def ticket(self, ctx: commands.Context[TicketBot]) -> None:
        if ctx.invoked_subcommand is None:
            await ctx.reply(
                embed=discord.Embed(
                    title="Ticket Commands",
                    description=(
                        "`/ticket new <category> [topic]` to open a ticket\n"
                        "`/ticket close [number] [reason]` to close a ticket"
                    ),
                    colour=discord.Colour.blurple(),
                ),
                mention_author=False,
            )

    @ticket.command(name="new", description="Open a new ticket in a category.")
    async def ticket_new(
        self,
        ctx: commands.Context[TicketBot],
        category: discord.CategoryChannel,
        *,
        topic: str | None = None,
    ) -> None:
        assert ctx.guild is not None
        if ctx.interaction:
            await ctx.defer(ephemeral=True)
        record = await self.bot.ticket_service.create(ctx.guild.id, ctx.author.id, category.id, topic)
        settings = await self.bot.guild_repo.get_settings(ctx.guild.id)
        i18n = self.bot.i18n.get_locale(settings.locale)
        await ctx.reply(
            embed=settings_embed(
                settings,
                ctx.guild,
                title=i18n("commands.new.response.created.title"),
                description=i18n("commands.new.response.created.description", f"<#{record.id}>"),
                success=True,
            ),
            mention_author=False,
        )

    @ticket.command(name="close", description="Close this ticket, or a ticket by number.")
    async def ticket_close(
        self,
        ctx: commands.Context[TicketBot],
        number: int | None = None,
        *,
        reason: str | None = None,
    ) -> None:
        assert ctx.guild is not None
        ticket_ref = number if number is not None else ctx.channel.id
        record = await self.bot.ticket_service.close(
            ticket_ref,
            closer_id=ctx.author.id,
            guild_id=ctx.guild.id,
            reason=reason,
        )
        if record.id == ctx.channel.id:
            if ctx.interaction:
                await ctx.reply("\N{WHITE HEAVY CHECK MARK}", ephemeral=True)
            return
        settings = await self.bot.guild_repo.get_settings(ctx.guild.id)
        i18n = self.bot.i18n.get_locale(settings.locale)
        await ctx.reply(
            embed=settings_embed(
                settings,
                ctx.guild,
                title=i18n("commands.close.response.closed.title"),
                description=i18n("commands.close.response.closed.description", record.number),
                success=True,
            ),
            mention_author=False,
        )


async def setup(bot: TicketBot) -> None:
    await bot.add_cog(TicketsCog(bot))
