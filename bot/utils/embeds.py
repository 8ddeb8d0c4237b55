from __future__ import annotations

import discord

from database.models import GuildSettings


def parse_colour(value: str, fallback: discord.Colour | None = None) -> discord.Colour:
    try:
        return discord.Colour.from_str(value)
    except (TypeError, ValueError):
        return fallback if fallback is not None else discord.Colour.blurple()


def footer_text(footer: str, text: str | None = None) -> str:
    if not text:
        return footer
    return f"{footer} | {text}" if footer else text


def guild_icon_url(guild: discord.Guild) -> str | None:
    return guild.icon.url if guild.icon else None


def settings_embed(
    settings: GuildSettings,
    guild: discord.Guild,
    *,
    title: str | None = None,
    description: str | None = None,
    success: bool = False,
    footer_extra: str | None = None,
) -> discord.Embed:
    colour = parse_colour(settings.success_colour if success else settings.colour)
    embed = discord.Embed(title=title, description=description, colour=colour)
    embed.set_footer(text=footer_text(settings.footer, footer_extra), icon_url=guild_icon_url(guild))
    return embed
