from __future__ import annotations

import logging
from dataclasses import dataclass

import discord
from discord import app_commands
from discord.ext import commands

LOGGER = logging.getLogger(__name__)


class BotError(RuntimeError):
    user_message: str = "An unexpected error occurred."


@dataclass(slots=True)
class CategoryNotFoundError(BotError):
    user_message: str = "That ticket category does not exist."


@dataclass(slots=True)
class CategoryFullError(BotError):
    user_message: str = "That ticket category has reached its channel limit."


@dataclass(slots=True)
class TicketNotFoundError(BotError):
    user_message: str = "The requested ticket could not be found."


@dataclass(slots=True)
class TicketNumberConflictError(BotError):
    user_message: str = "Another ticket took this number. Please try again."


CategoryNotFound = CategoryNotFoundError
CategoryFull = CategoryFullError
TicketNotFound = TicketNotFoundError


async def send_error_response(
    target: commands.Context[commands.Bot] | discord.Interaction[commands.Bot], message: str
) -> None:
    embed = discord.Embed(title="Error", description=message, color=discord.Color.red())
    if isinstance(target, commands.Context):
        await target.reply(embed=embed, mention_author=False)
        return
    if target.response.is_done():
        await target.followup.send(embed=embed, ephemeral=True)
    else:
        await target.response.send_message(embed=embed, ephemeral=True)


def _unwrap(error: Exception) -> Exception:
    # Hybrid and app command errors can wrap the real exception more than once.
    while isinstance(getattr(error, "original", None), Exception):
        error = error.original  # type: ignore[attr-defined]
    return error


def describe_error(error: Exception) -> tuple[str, bool]:
    """Return the message shown to the user and whether the error was expected."""
    error = _unwrap(error)
    if isinstance(error, BotError):
        return error.user_message, True
    if isinstance(error, (commands.CommandOnCooldown, app_commands.CommandOnCooldown)):
        return f"Cooldown active. Retry in {error.retry_after:.1f} seconds.", True
    if isinstance(error, (commands.MissingPermissions, app_commands.MissingPermissions)):
        return "You are missing required Discord permissions.", True
    if isinstance(error, (commands.CheckFailure, app_commands.CheckFailure)):
        return "You are not authorized for this command.", True
    if isinstance(error, commands.ChannelNotFound):
        return "That ticket category does not exist.", True
    if isinstance(error, (commands.UserInputError, app_commands.TransformerError)):
        return "Command argument was invalid.", True
    return "An unexpected command error occurred.", False


def _log_command_error(
    kind: str,
    command: str | None,
    guild_id: int | None,
    user_id: int | None,
    error: Exception,
    expected: bool,
) -> None:
    if expected:
        LOGGER.info(
            "%s command rejected. command=%s guild=%s user=%s reason=%s",
            kind, command, guild_id, user_id, _unwrap(error),
        )
        return
    LOGGER.error(
        "%s command failed. command=%s guild=%s user=%s",
        kind, command, guild_id, user_id,
        exc_info=error,
    )


async def handle_prefix_command_error(
    ctx: commands.Context[commands.Bot], error: commands.CommandError
) -> None:
    if isinstance(error, commands.CommandNotFound):
        return
    message, expected = describe_error(error)
    _log_command_error(
        "Prefix",
        getattr(ctx.command, "qualified_name", None),
        getattr(ctx.guild, "id", None),
        ctx.author.id,
        error,
        expected,
    )
    await send_error_response(ctx, message)


async def handle_app_command_error(
    interaction: discord.Interaction[commands.Bot], error: app_commands.AppCommandError
) -> None:
    message, expected = describe_error(error)
    _log_command_error(
        "Slash",
        getattr(interaction.command, "qualified_name", None),
        getattr(interaction.guild, "id", None),
        interaction.user.id if interaction.user else None,
        error,
        expected,
    )
    await send_error_response(interaction, message)
