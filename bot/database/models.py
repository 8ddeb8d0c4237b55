from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class GuildSettings:
    guild_id: int
    locale: str = "en-GB"
    colour: str = "#009999"
    success_colour: str = "#4caf50"
    footer: str = "Discord Tickets"


@dataclass(slots=True)
class TicketCategory:
    id: int
    guild_id: int
    name: str
    name_format: str
    opening_message: str
    ping: list[str] = field(default_factory=list)
    image: str | None = None
    claiming: bool = False
    require_topic: bool = False
    opening_questions: list[str] | None = None
    roles: list[int] = field(default_factory=list)


@dataclass(slots=True)
class TicketRecord:
    id: int
    number: int
    guild_id: int
    category_id: int
    creator_id: int
    topic: str | None = None
    open: bool = True
    opening_message_id: int | None = None
    closed_by_id: int | None = None
    closed_reason: str | None = None
    pinned_messages: list[int] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(slots=True)
class TicketMemberSnapshot:
    ticket_id: int
    user_id: int
    display_name: str
    username: str
    avatar_url: str | None = None
    bot: bool = False
