from __future__ import annotations

import json
from typing import Any

from core.errors import TicketNumberConflictError
from database.base import UNIQUE_VIOLATIONS, Database
from database.models import GuildSettings, TicketCategory, TicketMemberSnapshot, TicketRecord


def _json_load(value: str | None, default: Any) -> Any:
    if value is None:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


def _json_dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, separators=(",", ":"))


class GuildRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def ensure_guild(self, guild_id: int) -> None:
        await self.db.execute(
            """
            INSERT INTO guild_settings(guild_id)
            VALUES (?)
            ON CONFLICT(guild_id) DO NOTHING;
            """,
            [guild_id],
        )

    async def get_settings(self, guild_id: int) -> GuildSettings:
        await self.ensure_guild(guild_id)
        row = await self.db.fetchone(
            "SELECT * FROM guild_settings WHERE guild_id = ?;",
            [guild_id],
        )
        if not row:
            return GuildSettings(guild_id=guild_id)
        return GuildSettings(
            guild_id=int(row["guild_id"]),
            locale=row["locale"],
            colour=row["colour"],
            success_colour=row["success_colour"],
            footer=row["footer"],
        )


class CategoryRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def upsert(self, category: TicketCategory) -> None:
        await self.db.execute(
            """
            INSERT INTO ticket_categories (
                id, guild_id, name, name_format, opening_message, ping_json, image,
                claiming, require_topic, opening_questions_json, roles_json, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                name_format = excluded.name_format,
                opening_message = excluded.opening_message,
                ping_json = excluded.ping_json,
                image = excluded.image,
                claiming = excluded.claiming,
                require_topic = excluded.require_topic,
                opening_questions_json = excluded.opening_questions_json,
                roles_json = excluded.roles_json,
                updated_at = CURRENT_TIMESTAMP;
            """,
            [
                category.id,
                category.guild_id,
                category.name,
                category.name_format,
                category.opening_message,
                _json_dump(category.ping),
                category.image,
                category.claiming,
                category.require_topic,
                _json_dump(category.opening_questions) if category.opening_questions else None,
                _json_dump(category.roles),
            ],
        )

    async def get(self, category_id: int) -> TicketCategory | None:
        row = await self.db.fetchone(
            "SELECT * FROM ticket_categories WHERE id = ?;",
            [category_id],
        )
        if not row:
            return None
        questions = _json_load(row["opening_questions_json"], None)
        return TicketCategory(
            id=int(row["id"]),
            guild_id=int(row["guild_id"]),
            name=row["name"],
            name_format=row["name_format"],
            opening_message=row["opening_message"],
            ping=[str(x) for x in _json_load(row["ping_json"], [])],
            image=row["image"],
            claiming=bool(row["claiming"]),
            require_topic=bool(row["require_topic"]),
            opening_questions=[str(q) for q in questions] if questions else None,
            roles=[int(x) for x in _json_load(row["roles_json"], [])],
        )


class TicketRepository:
    # Python attribute -> column for the fields that may change after creation.
    MUTABLE_COLUMNS = {
        "topic": "topic",
        "open": "is_open",
        "opening_message_id": "opening_message_id",
        "closed_by_id": "closed_by_id",
        "closed_reason": "closed_reason",
        "pinned_messages": "pinned_messages_json",
    }

    def __init__(self, db: Database) -> None:
        self.db = db

    async def create(self, ticket: TicketRecord) -> TicketRecord:
        try:
            await self.db.execute(
                """
                INSERT INTO tickets(
                    id, number, guild_id, category_id, creator_id, topic, is_open,
                    opening_message_id, closed_by_id, closed_reason, pinned_messages_json
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                [
                    ticket.id,
                    ticket.number,
                    ticket.guild_id,
                    ticket.category_id,
                    ticket.creator_id,
                    ticket.topic,
                    ticket.open,
                    ticket.opening_message_id,
                    ticket.closed_by_id,
                    ticket.closed_reason,
                    _json_dump(ticket.pinned_messages),
                ],
            )
        except UNIQUE_VIOLATIONS as exc:
            raise TicketNumberConflictError(
                f"Ticket number {ticket.number} is already taken in guild {ticket.guild_id}"
            ) from exc
        stored = await self.get_by_id(ticket.id)
        return stored or ticket

    async def get_by_id(self, ticket_id: int) -> TicketRecord | None:
        row = await self.db.fetchone("SELECT * FROM tickets WHERE id = ?;", [ticket_id])
        if not row:
            return None
        return self._row_to_ticket(row)

    async def get_by_number(self, guild_id: int, number: int) -> TicketRecord | None:
        row = await self.db.fetchone(
            "SELECT * FROM tickets WHERE guild_id = ? AND number = ?;",
            [guild_id, number],
        )
        if not row:
            return None
        return self._row_to_ticket(row)

    async def count_by_guild(self, guild_id: int) -> int:
        value = await self.db.fetchval(
            "SELECT COUNT(*) AS total FROM tickets WHERE guild_id = ?;",
            [guild_id],
            default=0,
        )
        return int(value)

    async def max_number(self, guild_id: int) -> int:
        value = await self.db.fetchval(
            "SELECT MAX(number) AS highest FROM tickets WHERE guild_id = ?;",
            [guild_id],
            default=0,
        )
        return int(value)

    async def update(self, ticket_id: int, **fields: Any) -> TicketRecord | None:
        unknown = set(fields) - set(self.MUTABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update ticket fields: {', '.join(sorted(unknown))}")
        if not fields:
            return await self.get_by_id(ticket_id)

        assignments: list[str] = []
        params: list[Any] = []
        for key, value in fields.items():
            assignments.append(f"{self.MUTABLE_COLUMNS[key]} = ?")
            params.append(_json_dump(value) if key == "pinned_messages" else value)
        params.append(ticket_id)
        await self.db.execute(
            f"""
            UPDATE tickets
            SET {", ".join(assignments)}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?;
            """,
            params,
        )
        return await self.get_by_id(ticket_id)

    def _row_to_ticket(self, row: dict[str, Any]) -> TicketRecord:
        return TicketRecord(
            id=int(row["id"]),
            number=int(row["number"]),
            guild_id=int(row["guild_id"]),
            category_id=int(row["category_id"]),
            creator_id=int(row["creator_id"]),
            topic=row["topic"],
            open=bool(row["is_open"]),
            opening_message_id=(
                int(row["opening_message_id"]) if row["opening_message_id"] is not None else None
            ),
            closed_by_id=int(row["closed_by_id"]) if row["closed_by_id"] is not None else None,
            closed_reason=row["closed_reason"],
            pinned_messages=[int(x) for x in _json_load(row["pinned_messages_json"], [])],
            created_at=str(row["created_at"]) if row["created_at"] is not None else None,
            updated_at=str(row["updated_at"]) if row["updated_at"] is not None else None,
        )


class MemberSnapshotRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def upsert(self, snapshot: TicketMemberSnapshot) -> None:
        await self.db.execute(
            """
            INSERT INTO ticket_members(ticket_id, user_id, display_name, username, avatar_url, bot)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(ticket_id, user_id) DO UPDATE SET
                display_name = excluded.display_name,
                username = excluded.username,
                avatar_url = excluded.avatar_url,
                bot = excluded.bot,
                updated_at = CURRENT_TIMESTAMP;
            """,
            [
                snapshot.ticket_id,
                snapshot.user_id,
                snapshot.display_name,
                snapshot.username,
                snapshot.avatar_url,
                snapshot.bot,
            ],
        )

    async def list_for_ticket(self, ticket_id: int) -> list[TicketMemberSnapshot]:
        rows = await self.db.fetchall(
            "SELECT * FROM ticket_members WHERE ticket_id = ? ORDER BY user_id ASC;",
            [ticket_id],
        )
        return [
            TicketMemberSnapshot(
                ticket_id=int(row["ticket_id"]),
                user_id=int(row["user_id"]),
                display_name=row["display_name"],
                username=row["username"],
                avatar_url=row["avatar_url"],
                bot=bool(row["bot"]),
            )
            for row in rows
        ]
