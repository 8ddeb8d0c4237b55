from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from database.repositories import TicketRepository


class TicketNumberAssigner:
    """Hands out per-guild ticket numbers.

    ``next_number`` is ``count + 1``. Callers hold ``lock(guild_id)`` across
    number selection and row insertion so tickets created by this process never
    share a number; the ``(guild_id, number)`` unique constraint catches
    writers in other processes, after which ``recover_number`` skips past the
    highest number in use.
    """

    def __init__(self, ticket_repo: TicketRepository) -> None:
        self.ticket_repo = ticket_repo
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def lock(self, guild_id: int) -> AsyncIterator[None]:
        async with self._locks[guild_id]:
            yield

    async def next_number(self, guild_id: int) -> int:
        return await self.ticket_repo.count_by_guild(guild_id) + 1

    async def recover_number(self, guild_id: int) -> int:
        return await self.ticket_repo.max_number(guild_id) + 1
