from __future__ import annotations

import logging

import discord

from database.models import TicketMemberSnapshot
from database.repositories import MemberSnapshotRepository
from utils.crypto import TextCipher

LOGGER = logging.getLogger(__name__)


class ArchiveService:
    def __init__(self, member_repo: MemberSnapshotRepository, cipher: TextCipher) -> None:
        self.member_repo = member_repo
        self.cipher = cipher

    async def update_member(self, ticket_id: int, member: discord.Member) -> TicketMemberSnapshot:
        """Record who took part in a ticket, with names encrypted at rest."""
        snapshot = TicketMemberSnapshot(
            ticket_id=ticket_id,
            user_id=member.id,
            display_name=self.cipher.encrypt(member.display_name),
            username=self.cipher.encrypt(member.name),
            avatar_url=member.display_avatar.url if member.display_avatar else None,
            bot=bool(member.bot),
        )
        await self.member_repo.upsert(snapshot)
        LOGGER.debug("Archived member %s for ticket %s", member.id, ticket_id)
        return snapshot
