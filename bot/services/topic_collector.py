from __future__ import annotations

import asyncio
import logging
from enum import Enum

import discord

LOGGER = logging.getLogger(__name__)


class CollectorState(str, Enum):
    AWAITING = "awaiting"
    RESOLVED = "resolved"


class CollectorOutcome(str, Enum):
    COLLECTED = "collected"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"


class TopicCollector:
    """Single-slot, time-boxed wait for one message from one user in one channel.

    The collector starts ``AWAITING`` and moves to ``RESOLVED`` exactly once:
    either the first qualifying message claims the slot inside the ``wait_for``
    check, or the timeout (or ``stop``) resolves it empty. Once resolved, no
    later message can be accepted even if it is dispatched before the waiter
    is torn down.
    """

    def __init__(
        self,
        client: discord.Client,
        channel_id: int,
        author_id: int,
        timeout: float,
    ) -> None:
        self.client = client
        self.channel_id = channel_id
        self.author_id = author_id
        self.timeout = timeout
        self.state = CollectorState.AWAITING
        self.outcome: CollectorOutcome | None = None
        self.message: discord.Message | None = None
        self._waiter: asyncio.Task[discord.Message] | None = None

    def _check(self, message: discord.Message) -> bool:
        if self.state is not CollectorState.AWAITING:
            return False
        if message.channel.id != self.channel_id or message.author.id != self.author_id:
            return False
        self._resolve(CollectorOutcome.COLLECTED)
        self.message = message
        return True

    def _resolve(self, outcome: CollectorOutcome) -> bool:
        if self.state is CollectorState.RESOLVED:
            return False
        self.state = CollectorState.RESOLVED
        self.outcome = outcome
        return True

    async def collect(self) -> discord.Message | None:
        if self.state is CollectorState.RESOLVED:
            return self.message
        self._waiter = asyncio.ensure_future(
            self.client.wait_for("message", check=self._check, timeout=self.timeout)
        )
        try:
            message = await self._waiter
        except asyncio.TimeoutError:
            self._resolve(CollectorOutcome.TIMED_OUT)
            LOGGER.debug("Topic collector timed out. channel=%s author=%s", self.channel_id, self.author_id)
            return None
        except asyncio.CancelledError:
            if self.outcome is CollectorOutcome.STOPPED:
                return None
            self._resolve(CollectorOutcome.STOPPED)
            raise
        finally:
            self._waiter = None
        self.message = message
        return message

    def stop(self) -> None:
        if self._resolve(CollectorOutcome.STOPPED) and self._waiter and not self._waiter.done():
            self._waiter.cancel()
