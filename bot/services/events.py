from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

LOGGER = logging.getLogger(__name__)


class TicketEventKind(str, Enum):
    CREATE = "create"
    READY = "ready"
    BEFORE_CLOSE = "before_close"
    CLOSE = "close"


@dataclass(slots=True, frozen=True)
class TicketEvent:
    kind: TicketEventKind
    ticket_id: int
    creator_id: int | None = None


TicketListener = Callable[[TicketEvent], Awaitable[None]]


class TicketEventBus:
    """Publish-only notification channel for ticket lifecycle events.

    Listeners run as their own tasks, so an emitter never waits on (or can be
    vetoed by) a subscriber. Listener failures are logged and dropped.
    """

    def __init__(self, max_listeners: int = 10) -> None:
        self.max_listeners = max_listeners
        self._listeners: dict[TicketEventKind, list[TicketListener]] = {kind: [] for kind in TicketEventKind}
        self._running: set[asyncio.Task[None]] = set()

    def subscribe(self, kind: TicketEventKind, listener: TicketListener) -> None:
        listeners = self._listeners[kind]
        if len(listeners) >= self.max_listeners:
            raise ValueError(f"Listener limit ({self.max_listeners}) reached for {kind.value} events")
        listeners.append(listener)

    def unsubscribe(self, kind: TicketEventKind, listener: TicketListener) -> None:
        try:
            self._listeners[kind].remove(listener)
        except ValueError:
            pass

    def listener_count(self, kind: TicketEventKind) -> int:
        return len(self._listeners[kind])

    def emit(self, event: TicketEvent) -> None:
        for listener in list(self._listeners[event.kind]):
            task = asyncio.create_task(self._deliver(listener, event))
            self._running.add(task)
            task.add_done_callback(self._running.discard)

    async def _deliver(self, listener: TicketListener, event: TicketEvent) -> None:
        try:
            await listener(event)
        except Exception:
            LOGGER.exception(
                "Ticket event listener failed. kind=%s ticket=%s",
                event.kind.value,
                event.ticket_id,
            )
