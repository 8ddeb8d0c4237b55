from __future__ import annotations

import asyncio
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest

from services.topic_collector import CollectorOutcome, CollectorState, TopicCollector


class DispatchingClient:
    """Mimics ``discord.Client.wait_for``: checks run as events are dispatched."""

    def __init__(self) -> None:
        self._waiters: list[tuple[asyncio.Future[Any], Callable[[Any], bool]]] = []

    async def wait_for(self, event: str, *, check: Callable[[Any], bool], timeout: float) -> Any:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._waiters.append((future, check))
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            self._waiters = [(f, c) for f, c in self._waiters if f is not future]

    def dispatch(self, message: Any) -> None:
        for future, check in list(self._waiters):
            if future.done():
                continue
            if check(message):
                future.set_result(message)


async def _let_waiter_register() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


def _message(content: str, channel_id: int = 1, author_id: int = 2) -> SimpleNamespace:
    return SimpleNamespace(
        content=content,
        channel=SimpleNamespace(id=channel_id),
        author=SimpleNamespace(id=author_id),
    )


@pytest.mark.asyncio
async def test_collects_first_matching_message() -> None:
    client = DispatchingClient()
    collector = TopicCollector(client, channel_id=1, author_id=2, timeout=1.0)
    task = asyncio.create_task(collector.collect())
    await _let_waiter_register()

    client.dispatch(_message("wrong channel", channel_id=9))
    client.dispatch(_message("wrong author", author_id=9))
    first = _message("my printer is broken")
    client.dispatch(first)
    client.dispatch(_message("second"))

    assert await task is first
    assert collector.state is CollectorState.RESOLVED
    assert collector.outcome is CollectorOutcome.COLLECTED


@pytest.mark.asyncio
async def test_check_rejects_after_resolution() -> None:
    collector = TopicCollector(DispatchingClient(), channel_id=1, author_id=2, timeout=1.0)
    assert collector._check(_message("a")) is True
    assert collector._check(_message("b")) is False
    assert collector.message.content == "a"


@pytest.mark.asyncio
async def test_timeout_resolves_empty() -> None:
    collector = TopicCollector(DispatchingClient(), channel_id=1, author_id=2, timeout=0.01)
    assert await collector.collect() is None
    assert collector.outcome is CollectorOutcome.TIMED_OUT
    # A message arriving after expiry is ignored.
    assert collector._check(_message("late")) is False


@pytest.mark.asyncio
async def test_stop_resolves_empty() -> None:
    collector = TopicCollector(DispatchingClient(), channel_id=1, author_id=2, timeout=5.0)
    task = asyncio.create_task(collector.collect())
    await _let_waiter_register()
    collector.stop()
    assert await task is None
    assert collector.outcome is CollectorOutcome.STOPPED


@pytest.mark.asyncio
async def test_cancelling_the_caller_propagates() -> None:
    collector = TopicCollector(DispatchingClient(), channel_id=1, author_id=2, timeout=5.0)
    task = asyncio.create_task(collector.collect())
    await _let_waiter_register()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert collector.state is CollectorState.RESOLVED
