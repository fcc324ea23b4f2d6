"""
Token listeners.

A listener is any callable taking a TokenEvent. It may return an awaitable,
in which case the decoder awaits it before moving on to the next record.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

from ..models import TokenEvent

Listener = Callable[[TokenEvent], Awaitable[None] | None]


def null_listener(_event: TokenEvent) -> None:
    """Sink that drops every event."""
    return None


class QueueListener:
    """Publishes token events on an asyncio.Queue for a consumer task.

    With a bounded queue a slow consumer throttles the decoder. Call close()
    once the request resolves so consumers iterating the listener stop.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 0):
        self.queue: asyncio.Queue[TokenEvent | object] = asyncio.Queue(maxsize)

    def __call__(self, event: TokenEvent) -> Awaitable[None]:
        return self.queue.put(event)

    async def close(self) -> None:
        await self.queue.put(self._CLOSED)

    async def __aiter__(self) -> AsyncIterator[TokenEvent]:
        while True:
            item = await self.queue.get()
            if item is self._CLOSED:
                return
            yield item
