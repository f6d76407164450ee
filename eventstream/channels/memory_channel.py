from __future__ import annotations
import asyncio
from typing import Dict, List

from eventstream.channels.base import Handler, Subscription
from eventstream.errors import TransportError

_DROPPED = object()

class InMemoryChannel:
    """Single-process broadcast with the same delivery contract as the network backends.

    Each subscriber gets its own queue, so delivery is FIFO per sender and a
    subscriber only receives what is published after it attached.
    """

    def __init__(self):
        self._queues: Dict[str, List[asyncio.Queue]] = {}
        self.connected = False

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.disconnect_subscribers()
        self.connected = False

    async def publish(self, channel: str, data: bytes) -> int:
        if not self.connected:
            raise TransportError("memory channel is not connected")
        queues = list(self._queues.get(channel, []))
        for q in queues:
            q.put_nowait(data)
        return len(queues)

    async def subscribe(self, channel: str, handler: Handler) -> Subscription:
        if not self.connected:
            raise TransportError("memory channel is not connected")
        q: asyncio.Queue = asyncio.Queue()
        self._queues.setdefault(channel, []).append(q)

        async def _detach() -> None:
            self._detach(channel, q)

        task = asyncio.create_task(self._pump(channel, q, handler))
        return Subscription(channel, task, on_close=_detach)

    def subscriber_count(self, channel: str) -> int:
        return len(self._queues.get(channel, []))

    def disconnect_subscribers(self) -> None:
        """Drop every live subscription as a lost connection would."""
        for channel, queues in list(self._queues.items()):
            for q in queues:
                q.put_nowait(_DROPPED)
        self._queues.clear()

    def _detach(self, channel: str, q: asyncio.Queue) -> None:
        queues = self._queues.get(channel, [])
        if q in queues:
            queues.remove(q)

    async def _pump(self, channel: str, q: asyncio.Queue, handler: Handler) -> None:
        while True:
            item = await q.get()
            if item is _DROPPED:
                raise TransportError(f"subscription to {channel} lost")
            await handler(item)
