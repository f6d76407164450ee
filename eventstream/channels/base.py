from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Handler = Callable[[bytes], Awaitable[None]]


class Subscription:
    """Handle for a live subscription.

    ``wait()`` returns once the subscription is closed by its owner and raises
    ``TransportError`` if the underlying connection dropped.
    """

    def __init__(self, channel: str, task: "asyncio.Task[None]",
                 on_close: Optional[Callable[[], Awaitable[None]]] = None):
        self.channel = channel
        self._task = task
        self._on_close = on_close
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed and not self._task.done()

    async def wait(self) -> None:
        try:
            await self._task
        except asyncio.CancelledError:
            if self._closed:
                return
            raise

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.debug("subscription to %s ended with %r before close", self.channel, exc)
        if self._on_close is not None:
            await self._on_close()


@runtime_checkable
class Channel(Protocol):
    """Best-effort broadcast. At-most-once delivery, FIFO per sender, no replay."""

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def publish(self, channel: str, data: bytes) -> int: ...

    async def subscribe(self, channel: str, handler: Handler) -> Subscription: ...
