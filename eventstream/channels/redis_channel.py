from __future__ import annotations
import asyncio
import logging
from typing import Optional
import redis.asyncio as redis
from redis.exceptions import RedisError

from eventstream.channels.base import Handler, Subscription
from eventstream.errors import TransportError

logger = logging.getLogger(__name__)

class RedisChannel:
    """Redis pub/sub. A subscriber that is not listening when a message is published never sees it."""

    def __init__(self, url: str = "redis://localhost:6379/0", client: Optional[redis.Redis] = None):
        self.url = url
        self.r: Optional[redis.Redis] = client

    async def connect(self) -> None:
        if self.r is None:
            self.r = redis.Redis.from_url(self.url)
        try:
            await self.r.ping()
        except RedisError as exc:
            raise TransportError(f"cannot reach redis at {self.url}: {exc}") from exc
        logger.info("redis channel connected")

    async def close(self) -> None:
        if self.r is not None:
            await self.r.aclose()
            self.r = None
            logger.info("redis channel closed")

    def _client(self) -> redis.Redis:
        if self.r is None:
            raise TransportError("redis channel is not connected")
        return self.r

    async def publish(self, channel: str, data: bytes) -> int:
        try:
            return int(await self._client().publish(channel, data))
        except RedisError as exc:
            raise TransportError(f"publish to {channel} failed: {exc}") from exc

    async def subscribe(self, channel: str, handler: Handler) -> Subscription:
        pubsub = self._client().pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(channel)
        except RedisError as exc:
            await pubsub.aclose()
            raise TransportError(f"subscribe to {channel} failed: {exc}") from exc

        task = asyncio.create_task(self._pump(channel, pubsub, handler))
        return Subscription(channel, task, on_close=pubsub.aclose)

    async def _pump(self, channel: str, pubsub, handler: Handler) -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                data = message["data"]
                if isinstance(data, str):
                    data = data.encode("utf-8")
                await handler(data)
        except RedisError as exc:
            raise TransportError(f"subscription to {channel} lost: {exc}") from exc
        raise TransportError(f"subscription to {channel} ended")
