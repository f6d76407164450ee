from __future__ import annotations
import asyncio
import logging
from typing import Optional
from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.errors import KafkaError

from eventstream.channels.base import Handler, Subscription
from eventstream.errors import TransportError

logger = logging.getLogger(__name__)

class KafkaChannel:
    """Kafka topics used as a broadcast channel.

    Subscribers join without a consumer group and start at the latest offset,
    so they only see messages published while they are attached. All messages
    from one channel instance share a partition key, keeping them in order.
    """

    def __init__(self, bootstrap: str = "localhost:9092", client_id: str = "eventstream"):
        self.bootstrap = bootstrap
        self.client_id = client_id
        self._producer: Optional[AIOKafkaProducer] = None

    async def connect(self) -> None:
        producer = AIOKafkaProducer(bootstrap_servers=self.bootstrap, client_id=self.client_id)
        try:
            await producer.start()
        except KafkaError as exc:
            await producer.stop()
            raise TransportError(f"cannot reach kafka at {self.bootstrap}: {exc}") from exc
        self._producer = producer
        logger.info("kafka channel connected")

    async def close(self) -> None:
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
            logger.info("kafka channel closed")

    async def publish(self, channel: str, data: bytes) -> int:
        if self._producer is None:
            raise TransportError("kafka channel is not connected")
        try:
            await self._producer.send_and_wait(channel, data, key=self.client_id.encode("utf-8"))
        except KafkaError as exc:
            raise TransportError(f"publish to {channel} failed: {exc}") from exc
        # kafka does not report how many consumers are attached
        return 1

    async def subscribe(self, channel: str, handler: Handler) -> Subscription:
        consumer = AIOKafkaConsumer(
            channel,
            bootstrap_servers=self.bootstrap,
            group_id=None,
            enable_auto_commit=False,
            auto_offset_reset="latest",
        )
        try:
            await consumer.start()
        except KafkaError as exc:
            await consumer.stop()
            raise TransportError(f"subscribe to {channel} failed: {exc}") from exc

        task = asyncio.create_task(self._pump(channel, consumer, handler))
        return Subscription(channel, task, on_close=consumer.stop)

    async def _pump(self, channel: str, consumer: AIOKafkaConsumer, handler: Handler) -> None:
        try:
            async for msg in consumer:
                await handler(msg.value)
        except KafkaError as exc:
            raise TransportError(f"subscription to {channel} lost: {exc}") from exc
        raise TransportError(f"subscription to {channel} ended")
