from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from eventstream.channels.base import Channel, Subscription
from eventstream.config import Settings
from eventstream.errors import TransportError
from eventstream.schemas import decode
from eventstream.stores import EventLogStore, LogRecord
from eventstream.windowing import now_ms

logger = logging.getLogger(__name__)

class SubscriberState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"

@dataclass
class SubscriberCounters:
    received: int = 0
    persisted: int = 0
    discarded: int = 0  # undecodable messages
    dropped: int = 0    # decoded but the log insert failed; never retried

class EventSubscriber:
    """Persists every event seen on the channel into the event log.

    Delivery is at-most-once: messages published while this process is not
    subscribed, and messages whose insert fails, are lost. Both show up in
    the logs and in ``counters`` but are never replayed.
    """

    def __init__(self, channel: Channel, log_store: EventLogStore, settings: Settings):
        self.channel = channel
        self.log_store = log_store
        self.s = settings
        self.state = SubscriberState.DISCONNECTED
        self.counters = SubscriberCounters()
        self._subscription: Optional[Subscription] = None
        self._stopping = asyncio.Event()
        self._subscribed = asyncio.Event()

    async def handle_message(self, raw: bytes) -> None:
        self.counters.received += 1
        try:
            event = decode(raw)
        except Exception as exc:
            self.counters.discarded += 1
            logger.warning("discarding malformed message: %s", exc)
            return

        logger.debug("received event %s from %s", event.kind.value, event.origin_id)
        try:
            await self.log_store.insert(LogRecord(event=event, received_at=now_ms()))
        except Exception as exc:
            # a message must never take the receive loop down with it
            self.counters.dropped += 1
            logger.error("event %s from %s dropped, log insert failed: %r",
                         event.kind.value, event.origin_id, exc)
            return
        self.counters.persisted += 1

    def _backoff(self, attempt: int) -> float:
        return min(self.s.reconnect_base_seconds * (2 ** (attempt - 1)), self.s.reconnect_max_seconds)

    async def wait_subscribed(self, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._subscribed.wait(), timeout)

    async def run_forever(self) -> None:
        attempt = 0
        while not self._stopping.is_set():
            self.state = SubscriberState.CONNECTING
            try:
                subscription = await self.channel.subscribe(self.s.events_channel, self.handle_message)
            except TransportError as exc:
                logger.warning("subscribe to %s failed: %s", self.s.events_channel, exc)
            else:
                if self._stopping.is_set():
                    # stop() ran while subscribe was in flight
                    await subscription.close()
                    break
                self._subscription = subscription
                self.state = SubscriberState.SUBSCRIBED
                self._subscribed.set()
                attempt = 0
                logger.info("subscribed to %s", self.s.events_channel)
                try:
                    await subscription.wait()
                except TransportError as exc:
                    logger.warning("lost subscription to %s, events published until resubscribed are lost: %s",
                                   self.s.events_channel, exc)
                except Exception:
                    logger.exception("subscription to %s failed unexpectedly, resubscribing", self.s.events_channel)
                finally:
                    self._subscription = None
                    self._subscribed.clear()

            self.state = SubscriberState.DISCONNECTED
            if self._stopping.is_set():
                break
            attempt += 1
            if self.s.max_reconnect_attempts and attempt > self.s.max_reconnect_attempts:
                raise TransportError(f"gave up on {self.s.events_channel} after {attempt - 1} reconnect attempts")
            delay = self._backoff(attempt)
            logger.info("reconnecting to %s in %.2fs (attempt %d)", self.s.events_channel, delay, attempt)
            try:
                await asyncio.wait_for(self._stopping.wait(), delay)
            except asyncio.TimeoutError:
                pass
        self.state = SubscriberState.DISCONNECTED

    async def stop(self) -> None:
        self._stopping.set()
        if self._subscription is not None:
            await self._subscription.close()
