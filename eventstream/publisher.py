from __future__ import annotations
import logging
import time
import traceback
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, List, Tuple, Type

from eventstream.channels.base import Channel
from eventstream.config import Settings
from eventstream.errors import PublishError, StoreError, TransportError
from eventstream.schemas import BaseEvent, ErrorOccurred, encode, metric_samples, series_key
from eventstream.stores import TimeSeriesStore
from eventstream.windowing import now_ms

logger = logging.getLogger(__name__)


@dataclass
class Outcome:
    """Collects the events a tracked operation wants published when it succeeds."""
    started: float = field(default_factory=time.monotonic)
    pending: List[Tuple[Type[BaseEvent], dict]] = field(default_factory=list)

    def emit(self, event_type: Type[BaseEvent], **fields: Any) -> None:
        self.pending.append((event_type, fields))

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000.0


class EventPublisher:
    def __init__(self, channel: Channel, ts_store: TimeSeriesStore, settings: Settings):
        self.channel = channel
        self.ts = ts_store
        self.s = settings

    def enrich(self, event: BaseEvent) -> BaseEvent:
        update = {}
        if event.origin_id is None:
            update["origin_id"] = self.s.service_name
        if event.timestamp is None:
            update["timestamp"] = now_ms()
        return event.model_copy(update=update) if update else event

    async def publish(self, event: BaseEvent) -> BaseEvent:
        """Publish an event and mirror its numeric fields.

        The metric mirror runs even when the channel publish fails; only the
        publish failure reaches the caller, as ``PublishError``.
        """
        enriched = self.enrich(event)
        failure = None
        try:
            await self.channel.publish(self.s.events_channel, encode(enriched))
        except TransportError as exc:
            failure = exc
            logger.error("publish of %s failed: %s", enriched.kind.value, exc)

        await self._mirror(enriched)

        if failure is not None:
            raise PublishError(f"could not publish {enriched.kind.value}: {failure}") from failure
        logger.info("event published: %s", enriched.kind.value)
        return enriched

    async def _mirror(self, event: BaseEvent) -> None:
        labels = {"eventType": event.kind.value, "service": event.origin_id or self.s.service_name}
        for metric, value in metric_samples(event):
            key = series_key(event.kind, metric, self.s.ts_prefix)
            try:
                await self.ts.append(key, event.timestamp, value, labels)
            except StoreError as exc:
                logger.warning("metric %s not recorded: %s", key, exc)

    async def publish_failure(self, context: str, exc: BaseException) -> BaseEvent:
        event = ErrorOccurred.build(
            error=str(exc) or type(exc).__name__,
            context=context,
            stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )
        return await self.publish(event)

    @asynccontextmanager
    async def track(self, context: str) -> AsyncIterator[Outcome]:
        """Publish the outcome of the wrapped operation.

        On success every event recorded with ``outcome.emit`` is published,
        with ``duration`` filled in from the elapsed time when the kind has
        one and it was not given. On failure an ``ErrorOccurred`` is
        published and the exception re-raised.
        """
        outcome = Outcome()
        try:
            yield outcome
        except Exception as exc:
            try:
                await self.publish_failure(context, exc)
            except PublishError as pub_exc:
                logger.error("failure of %s could not be reported: %s", context, pub_exc)
            raise
        duration = outcome.elapsed_ms()
        for event_type, fields in outcome.pending:
            if "duration" in event_type.model_fields:
                fields.setdefault("duration", duration)
            await self.publish(event_type.build(**fields))
