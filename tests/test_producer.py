import pytest

from eventstream.producer import produce_events, synthetic_event
from eventstream.publisher import EventPublisher
from eventstream.schemas import EventKind, decode


def test_synthetic_events_are_valid_for_every_kind():
    for kind in EventKind:
        assert synthetic_event(kind).kind is kind


class _Sink:
    def __init__(self):
        self.sent = []

    async def publish(self, channel, data):
        self.sent.append(decode(data))
        return 1


@pytest.mark.asyncio
async def test_produce_events(settings, ts_store):
    sink = _Sink()
    res = await produce_events(EventPublisher(sink, ts_store, settings), rate_per_sec=40, seconds=1, error_prob=1.0)
    assert res == {"published": 40, "failed": 0}
    assert {e.kind for e in sink.sent} == {EventKind.ERROR_OCCURRED}
    assert await ts_store.list_keys() == {"ts:events:ERROR_OCCURRED:count"}
