import asyncio
from fakeredis import FakeServer, aioredis as fake_aioredis
import pytest

from eventstream.channels.memory_channel import InMemoryChannel
from eventstream.channels.redis_channel import RedisChannel
from eventstream.errors import TransportError


def _collector():
    got = []

    async def handler(data: bytes):
        got.append(data)

    return got, handler


async def _settle(n=5):
    for _ in range(n):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_late_subscriber_never_sees_earlier_message(channel):
    assert await channel.publish("service-events", b"E") == 0
    got, handler = _collector()
    sub = await channel.subscribe("service-events", handler)
    await asyncio.sleep(0.05)
    assert got == []
    await sub.close()


@pytest.mark.asyncio
async def test_delivery_is_fifo_per_sender(channel):
    got, handler = _collector()
    sub = await channel.subscribe("service-events", handler)
    for i in range(20):
        await channel.publish("service-events", str(i).encode())
    await _settle(30)
    assert got == [str(i).encode() for i in range(20)]
    await sub.close()
    assert channel.subscriber_count("service-events") == 0


@pytest.mark.asyncio
async def test_broadcast_reaches_every_subscriber_on_the_channel(channel):
    a, ha = _collector()
    b, hb = _collector()
    other, ho = _collector()
    subs = [await channel.subscribe("service-events", ha), await channel.subscribe("service-events", hb),
            await channel.subscribe("elsewhere", ho)]
    assert await channel.publish("service-events", b"x") == 2
    await _settle()
    assert a == b == [b"x"]
    assert other == []
    for s in subs:
        await s.close()


@pytest.mark.asyncio
async def test_lost_connection_surfaces_on_wait(channel):
    _, handler = _collector()
    sub = await channel.subscribe("service-events", handler)
    channel.disconnect_subscribers()
    with pytest.raises(TransportError):
        await asyncio.wait_for(sub.wait(), 1)
    assert not sub.active


@pytest.mark.asyncio
async def test_closed_subscription_wait_returns():
    ch = InMemoryChannel()
    with pytest.raises(TransportError):
        await ch.publish("c", b"x")
    await ch.connect()
    _, handler = _collector()
    sub = await ch.subscribe("c", handler)
    await sub.close()
    await asyncio.wait_for(sub.wait(), 1)
    await ch.close()


@pytest.mark.asyncio
async def test_redis_pubsub_roundtrip():
    ch = RedisChannel(client=fake_aioredis.FakeRedis(server=FakeServer()))
    await ch.connect()
    got = []
    arrived = asyncio.Event()

    async def handler(data: bytes):
        got.append(data)
        arrived.set()

    sub = await ch.subscribe("service-events", handler)
    assert await ch.publish("service-events", b'{"eventType":"DATA_FETCHED"}') == 1
    await asyncio.wait_for(arrived.wait(), 2)
    assert got == [b'{"eventType":"DATA_FETCHED"}']
    await sub.close()
    await ch.close()
