from __future__ import annotations
from typing import Dict, List, Optional, Set
import uuid
import orjson
import redis.asyncio as redis
from redis.exceptions import RedisError

from eventstream.errors import StoreError
from eventstream.stores import Sample, SeriesInfo

class RedisTimeSeriesStore:
    """One sorted set per series, scored by timestamp.

    Members carry the value plus a random tag so that equal samples at the
    same millisecond are all kept. A registry set lists every series and a
    hash per series holds the labels it was created with.
    """

    def __init__(self, url: str = "redis://localhost:6379/0", client: Optional[redis.Redis] = None,
                 meta_prefix: str = "tsmeta:"):
        self.r = client if client is not None else redis.Redis.from_url(url, decode_responses=True)
        self.registry_key = f"{meta_prefix}keys"
        self.labels_prefix = f"{meta_prefix}labels:"

    async def close(self) -> None:
        await self.r.aclose()

    async def append(self, key: str, timestamp: int, value: float,
                     labels: Optional[Dict[str, str]] = None) -> None:
        member = orjson.dumps({"v": float(value), "n": uuid.uuid4().hex[:12]})
        pipe = self.r.pipeline(transaction=False)
        pipe.sadd(self.registry_key, key)
        for k, v in (labels or {}).items():
            pipe.hsetnx(self.labels_prefix + key, k, str(v))
        pipe.zadd(key, {member: int(timestamp)})
        try:
            await pipe.execute()
        except RedisError as exc:
            raise StoreError(f"append to {key} failed: {exc}") from exc

    async def query_range(self, key: str, from_ts: int, to_ts: int) -> List[Sample]:
        try:
            rows = await self.r.zrangebyscore(key, int(from_ts), int(to_ts), withscores=True)
        except RedisError as exc:
            raise StoreError(f"range query on {key} failed: {exc}") from exc
        return [(int(score), float(orjson.loads(member)["v"])) for member, score in rows]

    async def list_keys(self, prefix: str = "") -> Set[str]:
        try:
            keys = await self.r.smembers(self.registry_key)
        except RedisError as exc:
            raise StoreError(f"listing series failed: {exc}") from exc
        return {self._text(k) for k in keys if self._text(k).startswith(prefix)}

    async def info(self, key: str) -> Optional[SeriesInfo]:
        try:
            if not await self.r.sismember(self.registry_key, key):
                return None
            pipe = self.r.pipeline(transaction=False)
            pipe.hgetall(self.labels_prefix + key)
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.zrange(key, -1, -1, withscores=True)
            labels, count, first, last = await pipe.execute()
        except RedisError as exc:
            raise StoreError(f"info on {key} failed: {exc}") from exc
        return SeriesInfo(
            key=key,
            labels={self._text(k): self._text(v) for k, v in labels.items()},
            samples=int(count),
            first_timestamp=int(first[0][1]) if first else None,
            last_timestamp=int(last[0][1]) if last else None,
        )

    @staticmethod
    def _text(v) -> str:
        return v.decode("utf-8") if isinstance(v, bytes) else str(v)
