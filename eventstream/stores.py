from __future__ import annotations
from dataclasses import dataclass, field
import math
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set, Tuple, runtime_checkable

from eventstream.schemas import BaseEvent, EventKind, serialize

Sample = Tuple[int, float]


@dataclass(frozen=True)
class SeriesInfo:
    key: str
    labels: Dict[str, str]
    samples: int
    first_timestamp: Optional[int]
    last_timestamp: Optional[int]


@dataclass(frozen=True)
class LogRecord:
    """An event as persisted by the subscriber. ``received_at`` is the subscriber's clock."""
    event: BaseEvent
    received_at: int
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out = serialize(self.event)
        out["receivedAt"] = self.received_at
        if self.id is not None:
            out["id"] = self.id
        return out


@dataclass(frozen=True)
class LogFilter:
    kind: Optional[EventKind] = None
    origin_id: Optional[str] = None
    from_time: Optional[int] = None
    to_time: Optional[int] = None


@dataclass(frozen=True)
class LogPage:
    records: List[LogRecord]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


@dataclass(frozen=True)
class LogStats:
    total: int
    # both ordered by count, descending
    by_kind: Dict[str, int]
    by_origin: Dict[str, int]


@dataclass
class BulkInsertResult:
    inserted: int = 0
    errors: List[str] = field(default_factory=list)


@runtime_checkable
class TimeSeriesStore(Protocol):
    async def append(self, key: str, timestamp: int, value: float,
                     labels: Optional[Dict[str, str]] = None) -> None: ...

    async def query_range(self, key: str, from_ts: int, to_ts: int) -> List[Sample]: ...

    async def list_keys(self, prefix: str = "") -> Set[str]: ...

    async def info(self, key: str) -> Optional[SeriesInfo]: ...


@runtime_checkable
class EventLogStore(Protocol):
    async def insert(self, record: LogRecord) -> None: ...

    async def insert_many(self, records: Sequence[LogRecord]) -> BulkInsertResult: ...

    async def query(self, filt: LogFilter, page: int = 1, page_size: int = 50) -> LogPage: ...

    async def stats(self, from_time: Optional[int] = None, to_time: Optional[int] = None) -> LogStats: ...

    async def recent(self, limit: int = 10) -> List[LogRecord]: ...
