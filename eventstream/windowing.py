from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from datetime import datetime, timezone
import math
import time

MINUTE = "minute"
HOUR = "hour"

DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)

def to_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)

def from_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)

def resolve_window(from_ms: Optional[int], to_ms_: Optional[int], default_days: int = 7,
                   now: Optional[int] = None) -> Tuple[int, int]:
    end = to_ms_ if to_ms_ is not None else (now if now is not None else now_ms())
    start = from_ms if from_ms is not None else end - default_days * DAY_MS
    if start > end:
        raise ValueError(f"window start {start} is after window end {end}")
    return start, end

def bucket_granularity(from_ms: int, to_ms_: int) -> str:
    # strictly more than a day buckets by hour; exactly 24h stays on minutes
    return HOUR if (to_ms_ - from_ms) > DAY_MS else MINUTE

_STEP_MS = {
    MINUTE: 60 * 1000,
    HOUR: 60 * 60 * 1000,
}

def bucket_start(ts_ms: int, granularity: str) -> int:
    return ts_ms - ts_ms % _STEP_MS[granularity]

def label_format(granularity: str, first_ms: int, last_ms: int) -> str:
    """Shortest label format that still tells apart every bucket between ``first_ms`` and ``last_ms``."""
    first, last = from_ms(first_ms), from_ms(last_ms)
    clock = "%H:%M" if granularity == MINUTE else "%H:00"
    if first.year != last.year:
        return f"%Y-%m-%d {clock}"
    if granularity == MINUTE and first.date() == last.date():
        return clock
    return f"%b %d {clock}"

def bucket_series(samples: Sequence[Tuple[int, float]], granularity: str,
                  max_labels: int = 20) -> Tuple[List[str], List[float]]:
    """Sum sample values per calendar bucket.

    Buckets are keyed by the truncated epoch minute or hour; labels add the
    date or year once the buckets span more than one. Labels keep first-seen
    order, which is chronological for an ascending series, and only the first
    ``max_labels`` are surfaced. Samples falling in later buckets still count
    toward the statistics, just not the chart.
    """
    sums: Dict[int, float] = {}
    for ts, value in samples:
        start = bucket_start(int(ts), granularity)
        sums[start] = sums.get(start, 0.0) + float(value)
    if not sums:
        return [], []
    fmt = label_format(granularity, min(sums), max(sums))
    starts = list(sums)[:max_labels]
    return [from_ms(s).strftime(fmt) for s in starts], [sums[s] for s in starts]


@dataclass(frozen=True)
class SeriesStats:
    count: int
    sum: float
    average: float
    min: float
    max: float

def summarize(values: Sequence[float]) -> SeriesStats:
    if not values:
        raise ValueError("cannot summarize an empty series")
    total = math.fsum(values)
    return SeriesStats(
        count=len(values),
        sum=total,
        average=total / len(values),
        min=min(values),
        max=max(values),
    )

def format_title(key: str, prefix: str = "ts:events:") -> str:
    """``ts:events:DATA_FETCHED:count`` -> ``Data Fetched - Count``."""
    if key.startswith(prefix):
        key = key[len(prefix):]
    text = key.replace(":", " - ").replace("_", " ")
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split(" ") if word)
