from __future__ import annotations
import bisect
from typing import Dict, List, Optional, Set, Tuple

from eventstream.stores import Sample, SeriesInfo

class InMemoryTimeSeriesStore:
    """Process-local series kept sorted on insert. Suitable for tests and single-process runs."""

    def __init__(self):
        self._series: Dict[str, List[Tuple[int, int, float]]] = {}
        self._labels: Dict[str, Dict[str, str]] = {}
        self._seq = 0

    async def append(self, key: str, timestamp: int, value: float,
                     labels: Optional[Dict[str, str]] = None) -> None:
        series = self._series.setdefault(key, [])
        if key not in self._labels:
            self._labels[key] = {k: str(v) for k, v in (labels or {}).items()}
        self._seq += 1
        bisect.insort(series, (int(timestamp), self._seq, float(value)))

    async def query_range(self, key: str, from_ts: int, to_ts: int) -> List[Sample]:
        return [(ts, v) for ts, _, v in self._series.get(key, []) if from_ts <= ts <= to_ts]

    async def list_keys(self, prefix: str = "") -> Set[str]:
        return {k for k in self._series if k.startswith(prefix)}

    async def info(self, key: str) -> Optional[SeriesInfo]:
        series = self._series.get(key)
        if series is None:
            return None
        return SeriesInfo(
            key=key,
            labels=dict(self._labels.get(key, {})),
            samples=len(series),
            first_timestamp=series[0][0] if series else None,
            last_timestamp=series[-1][0] if series else None,
        )
