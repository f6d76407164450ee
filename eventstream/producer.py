from __future__ import annotations
import asyncio, logging, random
from typing import Dict

from eventstream.errors import PublishError
from eventstream.publisher import EventPublisher
from eventstream.schemas import (
    BaseEvent, DataFetched, DataInserted, ErrorOccurred, EventKind, FileUploaded, SearchPerformed,
)

logger = logging.getLogger(__name__)

_SOURCES = ["https://api.coingecko.com/api/v3/coins/bitcoin/market_chart", "https://jsonplaceholder.typicode.com/users"]
_FILES = [("prices.xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"), ("users.json", "application/json")]
_QUERIES = ["bitcoin", "ethereum", "leanne", "usd", "2024"]
_CONTEXTS = ["fetchCryptoData", "fetchDataFromApi", "uploadAndInsertData", "search"]

def _rand_choice(seq):
    return seq[random.randint(0, len(seq)-1)]

def synthetic_event(kind: EventKind) -> BaseEvent:
    if kind is EventKind.DATA_FETCHED:
        return DataFetched.build(record_count=random.randint(1, 500), source=_rand_choice(_SOURCES),
                                 duration=float(random.randint(20, 1500)))
    if kind is EventKind.FILE_UPLOADED:
        name, mime = _rand_choice(_FILES)
        return FileUploaded.build(file_name=name, file_size=random.randint(1_000, 5_000_000), file_type=mime)
    if kind is EventKind.DATA_INSERTED:
        return DataInserted.build(collection_name="data", record_count=random.randint(1, 500),
                                  duration=float(random.randint(5, 800)))
    if kind is EventKind.SEARCH_PERFORMED:
        limit = _rand_choice([10, 20, 50])
        return SearchPerformed.build(query=_rand_choice(_QUERIES), result_count=random.randint(0, limit),
                                     page=random.randint(1, 5), limit=limit, duration=float(random.randint(2, 300)))
    return ErrorOccurred.build(error="upstream request timed out", context=_rand_choice(_CONTEXTS))

async def produce_events(publisher: EventPublisher, rate_per_sec: int, seconds: int,
                         error_prob: float = 0.05) -> Dict[str, int]:
    kinds = [k for k in EventKind if k is not EventKind.ERROR_OCCURRED]
    total = rate_per_sec * seconds
    interval = 1.0 / max(1, rate_per_sec)
    sent = failed = 0

    for _ in range(total):
        kind = EventKind.ERROR_OCCURRED if random.random() < error_prob else _rand_choice(kinds)
        try:
            await publisher.publish(synthetic_event(kind))
            sent += 1
        except PublishError as exc:
            failed += 1
            logger.warning("synthetic event not published: %s", exc)
        await asyncio.sleep(interval)

    return {"published": sent, "failed": failed}
