import pytest
import pytest_asyncio

from eventstream.channels.memory_channel import InMemoryChannel
from eventstream.config import Settings
from eventstream.sinks.eventlog_sql import SqlEventLogStore
from eventstream.sinks.timeseries_memory import InMemoryTimeSeriesStore


@pytest.fixture
def settings(tmp_path):
    return Settings(
        service_name="svc-test",
        log_database_url=f"sqlite+aiosqlite:///{tmp_path / 'event_logs.sqlite3'}",
        reconnect_base_seconds=0.01,
        reconnect_max_seconds=0.05,
        report_timeout_seconds=5.0,
    )


@pytest.fixture
def ts_store():
    return InMemoryTimeSeriesStore()


@pytest_asyncio.fixture
async def channel():
    ch = InMemoryChannel()
    await ch.connect()
    yield ch
    await ch.close()


@pytest_asyncio.fixture
async def log_store(settings):
    store = SqlEventLogStore(settings.log_database_url)
    await store.init()
    yield store
    await store.close()
