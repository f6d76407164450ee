import asyncio
import pytest

from eventstream.errors import RenderError, StoreError
from eventstream.reports.blocks import Heading, Image, PageBreak, Text
from eventstream.reports.charts import LineChartRenderer
from eventstream.reports.document import PdfDocumentWriter
from eventstream.reports.engine import ReportEngine
from eventstream.windowing import HOUR, MINUTE

T0 = 1_770_465_600_000  # 2026-02-07 12:00 UTC
KEYS = ["ts:events:DATA_FETCHED:count", "ts:events:DATA_FETCHED:duration", "ts:events:FILE_UPLOADED:count"]


class FlakyRenderer(LineChartRenderer):
    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = fail_on

    def line_chart(self, labels, series, title):
        if title == self.fail_on:
            raise RuntimeError("renderer crashed")
        return super().line_chart(labels, series, title)


class PartlyBrokenStore:
    def __init__(self, inner, broken_key=None, list_fails=False):
        self.inner = inner
        self.broken_key = broken_key
        self.list_fails = list_fails

    async def list_keys(self, prefix=""):
        if self.list_fails:
            raise StoreError("redis unreachable")
        return await self.inner.list_keys(prefix)

    async def query_range(self, key, from_ts, to_ts):
        if key == self.broken_key:
            raise StoreError("timeout reading " + key)
        return await self.inner.query_range(key, from_ts, to_ts)


async def _seed(ts_store, keys=KEYS):
    for key in keys:
        for i in range(5):
            await ts_store.append(key, T0 + i * 60_000, float(i + 1))


@pytest.mark.asyncio
async def test_one_failing_chart_leaves_a_placeholder(settings, ts_store):
    await _seed(ts_store)
    engine = ReportEngine(ts_store, settings, renderer=FlakyRenderer("Data Fetched - Duration"))
    report = await engine.build(T0, T0 + 3_600_000)

    assert report.granularity == MINUTE
    assert [s.key for s in report.sections] == sorted(KEYS)
    placeholders = [s for s in report.sections if s.placeholder]
    assert [s.key for s in placeholders] == ["ts:events:DATA_FETCHED:duration"]
    assert placeholders[0].chart_error == "renderer crashed"
    assert all(s.chart is not None for s in report.sections if not s.placeholder)

    blocks = engine.compose(report)
    assert Text("Chart unavailable for Data Fetched - Duration") in blocks
    assert sum(isinstance(b, Image) for b in blocks) == 2


@pytest.mark.asyncio
async def test_section_stats_and_buckets(settings, ts_store):
    await _seed(ts_store, ["ts:events:DATA_FETCHED:duration"])
    report = await ReportEngine(ts_store, settings).build(T0, T0 + 3_600_000)
    [section] = report.sections
    assert section.title == "Data Fetched - Duration"
    assert (section.stats.count, section.stats.sum, section.stats.average) == (5, 15.0, 3.0)
    assert (section.stats.min, section.stats.max) == (1.0, 5.0)
    assert section.labels == ["12:00", "12:01", "12:02", "12:03", "12:04"]
    assert section.values == [1.0, 2.0, 3.0, 4.0, 5.0]
    assert report.total_points == 5


@pytest.mark.asyncio
async def test_long_window_buckets_by_hour_and_skips_empty_series(settings, ts_store):
    await _seed(ts_store, KEYS[:1])
    await ts_store.append("ts:events:SEARCH_PERFORMED:count", T0 - 30 * 86_400_000, 1.0)
    report = await ReportEngine(ts_store, settings).build(T0 - 86_400_000, T0 + 86_400_000)
    assert report.granularity == HOUR
    assert [s.key for s in report.sections] == KEYS[:1]
    assert report.sections[0].labels == ["Feb 07 12:00"]
    assert report.sections[0].values == [15.0]
    # the header counts every discovered series, not just the charted ones
    assert sorted(report.keys) == sorted(KEYS[:1] + ["ts:events:SEARCH_PERFORMED:count"])
    assert Text("Total Time Series Keys: 2") in ReportEngine(ts_store, settings).compose(report)


@pytest.mark.asyncio
async def test_unreadable_series_is_left_out(settings, ts_store):
    await _seed(ts_store)
    store = PartlyBrokenStore(ts_store, broken_key="ts:events:FILE_UPLOADED:count")
    report = await ReportEngine(store, settings).build(T0, T0 + 3_600_000)
    assert len(report.sections) == 2
    assert report.missing == ["ts:events:FILE_UPLOADED:count"]


@pytest.mark.asyncio
async def test_unreachable_store_fails_the_report(settings, ts_store):
    engine = ReportEngine(PartlyBrokenStore(ts_store, list_fails=True), settings)
    with pytest.raises(StoreError):
        await engine.build(T0, T0 + 3_600_000)


@pytest.mark.asyncio
async def test_report_times_out_and_cancels_queries(settings, ts_store):
    await _seed(ts_store)
    cancelled = []

    class SlowStore(PartlyBrokenStore):
        async def query_range(self, key, from_ts, to_ts):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(key)
                raise

    engine = ReportEngine(SlowStore(ts_store), settings)
    with pytest.raises(asyncio.TimeoutError):
        await engine.build(T0, T0 + 3_600_000, timeout=0.05)
    assert sorted(cancelled) == sorted(KEYS)


@pytest.mark.asyncio
async def test_page_breaks_follow_the_layout_cursor(settings, ts_store):
    await _seed(ts_store)
    engine = ReportEngine(ts_store, settings)
    report = await engine.build(T0, T0 + 3_600_000)
    blocks = engine.compose(report)

    assert blocks[0] == Heading("Event Analytics Report", level=1)
    assert blocks[-1].text.startswith("Generated: ")
    assert sum(isinstance(b, PageBreak) for b in blocks) == 2
    images = [i for i, b in enumerate(blocks) if isinstance(b, Image)]
    assert len(images) == 3
    # the second chart would run past the break line, the third fits under it
    assert isinstance(blocks[images[1] - 1], PageBreak)
    assert not isinstance(blocks[images[2] - 1], PageBreak)
    assert isinstance(blocks[-2], PageBreak)


@pytest.mark.asyncio
async def test_generate_pdf(settings, ts_store):
    await _seed(ts_store)
    engine = ReportEngine(ts_store, settings, renderer=FlakyRenderer("File Uploaded - Count"))
    pdf = await engine.generate_pdf(T0, T0 + 3_600_000)
    assert pdf.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_empty_window_still_renders(settings, ts_store):
    pdf = await ReportEngine(ts_store, settings).generate_pdf(T0, T0 + 1)
    assert pdf.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_timeseries_query(settings, ts_store):
    await _seed(ts_store, KEYS[:2])
    engine = ReportEngine(ts_store, settings)
    data = await engine.timeseries(T0, T0 + 60_000)
    assert set(data) == set(KEYS[:2])
    assert data[KEYS[0]][1] == {"timestamp": T0 + 60_000, "value": 2.0, "date": "2026-02-07T12:01:00+00:00"}
    only = await engine.timeseries(T0, T0 + 60_000, key=KEYS[1])
    assert list(only) == [KEYS[1]]


def test_chart_renderer_rejects_mismatched_series():
    r = LineChartRenderer()
    with pytest.raises(RenderError):
        r.line_chart([], [("s", [])], "empty")
    with pytest.raises(RenderError):
        r.line_chart(["a", "b"], [("s", [1.0])], "short")
    d = r.line_chart(["a", "b"], [("s", [0.0, 0.0])], "flat")
    assert (d.width, d.height) == (480, 250)


def test_document_writer_rejects_unknown_blocks():
    w = PdfDocumentWriter()
    assert w.write([Heading("t", level=1), Text("a < b & c"), PageBreak(), Text("end")]).startswith(b"%PDF")
    with pytest.raises(RenderError):
        w.write([object()])
