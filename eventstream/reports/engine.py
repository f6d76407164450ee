from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eventstream.config import Settings
from eventstream.errors import StoreError
from eventstream.reports.blocks import Block, Heading, Image, PageBreak, Text
from eventstream.reports.charts import LineChartRenderer
from eventstream.reports.document import PdfDocumentWriter
from eventstream.stores import Sample, TimeSeriesStore
from eventstream.windowing import (
    SeriesStats, bucket_granularity, bucket_series, format_title, from_ms, now_ms,
    resolve_window, summarize,
)

logger = logging.getLogger(__name__)

# Vertical layout estimate in points, measured from the top of an A4 page.
PAGE_TOP = 50
CHART_BREAK_AT = 500
PAGE_BREAK_AT = 650
TITLE_HEIGHT = 36
HEADING_HEIGHT = 22
LINE_HEIGHT = 14
GAP = 28


@dataclass
class ReportSection:
    key: str
    title: str
    stats: SeriesStats
    labels: List[str]
    values: List[float]
    chart: Any = None
    chart_error: Optional[str] = None

    @property
    def placeholder(self) -> bool:
        return self.chart is None


@dataclass
class Report:
    from_ms: int
    to_ms: int
    granularity: str
    sections: List[ReportSection] = field(default_factory=list)
    # series that could not be read; left out of the report
    missing: List[str] = field(default_factory=list)
    # every series discovered under the prefix, including empty and unreadable ones
    keys: List[str] = field(default_factory=list)
    generated_at: int = field(default_factory=now_ms)

    @property
    def total_points(self) -> int:
        return sum(s.stats.count for s in self.sections)


class ReportEngine:
    def __init__(self, ts_store: TimeSeriesStore, settings: Settings, renderer=None, writer=None):
        self.ts = ts_store
        self.s = settings
        self.renderer = renderer if renderer is not None else LineChartRenderer()
        self.writer = writer if writer is not None else PdfDocumentWriter()

    async def _fetch(self, key: str, start: int, end: int) -> Tuple[str, Optional[List[Sample]]]:
        try:
            return key, await self.ts.query_range(key, start, end)
        except StoreError as exc:
            logger.error("series %s left out of report: %s", key, exc)
            return key, None

    async def _fetch_all(self, start: int, end: int, timeout: Optional[float]) -> List[Tuple[str, Optional[List[Sample]]]]:
        # a failure to list keys means the store is unreachable; let it propagate
        keys = sorted(await self.ts.list_keys(self.s.ts_prefix))
        fetches = asyncio.gather(*(self._fetch(k, start, end) for k in keys))
        # on timeout wait_for cancels the gather, which cancels every pending query
        return await asyncio.wait_for(fetches, timeout)

    async def timeseries(self, from_ms_: Optional[int] = None, to_ms_: Optional[int] = None,
                         key: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        start, end = resolve_window(from_ms_, to_ms_, self.s.report_default_days)
        if key is not None:
            results = [(key, await self.ts.query_range(key, start, end))]
        else:
            results = await self._fetch_all(start, end, self.s.report_timeout_seconds)
        return {
            k: [{"timestamp": ts, "value": v, "date": from_ms(ts).isoformat()} for ts, v in samples]
            for k, samples in results if samples is not None
        }

    async def _section(self, key: str, samples: Sequence[Sample], granularity: str) -> ReportSection:
        title = format_title(key, self.s.ts_prefix)
        values = [v for _, v in samples]
        labels, bucketed = bucket_series(samples, granularity, self.s.report_max_labels)
        section = ReportSection(key=key, title=title, stats=summarize(values), labels=labels, values=bucketed)
        try:
            section.chart = await asyncio.to_thread(self.renderer.line_chart, labels, [(title, bucketed)], title)
        except Exception as exc:
            # any renderer failure costs only this section its chart
            logger.exception("chart for %s failed", key)
            section.chart_error = str(exc) or type(exc).__name__
        return section

    async def build(self, from_ms_: Optional[int] = None, to_ms_: Optional[int] = None,
                    timeout: Optional[float] = None) -> Report:
        start, end = resolve_window(from_ms_, to_ms_, self.s.report_default_days)
        timeout = self.s.report_timeout_seconds if timeout is None else timeout
        granularity = bucket_granularity(start, end)
        report = Report(from_ms=start, to_ms=end, granularity=granularity)

        for key, samples in await self._fetch_all(start, end, timeout):
            report.keys.append(key)
            if samples is None:
                report.missing.append(key)
            elif samples:
                report.sections.append(await self._section(key, samples, granularity))
        logger.info("report %d..%d: %d sections, %d series missing",
                    start, end, len(report.sections), len(report.missing))
        return report

    def compose(self, report: Report) -> List[Block]:
        blocks: List[Block] = [
            Heading("Event Analytics Report", level=1),
            Text(f"Report Period: {from_ms(report.from_ms):%Y-%m-%d %H:%M} - {from_ms(report.to_ms):%Y-%m-%d %H:%M} UTC"),
            Heading("Summary"),
            Text(f"Total Time Series Keys: {len(report.keys)}"),
            Text(f"Total Data Points: {report.total_points}"),
        ]
        if report.missing:
            blocks.append(Text(f"Series unavailable: {', '.join(report.missing)}"))
        cursor = PAGE_TOP + TITLE_HEIGHT + LINE_HEIGHT + GAP + HEADING_HEIGHT + 2 * LINE_HEIGHT + GAP

        for section in report.sections:
            st = section.stats
            blocks.append(Heading(section.title))
            blocks.extend([
                Text(f"Data Points: {st.count}"),
                Text(f"Sum: {st.sum:.2f}"),
                Text(f"Average: {st.average:.2f}"),
                Text(f"Max: {st.max:.2f}"),
                Text(f"Min: {st.min:.2f}"),
            ])
            cursor += HEADING_HEIGHT + 5 * LINE_HEIGHT + LINE_HEIGHT

            if section.placeholder:
                blocks.append(Text(f"Chart unavailable for {section.title}"))
                cursor += GAP
            else:
                if cursor > CHART_BREAK_AT:
                    blocks.append(PageBreak())
                    cursor = PAGE_TOP
                height = getattr(section.chart, "height", 250)
                blocks.append(Image(section.chart, width=getattr(section.chart, "width", 480), height=height))
                cursor += height + GAP

            if cursor > PAGE_BREAK_AT:
                blocks.append(PageBreak())
                cursor = PAGE_TOP

        blocks.append(Text(f"Generated: {from_ms(report.generated_at):%Y-%m-%d %H:%M:%S} UTC"))
        return blocks

    async def render(self, report: Report) -> bytes:
        return await asyncio.to_thread(self.writer.write, self.compose(report))

    async def generate_pdf(self, from_ms_: Optional[int] = None, to_ms_: Optional[int] = None) -> bytes:
        return await self.render(await self.build(from_ms_, to_ms_))
