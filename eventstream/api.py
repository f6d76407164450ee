from __future__ import annotations
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Tuple
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from eventstream.config import Settings, settings as default_settings
from eventstream.errors import StoreError
from eventstream.reports.engine import ReportEngine
from eventstream.schemas import EventKind
from eventstream.sinks.eventlog_sql import SqlEventLogStore
from eventstream.sinks.timeseries_redis import RedisTimeSeriesStore
from eventstream.stores import EventLogStore, LogFilter, TimeSeriesStore
from eventstream.windowing import now_ms, to_ms

def _parse_ts(s: Optional[str]) -> Optional[int]:
    if s is None:
        return None
    try:
        return to_ms(datetime.fromisoformat(s))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"not an ISO-8601 timestamp: {s!r}") from exc

def _window(from_ts: Optional[str], to_ts: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    start, end = _parse_ts(from_ts), _parse_ts(to_ts)
    if start is not None and end is not None and start > end:
        raise HTTPException(status_code=422, detail="from_ts must not be after to_ts")
    return start, end

def create_app(settings: Optional[Settings] = None, log_store: Optional[EventLogStore] = None,
               ts_store: Optional[TimeSeriesStore] = None, engine: Optional[ReportEngine] = None) -> FastAPI:
    s = settings or default_settings
    logs = log_store if log_store is not None else SqlEventLogStore(s.log_database_url)
    ts = ts_store if ts_store is not None else RedisTimeSeriesStore(s.redis_url)
    reports = engine if engine is not None else ReportEngine(ts, s)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if isinstance(logs, SqlEventLogStore):
            await logs.init()
        yield
        if log_store is None:
            await logs.close()
        if ts_store is None:
            await ts.close()

    app = FastAPI(title="Event Analytics API", version="1.0.0", lifespan=lifespan)

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError):
        return JSONResponse(status_code=503, content={"success": False, "error": str(exc)})

    @app.get("/health")
    async def health():
        return {"ok": True, "service": s.service_name}

    @app.get("/v1/logs")
    async def query_logs(
        event_type: Optional[EventKind] = Query(None),
        service_id: Optional[str] = Query(None),
        from_ts: Optional[str] = Query(None),
        to_ts: Optional[str] = Query(None),
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=1000),
    ):
        start, end = _window(from_ts, to_ts)
        filt = LogFilter(kind=event_type, origin_id=service_id, from_time=start, to_time=end)
        result = await logs.query(filt, page=page, page_size=limit)
        return {
            "success": True,
            "logs": [r.to_dict() for r in result.records],
            "pagination": {"page": result.page, "limit": result.page_size,
                           "total": result.total, "totalPages": result.total_pages},
        }

    @app.get("/v1/logs/stats")
    async def log_stats(from_ts: Optional[str] = Query(None), to_ts: Optional[str] = Query(None)):
        st = await logs.stats(*_window(from_ts, to_ts))
        return {"success": True, "data": {"total": st.total, "byEventType": st.by_kind, "byServiceId": st.by_origin}}

    @app.get("/v1/logs/recent")
    async def recent_logs(limit: int = Query(10, ge=1, le=1000)):
        return {"success": True, "data": [r.to_dict() for r in await logs.recent(limit)]}

    @app.get("/v1/timeseries")
    async def timeseries(key: Optional[str] = Query(None), from_ts: Optional[str] = Query(None),
                         to_ts: Optional[str] = Query(None)):
        data = await reports.timeseries(*_window(from_ts, to_ts), key=key)
        return {"success": True, "data": data}

    @app.get("/v1/reports/pdf")
    async def report_pdf(from_ts: Optional[str] = Query(None), to_ts: Optional[str] = Query(None)):
        pdf = await reports.generate_pdf(*_window(from_ts, to_ts))
        return Response(
            content=pdf,
            media_type="application/pdf",
            headers={"Content-Disposition": f"attachment; filename=report-{now_ms()}.pdf"},
        )

    return app

app = create_app()
