from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import BigInteger, Column, Index, Integer, JSON, String, desc, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from eventstream.errors import InvalidEventError, StoreError
from eventstream.schemas import deserialize, serialize
from eventstream.stores import BulkInsertResult, LogFilter, LogPage, LogRecord, LogStats

logger = logging.getLogger(__name__)

class Base(DeclarativeBase):
    pass

class EventLogRow(Base):
    __tablename__ = "event_logs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(40), nullable=False)
    origin_id = Column(String(120), nullable=False)
    timestamp = Column(BigInteger, nullable=False)
    received_at = Column(BigInteger, nullable=False)
    payload = Column(JSON, nullable=False)

    __table_args__ = (
        Index("idx_event_logs_ts", "timestamp"),
        Index("idx_event_logs_kind_ts", "kind", "timestamp"),
        Index("idx_event_logs_origin_ts", "origin_id", "timestamp"),
    )

event_logs = EventLogRow.__table__

# sqlite raises OverflowError for integers wider than 64 bits before SQLAlchemy sees them
WRITE_ERRORS = (SQLAlchemyError, OverflowError)

class SqlEventLogStore:
    def __init__(self, url: str, engine: Optional[AsyncEngine] = None):
        self.url = url
        if engine is None:
            # sqlite connections must not outlive the loop that opened them
            kwargs: Dict[str, Any] = {"poolclass": NullPool} if url.startswith("sqlite") else {"pool_pre_ping": True}
            engine = create_async_engine(url, **kwargs)
        self.engine = engine

    async def init(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StoreError(f"cannot initialise event log schema: {exc}") from exc

    async def close(self) -> None:
        await self.engine.dispose()

    @staticmethod
    def _row(record: LogRecord) -> Dict[str, Any]:
        ev = record.event
        return {
            "kind": ev.kind.value,
            "origin_id": ev.origin_id or "",
            "timestamp": int(ev.timestamp if ev.timestamp is not None else record.received_at),
            "received_at": int(record.received_at),
            "payload": serialize(ev),
        }

    @staticmethod
    def _record(row) -> LogRecord:
        try:
            event = deserialize(row["payload"])
        except InvalidEventError as exc:
            raise StoreError(f"stored event {row['id']} is unreadable: {exc}") from exc
        return LogRecord(event=event, received_at=int(row["received_at"]), id=int(row["id"]))

    @staticmethod
    def _conditions(kind=None, origin_id=None, from_time=None, to_time=None) -> List[Any]:
        conds = []
        if kind is not None:
            conds.append(event_logs.c.kind == getattr(kind, "value", kind))
        if origin_id is not None:
            conds.append(event_logs.c.origin_id == origin_id)
        if from_time is not None:
            conds.append(event_logs.c.timestamp >= int(from_time))
        if to_time is not None:
            conds.append(event_logs.c.timestamp <= int(to_time))
        return conds

    async def insert(self, record: LogRecord) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.execute(insert(event_logs).values(**self._row(record)))
        except WRITE_ERRORS as exc:
            raise StoreError(f"insert of {record.event.kind.value} failed: {exc}") from exc

    async def insert_many(self, records: Sequence[LogRecord]) -> BulkInsertResult:
        """Write a batch in one transaction, falling back to one write per record if the batch fails."""
        result = BulkInsertResult()
        if not records:
            return result
        rows = [self._row(r) for r in records]
        try:
            async with self.engine.begin() as conn:
                await conn.execute(insert(event_logs), rows)
            result.inserted = len(rows)
            logger.info("bulk inserted %d log records", len(rows))
            return result
        except WRITE_ERRORS as exc:
            logger.warning("bulk insert of %d records failed, falling back to single inserts: %s", len(rows), exc)

        for i, row in enumerate(rows):
            try:
                async with self.engine.begin() as conn:
                    await conn.execute(insert(event_logs).values(**row))
                result.inserted += 1
            except WRITE_ERRORS as exc:
                msg = f"Record {i}: {exc}"
                result.errors.append(msg)
                logger.error(msg)
        return result

    async def query(self, filt: LogFilter, page: int = 1, page_size: int = 50) -> LogPage:
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be >= 1")
        conds = self._conditions(filt.kind, filt.origin_id, filt.from_time, filt.to_time)
        stmt = (select(event_logs)
                .where(*conds)
                .order_by(event_logs.c.timestamp.desc(), event_logs.c.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size))
        count_stmt = select(func.count()).select_from(event_logs).where(*conds)
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).mappings().all()
                total = (await conn.execute(count_stmt)).scalar_one()
        except SQLAlchemyError as exc:
            raise StoreError(f"log query failed: {exc}") from exc
        return LogPage(records=[self._record(r) for r in rows], total=int(total), page=page, page_size=page_size)

    async def stats(self, from_time: Optional[int] = None, to_time: Optional[int] = None) -> LogStats:
        conds = self._conditions(from_time=from_time, to_time=to_time)
        count = func.count().label("count")
        try:
            async with self.engine.connect() as conn:
                total = (await conn.execute(select(func.count()).select_from(event_logs).where(*conds))).scalar_one()
                by_kind = (await conn.execute(
                    select(event_logs.c.kind, count).where(*conds)
                    .group_by(event_logs.c.kind).order_by(desc("count"), event_logs.c.kind)
                )).all()
                by_origin = (await conn.execute(
                    select(event_logs.c.origin_id, count).where(*conds)
                    .group_by(event_logs.c.origin_id).order_by(desc("count"), event_logs.c.origin_id)
                )).all()
        except SQLAlchemyError as exc:
            raise StoreError(f"log stats failed: {exc}") from exc
        return LogStats(
            total=int(total),
            by_kind={k: int(c) for k, c in by_kind},
            by_origin={o: int(c) for o, c in by_origin},
        )

    async def recent(self, limit: int = 10) -> List[LogRecord]:
        page = await self.query(LogFilter(), page=1, page_size=limit)
        return page.records
