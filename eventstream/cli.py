from __future__ import annotations
import argparse, asyncio, logging
from datetime import datetime
from typing import List
import orjson
import uvicorn

from eventstream.channels.base import Channel
from eventstream.channels.kafka_channel import KafkaChannel
from eventstream.channels.redis_channel import RedisChannel
from eventstream.config import Settings, settings
from eventstream.errors import InvalidEventError
from eventstream.producer import produce_events
from eventstream.publisher import EventPublisher
from eventstream.reports.engine import ReportEngine
from eventstream.schemas import EventKind, build_event, deserialize, serialize
from eventstream.sinks.eventlog_sql import SqlEventLogStore
from eventstream.sinks.timeseries_redis import RedisTimeSeriesStore
from eventstream.stores import LogRecord
from eventstream.subscriber import EventSubscriber
from eventstream.windowing import now_ms, to_ms

logger = logging.getLogger(__name__)

def make_channel(s: Settings) -> Channel:
    if s.channel_backend == "redis":
        return RedisChannel(s.redis_url)
    if s.channel_backend == "kafka":
        return KafkaChannel(s.kafka_bootstrap, client_id=s.service_name)
    raise SystemExit(f"unknown channel backend: {s.channel_backend}")

def _settings(args) -> Settings:
    overrides = {
        "service_name": getattr(args, "service_name", None),
        "channel_backend": getattr(args, "channel_backend", None),
        "redis_url": getattr(args, "redis_url", None),
        "kafka_bootstrap": getattr(args, "kafka_bootstrap", None),
        "events_channel": getattr(args, "channel", None),
        "log_database_url": getattr(args, "log_database_url", None),
    }
    return settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})

def _iso_ms(s: str) -> int:
    try:
        return to_ms(datetime.fromisoformat(s))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {s!r}")

def _json_object(s: str) -> dict:
    try:
        fields = orjson.loads(s)
    except orjson.JSONDecodeError as exc:
        raise argparse.ArgumentTypeError(f"not valid JSON: {exc}")
    if not isinstance(fields, dict):
        raise argparse.ArgumentTypeError("expected a JSON object of event fields")
    return fields

def cmd_subscribe(args):
    s = _settings(args)

    async def _main():
        channel = make_channel(s)
        store = SqlEventLogStore(s.log_database_url)
        await store.init()
        await channel.connect()
        sub = EventSubscriber(channel, store, s)
        try:
            await sub.run_forever()
        finally:
            await sub.stop()
            await channel.close()
            await store.close()
            logger.info("subscriber stopped: %s", sub.counters)

    asyncio.run(_main())

def cmd_publish(args):
    s = _settings(args)
    event = build_event(args.kind, **(args.fields or {}))

    async def _main():
        channel = make_channel(s)
        ts = RedisTimeSeriesStore(s.redis_url)
        await channel.connect()
        try:
            published = await EventPublisher(channel, ts, s).publish(event)
            print(orjson.dumps(serialize(published)).decode("utf-8"))
        finally:
            await channel.close()
            await ts.close()

    asyncio.run(_main())

def cmd_produce(args):
    s = _settings(args)

    async def _main():
        channel = make_channel(s)
        ts = RedisTimeSeriesStore(s.redis_url)
        await channel.connect()
        try:
            res = await produce_events(EventPublisher(channel, ts, s), rate_per_sec=args.rate,
                                       seconds=args.seconds, error_prob=args.error_prob)
            print(res)
        finally:
            await channel.close()
            await ts.close()

    asyncio.run(_main())

def cmd_report(args):
    s = _settings(args)

    async def _main():
        ts = RedisTimeSeriesStore(s.redis_url)
        try:
            pdf = await ReportEngine(ts, s).generate_pdf(args.from_ts, args.to_ts)
        finally:
            await ts.close()
        with open(args.out, "wb") as fh:
            fh.write(pdf)
        print({"report": args.out, "bytes": len(pdf)})

    asyncio.run(_main())

def _read_records(path: str) -> List[LogRecord]:
    received = now_ms()
    records = []
    with open(path, "rb") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                records.append(LogRecord(event=deserialize(orjson.loads(line)), received_at=received))
            except (orjson.JSONDecodeError, InvalidEventError) as exc:
                logger.warning("line %d skipped: %s", lineno, exc)
    return records

def cmd_import_log(args):
    s = _settings(args)

    async def _main():
        store = SqlEventLogStore(s.log_database_url)
        await store.init()
        try:
            records = _read_records(args.path)
            inserted, errors = 0, []
            for i in range(0, len(records), args.batch_size):
                res = await store.insert_many(records[i:i + args.batch_size])
                inserted += res.inserted
                errors.extend(res.errors)
            print({"read": len(records), "inserted": inserted, "errors": len(errors)})
        finally:
            await store.close()

    asyncio.run(_main())

def cmd_stats(args):
    s = _settings(args)

    async def _main():
        store = SqlEventLogStore(s.log_database_url)
        await store.init()
        try:
            st = await store.stats(args.from_ts, args.to_ts)
            print({"total": st.total, "byEventType": st.by_kind, "byServiceId": st.by_origin})
        finally:
            await store.close()

    asyncio.run(_main())

def cmd_api(args):
    uvicorn.run("eventstream.api:app", host=args.host, port=args.port, reload=False)

def _transport_args(p):
    p.add_argument("--service-name", default=None)
    p.add_argument("--channel-backend", choices=["redis", "kafka"], default=None)
    p.add_argument("--redis-url", default=None)
    p.add_argument("--kafka-bootstrap", default=None)
    p.add_argument("--channel", default=None)

def main(argv=None):
    p = argparse.ArgumentParser(prog="eventstream")
    p.add_argument("--log-level", default=settings.log_level)
    sub = p.add_subparsers(dest="cmd", required=True)

    sb = sub.add_parser("subscribe", help="persist channel events into the event log")
    _transport_args(sb)
    sb.add_argument("--log-database-url", default=None)
    sb.set_defaults(fn=cmd_subscribe)

    pb = sub.add_parser("publish", help="publish one event")
    _transport_args(pb)
    pb.add_argument("--kind", required=True, choices=[k.value for k in EventKind])
    pb.add_argument("--fields", type=_json_object, help="JSON object of event fields, e.g. '{\"recordCount\": 42}'")
    pb.set_defaults(fn=cmd_publish)

    pr = sub.add_parser("produce", help="publish synthetic events")
    _transport_args(pr)
    pr.add_argument("--rate", type=int, default=20)
    pr.add_argument("--seconds", type=int, default=30)
    pr.add_argument("--error-prob", type=float, default=0.05)
    pr.set_defaults(fn=cmd_produce)

    rp = sub.add_parser("report", help="render the analytics PDF")
    rp.add_argument("--redis-url", default=None)
    rp.add_argument("--from-ts", type=_iso_ms)
    rp.add_argument("--to-ts", type=_iso_ms)
    rp.add_argument("--out", default="report.pdf")
    rp.set_defaults(fn=cmd_report)

    im = sub.add_parser("import-log", help="bulk-load serialized events (JSON lines) into the event log")
    im.add_argument("path")
    im.add_argument("--batch-size", type=int, default=500)
    im.add_argument("--log-database-url", default=None)
    im.set_defaults(fn=cmd_import_log)

    st = sub.add_parser("stats", help="event counts by kind and origin")
    st.add_argument("--from-ts", type=_iso_ms)
    st.add_argument("--to-ts", type=_iso_ms)
    st.add_argument("--log-database-url", default=None)
    st.set_defaults(fn=cmd_stats)

    a = sub.add_parser("api", help="serve the read-only query API")
    a.add_argument("--host", default="0.0.0.0")
    a.add_argument("--port", type=int, default=8000)
    a.set_defaults(fn=cmd_api)

    args = p.parse_args(argv)
    start, end = getattr(args, "from_ts", None), getattr(args, "to_ts", None)
    if start is not None and end is not None and start > end:
        p.error("--from-ts must not be after --to-ts")
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        args.fn(args)
    except InvalidEventError as exc:
        p.error(str(exc))

if __name__ == "__main__":
    main()
