from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    service_name: str = os.getenv("SERVICE_NAME", "service-a")

    channel_backend: str = os.getenv("EVS_CHANNEL_BACKEND", "redis")  # redis | kafka
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    kafka_bootstrap: str = os.getenv("KAFKA_BOOTSTRAP", "localhost:9092")
    events_channel: str = os.getenv("EVS_EVENTS_CHANNEL", "service-events")

    log_database_url: str = os.getenv("EVS_LOG_DATABASE_URL", "sqlite+aiosqlite:///event_logs.sqlite3")
    ts_prefix: str = os.getenv("EVS_TS_PREFIX", "ts:events:")

    reconnect_base_seconds: float = float(os.getenv("EVS_RECONNECT_BASE_SECONDS", "0.5"))
    reconnect_max_seconds: float = float(os.getenv("EVS_RECONNECT_MAX_SECONDS", "30.0"))
    # 0 = keep retrying forever
    max_reconnect_attempts: int = int(os.getenv("EVS_MAX_RECONNECT_ATTEMPTS", "0"))

    report_default_days: int = int(os.getenv("EVS_REPORT_DEFAULT_DAYS", "7"))
    report_max_labels: int = int(os.getenv("EVS_REPORT_MAX_LABELS", "20"))
    report_timeout_seconds: float = float(os.getenv("EVS_REPORT_TIMEOUT_SECONDS", "30.0"))

    log_level: str = os.getenv("EVS_LOG_LEVEL", "INFO")

settings = Settings()
