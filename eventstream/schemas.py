from __future__ import annotations
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, Union
import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from eventstream.errors import InvalidEventError

class EventKind(str, Enum):
    DATA_FETCHED = "DATA_FETCHED"
    FILE_UPLOADED = "FILE_UPLOADED"
    DATA_INSERTED = "DATA_INSERTED"
    SEARCH_PERFORMED = "SEARCH_PERFORMED"
    ERROR_OCCURRED = "ERROR_OCCURRED"


class BaseEvent(BaseModel):
    """Fields shared by every event.

    Wire names are camelCase, with ``eventType`` for the kind and
    ``serviceId`` for the origin. Unknown wire fields are ignored.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    KIND: ClassVar[EventKind]

    kind: EventKind = Field(alias="eventType")
    timestamp: Optional[int] = None
    origin_id: Optional[str] = Field(default=None, alias="serviceId")
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("kind")
    @classmethod
    def _kind_matches_class(cls, v: EventKind) -> EventKind:
        if v is not cls.KIND:
            raise ValueError(f"{cls.__name__} cannot carry kind {v.value}")
        return v

    @classmethod
    def build(cls, **fields: Any) -> "BaseEvent":
        fields.setdefault("kind", cls.KIND)
        try:
            return cls.model_validate(fields)
        except ValidationError as exc:
            raise InvalidEventError(f"invalid {cls.KIND.value} event: {exc}") from exc


class DataFetched(BaseEvent):
    KIND: ClassVar[EventKind] = EventKind.DATA_FETCHED
    kind: EventKind = Field(default=EventKind.DATA_FETCHED, alias="eventType")
    record_count: Optional[int] = None
    source: Optional[str] = None
    duration: Optional[float] = None


class FileUploaded(BaseEvent):
    KIND: ClassVar[EventKind] = EventKind.FILE_UPLOADED
    kind: EventKind = Field(default=EventKind.FILE_UPLOADED, alias="eventType")
    file_name: str
    file_size: Optional[int] = None
    file_type: Optional[str] = None


class DataInserted(BaseEvent):
    KIND: ClassVar[EventKind] = EventKind.DATA_INSERTED
    kind: EventKind = Field(default=EventKind.DATA_INSERTED, alias="eventType")
    collection_name: str
    record_count: Optional[int] = None
    duration: Optional[float] = None


class SearchPerformed(BaseEvent):
    KIND: ClassVar[EventKind] = EventKind.SEARCH_PERFORMED
    kind: EventKind = Field(default=EventKind.SEARCH_PERFORMED, alias="eventType")
    query: str
    result_count: Optional[int] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    duration: Optional[float] = None


class ErrorOccurred(BaseEvent):
    KIND: ClassVar[EventKind] = EventKind.ERROR_OCCURRED
    kind: EventKind = Field(default=EventKind.ERROR_OCCURRED, alias="eventType")
    error: str
    context: str
    stack: Optional[str] = None


Event = Union[DataFetched, FileUploaded, DataInserted, SearchPerformed, ErrorOccurred]

EVENT_TYPES: Dict[EventKind, Type[BaseEvent]] = {
    cls.KIND: cls for cls in (DataFetched, FileUploaded, DataInserted, SearchPerformed, ErrorOccurred)
}

# event attribute -> metric name of the mirrored series
MIRRORED_FIELDS: Dict[str, str] = {
    "record_count": "records",
    "duration": "duration",
    "file_size": "filesize",
}


def build_event(kind: Union[EventKind, str], **fields: Any) -> BaseEvent:
    try:
        k = EventKind(kind)
    except ValueError as exc:
        raise InvalidEventError(f"unknown event kind: {kind!r}") from exc
    return EVENT_TYPES[k].build(**fields)


def serialize(event: BaseEvent) -> Dict[str, Any]:
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def deserialize(data: Dict[str, Any]) -> BaseEvent:
    if not isinstance(data, dict):
        raise InvalidEventError(f"event payload must be a mapping, got {type(data).__name__}")
    raw_kind = data.get("eventType", data.get("kind"))
    if raw_kind is None:
        raise InvalidEventError("event payload has no eventType")
    return build_event(raw_kind, **data)


def encode(event: BaseEvent) -> bytes:
    return orjson.dumps(serialize(event))


def decode(raw: Union[bytes, str]) -> BaseEvent:
    """Decode a channel message. Published events always carry a timestamp and origin."""
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise InvalidEventError(f"message is not valid JSON: {exc}") from exc
    event = deserialize(data)
    if event.timestamp is None or event.origin_id is None:
        raise InvalidEventError(f"{event.kind.value} message lacks timestamp or serviceId")
    return event


def series_key(kind: Union[EventKind, str], metric: str, prefix: str = "ts:events:") -> str:
    return f"{prefix}{EventKind(kind).value}:{metric}"


def metric_samples(event: BaseEvent) -> List[Tuple[str, float]]:
    """(metric, value) pairs mirrored for an event: a count of 1 plus present numeric fields."""
    out = [("count", 1.0)]
    for attr, metric in MIRRORED_FIELDS.items():
        value = getattr(event, attr, None)
        if value is not None:
            out.append((metric, float(value)))
    return out
