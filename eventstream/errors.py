from __future__ import annotations


class EventStreamError(Exception):
    pass


class InvalidEventError(EventStreamError, ValueError):
    """Event is missing a field its kind requires, or could not be decoded."""


class TransportError(EventStreamError):
    """Publish/subscribe connectivity failure."""


class StoreError(EventStreamError):
    """I/O failure on the time-series store or the event log store."""


class PublishError(EventStreamError):
    """Raised to the producing caller when the channel publish itself failed."""


class RenderError(EventStreamError):
    """Chart or document generation failure."""
