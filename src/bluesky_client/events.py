from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from uuid6 import uuid7

# ─────────────────────────────────────────────────────────────────────────────
# Event Types
# ─────────────────────────────────────────────────────────────────────────────


class ObservabilityEventType(str, Enum):
    # Session
    SESSION_START = "SESSION_START"
    SESSION_END = "SESSION_END"

    # Connection
    CONNECT_START = "CONNECT_START"
    CONNECT_SUCCESS = "CONNECT_SUCCESS"
    CONNECT_FAILED = "CONNECT_FAILED"
    STREAM_CLOSED = "STREAM_CLOSED"
    STREAM_STATS = "STREAM_STATS"

    # Messages
    MESSAGE_PARSE_ERROR = "MESSAGE_PARSE_ERROR"

    # Retry
    RETRY_ATTEMPT = "RETRY_ATTEMPT"
    RETRY_GIVE_UP = "RETRY_GIVE_UP"

    # Pagination
    PAGE_FETCHED = "PAGE_FETCHED"
    PAGINATION_COMPLETE = "PAGINATION_COMPLETE"
    THREAD_LOOKUP_FAILED = "THREAD_LOOKUP_FAILED"

    # Completion
    CANCELLED = "CANCELLED"
    ERROR = "ERROR"


# ─────────────────────────────────────────────────────────────────────────────
# Observability Event
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class ObservabilityEvent:
    type: ObservabilityEventType
    ts: float
    stream_id: str
    meta: dict[str, Any] = field(default_factory=dict)


class EventBus:
    """Central event bus for client observability."""

    def __init__(
        self,
        handler: Callable[[ObservabilityEvent], None] | None = None,
        meta: dict[str, Any] | None = None,
    ):
        self._handler = handler
        self._stream_id = str(uuid7())
        self._meta = meta or {}

    @property
    def stream_id(self) -> str:
        return self._stream_id

    def child(self, **meta: Any) -> EventBus:
        """New bus with its own id, same handler, and extra metadata."""
        return EventBus(self._handler, meta={**self._meta, **meta})

    def emit(self, event_type: ObservabilityEventType, **event_meta: Any) -> None:
        if not self._handler:
            return

        event = ObservabilityEvent(
            type=event_type,
            ts=time.time() * 1000,
            stream_id=self._stream_id,
            meta={**self._meta, **event_meta},
        )
        self._handler(event)
