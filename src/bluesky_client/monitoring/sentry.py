"""Sentry integration for client observability events."""

from __future__ import annotations

import os
from types import ModuleType
from typing import Any

from pydantic import BaseModel, Field

from ..errors import Error
from ..events import ObservabilityEvent, ObservabilityEventType

_EVENT_LEVELS = {
    ObservabilityEventType.ERROR: "error",
    ObservabilityEventType.RETRY_GIVE_UP: "error",
    ObservabilityEventType.CONNECT_FAILED: "warning",
    ObservabilityEventType.THREAD_LOOKUP_FAILED: "warning",
    ObservabilityEventType.MESSAGE_PARSE_ERROR: "warning",
    ObservabilityEventType.RETRY_ATTEMPT: "warning",
}

# High-volume events that would flood the breadcrumb buffer
_QUIET_EVENTS = {
    ObservabilityEventType.PAGE_FETCHED,
    ObservabilityEventType.STREAM_STATS,
}


class SentryConfig(BaseModel):
    """Sentry configuration.

    Attributes:
        dsn: Sentry DSN (Data Source Name)
        environment: Environment name (production, staging, etc.)
        release: Release/version identifier
        sample_rate: Error sample rate (0.0 to 1.0)
        traces_sample_rate: Transaction sample rate for performance
        enabled: Enable/disable Sentry
        debug: Enable Sentry debug mode
        max_breadcrumbs: Maximum number of breadcrumbs
        tags: Default tags for all events
    """

    dsn: str | None = None
    environment: str | None = None
    release: str | None = None
    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    traces_sample_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    enabled: bool = True
    debug: bool = False
    max_breadcrumbs: int = Field(default=100, ge=0)
    tags: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_env(cls) -> SentryConfig:
        """Create config from environment variables.

        Reads:
            - SENTRY_DSN
            - SENTRY_ENVIRONMENT
            - SENTRY_RELEASE

        Returns:
            SentryConfig from environment
        """
        return cls(
            dsn=os.getenv("SENTRY_DSN"),
            environment=os.getenv("SENTRY_ENVIRONMENT"),
            release=os.getenv("SENTRY_RELEASE"),
        )


class SentryExporter:
    """Forward client events to Sentry as breadcrumbs and capture failures.

    Usage:
        ```python
        from bluesky_client.monitoring import SentryConfig, SentryExporter

        sentry = SentryExporter(SentryConfig.from_env())
        sentry.init()

        client = BlueskyClient(on_event=sentry.handle_event)
        try:
            await client.stream_posts(sink)
        except Error as e:
            sentry.capture_error(e)
        ```

    Requires:
        pip install bluesky-client[observability]
    """

    def __init__(self, config: SentryConfig) -> None:
        self.config = config
        self._initialized = False

    @property
    def active(self) -> bool:
        return self.config.enabled and bool(self.config.dsn)

    def init(self) -> None:
        """Initialize Sentry SDK. Call this once at application startup."""
        if self._initialized or not self.active:
            return

        sentry_sdk = _sentry()
        sentry_sdk.init(
            dsn=self.config.dsn,
            environment=self.config.environment,
            release=self.config.release,
            sample_rate=self.config.sample_rate,
            traces_sample_rate=self.config.traces_sample_rate,
            debug=self.config.debug,
            max_breadcrumbs=self.config.max_breadcrumbs,
        )
        for key, value in self.config.tags.items():
            sentry_sdk.set_tag(key, value)

        self._initialized = True

    def handle_event(self, event: ObservabilityEvent) -> None:
        """Event handler for `BlueskyClient(on_event=...)`."""
        if not self.active or event.type in _QUIET_EVENTS:
            return

        self.init()
        _sentry().add_breadcrumb(
            message=event.type.value,
            category="bluesky",
            level=_EVENT_LEVELS.get(event.type, "info"),
            data={"stream_id": event.stream_id, **event.meta},
        )

    def capture_error(self, error: BaseException, **extra: Any) -> str | None:
        """Capture an error, tagging client errors with their code and operation.

        Returns:
            Sentry event ID, or None if not sent
        """
        if not self.active:
            return None

        self.init()
        sentry_sdk = _sentry()
        with sentry_sdk.new_scope() as scope:
            if isinstance(error, Error):
                scope.set_tag("bluesky.error.code", error.code.value)
                scope.set_context(
                    "bluesky_error",
                    {
                        "operation": error.context.operation,
                        "attempts": error.context.attempts,
                        "status_code": error.context.status_code,
                        "endpoint": error.context.endpoint,
                    },
                )
            for key, value in extra.items():
                scope.set_extra(key, value)
            return sentry_sdk.capture_exception(error)

    def flush(self, timeout: float = 2.0) -> None:
        if self._initialized:
            _sentry().flush(timeout=timeout)


def _sentry() -> ModuleType:
    try:
        import sentry_sdk
    except ImportError as e:
        raise ImportError(
            "Sentry SDK not installed. Install with: pip install bluesky-client[observability]"
        ) from e
    return sentry_sdk
