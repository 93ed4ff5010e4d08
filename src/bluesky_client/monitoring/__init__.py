"""Client monitoring: event handler composition, OpenTelemetry and Sentry.

Usage:
    ```python
    from bluesky_client import BlueskyClient
    from bluesky_client.monitoring import (
        OpenTelemetryConfig,
        OpenTelemetryExporter,
        SentryConfig,
        SentryExporter,
        combine_events,
    )

    otel = OpenTelemetryExporter(OpenTelemetryConfig.from_env())
    sentry = SentryExporter(SentryConfig.from_env())

    client = BlueskyClient(on_event=combine_events(otel.handle_event, sentry.handle_event))
    ```
"""

from .handlers import (
    EventHandler,
    combine_events,
    exclude_events,
    filter_events,
    log_events,
)
from .otel import OpenTelemetryConfig, OpenTelemetryExporter
from .sentry import SentryConfig, SentryExporter

__all__ = [
    # Handlers
    "EventHandler",
    "combine_events",
    "filter_events",
    "exclude_events",
    "log_events",
    # OpenTelemetry
    "OpenTelemetryConfig",
    "OpenTelemetryExporter",
    # Sentry
    "SentryConfig",
    "SentryExporter",
]
