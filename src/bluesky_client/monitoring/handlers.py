"""Event Handler Utilities.

Helpers for combining and composing `on_event` handlers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from ..events import ObservabilityEvent, ObservabilityEventType
from ..logging import logger

EventHandler = Callable[[ObservabilityEvent], None]


def combine_events(*handlers: EventHandler | None) -> EventHandler:
    """Combine multiple event handlers into a single handler.

    Args:
        handlers: Event handlers to combine (None values are filtered out)

    Returns:
        A single event handler that calls all provided handlers

    Example:
        ```python
        from bluesky_client import BlueskyClient
        from bluesky_client.monitoring import combine_events, log_events

        client = BlueskyClient(
            on_event=combine_events(
                otel.handle_event,
                log_events(),
            ),
        )
        ```
    """
    valid_handlers = [h for h in handlers if h is not None]

    if len(valid_handlers) == 0:
        return lambda event: None

    if len(valid_handlers) == 1:
        return valid_handlers[0]

    def combined_handler(event: ObservabilityEvent) -> None:
        for handler in valid_handlers:
            try:
                handler(event)
            except Exception as e:
                # One failing handler must not starve the others
                logger.warning(f"Event handler error for {event.type.value}: {e}")

    return combined_handler


def filter_events(
    types: Iterable[ObservabilityEventType],
    handler: EventHandler,
) -> EventHandler:
    """Create a handler that only receives the given event types.

    Example:
        ```python
        retries = filter_events(
            [ObservabilityEventType.RETRY_ATTEMPT, ObservabilityEventType.RETRY_GIVE_UP],
            lambda event: print(event.meta["operation"]),
        )
        ```
    """
    type_set = set(types)

    def filtered_handler(event: ObservabilityEvent) -> None:
        if event.type in type_set:
            handler(event)

    return filtered_handler


def exclude_events(
    types: Iterable[ObservabilityEventType],
    handler: EventHandler,
) -> EventHandler:
    """Create a handler that skips the given event types.

    Useful for dropping the per-page and per-stats noise.
    """
    type_set = set(types)

    def excluded_handler(event: ObservabilityEvent) -> None:
        if event.type not in type_set:
            handler(event)

    return excluded_handler


def log_events(level: int = logging.DEBUG) -> EventHandler:
    """Handler that writes every event to the client logger."""

    def log_handler(event: ObservabilityEvent) -> None:
        logger.log(level, f"{event.type.value} [{event.stream_id}] {event.meta}")

    return log_handler
