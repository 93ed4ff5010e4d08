"""Streaming session state management."""

from __future__ import annotations

from .logging import logger
from .types import ConnectionState, StreamSession

_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.STREAMING, ConnectionState.FAILED, ConnectionState.CLOSING}
    ),
    ConnectionState.STREAMING: frozenset(
        {ConnectionState.CLOSING, ConnectionState.FAILED}
    ),
    ConnectionState.CLOSING: frozenset({ConnectionState.DISCONNECTED}),
    ConnectionState.FAILED: frozenset({ConnectionState.DISCONNECTED}),
}


class InvalidTransitionError(RuntimeError):
    pass


def create_session(endpoints: list[str]) -> StreamSession:
    """Create fresh streaming state over `endpoints`."""
    if not endpoints:
        raise ValueError("At least one streaming endpoint is required")
    return StreamSession(endpoints=list(endpoints))


def transition(session: StreamSession, target: ConnectionState) -> None:
    """Move the session to `target`, rejecting moves the lifecycle does not allow."""
    if target not in _TRANSITIONS[session.state]:
        raise InvalidTransitionError(
            f"Cannot move from {session.state.value} to {target.value}"
        )
    logger.debug(f"Connection state: {session.state.value} -> {target.value}")
    session.state = target


def settle(session: StreamSession) -> None:
    """Return a CLOSING or FAILED session to DISCONNECTED; no-op otherwise."""
    if session.state in (ConnectionState.CLOSING, ConnectionState.FAILED):
        transition(session, ConnectionState.DISCONNECTED)


def record_message(session: StreamSession) -> None:
    session.message_count += 1


def record_posts(session: StreamSession, count: int) -> None:
    session.post_count += count
