"""Firehose connection lifecycle: connect, read, reconnect, terminate."""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from . import cancellation
from ._utils import POST_COLLECTION
from .cancellation import CancelToken
from .classifier import EventClassifier
from .errors import OperationCancelled, StreamUnavailableError
from .events import EventBus, ObservabilityEventType
from .formatting import format_stats
from .framing import FrameAssembler
from .logging import logger
from .state import create_session, record_message, record_posts, settle, transition
from .types import (
    ConnectionState,
    PostEvent,
    Retry,
    StreamEvent,
    StreamEventType,
    StreamSession,
    StreamStats,
)

DEFAULT_READ_SIZE = 256 * 1024


# ─────────────────────────────────────────────────────────────────────────────
# Transport
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Frame:
    """One physical read. `final` marks the last chunk of a message."""

    data: bytes
    final: bool = True
    closed: bool = False


CLOSED = Frame(b"", final=True, closed=True)


class StreamTransport(Protocol):
    async def receive(self) -> Frame: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[StreamTransport]]
Sink = Callable[[StreamEvent], Any]


class WebSocketTransport:
    """Reads a websocket as bounded chunks with end-of-message flags.

    Each websocket fragment is cut into pieces of at most `read_size` bytes;
    only the last piece of the last fragment of a message is `final`.
    """

    def __init__(self, connection: ClientConnection, read_size: int = DEFAULT_READ_SIZE):
        self._connection = connection
        self._read_size = read_size
        self._frames = self._iter_frames()

    @classmethod
    async def connect(
        cls,
        url: str,
        *,
        read_size: int = DEFAULT_READ_SIZE,
        open_timeout: float | None = 10.0,
    ) -> WebSocketTransport:
        connection = await connect(url, max_size=None, open_timeout=open_timeout)
        return cls(connection, read_size)

    async def receive(self) -> Frame:
        try:
            return await self._frames.__anext__()
        except StopAsyncIteration:
            return CLOSED

    async def close(self) -> None:
        await self._frames.aclose()
        await self._connection.close()

    async def _iter_frames(self) -> AsyncIterator[Frame]:
        while True:
            pending: bytes | None = None
            try:
                async for fragment in self._connection.recv_streaming(decode=False):
                    if pending is not None:
                        for frame in self._slice(pending, final=False):
                            yield frame
                    pending = fragment
            except ConnectionClosed as e:
                # Any close frame from the server ends the stream; only a
                # dropped connection without one is a read failure.
                if e.rcvd is None and not isinstance(e, ConnectionClosedOK):
                    raise
                logger.debug(f"Server closed the stream: {e}")
                return
            for frame in self._slice(pending or b"", final=True):
                yield frame

    def _slice(self, data: bytes, final: bool) -> list[Frame]:
        if not data:
            return [Frame(b"", final=final)]
        size = self._read_size
        chunks = [data[i : i + size] for i in range(0, len(data), size)]
        return [
            Frame(chunk, final=final and i == len(chunks) - 1)
            for i, chunk in enumerate(chunks)
        ]


class _ReadFailure(Exception):
    """Wraps a transport error raised while reading an open connection."""


# ─────────────────────────────────────────────────────────────────────────────
# Connection Manager
# ─────────────────────────────────────────────────────────────────────────────


class ConnectionManager:
    """Owns one firehose subscription from connect to termination.

    Usage:
        manager = ConnectionManager(["wss://jetstream2.us-west.bsky.network/subscribe"])
        cancel = CancelToken()

        async def sink(event: StreamEvent) -> None:
            if event.is_post:
                print(event.post.text)

        stats = await manager.run(sink, cancel=cancel)

    Endpoints are tried in order. A failed connect moves on to the next
    endpoint; only a pass in which every endpoint failed consumes one of the
    outer attempts, followed by a fixed delay.
    """

    def __init__(
        self,
        endpoints: list[str],
        *,
        connector: Connector | None = None,
        retry: Retry | None = None,
        read_size: int = DEFAULT_READ_SIZE,
        stats_interval: int = 1000,
        collection: str = POST_COLLECTION,
        error_report_limit: int = 5,
        event_bus: EventBus | None = None,
    ) -> None:
        self.endpoints = list(endpoints)
        self.retry = retry or Retry()
        self.read_size = read_size
        self.stats_interval = stats_interval
        self.collection = collection
        self.error_report_limit = error_report_limit
        self.event_bus = event_bus or EventBus()
        self._connector = connector or self._websocket_connector
        self._session: StreamSession | None = None

    @property
    def state(self) -> ConnectionState:
        if self._session is None:
            return ConnectionState.DISCONNECTED
        return self._session.state

    @property
    def session(self) -> StreamSession | None:
        return self._session

    async def _websocket_connector(self, url: str) -> StreamTransport:
        return await WebSocketTransport.connect(url, read_size=self.read_size)

    async def run(self, sink: Sink, cancel: CancelToken | None = None) -> StreamStats:
        """Stream until the server closes, cancellation, or the budget is spent.

        Returns:
            Totals for the session when the server closed the stream cleanly

        Raises:
            OperationCancelled: The token fired
            StreamUnavailableError: Every endpoint failed on every attempt
        """
        session = create_session(self.endpoints)
        self._session = session
        classifier = EventClassifier(self.collection, self.error_report_limit)
        max_attempts = self.retry.attempts
        delay = self.retry.base_delay

        self.event_bus.emit(
            ObservabilityEventType.SESSION_START,
            endpoints=session.endpoints,
            max_attempts=max_attempts,
        )
        try:
            while session.retry_count < max_attempts:
                self._check(cancel)
                await self._notify(
                    sink,
                    StreamEventType.NOTICE,
                    f"Bluesky firehose - attempt {session.retry_count + 1}/{max_attempts}",
                )

                for index in range(len(session.endpoints)):
                    self._check(cancel)
                    session.endpoint_index = index
                    stats = await self._stream_endpoint(session, classifier, sink, cancel)
                    if stats is not None:
                        return stats

                session.retry_count += 1
                if session.retry_count < max_attempts:
                    self.event_bus.emit(
                        ObservabilityEventType.RETRY_ATTEMPT,
                        operation="stream",
                        attempt=session.retry_count,
                        max_attempts=max_attempts,
                    )
                    await self._notify(
                        sink,
                        StreamEventType.RETRY,
                        f"Retrying in {delay:g} seconds... "
                        f"({session.retry_count}/{max_attempts})",
                        data={"attempt": session.retry_count, "delay": delay},
                    )
                await cancellation.sleep(delay, cancel, "stream")

            self.event_bus.emit(
                ObservabilityEventType.RETRY_GIVE_UP,
                operation="stream",
                attempts=session.retry_count,
            )
            logger.error(f"No firehose endpoint reachable after {session.retry_count} attempts")
            raise StreamUnavailableError(session.endpoints, session.retry_count)
        except OperationCancelled:
            self.event_bus.emit(ObservabilityEventType.CANCELLED, operation="stream")
            logger.info("Stream stopped by cancellation")
            raise
        finally:
            self.event_bus.emit(
                ObservabilityEventType.SESSION_END,
                messages=session.message_count,
                posts=session.post_count,
                parse_errors=session.parse_error_count,
            )

    async def _stream_endpoint(
        self,
        session: StreamSession,
        classifier: EventClassifier,
        sink: Sink,
        cancel: CancelToken | None,
    ) -> StreamStats | None:
        """Connect to the current endpoint and read it.

        Returns stats on a clean close, None if the endpoint failed.
        """
        endpoint = session.endpoint
        transition(session, ConnectionState.CONNECTING)
        self.event_bus.emit(ObservabilityEventType.CONNECT_START, endpoint=endpoint)

        try:
            transport = await cancellation.guard(
                self._connector(endpoint), cancel, "stream connect"
            )
        except OperationCancelled:
            transition(session, ConnectionState.CLOSING)
            settle(session)
            raise
        except Exception as e:
            transition(session, ConnectionState.FAILED)
            settle(session)
            logger.warning(f"Failed to connect to {endpoint}: {e}")
            self.event_bus.emit(
                ObservabilityEventType.CONNECT_FAILED, endpoint=endpoint, error=str(e)
            )
            await self._notify(
                sink, StreamEventType.NOTICE, f"Failed to connect to {endpoint}: {e}"
            )
            return None

        try:
            transition(session, ConnectionState.STREAMING)
            self.event_bus.emit(ObservabilityEventType.CONNECT_SUCCESS, endpoint=endpoint)
            logger.info(f"Connected to {endpoint}")
            await self._notify(sink, StreamEventType.NOTICE, "Connected! Streaming posts...")
            await self._read_loop(transport, session, classifier, sink, cancel)
        except OperationCancelled:
            transition(session, ConnectionState.CLOSING)
            settle(session)
            raise
        except _ReadFailure as e:
            transition(session, ConnectionState.FAILED)
            settle(session)
            cause = e.__cause__ or e
            logger.warning(f"Stream error on {endpoint}: {cause}")
            self.event_bus.emit(
                ObservabilityEventType.CONNECT_FAILED,
                endpoint=endpoint,
                error=str(cause),
                streaming=True,
            )
            await self._notify(sink, StreamEventType.NOTICE, f"Stream error: {cause}")
            return None
        except Exception:
            transition(session, ConnectionState.FAILED)
            settle(session)
            raise
        finally:
            await self._close(transport, endpoint)

        transition(session, ConnectionState.CLOSING)
        settle(session)
        self.event_bus.emit(ObservabilityEventType.STREAM_CLOSED, endpoint=endpoint)
        await self._notify(sink, StreamEventType.NOTICE, "Connection closed by server")
        return session.stats()

    async def _read_loop(
        self,
        transport: StreamTransport,
        session: StreamSession,
        classifier: EventClassifier,
        sink: Sink,
        cancel: CancelToken | None,
    ) -> None:
        assembler = FrameAssembler()

        while True:
            self._check(cancel)
            try:
                frame = await cancellation.guard(transport.receive(), cancel, "stream read")
            except OperationCancelled:
                raise
            except Exception as e:
                raise _ReadFailure(str(e)) from e

            if frame.closed:
                if assembler.pending:
                    logger.debug(f"Dropping {assembler.pending} bytes of an unfinished message")
                return

            documents = assembler.feed(frame.data, frame.final)
            if not frame.final:
                continue

            record_message(session)
            for envelope in documents:
                post = classifier.classify(envelope, session.message_count)
                if post is not None:
                    record_posts(session, 1)
                    await self._deliver(sink, post)

            session.parse_error_count = classifier.error_count
            for diagnostic in classifier.pop_diagnostics():
                self.event_bus.emit(
                    ObservabilityEventType.MESSAGE_PARSE_ERROR,
                    message_number=session.message_count,
                    error=diagnostic,
                )
                await self._notify(sink, StreamEventType.DIAGNOSTIC, diagnostic)

            if session.message_count % self.stats_interval == 0:
                stats = session.stats()
                self.event_bus.emit(
                    ObservabilityEventType.STREAM_STATS,
                    messages=stats.messages,
                    posts=stats.posts,
                    match_ratio=stats.match_ratio,
                )
                await self._emit(
                    sink,
                    StreamEvent(
                        type=StreamEventType.STATS,
                        stats=stats,
                        message=format_stats(stats),
                    ),
                )

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    @staticmethod
    def _check(cancel: CancelToken | None) -> None:
        if cancel is not None:
            cancel.raise_if_cancelled("stream")

    async def _close(self, transport: StreamTransport, endpoint: str) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.debug(f"Error closing connection to {endpoint}: {e}")

    async def _deliver(self, sink: Sink, post: PostEvent) -> None:
        await self._emit(sink, StreamEvent(type=StreamEventType.POST, post=post))

    async def _notify(
        self,
        sink: Sink,
        event_type: StreamEventType,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        await self._emit(sink, StreamEvent(type=event_type, message=message, data=data))

    @staticmethod
    async def _emit(sink: Sink, event: StreamEvent) -> None:
        result = sink(event)
        if inspect.isawaitable(result):
            await result
