"""Cooperative cancellation for long-running operations."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from .errors import OperationCancelled
from .logging import logger

T = TypeVar("T")


class CancelToken:
    """A one-shot cancellation signal shared by one operation.

    Usage:
        cancel = CancelToken()
        task = asyncio.create_task(client.stream_posts(sink, cancel=cancel))
        ...
        cancel.cancel()          # stream_posts raises OperationCancelled
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            logger.debug(f"Cancellation requested ({reason or 'no reason'})")
        self._event.set()

    def raise_if_cancelled(self, operation: str | None = None) -> None:
        if self._event.is_set():
            raise OperationCancelled(operation)

    async def wait(self) -> None:
        await self._event.wait()


async def sleep(
    seconds: float,
    cancel: CancelToken | None = None,
    operation: str | None = None,
) -> None:
    """Sleep for `seconds`, waking immediately if `cancel` fires.

    Raises:
        OperationCancelled: If the token fired before or during the delay
    """
    if cancel is None:
        await asyncio.sleep(seconds)
        return

    cancel.raise_if_cancelled(operation)
    try:
        await asyncio.wait_for(cancel.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise OperationCancelled(operation)


async def guard(
    awaitable: Awaitable[T],
    cancel: CancelToken | None = None,
    operation: str | None = None,
) -> T:
    """Await `awaitable`, abandoning it as soon as `cancel` fires.

    Raises:
        OperationCancelled: If the token fired first; the awaitable is cancelled
    """
    if cancel is None:
        return await awaitable

    cancel.raise_if_cancelled(operation)
    work = asyncio.ensure_future(awaitable)
    watcher = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        watcher.cancel()

    if work.done():
        return work.result()

    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug(f"Abandoned {operation or 'operation'} raised: {e}")
    raise OperationCancelled(operation)
