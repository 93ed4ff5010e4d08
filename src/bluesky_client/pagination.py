"""Cursor-driven pagination shared by every listing endpoint."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

from . import cancellation
from .cancellation import CancelToken
from .errors import OperationCancelled
from .events import EventBus, ObservabilityEventType
from .logging import logger
from .retry import Classifier, RetryManager
from .types import Page, Retry

R = TypeVar("R")
T = TypeVar("T")

PageRequest = Callable[[str | None], Awaitable[Page[R]]]


class PaginatedFetcher:
    """Walks a cursor-paginated listing to the end.

    Usage:
        fetcher = PaginatedFetcher(Retry(attempts=3, base_delay=5.0), page_delay=1.0)
        dids = await fetcher.fetch(
            lambda cursor: get_followers_page(actor, cursor),
            extract=lambda follower: follower.did,
            dedupe_key=lambda did: did,
            name=f"followers of {actor}",
        )

    Pagination stops when the server returns no cursor, an empty page, or the
    cursor it was just sent. Each page request runs through RetryManager with
    its own attempt budget.
    """

    def __init__(
        self,
        retry: Retry | None = None,
        *,
        page_delay: float = 1.0,
        event_bus: EventBus | None = None,
    ) -> None:
        self.retry = retry or Retry()
        self.page_delay = page_delay
        self.event_bus = event_bus or EventBus()

    async def fetch(
        self,
        page_request: PageRequest[Any],
        *,
        extract: Callable[[Any], T | None] | None = None,
        dedupe_key: Callable[[T], Hashable] | None = None,
        name: str = "listing",
        cancel: CancelToken | None = None,
        classify: Classifier | None = None,
        max_pages: int | None = None,
    ) -> list[T]:
        """Fetch every page and return the items in page order.

        Args:
            page_request: Issues one request for the given cursor (None first)
            extract: Maps a raw item to a result item; None drops the item
            dedupe_key: Skip items whose key was already collected
            name: Target description used in logs and errors
            cancel: Checked between pages; also pre-empts a request in flight
            classify: Retry classifier for page requests
            max_pages: Optional cap on the number of requests

        Raises:
            OperationCancelled: The token fired (no partial result is returned)
            RetryExhaustedError: A page kept failing with retryable errors
        """
        retry_mgr = RetryManager(self.retry, self.event_bus)
        results: list[T] = []
        seen: set[Hashable] = set()
        cursor: str | None = None
        page_count = 0

        logger.info(f"Fetching {name}...")
        try:
            while True:
                if cancel is not None:
                    cancel.raise_if_cancelled(name)

                page = await retry_mgr.execute(
                    lambda c=cursor: page_request(c),
                    name=name,
                    classify=classify,
                    cancel=cancel,
                )
                page_count += 1

                added = 0
                for raw in page.items:
                    item = extract(raw) if extract is not None else raw
                    if item is None:
                        continue
                    if dedupe_key is not None:
                        key = dedupe_key(item)
                        if key in seen:
                            continue
                        seen.add(key)
                    results.append(item)
                    added += 1

                self.event_bus.emit(
                    ObservabilityEventType.PAGE_FETCHED,
                    operation=name,
                    page=page_count,
                    items=len(page.items),
                    added=added,
                )
                logger.debug(
                    f"Page {page_count} of {name}: {len(page.items)} items ({added} new)"
                )

                next_cursor = page.cursor or None
                if next_cursor is None or not page.items:
                    break
                if next_cursor == cursor:
                    logger.warning(f"Server repeated cursor for {name}; stopping")
                    break
                if max_pages is not None and page_count >= max_pages:
                    logger.debug(f"Reached page limit ({max_pages}) for {name}")
                    break

                cursor = next_cursor
                await cancellation.sleep(self.page_delay, cancel, name)
        except OperationCancelled:
            self.event_bus.emit(
                ObservabilityEventType.CANCELLED, operation=name, pages=page_count
            )
            raise

        self.event_bus.emit(
            ObservabilityEventType.PAGINATION_COMPLETE,
            operation=name,
            pages=page_count,
            items=len(results),
        )
        logger.info(f"Retrieved total of {len(results)} items for {name}")
        return results
