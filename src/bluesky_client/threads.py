"""Expansion of replies into their immediate child replies."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from . import cancellation
from ._utils import post_id_from_uri, post_uri
from .cancellation import CancelToken
from .errors import OperationCancelled
from .events import EventBus, ObservabilityEventType
from .logging import logger
from .schemas import PostView, ThreadResponse
from .types import ReplyPost

ThreadFetcher = Callable[[str], Awaitable[ThreadResponse]]


def reply_from_view(post: PostView, parent_post_id: str | None) -> ReplyPost:
    return ReplyPost(
        author_did=post.author.did,
        created_at=post.record.created_at,
        text=post.record.text,
        post_id=post_id_from_uri(post.uri),
        parent_post_id=parent_post_id,
    )


def child_replies(thread: ThreadResponse, parent_post_id: str) -> list[ReplyPost]:
    """Immediate children of a thread's root post.

    Not-found and blocked nodes carry no post and are skipped.
    """
    return [
        reply_from_view(node.post, parent_post_id)
        for node in thread.thread.replies
        if node.post is not None
    ]


class ReplyThreadResolver:
    """Fills `ReplyPost.replies` with one thread lookup per reply.

    A failed lookup leaves that reply's list empty and is logged; it never
    stops the remaining replies. Cancellation is not isolated.
    """

    def __init__(
        self,
        fetch_thread: ThreadFetcher,
        event_bus: EventBus | None = None,
    ) -> None:
        self._fetch_thread = fetch_thread
        self.event_bus = event_bus or EventBus()
        self.failures = 0

    async def resolve(self, reply: ReplyPost, cancel: CancelToken | None = None) -> ReplyPost:
        if cancel is not None:
            cancel.raise_if_cancelled(f"thread {reply.post_id}")
        uri = post_uri(reply.author_did, reply.post_id)
        try:
            thread = await cancellation.guard(
                self._fetch_thread(uri), cancel, f"thread {reply.post_id}"
            )
            reply.replies = child_replies(thread, reply.post_id)
        except OperationCancelled:
            raise
        except Exception as e:
            self.failures += 1
            logger.warning(f"Failed to fetch nested replies for post {reply.post_id}: {e}")
            self.event_bus.emit(
                ObservabilityEventType.THREAD_LOOKUP_FAILED,
                post_id=reply.post_id,
                error=str(e),
            )
            reply.replies = []
        return reply

    async def resolve_all(
        self,
        replies: list[ReplyPost],
        cancel: CancelToken | None = None,
    ) -> list[ReplyPost]:
        for reply in replies:
            if cancel is not None:
                cancel.raise_if_cancelled("reply threads")
            await self.resolve(reply, cancel)
        return replies
