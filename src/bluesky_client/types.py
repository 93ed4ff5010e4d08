"""Bluesky client types - domain values, enums and retry configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


# ─────────────────────────────────────────────────────────────────────────────
# Stream Events (what the caller's sink receives)
# ─────────────────────────────────────────────────────────────────────────────


class StreamEventType(str, Enum):
    """Type of event delivered to a streaming sink."""

    POST = "post"
    STATS = "stats"
    NOTICE = "notice"
    DIAGNOSTIC = "diagnostic"
    RETRY = "retry"


@dataclass(frozen=True)
class PostEvent:
    """A post extracted from a firehose commit."""

    timestamp: datetime | None
    post_id: str
    author_id: str
    text: str = ""
    is_reply: bool = False
    reply_target_id: str = ""


@dataclass(frozen=True)
class StreamStats:
    """Running totals for one streaming session."""

    messages: int = 0
    posts: int = 0
    parse_errors: int = 0

    @property
    def match_ratio(self) -> float:
        """Share of messages that carried a matching post (0.0 - 1.0)."""
        if self.messages == 0:
            return 0.0
        return self.posts / self.messages


@dataclass
class StreamEvent:
    """Unified event delivered to a streaming sink.

    Usage:
        async def sink(event: StreamEvent) -> None:
            if event.is_post:
                print(event.post.text)
            elif event.is_stats:
                print(f"{event.stats.messages} messages seen")
            else:
                print(event.message)
    """

    type: StreamEventType
    post: PostEvent | None = None
    message: str | None = None
    stats: StreamStats | None = None
    data: dict[str, Any] | None = None

    @property
    def is_post(self) -> bool:
        return self.type is StreamEventType.POST

    @property
    def is_stats(self) -> bool:
        return self.type is StreamEventType.STATS

    @property
    def is_notice(self) -> bool:
        return self.type is StreamEventType.NOTICE

    @property
    def is_diagnostic(self) -> bool:
        return self.type is StreamEventType.DIAGNOSTIC

    @property
    def is_retry(self) -> bool:
        return self.type is StreamEventType.RETRY


# ─────────────────────────────────────────────────────────────────────────────
# Error Categories
# ─────────────────────────────────────────────────────────────────────────────


class ErrorCategory(str, Enum):
    """Category of error for retry decisions."""

    NETWORK = "network"
    TRANSIENT = "transient"
    CONTENT = "content"
    FATAL = "fatal"
    INTERNAL = "internal"


class RetryDecision(str, Enum):
    """What the retry policy does with a failed attempt."""

    RETRY = "retry"
    FAIL = "fail"


class BackoffStrategy(str, Enum):
    """Backoff strategy for retries."""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


# ─────────────────────────────────────────────────────────────────────────────
# Retry (seconds, not milliseconds)
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class Retry:
    """Retry configuration.

    `attempts` counts every call, including the first one. All delays are in
    seconds (float), matching asyncio.sleep().
    """

    attempts: int = 3
    base_delay: float = 5.0
    max_delay: float = 60.0
    strategy: BackoffStrategy = BackoffStrategy.FIXED


# ─────────────────────────────────────────────────────────────────────────────
# Connection State
# ─────────────────────────────────────────────────────────────────────────────


class ConnectionState(str, Enum):
    """Lifecycle of a streaming connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSING = "closing"
    FAILED = "failed"


@dataclass
class StreamSession:
    """Mutable state of one streaming call. Owned by a single ConnectionManager run."""

    endpoints: list[str]
    endpoint_index: int = 0
    retry_count: int = 0
    state: ConnectionState = ConnectionState.DISCONNECTED
    message_count: int = 0
    post_count: int = 0
    parse_error_count: int = 0

    @property
    def endpoint(self) -> str:
        return self.endpoints[self.endpoint_index]

    def stats(self) -> StreamStats:
        return StreamStats(
            messages=self.message_count,
            posts=self.post_count,
            parse_errors=self.parse_error_count,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Pagination
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class Page(Generic[T]):
    """One page of a cursor-paginated listing."""

    items: list[T] = field(default_factory=list)
    cursor: str | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Account & Content
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Session:
    """Credentials produced by authentication and passed into every call."""

    access_jwt: str
    did: str
    handle: str | None = None

    @property
    def authorization(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_jwt}"}


@dataclass
class InteractionPost:
    """A post the user interacted with (liked, replied to)."""

    author_did: str
    created_at: datetime | None
    text: str
    post_id: str
    parent_post_id: str | None = None


@dataclass
class ReplyPost(InteractionPost):
    """A reply together with its immediate child replies."""

    replies: list[ReplyPost] = field(default_factory=list)


@dataclass
class PostInfo:
    text: str
    posted_at: datetime | None
    like_count: int = 0
    repost_count: int = 0
    reply_count: int = 0


@dataclass
class PostMetrics:
    like_count: int = 0
    repost_count: int = 0
    reply_count: int = 0

    @property
    def total_engagement(self) -> int:
        return self.like_count + self.repost_count + self.reply_count


@dataclass
class ProfileLabels:
    is_admin: bool = False
    is_moderator: bool = False
    is_verified: bool = False


@dataclass
class ProfileInfo:
    handle: str
    did: str
    display_name: str = ""
    description: str = ""
    avatar: str = ""
    banner: str = ""
    followers_count: int = 0
    following_count: int = 0
    posts_count: int = 0
    labels: ProfileLabels = field(default_factory=ProfileLabels)
