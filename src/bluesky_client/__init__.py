"""Bluesky client - AT Protocol API access and firehose streaming."""

from .cancellation import CancelToken
from .classifier import DiagnosticLimiter, EventClassifier
from .client import BlueskyClient
from .config import DEFAULT_BASE_URL, DEFAULT_STREAM_ENDPOINTS, ClientConfig
from .connection import (
    ConnectionManager,
    Connector,
    Frame,
    Sink,
    StreamTransport,
    WebSocketTransport,
)
from .errors import (
    ApiError,
    Error,
    ErrorCode,
    ErrorContext,
    InvalidResponseError,
    NotAuthenticatedError,
    OperationCancelled,
    RetryExhaustedError,
    StreamUnavailableError,
    categorize_error,
    is_retryable,
)
from .events import EventBus, ObservabilityEvent, ObservabilityEventType
from .formatting import (
    format_metrics,
    format_post_event,
    format_profile,
    format_stats,
    replies_to_xml,
    wrap_text,
)
from .framing import FrameAssembler, split_documents
from .logging import enable_debug
from .pagination import PaginatedFetcher
from .retry import RetryManager, default_classify, rate_limit_only
from .threads import ReplyThreadResolver
from .types import (
    BackoffStrategy,
    ConnectionState,
    ErrorCategory,
    InteractionPost,
    Page,
    PostEvent,
    PostInfo,
    PostMetrics,
    ProfileInfo,
    ProfileLabels,
    ReplyPost,
    Retry,
    RetryDecision,
    Session,
    StreamEvent,
    StreamEventType,
    StreamStats,
)
from .version import __version__

__all__ = [
    # Version
    "__version__",
    # Client
    "BlueskyClient",
    "ClientConfig",
    "DEFAULT_BASE_URL",
    "DEFAULT_STREAM_ENDPOINTS",
    "Session",
    "CancelToken",
    # Streaming
    "ConnectionManager",
    "Connector",
    "StreamTransport",
    "WebSocketTransport",
    "Frame",
    "Sink",
    "FrameAssembler",
    "split_documents",
    "EventClassifier",
    "DiagnosticLimiter",
    "ConnectionState",
    "StreamEvent",
    "StreamEventType",
    "StreamStats",
    "PostEvent",
    # Pagination
    "PaginatedFetcher",
    "ReplyThreadResolver",
    "Page",
    # Retry
    "RetryManager",
    "Retry",
    "RetryDecision",
    "BackoffStrategy",
    "default_classify",
    "rate_limit_only",
    # Results
    "InteractionPost",
    "ReplyPost",
    "PostInfo",
    "PostMetrics",
    "ProfileInfo",
    "ProfileLabels",
    # Errors
    "Error",
    "ErrorCode",
    "ErrorContext",
    "ErrorCategory",
    "ApiError",
    "InvalidResponseError",
    "NotAuthenticatedError",
    "RetryExhaustedError",
    "StreamUnavailableError",
    "OperationCancelled",
    "categorize_error",
    "is_retryable",
    # Events
    "EventBus",
    "ObservabilityEvent",
    "ObservabilityEventType",
    # Formatting
    "wrap_text",
    "format_post_event",
    "format_stats",
    "format_profile",
    "format_metrics",
    "replies_to_xml",
    # Debug
    "enable_debug",
]
