"""Client configuration."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

from ._utils import POST_COLLECTION
from .types import Retry

DEFAULT_BASE_URL = "https://bsky.social/xrpc/"
DEFAULT_STREAM_ENDPOINTS = [
    "wss://jetstream2.us-west.bsky.network/subscribe",
    "wss://jetstream1.us-west.bsky.network/subscribe",
]


class ClientConfig(BaseModel):
    """Bluesky client configuration.

    Usage:
        ```python
        from bluesky_client import BlueskyClient, ClientConfig

        config = ClientConfig(default_page_size=25, page_delay=0.5)
        async with BlueskyClient(config) as client:
            ...

        # Or from BSKY_* environment variables
        config = ClientConfig.from_env()
        ```

    Attributes:
        base_url: XRPC base address
        default_page_size: Page size for feed and like listings
        followers_page_size: Page size for follower listings
        retry_attempts: Attempts per request, including the first
        retry_delay: Fixed delay between request attempts (seconds)
        page_delay: Delay between pages to stay under rate limits (seconds)
        request_timeout: HTTP timeout per request (seconds)
        stream_endpoints: Candidate firehose addresses, tried in order
        stream_retry_attempts: Outer attempts over the whole endpoint list
        stream_retry_delay: Delay after every endpoint in a pass failed (seconds)
        read_size: Maximum bytes handed to the assembler per physical read
        stats_interval: Emit stream statistics every N messages
        error_report_limit: Parse failures reported per streaming session
        post_collection: Collection whose commits become post events
    """

    base_url: str = DEFAULT_BASE_URL
    default_page_size: int = Field(default=50, ge=1, le=100)
    followers_page_size: int = Field(default=100, ge=1, le=100)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=5.0, ge=0.0)
    page_delay: float = Field(default=1.0, ge=0.0)
    request_timeout: float = Field(default=30.0, gt=0.0)
    stream_endpoints: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STREAM_ENDPOINTS), min_length=1
    )
    stream_retry_attempts: int = Field(default=3, ge=1)
    stream_retry_delay: float = Field(default=5.0, ge=0.0)
    read_size: int = Field(default=256 * 1024, ge=1)
    stats_interval: int = Field(default=1000, ge=1)
    error_report_limit: int = Field(default=5, ge=0)
    post_collection: str = POST_COLLECTION

    @property
    def retry(self) -> Retry:
        return Retry(attempts=self.retry_attempts, base_delay=self.retry_delay)

    @property
    def stream_retry(self) -> Retry:
        return Retry(
            attempts=self.stream_retry_attempts,
            base_delay=self.stream_retry_delay,
        )

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Create config from environment variables.

        Reads:
            - BSKY_BASE_URL
            - BSKY_PAGE_SIZE
            - BSKY_RETRY_ATTEMPTS
            - BSKY_RETRY_DELAY
            - BSKY_STREAM_ENDPOINTS (comma separated)

        Returns:
            ClientConfig from environment, defaults for anything unset
        """
        values: dict[str, object] = {}
        if base_url := os.getenv("BSKY_BASE_URL"):
            values["base_url"] = base_url
        if page_size := os.getenv("BSKY_PAGE_SIZE"):
            values["default_page_size"] = int(page_size)
        if attempts := os.getenv("BSKY_RETRY_ATTEMPTS"):
            values["retry_attempts"] = int(attempts)
        if delay := os.getenv("BSKY_RETRY_DELAY"):
            values["retry_delay"] = float(delay)
        endpoints = os.getenv("BSKY_STREAM_ENDPOINTS", "")
        if endpoints:
            values["stream_endpoints"] = [
                e.strip() for e in endpoints.split(",") if e.strip()
            ]
        return cls(**values)
