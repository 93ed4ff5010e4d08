"""Error handling for the Bluesky client.

Provides structured error types, error codes, and retry categorization.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from pydantic import ValidationError
from websockets.exceptions import InvalidHandshake, WebSocketException

from .types import ErrorCategory

# ─────────────────────────────────────────────────────────────────────────────
# Error Codes
# ─────────────────────────────────────────────────────────────────────────────


class ErrorCode(str, Enum):
    """Error codes for programmatic handling.

    Usage:
        from bluesky_client import Error, ErrorCode

        try:
            followers = await client.get_followers(session, "alice.bsky.social")
        except Error as e:
            if e.code == ErrorCode.RETRIES_EXHAUSTED:
                # Rate limited for too long - try again later
                pass
    """

    # Request errors
    API_ERROR = "API_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"

    # Exhaustion errors
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    STREAM_UNAVAILABLE = "STREAM_UNAVAILABLE"


# ─────────────────────────────────────────────────────────────────────────────
# Error Context
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class ErrorContext:
    """Context about the operation that failed."""

    code: ErrorCode
    operation: str | None = None
    attempts: int = 0
    status_code: int | None = None
    endpoint: str | None = None
    metadata: dict[str, Any] | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Error Classes
# ─────────────────────────────────────────────────────────────────────────────


class Error(Exception):
    """Client failure with context for debugging.

    Attributes:
        code: The error code (ErrorCode enum)
        context: Context about the failing operation (ErrorContext)
        timestamp: Unix timestamp when error occurred
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.context = context or ErrorContext(code=code)
        self.timestamp = time.time()

    @property
    def status_code(self) -> int | None:
        return self.context.status_code

    def to_detailed_string(self) -> str:
        """Get detailed string representation for logging."""
        lines = [
            f"Error [{self.code.value}]: {self.args[0]}",
            f"  Timestamp: {self.timestamp}",
            f"  Operation: {self.context.operation}",
            f"  Attempts: {self.context.attempts}",
        ]
        if self.context.status_code is not None:
            lines.append(f"  Status: {self.context.status_code}")
        if self.context.endpoint:
            lines.append(f"  Endpoint: {self.context.endpoint}")
        if self.context.metadata:
            lines.append(f"  Metadata: {self.context.metadata}")
        return "\n".join(lines)


class ApiError(Error):
    """The server answered with a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        *,
        operation: str | None = None,
        body: str = "",
    ) -> None:
        super().__init__(
            message,
            ErrorCode.API_ERROR,
            ErrorContext(
                code=ErrorCode.API_ERROR,
                operation=operation,
                status_code=status_code,
            ),
        )
        self.body = body


class InvalidResponseError(Error):
    """The server answered with a document that does not match its schema."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(
            message,
            ErrorCode.INVALID_RESPONSE,
            ErrorContext(code=ErrorCode.INVALID_RESPONSE, operation=operation),
        )


class NotAuthenticatedError(Error):
    def __init__(self, message: str = "Not authenticated. Call authenticate() first.") -> None:
        super().__init__(message, ErrorCode.NOT_AUTHENTICATED)


class RetryExhaustedError(Error):
    """The retry budget ran out. `__cause__` holds the last failure."""

    def __init__(
        self,
        operation: str,
        attempts: int,
        last_error: BaseException | None = None,
    ) -> None:
        status = getattr(last_error, "status_code", None)
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(
            f"{operation} failed after {attempts} attempts{detail}",
            ErrorCode.RETRIES_EXHAUSTED,
            ErrorContext(
                code=ErrorCode.RETRIES_EXHAUSTED,
                operation=operation,
                attempts=attempts,
                status_code=status if isinstance(status, int) else None,
            ),
        )
        self.last_error = last_error


class StreamUnavailableError(Error):
    """No streaming endpoint could be reached within the retry budget."""

    def __init__(self, endpoints: list[str], attempts: int) -> None:
        super().__init__(
            f"Could not stream from any of {len(endpoints)} endpoint(s) "
            f"after {attempts} attempts",
            ErrorCode.STREAM_UNAVAILABLE,
            ErrorContext(
                code=ErrorCode.STREAM_UNAVAILABLE,
                operation="stream",
                attempts=attempts,
                metadata={"endpoints": list(endpoints)},
            ),
        )


class OperationCancelled(Exception):
    """Raised when an operation stops because its CancelToken fired.

    Deliberately not an `Error` subclass: cancellation is an outcome, not a
    failure.
    """

    def __init__(self, operation: str | None = None) -> None:
        super().__init__(f"{operation or 'Operation'} cancelled")
        self.operation = operation


# ─────────────────────────────────────────────────────────────────────────────
# Error Categorization (for retry decisions)
# ─────────────────────────────────────────────────────────────────────────────


def is_network_error(error: BaseException) -> bool:
    """Check if error comes from the transport rather than the server."""
    if isinstance(error, InvalidHandshake):
        # Handshake rejections carry an HTTP status; see categorize_error.
        return getattr(error, "response", None) is None
    return isinstance(
        error,
        (
            httpx.TransportError,
            WebSocketException,
            asyncio.TimeoutError,
            ConnectionError,
            OSError,
        ),
    )


def categorize_error(error: BaseException) -> ErrorCategory:
    """Categorize error for retry decisions."""
    if isinstance(error, OperationCancelled):
        return ErrorCategory.INTERNAL

    if is_network_error(error):
        return ErrorCategory.NETWORK

    if isinstance(error, (ValidationError, InvalidResponseError, ValueError)):
        return ErrorCategory.CONTENT

    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    if isinstance(status, int):
        if status == 429:
            return ErrorCategory.TRANSIENT
        if 500 <= status < 600:
            return ErrorCategory.TRANSIENT
        return ErrorCategory.FATAL

    return ErrorCategory.INTERNAL


def is_retryable(error: BaseException) -> bool:
    """Determine if error should trigger a retry."""
    return categorize_error(error) in (ErrorCategory.NETWORK, ErrorCategory.TRANSIENT)
