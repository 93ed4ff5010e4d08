"""Retry manager with a fixed-interval, error-aware policy."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

from . import cancellation
from .cancellation import CancelToken
from .errors import OperationCancelled, RetryExhaustedError, categorize_error, is_retryable
from .events import EventBus, ObservabilityEventType
from .logging import logger
from .types import BackoffStrategy, Retry, RetryDecision

T = TypeVar("T")

Classifier = Callable[[Exception], RetryDecision]


def default_classify(error: Exception) -> RetryDecision:
    """Retry rate limits, 5xx responses and transport errors; fail on the rest."""
    return RetryDecision.RETRY if is_retryable(error) else RetryDecision.FAIL


def rate_limit_only(error: Exception) -> RetryDecision:
    """Retry only HTTP 429. For writes that must not run twice."""
    if getattr(error, "status_code", None) == 429:
        return RetryDecision.RETRY
    return RetryDecision.FAIL


class RetryManager:
    """Runs an operation within a bounded attempt budget.

    Usage:
        mgr = RetryManager(Retry(attempts=3, base_delay=5.0))
        profile = await mgr.execute(
            lambda: fetch_profile("alice.bsky.social"),
            name="profile alice.bsky.social",
            cancel=cancel,
        )
    """

    def __init__(
        self,
        config: Retry | None = None,
        event_bus: EventBus | None = None,
    ):
        self.config = config or Retry()
        self.event_bus = event_bus or EventBus()
        self.attempt_count = 0
        self.retry_count = 0

    def should_retry(self, error: Exception, classify: Classifier | None = None) -> bool:
        if isinstance(error, OperationCancelled):
            return False
        decision = (classify or default_classify)(error)
        logger.debug(
            f"Error category: {categorize_error(error).value}, decision: {decision.value}, "
            f"attempts: {self.attempt_count}/{self.config.attempts}"
        )
        return decision is RetryDecision.RETRY

    def has_budget(self) -> bool:
        return self.attempt_count < self.config.attempts

    def record_attempt(self) -> None:
        self.attempt_count += 1

    def get_delay(self) -> float:
        """Get delay in seconds before the next attempt."""
        base = self.config.base_delay
        cap = self.config.max_delay
        retry = self.retry_count

        match self.config.strategy:
            case BackoffStrategy.FIXED:
                delay = base
            case BackoffStrategy.LINEAR:
                delay = min(base * (retry + 1), cap)
            case BackoffStrategy.EXPONENTIAL:
                delay = min(base * (2**retry), cap)
            case _:
                delay = base

        logger.debug(f"Retry delay: {delay:.2f}s (strategy: {self.config.strategy.value})")
        return float(delay)

    async def wait(self, cancel: CancelToken | None = None, operation: str | None = None) -> None:
        delay = self.get_delay()
        self.retry_count += 1
        await cancellation.sleep(delay, cancel, operation)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        name: str = "request",
        classify: Classifier | None = None,
        cancel: CancelToken | None = None,
    ) -> T:
        """Run `operation`, retrying per the policy.

        Args:
            operation: Factory returning a fresh awaitable per attempt
            name: Human-readable operation name used in errors and logs
            classify: Decides retry vs. fail for a failed attempt
            cancel: Optional token; pre-empts the call and any pending delay

        Returns:
            The operation's result

        Raises:
            RetryExhaustedError: The budget ran out on a retryable failure
            OperationCancelled: The token fired
            Exception: The first non-retryable failure, unchanged
        """
        self.reset()

        while True:
            if cancel is not None:
                cancel.raise_if_cancelled(name)
            self.record_attempt()
            try:
                return await cancellation.guard(operation(), cancel, name)
            except OperationCancelled:
                raise
            except Exception as e:
                if not self.should_retry(e, classify):
                    self.event_bus.emit(
                        ObservabilityEventType.ERROR,
                        operation=name,
                        attempts=self.attempt_count,
                        error=str(e),
                        category=categorize_error(e).value,
                    )
                    logger.debug(f"{name} failed without retry: {e}")
                    raise

                if not self.has_budget():
                    self.event_bus.emit(
                        ObservabilityEventType.RETRY_GIVE_UP,
                        operation=name,
                        attempts=self.attempt_count,
                        last_error=str(e),
                    )
                    logger.warning(f"{name} failed after {self.attempt_count} attempts: {e}")
                    raise RetryExhaustedError(name, self.attempt_count, e) from e

                self.event_bus.emit(
                    ObservabilityEventType.RETRY_ATTEMPT,
                    operation=name,
                    attempt=self.attempt_count,
                    max_attempts=self.config.attempts,
                    reason=str(e),
                    status_code=getattr(e, "status_code", None),
                )
                logger.warning(
                    f"{name} failed ({e}), retry {self.attempt_count}/"
                    f"{self.config.attempts - 1}"
                )
                await self.wait(cancel, name)

    def get_state(self) -> dict[str, int]:
        return {
            "attempt_count": self.attempt_count,
            "retry_count": self.retry_count,
        }

    def reset(self) -> None:
        self.attempt_count = 0
        self.retry_count = 0
