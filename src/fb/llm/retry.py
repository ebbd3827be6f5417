"""
Retry policy for model calls.

One policy object replaces per-call-site retry loops: it is parameterized
by the attempt ceiling, a backoff function and a retryability predicate,
and drives tenacity's AsyncRetrying.

Default backoff is linear, attempt_number x base, with a larger base for
quota errors (quota windows reset slower than server hiccups).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from fb.llm.base import QuotaExceededError, TransientLLMError
from fb.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

BackoffFn = Callable[[int, BaseException], float]
SleepFn = Callable[[float], Awaitable[None]]


def is_transient(error: BaseException) -> bool:
    """Default retryability predicate: only classified transient errors."""
    return isinstance(error, TransientLLMError)


def linear_backoff(quota_base: float, error_base: float) -> BackoffFn:
    """Build a linear backoff function.

    Args:
        quota_base: Seconds per attempt for quota errors.
        error_base: Seconds per attempt for other transient errors.

    Returns:
        Function (attempt_number, error) -> seconds to wait.
    """
    def backoff(attempt: int, error: BaseException) -> float:
        base = quota_base if isinstance(error, QuotaExceededError) else error_base
        return attempt * base

    return backoff


@dataclass
class RetryPolicy:
    """Bounded retry with per-error-class backoff.

    max_attempts counts every call, the first one included: with
    max_attempts=3 the wrapped function runs at most three times.
    """

    max_attempts: int = 3
    backoff: BackoffFn = field(default_factory=lambda: linear_backoff(10.0, 5.0))
    is_retryable: Callable[[BaseException], bool] = is_transient
    sleep: SleepFn = asyncio.sleep

    @classmethod
    def from_settings(cls, settings: Any, sleep: SleepFn | None = None) -> RetryPolicy:
        """Build the policy from Settings (MAX_RETRIES and backoff bases)."""
        return cls(
            max_attempts=settings.MAX_RETRIES,
            backoff=linear_backoff(
                settings.QUOTA_BACKOFF_SECONDS,
                settings.ERROR_BACKOFF_SECONDS,
            ),
            sleep=sleep or asyncio.sleep,
        )

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if error is None:
            return 0.0
        return self.backoff(retry_state.attempt_number, error)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Transient model error, retrying",
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            wait_seconds=wait,
            error_type=type(error).__name__ if error else None,
        )

    def retrying(self) -> AsyncRetrying:
        """Create a tenacity controller for one call."""
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception(self.is_retryable),
            wait=self._wait,
            sleep=self.sleep,
            before_sleep=self._before_sleep,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run fn under this policy.

        Non-retryable errors propagate immediately; once attempts are
        exhausted the last transient error propagates unchanged.
        """
        return await self.retrying()(fn, *args, **kwargs)
