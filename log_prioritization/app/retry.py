# log_prioritization/app/retry.py
"""Exponential-backoff execution for transient failures, built on tenacity."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from log_prioritization.app.errors import AnalysisHTTPError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0  # seconds

# Transport errors, timeouts, local I/O, and non-2xx answers from the
# analysis endpoint. Anything else fails on the first attempt.
RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    TimeoutError,
    OSError,
    AnalysisHTTPError,
)


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, RETRYABLE_EXCEPTIONS)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "Operation failed on attempt %d. Retrying in %.0fms: %s",
        retry_state.attempt_number,
        delay * 1000,
        exc,
    )


class BackoffExecutor:
    """
    Run an async operation, retrying transient failures with delays of
    base_delay * 2**attempt. max_attempts counts retries, so an operation
    that keeps failing is called max_attempts + 1 times before the last
    error is re-raised.

    Holds no state between calls; one instance can be shared.
    """

    def _retrying(self, max_attempts: int, base_delay: float) -> AsyncRetrying:
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        return AsyncRetrying(
            stop=stop_after_attempt(max_attempts + 1),
            wait=wait_exponential(multiplier=base_delay, exp_base=2, min=0),
            retry=retry_if_exception(is_transient),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
    ) -> T:
        try:
            async for attempt in self._retrying(max_attempts, base_delay):
                with attempt:
                    return await operation()
        except Exception as e:
            if is_transient(e):
                logger.error(
                    "Operation failed after %d attempts: %s", max_attempts + 1, e
                )
            raise

    async def run(
        self,
        operation: Callable[[], Awaitable[object]],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
    ) -> None:
        await self.execute(operation, max_attempts=max_attempts, base_delay=base_delay)
