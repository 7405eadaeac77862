"""
Transaction retry policy.

Commit races and transient store failures are retried with exponential
backoff. Each attempt re-runs the whole operation from its first read,
so a retry never builds on state from a failed attempt.
"""

from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from paid_ledger.config import StorageSettings, get_settings
from paid_ledger.errors import ConcurrencyConflict, StorageUnavailable


T = TypeVar("T")

RETRYABLE_ERRORS = (ConcurrencyConflict, StorageUnavailable)

logger = structlog.get_logger()


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "transaction_retry",
        attempt=retry_state.attempt_number,
        error=str(outcome.exception()) if outcome else None,
    )


async def run_transactional(
    operation: Callable[..., Awaitable[T]],
    *args,
    settings: Optional[StorageSettings] = None,
    **kwargs,
) -> T:
    """
    Run `operation(*args, **kwargs)` until it commits or attempts run out.

    Only ConcurrencyConflict and StorageUnavailable are retried; any
    other error propagates immediately. After the last attempt the
    original error is re-raised.
    """
    settings = settings or get_settings().storage
    retrying = AsyncRetrying(
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        stop=stop_after_attempt(settings.retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_min_wait,
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        before_sleep=_log_retry,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation(*args, **kwargs)
