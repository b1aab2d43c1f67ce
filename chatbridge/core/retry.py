"""Retry with backoff for transient storage failures."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Type, TypeVar

from sqlalchemy.exc import OperationalError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from chatbridge.observability.logging import get_logger

T = TypeVar("T")
log = get_logger("retry")


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    min_wait: float = 0.05,
    max_wait: float = 1.0,
    retryable_exceptions: tuple[Type[Exception], ...] = (OperationalError,),
    **kwargs: Any,
) -> T:
    """
    Retry an async function with exponential backoff.

    Used around storage transactions: SQLite reports "database is locked" as
    an OperationalError while another writer holds the file.

    Args:
        func: Async function to retry
        *args: Positional arguments for func
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time between attempts (seconds)
        max_wait: Maximum wait time between attempts (seconds)
        retryable_exceptions: Exceptions that should trigger retry
        **kwargs: Keyword arguments for func

    Returns:
        Function result

    Raises:
        The last exception once attempts are exhausted.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(retryable_exceptions),
        reraise=True,
    )

    attempt = 0
    async for attempt_state in retrying:
        with attempt_state:
            attempt += 1
            try:
                result = await func(*args, **kwargs)
            except retryable_exceptions as e:
                log.warning(
                    "retry_failed_attempt",
                    func=func.__name__,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
            if attempt > 1:
                log.info("retry_succeeded", func=func.__name__, attempts=attempt)
            return result

    # unreachable with reraise=True
    raise RuntimeError("Retry logic failed unexpectedly")
