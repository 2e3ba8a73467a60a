"""Retry utilities with exponential backoff and fixed-interval polling."""

import asyncio
import random
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


async def retry_with_backoff[T](
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 5,
    base_delay: float = 0.1,
    max_delay: float = 10.0,
    jitter: float = 0.1,
) -> T:
    """Retry an async function with exponential backoff.

    Args:
        func: Async function to retry
        max_attempts: Maximum number of attempts
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries
        jitter: Random jitter factor (0-1)

    Returns:
        Result of the function

    Raises:
        The last exception if all attempts fail
    """
    last_error: Exception | None = None

    for attempt in range(max_attempts):
        try:
            return await func()
        except Exception as e:
            last_error = e

            if attempt == max_attempts - 1:
                break

            delay = min(base_delay * (2**attempt), max_delay)

            if jitter > 0:
                delay = delay * (1 + random.uniform(-jitter, jitter))

            await asyncio.sleep(delay)

    assert last_error is not None
    raise last_error


async def poll_until(
    check: Callable[[], Awaitable[bool]],
    attempts: int = 10,
    interval: float = 1.0,
) -> bool:
    """Poll an async predicate at a fixed interval.

    Exceptions raised by ``check`` count as a failed attempt.

    Args:
        check: Async predicate, polled until it returns True
        attempts: Maximum number of checks
        interval: Delay between checks in seconds

    Returns:
        True if the predicate held within the bounded attempts, False otherwise
    """
    for attempt in range(attempts):
        try:
            if await check():
                return True
        except Exception as e:
            logger.debug("Poll check raised", attempt=attempt + 1, error=str(e))

        if attempt < attempts - 1:
            await asyncio.sleep(interval)

    return False
