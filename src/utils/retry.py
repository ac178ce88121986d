"""Bounded retry with exponential backoff for async provider calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from src.utils.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int = 2,
    backoff_seconds: float = 0.5,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    operation: str = "provider_call",
) -> T:
    """Await fn() up to `retries + 1` times, sleeping between attempts.

    Args:
        fn: Zero-argument callable returning a fresh awaitable per attempt.
        retries: Extra attempts after the first failure.
        backoff_seconds: Base delay, doubled after each failed attempt.
        retry_on: Exception types that trigger another attempt.
        operation: Name used in log events.

    Returns:
        The result of the first successful attempt.

    Raises:
        The last exception once all attempts are exhausted, or immediately
        for exceptions outside `retry_on`.
    """
    for attempt in range(retries + 1):
        try:
            return await fn()
        except retry_on as e:
            if attempt >= retries:
                raise
            delay = backoff_seconds * (2**attempt)
            logger.warning(
                "retrying_after_error",
                operation=operation,
                attempt=attempt + 1,
                delay_seconds=delay,
                error_type=type(e).__name__,
            )
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")
