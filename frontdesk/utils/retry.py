"""Retry helper with exponential backoff for async backend calls."""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def retry(
    max_attempts: int = 3,
    delay_ms: int = 1000,
    backoff_factor: float = 2.0,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator for async functions with retry logic.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates on the first attempt. ``max_attempts`` includes the first call.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempts = max(1, max_attempts)
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt == attempts:
                        raise
                    wait = (delay_ms * (backoff_factor ** (attempt - 1))) / 1000
                    logger.debug(
                        "retry_attempt",
                        func=getattr(func, "__name__", repr(func)),
                        attempt=attempt,
                        max_attempts=attempts,
                        wait_seconds=wait,
                        error=str(e),
                    )
                    await asyncio.sleep(wait)
            msg = "unreachable"
            raise AssertionError(msg)

        return wrapper

    return decorator
