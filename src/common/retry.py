# src/common/retry.py
"""
Retry helper for optimistic updates.
"""

from __future__ import annotations

import asyncio
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

from src.common.constants import TypeMsg
from src.common.exceptions import ConcurrentModificationError
from src.common.logger import log_error, log_info

T = TypeVar("T")


def retry_on_conflict(
    max_attempts: int | None = None,
    delay: float | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Retries the wrapped coroutine on ConcurrentModificationError.

    The wrapped function must reload whatever it read, each call is a fresh
    attempt. Backoff grows linearly with the attempt number.

    Args:
        max_attempts: Attempts before the conflict is surfaced (config if None)
        delay: Base delay between attempts in seconds (config if None)
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempts = max_attempts
            base_delay = delay
            if attempts is None or base_delay is None:
                from src.config import settings
                if attempts is None:
                    attempts = settings.concurrency.CONFLICT_RETRY_ATTEMPTS
                if base_delay is None:
                    base_delay = settings.concurrency.CONFLICT_RETRY_DELAY
            # at least one call, so a conflict is always what surfaces
            attempts = max(1, attempts)

            last_error: ConcurrentModificationError | None = None

            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except ConcurrentModificationError as e:
                    last_error = e
                    if attempt < attempts:
                        await log_info(
                            f"Conflict in {func.__name__} (attempt {attempt}/{attempts}): {e}",
                            type_msg=TypeMsg.WARNING,
                        )
                        await asyncio.sleep(base_delay * attempt)
                    else:
                        await log_error(
                            f"{func.__name__} still conflicting after {attempts} attempts: {e}"
                        )

            raise last_error  # type: ignore[misc]

        return wrapper

    return decorator
