"""
Exponential backoff for record-store writes.
"""
import logging
from typing import Callable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


def retrying(attempts: int, min_wait: float, max_wait: float, exception_types: tuple) -> AsyncRetrying:
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=0.5, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exception_types),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


async def call_with_retry(func: Callable, *args, attempts: int = 1, min_wait: float = 0.5, max_wait: float = 5,
                          exception_types: tuple = (Exception,), **kwargs):
    """
    Call the synchronous ``func(*args, **kwargs)`` up to ``attempts`` times.

    Backoff waits on the event loop (``asyncio.sleep``), so other tasks keep
    running between attempts. Only ``exception_types`` are retried, and the
    last failure is re-raised as-is, so ``attempts=1`` behaves like a plain call.
    """
    async for attempt in retrying(attempts, min_wait, max_wait, exception_types):
        with attempt:
            return func(*args, **kwargs)
