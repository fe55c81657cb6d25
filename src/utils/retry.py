"""
Retry logic with exponential backoff.

Used for calls to Slack, Figma, Notion and the AI endpoint, and for
re-running failed discussions.
"""

import logging
import asyncio
import functools
import random
from typing import Callable, Type, Tuple, Optional, Any

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Optional[BaseException] = None, attempts: int = 0):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = False,
) -> float:
    """Delay before the retry that follows failed attempt number ``attempt`` (1-based).

    With the defaults: 2s, 4s, 8s, ... capped at ``max_delay``.
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)
    if jitter:
        delay = delay * (0.5 + random.random())
    return delay


async def retry_with_backoff(
    func: Callable,
    *args,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = False,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    skip_on: Tuple[Type[Exception], ...] = (),
    should_retry: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    **kwargs
) -> Any:
    """
    Execute a function, retrying failures with exponential backoff.

    Args:
        func: Async (or sync) function to execute
        max_attempts: Total attempts including the first one (default: 3)
        base_delay: Delay unit in seconds; retry n waits base * 2^n (default: 1.0)
        max_delay: Upper bound for a single delay (default: 30.0)
        retry_on: Exception types that trigger a retry
        skip_on: Exception types that are raised immediately
        should_retry: Optional predicate; returning False raises immediately
        on_retry: Optional callback(attempt, error) invoked before each wait

    Raises:
        RetryExhausted: If every attempt failed
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    name = getattr(func, "__name__", repr(func))

    for attempt in range(1, max_attempts + 1):
        try:
            if asyncio.iscoroutinefunction(func):
                result = await func(*args, **kwargs)
            else:
                result = func(*args, **kwargs)
                if asyncio.iscoroutine(result):
                    result = await result

            if attempt > 1:
                logger.info(f"Retry successful on attempt {attempt}/{max_attempts} for {name}")

            return result

        except skip_on as e:
            logger.warning(f"Not retrying {name}: {type(e).__name__}: {e}")
            raise

        except retry_on as e:
            if should_retry is not None and not should_retry(e):
                logger.warning(f"Not retrying {name}, error is not retryable: {e}")
                raise

            if attempt == max_attempts:
                logger.error(f"All {max_attempts} attempts exhausted for {name}")
                raise RetryExhausted(
                    f"Failed after {max_attempts} attempts: {type(e).__name__}: {e}",
                    last_exception=e,
                    attempts=attempt,
                ) from e

            if on_retry:
                on_retry(attempt, e)

            delay = backoff_delay(attempt, base_delay, max_delay, exponential_base, jitter)
            logger.warning(
                f"Attempt {attempt}/{max_attempts} for {name} failed "
                f"({type(e).__name__}: {e}). Retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)


async def retry_with_fixed_delay(
    func: Callable,
    *args,
    max_attempts: int = 3,
    delay: float = 1.0,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    **kwargs
) -> Any:
    """Like retry_with_backoff, but waits the same ``delay`` between attempts."""
    name = getattr(func, "__name__", repr(func))

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except retry_on as e:
            if attempt == max_attempts:
                logger.error(f"All {max_attempts} attempts exhausted for {name}")
                raise RetryExhausted(
                    f"Failed after {max_attempts} attempts: {type(e).__name__}: {e}",
                    last_exception=e,
                    attempts=attempt,
                ) from e
            if on_retry:
                on_retry(attempt, e)
            logger.warning(f"Attempt {attempt}/{max_attempts} for {name} failed: {e}. Retrying in {delay:.2f}s")
            await asyncio.sleep(delay)


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = False,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    skip_on: Tuple[Type[Exception], ...] = (),
    should_retry: Optional[Callable[[Exception], bool]] = None,
):
    """
    Decorator adding retry_with_backoff to an async function.

    Usage:
        @with_retry(**SLACK_RETRY)
        async def fetch_thread(...):
            ...
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await retry_with_backoff(
                func,
                *args,
                max_attempts=max_attempts,
                base_delay=base_delay,
                max_delay=max_delay,
                exponential_base=exponential_base,
                jitter=jitter,
                retry_on=retry_on,
                skip_on=skip_on,
                should_retry=should_retry,
                **kwargs
            )
        return wrapper
    return decorator


# Common retry configurations for the external services
SLACK_RETRY = {
    "max_attempts": 3,
    "base_delay": 1.0,
    "max_delay": 30.0,
}

FIGMA_RETRY = {
    "max_attempts": 3,
    "base_delay": 1.0,
    "max_delay": 30.0,
}

NOTION_RETRY = {
    "max_attempts": 3,
    "base_delay": 1.0,
    "max_delay": 30.0,
}

AI_RETRY = {
    "max_attempts": 3,
    "base_delay": 2.0,
    "max_delay": 60.0,
}

# Re-running a whole failed discussion
DISCUSSION_RETRY = {
    "max_attempts": 3,
    "base_delay": 2.0,
    "max_delay": 30.0,
}
