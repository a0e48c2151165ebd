"""
Retry utilities with exponential backoff for provider calls.

Only transient provider failures (timeouts, 5xx) are retried inside a request;
throttling and exhausted capacity are surfaced to the caller immediately.
"""

import asyncio
import functools
import random
import time
from typing import Any, Callable, Optional, Type, Union

from .error_handler import TransientProviderError


def _backoff_delay(attempt: int, base_delay: float, max_delay: float,
                   exponential_base: float, jitter: bool) -> float:
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)
    if jitter:
        delay *= (0.5 + random.random() * 0.5)
    return delay


def retry(
    max_attempts: int = 3,
    base_delay: float = 0.2,
    max_delay: float = 3.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: Union[Type[Exception], tuple] = TransientProviderError,
    logger: Optional[Any] = None,
    should_retry: Optional[Callable[[Exception], bool]] = None
):
    """
    Retry decorator with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts, including the first call
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff calculation
        jitter: Whether to add random jitter to delays
        exceptions: Exception types to retry on
        logger: structlog logger for retry logging
        should_retry: Optional predicate; a caught exception it rejects is re-raised at once

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts or (should_retry and not should_retry(e)):
                        if logger:
                            logger.error(
                                f"Function {func.__name__} failed after {attempt} attempts",
                                function=func.__name__,
                                attempts=attempt,
                                final_exception=str(e),
                            )
                        raise

                    delay = _backoff_delay(attempt, base_delay, max_delay, exponential_base, jitter)
                    if logger:
                        logger.warning(
                            f"Function {func.__name__} failed (attempt {attempt}/{max_attempts}), "
                            f"retrying in {delay:.2f}s",
                            function=func.__name__,
                            attempt=attempt,
                            delay=delay,
                            exception=str(e),
                        )
                    time.sleep(delay)

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts or (should_retry and not should_retry(e)):
                        if logger:
                            logger.error(
                                f"Async function {func.__name__} failed after {attempt} attempts",
                                function=func.__name__,
                                attempts=attempt,
                                final_exception=str(e),
                            )
                        raise

                    delay = _backoff_delay(attempt, base_delay, max_delay, exponential_base, jitter)
                    if logger:
                        logger.warning(
                            f"Async function {func.__name__} failed (attempt {attempt}/{max_attempts}), "
                            f"retrying in {delay:.2f}s",
                            function=func.__name__,
                            attempt=attempt,
                            delay=delay,
                            exception=str(e),
                        )
                    await asyncio.sleep(delay)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return wrapper

    return decorator


def is_retryable_error(error: Exception) -> bool:
    """
    Determine if an error is retryable.

    Args:
        error: The exception to check

    Returns:
        True if the error is retryable, False otherwise
    """
    retryable = getattr(error, "retryable", None)
    if retryable is not None:
        return bool(retryable)

    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    error_str = str(error).lower()
    retryable_keywords = [
        'timeout', 'connection refused', 'network unreachable',
        'temporary failure', 'service unavailable', 'too many requests',
        'server error', 'gateway timeout'
    ]

    return any(keyword in error_str for keyword in retryable_keywords)
