"""Bounded retry with exponential backoff for retryable domain errors."""

from __future__ import annotations

from functools import wraps
import logging
import time
from typing import Callable, ParamSpec, Tuple, Type, TypeVar

from .exceptions import ConcurrentModificationException, RailTransientException

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

RETRYABLE_ERRORS: Tuple[Type[Exception], ...] = (
    ConcurrentModificationException,
    RailTransientException,
)


def retry(
    max_attempts: int = 3,
    backoff_seconds: float = 0.5,
    retry_on: Tuple[Type[Exception], ...] = RETRYABLE_ERRORS,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator for retrying an operation that raised one of ``retry_on``.

    Anything else propagates immediately. The wrapped callable must re-read its
    state on every attempt; this only schedules the attempts.

    Args:
        max_attempts: Maximum number of attempts (including the first)
        backoff_seconds: Initial backoff, doubled after each failure
        retry_on: Exception types considered safe to retry
        sleep: Sleep function (overridable in tests)
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        # partials and other callables may lack __name__
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_attempts - 1:
                        logger.error(
                            f"All {max_attempts} attempts failed for {name}: {str(e)}"
                        )
                        raise
                    wait_time = backoff_seconds * (2**attempt)
                    logger.warning(
                        f"Attempt {attempt + 1}/{max_attempts} failed for {name}: "
                        f"{str(e)}. Retrying in {wait_time}s..."
                    )
                    sleep(wait_time)
            raise RuntimeError("Retry loop exited without a result")

        return wrapper

    return decorator


def call_with_retry(
    func: Callable[[], R],
    *,
    max_attempts: int,
    backoff_seconds: float,
    retry_on: Tuple[Type[Exception], ...] = RETRYABLE_ERRORS,
    sleep: Callable[[float], None] = time.sleep,
) -> R:
    """Run ``func`` under :func:`retry` without decorating it permanently."""
    return retry(
        max_attempts=max_attempts,
        backoff_seconds=backoff_seconds,
        retry_on=retry_on,
        sleep=sleep,
    )(func)()
