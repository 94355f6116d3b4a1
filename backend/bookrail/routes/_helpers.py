"""Shared route helpers."""

import asyncio
from functools import partial
import logging
from typing import Any, Callable, NoReturn, TypeVar

from fastapi import HTTPException, status

from ..core.exceptions import DomainException
from ..core.retry import call_with_retry

logger = logging.getLogger(__name__)

R = TypeVar("R")


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


async def run_with_retry(
    func: Callable[..., R],
    *args: Any,
    max_attempts: int,
    backoff_seconds: float,
) -> R:
    """Run a blocking service call in a worker thread, retrying retryable errors."""
    return await asyncio.to_thread(
        call_with_retry,
        partial(func, *args),
        max_attempts=max_attempts,
        backoff_seconds=backoff_seconds,
    )
