"""
Persistence Retry
=================

Tenacity retry policy for best-effort writes to the audit repository.

Version: 0.1.0
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import settings
from shared.errors import PersistenceError
from shared.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def persistence_retry(func: F) -> F:
    """
    Retry an async write on ``PersistenceError``.

    The final ``PersistenceError`` is re-raised so the caller decides
    whether the write is best-effort.
    """
    return retry(  # type: ignore[return-value]
        retry=retry_if_exception_type(PersistenceError),
        stop=stop_after_attempt(settings.persistence.retry_attempts),
        wait=wait_exponential(
            multiplier=settings.persistence.retry_min_wait_seconds,
            min=settings.persistence.retry_min_wait_seconds,
            max=settings.persistence.retry_max_wait_seconds,
        ),
        before_sleep=lambda retry_state: logger.warning(
            "persistence_retry",
            operation=func.__name__,
            attempt=retry_state.attempt_number,
        ),
        reraise=True,
    )(func)
