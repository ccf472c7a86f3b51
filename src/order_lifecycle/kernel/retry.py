"""
tenacity retry policies

Two kinds of transient failure reach the engine. A locked SQLite file is
waited out with exponential backoff. A stream that moved between read and
write gets exactly one more attempt, after the caller has re-read state;
the second attempt re-validates from scratch, so a cancellation that became
illegal in the meantime is declined rather than written.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_none,
)

from order_lifecycle.kernel.errors import StreamVersionConflict
from order_lifecycle.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _failure(retry_state: RetryCallState) -> BaseException | None:
    return retry_state.outcome.exception() if retry_state.outcome else None


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 100,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator: retry ``sqlite3.OperationalError`` ("database is locked") with backoff"""

    def log_lock(retry_state: RetryCallState) -> None:
        logger.warning(
            "Database locked, backing off",
            attempt=retry_state.attempt_number,
            error=str(_failure(retry_state)),
        )

    return retry(
        retry=retry_if_exception_type(sqlite3.OperationalError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(min=min_wait_ms / 1000, max=max_wait_ms / 1000),
        before_sleep=log_lock,
        reraise=True,
    )


def retry_on_version_conflict(
    before_retry: Callable[[StreamVersionConflict], None],
    max_attempts: int = 2,
) -> Retrying:
    """
    Controller that reruns an operation after a StreamVersionConflict

    ``before_retry`` receives the conflict first; that is where the engine
    rebuilds its projections. Once attempts run out the conflict propagates.

    Usage:
        retrying = retry_on_version_conflict(lambda conflict: reload())
        result = retrying(do_cancel)
    """

    def reload_then_retry(retry_state: RetryCallState) -> None:
        conflict = _failure(retry_state)
        logger.warning(
            "Stale stream version, reloading before retry",
            attempt=retry_state.attempt_number,
            stream_id=getattr(conflict, "stream_id", None),
        )
        before_retry(conflict)

    return Retrying(
        retry=retry_if_exception_type(StreamVersionConflict),
        stop=stop_after_attempt(max_attempts),
        wait=wait_none(),
        before_sleep=reload_then_retry,
        reraise=True,
    )
