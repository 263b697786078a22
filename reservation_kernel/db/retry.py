"""
Bounded retry for transient persistence failures.

Only the "no answer" class is retried: the database could not be reached,
the connection dropped mid-statement, or the pool handed out a dead
connection.  Anything else, including every ReservationKernelError and
IntegrityError, is a definite answer and propagates on the first attempt.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

from reservation_kernel.logging_config import get_logger

logger = get_logger("db.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("retry delays must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        return min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    operation: str = "db_call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it returns or raises a non-transient error.

    Raises the last transient error once ``policy.max_attempts`` is spent.
    """
    policy = policy or RetryPolicy()
    attempt = 1
    while True:
        try:
            return fn()
        except DBAPIError as exc:
            if not is_transient(exc) or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "transient_db_error_retry",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "delay_seconds": delay,
                    "error": type(exc).__name__,
                },
            )
            sleep(delay)
            attempt += 1
