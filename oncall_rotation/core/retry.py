# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Bounded retry with exponential backoff for transient collaborator failures.
"""

import random
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from oncall_rotation.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_MARKERS: tuple[str, ...] = (
    "connection reset",
    "connection refused",
    "connection timeout",
    "timed out",
    "deadlock detected",
    "could not serialize access",
    "database is locked",
    "server closed the connection",
)


def is_retryable_db_error(exc: BaseException) -> bool:
    """Transient database errors worth another attempt."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if not isinstance(exc, (OperationalError, DBAPIError)):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in RETRYABLE_MARKERS)


def with_retry(
    operation: Callable[[], T],
    *,
    attempts: int,
    backoff: float,
    context: str,
    retryable: Callable[[BaseException], bool] = is_retryable_db_error,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation`` up to ``attempts`` times, sleeping with jittered backoff."""
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except Exception as exc:
            if attempt == attempts or not retryable(exc):
                raise
            delay = backoff * (2 ** (attempt - 1)) + random.uniform(0, backoff)
            logger.warning(
                "Retrying %s after attempt %d/%d failed: %s",
                context, attempt, attempts, exc,
            )
            sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover
