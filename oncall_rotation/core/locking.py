# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Single-writer discipline for CurrentState and the notification snapshot log.
"""

import threading
from contextlib import contextmanager
from typing import Iterator

from oncall_rotation.core.errors import StateLockTimeoutError
from oncall_rotation.core.logging import get_logger

logger = get_logger(__name__)


class StateLock:
    """Process-wide re-entrant lock with a bounded acquisition timeout."""

    def __init__(self, timeout: float) -> None:
        self._lock = threading.RLock()
        self._timeout = timeout

    @contextmanager
    def hold(self, purpose: str) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._timeout):
            logger.error("State lock timeout after %.1fs: %s", self._timeout, purpose)
            raise StateLockTimeoutError(
                f"Could not acquire state lock within {self._timeout}s for {purpose}"
            )
        try:
            yield
        finally:
            self._lock.release()
