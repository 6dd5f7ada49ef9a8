# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Shared plumbing for engine-backed repositories."""
import json
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.engine import Engine

from oncall_rotation.core.config import settings
from oncall_rotation.core.retry import with_retry

T = TypeVar("T")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def load_json(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return default


class EngineRepository:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _run(self, operation: Callable[[], T], context: str) -> T:
        return with_retry(
            operation,
            attempts=settings.DB_MAX_RETRIES,
            backoff=settings.DB_RETRY_BACKOFF,
            context=context,
        )
