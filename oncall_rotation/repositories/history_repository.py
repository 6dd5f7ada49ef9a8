# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Audit history (event log) data access.
Append-only log for state changes, sprint edits, override decisions and
handoff warnings.
"""

import json
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection

from oncall_rotation.core.config import settings
from oncall_rotation.repositories.base import EngineRepository, load_json, utc_now_iso


def insert_event(
    conn: Connection,
    event_type: str,
    subject: str,
    details: dict[str, Any],
    changed_by: Optional[str] = "system",
) -> dict[str, Any]:
    """Append an event inside an existing transaction."""
    event = {
        "event_type": event_type,
        "subject": subject,
        "details": details,
        "changed_by": changed_by,
        "created_at": utc_now_iso(),
    }
    conn.execute(
        text("""
            INSERT INTO audit_events (event_type, subject, details, changed_by, created_at)
            VALUES (:event_type, :subject, :details, :changed_by, :created_at)
        """),
        {**event, "details": json.dumps(details, default=str)},
    )
    return event


class HistoryRepository(EngineRepository):
    """Engine-backed audit log."""

    # ── Read ──

    def get_all(
        self,
        event_type: Optional[str] = None,
        subject: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        conditions: list[str] = []
        params: dict[str, Any] = {"limit": limit or settings.DEFAULT_HISTORY_LIMIT}
        if event_type:
            conditions.append("event_type = :event_type")
            params["event_type"] = event_type
        if subject:
            conditions.append("subject = :subject")
            params["subject"] = subject
        where = ("WHERE " + " AND ".join(conditions)) if conditions else ""
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(f"""
                    SELECT id, event_type, subject, details, changed_by, created_at
                    FROM audit_events {where}
                    ORDER BY id DESC
                    LIMIT :limit
                """),
                params,
            ).mappings().all()
        return [
            {
                "id": r["id"],
                "event_type": r["event_type"],
                "subject": r["subject"],
                "details": load_json(r["details"], {}),
                "changed_by": r["changed_by"],
                "created_at": r["created_at"],
            }
            for r in reversed(rows)
        ]

    def has_event(self, event_type: str, subject: str) -> bool:
        with self._engine.connect() as conn:
            row = conn.execute(
                text("SELECT 1 FROM audit_events WHERE event_type = :t AND subject = :s LIMIT 1"),
                {"t": event_type, "s": subject},
            ).fetchone()
        return row is not None

    # ── Write ──

    def record_event(
        self,
        event_type: str,
        subject: str,
        details: dict[str, Any],
        changed_by: Optional[str] = "system",
    ) -> dict[str, Any]:
        def _write() -> dict[str, Any]:
            with self._engine.begin() as conn:
                return insert_event(conn, event_type, subject, details, changed_by)

        return self._run(_write, f"record {event_type}")
