# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Data-access layer for notification snapshots and cron trigger audits."""
import json
from typing import Any, Optional

from sqlalchemy import text

from oncall_rotation.core.logging import get_logger
from oncall_rotation.models.domain import (
    DELIVERY_STATUSES,
    TRIGGER_RESULTS,
    CronTriggerAudit,
    NotificationSnapshot,
)
from oncall_rotation.repositories.base import EngineRepository, load_json, to_iso, utc_now_iso

logger = get_logger(__name__)

SNAPSHOT_COLS = (
    "id, captured_at, discipline_assignments, hash, delivery_status, "
    "delivery_reason, trigger_ref, next_delivery"
)


def _row_to_snapshot(row) -> NotificationSnapshot:
    return NotificationSnapshot(
        id=row["id"],
        captured_at=to_iso(row["captured_at"]),
        discipline_assignments=load_json(row["discipline_assignments"], {}),
        hash=row["hash"],
        delivery_status=row["delivery_status"],
        delivery_reason=row["delivery_reason"],
        trigger_ref=row["trigger_ref"],
        next_delivery=to_iso(row["next_delivery"]),
    )


def _row_to_audit(row) -> CronTriggerAudit:
    return CronTriggerAudit(
        id=row["id"],
        triggered_at=to_iso(row["triggered_at"]),
        scheduled_at=to_iso(row["scheduled_at"]),
        result=row["result"],
        details=load_json(row["details"], {}),
    )


class NotificationRepository(EngineRepository):

    # ── Snapshots (append-only) ──

    def insert_snapshot(
        self,
        assignments: dict[str, Optional[str]],
        snapshot_hash: str,
        delivery_status: str,
        delivery_reason: Optional[str] = None,
        trigger_ref: Optional[str] = None,
        next_delivery: Optional[str] = None,
    ) -> NotificationSnapshot:
        if delivery_status not in DELIVERY_STATUSES:
            raise ValueError(f"Unknown delivery status '{delivery_status}'")
        params = {
            "captured_at": utc_now_iso(),
            "assignments": json.dumps(assignments),
            "hash": snapshot_hash,
            "status": delivery_status,
            "reason": delivery_reason,
            "trigger_ref": trigger_ref,
            "next_delivery": next_delivery,
        }

        def _write() -> NotificationSnapshot:
            with self._engine.begin() as conn:
                new_id = conn.execute(
                    text("""
                        INSERT INTO notification_snapshots
                            (captured_at, discipline_assignments, hash, delivery_status,
                             delivery_reason, trigger_ref, next_delivery)
                        VALUES (:captured_at, :assignments, :hash, :status,
                                :reason, :trigger_ref, :next_delivery)
                        RETURNING id
                    """),
                    params,
                ).scalar()
            return NotificationSnapshot(
                id=new_id,
                captured_at=params["captured_at"],
                discipline_assignments=assignments,
                hash=snapshot_hash,
                delivery_status=delivery_status,
                delivery_reason=delivery_reason,
                trigger_ref=trigger_ref,
                next_delivery=next_delivery,
            )

        return self._run(_write, "insert notification snapshot")

    def latest_snapshot(self, delivery_status: Optional[str] = None) -> Optional[NotificationSnapshot]:
        params: dict[str, Any] = {}
        where = ""
        if delivery_status:
            where = "WHERE delivery_status = :status"
            params["status"] = delivery_status

        def _read() -> Optional[NotificationSnapshot]:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text(f"""
                        SELECT {SNAPSHOT_COLS} FROM notification_snapshots {where}
                        ORDER BY id DESC LIMIT 1
                    """),
                    params,
                ).mappings().first()
            return _row_to_snapshot(row) if row else None

        return self._run(_read, "latest notification snapshot")

    def list_snapshots(self, limit: int = 50) -> list[NotificationSnapshot]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(f"SELECT {SNAPSHOT_COLS} FROM notification_snapshots ORDER BY id DESC LIMIT :limit"),
                {"limit": limit},
            ).mappings().all()
        return [_row_to_snapshot(r) for r in rows]

    # ── Cron trigger audits ──

    def get_trigger_audit(self, trigger_id: str) -> Optional[CronTriggerAudit]:
        def _read() -> Optional[CronTriggerAudit]:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text("""
                        SELECT id, triggered_at, scheduled_at, result, details
                        FROM cron_trigger_audits WHERE id = :id
                    """),
                    {"id": trigger_id},
                ).mappings().first()
            return _row_to_audit(row) if row else None

        return self._run(_read, f"get trigger audit {trigger_id}")

    def insert_trigger_audit(
        self,
        trigger_id: str,
        result: str,
        scheduled_at: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> CronTriggerAudit:
        if result not in TRIGGER_RESULTS:
            raise ValueError(f"Unknown trigger result '{result}'")
        audit = CronTriggerAudit(
            id=trigger_id,
            triggered_at=utc_now_iso(),
            scheduled_at=scheduled_at,
            result=result,
            details=details or {},
        )

        def _write() -> CronTriggerAudit:
            with self._engine.begin() as conn:
                conn.execute(
                    text("""
                        INSERT INTO cron_trigger_audits (id, triggered_at, scheduled_at, result, details)
                        VALUES (:id, :triggered_at, :scheduled_at, :result, :details)
                    """),
                    {**audit.model_dump(), "details": json.dumps(audit.details, default=str)},
                )
            return audit

        return self._run(_write, f"insert trigger audit {trigger_id}")

    def update_trigger_result(
        self,
        trigger_id: str,
        result: str,
        details: Optional[dict[str, Any]] = None,
    ) -> Optional[CronTriggerAudit]:
        if result not in TRIGGER_RESULTS:
            raise ValueError(f"Unknown trigger result '{result}'")
        def _write() -> Optional[CronTriggerAudit]:
            with self._engine.begin() as conn:
                current = conn.execute(
                    text("SELECT details FROM cron_trigger_audits WHERE id = :id"),
                    {"id": trigger_id},
                ).mappings().first()
                if current is None:
                    return None
                merged = {**load_json(current["details"], {}), **(details or {})}
                conn.execute(
                    text("UPDATE cron_trigger_audits SET result = :result, details = :details WHERE id = :id"),
                    {"id": trigger_id, "result": result, "details": json.dumps(merged, default=str)},
                )
                row = conn.execute(
                    text("""
                        SELECT id, triggered_at, scheduled_at, result, details
                        FROM cron_trigger_audits WHERE id = :id
                    """),
                    {"id": trigger_id},
                ).mappings().first()
            return _row_to_audit(row)

        return self._run(_write, f"update trigger audit {trigger_id}")
