# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Sprint data access.
Sprints are never deleted; edits to an existing sprint are audited.
"""

from typing import Any, Optional

from sqlalchemy import text

from oncall_rotation.core.errors import InvalidSprintEditError
from oncall_rotation.core.logging import get_logger
from oncall_rotation.models.domain import Sprint
from oncall_rotation.repositories.base import EngineRepository, to_iso, utc_now_iso
from oncall_rotation.repositories.history_repository import insert_event

logger = get_logger(__name__)

SPRINT_COLS = "sprint_index, sprint_name, start_date, end_date"


def _row_to_sprint(row) -> Sprint:
    return Sprint(
        index=row["sprint_index"],
        name=row["sprint_name"],
        start_date=row["start_date"],
        end_date=row["end_date"],
    )


class SprintRepository(EngineRepository):

    # ── Read ──

    def list_ordered(self) -> list[Sprint]:
        def _read() -> list[Sprint]:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    text(f"SELECT {SPRINT_COLS} FROM sprints ORDER BY sprint_index")
                ).mappings().all()
            return [_row_to_sprint(r) for r in rows]

        return self._run(_read, "list sprints")

    def get(self, index: int) -> Optional[Sprint]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT {SPRINT_COLS} FROM sprints WHERE sprint_index = :i"),
                {"i": index},
            ).mappings().first()
        return _row_to_sprint(row) if row else None

    def get_next(self, index: int) -> Optional[Sprint]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text(f"""
                    SELECT {SPRINT_COLS} FROM sprints
                    WHERE sprint_index > :i ORDER BY sprint_index LIMIT 1
                """),
                {"i": index},
            ).mappings().first()
        return _row_to_sprint(row) if row else None

    def count(self) -> int:
        with self._engine.connect() as conn:
            return conn.execute(text("SELECT COUNT(*) FROM sprints")).scalar() or 0

    # ── Write ──

    def upsert(
        self,
        sprint: Sprint,
        reason: Optional[str] = None,
        changed_by: str = "system",
    ) -> Sprint:
        """Create a sprint, or edit an existing one (a reason is then required)."""
        params: dict[str, Any] = {
            "i": sprint.index,
            "name": sprint.name,
            "start": to_iso(sprint.start_date)[:10],
            "end": to_iso(sprint.end_date)[:10],
            "ts": utc_now_iso(),
        }

        def _write() -> Sprint:
            with self._engine.begin() as conn:
                existing = conn.execute(
                    text(f"SELECT {SPRINT_COLS} FROM sprints WHERE sprint_index = :i"),
                    {"i": sprint.index},
                ).mappings().first()
                if existing is None:
                    conn.execute(
                        text("""
                            INSERT INTO sprints
                                (sprint_index, sprint_name, start_date, end_date, created_at)
                            VALUES (:i, :name, :start, :end, :ts)
                        """),
                        params,
                    )
                    insert_event(conn, "sprint_created", f"sprint:{sprint.index}", {
                        "name": sprint.name,
                        "start_date": params["start"],
                        "end_date": params["end"],
                    }, changed_by)
                    logger.info("Sprint %d created: %s", sprint.index, sprint.name)
                    return sprint

                if not reason or not reason.strip():
                    raise InvalidSprintEditError(
                        f"Editing sprint {sprint.index} requires a reason"
                    )
                conn.execute(
                    text("""
                        UPDATE sprints
                        SET sprint_name = :name, start_date = :start,
                            end_date = :end, updated_at = :ts
                        WHERE sprint_index = :i
                    """),
                    params,
                )
                insert_event(conn, "sprint_updated", f"sprint:{sprint.index}", {
                    "old": {
                        "name": existing["sprint_name"],
                        "start_date": to_iso(existing["start_date"]),
                        "end_date": to_iso(existing["end_date"]),
                    },
                    "new": {
                        "name": sprint.name,
                        "start_date": params["start"],
                        "end_date": params["end"],
                    },
                    "reason": reason,
                }, changed_by)
            logger.info("Sprint %d updated by %s: %s", sprint.index, changed_by, reason)
            return sprint

        return self._run(_write, f"upsert sprint {sprint.index}")
