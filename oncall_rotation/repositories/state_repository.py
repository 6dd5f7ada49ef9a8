# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: CurrentState data access.
A singleton row, always replaced as a whole record.
"""

import json

from sqlalchemy import text

from oncall_rotation.models.domain import CurrentState
from oncall_rotation.repositories.base import EngineRepository, load_json, utc_now_iso
from oncall_rotation.repositories.history_repository import insert_event

STATE_ROW_ID = 1


class StateRepository(EngineRepository):

    def read(self) -> CurrentState:
        def _read() -> CurrentState:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text("SELECT sprint_index, assignments, updated_at FROM current_state WHERE id = :id"),
                    {"id": STATE_ROW_ID},
                ).mappings().first()
            if row is None:
                return CurrentState()
            return CurrentState(
                sprint_index=row["sprint_index"],
                assignments=load_json(row["assignments"], {}),
                updated_at=row["updated_at"],
            )

        return self._run(_read, "read current state")

    def write(self, state: CurrentState, changed_by: str = "system", reason: str = "") -> CurrentState:
        """Replace the whole record and audit the old/new values in one transaction."""
        stored = state.model_copy(update={"updated_at": utc_now_iso()})

        def _write() -> CurrentState:
            with self._engine.begin() as conn:
                previous = conn.execute(
                    text("SELECT sprint_index, assignments FROM current_state WHERE id = :id"),
                    {"id": STATE_ROW_ID},
                ).mappings().first()
                conn.execute(
                    text("""
                        INSERT INTO current_state (id, sprint_index, assignments, updated_at)
                        VALUES (:id, :sprint_index, :assignments, :updated_at)
                        ON CONFLICT (id) DO UPDATE SET
                            sprint_index = EXCLUDED.sprint_index,
                            assignments = EXCLUDED.assignments,
                            updated_at = EXCLUDED.updated_at
                    """),
                    {
                        "id": STATE_ROW_ID,
                        "sprint_index": stored.sprint_index,
                        "assignments": json.dumps(stored.assignments),
                        "updated_at": stored.updated_at,
                    },
                )
                insert_event(conn, "current_state_written", "current_state", {
                    "old": {
                        "sprint_index": previous["sprint_index"],
                        "assignments": load_json(previous["assignments"], {}),
                    } if previous else None,
                    "new": {"sprint_index": stored.sprint_index, "assignments": stored.assignments},
                    "reason": reason,
                }, changed_by)
            return stored

        return self._run(_write, "write current state")
