# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Override data access.
At most one approved override per (sprint_index, role): checked inside the
approving transaction and backed by a partial unique index, so a concurrent
approval that slips past the check surfaces as OverrideConflictError.
"""

from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from oncall_rotation.core.errors import OverrideConflictError, OverrideNotFoundError
from oncall_rotation.models.domain import Override
from oncall_rotation.repositories.base import EngineRepository, utc_now_iso
from oncall_rotation.repositories.history_repository import insert_event

OVERRIDE_COLS = (
    "id, sprint_index, role, original_user_id, replacement_user_id, replacement_name, "
    "requested_by, approved, approved_by, approval_timestamp, superseded_by, created_at"
)


def _row_to_override(row) -> Override:
    data = dict(row)
    data["approved"] = bool(data["approved"])
    return Override(**data)


def _fetch(conn: Connection, override_id: int) -> Optional[Override]:
    row = conn.execute(
        text(f"SELECT {OVERRIDE_COLS} FROM overrides WHERE id = :id"),
        {"id": override_id},
    ).mappings().first()
    return _row_to_override(row) if row else None


class OverrideRepository(EngineRepository):
    """Engine-backed override storage."""

    # ── Read ──

    def get(self, override_id: int) -> Optional[Override]:
        with self._engine.connect() as conn:
            return _fetch(conn, override_id)

    def list_all(self, sprint_index: Optional[int] = None) -> list[Override]:
        params: dict[str, Any] = {}
        where = ""
        if sprint_index is not None:
            where = "WHERE sprint_index = :i"
            params["i"] = sprint_index
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(f"SELECT {OVERRIDE_COLS} FROM overrides {where} ORDER BY id"),
                params,
            ).mappings().all()
        return [_row_to_override(r) for r in rows]

    def list_approved(self) -> list[Override]:
        def _read() -> list[Override]:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    text(f"SELECT {OVERRIDE_COLS} FROM overrides WHERE approved = :t ORDER BY id"),
                    {"t": True},
                ).mappings().all()
            return [_row_to_override(r) for r in rows]

        return self._run(_read, "list approved overrides")

    def count_approved(self) -> int:
        with self._engine.connect() as conn:
            return conn.execute(
                text("SELECT COUNT(*) FROM overrides WHERE approved = :t"), {"t": True}
            ).scalar() or 0

    # ── Write ──

    def create_request(self, override: Override) -> Override:
        """Store a pending coverage request."""
        created_at = utc_now_iso()

        def _write() -> Override:
            with self._engine.begin() as conn:
                new_id = conn.execute(
                    text("""
                        INSERT INTO overrides
                            (sprint_index, role, original_user_id, replacement_user_id,
                             replacement_name, requested_by, approved, created_at)
                        VALUES (:sprint_index, :role, :original_user_id, :replacement_user_id,
                                :replacement_name, :requested_by, :approved, :created_at)
                        RETURNING id
                    """),
                    {
                        "sprint_index": override.sprint_index,
                        "role": override.role,
                        "original_user_id": override.original_user_id,
                        "replacement_user_id": override.replacement_user_id,
                        "replacement_name": override.replacement_name,
                        "requested_by": override.requested_by,
                        "approved": False,
                        "created_at": created_at,
                    },
                ).scalar()
                insert_event(conn, "override_requested", f"override:{new_id}", {
                    "sprint_index": override.sprint_index,
                    "role": override.role,
                    "replacement_user_id": override.replacement_user_id,
                }, override.requested_by)
            return override.model_copy(update={
                "id": new_id, "approved": False, "created_at": created_at,
            })

        return self._run(_write, "create override request")

    def approve(self, override_id: int, approved_by: str, supersede: bool = False) -> Override:
        """
        Approve a request. A second approval for the same slot raises
        OverrideConflictError unless ``supersede`` retires the previous one.
        """
        def _write() -> Override:
            with self._engine.begin() as conn:
                override = _fetch(conn, override_id)
                if override is None:
                    raise OverrideNotFoundError(f"Override {override_id} not found")
                if override.approved:
                    return override

                existing = conn.execute(
                    text("""
                        SELECT id FROM overrides
                        WHERE sprint_index = :i AND role = :r AND approved = :t AND id <> :id
                    """),
                    {"i": override.sprint_index, "r": override.role, "t": True, "id": override_id},
                ).scalars().all()
                if existing and not supersede:
                    raise OverrideConflictError(override.sprint_index, override.role, existing[0])
                for previous_id in existing:
                    conn.execute(
                        text("UPDATE overrides SET approved = :f, superseded_by = :id WHERE id = :prev"),
                        {"f": False, "id": override_id, "prev": previous_id},
                    )
                    insert_event(conn, "override_superseded", f"override:{previous_id}",
                                 {"superseded_by": override_id}, approved_by)

                conn.execute(
                    text("""
                        UPDATE overrides
                        SET approved = :t, approved_by = :by, approval_timestamp = :ts
                        WHERE id = :id
                    """),
                    {"t": True, "by": approved_by, "ts": utc_now_iso(), "id": override_id},
                )
                insert_event(conn, "override_approved", f"override:{override_id}", {
                    "sprint_index": override.sprint_index,
                    "role": override.role,
                    "replacement_user_id": override.replacement_user_id,
                    "superseded": list(existing),
                }, approved_by)
                return _fetch(conn, override_id)

        try:
            return self._run(_write, f"approve override {override_id}")
        except IntegrityError:
            # A concurrent approval claimed the slot after our check.
            override = self.get(override_id)
            if override is None:
                raise OverrideNotFoundError(f"Override {override_id} not found") from None
            holder = self._approved_for(override.sprint_index, override.role)
            raise OverrideConflictError(
                override.sprint_index, override.role, holder.id if holder else 0,
            ) from None

    def _approved_for(self, sprint_index: int, role: str) -> Optional[Override]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT {OVERRIDE_COLS} FROM overrides WHERE sprint_index = :i AND role = :r AND approved = :t"),
                {"i": sprint_index, "r": role, "t": True},
            ).mappings().first()
        return _row_to_override(row) if row else None

    def decline(self, override_id: int, declined_by: str) -> Override:
        """Delete a pending request. Approved overrides must be removed instead."""
        def _write() -> Override:
            with self._engine.begin() as conn:
                override = _fetch(conn, override_id)
                if override is None or override.approved:
                    raise OverrideNotFoundError(f"No pending override {override_id}")
                conn.execute(text("DELETE FROM overrides WHERE id = :id"), {"id": override_id})
                insert_event(conn, "override_declined", f"override:{override_id}",
                             override.model_dump(), declined_by)
            return override

        return self._run(_write, f"decline override {override_id}")

    def remove(self, override_id: int, removed_by: str) -> Override:
        """Administrative removal of any override, approved or not."""
        def _write() -> Override:
            with self._engine.begin() as conn:
                override = _fetch(conn, override_id)
                if override is None:
                    raise OverrideNotFoundError(f"Override {override_id} not found")
                conn.execute(text("DELETE FROM overrides WHERE id = :id"), {"id": override_id})
                insert_event(conn, "override_removed", f"override:{override_id}",
                             override.model_dump(), removed_by)
            return override

        return self._run(_write, f"remove override {override_id}")
