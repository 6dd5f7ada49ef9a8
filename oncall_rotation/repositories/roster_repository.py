# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Rotation lists (discipline members) data access.
Order is the rotation order; inactive members are kept but skipped.
"""

from typing import Iterable, Optional

from sqlalchemy import text

from oncall_rotation.core.cache import RedisCache
from oncall_rotation.core.logging import get_logger
from oncall_rotation.models.domain import RotationList, RotationMember
from oncall_rotation.repositories.base import EngineRepository
from oncall_rotation.repositories.history_repository import insert_event
from oncall_rotation.services.rotation import find_cross_role_members

logger = get_logger(__name__)

CACHE_KEY = "rotation_lists"


class RosterRepository(EngineRepository):
    """Engine-backed rotation lists with an optional read-through cache."""

    def __init__(self, engine, cache: Optional[RedisCache] = None) -> None:
        super().__init__(engine)
        self._cache = cache

    # ── Read ──

    def get_rotation_lists(self, roles: Iterable[str] = ()) -> dict[str, RotationList]:
        """role -> RotationList for every configured role and every stored discipline."""
        raw = self._cache.get_json(CACHE_KEY) if self._cache else None
        if raw is None:
            raw = self._run(self._load_members, "load rotation lists")
            if self._cache:
                self._cache.set_json(CACHE_KEY, raw)

        lists: dict[str, RotationList] = {role: RotationList(role=role) for role in roles}
        for role, members in raw.items():
            lists[role] = RotationList(
                role=role,
                members=[RotationMember(**m) for m in members],
            )

        duplicates = find_cross_role_members(lists)
        if duplicates:
            logger.warning("Users found in multiple disciplines: %s", duplicates)
        return lists

    def _load_members(self) -> dict[str, list[dict]]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                text("""
                    SELECT discipline, user_id, display_name, active
                    FROM rotation_members
                    ORDER BY discipline, position, user_id
                """)
            ).mappings().all()
        raw: dict[str, list[dict]] = {}
        for r in rows:
            raw.setdefault(r["discipline"], []).append({
                "user_id": r["user_id"],
                "display_name": r["display_name"],
                "active": bool(r["active"]),
            })
        return raw

    # ── Write ──

    def add_member(
        self,
        role: str,
        user_id: str,
        display_name: str = "",
        changed_by: str = "system",
    ) -> RotationMember:
        """Append a member to the end of a discipline's rotation order."""
        def _write() -> RotationMember:
            with self._engine.begin() as conn:
                position = conn.execute(
                    text("SELECT COALESCE(MAX(position), -1) + 1 FROM rotation_members WHERE discipline = :d"),
                    {"d": role},
                ).scalar()
                conn.execute(
                    text("""
                        INSERT INTO rotation_members (discipline, user_id, display_name, position, active)
                        VALUES (:d, :u, :n, :p, :a)
                    """),
                    {"d": role, "u": user_id, "n": display_name or user_id, "p": position, "a": True},
                )
                insert_event(conn, "member_added", f"discipline:{role}", {
                    "user_id": user_id, "position": position,
                }, changed_by)
            return RotationMember(user_id=user_id, display_name=display_name or user_id)

        member = self._run(_write, f"add member {user_id} to {role}")
        self._invalidate()
        return member

    def set_active(self, role: str, user_id: str, active: bool, changed_by: str = "system") -> bool:
        """
        (De)activate a member without losing their position. Deactivation
        shortens the effective list and can shift later assignments.
        """
        def _write() -> bool:
            with self._engine.begin() as conn:
                result = conn.execute(
                    text("""
                        UPDATE rotation_members SET active = :a
                        WHERE discipline = :d AND user_id = :u
                    """),
                    {"a": active, "d": role, "u": user_id},
                )
                if result.rowcount == 0:
                    return False
                insert_event(conn, "member_activated" if active else "member_deactivated",
                             f"discipline:{role}", {"user_id": user_id}, changed_by)
            return True

        updated = self._run(_write, f"set active {user_id}")
        if updated:
            self._invalidate()
        return updated

    def _invalidate(self) -> None:
        if self._cache:
            self._cache.delete(CACHE_KEY)
