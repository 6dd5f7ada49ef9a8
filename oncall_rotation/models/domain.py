# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Domain models: pure data structures, NO FastAPI dependency.
"""

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Sprint dates arrive as ISO strings from SQLite/JSON and as date or
# midnight-truncated datetime values from PostgreSQL.
DateLike = Union[date, datetime, str]

DELIVERY_STATUSES: tuple[str, ...] = ("delivered", "skipped", "deferred")
TRIGGER_RESULTS: tuple[str, ...] = ("pending", "delivered", "skipped", "deferred", "error")


class Sprint(BaseModel):
    """A fixed calendar window; adjacent sprints may share a boundary date."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    name: str
    start_date: DateLike
    end_date: DateLike


class RotationMember(BaseModel):
    user_id: str = Field(..., min_length=1)
    display_name: str = ""
    active: bool = True


class RotationList(BaseModel):
    """
    Ordered rotation for one discipline.

    Position ``i`` among the *active* members serves the role on every sprint
    whose index is congruent to ``i`` modulo the active length. Deactivating a
    member shortens the list and therefore shifts later assignments.
    """

    role: str
    members: list[RotationMember] = Field(default_factory=list)

    @property
    def active_members(self) -> list[RotationMember]:
        return [m for m in self.members if m.active]

    def __len__(self) -> int:
        return len(self.active_members)

    def member_for(self, sprint_index: int) -> Optional[RotationMember]:
        active = self.active_members
        if not active:
            return None
        return active[sprint_index % len(active)]


class Override(BaseModel):
    id: Optional[int] = None
    sprint_index: int = Field(..., ge=0)
    role: str
    original_user_id: Optional[str] = None
    replacement_user_id: str
    replacement_name: Optional[str] = None
    requested_by: str
    approved: bool = False
    approved_by: Optional[str] = None
    approval_timestamp: Optional[str] = None
    superseded_by: Optional[int] = None
    created_at: Optional[str] = None


class CurrentState(BaseModel):
    """The persisted belief of who is on call right now (singleton record)."""

    sprint_index: Optional[int] = None
    assignments: dict[str, Optional[str]] = Field(default_factory=dict)
    updated_at: Optional[str] = None


class NotificationSnapshot(BaseModel):
    id: Optional[int] = None
    captured_at: str
    discipline_assignments: dict[str, Optional[str]]
    hash: str
    delivery_status: str
    delivery_reason: Optional[str] = None
    trigger_ref: Optional[str] = None
    next_delivery: Optional[str] = None


class CronTriggerAudit(BaseModel):
    id: str
    triggered_at: str
    scheduled_at: Optional[str] = None
    result: str
    details: dict = Field(default_factory=dict)
