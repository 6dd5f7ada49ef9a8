# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Sprint calendar and discipline rotation lists.
"""

from fastapi import APIRouter, Depends, HTTPException

from oncall_rotation.core.config import settings
from oncall_rotation.core.dependencies import get_roster_repo, get_sprint_repo
from oncall_rotation.core.errors import InvalidSprintEditError
from oncall_rotation.models.domain import Sprint
from oncall_rotation.repositories.base import to_iso
from oncall_rotation.repositories.roster_repository import RosterRepository
from oncall_rotation.repositories.sprint_repository import SprintRepository
from oncall_rotation.schemas.rotation import MemberCreateRequest, MemberStatusRequest, SprintUpsertRequest

router = APIRouter(prefix="/api/v1", tags=["Sprints"])


def _sprint_out(sprint: Sprint) -> dict:
    return {
        "index": sprint.index,
        "name": sprint.name,
        "start_date": to_iso(sprint.start_date)[:10],
        "end_date": to_iso(sprint.end_date)[:10],
    }


# ── Sprints ──

@router.get("/sprints")
def list_sprints(repo: SprintRepository = Depends(get_sprint_repo)):
    sprints = repo.list_ordered()
    return {"total": len(sprints), "sprints": [_sprint_out(s) for s in sprints]}


@router.put("/sprints/{sprint_index}")
def upsert_sprint(
    sprint_index: int,
    payload: SprintUpsertRequest,
    repo: SprintRepository = Depends(get_sprint_repo),
):
    """Create a sprint, or edit one (edits require a reason and are audited)."""
    if sprint_index < 0:
        raise HTTPException(status_code=400, detail="Sprint index must be >= 0")
    sprint = Sprint(
        index=sprint_index,
        name=payload.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )
    try:
        return _sprint_out(repo.upsert(sprint, reason=payload.reason, changed_by=payload.changed_by))
    except InvalidSprintEditError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ── Disciplines ──

@router.get("/disciplines")
def list_disciplines(repo: RosterRepository = Depends(get_roster_repo)):
    """Rotation lists in rotation order, inactive members included."""
    lists = repo.get_rotation_lists(settings.ROTATION_ROLES)
    return {
        role: {
            "members": [m.model_dump() for m in rotation.members],
            "active_count": len(rotation),
        }
        for role, rotation in lists.items()
    }


@router.post("/disciplines/{role}/members", status_code=201)
def add_member(
    role: str,
    payload: MemberCreateRequest,
    repo: RosterRepository = Depends(get_roster_repo),
):
    if role not in settings.ROTATION_ROLES:
        raise HTTPException(status_code=404, detail=f"Unknown discipline '{role}'")
    members = repo.get_rotation_lists([role]).get(role)
    if members and any(m.user_id == payload.user_id for m in members.members):
        raise HTTPException(status_code=409, detail=f"{payload.user_id} is already in {role}")
    member = repo.add_member(role, payload.user_id, payload.display_name, changed_by=payload.changed_by)
    return {"role": role, **member.model_dump()}


@router.patch("/disciplines/{role}/members/{user_id}")
def set_member_status(
    role: str,
    user_id: str,
    payload: MemberStatusRequest,
    repo: RosterRepository = Depends(get_roster_repo),
):
    """(De)activate a member; later sprints re-resolve against the shorter list."""
    if not repo.set_active(role, user_id, payload.active, changed_by=payload.changed_by):
        raise HTTPException(status_code=404, detail=f"{user_id} is not in {role}")
    return {"role": role, "user_id": user_id, "active": payload.active}
