# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Current rotation, per-sprint assignments, reconcile, forced
transition, audit history and notification snapshots.
Thin HTTP layer: delegates ALL logic to the services.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from oncall_rotation.core.dependencies import (
    get_assignment_service,
    get_history_repo,
    get_notification_repo,
    get_scheduler,
    get_sprint_repo,
    get_state_service,
)
from oncall_rotation.core.errors import SprintNotFoundError
from oncall_rotation.repositories.base import to_iso
from oncall_rotation.repositories.history_repository import HistoryRepository
from oncall_rotation.repositories.notification_repository import NotificationRepository
from oncall_rotation.repositories.sprint_repository import SprintRepository
from oncall_rotation.schemas.rotation import CurrentRotationResponse, ForceTransitionRequest
from oncall_rotation.services.assignment_service import AssignmentService
from oncall_rotation.services.state_service import CurrentStateService
from oncall_rotation.services.transition_service import TransitionScheduler

router = APIRouter(prefix="/api/v1", tags=["Rotation"])


# ── Current ──

@router.get("/rotation/current", response_model=CurrentRotationResponse)
def get_current_rotation(
    state_service: CurrentStateService = Depends(get_state_service),
    sprint_repo: SprintRepository = Depends(get_sprint_repo),
):
    """Persisted on-call state; no recomputation happens on this read."""
    state = state_service.read()
    sprint = sprint_repo.get(state.sprint_index) if state.sprint_index is not None else None
    return {
        "sprint_index": state.sprint_index,
        "sprint_name": sprint.name if sprint else None,
        "start_date": to_iso(sprint.start_date)[:10] if sprint else None,
        "end_date": to_iso(sprint.end_date)[:10] if sprint else None,
        "assignments": state.assignments,
        "updated_at": state.updated_at,
    }


@router.get("/rotation/sprints/{sprint_index}")
def get_sprint_assignments(
    sprint_index: int,
    service: AssignmentService = Depends(get_assignment_service),
    sprint_repo: SprintRepository = Depends(get_sprint_repo),
):
    """Resolved assignments (rotation plus approved overrides) for any sprint."""
    sprint = sprint_repo.get(sprint_index)
    if sprint is None:
        raise HTTPException(status_code=404, detail=f"Sprint {sprint_index} not found")
    return {
        "sprint_index": sprint.index,
        "sprint_name": sprint.name,
        "assignments": service.assignments_for(sprint.index),
    }


# ── Administrative ──

@router.post("/rotation/reconcile")
def reconcile_rotation(
    state_service: CurrentStateService = Depends(get_state_service),
):
    """Correct CurrentState if it drifted from the computed assignments."""
    result = state_service.reconcile()
    return {
        "changed": result["changed"],
        "sprint_index": result["sprint_index"],
        "changed_roles": result["changed_roles"],
        "assignments": result["state"].assignments,
    }


@router.post("/rotation/force")
def force_transition(
    payload: ForceTransitionRequest,
    scheduler: TransitionScheduler = Depends(get_scheduler),
):
    """Make a sprint current immediately, regardless of the calendar."""
    try:
        return scheduler.force_transition(payload.sprint_index, changed_by=payload.changed_by)
    except SprintNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ── Audit ──

@router.get("/history")
def get_history(
    event_type: Optional[str] = Query(None, description="Filter by event type"),
    subject: Optional[str] = Query(None, description="Filter by subject"),
    limit: int = Query(100, ge=1, le=1000),
    repo: HistoryRepository = Depends(get_history_repo),
):
    """Audit events, oldest first."""
    events = repo.get_all(event_type=event_type, subject=subject, limit=limit)
    return {"total": len(events), "events": events}


@router.get("/rotation/snapshots")
def list_snapshots(
    limit: int = Query(50, ge=1, le=500),
    repo: NotificationRepository = Depends(get_notification_repo),
):
    """Notification snapshots, newest first."""
    snapshots = repo.list_snapshots(limit)
    return {"total": len(snapshots), "snapshots": [s.model_dump() for s in snapshots]}
