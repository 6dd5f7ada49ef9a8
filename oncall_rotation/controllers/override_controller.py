# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Coverage overrides.
Thin HTTP layer: delegates ALL logic to OverrideService.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from oncall_rotation.core.dependencies import get_override_service
from oncall_rotation.core.errors import OverrideConflictError, OverrideNotFoundError, SprintNotFoundError
from oncall_rotation.schemas.rotation import (
    OverrideApproveRequest,
    OverrideCreateRequest,
    OverrideDecisionRequest,
)
from oncall_rotation.services.override_service import OverrideService

router = APIRouter(prefix="/api/v1", tags=["Overrides"])


@router.get("/overrides")
def list_overrides(
    sprint_index: Optional[int] = Query(None, ge=0, description="Filter by sprint"),
    service: OverrideService = Depends(get_override_service),
):
    overrides = service.list_overrides(sprint_index)
    return {"total": len(overrides), "overrides": [o.model_dump() for o in overrides]}


@router.get("/overrides/{override_id}")
def get_override(
    override_id: int,
    service: OverrideService = Depends(get_override_service),
):
    try:
        return service.get_override(override_id).model_dump()
    except OverrideNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/overrides", status_code=201)
def request_override(
    payload: OverrideCreateRequest,
    service: OverrideService = Depends(get_override_service),
):
    """Request coverage for one role in one sprint (pending until approved)."""
    try:
        return service.request_override(payload.model_dump()).model_dump()
    except SprintNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/overrides/{override_id}/approve")
def approve_override(
    override_id: int,
    payload: OverrideApproveRequest,
    service: OverrideService = Depends(get_override_service),
):
    try:
        result = service.approve_override(override_id, payload.approved_by, supersede=payload.supersede)
    except OverrideNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OverrideConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"override": result["override"].model_dump(), "applied": result["applied"]}


@router.post("/overrides/{override_id}/decline")
def decline_override(
    override_id: int,
    payload: OverrideDecisionRequest,
    service: OverrideService = Depends(get_override_service),
):
    try:
        override = service.decline_override(override_id, payload.decided_by)
    except OverrideNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"declined": True, "override": override.model_dump()}


@router.delete("/overrides/{override_id}")
def remove_override(
    override_id: int,
    removed_by: str = Query("admin", min_length=1),
    service: OverrideService = Depends(get_override_service),
):
    """Administrative removal; a live override for the current sprint is reverted."""
    try:
        result = service.remove_override(override_id, removed_by)
    except OverrideNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"removed": True, "override": result["override"].model_dump(), "reverted": result["reverted"]}
