# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Cron-triggered jobs.
The external scheduler signs every call with the shared secret.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from oncall_rotation.core.config import settings
from oncall_rotation.core.dependencies import get_pipeline, get_scheduler
from oncall_rotation.schemas.rotation import CheckRequest
from oncall_rotation.services.delivery_service import NotificationPipeline, verify_signature
from oncall_rotation.services.transition_service import TransitionScheduler

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def _signature(request: Request) -> Optional[str]:
    return request.headers.get(settings.CRON_SIGNATURE_HEADER)


async def _authorized_check(request: Request) -> tuple[Optional[CheckRequest], Optional[JSONResponse]]:
    raw = await request.body()
    if not verify_signature(settings.CRON_SECRET, _signature(request), raw):
        return None, JSONResponse(status_code=401, content={"error": "Invalid or missing signature"})
    if not raw.strip():
        return CheckRequest(), None
    try:
        return CheckRequest.model_validate_json(raw), None
    except ValidationError as exc:
        return None, JSONResponse(status_code=400, content={"error": f"Invalid payload: {exc.errors()[0]['msg']}"})


@router.post("/notify-rotation")
async def notify_rotation(
    request: Request,
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    """Webhook for the external cron: announce the current rotation if it changed."""
    raw = await request.body()
    status_code, body = pipeline.handle(_signature(request), raw)
    return JSONResponse(status_code=status_code, content=body)


@router.post("/start-of-day-check")
async def start_of_day_check(
    request: Request,
    scheduler: TransitionScheduler = Depends(get_scheduler),
):
    """Authoritative morning transition."""
    payload, error = await _authorized_check(request)
    if error is not None:
        return error
    return scheduler.run_start_of_day_check(payload.now)


@router.post("/end-of-day-check")
async def end_of_day_check(
    request: Request,
    scheduler: TransitionScheduler = Depends(get_scheduler),
):
    """Advance handoff warning on the last day of a sprint."""
    payload, error = await _authorized_check(request)
    if error is not None:
        return error
    return scheduler.run_end_of_day_check(payload.now, force=payload.force)
