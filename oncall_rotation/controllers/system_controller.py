# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: System endpoints: health, readiness, metrics.
Pure HTTP layer, no business logic.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from starlette.responses import Response

from oncall_rotation.core.config import settings
from oncall_rotation.core.dependencies import Container, get_container

router = APIRouter(tags=["System"])


@router.get("/health")
def health_check(container: Container = Depends(get_container)):
    """Liveness probe for Docker and orchestration."""
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "scheduler_state": container.scheduler.state.value,
    }


@router.get("/health/ready")
def readiness_check(container: Container = Depends(get_container)):
    """Readiness probe: verifies the database answers and sprints are loaded."""
    try:
        with container.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        sprints = container.sprint_repo.count()
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Database unavailable: {exc}")
    return {
        "status": "ready",
        "service": settings.SERVICE_NAME,
        "database": "connected",
        "sprints_loaded": sprints > 0,
    }


@router.get("/metrics")
def prometheus_metrics():
    """Expose Prometheus metrics in OpenMetrics format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
