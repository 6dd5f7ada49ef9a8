# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Rotation Service
================
Decides who is on call for each discipline in every sprint, keeps the
persisted current rotation in line with the sprint calendar, and announces
changes over the chat platform.

Entry points:
    /jobs/*        signed calls from the external cron
    /api/v1/*      rotation, sprints, disciplines, overrides, audit
    /health, /metrics

Port: 8005
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from oncall_rotation.controllers import (
    jobs_controller,
    override_controller,
    rotation_controller,
    sprint_controller,
    system_controller,
)
from oncall_rotation.core.config import settings
from oncall_rotation.core.database import init_schema
from oncall_rotation.core.dependencies import get_container
from oncall_rotation.core.errors import StateLockTimeoutError
from oncall_rotation.core.logging import get_logger
from oncall_rotation.middleware import MetricsMiddleware, RequestIDMiddleware

logger = get_logger(settings.SERVICE_NAME)


# ── Lifespan ──────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Create the schema at startup; dispose the pool on shutdown."""
    container = application.dependency_overrides.get(get_container, get_container)()
    try:
        init_schema(container.engine)
        logger.info("Database schema verified")
    except Exception as exc:
        logger.error("Database initialisation FAILED; service will start but DB calls will fail: %s", exc)
    yield
    container.engine.dispose()
    logger.info("Database connection pool disposed, shutting down")


# ── FastAPI App ───────────────────────────────────────────────────────────
app = FastAPI(
    title="Rotation Service",
    description="Sprint-based on-call rotation, overrides and announcements.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)


# ── Exception handlers ───────────────────────────────────────────────────
@app.exception_handler(StateLockTimeoutError)
async def lock_timeout_handler(request: Request, exc: StateLockTimeoutError):
    req_id = getattr(request.state, "request_id", None)
    logger.error("State lock timeout: %s", exc, extra={"request_id": req_id})
    return JSONResponse(
        status_code=503,
        content={"error": "state_busy", "detail": str(exc), "request_id": req_id},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    req_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled exception", extra={"request_id": req_id})
    return JSONResponse(
        status_code=500,
        content={"error": "internal_server_error", "detail": str(exc), "request_id": req_id},
    )


# ── Routers ──────────────────────────────────────────────────────────────
app.include_router(system_controller.router)
app.include_router(jobs_controller.router)
app.include_router(rotation_controller.router)
app.include_router(sprint_controller.router)
app.include_router(override_controller.router)


# ── Entrypoint ────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.SERVICE_PORT, log_level=settings.LOG_LEVEL.lower())
