"""
Health check endpoints for monitoring and load balancer probes.
"""
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import text
from sqlalchemy.orm import Session
from pydantic import BaseModel

from booktone.config import settings
from booktone.db.session import get_db
from booktone.models import utcnow

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime


class DetailedHealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    database: str
    worker: str
    queue_depth: int
    active_batches: List[str]
    uptime_seconds: float | None = None


# Track application start time
_start_time = utcnow()


def _database_status(db: Session) -> str:
    try:
        db.execute(text("SELECT 1"))
        return "connected"
    except Exception:
        return "disconnected"


@router.get(
    "/health/ready",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Check that the database is reachable and the batch worker is running."
)
async def readiness_check(request: Request, db: Session = Depends(get_db)):
    service = getattr(request.app.state, "batch_service", None)
    ready = _database_status(db) == "connected" and service is not None and service.is_running
    return HealthResponse(
        status="ready" if ready else "not_ready",
        timestamp=utcnow()
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Detailed health check",
    description="Database, batch worker and queue status."
)
async def detailed_health_check(request: Request, db: Session = Depends(get_db)):
    db_status = _database_status(db)

    service = getattr(request.app.state, "batch_service", None)
    worker_status = "running" if service is not None and service.is_running else "stopped"

    uptime = (utcnow() - _start_time).total_seconds()

    overall_status = "healthy" if db_status == "connected" and worker_status == "running" else "degraded"

    return DetailedHealthResponse(
        status=overall_status,
        timestamp=utcnow(),
        version=settings.APP_VERSION,
        database=db_status,
        worker=worker_status,
        queue_depth=service.queue_depth if service is not None else 0,
        active_batches=service.active_batches if service is not None else [],
        uptime_seconds=uptime
    )
