"""
Monitoring endpoints.

Provides health and readiness checks.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from invoicedesk import __version__
from invoicedesk.database import get_db

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str = __version__


class ReadinessResponse(BaseModel):
    """Readiness check response with component status."""
    status: str
    database: str
    worker: str
    timestamp: str


@router.get("/health", response_model=HealthResponse, tags=["Monitoring"])
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns 200 if the server is running.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
    )


@router.get("/ready", response_model=ReadinessResponse, tags=["Monitoring"])
async def readiness_check(request: Request, db: Session = Depends(get_db)) -> ReadinessResponse:
    """Checks database connectivity and that the processing worker is running."""
    db_status = "healthy"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db_status = "unhealthy"

    worker_status = "healthy" if getattr(request.app.state, "worker", None) is not None else "unavailable"
    overall = "healthy" if db_status == "healthy" and worker_status == "healthy" else "degraded"

    return ReadinessResponse(
        status=overall,
        database=db_status,
        worker=worker_status,
        timestamp=datetime.utcnow().isoformat(),
    )
