"""
Health Check Endpoints
======================
Liveness and readiness probes.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from backend import __version__
from backend.database import get_session

router = APIRouter()
logger = structlog.get_logger()


class HealthResponse(BaseModel):
    """Liveness response."""

    status: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness response."""

    status: str
    database: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Returns OK while the process is serving requests."""
    return HealthResponse(status="ok", version=__version__)


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(
    response: Response,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ReadinessResponse:
    """
    Checks that the event store answers queries.
    Responds 503 while it does not, so traffic is held back.
    """
    try:
        await session.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.warning("Readiness check failed", error=str(e))
        database = "disconnected"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        status="ok" if database == "connected" else "unavailable",
        database=database,
        version=__version__,
    )
