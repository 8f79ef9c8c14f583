"""
Stats Endpoints
===============
Read-back of the caller's daily stats.
"""

from datetime import date
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import get_user_id
from backend.database import get_session
from backend.schemas.usage import DailyStatsResponse
from backend.services.stats import StatsService

router = APIRouter()
logger = structlog.get_logger()


@router.get(
    "/daily",
    response_model=DailyStatsResponse,
    summary="Get daily stats",
    description="Get the caller's daily buckets per provider and model",
)
async def get_daily_stats(
    user_id: Annotated[str, Depends(get_user_id)],
    session: Annotated[AsyncSession, Depends(get_session)],
    start_date: Annotated[date | None, Query(description="Start date (YYYY-MM-DD)")] = None,
    end_date: Annotated[date | None, Query(description="End date (YYYY-MM-DD)")] = None,
) -> DailyStatsResponse:
    """
    Get daily stats for the caller.

    Defaults to the last 30 days if no date range is specified.
    """
    if start_date and end_date and start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must not be after end_date",
        )

    try:
        service = StatsService(session)
        return await service.get_daily_stats(user_id, start_date, end_date)
    except Exception as e:
        logger.error("Failed to get daily stats", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve daily stats",
        ) from e
