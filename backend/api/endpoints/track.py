"""
Tracking Endpoints
==================
Batch ingestion of API call events from the SDK.
"""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import get_user_id
from backend.config import settings
from backend.core import metrics
from backend.database import get_session
from backend.schemas.usage import TrackBatchResponse
from backend.services.ingestion import BatchValidationError, IngestionService, parse_batch

router = APIRouter()
logger = structlog.get_logger()


@router.post(
    "/batch",
    response_model=TrackBatchResponse,
    summary="Track a batch of API calls",
    description="Record up to 1000 API call events; ids already stored are ignored",
)
async def track_batch(
    payload: Annotated[dict[str, Any], Body(...)],
    user_id: Annotated[str, Depends(get_user_id)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TrackBatchResponse:
    """
    Record a batch of tracked calls.

    - The whole batch is rejected (422) if any call is malformed
    - Batches over the size limit are rejected (400) before validation
    - Re-sent calls are counted as duplicates, never double counted
    """
    calls = payload.get("calls")
    if isinstance(calls, list) and len(calls) > settings.max_batch_size:
        metrics.BATCHES_REJECTED_TOTAL.inc()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum batch size is {settings.max_batch_size} calls",
        )

    try:
        batch = parse_batch(payload)
    except BatchValidationError as e:
        logger.warning("Rejected invalid batch", user_id=user_id, errors=len(e.errors))
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=jsonable_encoder(e.errors),
        ) from e

    try:
        service = IngestionService(session)
        result = await service.ingest_batch(user_id, batch.calls)
    except Exception as e:
        logger.error("Failed to ingest batch", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to track calls",
        ) from e

    return TrackBatchResponse(tracked=result.accepted, duplicates=result.duplicates)
