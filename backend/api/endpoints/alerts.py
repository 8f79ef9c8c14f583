"""
Alert Endpoints
===============
Alert CRUD and on-demand evaluation for the calling user.
"""

from dataclasses import asdict
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import get_dispatcher, get_user_id
from backend.database import get_session
from backend.schemas.alerts import (
    AlertCreate,
    AlertEvaluationResponse,
    AlertResponse,
    AlertUpdate,
)
from backend.services.alert_config import AlertConfigService
from backend.services.alerts import AlertEvaluation, AlertEvaluator
from backend.services.notifications import NotificationDispatcher

router = APIRouter()
logger = structlog.get_logger()

UserId = Annotated[str, Depends(get_user_id)]
Session = Annotated[AsyncSession, Depends(get_session)]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


def _to_response(evaluations: list[AlertEvaluation]) -> list[AlertEvaluationResponse]:
    return [AlertEvaluationResponse.model_validate(asdict(e)) for e in evaluations]


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert not found")


@router.get("", response_model=list[AlertResponse], summary="List alerts")
async def list_alerts(user_id: UserId, session: Session) -> list[AlertResponse]:
    service = AlertConfigService(session)
    alerts = await service.list_alerts(user_id)
    return [AlertResponse.model_validate(alert) for alert in alerts]


@router.post(
    "",
    response_model=AlertResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create alert",
)
async def create_alert(data: AlertCreate, user_id: UserId, session: Session) -> AlertResponse:
    try:
        service = AlertConfigService(session)
        alert = await service.create_alert(user_id, data)
    except Exception as e:
        logger.error("Failed to create alert", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create alert",
        ) from e
    return AlertResponse.model_validate(alert)


@router.post(
    "/evaluate",
    response_model=list[AlertEvaluationResponse],
    summary="Evaluate alerts now",
    description="Evaluate all of the caller's enabled alerts and notify triggered ones",
)
async def evaluate_alerts(
    user_id: UserId,
    session: Session,
    dispatcher: Dispatcher,
) -> list[AlertEvaluationResponse]:
    try:
        evaluations = await AlertEvaluator(session, dispatcher).evaluate_alerts(user_id)
    except Exception as e:
        logger.error("Failed to evaluate alerts", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to evaluate alerts",
        ) from e
    return _to_response(evaluations)


@router.patch("/{alert_id}", response_model=AlertResponse, summary="Update alert")
async def update_alert(
    alert_id: UUID,
    data: AlertUpdate,
    user_id: UserId,
    session: Session,
) -> AlertResponse:
    service = AlertConfigService(session)
    alert = await service.update_alert(user_id, alert_id, data)
    if alert is None:
        raise _not_found()
    return AlertResponse.model_validate(alert)


@router.delete(
    "/{alert_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete alert",
)
async def delete_alert(alert_id: UUID, user_id: UserId, session: Session) -> Response:
    service = AlertConfigService(session)
    if not await service.delete_alert(user_id, alert_id):
        raise _not_found()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{alert_id}/test",
    response_model=list[AlertEvaluationResponse],
    summary="Test alert",
    description="Run an alert check for the owner of this alert",
)
async def test_alert(
    alert_id: UUID,
    user_id: UserId,
    session: Session,
    dispatcher: Dispatcher,
) -> list[AlertEvaluationResponse]:
    """
    Run the caller's alert check on demand.

    Every enabled alert of the caller is evaluated, as in a scheduled sweep.
    """
    service = AlertConfigService(session)
    if await service.get_alert(user_id, alert_id) is None:
        raise _not_found()

    try:
        evaluations = await AlertEvaluator(session, dispatcher).evaluate_alerts(user_id)
    except Exception as e:
        logger.error("Failed to test alert", alert_id=str(alert_id), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to test alert",
        ) from e
    return _to_response(evaluations)
