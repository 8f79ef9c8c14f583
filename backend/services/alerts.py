"""
Alert Evaluation
================
Windowed metrics per alert type and threshold checks.

Each ``AlertType`` maps to an ``AlertRule`` (window, metric, comparison):

    daily_budget   trailing 24h   sum(cost)                  metric >= threshold
    hourly_spike   trailing 1h    sum(cost)                  metric >= threshold
    error_rate     trailing 1h    100 * errors / calls       metric >= threshold

A triggered alert is dispatched to its channels and then stamped with
``last_triggered_at`` whatever the channel outcomes were. With the default
cooldown of 0 an alert whose condition still holds fires again on every
evaluation; a positive ``alert_cooldown_seconds`` suppresses re-notification
until the cooldown has elapsed since ``last_triggered_at``.
"""

import operator
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings
from backend.core import metrics
from backend.models.alert import Alert
from backend.models.usage import ApiCall
from backend.schemas.alerts import AlertType
from backend.services.notifications import (
    AlertNotification,
    ChannelResult,
    NotificationDispatcher,
)

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WindowStats:
    """Raw-event totals over an alert window."""

    total_cost: Decimal
    total_calls: int
    errors: int


def cost_metric(stats: WindowStats) -> Decimal:
    return stats.total_cost


def error_rate_metric(stats: WindowStats) -> Decimal:
    if not stats.total_calls:
        return Decimal("0")
    return Decimal(100) * stats.errors / stats.total_calls


@dataclass(frozen=True)
class AlertRule:
    """How one alert type is measured."""

    window: timedelta
    metric: Callable[[WindowStats], Decimal]
    time_range: str
    comparison: Callable[[Decimal, Decimal], bool] = operator.ge

    def is_met(self, value: Decimal, threshold: Decimal) -> bool:
        return self.comparison(value, threshold)


ALERT_RULES: dict[AlertType, AlertRule] = {
    AlertType.DAILY_BUDGET: AlertRule(timedelta(hours=24), cost_metric, "daily"),
    AlertType.HOURLY_SPIKE: AlertRule(timedelta(hours=1), cost_metric, "hourly"),
    AlertType.ERROR_RATE: AlertRule(timedelta(hours=1), error_rate_metric, "hourly"),
}

_unruled = set(AlertType) - ALERT_RULES.keys()
if _unruled:
    raise RuntimeError(f"Alert types without a rule: {sorted(t.value for t in _unruled)}")


@dataclass
class AlertEvaluation:
    """Outcome of evaluating one alert."""

    alert_id: UUID
    alert_name: str
    type: AlertType
    metric: Decimal
    threshold: Decimal
    triggered: bool
    suppressed: bool = False
    deliveries: list[ChannelResult] = field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AlertEvaluator:
    """Evaluate a user's enabled alerts against persisted events."""

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher,
        clock: Clock | None = None,
        cooldown_seconds: int | None = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.clock = clock or utcnow
        self.cooldown = timedelta(
            seconds=settings.alert_cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        )

    async def evaluate_alerts(self, user_id: str) -> list[AlertEvaluation]:
        """
        Evaluate every enabled alert of a user.

        Returns:
            One evaluation per alert, triggered or not
        """
        now = self.clock()

        # Plain rows, so commits between alerts never expire what we read
        stmt = (
            select(
                Alert.id,
                Alert.user_id,
                Alert.name,
                Alert.type,
                Alert.threshold,
                Alert.channels,
                Alert.last_triggered_at,
            )
            .where(Alert.user_id == user_id, Alert.enabled.is_(True))
            .order_by(Alert.created_at, Alert.id)
        )
        rows = (await self.session.execute(stmt)).all()

        evaluations = []
        for row in rows:
            try:
                alert_type = AlertType(row.type)
            except ValueError:
                logger.warning("Skipping alert with unknown type", alert_id=str(row.id), type=row.type)
                continue
            evaluations.append(await self._evaluate(row, alert_type, now))

        logger.debug(
            "Evaluated alerts",
            user_id=user_id,
            alerts=len(evaluations),
            triggered=sum(1 for e in evaluations if e.triggered),
        )
        return evaluations

    async def window_stats(self, user_id: str, since: datetime, until: datetime) -> WindowStats:
        """Totals of the user's raw events with timestamp in [since, until]."""
        since_ms = int(since.timestamp() * 1000)
        until_ms = int(until.timestamp() * 1000)
        stmt = select(
            func.coalesce(func.sum(ApiCall.cost), 0).label("total_cost"),
            func.count().label("total_calls"),
            func.coalesce(
                func.sum(case((ApiCall.status == "error", 1), else_=0)), 0
            ).label("errors"),
        ).where(
            ApiCall.user_id == user_id,
            ApiCall.timestamp_ms >= since_ms,
            ApiCall.timestamp_ms <= until_ms,
        )
        row = (await self.session.execute(stmt)).one()
        return WindowStats(
            total_cost=Decimal(str(row.total_cost or 0)),
            total_calls=int(row.total_calls or 0),
            errors=int(row.errors or 0),
        )

    async def _evaluate(self, row: Any, alert_type: AlertType, now: datetime) -> AlertEvaluation:
        rule = ALERT_RULES[alert_type]
        stats = await self.window_stats(row.user_id, now - rule.window, now)
        value = rule.metric(stats)
        threshold = Decimal(str(row.threshold))

        metrics.ALERTS_EVALUATED_TOTAL.labels(type=alert_type.value).inc()
        evaluation = AlertEvaluation(
            alert_id=row.id,
            alert_name=row.name,
            type=alert_type,
            metric=value,
            threshold=threshold,
            triggered=rule.is_met(value, threshold),
        )
        if not evaluation.triggered:
            return evaluation

        metrics.ALERTS_TRIGGERED_TOTAL.labels(type=alert_type.value).inc()
        if self._in_cooldown(row.last_triggered_at, now):
            evaluation.suppressed = True
            logger.info("Alert still in cooldown", alert_id=str(row.id), name=row.name)
            return evaluation

        logger.warning(
            "Alert triggered",
            alert_id=str(row.id),
            user_id=row.user_id,
            name=row.name,
            type=alert_type.value,
            metric=str(value),
            threshold=str(threshold),
        )
        notification = AlertNotification(
            alert_id=row.id,
            alert_name=row.name,
            alert_type=alert_type,
            threshold=threshold,
            actual=value,
            time_range=rule.time_range,
            total_calls=stats.total_calls,
            errors=stats.errors,
            total_cost=stats.total_cost,
        )
        evaluation.deliveries = await self.dispatcher.dispatch(notification, row.channels or [])

        # Stamped regardless of delivery outcome
        await self.session.execute(
            update(Alert).where(Alert.id == row.id).values(last_triggered_at=now)
        )
        await self.session.commit()
        return evaluation

    def _in_cooldown(self, last_triggered_at: datetime | None, now: datetime) -> bool:
        if not self.cooldown or last_triggered_at is None:
            return False
        return now - _as_utc(last_triggered_at) < self.cooldown
