"""
Alert Sweep Job
===============
Periodic evaluation of every user that has at least one enabled alert.
"""

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings
from backend.core import metrics
from backend.database import get_session_context
from backend.models.alert import Alert
from backend.services.alerts import AlertEvaluation, AlertEvaluator, Clock
from backend.services.notifications import NotificationDispatcher
from backend.services.senders import NotificationSender

logger = structlog.get_logger()

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass
class SweepResult:
    """Summary of one sweep."""

    users: int = 0
    alerts_evaluated: int = 0
    alerts_triggered: int = 0
    failed_users: list[str] = field(default_factory=list)


class AlertSweepJob:
    """
    Evaluate alerts for all users.

    Each user is evaluated in its own session; a failure for one user is
    logged and the sweep moves on. ``concurrency`` bounds how many users
    are evaluated at once (1 keeps the sweep sequential).
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher | None = None,
        session_factory: SessionFactory = get_session_context,
        clock: Clock | None = None,
        concurrency: int | None = None,
        cooldown_seconds: int | None = None,
    ):
        self.dispatcher = dispatcher or NotificationDispatcher(NotificationSender())
        self.session_factory = session_factory
        self.clock = clock
        self.concurrency = concurrency or settings.alert_sweep_concurrency
        self.cooldown_seconds = cooldown_seconds

    async def run(self) -> SweepResult:
        result = SweepResult()
        with metrics.SWEEP_DURATION_SECONDS.time():
            user_ids = await self.users_with_enabled_alerts()
            result.users = len(user_ids)

            semaphore = asyncio.Semaphore(self.concurrency)

            async def sweep_user(user_id: str) -> None:
                async with semaphore:
                    try:
                        evaluations = await self.evaluate_user(user_id)
                    except Exception as e:
                        result.failed_users.append(user_id)
                        logger.error("Alert evaluation failed for user", user_id=user_id, error=str(e))
                        return
                    result.alerts_evaluated += len(evaluations)
                    result.alerts_triggered += sum(1 for e in evaluations if e.triggered)

            await asyncio.gather(*(sweep_user(user_id) for user_id in user_ids))

        logger.info(
            "Alert sweep completed",
            users=result.users,
            evaluated=result.alerts_evaluated,
            triggered=result.alerts_triggered,
            failed=len(result.failed_users),
        )
        return result

    async def users_with_enabled_alerts(self) -> list[str]:
        async with self.session_factory() as session:
            stmt = (
                select(Alert.user_id)
                .where(Alert.enabled.is_(True))
                .distinct()
                .order_by(Alert.user_id)
            )
            return list((await session.execute(stmt)).scalars().all())

    async def evaluate_user(self, user_id: str) -> list[AlertEvaluation]:
        async with self.session_factory() as session:
            evaluator = AlertEvaluator(
                session,
                self.dispatcher,
                clock=self.clock,
                cooldown_seconds=self.cooldown_seconds,
            )
            return await evaluator.evaluate_alerts(user_id)

    async def close(self) -> None:
        await self.dispatcher.sender.aclose()
