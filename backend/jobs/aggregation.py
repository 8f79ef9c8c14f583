"""
Reaggregation Job
=================
Rebuild daily stats buckets from raw events.

Incremental aggregation happens at ingestion time. This job recomputes
a day's buckets with ``GROUP BY user_id, provider, model`` and overwrites
the stored values, repairing buckets left stale by a failed merge.

Only closed UTC days are rebuilt. Raw inserts and their merges commit
separately, so an overwrite of a day still receiving events would drop or
double count merges that land between the read and the write.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import dialect_insert, get_session_context
from backend.models.usage import ApiCall, DailyStats
from backend.services.aggregation import BUCKET_COLUMNS
from backend.services.alerts import Clock, utcnow

logger = structlog.get_logger()

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def day_bounds_ms(day: date) -> tuple[int, int]:
    """Epoch-milliseconds range [start, end) of a UTC calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000)


class ReaggregationJob:
    """
    Recompute daily stats from raw events.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_session_context,
        clock: Clock | None = None,
    ):
        self.session_factory = session_factory
        self.clock = clock or utcnow

    def today(self) -> date:
        return self.clock().astimezone(timezone.utc).date()

    async def run(self, target_date: Optional[date] = None) -> int:
        """
        Rebuild all buckets of one day.

        Args:
            target_date: closed UTC day to rebuild (defaults to yesterday)

        Returns:
            Number of buckets written

        Raises:
            ValueError: If the day is today or in the future
        """
        today = self.today()
        if target_date is None:
            target_date = today - timedelta(days=1)
        if target_date >= today:
            raise ValueError(f"Cannot rebuild {target_date}: day is still open")

        start_ms, end_ms = day_bounds_ms(target_date)
        logger.info("Starting reaggregation", date=str(target_date))

        async with self.session_factory() as session:
            stmt = select(
                ApiCall.user_id,
                ApiCall.provider,
                ApiCall.model,
                func.count().label("total_calls"),
                func.sum(case((ApiCall.status == "success", 1), else_=0)).label("successful_calls"),
                func.sum(case((ApiCall.status == "error", 1), else_=0)).label("failed_calls"),
                func.sum(ApiCall.cost).label("total_cost"),
                func.sum(func.coalesce(ApiCall.input_tokens, 0)).label("total_input_tokens"),
                func.sum(func.coalesce(ApiCall.output_tokens, 0)).label("total_output_tokens"),
                func.sum(ApiCall.latency_ms).label("total_latency_ms"),
            ).where(
                ApiCall.timestamp_ms >= start_ms,
                ApiCall.timestamp_ms < end_ms,
            ).group_by(
                ApiCall.user_id,
                ApiCall.provider,
                ApiCall.model,
            )

            rows = (await session.execute(stmt)).all()
            if not rows:
                logger.info("No events to reaggregate", date=str(target_date))
                return 0

            table = DailyStats.__table__
            for row in rows:
                values = {
                    "total_calls": row.total_calls,
                    "successful_calls": row.successful_calls or 0,
                    "failed_calls": row.failed_calls or 0,
                    "total_cost": Decimal(str(row.total_cost or 0)),
                    "total_input_tokens": row.total_input_tokens or 0,
                    "total_output_tokens": row.total_output_tokens or 0,
                    "total_latency_ms": row.total_latency_ms or 0,
                    "avg_latency_ms": (row.total_latency_ms or 0) / row.total_calls,
                }
                upsert_stmt = dialect_insert(session, table).values(
                    user_id=row.user_id,
                    date=target_date,
                    provider=row.provider,
                    model=row.model,
                    **values,
                ).on_conflict_do_update(
                    index_elements=BUCKET_COLUMNS,
                    set_={**values, "updated_at": func.now()},
                )
                await session.execute(upsert_stmt)

            await session.commit()
            logger.info("Reaggregation completed", date=str(target_date), buckets=len(rows))
            return len(rows)

    async def run_recent(self, days: int) -> int:
        """Rebuild the last ``days`` closed days."""
        yesterday = self.today() - timedelta(days=1)
        return await self.backfill(yesterday - timedelta(days=days - 1), yesterday)

    async def backfill(self, start_date: date, end_date: date) -> int:
        """
        Rebuild every closed day in [start_date, end_date].
        """
        end_date = min(end_date, self.today() - timedelta(days=1))
        total = 0
        current = start_date

        while current <= end_date:
            total += await self.run(current)
            current += timedelta(days=1)

        logger.info("Backfill completed", start=str(start_date), end=str(end_date), total=total)
        return total
