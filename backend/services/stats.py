"""
Stats Service
=============
Read-back of pre-aggregated daily stats.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.usage import DailyStats
from backend.schemas.usage import DailyStatsItem, DailyStatsResponse


class StatsService:
    """Query daily stats buckets."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_daily_stats(
        self,
        user_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> DailyStatsResponse:
        """Get a user's daily buckets, newest first. Defaults to the last 30 days."""
        if not end_date:
            end_date = datetime.now(timezone.utc).date()
        if not start_date:
            start_date = end_date - timedelta(days=30)

        stmt = (
            select(DailyStats)
            .where(
                DailyStats.user_id == user_id,
                DailyStats.date >= start_date,
                DailyStats.date <= end_date,
            )
            .order_by(DailyStats.date.desc(), DailyStats.provider, DailyStats.model)
        )

        result = await self.session.execute(stmt)
        items = [DailyStatsItem.model_validate(row) for row in result.scalars().all()]

        return DailyStatsResponse(
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
            items=items,
            total_cost=sum((item.total_cost for item in items), Decimal("0")),
            total_calls=sum(item.total_calls for item in items),
        )
