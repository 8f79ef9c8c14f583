"""
Aggregation Service
===================
Incremental merge of ingested calls into daily stats buckets.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import Float, cast, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import dialect_insert
from backend.models.usage import DailyStats

logger = structlog.get_logger()

BUCKET_COLUMNS = ["user_id", "date", "provider", "model"]


@dataclass(frozen=True, order=True)
class BucketKey:
    """Bucket identity within one user's batch."""

    date: date
    provider: str
    model: str


@dataclass
class PartialStats:
    """Sums for one bucket computed from a single batch."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    total_cost: Decimal = field(default_factory=lambda: Decimal("0"))
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_latency_ms: int = 0

    def add(self, call: Any) -> None:
        self.total_calls += 1
        if call.status == "success":
            self.successful_calls += 1
        else:
            self.failed_calls += 1
        self.total_cost += Decimal(str(call.cost))
        self.total_input_tokens += call.input_tokens or 0
        self.total_output_tokens += call.output_tokens or 0
        self.total_latency_ms += int(call.latency_ms)

    @property
    def avg_latency_ms(self) -> float:
        if not self.total_calls:
            return 0.0
        return self.total_latency_ms / self.total_calls


def bucket_date(timestamp_ms: int) -> date:
    """UTC calendar day of an epoch-milliseconds timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()


def group_calls(calls: Iterable[Any]) -> dict[BucketKey, PartialStats]:
    """
    Group calls by (date, provider, model) and sum them.

    Accepts anything shaped like a call: ``TrackedCall`` schemas or
    ``ApiCall`` rows.
    """
    groups: dict[BucketKey, PartialStats] = {}
    for call in calls:
        key = BucketKey(bucket_date(call.timestamp_ms), call.provider, call.model)
        groups.setdefault(key, PartialStats()).add(call)
    return groups


class Aggregator:
    """
    Maintain daily stats without re-scanning raw events.

    Each bucket is merged with a single INSERT ... ON CONFLICT DO UPDATE,
    so concurrent batches for the same key never lose an update.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def apply(self, user_id: str, calls: Iterable[Any]) -> int:
        """
        Merge a batch into the user's buckets and commit.

        Returns:
            Number of buckets touched
        """
        groups = group_calls(calls)
        if not groups:
            return 0

        # Sorted so concurrent batches take row locks in the same order
        for key in sorted(groups):
            await self._merge(user_id, key, groups[key])

        await self.session.commit()
        logger.debug("Merged batch into daily stats", user_id=user_id, buckets=len(groups))
        return len(groups)

    async def _merge(self, user_id: str, key: BucketKey, partial: PartialStats) -> None:
        table = DailyStats.__table__
        stmt = dialect_insert(self.session, table).values(
            user_id=user_id,
            date=key.date,
            provider=key.provider,
            model=key.model,
            total_calls=partial.total_calls,
            successful_calls=partial.successful_calls,
            failed_calls=partial.failed_calls,
            total_cost=partial.total_cost,
            total_input_tokens=partial.total_input_tokens,
            total_output_tokens=partial.total_output_tokens,
            total_latency_ms=partial.total_latency_ms,
            avg_latency_ms=partial.avg_latency_ms,
        )
        new = stmt.excluded
        merged_calls = table.c.total_calls + new.total_calls
        stmt = stmt.on_conflict_do_update(
            index_elements=BUCKET_COLUMNS,
            set_={
                "total_calls": merged_calls,
                "successful_calls": table.c.successful_calls + new.successful_calls,
                "failed_calls": table.c.failed_calls + new.failed_calls,
                "total_cost": table.c.total_cost + new.total_cost,
                "total_input_tokens": table.c.total_input_tokens + new.total_input_tokens,
                "total_output_tokens": table.c.total_output_tokens + new.total_output_tokens,
                "total_latency_ms": table.c.total_latency_ms + new.total_latency_ms,
                # Weighted mean from the exact sums, not a mean of means
                "avg_latency_ms": (
                    cast(table.c.total_latency_ms + new.total_latency_ms, Float)
                    / merged_calls
                ),
                "updated_at": func.now(),
            },
        )
        await self.session.execute(stmt)
