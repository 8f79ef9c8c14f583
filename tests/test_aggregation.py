"""
Aggregation Tests
=================
Tests for incremental daily stats merging and reaggregation.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from backend.jobs.aggregation import ReaggregationJob, day_bounds_ms
from backend.models.usage import DailyStats
from backend.services.aggregation import Aggregator, BucketKey, bucket_date, group_calls
from backend.services.ingestion import IngestionService

JAN_15 = date(2025, 1, 15)


def ts(*args: int) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


async def all_stats(session) -> list[DailyStats]:
    result = await session.execute(
        select(DailyStats).order_by(
            DailyStats.user_id, DailyStats.date, DailyStats.provider, DailyStats.model
        )
    )
    return list(result.scalars().all())


def snapshot(stats: list[DailyStats]) -> list[tuple]:
    return [
        (
            s.user_id,
            s.date,
            s.provider,
            s.model,
            s.total_calls,
            s.successful_calls,
            s.failed_calls,
            s.total_cost,
            s.total_input_tokens,
            s.total_output_tokens,
            s.total_latency_ms,
            s.avg_latency_ms,
        )
        for s in stats
    ]


class TestGrouping:
    """Tests for in-memory grouping of a batch."""

    def test_bucket_date_is_utc(self):
        """Test that day boundaries are UTC."""
        assert bucket_date(ts(2025, 1, 15, 23, 59, 59) + 999) == date(2025, 1, 15)
        assert bucket_date(ts(2025, 1, 16, 0, 0, 0)) == date(2025, 1, 16)

    def test_groups_by_date_provider_and_model(self, tracked):
        calls = [
            tracked("a", timestamp=ts(2025, 1, 15, 10), latency=100),
            tracked("b", timestamp=ts(2025, 1, 15, 11), latency=300, status="error"),
            tracked("c", timestamp=ts(2025, 1, 16, 1)),
            tracked("d", timestamp=ts(2025, 1, 15, 12), provider="anthropic", model="claude-sonnet-4"),
        ]

        groups = group_calls(calls)

        key = BucketKey(JAN_15, "openai", "gpt-4o")
        assert len(groups) == 3
        assert groups[key].total_calls == 2
        assert groups[key].successful_calls == 1
        assert groups[key].failed_calls == 1
        assert groups[key].total_latency_ms == 400
        assert groups[key].avg_latency_ms == 200.0

    def test_missing_tokens_count_as_zero(self, tracked):
        call = tracked("a", timestamp=ts(2025, 1, 15, 10))
        call.input_tokens = None

        groups = group_calls([call])

        assert groups[BucketKey(JAN_15, "openai", "gpt-4o")].total_input_tokens == 0


class TestAggregator:
    """Tests for the atomic bucket upsert."""

    async def test_first_write_inserts_partial_sums(self, test_session, tracked):
        aggregator = Aggregator(test_session)

        touched = await aggregator.apply(
            "user-1",
            [
                tracked("a", timestamp=ts(2025, 1, 15, 10), cost=1.5, latency=100),
                tracked("b", timestamp=ts(2025, 1, 15, 11), cost=0.5, latency=300),
            ],
        )

        assert touched == 1
        [stats] = await all_stats(test_session)
        assert stats.date == JAN_15
        assert stats.total_calls == 2
        assert stats.total_cost == Decimal("2.0")
        assert stats.total_input_tokens == 200
        assert stats.total_output_tokens == 100
        assert stats.avg_latency_ms == 200.0

    async def test_weighted_average_latency(self, test_session, tracked):
        """Test that merging weights the average by call count."""
        aggregator = Aggregator(test_session)

        await aggregator.apply("user-1", [tracked("a", timestamp=ts(2025, 1, 15, 1), latency=100)])
        await aggregator.apply(
            "user-1",
            [tracked(f"b{i}", timestamp=ts(2025, 1, 15, 2), latency=200) for i in range(3)],
        )

        [stats] = await all_stats(test_session)
        assert stats.total_calls == 4
        assert stats.total_latency_ms == 700
        assert stats.avg_latency_ms == 175.0

    async def test_merge_is_independent_of_batch_boundaries(
        self, session_factory, tracked
    ):
        """Test that one batch and the same calls split in two agree."""
        calls = [
            tracked("a", timestamp=ts(2025, 1, 15, 1), cost=0.25, latency=100),
            tracked("b", timestamp=ts(2025, 1, 15, 2), cost=0.5, latency=250, status="error"),
            tracked("c", timestamp=ts(2025, 1, 15, 3), cost=1.0, latency=400),
            tracked("d", timestamp=ts(2025, 1, 16, 3), cost=2.0, latency=50),
            tracked("e", timestamp=ts(2025, 1, 15, 4), model="gpt-4o-mini", cost=0.125),
        ]

        async with session_factory() as session:
            await Aggregator(session).apply("whole", calls)
            await Aggregator(session).apply("split", calls[:2])
            await Aggregator(session).apply("split", calls[2:])
            stats = await all_stats(session)

        whole = [row[1:] for row in snapshot(stats) if row[0] == "whole"]
        split = [row[1:] for row in snapshot(stats) if row[0] == "split"]
        assert whole == split
        assert len(whole) == 3

    async def test_users_have_separate_buckets(self, test_session, tracked):
        aggregator = Aggregator(test_session)

        await aggregator.apply("user-1", [tracked("a", timestamp=ts(2025, 1, 15, 1))])
        await aggregator.apply("user-2", [tracked("a", timestamp=ts(2025, 1, 15, 1))])

        stats = await all_stats(test_session)
        assert [(s.user_id, s.total_calls) for s in stats] == [("user-1", 1), ("user-2", 1)]

    async def test_empty_batch_touches_nothing(self, test_session):
        assert await Aggregator(test_session).apply("user-1", []) == 0


class TestReaggregationJob:
    """Tests for rebuilding buckets from raw events."""

    def test_day_bounds(self):
        start, end = day_bounds_ms(JAN_15)
        assert start == ts(2025, 1, 15)
        assert end == ts(2025, 1, 16)

    async def test_repairs_stale_bucket(self, test_session, session_context, tracked):
        """Test that drifted stats are overwritten with exact values."""
        await IngestionService(test_session).ingest_batch(
            "user-1",
            [
                tracked("a", timestamp=ts(2025, 1, 15, 1), cost=1.0, latency=100),
                tracked("b", timestamp=ts(2025, 1, 15, 2), cost=2.0, latency=300, status="error"),
            ],
        )
        expected = snapshot(await all_stats(test_session))

        await test_session.execute(
            update(DailyStats).values(total_calls=99, total_cost=Decimal("42"), avg_latency_ms=1.0)
        )
        await test_session.commit()

        written = await ReaggregationJob(session_context).run(JAN_15)

        assert written == 1
        test_session.expire_all()
        assert snapshot(await all_stats(test_session)) == expected

    async def test_rebuilds_missing_bucket(self, test_session, session_context, tracked):
        """Test that events whose merge failed get a bucket."""

        class FailingAggregator:
            async def apply(self, user_id, calls):
                raise RuntimeError("boom")

        await IngestionService(test_session, aggregator=FailingAggregator()).ingest_batch(
            "user-1", [tracked("a", timestamp=ts(2025, 1, 15, 8), cost=0.5, latency=120)]
        )
        assert await all_stats(test_session) == []

        await ReaggregationJob(session_context).run(JAN_15)

        [stats] = await all_stats(test_session)
        assert stats.total_calls == 1
        assert stats.successful_calls == 1
        assert stats.total_cost == Decimal("0.5")
        assert stats.avg_latency_ms == 120.0

    async def test_only_target_day_is_rebuilt(self, test_session, session_context, tracked):
        await IngestionService(test_session).ingest_batch(
            "user-1", [tracked("a", timestamp=ts(2025, 1, 16, 0, 0, 1))]
        )

        assert await ReaggregationJob(session_context).run(JAN_15) == 0

    async def test_backfill_covers_each_day(self, test_session, session_context, tracked):
        await IngestionService(test_session).ingest_batch(
            "user-1",
            [
                tracked("a", timestamp=ts(2025, 1, 14, 9)),
                tracked("b", timestamp=ts(2025, 1, 15, 9)),
                tracked("c", timestamp=ts(2025, 1, 15, 9), provider="anthropic", model="claude-haiku-3.5"),
            ],
        )

        total = await ReaggregationJob(session_context).backfill(date(2025, 1, 14), JAN_15)

        assert total == 3

    async def test_refuses_open_day(self, test_session, session_context, tracked, now):
        await IngestionService(test_session).ingest_batch(
            "user-1", [tracked("a", timestamp=ts(2025, 1, 15, 9))]
        )

        with pytest.raises(ValueError):
            await ReaggregationJob(session_context, clock=lambda: now).run(JAN_15)

    async def test_recent_days_leave_live_day_to_ingestion(
        self, test_session, session_context, tracked, now
    ):
        """Test that an ingest racing the rebuild is not overwritten."""
        ingestion = IngestionService(test_session)
        await ingestion.ingest_batch(
            "user-1",
            [
                tracked("old", timestamp=ts(2025, 1, 14, 9)),
                tracked("a", timestamp=ts(2025, 1, 15, 9)),
                tracked("b", timestamp=ts(2025, 1, 15, 10)),
            ],
        )
        raced = []

        @asynccontextmanager
        async def racing_context():
            async with session_context() as session:
                execute = session.execute

                async def execute_then_ingest(*args, **kwargs):
                    result = await execute(*args, **kwargs)
                    if not raced:
                        raced.append(True)
                        await ingestion.ingest_batch(
                            "user-1", [tracked("c", timestamp=ts(2025, 1, 15, 11))]
                        )
                    return result

                session.execute = execute_then_ingest
                yield session

        written = await ReaggregationJob(racing_context, clock=lambda: now).run_recent(2)

        assert raced
        assert written == 1
        test_session.expire_all()
        by_date = {s.date: s.total_calls for s in await all_stats(test_session)}
        assert by_date == {date(2025, 1, 14): 1, JAN_15: 3}

    async def test_backfill_stops_before_today(self, test_session, session_context, tracked, now):
        await IngestionService(test_session).ingest_batch(
            "user-1",
            [tracked("a", timestamp=ts(2025, 1, 14, 9)), tracked("b", timestamp=ts(2025, 1, 15, 9))],
        )

        total = await ReaggregationJob(session_context, clock=lambda: now).backfill(
            date(2025, 1, 14), JAN_15
        )

        assert total == 1
