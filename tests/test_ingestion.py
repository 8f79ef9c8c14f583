"""
Ingestion Tests
===============
Tests for batch validation, de-duplication and idempotent persistence.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from backend.models.usage import ApiCall, DailyStats
from backend.services.ingestion import (
    BatchValidationError,
    IngestionService,
    dedupe_calls,
    parse_batch,
)


async def count_calls(session, user_id: str = "user-1") -> int:
    result = await session.execute(
        select(func.count()).select_from(ApiCall).where(ApiCall.user_id == user_id)
    )
    return result.scalar_one()


async def daily_stats(session, user_id: str = "user-1") -> list[DailyStats]:
    result = await session.execute(
        select(DailyStats).where(DailyStats.user_id == user_id).order_by(DailyStats.model)
    )
    return list(result.scalars().all())


class FailingAggregator:
    async def apply(self, user_id, calls):
        raise RuntimeError("stats table locked")


class TestParseBatch:
    """Tests for structural validation of incoming batches."""

    def test_accepts_camel_case_wire_format(self, make_call):
        """Test that SDK field names map onto the schema."""
        batch = parse_batch({"calls": [make_call("c1", errorMessage=None)]})

        call = batch.calls[0]
        assert call.timestamp_ms > 0
        assert call.input_tokens == 100
        assert call.latency_ms == 200

    def test_one_invalid_call_rejects_whole_batch(self, make_call):
        """Test that a single malformed call rejects everything."""
        payload = {"calls": [make_call("c1"), make_call("c2", provider="mistral")]}

        with pytest.raises(BatchValidationError) as exc_info:
            parse_batch(payload)

        assert exc_info.value.errors
        assert exc_info.value.errors[0]["loc"][:2] == ("calls", 1)

    def test_rejects_negative_cost(self, make_call):
        with pytest.raises(BatchValidationError):
            parse_batch({"calls": [make_call("c1", cost=-1)]})

    def test_rejects_unknown_status(self, make_call):
        with pytest.raises(BatchValidationError):
            parse_batch({"calls": [make_call("c1", status="timeout")]})

    def test_optional_token_counts(self, make_call):
        """Test that token counts may be omitted."""
        call = make_call("c1")
        for key in ("inputTokens", "outputTokens", "totalTokens"):
            del call[key]

        batch = parse_batch({"calls": [call]})
        assert batch.calls[0].input_tokens is None


class TestDedupe:
    """Tests for in-batch de-duplication."""

    def test_first_occurrence_wins(self, tracked):
        calls = [tracked("a", cost=1.0), tracked("b"), tracked("a", cost=9.0)]

        unique = dedupe_calls(calls)

        assert [c.id for c in unique] == ["a", "b"]
        assert unique[0].cost == 1.0


class TestIngestionService:
    """Tests for persisting batches."""

    async def test_new_batch_is_stored_and_aggregated(self, test_session, tracked):
        """Test that every new call lands in raw events and daily stats."""
        service = IngestionService(test_session)

        result = await service.ingest_batch(
            "user-1", [tracked("c1"), tracked("c2"), tracked("c3", model="gpt-4o-mini")]
        )

        assert result.accepted == 3
        assert result.duplicates == 0
        assert result.aggregated is True
        assert await count_calls(test_session) == 3

        stats = await daily_stats(test_session)
        assert [(s.model, s.total_calls) for s in stats] == [("gpt-4o", 2), ("gpt-4o-mini", 1)]

    async def test_resent_batch_is_a_no_op(self, test_session, tracked):
        """Test that re-sending a batch never double counts."""
        service = IngestionService(test_session)
        batch = [tracked("c1", cost=1.25), tracked("c2", cost=0.75)]

        await service.ingest_batch("user-1", batch)
        result = await service.ingest_batch("user-1", batch)

        assert result.accepted == 0
        assert result.duplicates == 2
        assert await count_calls(test_session) == 2

        stats = await daily_stats(test_session)
        assert len(stats) == 1
        assert stats[0].total_calls == 2
        assert stats[0].total_cost == Decimal("2.0")

    async def test_duplicate_id_across_batches(self, test_session, tracked):
        """Test that overlapping batches store and count each id once."""
        service = IngestionService(test_session)

        first = await service.ingest_batch("user-1", [tracked("e1"), tracked("e2")])
        second = await service.ingest_batch("user-1", [tracked("e2"), tracked("e3")])

        assert (first.accepted, first.duplicates) == (2, 0)
        assert (second.accepted, second.duplicates) == (1, 1)
        assert await count_calls(test_session) == 3

        stats = await daily_stats(test_session)
        assert stats[0].total_calls == 3
        assert stats[0].total_cost == Decimal("1.5")

    async def test_duplicates_within_batch_count_once(self, test_session, tracked):
        service = IngestionService(test_session)

        result = await service.ingest_batch(
            "user-1", [tracked("c1", cost=1.0), tracked("c1", cost=3.0)]
        )

        assert result.accepted == 1
        assert result.duplicates == 1
        stored = await test_session.get(ApiCall, {"user_id": "user-1", "id": "c1"})
        assert stored.cost == Decimal("1.0")

    async def test_same_id_for_different_users(self, test_session, tracked):
        """Test that call ids are scoped to their user."""
        service = IngestionService(test_session)

        await service.ingest_batch("user-1", [tracked("shared")])
        result = await service.ingest_batch("user-2", [tracked("shared")])

        assert result.accepted == 1
        assert await count_calls(test_session, "user-1") == 1
        assert await count_calls(test_session, "user-2") == 1

    async def test_empty_batch(self, test_session):
        result = await IngestionService(test_session).ingest_batch("user-1", [])

        assert result.accepted == 0
        assert result.duplicates == 0

    async def test_aggregation_failure_keeps_raw_events(self, test_session, tracked):
        """Test that a failed stats merge neither raises nor loses events."""
        service = IngestionService(test_session, aggregator=FailingAggregator())

        result = await service.ingest_batch("user-1", [tracked("c1"), tracked("c2")])

        assert result.accepted == 2
        assert result.aggregated is False
        assert await count_calls(test_session) == 2
        assert await daily_stats(test_session) == []

    async def test_metadata_is_stored(self, test_session, tracked):
        service = IngestionService(test_session)

        await service.ingest_batch(
            "user-1", [tracked("c1", metadata={"projectId": "p1", "tags": {"team": "ml"}})]
        )

        stored = await test_session.get(ApiCall, {"user_id": "user-1", "id": "c1"})
        assert stored.metadata_json == {"projectId": "p1", "tags": {"team": "ml"}}
