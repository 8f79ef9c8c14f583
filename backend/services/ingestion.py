"""
Ingestion Service
=================
Validate, de-duplicate and persist batches of tracked calls.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.core import metrics
from backend.database import dialect_insert
from backend.models.usage import ApiCall
from backend.schemas.usage import TrackBatchRequest, TrackedCall
from backend.services.aggregation import Aggregator

logger = structlog.get_logger()


class BatchValidationError(ValueError):
    """A batch failed structural validation and was rejected as a whole."""

    def __init__(self, errors: list[dict[str, Any]]):
        super().__init__(f"Batch rejected: {len(errors)} validation error(s)")
        self.errors = errors


@dataclass
class IngestResult:
    """Outcome of one ingestion request."""

    accepted: int
    duplicates: int
    aggregated: bool


def parse_batch(payload: Any) -> TrackBatchRequest:
    """
    Validate a raw ``{"calls": [...]}`` payload.

    Raises:
        BatchValidationError: if any call is malformed (nothing is accepted)
    """
    try:
        return TrackBatchRequest.model_validate(payload)
    except ValidationError as e:
        metrics.BATCHES_REJECTED_TOTAL.inc()
        raise BatchValidationError(e.errors(include_url=False)) from e


def dedupe_calls(calls: Sequence[TrackedCall]) -> list[TrackedCall]:
    """Drop repeated ids within a batch, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for call in calls:
        if call.id in seen:
            continue
        seen.add(call.id)
        unique.append(call)
    return unique


class IngestionService:
    """Persist raw calls idempotently and fold new ones into daily stats."""

    def __init__(self, session: AsyncSession, aggregator: Aggregator | None = None):
        self.session = session
        self.aggregator = aggregator or Aggregator(session)

    async def ingest_batch(self, user_id: str, calls: Sequence[TrackedCall]) -> IngestResult:
        """
        Ingest an already validated batch for a user.

        Calls whose id is already stored for the user are silently skipped,
        so a batch re-sent after a transport timeout is never double counted.
        Aggregation runs after the raw insert is committed; if it fails the
        raw events stay and the failure is only logged.
        """
        unique = dedupe_calls(calls)
        if not unique:
            return IngestResult(accepted=0, duplicates=0, aggregated=True)

        inserted_ids = await self._insert_calls(user_id, unique)
        await self.session.commit()

        accepted = [call for call in unique if call.id in inserted_ids]
        duplicates = len(calls) - len(accepted)

        metrics.EVENTS_INGESTED_TOTAL.inc(len(accepted))
        metrics.EVENTS_DUPLICATE_TOTAL.inc(duplicates)

        aggregated = True
        if accepted:
            try:
                await self.aggregator.apply(user_id, accepted)
            except Exception as e:
                aggregated = False
                await self.session.rollback()
                metrics.AGGREGATION_FAILURES_TOTAL.inc()
                logger.error(
                    "Daily stats aggregation failed; raw events kept",
                    user_id=user_id,
                    calls=len(accepted),
                    error=str(e),
                )

        logger.info(
            "Ingested batch",
            user_id=user_id,
            received=len(calls),
            accepted=len(accepted),
            duplicates=duplicates,
        )
        return IngestResult(accepted=len(accepted), duplicates=duplicates, aggregated=aggregated)

    async def _insert_calls(self, user_id: str, calls: Sequence[TrackedCall]) -> set[str]:
        """Insert-ignore the calls and return the ids that were actually written."""
        rows = [
            {
                "user_id": user_id,
                "id": call.id,
                "timestamp_ms": call.timestamp_ms,
                "provider": call.provider,
                "model": call.model,
                "endpoint": call.endpoint,
                "input_tokens": call.input_tokens,
                "output_tokens": call.output_tokens,
                "total_tokens": call.total_tokens,
                "cost": Decimal(str(call.cost)),
                "latency_ms": call.latency_ms,
                "status": call.status,
                "error_message": call.error_message,
                "metadata_json": call.metadata,
            }
            for call in calls
        ]

        stmt = (
            dialect_insert(self.session, ApiCall.__table__)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["user_id", "id"])
            .returning(ApiCall.id)
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())
