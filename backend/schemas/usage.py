"""
Usage Schemas
=============
Pydantic models for the tracking API.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class TrackedCall(BaseModel):
    """
    A single API call reported by the SDK.
    Field aliases follow the camelCase wire format.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, max_length=255)
    timestamp_ms: int = Field(..., alias="timestamp", ge=0)
    provider: str = Field(..., pattern="^(openai|anthropic|google|moonshot|other)$")
    model: str = Field(..., min_length=1, max_length=255)
    endpoint: str = Field(..., min_length=1, max_length=255)
    input_tokens: int | None = Field(default=None, alias="inputTokens", ge=0)
    output_tokens: int | None = Field(default=None, alias="outputTokens", ge=0)
    total_tokens: int | None = Field(default=None, alias="totalTokens", ge=0)
    cost: float = Field(..., ge=0, allow_inf_nan=False)
    latency_ms: int = Field(..., alias="latency", ge=0)
    status: Literal["success", "error"]
    error_message: str | None = Field(default=None, alias="errorMessage")
    metadata: dict[str, Any] = Field(default_factory=dict)


class TrackBatchRequest(BaseModel):
    """Batch of calls; rejected as a whole if any call is invalid."""

    calls: list[TrackedCall]


class TrackBatchResponse(BaseModel):
    """Response after ingesting a batch."""

    success: bool = True
    tracked: int
    duplicates: int = 0


class DailyStatsItem(BaseModel):
    """One daily bucket."""

    model_config = ConfigDict(from_attributes=True)

    date: date
    provider: str
    model: str
    total_calls: int
    successful_calls: int
    failed_calls: int
    total_cost: Decimal
    total_input_tokens: int
    total_output_tokens: int
    avg_latency_ms: float


class DailyStatsResponse(BaseModel):
    """Daily buckets for a user over a date range."""

    user_id: str
    start_date: date
    end_date: date
    items: list[DailyStatsItem]
    total_cost: Decimal
    total_calls: int
