"""
Pydantic Schemas
================
Request/Response models for API validation.
"""

from backend.schemas.alerts import (
    AlertChannel,
    AlertCreate,
    AlertEvaluationResponse,
    AlertResponse,
    AlertType,
    AlertUpdate,
    ChannelType,
)
from backend.schemas.usage import (
    DailyStatsItem,
    DailyStatsResponse,
    TrackBatchRequest,
    TrackBatchResponse,
    TrackedCall,
)

__all__ = [
    "TrackedCall",
    "TrackBatchRequest",
    "TrackBatchResponse",
    "DailyStatsItem",
    "DailyStatsResponse",
    "AlertType",
    "ChannelType",
    "AlertChannel",
    "AlertCreate",
    "AlertUpdate",
    "AlertResponse",
    "AlertEvaluationResponse",
]
