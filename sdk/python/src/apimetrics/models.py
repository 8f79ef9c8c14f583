"""
Data Models
===========
Pydantic models for SDK data structures.
"""

import time
import uuid
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Provider = Literal["openai", "anthropic", "google", "moonshot", "other"]


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_call_id(provider: str) -> str:
    """Client-generated id, unique per call: ``<provider>_<ms>_<random>``."""
    return f"{provider}_{now_ms()}_{uuid.uuid4().hex[:12]}"


class UsageEvent(BaseModel):
    """A single API call, serialized in the backend's camelCase wire format."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    timestamp: int = Field(ge=0)
    provider: Provider
    model: str
    endpoint: str
    input_tokens: Optional[int] = Field(default=None, alias="inputTokens", ge=0)
    output_tokens: Optional[int] = Field(default=None, alias="outputTokens", ge=0)
    total_tokens: Optional[int] = Field(default=None, alias="totalTokens", ge=0)
    cost: float = Field(ge=0)
    latency: int = Field(ge=0)
    status: Literal["success", "error"] = "success"
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TrackingOptions(BaseModel):
    """Per-call context merged into an event's metadata."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    project_id: Optional[str] = Field(default=None, alias="projectId")
    environment: Optional[str] = None
    tags: Optional[dict[str, str]] = None

    def to_metadata(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TrackResponse(BaseModel):
    """Response from the backend after a batch is tracked."""

    success: bool
    tracked: int
    duplicates: int = 0
