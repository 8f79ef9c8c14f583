"""
Alert Schemas
=============
Alert types, channel definitions and CRUD payloads.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AlertType(str, Enum):
    """Closed set of alert kinds."""

    DAILY_BUDGET = "daily_budget"
    HOURLY_SPIKE = "hourly_spike"
    ERROR_RATE = "error_rate"


class ChannelType(str, Enum):
    """Notification channel kinds."""

    EMAIL = "email"
    SLACK = "slack"


class AlertChannel(BaseModel):
    """Delivery target embedded in an alert."""

    type: ChannelType
    value: str | None = Field(default=None, max_length=320)
    webhook: str | None = Field(default=None, max_length=2048)

    @model_validator(mode="after")
    def check_target(self) -> "AlertChannel":
        if self.type == ChannelType.EMAIL and not self.value:
            raise ValueError("email channels require a value (address)")
        if self.type == ChannelType.SLACK:
            if not self.webhook:
                raise ValueError("slack channels require a webhook URL")
            if not self.webhook.startswith(("http://", "https://")):
                raise ValueError("webhook must be an http(s) URL")
        return self


class AlertCreate(BaseModel):
    """Payload for creating an alert."""

    name: str = Field(..., min_length=1, max_length=100)
    type: AlertType
    threshold: Decimal = Field(..., gt=0)
    channels: list[AlertChannel] = Field(default_factory=list)
    enabled: bool = True


class AlertUpdate(BaseModel):
    """Partial update; type is fixed at creation."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    threshold: Decimal | None = Field(default=None, gt=0)
    channels: list[AlertChannel] | None = None
    enabled: bool | None = None


class AlertResponse(BaseModel):
    """Alert as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    type: AlertType
    threshold: Decimal
    channels: list[AlertChannel]
    enabled: bool
    last_triggered_at: datetime | None = None
    created_at: datetime | None = None


class ChannelResultResponse(BaseModel):
    """Outcome of one channel delivery attempt."""

    channel: str
    target: str | None
    delivered: bool
    error: str | None = None


class AlertEvaluationResponse(BaseModel):
    """Result of evaluating one alert."""

    alert_id: UUID
    alert_name: str
    type: AlertType
    metric: Decimal
    threshold: Decimal
    triggered: bool
    suppressed: bool = False
    deliveries: list[ChannelResultResponse] = Field(default_factory=list)
