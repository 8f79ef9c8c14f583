"""
SDK Configuration
=================
Configuration management for the APImetrics SDK.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class APImetricsConfig:
    """
    Configuration for the APImetrics SDK.

    Attributes:
        endpoint: Base URL of the APImetrics backend
        api_key: API key sent as a bearer token
        batch_size: Queue length that triggers an immediate flush
        flush_interval: Seconds between automatic flushes
        max_queue_size: Maximum events held locally; oldest are dropped beyond it
        retry_attempts: Attempts per flush before the batch is requeued
        retry_backoff: Multiplier for the exponential wait between attempts
        timeout: Request timeout in seconds
        async_mode: Flush from background threads instead of inline
        enable_logging: Log every tracked call and flush
    """

    endpoint: str = field(
        default_factory=lambda: os.getenv("APIMETRICS_URL", "https://api.apimetrics.dev")
    )
    api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("APIMETRICS_API_KEY")
    )
    batch_size: int = 50
    flush_interval: float = 5.0
    max_queue_size: int = 1000
    retry_attempts: int = 3
    retry_backoff: float = 1.0
    timeout: float = 30.0
    async_mode: bool = True
    enable_logging: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.endpoint:
            raise ValueError("endpoint is required")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_queue_size < self.batch_size:
            raise ValueError("max_queue_size must not be smaller than batch_size")
        if self.flush_interval <= 0:
            raise ValueError("flush_interval must be positive")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")

        # Ensure URL doesn't end with slash
        self.endpoint = self.endpoint.rstrip("/")
