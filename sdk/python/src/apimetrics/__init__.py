"""
APImetrics SDK
==============
Python SDK for tracking LLM API calls, tokens and cost
across OpenAI and Anthropic.
"""

from apimetrics.client import APImetricsClient, get_client, record
from apimetrics.config import APImetricsConfig
from apimetrics.models import TrackingOptions, TrackResponse, UsageEvent
from apimetrics.pricing import CostCalculation, calculate_cost, get_supported_models
from apimetrics.wrappers import AnthropicWrapper, OpenAIWrapper

__version__ = "1.0.0"

__all__ = [
    "APImetricsClient",
    "APImetricsConfig",
    "AnthropicWrapper",
    "CostCalculation",
    "OpenAIWrapper",
    "TrackResponse",
    "TrackingOptions",
    "UsageEvent",
    "calculate_cost",
    "get_client",
    "get_supported_models",
    "record",
]
