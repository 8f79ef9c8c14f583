"""
Provider Wrappers
=================
Wrappers for LLM provider clients that automatically track API calls.
"""

from apimetrics.wrappers.anthropic import AnthropicWrapper
from apimetrics.wrappers.openai import OpenAIWrapper

__all__ = ["OpenAIWrapper", "AnthropicWrapper"]
