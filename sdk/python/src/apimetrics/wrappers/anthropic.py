"""
Anthropic Wrapper
=================
Wrapper for the Anthropic client with automatic call tracking.
"""

import time
from typing import Any, Optional

from apimetrics.client import APImetricsClient, get_client
from apimetrics.models import TrackingOptions

PROVIDER = "anthropic"
MESSAGES_ENDPOINT = "messages"


class AnthropicWrapper:
    """
    Wrapper for the Anthropic client that tracks every message call.

    Usage:
        from anthropic import Anthropic
        from apimetrics import AnthropicWrapper

        wrapper = AnthropicWrapper(Anthropic(api_key="your-key"))

        response = wrapper.messages.create(
            model="claude-sonnet-4",
            max_tokens=1024,
            messages=[{"role": "user", "content": "Hello!"}],
        )
    """

    def __init__(
        self,
        anthropic_client: Any,
        client: Optional[APImetricsClient] = None,
        options: Optional[TrackingOptions] = None,
    ):
        self._anthropic = anthropic_client
        self._client = client or get_client()
        self.messages = _MessagesWrapper(self._anthropic.messages, self._client, options)

    def __getattr__(self, name: str) -> Any:
        """Delegate unknown attributes to the underlying Anthropic client."""
        return getattr(self._anthropic, name)


class _MessagesWrapper:
    """Wrapper for messages with call tracking."""

    def __init__(self, messages: Any, client: APImetricsClient, options: Optional[TrackingOptions]):
        self._messages = messages
        self._client = client
        self._options = options

    def create(self, model: str, **kwargs: Any) -> Any:
        start = time.time()
        start_ms = int(start * 1000)

        try:
            response = self._messages.create(model=model, **kwargs)
        except Exception as e:
            self._client.record(
                provider=PROVIDER,
                model=model,
                endpoint=MESSAGES_ENDPOINT,
                latency_ms=int((time.time() - start) * 1000),
                status="error",
                error_message=str(e),
                cost=0.0,
                options=self._options,
                timestamp=start_ms,
            )
            raise

        usage = getattr(response, "usage", None)
        self._client.record(
            provider=PROVIDER,
            model=model,
            endpoint=MESSAGES_ENDPOINT,
            input_tokens=usage.input_tokens if usage else None,
            output_tokens=usage.output_tokens if usage else None,
            latency_ms=int((time.time() - start) * 1000),
            metadata={
                "temperature": kwargs.get("temperature"),
                "max_tokens": kwargs.get("max_tokens"),
            },
            options=self._options,
            timestamp=start_ms,
        )
        return response

    def __getattr__(self, name: str) -> Any:
        return getattr(self._messages, name)
