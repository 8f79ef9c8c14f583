"""
OpenAI Wrapper
==============
Wrapper for the OpenAI client with automatic call tracking.
"""

import time
from collections.abc import Iterator
from typing import Any, Optional

from apimetrics.client import APImetricsClient, get_client
from apimetrics.models import TrackingOptions

PROVIDER = "openai"
CHAT_ENDPOINT = "chat.completions"


class OpenAIWrapper:
    """
    Wrapper for the OpenAI client that tracks every chat completion.

    Usage:
        from openai import OpenAI
        from apimetrics import OpenAIWrapper

        wrapper = OpenAIWrapper(OpenAI(api_key="your-key"))

        response = wrapper.chat.completions.create(
            model="gpt-4o",
            messages=[{"role": "user", "content": "Hello!"}],
        )
    """

    def __init__(
        self,
        openai_client: Any,
        client: Optional[APImetricsClient] = None,
        options: Optional[TrackingOptions] = None,
    ):
        """
        Initialize the OpenAI wrapper.

        Args:
            openai_client: ``openai.OpenAI`` client
            client: APImetrics client (uses global if not provided)
            options: Tracking context attached to every call
        """
        self._openai = openai_client
        self._client = client or get_client()
        self.chat = _ChatWrapper(self._openai.chat, self._client, options)

    def __getattr__(self, name: str) -> Any:
        """Delegate unknown attributes to the underlying OpenAI client."""
        return getattr(self._openai, name)


class _ChatWrapper:
    """Wrapper for chat."""

    def __init__(self, chat: Any, client: APImetricsClient, options: Optional[TrackingOptions]):
        self._chat = chat
        self.completions = _ChatCompletionsWrapper(chat.completions, client, options)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._chat, name)


class _ChatCompletionsWrapper:
    """Wrapper for chat.completions with call tracking."""

    def __init__(
        self,
        completions: Any,
        client: APImetricsClient,
        options: Optional[TrackingOptions],
    ):
        self._completions = completions
        self._client = client
        self._options = options

    def create(self, model: str, messages: list[dict[str, Any]], **kwargs: Any) -> Any:
        """
        Create a chat completion and track it, including failures.
        """
        start = time.time()
        start_ms = int(start * 1000)

        try:
            response = self._completions.create(model=model, messages=messages, **kwargs)
        except Exception as e:
            self._client.record(
                provider=PROVIDER,
                model=model,
                endpoint=CHAT_ENDPOINT,
                latency_ms=int((time.time() - start) * 1000),
                status="error",
                error_message=str(e),
                cost=0.0,
                options=self._options,
                timestamp=start_ms,
            )
            raise

        if kwargs.get("stream"):
            return _StreamingChatWrapper(response, model, self._client, self._options, start)

        usage = getattr(response, "usage", None)
        self._client.record(
            provider=PROVIDER,
            model=model,
            endpoint=CHAT_ENDPOINT,
            input_tokens=usage.prompt_tokens if usage else None,
            output_tokens=usage.completion_tokens if usage else None,
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
        return getattr(self._completions, name)


class _StreamingChatWrapper:
    """
    Wrapper for streaming chat responses.

    Token counts are only known if the request asked for
    ``stream_options={"include_usage": True}``.
    """

    def __init__(
        self,
        response: Iterator[Any],
        model: str,
        client: APImetricsClient,
        options: Optional[TrackingOptions],
        start: float,
    ):
        self._response = response
        self._model = model
        self._client = client
        self._options = options
        self._start = start
        self._input_tokens: Optional[int] = None
        self._output_tokens: Optional[int] = None

    def __iter__(self):
        return self

    def __next__(self):
        try:
            chunk = next(self._response)
        except StopIteration:
            self._client.record(
                provider=PROVIDER,
                model=self._model,
                endpoint=CHAT_ENDPOINT,
                input_tokens=self._input_tokens,
                output_tokens=self._output_tokens,
                latency_ms=int((time.time() - self._start) * 1000),
                metadata={"stream": True},
                options=self._options,
                timestamp=int(self._start * 1000),
            )
            raise

        usage = getattr(chunk, "usage", None)
        if usage:
            self._input_tokens = usage.prompt_tokens
            self._output_tokens = usage.completion_tokens
        return chunk
