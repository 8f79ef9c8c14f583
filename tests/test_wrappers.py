"""
Provider Wrapper Tests
======================
Tests for the OpenAI and Anthropic wrappers.
"""

from types import SimpleNamespace

import pytest

from apimetrics.models import TrackingOptions
from apimetrics.wrappers import AnthropicWrapper, OpenAIWrapper


class RecordingClient:
    """Captures ``record`` calls instead of queuing them."""

    def __init__(self):
        self.records: list[dict] = []

    def record(self, **kwargs):
        self.records.append(kwargs)


class FakeCompletions:
    def __init__(self, response=None, error=None, chunks=None):
        self.response = response
        self.error = error
        self.chunks = chunks

    def create(self, **kwargs):
        if self.error:
            raise self.error
        if kwargs.get("stream"):
            return iter(self.chunks)
        return self.response


def openai_client(completions: FakeCompletions) -> SimpleNamespace:
    return SimpleNamespace(
        chat=SimpleNamespace(completions=completions),
        models=SimpleNamespace(list=lambda: ["gpt-4o"]),
    )


class TestOpenAIWrapper:
    """Tests for chat completion tracking."""

    def test_records_successful_call(self):
        tracker = RecordingClient()
        response = SimpleNamespace(usage=SimpleNamespace(prompt_tokens=12, completion_tokens=30))
        options = TrackingOptions(project_id="proj")
        wrapper = OpenAIWrapper(openai_client(FakeCompletions(response)), tracker, options)

        result = wrapper.chat.completions.create(
            model="gpt-4o", messages=[{"role": "user", "content": "hi"}], temperature=0.3
        )

        assert result is response
        [record] = tracker.records
        assert record["provider"] == "openai"
        assert record["endpoint"] == "chat.completions"
        assert record["input_tokens"] == 12
        assert record["output_tokens"] == 30
        assert record["metadata"]["temperature"] == 0.3
        assert record["options"] is options
        assert "status" not in record

    def test_records_failed_call_and_reraises(self):
        tracker = RecordingClient()
        wrapper = OpenAIWrapper(
            openai_client(FakeCompletions(error=RuntimeError("rate limited"))), tracker
        )

        with pytest.raises(RuntimeError):
            wrapper.chat.completions.create(model="gpt-4o", messages=[])

        [record] = tracker.records
        assert record["status"] == "error"
        assert record["error_message"] == "rate limited"
        assert record["cost"] == 0.0

    def test_streaming_records_when_exhausted(self):
        tracker = RecordingClient()
        chunks = [
            SimpleNamespace(usage=None),
            SimpleNamespace(usage=SimpleNamespace(prompt_tokens=5, completion_tokens=7)),
        ]
        wrapper = OpenAIWrapper(openai_client(FakeCompletions(chunks=chunks)), tracker)

        stream = wrapper.chat.completions.create(model="gpt-4o", messages=[], stream=True)
        assert tracker.records == []

        assert list(stream) == chunks
        [record] = tracker.records
        assert (record["input_tokens"], record["output_tokens"]) == (5, 7)

    def test_delegates_other_attributes(self):
        wrapper = OpenAIWrapper(openai_client(FakeCompletions()), RecordingClient())

        assert wrapper.models.list() == ["gpt-4o"]


class TestAnthropicWrapper:
    """Tests for message tracking."""

    def test_records_successful_call(self):
        tracker = RecordingClient()
        response = SimpleNamespace(usage=SimpleNamespace(input_tokens=100, output_tokens=20))
        anthropic = SimpleNamespace(messages=FakeCompletions(response))
        wrapper = AnthropicWrapper(anthropic, tracker)

        result = wrapper.messages.create(model="claude-sonnet-4", max_tokens=256, messages=[])

        assert result is response
        [record] = tracker.records
        assert record["provider"] == "anthropic"
        assert record["endpoint"] == "messages"
        assert record["input_tokens"] == 100
        assert record["metadata"]["max_tokens"] == 256

    def test_records_failed_call_and_reraises(self):
        tracker = RecordingClient()
        anthropic = SimpleNamespace(messages=FakeCompletions(error=ValueError("overloaded")))
        wrapper = AnthropicWrapper(anthropic, tracker)

        with pytest.raises(ValueError):
            wrapper.messages.create(model="claude-sonnet-4", messages=[])

        assert tracker.records[0]["status"] == "error"
