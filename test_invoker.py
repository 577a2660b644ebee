"""
Tests for single persona calls: event order, streaming vs whole responses, failures.
"""

from types import SimpleNamespace

import pytest

from config import AppConfig, ModelConfig
from agent.events import AgentChunk, AgentComplete, AgentStart
from agent.invoker import AgentInvocationError, AgentInvoker

MODELS = ModelConfig(deep_model_id="deep-model", fast_model_id="fast-model")


@pytest.fixture(autouse=True)
def _no_model_overrides(monkeypatch):
    for role in ("ARCHITECT", "DEVELOPER", "REVIEWER", "TESTER", "DEBUGGER"):
        monkeypatch.delenv(f"{role}_MODEL_ID", raising=False)


class FakeService:
    def __init__(self, pieces=None, error=None):
        self.pieces = pieces or []
        self.error = error
        self.calls = []

    def generate_response_stream(self, messages, system_prompt, model_id, config):
        self.calls.append(model_id)
        yield {"type": "text_start"}
        for piece in self.pieces:
            yield {"type": "text", "content": piece}
        if self.error:
            raise self.error
        yield {"type": "text_end"}
        yield {"type": "message_end", "stop_reason": "end_turn"}

    def generate_response(self, messages, system_prompt, model_id, config):
        self.calls.append(model_id)
        if self.error:
            raise self.error
        return SimpleNamespace(content="".join(self.pieces))


class Recorder:
    def __init__(self):
        self.events = []

    async def __call__(self, event):
        self.events.append(event)


@pytest.mark.asyncio
async def test_stream_event_order():
    events = Recorder()
    invoker = AgentInvoker(FakeService(["Hello", " world"]), events, AppConfig(stream_responses=True), MODELS)
    text = await invoker.invoke("developer", [{"role": "user", "content": "hi"}])

    assert text == "Hello world"
    assert [type(e) for e in events.events] == [AgentStart, AgentChunk, AgentChunk, AgentComplete]
    assert [e.content for e in events.events[1:3]] == ["Hello", " world"]
    assert events.events[-1].content == "Hello world"
    assert all(e.role == "developer" for e in events.events)


@pytest.mark.asyncio
async def test_whole_response_is_one_chunk():
    events = Recorder()
    invoker = AgentInvoker(FakeService(["Hello", " world"]), events, AppConfig(stream_responses=False), MODELS)
    text = await invoker.invoke("reviewer", [{"role": "user", "content": "hi"}])

    assert text == "Hello world"
    assert [type(e) for e in events.events] == [AgentStart, AgentChunk, AgentComplete]


@pytest.mark.asyncio
async def test_routing_and_call_counts():
    service = FakeService(["ok"])
    invoker = AgentInvoker(service, Recorder(), AppConfig(), MODELS)
    await invoker.invoke("architect", [])
    await invoker.invoke("developer", [])
    await invoker.invoke("debugger", [])

    assert service.calls == ["deep-model", "fast-model", "deep-model"]
    assert invoker.calls["deep-model"] == 2
    assert invoker.calls["fast-model"] == 1


@pytest.mark.asyncio
async def test_model_override_from_environment(monkeypatch):
    monkeypatch.setenv("TESTER_MODEL_ID", "custom-model")
    invoker = AgentInvoker(FakeService(["ok"]), Recorder(), AppConfig(), MODELS)
    assert invoker.model_for("tester") == "custom-model"


@pytest.mark.asyncio
async def test_failure_mid_stream_raises_named_error():
    events = Recorder()
    service = FakeService(["partial"], error=RuntimeError("throttled"))
    invoker = AgentInvoker(service, events, AppConfig(stream_responses=True), MODELS)

    with pytest.raises(AgentInvocationError) as exc:
        await invoker.invoke("architect", [])

    assert str(exc.value) == "Agent Nova (Software Architect) encountered an error: throttled"
    assert exc.value.role == "architect"
    assert not any(isinstance(e, AgentComplete) for e in events.events)


@pytest.mark.asyncio
async def test_failure_in_whole_mode():
    invoker = AgentInvoker(FakeService(error=RuntimeError("denied")), Recorder(), AppConfig(stream_responses=False), MODELS)
    with pytest.raises(AgentInvocationError, match="Agent Dash \\(Debug Engineer\\) encountered an error: denied"):
        await invoker.invoke("debugger", [])
