"""
Tests for the web endpoints: persona listing, request validation and SSE framing.
"""

import json
import os

import pytest
from fastapi.testclient import TestClient

import web.state
from web import app
from agent import AgentChunk, AgentStart, WorkflowComplete, WorkflowSummary
from backend import LocalBackend


class FakeOrchestrator:
    def __init__(self, events=None, error=None):
        self.events = events or []
        self.error = error
        self.tasks = []
        self.backend = LocalBackend(web.state.new_run_directory())

    async def stream(self, task):
        self.tasks.append(task)
        for event in self.events:
            yield event
        if self.error:
            raise self.error


@pytest.fixture(autouse=True)
def _output_root(monkeypatch, tmp_path):
    monkeypatch.setattr(web.state, "_output_root", str(tmp_path))
    monkeypatch.setattr(web.state, "_keep_run_directories", False)


@pytest.fixture
def client():
    return TestClient(app)


def _frames(body: str):
    chunks = [c for c in body.split("\n\n") if c]
    assert all(c.startswith("data: ") for c in chunks)
    return [json.loads(c[len("data: "):]) for c in chunks]


def test_list_agents(client):
    resp = client.get("/api/agents")
    assert resp.status_code == 200
    agents = resp.json()["agents"]
    assert [a["name"] for a in agents] == ["Nova", "Axel", "Sage", "Vera", "Dash"]
    assert all(a["model"] for a in agents)


def test_invalid_json_body(client):
    resp = client.post("/api/agents", content="{not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid request body"}


@pytest.mark.parametrize("payload", [{}, {"task": ""}, {"task": "   "}, {"task": 42}, ["task"]])
def test_task_is_required(client, payload):
    resp = client.post("/api/agents", json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Task is required"}


def test_event_stream(client, monkeypatch):
    summary = WorkflowSummary(total_model_calls=4, execution_success=True)
    fake = FakeOrchestrator([
        AgentStart(role="architect"),
        AgentChunk(role="architect", content="PLAN"),
        WorkflowComplete(summary=summary),
    ])
    monkeypatch.setattr(web.state, "build_orchestrator", lambda: fake)

    resp = client.post("/api/agents", json={"task": "  sort a list  "})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache, no-transform"
    assert resp.headers["x-accel-buffering"] == "no"

    frames = _frames(resp.text)
    assert [f["type"] for f in frames] == ["agent_start", "agent_chunk", "workflow_complete"]
    assert frames[0]["role"] == "architect"
    assert frames[1]["content"] == "PLAN"
    assert frames[2]["summary"]["execution_success"] is True
    assert all(isinstance(f["timestamp"], int) for f in frames)
    assert fake.tasks == ["sort a list"]


def test_stream_failure_becomes_error_frame(client, monkeypatch):
    fake = FakeOrchestrator([AgentStart(role="architect")], error=RuntimeError("boom"))
    monkeypatch.setattr(web.state, "build_orchestrator", lambda: fake)

    frames = _frames(client.post("/api/agents", json={"task": "x"}).text)
    assert [f["type"] for f in frames] == ["agent_start", "workflow_error"]
    assert frames[-1]["error"] == "boom"


def test_each_run_gets_its_own_directory(monkeypatch, tmp_path):
    monkeypatch.setattr(web.state, "_output_root", str(tmp_path))
    first = web.state.new_run_directory()
    second = web.state.new_run_directory()
    assert first != second
    assert first.startswith(str(tmp_path))


def test_concurrent_requests_stage_in_separate_roots(monkeypatch):
    monkeypatch.setattr(web.state, "_service", object())
    first = web.state.build_orchestrator()
    second = web.state.build_orchestrator()
    assert first.backend.working_directory != second.backend.working_directory
    assert first.probe is second.probe


def test_run_directory_removed_when_stream_ends(client, monkeypatch):
    fake = FakeOrchestrator([WorkflowComplete(summary=WorkflowSummary())])
    fake.backend.reset()
    fake.backend.write_file("main.py", "print(1)\n")
    monkeypatch.setattr(web.state, "build_orchestrator", lambda: fake)

    client.post("/api/agents", json={"task": "x"})
    assert not os.path.exists(fake.backend.working_directory)


def test_run_directory_removed_after_stream_failure(client, monkeypatch):
    fake = FakeOrchestrator(error=RuntimeError("boom"))
    fake.backend.reset()
    monkeypatch.setattr(web.state, "build_orchestrator", lambda: fake)

    client.post("/api/agents", json={"task": "x"})
    assert not os.path.exists(fake.backend.working_directory)


def test_run_directory_kept_when_configured(client, monkeypatch):
    monkeypatch.setattr(web.state, "_keep_run_directories", True)
    fake = FakeOrchestrator([WorkflowComplete(summary=WorkflowSummary())])
    fake.backend.reset()
    monkeypatch.setattr(web.state, "build_orchestrator", lambda: fake)

    client.post("/api/agents", json={"task": "x"})
    assert os.path.isdir(fake.backend.working_directory)


def test_release_ignores_paths_outside_output_root(tmp_path):
    outside = tmp_path / "nested" / "run-x"
    outside.mkdir(parents=True)
    web.state.release_run_directory(str(outside))
    assert outside.is_dir()
