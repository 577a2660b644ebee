"""
End-to-end workflow tests with a scripted model service and a scripted backend.
No AWS access and no real program execution.
"""

from typing import Dict, List

import pytest

from backend import Backend, LocalBackend, ProcessResult
from config import AppConfig, ModelConfig
from agent import (
    TeamOrchestrator,
    AgentStart,
    CodeUpdate,
    EvolutionCycle,
    ExecutionResult,
    ExecutionStart,
    FilesSaved,
    WorkflowComplete,
    WorkflowError,
)
from agent.prompts import PERSONAS

MODELS = ModelConfig(deep_model_id="deep-model", fast_model_id="fast-model")

CODE = "Here you go.\n\n```python\n# filename: main.py\nprint('result: 42')\n```\n"


@pytest.fixture(autouse=True)
def _no_model_overrides(monkeypatch):
    for role in PERSONAS:
        monkeypatch.delenv(f"{role.upper()}_MODEL_ID", raising=False)


class ScriptedService:
    """Answers each persona from its own script; the last answer repeats."""

    def __init__(self, scripts: Dict[str, List[str]], fail_role: str = None):
        self.scripts = {role: list(answers) for role, answers in scripts.items()}
        self.fail_role = fail_role
        self.prompts: Dict[str, List[str]] = {role: [] for role in PERSONAS}
        self._roles = {p.system_prompt: role for role, p in PERSONAS.items()}

    def _answer(self, messages, system_prompt):
        role = self._roles[system_prompt]
        self.prompts[role].append(messages[-1]["content"])
        if role == self.fail_role:
            raise RuntimeError("ThrottlingException: rate exceeded")
        answers = self.scripts[role]
        return answers.pop(0) if len(answers) > 1 else answers[0]

    def generate_response_stream(self, messages, system_prompt, model_id, config):
        text = self._answer(messages, system_prompt)
        yield {"type": "text_start"}
        for i in range(0, len(text), 16):
            yield {"type": "text", "content": text[i:i + 16]}
        yield {"type": "text_end"}
        yield {"type": "message_end", "stop_reason": "end_turn"}


class ScriptedBackend(Backend):
    """In-memory staging root whose runs return scripted results in order."""

    def __init__(self, results: List[ProcessResult]):
        self.results = list(results)
        self.files: Dict[str, str] = {}
        self.resets = 0
        self.runs: List[str] = []

    @property
    def working_directory(self) -> str:
        return "/staging"

    def reset(self) -> None:
        self.resets += 1
        self.files.clear()

    def write_file(self, path: str, content: str) -> None:
        self.files[path] = content

    def file_exists(self, path: str) -> bool:
        return path in self.files

    def list_files(self) -> List[str]:
        return sorted(self.files)

    def run_file(self, path: str, timeout: int = 600, max_output_bytes: int = 1_000_000) -> ProcessResult:
        self.runs.append(path)
        return self.results.pop(0)


def ok(stdout="result: 42\n"):
    return ProcessResult(True, stdout, "", 0)


def crash(message):
    stderr = f'Traceback (most recent call last):\n  File "main.py", line 1, in <module>\n{message}\n'
    return ProcessResult(False, "", stderr, 1)


def scripts(**overrides):
    base = {
        "architect": ["PLAN: print the answer"],
        "developer": [CODE],
        "reviewer": ["Solid.\nAPPROVED"],
        "tester": ["test_answer PASS\nVERDICT: ALL TESTS PASS"],
        "debugger": ["**BUG 1 (CRASH)**: main.py - Fix: ...\nFIXES NEEDED: 1"],
    }
    base.update(overrides)
    return base


async def run_workflow(service, backend, **settings):
    events = []

    async def collect(event):
        events.append(event)

    orchestrator = TeamOrchestrator(
        service,
        backend=backend,
        settings=AppConfig(**settings),
        models=MODELS,
        environment="OS: TestOS",
    )
    summary = await orchestrator.run("print the answer", collect)
    return orchestrator, summary, events


def of_type(events, cls):
    return [e for e in events if isinstance(e, cls)]


@pytest.mark.asyncio
async def test_first_try_success():
    service = ScriptedService(scripts())
    backend = ScriptedBackend([ok()])
    orchestrator, summary, events = await run_workflow(service, backend)

    assert summary.execution_success
    assert summary.evolution_cycles == 0
    assert summary.execution_attempts == 0
    assert summary.rearchitect_count == 0
    assert summary.total_model_calls == 4
    assert summary.calls_per_model == {"deep-model": 1, "fast-model": 3}

    assert [e.role for e in of_type(events, AgentStart)] == ["architect", "developer", "reviewer", "tester"]
    assert of_type(events, CodeUpdate)[0].code.filename == "main.py"
    assert of_type(events, FilesSaved)[0].paths == ["main.py"]
    assert of_type(events, ExecutionStart)[0].target_file == "main.py"
    assert of_type(events, ExecutionResult)[0].success
    assert isinstance(events[-1], WorkflowComplete)
    assert sum(1 for e in events if e.is_terminal) == 1
    assert backend.files["main.py"] == "print('result: 42')\n"
    assert service.prompts["architect"][0].startswith("EXECUTION ENVIRONMENT:\nOS: TestOS")


@pytest.mark.asyncio
async def test_review_revision_round():
    service = ScriptedService(scripts(reviewer=["**CRITICAL**: bug\nNEEDS REVISION", "APPROVED"]))
    _, summary, events = await run_workflow(service, ScriptedBackend([ok()]))

    assert summary.execution_success
    assert [e.role for e in of_type(events, AgentStart)] == ["architect", "developer", "reviewer", "developer", "tester"]
    assert "--- Reviewer Feedback ---" in service.prompts["developer"][1]


@pytest.mark.asyncio
async def test_mental_evolution_is_soft_capped():
    service = ScriptedService(scripts(tester=["VERDICT: TESTS FAILING"]))
    _, summary, events = await run_workflow(service, ScriptedBackend([ok()]), max_evolution_cycles=2)

    cycles = of_type(events, EvolutionCycle)
    assert [(c.cycle_number, c.tier, c.label) for c in cycles] == [(1, None, "mental test"), (2, None, "mental test")]
    assert summary.evolution_cycles == 2
    assert summary.execution_success


@pytest.mark.asyncio
async def test_debugger_clean_ends_mental_evolution():
    service = ScriptedService(scripts(tester=["VERDICT: TESTS FAILING"], debugger=["CODE IS CLEAN"]))
    _, summary, events = await run_workflow(service, ScriptedBackend([ok()]))

    assert summary.evolution_cycles == 1
    roles = [e.role for e in of_type(events, AgentStart)]
    assert roles == ["architect", "developer", "reviewer", "tester", "debugger"]


@pytest.mark.asyncio
async def test_repeated_error_then_success():
    service = ScriptedService(scripts())
    backend = ScriptedBackend([crash("ValueError: same")] * 3 + [ok()])
    _, summary, events = await run_workflow(service, backend)

    assert summary.execution_success
    assert summary.execution_attempts == 3
    assert summary.unique_errors == 1
    assert summary.rearchitect_count == 0

    cycles = of_type(events, EvolutionCycle)
    assert [(c.cycle_number, c.tier) for c in cycles] == [(1, 1), (2, 1), (3, 1)]
    assert "SAME ERROR x3" in service.prompts["debugger"][2]
    assert "twice in a row" in service.prompts["debugger"][1]
    assert "=== CURRENT ERROR (attempt 1) ===" in service.prompts["debugger"][0]
    assert [r.success for r in of_type(events, ExecutionResult)] == [False, False, False, True]


@pytest.mark.asyncio
async def test_thrashing_triggers_rearchitecture():
    service = ScriptedService(scripts())
    backend = ScriptedBackend([crash(f"ValueError: v{i}") for i in range(5)] + [ok()])
    orchestrator, summary, events = await run_workflow(service, backend)

    assert summary.execution_success
    assert summary.execution_attempts == 5
    assert summary.rearchitect_count == 1
    assert summary.unique_errors == 5

    cycles = of_type(events, EvolutionCycle)
    assert [c.tier for c in cycles] == [1, 1, 1, 1, 3]
    assert cycles[-1].label == "re-architecture"

    assert len(service.prompts["architect"]) == 2
    redesign = service.prompts["architect"][1]
    assert "PREVIOUS APPROACH FAILED 5 TIMES" in redesign
    assert "PLAN: print the answer" not in redesign
    assert backend.resets == 2
    assert [t.role for t in orchestrator.state.history] == ["architect", "developer", "reviewer"]


@pytest.mark.asyncio
async def test_fresh_design_gets_normal_repair_loop():
    service = ScriptedService(scripts())
    backend = ScriptedBackend([crash(f"ValueError: v{i}") for i in range(8)] + [ok()])
    _, summary, events = await run_workflow(service, backend)

    assert summary.execution_success
    assert summary.execution_attempts == 8
    assert summary.unique_errors == 8
    assert summary.rearchitect_count == 1

    # Failures after the redesign belong to the new design and do not re-trigger thrashing
    assert [c.tier for c in of_type(events, EvolutionCycle)] == [1, 1, 1, 1, 3, 2, 2, 2]
    assert len(service.prompts["architect"]) == 2


@pytest.mark.asyncio
async def test_deep_review_tier():
    service = ScriptedService(scripts())
    backend = ScriptedBackend([crash("ValueError: same")] * 2 + [ok()])
    _, summary, events = await run_workflow(service, backend, deep_review_after=1)

    assert [c.tier for c in of_type(events, EvolutionCycle)] == [1, 2]
    # Tier 2 adds a reviewer pass after the developer's fix
    tail = [e.role for e in of_type(events, AgentStart)][-3:]
    assert tail == ["debugger", "developer", "reviewer"]
    assert summary.execution_success


@pytest.mark.asyncio
async def test_hidden_error_counts_as_failure():
    service = ScriptedService(scripts())
    backend = ScriptedBackend([ok("step 1\nAn error occurred: bad input\n"), ok()])
    _, summary, events = await run_workflow(service, backend)

    results = of_type(events, ExecutionResult)
    assert [r.success for r in results] == [False, True]
    assert summary.execution_attempts == 1


@pytest.mark.asyncio
async def test_model_failure_is_one_terminal_error():
    service = ScriptedService(scripts(), fail_role="architect")
    backend = ScriptedBackend([])
    _, summary, events = await run_workflow(service, backend)

    assert summary is None
    terminal = [e for e in events if e.is_terminal]
    assert len(terminal) == 1
    assert events[-1] is terminal[0]
    assert isinstance(events[-1], WorkflowError)
    assert events[-1].error == (
        "Agent Nova (Software Architect) encountered an error: ThrottlingException: rate exceeded"
    )
    assert backend.runs == []


@pytest.mark.asyncio
async def test_no_code_ends_run():
    service = ScriptedService(scripts(developer=["I need more details before writing code."]))
    backend = ScriptedBackend([])
    _, summary, events = await run_workflow(service, backend)

    assert not summary.execution_success
    assert not of_type(events, ExecutionStart)
    assert isinstance(events[-1], WorkflowComplete)


@pytest.mark.asyncio
async def test_no_runnable_file_ends_run():
    doc_only = "```markdown\n# filename: README.md\n# Notes\n```\n"
    service = ScriptedService(scripts(developer=[doc_only]))
    backend = ScriptedBackend([])
    _, summary, events = await run_workflow(service, backend)

    assert of_type(events, FilesSaved)[0].paths == ["README.md"]
    assert not of_type(events, ExecutionStart)
    assert not summary.execution_success


@pytest.mark.asyncio
async def test_stream_yields_until_terminal():
    orchestrator = TeamOrchestrator(
        ScriptedService(scripts()),
        backend=ScriptedBackend([ok()]),
        settings=AppConfig(),
        models=MODELS,
        environment="OS: TestOS",
    )
    events = [event async for event in orchestrator.stream("print the answer")]

    assert isinstance(events[0], AgentStart)
    assert isinstance(events[-1], WorkflowComplete)
    assert events[-1].to_dict()["type"] == "workflow_complete"
    assert sum(1 for e in events if e.is_terminal) == 1


@pytest.mark.asyncio
async def test_concurrent_runs_sharing_a_root_clobber_each_other(tmp_path):
    root = str(tmp_path / "shared")

    async def ignore(event):
        pass

    first = TeamOrchestrator(ScriptedService(scripts()), backend=LocalBackend(root),
                             models=MODELS, environment="OS: TestOS")
    second = TeamOrchestrator(ScriptedService(scripts()), backend=LocalBackend(root),
                              models=MODELS, environment="OS: TestOS")

    await first._prepare("task one", ignore)
    first.backend.write_file("main.py", "print('one')\n")
    await second._prepare("task two", ignore)

    # The second run's reset wipes the first run's staged code
    assert not first.backend.file_exists("main.py")


@pytest.mark.asyncio
async def test_concurrent_runs_on_separate_roots_are_isolated(tmp_path):
    async def ignore(event):
        pass

    first = TeamOrchestrator(ScriptedService(scripts()), backend=LocalBackend(str(tmp_path / "run-a")),
                             models=MODELS, environment="OS: TestOS")
    second = TeamOrchestrator(ScriptedService(scripts()), backend=LocalBackend(str(tmp_path / "run-b")),
                              models=MODELS, environment="OS: TestOS")

    await first._prepare("task one", ignore)
    first.backend.write_file("main.py", "print('one')\n")
    await second._prepare("task two", ignore)
    second.backend.write_file("main.py", "print('two')\n")

    assert first.backend.file_exists("main.py")
    assert (tmp_path / "run-a" / "main.py").read_text() == "print('one')\n"
