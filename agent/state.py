"""
Run state for one orchestrated workflow.
Holds the conversation history, the current code set, and the counters that
feed the final summary. Everything here is private to a single run.
"""

import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional


class Phase(Enum):
    INITIAL_BUILD = auto()
    MENTAL_EVOLUTION = auto()
    EXECUTION_DEBUG = auto()
    DONE = auto()


class OutcomeKind(Enum):
    SUCCESS = "success"
    CRASH = "crash"
    HIDDEN_ERROR = "hidden_error"
    QUALITY_FAILURE = "quality_failure"


@dataclass
class AgentTurn:
    """One completed persona response"""
    role: str
    content: str


@dataclass
class CodeArtifact:
    """A fenced code block lifted out of a Developer response"""
    language: str
    code: str
    filename: Optional[str] = None
    saved_path: Optional[str] = None


@dataclass
class ExecutionOutcome:
    """Verdict on one real execution of the current code"""
    success: bool
    stdout: str
    diagnostic: str
    kind: OutcomeKind = OutcomeKind.SUCCESS
    findings: List[str] = field(default_factory=list)


@dataclass
class WorkflowSummary:
    """Aggregate counters reported once when a run completes"""
    total_model_calls: int = 0
    calls_per_model: Dict[str, int] = field(default_factory=dict)
    evolution_cycles: int = 0
    execution_attempts: int = 0
    rearchitect_count: int = 0
    unique_errors: int = 0
    execution_success: bool = False
    duration_seconds: float = 0.0


@dataclass
class RunState:
    """Mutable pipeline state owned by the orchestrator for the length of one run."""
    task: str
    phase: Phase = Phase.INITIAL_BUILD
    history: List[AgentTurn] = field(default_factory=list)
    latest_code: List[CodeArtifact] = field(default_factory=list)
    last_test_report: str = ""
    model_calls: Counter = field(default_factory=Counter)
    evolution_cycles: int = 0
    execution_attempts: int = 0
    rearchitect_count: int = 0
    execution_success: bool = False
    started_at: float = field(default_factory=time.monotonic)

    def last_turn(self, role: str) -> Optional[AgentTurn]:
        for turn in reversed(self.history):
            if turn.role == role:
                return turn
        return None

    def summary(self, unique_errors: int = 0) -> WorkflowSummary:
        return WorkflowSummary(
            total_model_calls=sum(self.model_calls.values()),
            calls_per_model=dict(self.model_calls),
            evolution_cycles=self.evolution_cycles,
            execution_attempts=self.execution_attempts,
            rearchitect_count=self.rearchitect_count,
            unique_errors=unique_errors,
            execution_success=self.execution_success,
            duration_seconds=round(time.monotonic() - self.started_at, 3),
        )
