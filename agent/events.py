"""
Workflow event types.

One run produces one ordered stream of these. Each event kind is its own
dataclass carrying only the fields that kind needs; ``to_dict()`` gives the
wire shape used by the web server and the CLI.
"""

import time
from dataclasses import dataclass, field, asdict
from typing import Any, ClassVar, Dict, List, Optional

from .state import CodeArtifact, WorkflowSummary


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class AgentEvent:
    """Base class for everything emitted during a run"""
    type: ClassVar[str] = "event"
    timestamp: int = field(default_factory=_now_ms, kw_only=True)

    @property
    def is_terminal(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type
        return data


@dataclass
class AgentStart(AgentEvent):
    type: ClassVar[str] = "agent_start"
    role: str


@dataclass
class AgentChunk(AgentEvent):
    type: ClassVar[str] = "agent_chunk"
    role: str
    content: str


@dataclass
class AgentComplete(AgentEvent):
    type: ClassVar[str] = "agent_complete"
    role: str
    content: str


@dataclass
class CodeUpdate(AgentEvent):
    type: ClassVar[str] = "code_update"
    role: str
    code: CodeArtifact


@dataclass
class FilesSaved(AgentEvent):
    type: ClassVar[str] = "files_saved"
    paths: List[str]
    root: str


@dataclass
class ExecutionStart(AgentEvent):
    type: ClassVar[str] = "execution_start"
    target_file: str


@dataclass
class ExecutionResult(AgentEvent):
    type: ClassVar[str] = "execution_result"
    success: bool
    stdout: str
    diagnostic: str


@dataclass
class EvolutionCycle(AgentEvent):
    type: ClassVar[str] = "evolution_cycle"
    cycle_number: int
    tier: Optional[int] = None
    label: Optional[str] = None


@dataclass
class WorkflowComplete(AgentEvent):
    type: ClassVar[str] = "workflow_complete"
    summary: WorkflowSummary

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass
class WorkflowError(AgentEvent):
    type: ClassVar[str] = "workflow_error"
    error: str

    @property
    def is_terminal(self) -> bool:
        return True
