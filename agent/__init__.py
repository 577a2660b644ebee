"""
Agent package - multi-persona build / evolve / execute-debug orchestration.

Modules:
- events: typed workflow events (one dataclass per event kind)
- state: run state, code artifacts, execution outcomes, summary
- prompts: personas, system prompts, step instructions
- verdicts: reviewer / tester / debugger verdict interpretation
- classifier: execution output classification and quality heuristics
- error_tracker: error signatures, repeat counts, thrash detection
- escalation: repair tier selection
- context: bounded prompt assembly
- artifacts: code block extraction, staging, entry file selection
- invoker: one persona call as start/chunk/complete events
- environment: execution environment probe
- building / evolution / recovery: the three phase mixins
- core: TeamOrchestrator
"""

from .core import TeamOrchestrator
from .events import (
    AgentEvent,
    AgentStart,
    AgentChunk,
    AgentComplete,
    CodeUpdate,
    FilesSaved,
    ExecutionStart,
    ExecutionResult,
    EvolutionCycle,
    WorkflowComplete,
    WorkflowError,
)
from .state import (
    Phase,
    OutcomeKind,
    AgentTurn,
    CodeArtifact,
    ExecutionOutcome,
    WorkflowSummary,
    RunState,
)

# Mixins
from .building import BuildMixin
from .evolution import EvolutionMixin
from .recovery import RecoveryMixin

# Helpers
from .classifier import classify, validate_quality, find_hidden_error, truncate_trace
from .error_tracker import ErrorTracker, ErrorRecord, UniqueError, extract_signature
from .escalation import EscalationPolicy, QUICK_FIX, DEEP_REVIEW, REARCHITECT
from .context import ContextBuilder
from .artifacts import extract_code_blocks, save_artifacts, sanitize_path, select_entry_file
from .invoker import AgentInvoker, AgentInvocationError
from .environment import EnvironmentProbe
from .verdicts import Verdict, interpret_review, interpret_test_report, interpret_diagnosis
from .prompts import PERSONAS, AGENT_ORDER, Persona, get_persona, describe_personas

__all__ = [
    # Main orchestrator
    "TeamOrchestrator",

    # Events
    "AgentEvent",
    "AgentStart",
    "AgentChunk",
    "AgentComplete",
    "CodeUpdate",
    "FilesSaved",
    "ExecutionStart",
    "ExecutionResult",
    "EvolutionCycle",
    "WorkflowComplete",
    "WorkflowError",

    # Data types
    "Phase",
    "OutcomeKind",
    "AgentTurn",
    "CodeArtifact",
    "ExecutionOutcome",
    "WorkflowSummary",
    "RunState",

    # Mixins
    "BuildMixin",
    "EvolutionMixin",
    "RecoveryMixin",

    # Analysis
    "classify",
    "validate_quality",
    "find_hidden_error",
    "truncate_trace",
    "ErrorTracker",
    "ErrorRecord",
    "UniqueError",
    "extract_signature",
    "EscalationPolicy",
    "QUICK_FIX",
    "DEEP_REVIEW",
    "REARCHITECT",
    "ContextBuilder",

    # Artifacts and calls
    "extract_code_blocks",
    "save_artifacts",
    "sanitize_path",
    "select_entry_file",
    "AgentInvoker",
    "AgentInvocationError",
    "EnvironmentProbe",

    # Personas and verdicts
    "Verdict",
    "interpret_review",
    "interpret_test_report",
    "interpret_diagnosis",
    "PERSONAS",
    "AGENT_ORDER",
    "Persona",
    "get_persona",
    "describe_personas",
]
