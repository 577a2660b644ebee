"""
TeamOrchestrator: runs one task through the persona team.

Flow:
1. INITIAL_BUILD      Architect -> Developer -> Reviewer (one revision) -> Tester
2. MENTAL_EVOLUTION   Debugger / Developer / Reviewer / Tester, soft-capped
3. EXECUTION_DEBUG    save -> execute -> classify -> escalate -> repair, until success
4. DONE               workflow_complete with the run summary

Model-call failures are fatal and end the run with one workflow_error event.
Execution failures never are.
"""

import asyncio
import logging
import os
from typing import AsyncIterator, Awaitable, Callable, Optional

from bedrock_service import BedrockService
from backend import Backend, LocalBackend
from config import AppConfig, ModelConfig, QualityThresholds, app_config, model_config

from .building import BuildMixin
from .context import ContextBuilder
from .environment import EnvironmentProbe
from .error_tracker import ErrorTracker
from .escalation import EscalationPolicy
from .events import AgentEvent, WorkflowComplete, WorkflowError
from .evolution import EvolutionMixin
from .invoker import AgentInvocationError, AgentInvoker
from .recovery import RecoveryMixin
from .state import Phase, RunState, WorkflowSummary

logger = logging.getLogger(__name__)

EventCallback = Callable[[AgentEvent], Awaitable[None]]


class TeamOrchestrator(BuildMixin, EvolutionMixin, RecoveryMixin):
    """
    Owns all mutable state of a run: history, error log, current code, counters.
    One instance runs one workflow at a time; concurrent runs need separate
    instances with separate staging roots.
    """

    def __init__(
        self,
        bedrock_service: BedrockService,
        backend: Optional[Backend] = None,
        output_directory: Optional[str] = None,
        settings: Optional[AppConfig] = None,
        models: Optional[ModelConfig] = None,
        thresholds: Optional[QualityThresholds] = None,
        environment: Optional[str] = None,
        probe: Optional[EnvironmentProbe] = None,
    ):
        self.service = bedrock_service
        self.settings = settings or app_config
        self.models = models or model_config
        self.thresholds = thresholds or QualityThresholds()
        root = output_directory or self.settings.output_directory
        self.backend: Backend = backend or LocalBackend(os.path.abspath(root))
        self.contexts = ContextBuilder(self.settings)
        self.probe = probe or EnvironmentProbe()
        self.environment: str = environment or ""
        self._environment_fixed = environment is not None

        # Per-run state, replaced at the start of every run
        self.state: Optional[RunState] = None
        self.tracker: Optional[ErrorTracker] = None
        self.policy: Optional[EscalationPolicy] = None
        self.invoker: Optional[AgentInvoker] = None
        self._on_event: Optional[EventCallback] = None

    async def _emit(self, event: AgentEvent) -> None:
        await self._on_event(event)

    async def _prepare(self, task: str, on_event: EventCallback) -> None:
        self.state = RunState(task=task)
        self.tracker = ErrorTracker(thrash_window=self.settings.thrash_window)
        self.policy = EscalationPolicy(self.tracker, self.settings)
        self._on_event = on_event
        self.invoker = AgentInvoker(
            self.service,
            self._emit,
            settings=self.settings,
            models=self.models,
            call_counter=self.state.model_calls,
        )
        loop = asyncio.get_running_loop()
        if not self._environment_fixed:
            self.environment = await loop.run_in_executor(None, self.probe.describe)
        await loop.run_in_executor(None, self.backend.reset)

    def summary(self) -> WorkflowSummary:
        return self.state.summary(unique_errors=len(self.tracker.unique_errors()))

    async def run(self, task: str, on_event: EventCallback) -> Optional[WorkflowSummary]:
        """Run the whole workflow. Returns the summary, or None after a fatal model error."""
        task = task.strip()
        await self._prepare(task, on_event)
        logger.info(f"Workflow started: {task[:100]}")

        try:
            if await self._run_initial_build() and await self._run_mental_evolution():
                await self._run_execution_debug()
        except AgentInvocationError as e:
            logger.error(f"Workflow aborted: {e}")
            await self._emit(WorkflowError(error=str(e)))
            return None

        self.state.phase = Phase.DONE
        summary = self.summary()
        logger.info(
            f"Workflow complete: success={summary.execution_success} "
            f"calls={summary.total_model_calls} attempts={summary.execution_attempts} "
            f"rearchitects={summary.rearchitect_count} in {summary.duration_seconds}s"
        )
        await self._emit(WorkflowComplete(summary=summary))
        return summary

    async def stream(self, task: str) -> AsyncIterator[AgentEvent]:
        """Async iterator over the run's events. Stopping iteration cancels the run."""
        q: asyncio.Queue = asyncio.Queue()

        async def _drive():
            try:
                await self.run(task, q.put)
            except Exception as e:
                logger.exception("Workflow crashed")
                await q.put(WorkflowError(error=str(e) or type(e).__name__))
            finally:
                await q.put(None)

        runner = asyncio.create_task(_drive())
        try:
            while True:
                event = await q.get()
                if event is None:
                    break
                yield event
        finally:
            if not runner.done():
                runner.cancel()
