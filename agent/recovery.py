"""
Execution debug phase: save -> execute -> classify -> escalate -> repair, until
the program really runs and its output passes the quality checks.

There is no attempt ceiling. Repair strategy escalates instead:
tier 1 quick fix, tier 2 deep review, tier 3 full re-architecture.
"""

import asyncio
import logging
from typing import Optional

from .artifacts import save_artifacts, select_entry_file
from .classifier import classify
from .escalation import DEEP_REVIEW, REARCHITECT, TIER_LABELS
from .events import EvolutionCycle, ExecutionResult, ExecutionStart, FilesSaved
from .prompts import (
    ARCHITECT, DEBUGGER, REVIEWER,
    NOTE_DEEP_REVIEW, NOTE_DIAGNOSE_RUNTIME, NOTE_FIX_RUNTIME,
    NOTE_REARCHITECT_REVIEW, NOTE_REVISE, NOTE_REWRITE,
)
from .state import ExecutionOutcome, OutcomeKind, Phase
from .verdicts import Verdict, interpret_review

logger = logging.getLogger(__name__)


class RecoveryMixin:
    """Mixin providing the EXECUTION_DEBUG phase.

    Expects BuildMixin helpers plus:
    - self.backend (Backend)
    - self.tracker (ErrorTracker)
    - self.policy (EscalationPolicy)
    - self.settings (AppConfig)
    - self.thresholds (QualityThresholds)
    """

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    async def _execute_current(self) -> Optional[ExecutionOutcome]:
        """Stage and run the current code set. None when nothing is runnable."""
        loop = asyncio.get_running_loop()
        paths = await loop.run_in_executor(None, save_artifacts, self.backend, self.state.latest_code)
        await self._emit(FilesSaved(paths=paths, root=self.backend.working_directory))

        entry = select_entry_file(paths)
        if entry is None:
            logger.warning(f"No runnable entry file among {paths}")
            return None

        await self._emit(ExecutionStart(target_file=entry))
        logger.info(f"Executing {entry}")
        result = await loop.run_in_executor(
            None,
            lambda: self.backend.run_file(
                entry,
                timeout=self.settings.execution_timeout,
                max_output_bytes=self.settings.max_output_bytes,
            ),
        )
        stderr = result.stderr
        if not result.exited_cleanly and not stderr.strip():
            stderr = f"Process exited with code {result.returncode}"
        outcome = classify(result.stdout, not result.exited_cleanly, stderr, self.thresholds)

        await self._emit(ExecutionResult(success=outcome.success, stdout=outcome.stdout, diagnostic=outcome.diagnostic))
        logger.info(f"Execution {'succeeded' if outcome.success else 'failed'} ({outcome.kind.value})")
        return outcome

    # ------------------------------------------------------------------
    # EXECUTION_DEBUG
    # ------------------------------------------------------------------

    async def _run_execution_debug(self) -> None:
        self.state.phase = Phase.EXECUTION_DEBUG
        logger.info(f"Phase {self.state.phase.name}")

        attempt = 0
        while True:
            outcome = await self._execute_current()
            if outcome is None:
                return
            if outcome.success:
                self.state.execution_success = True
                return

            attempt += 1
            self.state.execution_attempts = attempt
            self.tracker.record(outcome.diagnostic, attempt)
            if self.tracker.is_thrashing():
                logger.warning(f"Thrashing: last {self.tracker.thrash_window} failures were all different")

            tier = self.policy.tier(attempt)
            logger.info(f"Attempt {attempt}: escalation tier {tier} ({TIER_LABELS[tier]})")
            await self._emit(EvolutionCycle(cycle_number=attempt, tier=tier, label=TIER_LABELS[tier]))

            if tier == REARCHITECT:
                ok = await self._rearchitect()
            else:
                ok = await self._repair(tier, outcome)
            if not ok:
                return

    def _repair_prompt(self, outcome: ExecutionOutcome, note: str) -> str:
        # Hidden errors already carry the whole stdout as their diagnostic
        stdout = outcome.stdout if outcome.kind is OutcomeKind.CRASH else ""
        return self.contexts.build_repair(
            self.state.task,
            self.environment,
            self.state.history,
            self.tracker,
            self.state.latest_code,
            stdout,
            note,
        )

    async def _repair(self, tier: int, outcome: ExecutionOutcome) -> bool:
        """Tier 1/2: diagnose + audit, apply every fix, optionally review."""
        await self._call(DEBUGGER, self._repair_prompt(outcome, NOTE_DIAGNOSE_RUNTIME))
        if not await self._develop(self._repair_prompt(outcome, NOTE_FIX_RUNTIME)):
            return False
        if tier < DEEP_REVIEW:
            return True

        review = await self._call(REVIEWER, self._repair_prompt(outcome, NOTE_DEEP_REVIEW))
        if interpret_review(review) is Verdict.NEEDS_REVISION:
            logger.info("Deep review still objects; one inline fix round")
            return await self._develop(self._repair_prompt(outcome, NOTE_REVISE))
        return True

    async def _rearchitect(self) -> bool:
        """Tier 3: clear staging and conversation, redesign from the error log."""
        self.state.rearchitect_count += 1
        logger.warning(
            f"Re-architecting (#{self.state.rearchitect_count}) after {len(self.tracker)} failed attempts"
        )
        failing_code = self.state.latest_code
        await asyncio.get_running_loop().run_in_executor(None, self.backend.reset)
        self.state.history.clear()
        self.tracker.mark_epoch()

        await self._call(
            ARCHITECT,
            self.contexts.build_rearchitect(self.state.task, self.environment, self.tracker, failing_code),
        )
        if not await self._develop(self._build_prompt(NOTE_REWRITE)):
            return False
        errors = self.contexts.error_history(self.tracker)
        await self._call(REVIEWER, self._build_prompt(f"{NOTE_REARCHITECT_REVIEW}\n\nPrevious error history:\n{errors}"))
        return True
