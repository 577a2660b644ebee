"""
Mental evolution phase: Debugger / Developer / Reviewer / Tester iterate on the
code without running it. Soft-capped; real execution has the final word.
"""

import logging

from .escalation import EscalationPolicy
from .events import EvolutionCycle
from .prompts import DEBUGGER, NOTE_DIAGNOSE_TESTS, NOTE_FIX_DIAGNOSIS
from .state import Phase
from .verdicts import Verdict, interpret_diagnosis, interpret_test_report

logger = logging.getLogger(__name__)


class EvolutionMixin:
    """Mixin providing the MENTAL_EVOLUTION phase.

    Expects BuildMixin helpers plus:
    - self.policy (EscalationPolicy)
    """

    policy: EscalationPolicy

    async def _run_mental_evolution(self) -> bool:
        """Returns False when the run should end because there is no code."""
        self.state.phase = Phase.MENTAL_EVOLUTION
        logger.info(f"Phase {self.state.phase.name}")

        while True:
            if interpret_test_report(self.state.last_test_report) is Verdict.PASS:
                logger.info("Tester reports all tests pass")
                break
            if not self.policy.mental_cycle_allowed(self.state.evolution_cycles):
                logger.info(f"Mental evolution soft cap reached after {self.state.evolution_cycles} cycle(s)")
                break

            self.state.evolution_cycles += 1
            await self._emit(EvolutionCycle(cycle_number=self.state.evolution_cycles, label="mental test"))

            diagnosis = await self._call(DEBUGGER, self._build_prompt(NOTE_DIAGNOSE_TESTS))
            if interpret_diagnosis(diagnosis) is Verdict.CLEAN:
                logger.info("Debugger declared the code clean")
                break

            if not await self._develop(self._build_prompt(NOTE_FIX_DIAGNOSIS)):
                return False
            if not await self._review_and_revise():
                return False
            await self._test()

        return True
