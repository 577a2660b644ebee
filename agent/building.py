"""
Initial build phase and the persona-call helpers shared by every phase.
Architect -> Developer -> Reviewer (one revision) -> Tester.
"""

import logging
from typing import Any, Dict, List

from .artifacts import extract_code_blocks
from .events import CodeUpdate
from .prompts import (
    ARCHITECT, DEVELOPER, REVIEWER, TESTER,
    NOTE_DESIGN, NOTE_IMPLEMENT, NOTE_REVIEW, NOTE_TEST,
)
from .state import AgentTurn, Phase
from .verdicts import Verdict, interpret_review

logger = logging.getLogger(__name__)


class BuildMixin:
    """Mixin providing persona turns and the INITIAL_BUILD phase.

    Expects the host class to provide:
    - self.state (RunState)
    - self.invoker (AgentInvoker)
    - self.contexts (ContextBuilder)
    - self.environment (str)
    - self._emit (async event sink)
    """

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    @staticmethod
    def _messages(prompt: str) -> List[Dict[str, Any]]:
        return [{"role": "user", "content": prompt}]

    async def _call(self, role: str, prompt: str) -> str:
        """One persona call; the turn is appended only once it completed."""
        text = await self.invoker.invoke(role, self._messages(prompt))
        self.state.history.append(AgentTurn(role=role, content=text))
        return text

    async def _develop(self, prompt: str) -> bool:
        """Developer turn. Returns False when no code could be extracted."""
        text = await self._call(DEVELOPER, prompt)
        blocks = extract_code_blocks(text)
        if not blocks:
            logger.warning("Developer response contained no code blocks; nothing to execute")
            return False
        self.state.latest_code = blocks
        for block in blocks:
            await self._emit(CodeUpdate(role=DEVELOPER, code=block))
        return True

    def _build_prompt(self, note: str) -> str:
        return self.contexts.build(self.state.task, self.environment, self.state.history, note)

    async def _review_and_revise(self, note: str = NOTE_REVIEW) -> bool:
        """Reviewer pass with at most one Developer revision."""
        review = await self._call(REVIEWER, self._build_prompt(note))
        if interpret_review(review) is not Verdict.NEEDS_REVISION:
            return True
        logger.info("Reviewer requested revision")
        previous = self.state.last_turn(DEVELOPER)
        prompt = self.contexts.build_revision(
            self.state.task,
            self.environment,
            review,
            previous.content if previous else "",
        )
        return await self._develop(prompt)

    async def _test(self) -> str:
        report = await self._call(TESTER, self._build_prompt(NOTE_TEST))
        self.state.last_test_report = report
        return report

    # ------------------------------------------------------------------
    # INITIAL_BUILD
    # ------------------------------------------------------------------

    async def _run_initial_build(self) -> bool:
        """Returns False when the run should end because there is no code."""
        self.state.phase = Phase.INITIAL_BUILD
        logger.info(f"Phase {self.state.phase.name}: {self.state.task[:80]}")

        await self._call(ARCHITECT, self._build_prompt(NOTE_DESIGN))
        if not await self._develop(self._build_prompt(NOTE_IMPLEMENT)):
            return False
        if not await self._review_and_revise():
            return False
        await self._test()
        return True
