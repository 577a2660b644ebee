"""
Prompt context assembly.

Every persona sees the same shape of prompt: the execution environment, the
original task, then the team conversation. When the conversation outgrows the
token budget the middle of it is elided; the founding design and the latest
turns always survive. The repair and re-architecture variants add the
execution-debug material (current error, error history, warning banners).
"""

import logging
from collections import Counter
from typing import List, Optional

from config import AppConfig, app_config

from .artifacts import format_artifacts
from .error_tracker import ErrorTracker
from .prompts import ARCHITECT, NOTE_REVISE, REVIEWER, get_persona
from .state import AgentTurn, CodeArtifact

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
KEEP_RECENT_TURNS = 3
STDOUT_EXCERPT_CHARS = 3000


def estimate_tokens(text: str) -> int:
    """Token estimate: ~4 chars per token."""
    return max(1, len(text) // CHARS_PER_TOKEN)


def render_turn(turn: AgentTurn) -> str:
    persona = get_persona(turn.role)
    return f"\n[{persona.name} - {persona.title}]:\n{turn.content}\n"


def _section(title: str, body: str) -> str:
    return f"\n=== {title} ===\n{body.rstrip()}\n"


class ContextBuilder:
    """Builds bounded prompt text for persona calls."""

    def __init__(self, settings: Optional[AppConfig] = None, token_budget: Optional[int] = None):
        cfg = settings or app_config
        self.token_budget = token_budget if token_budget is not None else cfg.context_token_budget
        self.persistence_threshold = cfg.persistence_threshold

    # ------------------------------------------------------------------
    # Shared pieces
    # ------------------------------------------------------------------

    @staticmethod
    def header(task: str, environment: str) -> str:
        parts = []
        if environment:
            parts.append(f"EXECUTION ENVIRONMENT:\n{environment.rstrip()}\n\n")
        parts.append(f"Original task: {task}\n")
        return "".join(parts)

    @staticmethod
    def _note(note: Optional[str]) -> str:
        return f"\n--- Your Instructions ---\n{note}\n" if note else ""

    def _conversation(self, history: List[AgentTurn], budget_tokens: int) -> str:
        """Render the history, eliding middle turns when it does not fit."""
        full = "".join(render_turn(t) for t in history)
        heading = "\n--- Team Conversation ---\n"
        if estimate_tokens(full) <= budget_tokens:
            return heading + full

        tail_start = max(0, len(history) - KEEP_RECENT_TURNS)
        keep_first = None
        for i, turn in enumerate(history):
            if turn.role == ARCHITECT:
                keep_first = i
                break
        if keep_first is not None and keep_first >= tail_start:
            keep_first = None

        dropped = [
            t for i, t in enumerate(history)
            if i < tail_start and i != keep_first
        ]
        counts = Counter(get_persona(t.role).name for t in dropped)
        roles = ", ".join(f"{name} x{n}" if n > 1 else name for name, n in counts.items())
        notice = f"\n[... {len(dropped)} earlier turn(s) omitted to fit context"
        notice += f": {roles} ...]\n" if roles else " ...]\n"
        logger.info(f"Context over budget; elided {len(dropped)} of {len(history)} turns")

        parts = [heading]
        if keep_first is not None:
            parts.append(render_turn(history[keep_first]))
        parts.append(notice)
        parts.extend(render_turn(t) for t in history[tail_start:])
        return "".join(parts)

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def build(
        self,
        task: str,
        environment: str,
        history: List[AgentTurn],
        note: Optional[str] = None,
    ) -> str:
        head = self.header(task, environment)
        tail = self._note(note)
        remaining = self.token_budget - estimate_tokens(head + tail)
        return head + self._conversation(history, remaining) + tail

    def build_revision(self, task: str, environment: str, review: str, previous_code: str) -> str:
        """Developer revision prompt: the reviewer's feedback plus the code it refers to."""
        return (
            self.header(task, environment)
            + f"\n--- Reviewer Feedback ---\n{review.rstrip()}\n"
            + f"\n--- Your Previous Code ---\n{previous_code.rstrip()}\n"
            + self._note(NOTE_REVISE)
        )

    def build_repair(
        self,
        task: str,
        environment: str,
        history: List[AgentTurn],
        tracker: ErrorTracker,
        code: List[CodeArtifact],
        stdout: str = "",
        note: Optional[str] = None,
    ) -> str:
        """Prompt for a debug/fix turn after a real execution failure."""
        plan = next((t for t in history if t.role == ARCHITECT), None)
        review = next((t for t in reversed(history) if t.role == REVIEWER), None)
        current = tracker.last

        sections = []
        if plan:
            sections.append(_section("ARCHITECTURE PLAN", plan.content))
        if review:
            sections.append(_section("LAST REVIEW", review.content))
        sections.append(_section("CURRENT CODE (exactly what was executed)", format_artifacts(code)))
        sections.append(_section(f"CURRENT ERROR (attempt {current.attempt_number})", current.full_text))
        if stdout.strip():
            excerpt = stdout[-STDOUT_EXCERPT_CHARS:]
            sections.append(_section("PROGRAM OUTPUT BEFORE FAILURE (tail)", excerpt))
        sections.append(_section("ERROR HISTORY", self.error_history(tracker)))
        sections.append(_section("UNIQUE ERRORS", self.unique_summary(tracker)))
        sections.extend(self.banners(tracker))

        head = self.header(task, environment) + "".join(sections)
        tail = self._note(note)
        remaining = self.token_budget - estimate_tokens(head + tail)
        return head + self._conversation(history, remaining) + tail

    def build_rearchitect(
        self,
        task: str,
        environment: str,
        tracker: ErrorTracker,
        code: List[CodeArtifact],
    ) -> str:
        """Prompt for a fresh design. The old plan is left out on purpose."""
        sections = [
            _section(f"PREVIOUS APPROACH FAILED {len(tracker)} TIMES", self.error_history(tracker)),
            _section("UNIQUE ERRORS", self.unique_summary(tracker)),
            _section("CURRENT FAILING CODE", format_artifacts(code)),
        ]
        instruction = (
            "Patching this design is not converging. Design a NEW solution from scratch: "
            "pick a different algorithm or approach than the failing code uses, avoid every "
            "error listed above, and keep your response short (under 300 words)."
        )
        return self.header(task, environment) + "".join(sections) + self._note(instruction)

    # ------------------------------------------------------------------
    # Error-history rendering
    # ------------------------------------------------------------------

    @staticmethod
    def error_history(tracker: ErrorTracker) -> str:
        if not len(tracker):
            return "(none)"
        return "\n".join(f"{i}. Attempt {rec.attempt_number}: {rec.signature}" for i, rec in enumerate(tracker.records, 1))

    @staticmethod
    def unique_summary(tracker: ErrorTracker) -> str:
        uniques = tracker.unique_errors()
        if not uniques:
            return "(none)"
        lines = [f"{len(uniques)} distinct error(s):"]
        lines.extend(f"- [x{u.count}] {u.signature}" for u in uniques)
        return "\n".join(lines)

    def banners(self, tracker: ErrorTracker) -> List[str]:
        if not len(tracker):
            return []
        out = []
        repeats = tracker.consecutive_repeats(tracker.last.signature)
        if repeats >= 3:
            out.append(
                f"\n!!! SAME ERROR x{repeats} !!! Every previous fix for this error failed. "
                "Do NOT apply the same kind of fix again: change the approach for the failing part "
                "(different API, data layout or algorithm).\n"
            )
        elif repeats >= 2:
            out.append(
                "\n!! This exact error happened twice in a row. The last fix did not address the "
                "root cause. Re-trace it from scratch before changing code.\n"
            )
        if len(tracker) >= self.persistence_threshold:
            out.append(
                f"\n!! PERSISTENT FAILURE: {len(tracker)} failed attempts, "
                f"{len(tracker.unique_errors())} distinct errors. Change strategy instead of "
                "repeating any fix from the error history.\n"
            )
        return out
