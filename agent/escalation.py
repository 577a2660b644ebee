"""
Escalation policy for the execution debug loop.

Tier 1: Debugger diagnosis + full audit, Developer applies every fix.
Tier 2: tier 1 plus a Reviewer pass (one inline fix round if it objects).
Tier 3: wipe the conversation, redesign from the error history, rewrite.
"""

import logging
from typing import Optional

from config import AppConfig, app_config

from .error_tracker import ErrorTracker

logger = logging.getLogger(__name__)

QUICK_FIX = 1
DEEP_REVIEW = 2
REARCHITECT = 3

TIER_LABELS = {
    QUICK_FIX: "quick fix",
    DEEP_REVIEW: "deep review",
    REARCHITECT: "re-architecture",
}


class EscalationPolicy:
    """Maps the cumulative attempt count and thrash state to a repair tier."""

    def __init__(self, tracker: ErrorTracker, settings: Optional[AppConfig] = None):
        cfg = settings or app_config
        self.tracker = tracker
        self.deep_review_after = cfg.deep_review_after
        self.rearchitect_threshold = cfg.rearchitect_threshold
        self.rearchitect_interval = max(1, cfg.rearchitect_interval)
        self.max_evolution_cycles = cfg.max_evolution_cycles

    def should_rearchitect(self, attempt_number: int) -> bool:
        if self.tracker.is_thrashing():
            return True
        if attempt_number < self.rearchitect_threshold:
            return False
        return (attempt_number - self.rearchitect_threshold) % self.rearchitect_interval == 0

    def tier(self, attempt_number: int) -> int:
        if self.should_rearchitect(attempt_number):
            return REARCHITECT
        if attempt_number > self.deep_review_after:
            return DEEP_REVIEW
        return QUICK_FIX

    def mental_cycle_allowed(self, cycles_done: int) -> bool:
        """Soft cap for the pre-execution evolution loop."""
        return cycles_done < self.max_evolution_cycles
