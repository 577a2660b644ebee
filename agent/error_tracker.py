"""
Error tracking across execution attempts.

Every failed execution is reduced to a short signature (the last error-looking
line of its diagnostic) and appended to an ordered log. The log is the run's
long-term memory of what has already failed: it survives re-architecture and
is never edited.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

SIGNATURE_MAX_CHARS = 200

_ERROR_LINE_RE = re.compile(r"Error:|Exception:|FAILED|[Ee]rror occurred")


@dataclass(frozen=True)
class ErrorRecord:
    signature: str
    full_text: str
    attempt_number: int


@dataclass(frozen=True)
class UniqueError:
    signature: str
    full_text: str
    count: int


def extract_signature(diagnostic: str) -> str:
    """Canonical short form of a diagnostic, used as an equality key."""
    lines = [ln.strip() for ln in (diagnostic or "").splitlines() if ln.strip()]
    if not lines:
        return "(empty diagnostic)"
    for line in reversed(lines):
        if _ERROR_LINE_RE.search(line):
            return line[:SIGNATURE_MAX_CHARS]
    return lines[-1][:SIGNATURE_MAX_CHARS]


class ErrorTracker:
    """Append-only log of execution failures with repeat and thrash analysis."""

    def __init__(self, thrash_window: int = 5):
        self.thrash_window = thrash_window
        self._log: List[ErrorRecord] = []
        self._epoch_start = 0

    def __len__(self) -> int:
        return len(self._log)

    @property
    def records(self) -> Tuple[ErrorRecord, ...]:
        return tuple(self._log)

    @property
    def last(self) -> ErrorRecord:
        return self._log[-1]

    def record(self, diagnostic: str, attempt_number: int) -> str:
        """Log one failure and return its signature."""
        signature = extract_signature(diagnostic)
        self._log.append(ErrorRecord(signature, diagnostic, attempt_number))
        logger.info(f"Attempt {attempt_number} failed: {signature}")
        return signature

    def consecutive_repeats(self, signature: str) -> int:
        """How many of the most recent entries in a row carry this signature."""
        count = 0
        for rec in reversed(self._log):
            if rec.signature != signature:
                break
            count += 1
        return count

    def unique_errors(self) -> List[UniqueError]:
        """Distinct signatures in first-seen order, with occurrence counts."""
        first_text: Dict[str, str] = {}
        counts: Dict[str, int] = {}
        for rec in self._log:
            if rec.signature not in counts:
                first_text[rec.signature] = rec.full_text
                counts[rec.signature] = 0
            counts[rec.signature] += 1
        return [UniqueError(sig, first_text[sig], n) for sig, n in counts.items()]

    def mark_epoch(self) -> None:
        """Start a new design epoch. Thrash detection only looks at failures after the mark."""
        self._epoch_start = len(self._log)
        logger.info(f"New design epoch after {self._epoch_start} recorded failure(s)")

    def is_thrashing(self) -> bool:
        """True when each of the last N fixes of the current design produced a different failure."""
        n = self.thrash_window
        current = self._log[self._epoch_start:]
        if len(current) < n:
            return False
        recent = [rec.signature for rec in current[-n:]]
        return len(set(recent)) == n
