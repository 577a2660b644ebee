"""
Verdict interpretation for free-form persona output.
Maps the closing phrases the personas are asked to use onto named outcomes so
the orchestrator never matches strings itself. Matching is deliberately loose;
the last verdict-like phrase in the text wins.
"""

import re
from enum import Enum


class Verdict(Enum):
    PASS = "pass"
    FAIL = "fail"
    NEEDS_REVISION = "needs_revision"
    CLEAN = "clean"


_REVIEW_RE = re.compile(r"\b(NEEDS?\s+REVISIONS?|APPROVED)\b", re.IGNORECASE)

_TEST_RE = re.compile(
    r"(ALL\s+TESTS?\s+PASS(?:ED|ING)?|TESTS?\s+FAIL(?:ING|ED|S)?|SOME\s+TESTS?\s+FAIL)",
    re.IGNORECASE,
)

_CLEAN_RE = re.compile(r"CODE\s+IS\s+CLEAN", re.IGNORECASE)
_FIXES_RE = re.compile(r"FIXES\s+NEEDED\s*:\s*\[?\s*(\d+)", re.IGNORECASE)


def _last_match(pattern: re.Pattern, text: str):
    matches = list(pattern.finditer(text or ""))
    return matches[-1] if matches else None


def interpret_review(text: str) -> Verdict:
    """Reviewer output -> NEEDS_REVISION or PASS (approved / no objection)."""
    m = _last_match(_REVIEW_RE, text)
    if m and not m.group(1).upper().startswith("APPROVED"):
        return Verdict.NEEDS_REVISION
    return Verdict.PASS


def interpret_test_report(text: str) -> Verdict:
    """Tester output -> PASS only on an explicit all-pass verdict."""
    m = _last_match(_TEST_RE, text)
    if m and m.group(1).upper().startswith("ALL"):
        return Verdict.PASS
    return Verdict.FAIL


def interpret_diagnosis(text: str) -> Verdict:
    """Debugger output -> CLEAN when it declares the code clean and asks for no fixes."""
    fixes = _last_match(_FIXES_RE, text)
    if fixes and int(fixes.group(1)) > 0:
        return Verdict.FAIL
    if _CLEAN_RE.search(text or ""):
        return Verdict.CLEAN
    if fixes:
        return Verdict.CLEAN
    return Verdict.FAIL
