"""
Tests for verdict interpretation of persona output.
"""

from agent.verdicts import Verdict, interpret_diagnosis, interpret_review, interpret_test_report


def test_review_needs_revision():
    assert interpret_review("**CRITICAL**: off by one\n\nNEEDS REVISION") is Verdict.NEEDS_REVISION


def test_review_approved():
    assert interpret_review("Minor nits only.\n\nAPPROVED") is Verdict.PASS


def test_review_last_phrase_wins():
    text = "An earlier draft would have needed revision... NEEDS REVISION was my first thought.\nAPPROVED"
    assert interpret_review(text) is Verdict.PASS
    assert interpret_review("APPROVED in principle, but NEEDS REVISIONS") is Verdict.NEEDS_REVISION


def test_review_without_verdict_is_no_objection():
    assert interpret_review("Looks reasonable to me.") is Verdict.PASS


def test_test_report_all_pass():
    assert interpret_test_report("test_a PASS\ntest_b PASS\nVERDICT: ALL TESTS PASS") is Verdict.PASS


def test_test_report_failing():
    assert interpret_test_report("VERDICT: TESTS FAILING\n- test_b: wrong sum") is Verdict.FAIL


def test_test_report_without_verdict_fails():
    assert interpret_test_report("I traced the tests.") is Verdict.FAIL
    assert interpret_test_report("") is Verdict.FAIL


def test_diagnosis_fixes_needed():
    assert interpret_diagnosis("**BUG 1**: ...\nFIXES NEEDED: 2") is Verdict.FAIL


def test_diagnosis_clean():
    assert interpret_diagnosis("Nothing wrong here.\nCODE IS CLEAN") is Verdict.CLEAN
    assert interpret_diagnosis("FIXES NEEDED: 0") is Verdict.CLEAN


def test_diagnosis_fix_count_beats_clean_claim():
    assert interpret_diagnosis("CODE IS CLEAN except one thing.\nFIXES NEEDED: 1") is Verdict.FAIL


def test_diagnosis_without_verdict_is_not_clean():
    assert interpret_diagnosis("Hmm, hard to say.") is Verdict.FAIL
