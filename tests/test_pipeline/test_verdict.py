"""Tests for review verdict parsing and resolution."""
from __future__ import annotations

import pytest

from src.pipeline.verdict import (
    Verdict,
    append_truncation_verdict,
    parse_verdict,
    resolve_verdicts,
)

PASSING = "## Findings\n\nNone blocking.\n\nVERDICT: PASS\n"
FAILING = "## Findings\n\n1. SQL injection in search.\n\nVERDICT: FAIL"


class TestParseVerdict:
    def test_pass(self):
        assert parse_verdict(PASSING) is Verdict.PASS

    def test_fail(self):
        assert parse_verdict(FAILING) is Verdict.FAIL

    @pytest.mark.parametrize("text", [None, "", "No verdict here."])
    def test_missing_defaults_to_fail(self, text):
        assert parse_verdict(text) is Verdict.FAIL

    def test_only_last_five_non_blank_lines_count(self):
        text = "VERDICT: PASS\n" + "\n".join(f"line {i}" for i in range(5))
        assert parse_verdict(text) is Verdict.FAIL

    def test_blank_lines_do_not_use_up_the_window(self):
        text = "a\nb\nc\nVERDICT: PASS\n\n\n   \n\nd"
        assert parse_verdict(text) is Verdict.PASS

    def test_last_verdict_line_wins(self):
        assert parse_verdict("VERDICT: FAIL\nVERDICT: PASS") is Verdict.PASS
        assert parse_verdict("VERDICT: PASS\nVERDICT: FAIL") is Verdict.FAIL

    @pytest.mark.parametrize(
        "line", ["VERDICT: pass", "Verdict: PASS", "VERDICT: PASS.", "**VERDICT: PASS**", " VERDICT: PASS"]
    )
    def test_match_is_exact(self, line):
        assert parse_verdict(f"Review\n{line}") is Verdict.FAIL

    def test_truncation_suffix_forces_fail(self):
        assert parse_verdict(append_truncation_verdict(PASSING)) is Verdict.FAIL


class TestResolveVerdicts:
    def test_both_pass(self):
        outcome = resolve_verdicts(PASSING, PASSING)
        assert outcome.passed
        assert outcome.error_message is None

    def test_security_fails(self):
        outcome = resolve_verdicts(FAILING, PASSING)
        assert not outcome.passed
        assert outcome.error_message == (
            "Review failed: security review did not pass. See review reports for details."
        )

    def test_both_fail(self):
        outcome = resolve_verdicts(FAILING, None)
        assert outcome.failures == ("security review", "code review")
        assert outcome.error_message == (
            "Review failed: security review and code review did not pass. "
            "See review reports for details."
        )
