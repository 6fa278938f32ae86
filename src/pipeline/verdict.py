"""PASS/FAIL extraction from review reports and the final review decision."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

VERDICT_WINDOW = 5

REVIEW_TRUNCATION_SUFFIX = (
    "\n\n---\n*Review was truncated due to length limits.*\n\nVERDICT: FAIL"
)


class Verdict(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


_VERDICT_LINES = {
    "VERDICT: PASS": Verdict.PASS,
    "VERDICT: FAIL": Verdict.FAIL,
}


def parse_verdict(text: str | None) -> Verdict:
    """Return the verdict stated in the last five non-blank lines of *text*.

    Lines are compared exactly, so ``"VERDICT: pass"``, ``"Verdict: PASS"``
    or a line with trailing characters do not count.  Anything without a
    matching line in the window is a ``FAIL``.
    """
    if not text:
        return Verdict.FAIL
    lines = [line for line in text.split("\n") if line.strip()]
    for line in reversed(lines[-VERDICT_WINDOW:]):
        verdict = _VERDICT_LINES.get(line)
        if verdict is not None:
            return verdict
    return Verdict.FAIL


def append_truncation_verdict(text: str) -> str:
    """Force a failing verdict onto a review that was cut off."""
    return text + REVIEW_TRUNCATION_SUFFIX


@dataclass(frozen=True)
class VerdictOutcome:
    """Combined decision over the security and code reviews."""
    passed: bool
    failures: tuple[str, ...] = ()

    @property
    def error_message(self) -> str | None:
        if self.passed:
            return None
        return (
            f"Review failed: {' and '.join(self.failures)} did not pass. "
            "See review reports for details."
        )


def resolve_verdicts(security_text: str | None, code_text: str | None) -> VerdictOutcome:
    """Both reviews must PASS; a missing report counts as FAIL."""
    failures = []
    if parse_verdict(security_text) is not Verdict.PASS:
        failures.append("security review")
    if parse_verdict(code_text) is not Verdict.PASS:
        failures.append("code review")
    return VerdictOutcome(passed=not failures, failures=tuple(failures))
