"""System and user prompt builders for each pipeline agent.

The pipeline treats prompt text as opaque; only two contracts matter to
the rest of the code: review prompts must ask for a final
``VERDICT: PASS`` / ``VERDICT: FAIL`` line, and the implementation prompt
must direct the model to the ``write_files`` tool.
"""

from __future__ import annotations

from typing import Iterable

from src.shared.models.files import GeneratedFile

PLATFORM_CONTEXT = """## Platform Context

Users describe a feature in a brief and a pipeline of constrained agents turns it
into a specification, a plan, contract tests, source code and reviews. A human
approves each deliverable before the next stage starts.

### Technology Stack

- Language: TypeScript in strict mode, no `any` types.
- Database: PostgreSQL with row-level security on every table.
- Validation: schema validation at every API boundary.

### Security Baseline

- Authentication middleware verifies tokens on every protected route.
- User secrets live in encrypted storage and never appear in logs.
- Security headers (HSTS, CSP, X-Frame-Options) are set on every response.
- Generated code aligns with OWASP ASVS Level 2.

### Conventions

- Logging is structured JSON; errors never leak stack traces to users.
- Use Australian English and no emojis in any output."""

_RISK_GUIDANCE = {
    "low": "This feature is classified as low risk. Keep the analysis proportionate.",
    "standard": "This feature is classified as standard risk. Apply the normal depth of analysis.",
    "high": (
        "This feature is classified as high risk. Apply the strictest depth of analysis "
        "and treat any unmitigated finding as blocking."
    ),
}


def _risk_note(risk_level: str) -> str:
    return _RISK_GUIDANCE.get(risk_level, _RISK_GUIDANCE["standard"])


def _files_block(files: Iterable[GeneratedFile]) -> str:
    return "\n\n".join(f"### {f.path}\n```\n{f.content}\n```" for f in files)


# ---------------------------------------------------------------------------
# Specification
# ---------------------------------------------------------------------------


def spec_system_prompt() -> str:
    return f"""You are a Specification Writer. Turn a user's brief into a precise,
implementable feature specification in markdown.

Include user stories, a data model, acceptance criteria and a section titled
"## Risk Classification" containing exactly one of **Low**, **Standard** or **High**.

{PLATFORM_CONTEXT}"""


def spec_user_prompt(brief: str, title: str) -> str:
    return f"""## Feature Title

{title}

## Brief

{brief}

---

Write the complete specification for this feature."""


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


def plan_system_prompt() -> str:
    return f"""You are a Technical Planner. Produce an ordered implementation plan in
markdown: files to create, their responsibilities and the order to build them.

{PLATFORM_CONTEXT}"""


def plan_user_prompt(spec: str) -> str:
    return f"""## Approved Specification

{spec}

---

Write the implementation plan for this specification."""


# ---------------------------------------------------------------------------
# Contract tests
# ---------------------------------------------------------------------------


def tests_system_prompt(risk_level: str) -> str:
    return f"""You are a Contract Test Author. Write the test cases the implementation
must satisfy, as markdown with one section per behaviour.

{_risk_note(risk_level)}

{PLATFORM_CONTEXT}"""


def tests_user_prompt(spec: str, plan: str) -> str:
    return f"""## Approved Specification

{spec}

---

## Approved Plan

{plan}

---

Write the contract tests for this feature."""


# ---------------------------------------------------------------------------
# Implementation
# ---------------------------------------------------------------------------


def code_system_prompt() -> str:
    return f"""You are an Implementer. Write the complete source code for the feature.

Deliver every file by calling the `write_files` tool exactly once. Paths are
relative, start with a letter or digit and never contain "..", "." or empty
segments. Every file must have non-empty content, no path may appear twice and
no file path may also be used as a directory.

{PLATFORM_CONTEXT}"""


def code_user_prompt(spec: str, plan: str) -> str:
    return f"""## Approved Specification

{spec}

---

## Approved Plan

{plan}

---

Implement the feature and call write_files with every file."""


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------

_VERDICT_RULES = """Your response MUST end with exactly one of these lines, with nothing after it:

VERDICT: PASS
VERDICT: FAIL"""


def security_review_system_prompt(risk_level: str) -> str:
    return f"""You are a Security Reviewer. Audit the generated code for injection,
access-control, secret-handling and validation weaknesses. Report each finding
with its file, severity and remediation.

{_risk_note(risk_level)}

{_VERDICT_RULES}

{PLATFORM_CONTEXT}"""


def security_review_user_prompt(files: Iterable[GeneratedFile]) -> str:
    return f"""## Code Files

{_files_block(files)}

---

Produce the security review report."""


def code_review_system_prompt() -> str:
    return f"""You are a Code Reviewer. Check the generated code for completeness
against the specification and plan, correctness and maintainability.

{_VERDICT_RULES}

{PLATFORM_CONTEXT}"""


def code_review_user_prompt(spec: str, plan: str, files: Iterable[GeneratedFile]) -> str:
    return f"""## Specification

{spec}

---

## Implementation Plan

{plan}

---

## Code Files

{_files_block(files)}

---

Produce the code review report."""


# ---------------------------------------------------------------------------
# Alignment review (advisory)
# ---------------------------------------------------------------------------


def alignment_review_system_prompt() -> str:
    return f"""You are an Alignment Reviewer. Check whether a deliverable faithfully
addresses the user's brief and the deliverables that preceded it.

{PLATFORM_CONTEXT}

Write 3-8 plain-language sentences a non-technical reader can follow, then end
with exactly one of:

VERDICT: APPROVE
VERDICT: REVISE"""


def spec_alignment_user_prompt(brief: str, spec: str) -> str:
    return f"""## Original Brief

{brief}

---

## Specification to Review

{spec}

---

Does this specification cover every user story, entity and behaviour in the brief?"""


def plan_alignment_user_prompt(brief: str, spec: str, plan: str) -> str:
    return f"""## Original Brief

{brief}

---

## Approved Specification

{spec}

---

## Plan to Review

{plan}

---

Does this plan deliver everything in the specification?"""


def tests_alignment_user_prompt(brief: str, spec: str, plan: str, tests: str) -> str:
    return f"""## Original Brief

{brief}

---

## Approved Specification

{spec}

---

## Approved Plan

{plan}

---

## Tests to Review

{tests}

---

Do these tests exercise every acceptance criterion in the specification?"""


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------

TITLE_SYSTEM_PROMPT = "You are a concise technical writer. Respond with only the short title."


def title_user_prompt(spec: str) -> str:
    return (
        "Summarise what this software feature does in 5-8 words. "
        "Reply with ONLY the title, no quotes or punctuation at the end.\n\n"
        f"{spec[:2000]}"
    )
