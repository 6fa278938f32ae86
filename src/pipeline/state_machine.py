"""Job state machine using the ``transitions`` library.

Defines the 11 job statuses, the triggers that move a job between them and
the guard conditions on each.  The machine is never long-lived: callers
build one around a snapshot of a job with :func:`next_status`, fire a
trigger, and persist the resulting status with a compare-and-swap write
against the snapshot's status.
"""

from __future__ import annotations

import logging
from typing import Any

from transitions.extensions.asyncio import AsyncMachine, AsyncState

from src.pipeline.verdict import resolve_verdicts
from src.shared.models.jobs import GATE_STATUSES, Job, JobStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# States -- exactly 11, in pipeline order
# ---------------------------------------------------------------------------
STATES: list[AsyncState] = [AsyncState(status.value) for status in JobStatus]

_GATES = sorted(s.value for s in GATE_STATUSES)
_NON_TERMINAL = [s.value for s in JobStatus if s not in TERMINAL_STATUSES]

# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
TRANSITIONS: list[dict[str, Any]] = [
    {"trigger": "confirm_brief", "source": "drafting", "dest": "spec_generating"},
    {"trigger": "spec_generated", "source": "spec_generating", "dest": "spec_ready"},
    {"trigger": "approve_spec", "source": "spec_ready", "dest": "plan_generating"},
    {"trigger": "plan_generated", "source": "plan_generating", "dest": "plan_ready"},
    {"trigger": "approve_plan", "source": "plan_ready", "dest": "tests_generating"},
    {"trigger": "tests_generated", "source": "tests_generating", "dest": "tests_ready"},
    {"trigger": "approve_tests", "source": "tests_ready", "dest": "implementing"},
    {
        "trigger": "implementation_done",
        "source": "implementing",
        "dest": "review",
        "conditions": ["has_generated_files"],
    },
    {
        "trigger": "reviews_passed",
        "source": "review",
        "dest": "done",
        "conditions": ["both_reviews_passed"],
    },
    {"trigger": "revise", "source": _GATES, "dest": "spec_generating"},
    # Rollback: the first transition whose guard holds wins.
    {"trigger": "retry", "source": "failed", "dest": "tests_ready", "conditions": ["has_tests"]},
    {"trigger": "retry", "source": "failed", "dest": "plan_ready", "conditions": ["has_plan"]},
    {"trigger": "retry", "source": "failed", "dest": "spec_ready", "conditions": ["has_spec"]},
    {"trigger": "retry", "source": "failed", "dest": "drafting"},
    {"trigger": "fail", "source": _NON_TERMINAL, "dest": "failed"},
]

TRIGGERS: frozenset[str] = frozenset(t["trigger"] for t in TRANSITIONS)


class JobModel:
    """Model object driven by the machine; guards read the wrapped job.

    Args:
        job: Snapshot of the job.
        generated_files: Number of files produced by the implementation
            step, used by ``implementation_done``.
    """

    def __init__(self, job: Job, generated_files: int = 0) -> None:
        self.job = job
        self.generated_files = generated_files

    def has_generated_files(self, event: Any = None) -> bool:
        return self.generated_files > 0

    def both_reviews_passed(self, event: Any = None) -> bool:
        return resolve_verdicts(
            self.job.security_review_markdown, self.job.code_review_markdown
        ).passed

    def has_tests(self, event: Any = None) -> bool:
        return self.job.tests_markdown is not None

    def has_plan(self, event: Any = None) -> bool:
        return self.job.plan_markdown is not None

    def has_spec(self, event: Any = None) -> bool:
        return self.job.spec_markdown is not None


def create_job_machine(model: Any, initial_state: str = "drafting") -> AsyncMachine:
    """Create and return an ``AsyncMachine`` bound to *model*.

    Args:
        model: The object whose state the machine manages; must implement
            the guard methods referenced in ``TRANSITIONS``.
        initial_state: The initial state for the machine.

    Returns:
        Configured ``AsyncMachine`` instance.
    """
    machine = AsyncMachine(
        model=model,
        states=STATES,
        transitions=TRANSITIONS,
        initial=initial_state,
        auto_transitions=False,
        send_event=True,
        queued=True,
        ignore_invalid_triggers=True,
    )
    return machine


async def next_status(job: Job, trigger: str, generated_files: int = 0) -> JobStatus | None:
    """Return the status *trigger* would move *job* to, or ``None``.

    ``None`` means the trigger does not apply to the job's current status
    or a guard rejected it.  Nothing is persisted here.
    """
    if trigger not in TRIGGERS:
        raise ValueError(f"Unknown trigger: {trigger}")
    model = JobModel(job, generated_files=generated_files)
    create_job_machine(model, initial_state=job.status.value)
    await model.trigger(trigger)
    # Queued machines report True even when a guard blocked the event, and
    # no transition here is a self-loop, so an unchanged state means rejected.
    if model.state == job.status.value:
        logger.debug("Trigger %s rejected in status %s for job %s", trigger, job.status.value, job.id)
        return None
    return JobStatus(model.state)
