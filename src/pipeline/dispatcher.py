"""Queue consumer that runs one pipeline step per message.

Every step follows the same shape:

1. Load the job.  A missing job, a foreign owner, or a status other than
   the one the step expects (a stale or duplicate delivery) is logged and
   dropped without writing anything.
2. Read the owner's provider credential.  Absence fails the job.
3. Run the step's agent(s).
4. Persist the result with a compare-and-swap on the status read in (1).
5. Enqueue the following step, unless the job stopped at a gate or a
   terminal status.

Handlers never let an exception escape to the queue consumer: anything
unexpected fails the job with a ``"<Stage> error: ..."`` message.  The
consumer's own redelivery is reserved for infrastructure faults.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable

from src.agents.agent_config import AGENT_CONFIGS, AgentConfig, AgentName
from src.agents.code_runner import CodeRunner
from src.agents.prompts import (
    TITLE_SYSTEM_PROMPT,
    alignment_review_system_prompt,
    code_review_system_prompt,
    code_review_user_prompt,
    plan_alignment_user_prompt,
    plan_system_prompt,
    plan_user_prompt,
    security_review_system_prompt,
    security_review_user_prompt,
    spec_alignment_user_prompt,
    spec_system_prompt,
    spec_user_prompt,
    tests_alignment_user_prompt,
    tests_system_prompt,
    tests_user_prompt,
    title_user_prompt,
)
from src.agents.runner import AgentRunFailure, AgentRunResult, run_agent
from src.llm.anthropic_client import AnthropicClient
from src.persistence.artifacts import ArtifactRepository
from src.persistence.job_store import JobStore, UpdateResult
from src.persistence.run_tracker import AgentRunRecorder
from src.persistence.secret_store import SecretStore
from src.pipeline.exceptions import CredentialError, PersistenceError
from src.pipeline.messages import PipelineMessage, StepType
from src.pipeline.queue import PipelineQueue
from src.pipeline.state_machine import next_status
from src.pipeline.verdict import append_truncation_verdict, resolve_verdicts
from src.shared.constants import API_KEY_SECRET_NAME
from src.shared.logging import job_id_var
from src.shared.models.files import GeneratedFile
from src.shared.models.jobs import Job, JobStatus

logger = logging.getLogger(__name__)

CREDENTIAL_ERROR_MESSAGE = "Failed to read API key. Please check your key in Settings."

SPEC_TRUNCATION_NOTE = (
    "\n\n---\n*Note: This specification was truncated due to length limits. "
    "Some sections may be incomplete.*"
)
PLAN_TRUNCATION_NOTE = (
    "\n\n---\n*Note: This plan was truncated due to length limits. "
    "Some sections may be incomplete.*"
)
TESTS_TRUNCATION_NOTE = (
    "\n\n---\n*Note: These tests were truncated due to length limits. "
    "Some sections may be incomplete.*"
)

MAX_TITLE_LENGTH = 200

_RISK_PATTERN = re.compile(
    r"##\s*Risk Classification[\s\S]*?\*\*(Low|Standard|High)\*\*", re.IGNORECASE
)

# Status a job must be in for each step to run.
STEP_STATUS: dict[StepType, JobStatus] = {
    StepType.GENERATE_SPEC: JobStatus.SPEC_GENERATING,
    StepType.GENERATE_PLAN: JobStatus.PLAN_GENERATING,
    StepType.GENERATE_TESTS: JobStatus.TESTS_GENERATING,
    StepType.IMPLEMENT: JobStatus.IMPLEMENTING,
    StepType.SECURITY_REVIEW: JobStatus.REVIEW,
    StepType.CODE_REVIEW: JobStatus.REVIEW,
    StepType.RESOLVE_VERDICT: JobStatus.REVIEW,
}

# Prefix of the failure message when a step crashes.
STEP_LABELS: dict[StepType, str] = {
    StepType.GENERATE_SPEC: "Spec agent",
    StepType.GENERATE_PLAN: "Plan agent",
    StepType.GENERATE_TESTS: "Test agent",
    StepType.IMPLEMENT: "Pipeline",
    StepType.SECURITY_REVIEW: "Security review",
    StepType.CODE_REVIEW: "Code review",
    StepType.RESOLVE_VERDICT: "Verdict",
}

# Handler method for each step kind; checked for completeness below.
_HANDLERS: dict[StepType, str] = {
    StepType.GENERATE_SPEC: "_step_spec",
    StepType.GENERATE_PLAN: "_step_plan",
    StepType.GENERATE_TESTS: "_step_tests",
    StepType.IMPLEMENT: "_step_implement",
    StepType.SECURITY_REVIEW: "_step_security_review",
    StepType.CODE_REVIEW: "_step_code_review",
    StepType.RESOLVE_VERDICT: "_step_verdict",
}

for _table in (STEP_STATUS, STEP_LABELS, _HANDLERS):
    _missing = set(StepType) - set(_table)
    if _missing:
        raise RuntimeError(f"Pipeline step table incomplete, missing: {sorted(m.value for m in _missing)}")


def parse_risk_level(spec_markdown: str | None) -> str:
    """Return ``low``, ``standard`` or ``high`` from the risk section of a feature specification."""
    match = _RISK_PATTERN.search(spec_markdown or "")
    if match:
        return match.group(1).lower()
    return "standard"


class StepDispatcher:
    """Routes each :class:`PipelineMessage` to its step handler.

    Args:
        store: Job store.
        secrets: Owner secret store.
        artifacts: Generated-file repository.
        recorder: Agent audit recorder.
        client: Provider transport client.
        queue: Destination for follow-on steps.
        code_runner: Validated code runner; built from *client* and
            *recorder* when omitted.
        agent_configs: Per-agent model and token limits.
    """

    def __init__(
        self,
        store: JobStore,
        secrets: SecretStore,
        artifacts: ArtifactRepository,
        recorder: AgentRunRecorder,
        client: AnthropicClient,
        queue: PipelineQueue,
        code_runner: CodeRunner | None = None,
        agent_configs: dict[AgentName, AgentConfig] | None = None,
    ) -> None:
        self._store = store
        self._secrets = secrets
        self._artifacts = artifacts
        self._recorder = recorder
        self._client = client
        self._queue = queue
        self._code_runner = code_runner or CodeRunner(client, recorder)
        self._configs = agent_configs or dict(AGENT_CONFIGS)
        self._handlers: dict[StepType, Callable[[Job, PipelineMessage, str], Awaitable[None]]] = {
            step: getattr(self, name) for step, name in _HANDLERS.items()
        }

    async def process(self, message: PipelineMessage) -> None:
        """Run the step described by *message*."""
        token = job_id_var.set(message.job_id)
        try:
            await self._run(message)
        finally:
            job_id_var.reset(token)

    # ------------------------------------------------------------------
    # Step boundary
    # ------------------------------------------------------------------

    async def _run(self, message: PipelineMessage) -> None:
        step = message.type
        expected = STEP_STATUS[step]
        try:
            job = await asyncio.to_thread(self._store.get_job, message.job_id)
            if job is None:
                logger.warning("Dropping %s: job %s not found", step.value, message.job_id)
                return
            if job.owner_id != message.owner_id:
                logger.warning("Dropping %s: owner mismatch for job %s", step.value, job.id)
                return
            if job.status != expected:
                logger.info(
                    "Dropping stale %s for job %s: status is %s, expected %s",
                    step.value, job.id, job.status.value, expected.value,
                )
                return

            api_key = ""
            try:
                if step is not StepType.RESOLVE_VERDICT:
                    api_key = await self._read_api_key(job)
            except CredentialError as exc:
                logger.error(
                    "Credential read failed for job %s: %s", job.id, exc,
                    extra={"event": f"pipeline.{step.value}.credential"},
                )
                await self._fail(job.id, CREDENTIAL_ERROR_MESSAGE, expected)
                return

            await self._handlers[step](job, message, api_key)
        except Exception as exc:
            logger.exception(
                "Step %s crashed for job %s", step.value, message.job_id,
                extra={"event": f"pipeline.{step.value}.crash"},
            )
            await self._fail(message.job_id, f"{STEP_LABELS[step]} error: {exc}", expected)

    async def _read_api_key(self, job: Job) -> str:
        try:
            api_key = await asyncio.to_thread(
                self._secrets.read_secret, job.owner_id, API_KEY_SECRET_NAME
            )
        except PersistenceError as exc:
            raise CredentialError(str(exc)) from exc
        if not api_key:
            raise CredentialError("No API key found")
        return api_key

    async def _fail(self, job_id: str, error_message: str, expected: JobStatus) -> None:
        """Move the job to ``failed`` if it is still in *expected*."""
        try:
            result = await asyncio.to_thread(
                self._store.update_job,
                job_id,
                {"status": JobStatus.FAILED, "error_message": error_message},
                expected,
            )
        except Exception as exc:
            logger.error("Could not record failure for job %s: %s", job_id, exc)
            return
        if result is UpdateResult.OK:
            logger.info("Job %s failed: %s", job_id, error_message)
        else:
            logger.warning("Failure for job %s not recorded (%s)", job_id, result.value)

    async def _save(self, job: Job, fields: dict[str, Any], deliverable: str) -> bool:
        """Write *fields* guarded on the job's current status.

        Returns ``True`` when the write landed and the pipeline may continue.
        """
        try:
            result = await asyncio.to_thread(self._store.update_job, job.id, fields, job.status)
        except PersistenceError as exc:
            logger.error("Saving %s for job %s failed: %s", deliverable, job.id, exc)
            await self._fail(job.id, f"Failed to save {deliverable}: {exc}", job.status)
            return False
        if result is not UpdateResult.OK:
            logger.warning(
                "Discarding %s for job %s: status changed (%s)", deliverable, job.id, result.value
            )
            return False
        return True

    async def _enqueue(self, step: StepType, job: Job) -> None:
        await self._queue.send(PipelineMessage(type=step, job_id=job.id, owner_id=job.owner_id))

    def _config(self, agent: AgentName) -> AgentConfig:
        return self._configs[agent]

    async def _run_text_agent(
        self, agent: AgentName, job: Job, api_key: str, system_prompt: str, user_prompt: str
    ) -> AgentRunResult | AgentRunFailure:
        config = self._config(agent)
        return await run_agent(
            self._client,
            self._recorder,
            agent,
            job.id,
            job.owner_id,
            api_key,
            system_prompt,
            user_prompt,
            config.max_tokens,
            config.model,
        )

    async def _advisory_review(self, job: Job, api_key: str, user_prompt: str) -> str | None:
        """Run the non-blocking alignment check; ``None`` when it fails."""
        try:
            result = await self._run_text_agent(
                AgentName.ALIGNMENT_REVIEW, job, api_key,
                alignment_review_system_prompt(), user_prompt,
            )
        except Exception as exc:
            logger.warning("Alignment review crashed for job %s: %s", job.id, exc)
            return None
        return result.text if result.ok else None

    async def _generate_title(self, job: Job, api_key: str, spec_text: str) -> str | None:
        try:
            result = await self._run_text_agent(
                AgentName.TITLE, job, api_key, TITLE_SYSTEM_PROMPT, title_user_prompt(spec_text)
            )
        except Exception as exc:
            logger.warning("Title generation crashed for job %s: %s", job.id, exc)
            return None
        if not result.ok or not result.text.strip():
            return None
        return result.text.strip()[:MAX_TITLE_LENGTH]

    async def _load_files(self, job: Job) -> list[GeneratedFile]:
        pairs = await asyncio.to_thread(self._artifacts.load_job_files, job.owner_id, job.id)
        return [GeneratedFile(path=path, content=content) for path, content in pairs]

    # ------------------------------------------------------------------
    # Generative stages
    # ------------------------------------------------------------------

    async def _step_spec(self, job: Job, message: PipelineMessage, api_key: str) -> None:
        brief = job.brief_markdown or ""
        title = message.title or job.title
        result = await self._run_text_agent(
            AgentName.SPEC, job, api_key, spec_system_prompt(), spec_user_prompt(brief, title)
        )
        if not result.ok:
            await self._fail(job.id, result.error, job.status)
            return

        spec_text = result.text + SPEC_TRUNCATION_NOTE if result.was_truncated else result.text
        ai_title = await self._generate_title(job, api_key, spec_text)
        recommendation = await self._advisory_review(
            job, api_key, spec_alignment_user_prompt(brief, spec_text)
        )

        fields: dict[str, Any] = {
            "spec_markdown": spec_text,
            "spec_recommendation": recommendation,
            "status": await next_status(job, "spec_generated"),
            "error_message": (
                "Specification output was truncated due to length limits. "
                "Some sections may be incomplete."
                if result.was_truncated else None
            ),
        }
        if ai_title:
            fields["title"] = ai_title
        await self._save(job, fields, "specification")

    async def _step_plan(self, job: Job, message: PipelineMessage, api_key: str) -> None:
        brief = job.brief_markdown or ""
        spec = job.spec_markdown or ""
        result = await self._run_text_agent(
            AgentName.PLANNER, job, api_key, plan_system_prompt(), plan_user_prompt(spec)
        )
        if not result.ok:
            await self._fail(job.id, result.error, job.status)
            return

        plan_text = result.text + PLAN_TRUNCATION_NOTE if result.was_truncated else result.text
        recommendation = await self._advisory_review(
            job, api_key, plan_alignment_user_prompt(brief, spec, plan_text)
        )
        await self._save(job, {
            "plan_markdown": plan_text,
            "plan_recommendation": recommendation,
            "status": await next_status(job, "plan_generated"),
            "error_message": (
                "Plan output was truncated due to length limits. "
                "Some sections may be incomplete."
                if result.was_truncated else None
            ),
        }, "plan")

    async def _step_tests(self, job: Job, message: PipelineMessage, api_key: str) -> None:
        brief = job.brief_markdown or ""
        spec = job.spec_markdown or ""
        plan = job.plan_markdown or ""
        result = await self._run_text_agent(
            AgentName.CONTRACT_TEST, job, api_key,
            tests_system_prompt(parse_risk_level(spec)), tests_user_prompt(spec, plan),
        )
        if not result.ok:
            await self._fail(job.id, result.error, job.status)
            return

        tests_text = result.text + TESTS_TRUNCATION_NOTE if result.was_truncated else result.text
        recommendation = await self._advisory_review(
            job, api_key, tests_alignment_user_prompt(brief, spec, plan, tests_text)
        )
        await self._save(job, {
            "tests_markdown": tests_text,
            "tests_recommendation": recommendation,
            "status": await next_status(job, "tests_generated"),
            "error_message": (
                "Test output was truncated due to length limits. "
                "Some sections may be incomplete."
                if result.was_truncated else None
            ),
        }, "tests")

    # ------------------------------------------------------------------
    # Implementation
    # ------------------------------------------------------------------

    async def _step_implement(self, job: Job, message: PipelineMessage, api_key: str) -> None:
        config = self._config(AgentName.IMPLEMENTER)
        result = await self._code_runner.generate(
            job.spec_markdown or "",
            job.plan_markdown or "",
            api_key,
            config.max_tokens,
            config.model,
            job_id=job.id,
            owner_id=job.owner_id,
        )
        if not result.ok:
            await self._fail(job.id, result.error, job.status)
            return

        try:
            await asyncio.to_thread(
                self._artifacts.replace_job_files,
                job.owner_id,
                job.id,
                [(f.path, f.content) for f in result.files],
            )
        except (PersistenceError, OSError, ValueError) as exc:
            logger.error("Storing generated files for job %s failed: %s", job.id, exc)
            await self._fail(job.id, f"Failed to save generated files: {exc}", job.status)
            return

        target = await next_status(job, "implementation_done", generated_files=len(result.files))
        warning = None
        if result.was_truncated:
            warning = (
                f"Output was truncated: {len(result.files)} complete file(s) were recovered, "
                "but some files may be missing."
            )
        if await self._save(job, {"status": target, "error_message": warning}, "implementation"):
            await self._enqueue(StepType.SECURITY_REVIEW, job)

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    async def _step_security_review(self, job: Job, message: PipelineMessage, api_key: str) -> None:
        if job.security_review_markdown is not None:
            logger.info("Security review already stored for job %s", job.id)
            await self._enqueue(StepType.CODE_REVIEW, job)
            return

        files = await self._load_files(job)
        if not files:
            logger.error(
                "No generated files for job %s; skipping security review", job.id,
                extra={"event": "agent.security_review.no_files"},
            )
            await self._enqueue(StepType.CODE_REVIEW, job)
            return

        result = await self._run_text_agent(
            AgentName.SECURITY_REVIEW, job, api_key,
            security_review_system_prompt(parse_risk_level(job.spec_markdown)),
            security_review_user_prompt(files),
        )
        if result.ok:
            text = append_truncation_verdict(result.text) if result.was_truncated else result.text
            if not await self._save(job, {"security_review_markdown": text}, "security review"):
                return
        await self._enqueue(StepType.CODE_REVIEW, job)

    async def _step_code_review(self, job: Job, message: PipelineMessage, api_key: str) -> None:
        if job.code_review_markdown is not None:
            logger.info("Code review already stored for job %s", job.id)
            await self._enqueue(StepType.RESOLVE_VERDICT, job)
            return

        files = await self._load_files(job)
        if not files:
            logger.error(
                "No generated files for job %s; skipping code review", job.id,
                extra={"event": "agent.code_review.no_files"},
            )
            await self._enqueue(StepType.RESOLVE_VERDICT, job)
            return

        result = await self._run_text_agent(
            AgentName.CODE_REVIEW, job, api_key,
            code_review_system_prompt(),
            code_review_user_prompt(job.spec_markdown or "", job.plan_markdown or "", files),
        )
        if result.ok:
            text = append_truncation_verdict(result.text) if result.was_truncated else result.text
            if not await self._save(job, {"code_review_markdown": text}, "code review"):
                return
        await self._enqueue(StepType.RESOLVE_VERDICT, job)

    async def _step_verdict(self, job: Job, message: PipelineMessage, api_key: str) -> None:
        outcome = resolve_verdicts(job.security_review_markdown, job.code_review_markdown)
        if outcome.passed:
            target = await next_status(job, "reviews_passed")
            fields: dict[str, Any] = {"status": target}
        else:
            target = await next_status(job, "fail")
            fields = {"status": target, "error_message": outcome.error_message}

        if await self._save(job, fields, "verdict"):
            logger.info(
                "Job %s resolved to %s", job.id, target.value if target else "unknown",
                extra={"event": "pipeline.verdict"},
            )
