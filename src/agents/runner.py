"""Generic agent runner for free-text pipeline stages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from src.agents.agent_config import AgentName
from src.llm.anthropic_client import AnthropicClient
from src.persistence.run_tracker import AgentRunRecorder
from src.shared.models.jobs import AgentRun

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentRunResult:
    """Successful free-text generation."""

    text: str
    input_tokens: int
    output_tokens: int
    was_truncated: bool = False

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class AgentRunFailure:
    """Failed generation with a user-facing message."""

    error: str

    @property
    def ok(self) -> bool:
        return False


async def run_agent(
    client: AnthropicClient,
    recorder: AgentRunRecorder,
    agent_name: AgentName,
    job_id: str,
    owner_id: str,
    api_key: str,
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    model: str,
) -> AgentRunResult | AgentRunFailure:
    """Run one completion and write one audit entry for it.

    A response cut off at the token ceiling is still a success; it comes
    back with ``was_truncated`` set so the calling stage can annotate the
    text or force a failing verdict.
    """
    name = agent_name.value
    logger.info("Agent %s starting for job %s", name, job_id, extra={"event": f"agent.{name}.start"})

    result = await client.complete_text(
        api_key,
        ({"role": "user", "content": user_prompt},),
        system_prompt,
        max_tokens=max_tokens,
        model=model,
    )

    if not result.ok:
        await _record(recorder, AgentRun(
            job_id=job_id,
            owner_id=owner_id,
            agent_name=name,
            status="failed",
            error_message=result.error,
        ))
        logger.error(
            "Agent %s failed for job %s: %s", name, job_id, result.error,
            extra={"event": f"agent.{name}.failed"},
        )
        return AgentRunFailure(error=result.error)

    await _record(recorder, AgentRun(
        job_id=job_id,
        owner_id=owner_id,
        agent_name=name,
        status="success",
        input_tokens=result.input_tokens,
        output_tokens=result.output_tokens,
        error_message="Output truncated" if result.truncated else None,
    ))

    if result.truncated:
        logger.warning(
            "Agent %s output truncated for job %s after %d output tokens",
            name, job_id, result.output_tokens,
            extra={"event": f"agent.{name}.truncated"},
        )
    else:
        logger.info(
            "Agent %s complete for job %s (in=%d, out=%d)",
            name, job_id, result.input_tokens, result.output_tokens,
            extra={"event": f"agent.{name}.complete"},
        )

    return AgentRunResult(
        text=result.text,
        input_tokens=result.input_tokens,
        output_tokens=result.output_tokens,
        was_truncated=result.truncated,
    )


async def _record(recorder: AgentRunRecorder, run: AgentRun) -> None:
    await asyncio.to_thread(recorder.record, run)
