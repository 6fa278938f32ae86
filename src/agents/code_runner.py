"""Validated code generation through the ``write_files`` tool.

Each attempt asks the model to call ``write_files`` once.  The loop:

* Transport failure unrelated to truncation -- fail immediately.
* Transport failure because truncated output could not be recovered --
  start again from the original prompt while attempts remain.
* Tool call cut off at the token ceiling -- keep each individually valid
  recovered file and stop; a truncated attempt is never retried.
* Complete tool call -- validate the whole array.  On violations, append
  the model's call and an ``is_error`` tool result listing every issue,
  then try again.

Every attempt writes one audit row for the ``implementer`` agent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from src.agents.agent_config import AGENT_CONFIGS, AgentName
from src.agents.file_validation import salvage_valid_files, validate_file_set
from src.agents.prompts import code_system_prompt, code_user_prompt
from src.llm.anthropic_client import AnthropicClient
from src.llm.models import ToolCompletion
from src.persistence.run_tracker import AgentRunRecorder
from src.shared.models.files import GeneratedFile
from src.shared.models.jobs import AgentRun

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
DEFAULT_MAX_TOKENS = 64000

TRUNCATED_NO_FILES_MESSAGE = (
    "Code generation output was truncated and no complete files could be "
    "recovered. Please try again with a simpler feature."
)

WRITE_FILES_TOOL: dict[str, Any] = {
    "name": "write_files",
    "description": "Write the complete set of source files for the feature.",
    "input_schema": {
        "type": "object",
        "properties": {
            "files": {
                "type": "array",
                "description": "Every file to create, with its relative path and full content.",
                "items": {
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "Relative file path"},
                        "content": {"type": "string", "description": "Complete file content"},
                    },
                    "required": ["path", "content"],
                },
            },
        },
        "required": ["files"],
    },
}

WRITE_FILES_CHOICE: dict[str, str] = {"type": "tool", "name": "write_files"}

Conversation = tuple[dict[str, Any], ...]


@dataclass(frozen=True)
class CodeRunResult:
    """Validated file set from a successful run."""

    files: tuple[GeneratedFile, ...]
    was_truncated: bool
    attempts: int
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class CodeRunFailure:
    """Run that produced no usable files."""

    error: str

    @property
    def ok(self) -> bool:
        return False


def feedback_turns(completion: ToolCompletion, errors: str) -> Conversation:
    """Build the assistant tool call plus the error tool result for a retry."""
    return (
        {
            "role": "assistant",
            "content": [{
                "type": "tool_use",
                "id": completion.tool_use_id,
                "name": completion.tool_name,
                "input": completion.input,
            }],
        },
        {
            "role": "user",
            "content": [{
                "type": "tool_result",
                "tool_use_id": completion.tool_use_id,
                "is_error": True,
                "content": (
                    f"Validation failed: {errors}. Please fix these issues and call "
                    "write_files again with corrected files."
                ),
            }],
        },
    )


class CodeRunner:
    """Produces a schema-valid file set for the implementation stage.

    Args:
        client: Transport client.
        recorder: Audit recorder.
        max_retries: Retries after the first attempt.
    """

    def __init__(
        self,
        client: AnthropicClient,
        recorder: AgentRunRecorder,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        self._client = client
        self._recorder = recorder
        self._max_retries = max_retries

    async def generate(
        self,
        spec: str,
        plan: str,
        api_key: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        model: str = AGENT_CONFIGS[AgentName.IMPLEMENTER].model,
        *,
        job_id: str,
        owner_id: str,
    ) -> CodeRunResult | CodeRunFailure:
        """Generate and validate the feature's files."""
        system_prompt = code_system_prompt()
        initial: Conversation = ({"role": "user", "content": code_user_prompt(spec, plan)},)
        conversation = initial
        total_in = 0
        total_out = 0
        max_attempts = self._max_retries + 1

        for attempt in range(max_attempts):
            logger.info(
                "Implementer attempt %d/%d for job %s", attempt + 1, max_attempts, job_id,
                extra={"event": "agent.implementer.attempt"},
            )
            result = await self._client.complete_with_tool(
                api_key,
                conversation,
                system_prompt,
                [WRITE_FILES_TOOL],
                max_tokens,
                WRITE_FILES_CHOICE,
                model,
            )

            if not result.ok:
                await self._record(job_id, owner_id, "failed", 0, 0, result.error)
                if result.truncated and attempt < self._max_retries:
                    logger.info(
                        "Implementer output unrecoverable for job %s, restarting from the original prompt",
                        job_id, extra={"event": "agent.implementer.truncation_retry"},
                    )
                    conversation = initial
                    continue
                return CodeRunFailure(error=result.error)

            total_in += result.input_tokens
            total_out += result.output_tokens
            raw_files = result.input.get("files")

            if result.truncated:
                logger.info(
                    "Implementer output truncated for job %s on attempt %d", job_id, attempt + 1,
                    extra={"event": "agent.implementer.truncated"},
                )
                files = salvage_valid_files(raw_files)
                if not files:
                    await self._record(
                        job_id, owner_id, "failed",
                        result.input_tokens, result.output_tokens,
                        "Output truncated, no valid files recovered",
                    )
                    return CodeRunFailure(error=TRUNCATED_NO_FILES_MESSAGE)
                await self._record(
                    job_id, owner_id, "success",
                    result.input_tokens, result.output_tokens, "Output truncated",
                )
                return CodeRunResult(
                    files=files,
                    was_truncated=True,
                    attempts=attempt + 1,
                    input_tokens=total_in,
                    output_tokens=total_out,
                )

            validation = validate_file_set(raw_files)
            if validation.ok:
                await self._record(
                    job_id, owner_id, "success", result.input_tokens, result.output_tokens
                )
                return CodeRunResult(
                    files=validation.files,
                    was_truncated=False,
                    attempts=attempt + 1,
                    input_tokens=total_in,
                    output_tokens=total_out,
                )

            logger.info(
                "Implementer output failed validation for job %s: %s", job_id, validation.error,
                extra={"event": "agent.implementer.validation_failed"},
            )
            await self._record(
                job_id, owner_id, "failed",
                result.input_tokens, result.output_tokens,
                f"Validation failed: {validation.error}",
            )
            if attempt < self._max_retries:
                conversation = conversation + feedback_turns(result, validation.error or "")
            else:
                return CodeRunFailure(
                    error=(
                        f"Code generation produced invalid output after {max_attempts} "
                        f"attempts: {validation.error}"
                    )
                )

        return CodeRunFailure(error="Code generation did not complete")

    async def _record(
        self,
        job_id: str,
        owner_id: str,
        status: str,
        input_tokens: int,
        output_tokens: int,
        error_message: str | None = None,
    ) -> None:
        run = AgentRun(
            job_id=job_id,
            owner_id=owner_id,
            agent_name=AgentName.IMPLEMENTER.value,
            status=status,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            error_message=error_message,
        )
        await asyncio.to_thread(self._recorder.record, run)
