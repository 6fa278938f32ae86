"""Async streaming client for the Anthropic Messages API.

Every request is sent with ``stream: true`` and reassembled locally, so a
long generation never sits behind a single idle HTTP response.  Two entry
points are provided:

* :meth:`AnthropicClient.complete_text` accumulates ``text_delta`` events
  into one string.
* :meth:`AnthropicClient.complete_with_tool` accumulates
  ``input_json_delta`` fragments into the tool input, salvaging complete
  file objects when the output was cut off at the token ceiling.

Neither method raises for provider or network problems; both return a
:class:`~src.llm.models.CompletionFailure` carrying a user-facing message.
API keys are sent as headers only and never logged.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable

import httpx

from src.llm.models import CompletionFailure, StopReason, TextCompletion, ToolCompletion
from src.llm.salvage import salvage_files
from src.llm.sse import SSEDecoder, SSEEvent
from src.shared.constants import (
    ANTHROPIC_API_URL,
    ANTHROPIC_EXTENDED_OUTPUT_BETA,
    ANTHROPIC_VERSION,
    DEFAULT_MODEL,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 529})
MAX_RETRIES = 3
BASE_DELAY_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 15.0
MAX_RETRY_AFTER_SECONDS = 30.0
EXTENDED_OUTPUT_THRESHOLD = 8192

Message = dict[str, Any]
SleepFunc = Callable[[float], Awaitable[None]]


def retry_delay(attempt: int, retry_after: str | None) -> float:
    """Seconds to wait before retry number ``attempt + 1``.

    A numeric ``Retry-After`` header wins (capped at 30s); otherwise the
    delay doubles from one second per attempt, capped at 15s.
    """
    if retry_after:
        try:
            return min(float(int(retry_after.strip())), MAX_RETRY_AFTER_SECONDS)
        except ValueError:
            pass
    return min(BASE_DELAY_SECONDS * (2 ** attempt), MAX_BACKOFF_SECONDS)


def error_message_for(status_code: int, body: bytes) -> str:
    """Map a non-2xx provider response to a user-facing message."""
    generic = f"AI service error (HTTP {status_code})"
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return generic
    error = parsed.get("error") if isinstance(parsed, dict) else None
    provider_message = error.get("message") if isinstance(error, dict) else None
    if not provider_message:
        return generic

    if status_code == 401:
        return "Invalid API key. Please check your key in Settings."
    if status_code in RETRYABLE_STATUSES:
        return "The AI service is temporarily busy. Please try again in a few minutes."
    if status_code == 400:
        return f"Request error: {provider_message}"
    return f"{generic}: {provider_message}"


# ---------------------------------------------------------------------------
# Stream accumulation
# ---------------------------------------------------------------------------


@dataclass
class _StreamState:
    text_parts: list[str] = field(default_factory=list)
    json_parts: list[str] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str | None = None
    tool_use_id: str = ""
    tool_name: str = ""
    error: str | None = None
    finished: bool = False

    def apply(self, event: SSEEvent) -> None:
        data = event.data
        if event.event == "message_start":
            usage = (data.get("message") or {}).get("usage") or {}
            if usage.get("input_tokens"):
                self.input_tokens = int(usage["input_tokens"])
        elif event.event == "content_block_start":
            block = data.get("content_block") or {}
            if block.get("type") == "tool_use":
                self.tool_use_id = str(block.get("id") or "")
                self.tool_name = str(block.get("name") or "")
        elif event.event == "content_block_delta":
            delta = data.get("delta") or {}
            if delta.get("type") == "text_delta" and isinstance(delta.get("text"), str):
                self.text_parts.append(delta["text"])
            elif delta.get("type") == "input_json_delta" and isinstance(
                delta.get("partial_json"), str
            ):
                self.json_parts.append(delta["partial_json"])
        elif event.event == "message_delta":
            delta = data.get("delta") or {}
            if isinstance(delta.get("stop_reason"), str):
                self.stop_reason = delta["stop_reason"]
            usage = data.get("usage") or {}
            if usage.get("output_tokens"):
                self.output_tokens = int(usage["output_tokens"])
        elif event.event == "message_stop":
            self.finished = True
        elif event.event == "error":
            error = data.get("error") or {}
            message = error.get("message")
            self.error = message if isinstance(message, str) else "AI service error"
            self.finished = True

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    @property
    def raw_json(self) -> str:
        return "".join(self.json_parts)


class AnthropicClient:
    """Streaming Messages API client with retry on overload.

    Args:
        base_url: Provider base URL.
        timeout: Per-request timeout in seconds.
        http_client: Optional pre-built ``httpx.AsyncClient`` (tests pass
            one backed by ``httpx.MockTransport``).  The client is not
            closed by :meth:`aclose` when injected.
        max_retries: Retries after the first 429/529 response.
        sleep: Coroutine used for backoff waits.
    """

    def __init__(
        self,
        base_url: str = ANTHROPIC_API_URL,
        timeout: float = 600.0,
        http_client: httpx.AsyncClient | None = None,
        max_retries: int = MAX_RETRIES,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._max_retries = max_retries
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AnthropicClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete_text(
        self,
        api_key: str,
        messages: list[Message] | tuple[Message, ...],
        system_prompt: str,
        max_tokens: int = 8192,
        model: str = DEFAULT_MODEL,
    ) -> TextCompletion | CompletionFailure:
        """Run one plain-text completion to its end."""
        headers = self._headers(
            api_key,
            extended_output=max_tokens > EXTENDED_OUTPUT_THRESHOLD and "haiku" not in model,
        )
        body = {
            "model": model,
            "max_tokens": max_tokens,
            "stream": True,
            "system": system_prompt,
            "messages": list(messages),
        }

        outcome = await self._stream(headers, body)
        if isinstance(outcome, CompletionFailure):
            return outcome
        state = outcome

        stop_reason = StopReason.from_wire(state.stop_reason)
        if stop_reason is StopReason.PROVIDER_ERROR:
            logger.warning(
                "Completion stream ended without a usable stop reason (%s)", state.stop_reason
            )
            return CompletionFailure("AI service response ended unexpectedly. Please try again.")
        text = state.text
        if not text:
            return CompletionFailure("AI service returned empty response")

        return TextCompletion(
            text=text,
            input_tokens=state.input_tokens,
            output_tokens=state.output_tokens,
            stop_reason=stop_reason,
        )

    async def complete_with_tool(
        self,
        api_key: str,
        messages: list[Message] | tuple[Message, ...],
        system_prompt: str,
        tools: list[dict[str, Any]],
        max_tokens: int,
        tool_choice: dict[str, Any] | None = None,
        model: str = DEFAULT_MODEL,
    ) -> ToolCompletion | CompletionFailure:
        """Run one tool-call completion and parse the tool input."""
        headers = self._headers(api_key, extended_output="haiku" not in model)
        body: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "stream": True,
            "system": system_prompt,
            "messages": list(messages),
            "tools": tools,
        }
        if tool_choice:
            body["tool_choice"] = tool_choice

        outcome = await self._stream(headers, body)
        if isinstance(outcome, CompletionFailure):
            return outcome
        state = outcome

        if not state.tool_use_id:
            return CompletionFailure("Model did not use the requested tool")

        stop_reason = StopReason.from_wire(state.stop_reason)
        raw = state.raw_json
        salvaged = False
        try:
            tool_input = json.loads(raw)
            if not isinstance(tool_input, dict):
                raise ValueError("tool input is not an object")
        except ValueError:
            if stop_reason is not StopReason.MAX_TOKENS:
                return CompletionFailure("Failed to parse tool input from AI response")
            recovered = salvage_files(raw)
            if not recovered:
                return CompletionFailure(
                    "Code generation output was truncated and could not be recovered",
                    truncated=True,
                )
            tool_input = {"files": recovered}
            salvaged = True

        if stop_reason is StopReason.PROVIDER_ERROR:
            logger.warning(
                "Tool stream ended without a usable stop reason (%s)", state.stop_reason
            )
            return CompletionFailure("AI service response ended unexpectedly. Please try again.")

        return ToolCompletion(
            tool_use_id=state.tool_use_id,
            tool_name=state.tool_name,
            input=tool_input,
            input_tokens=state.input_tokens,
            output_tokens=state.output_tokens,
            stop_reason=stop_reason,
            raw_input=raw,
            salvaged=salvaged,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, api_key: str, extended_output: bool) -> dict[str, str]:
        headers = {
            "content-type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if extended_output:
            headers["anthropic-beta"] = ANTHROPIC_EXTENDED_OUTPUT_BETA
        return headers

    async def _post_with_retry(
        self, headers: dict[str, str], body: dict[str, Any]
    ) -> httpx.Response:
        """POST *body*, retrying on 429/529.

        The returned response is open in streaming mode and must be closed
        by the caller.  After the last retry the 429/529 response itself is
        returned so the caller can classify it.
        """
        url = f"{self._base_url}/v1/messages"
        for attempt in range(self._max_retries + 1):
            request = self._client.build_request("POST", url, headers=headers, json=body)
            response = await self._client.send(request, stream=True)
            if response.status_code not in RETRYABLE_STATUSES or attempt == self._max_retries:
                return response

            delay = retry_delay(attempt, response.headers.get("retry-after"))
            await response.aclose()
            logger.info(
                "AI service returned HTTP %d, retry %d/%d in %.1fs",
                response.status_code, attempt + 1, self._max_retries, delay,
            )
            await self._sleep(delay)
        raise AssertionError("unreachable")

    async def _stream(
        self, headers: dict[str, str], body: dict[str, Any]
    ) -> _StreamState | CompletionFailure:
        state = _StreamState()
        try:
            response = await self._post_with_retry(headers, body)
            try:
                if response.status_code >= 300:
                    payload = await response.aread()
                    message = error_message_for(response.status_code, payload)
                    logger.warning(
                        "AI service request failed with HTTP %d", response.status_code
                    )
                    return CompletionFailure(message)

                async for event in _iter_events(response):
                    state.apply(event)
                    if state.finished:
                        break
            finally:
                await response.aclose()
        except httpx.HTTPError as exc:
            logger.warning("AI service connection failed: %s", exc)
            return CompletionFailure(f"Failed to connect to AI service: {exc}")

        if state.error is not None:
            return CompletionFailure(state.error)
        return state


async def _iter_events(response: httpx.Response) -> AsyncIterator[SSEEvent]:
    decoder = SSEDecoder()
    async for chunk in response.aiter_bytes():
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event
