"""Streaming Anthropic Messages client with SSE reassembly and salvage."""

from src.llm.anthropic_client import AnthropicClient
from src.llm.models import (
    CompletionFailure,
    StopReason,
    TextCompletion,
    ToolCompletion,
)
from src.llm.salvage import salvage_files
from src.llm.sse import SSEDecoder, SSEEvent

__all__ = [
    "AnthropicClient",
    "CompletionFailure",
    "SSEDecoder",
    "SSEEvent",
    "StopReason",
    "TextCompletion",
    "ToolCompletion",
    "salvage_files",
]
