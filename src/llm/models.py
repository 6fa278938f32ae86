"""Result types returned by the Anthropic client."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class StopReason(str, Enum):
    """Why the model stopped generating."""
    COMPLETE = "complete"
    MAX_TOKENS = "max_tokens"
    PROVIDER_ERROR = "provider_error"

    @classmethod
    def from_wire(cls, value: str | None) -> "StopReason":
        """Map a provider ``stop_reason`` onto the closed set.

        A missing value means the stream ended before the provider said
        why it stopped, which is treated as a provider error.
        """
        if value in ("end_turn", "stop_sequence", "tool_use"):
            return cls.COMPLETE
        if value == "max_tokens":
            return cls.MAX_TOKENS
        return cls.PROVIDER_ERROR


@dataclass(frozen=True)
class TextCompletion:
    """A finished plain-text completion."""
    text: str
    input_tokens: int
    output_tokens: int
    stop_reason: StopReason

    @property
    def ok(self) -> bool:
        return True

    @property
    def truncated(self) -> bool:
        return self.stop_reason is StopReason.MAX_TOKENS


@dataclass(frozen=True)
class ToolCompletion:
    """A finished tool-call completion.

    ``raw_input`` keeps the accumulated JSON text as streamed.  When the
    text could not be parsed and the files were recovered by the salvage
    scanner, ``salvaged`` is set and ``input`` holds ``{"files": [...]}``.
    """
    tool_use_id: str
    tool_name: str
    input: dict[str, Any]
    input_tokens: int
    output_tokens: int
    stop_reason: StopReason
    raw_input: str = ""
    salvaged: bool = False

    @property
    def ok(self) -> bool:
        return True

    @property
    def truncated(self) -> bool:
        return self.stop_reason is StopReason.MAX_TOKENS


@dataclass(frozen=True)
class CompletionFailure:
    """A failed completion carrying a user-facing message."""
    error: str
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return False
