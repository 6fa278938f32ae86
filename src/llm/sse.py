"""Incremental server-sent-event decoder for the Messages stream.

Network chunks can end anywhere: in the middle of an event, in the middle
of a line, or in the middle of a multi-byte UTF-8 sequence.  The decoder
keeps an incremental UTF-8 decoder plus a text buffer holding the
incomplete trailing fragment, and only emits events once their blank-line
terminator has arrived.
"""
from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SSEEvent:
    """One decoded event: its name and parsed JSON payload."""
    event: str
    data: dict[str, Any]


class SSEDecoder:
    """Turn a byte stream into :class:`SSEEvent` objects.

    Usage::

        decoder = SSEDecoder()
        async for chunk in response.aiter_bytes():
            for event in decoder.feed(chunk):
                ...
        for event in decoder.flush():
            ...
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        """Consume *chunk* and return every event it completed."""
        self._buffer += self._decoder.decode(chunk)
        # A trailing "\r" may be the first half of a CRLF split across chunks.
        self._buffer = self._buffer.replace("\r\n", "\n")

        parts = self._buffer.split("\n\n")
        self._buffer = parts.pop()
        return [event for event in map(_parse_block, parts) if event is not None]

    def flush(self) -> list[SSEEvent]:
        """Emit whatever is left once the stream has ended."""
        tail = (self._buffer + self._decoder.decode(b"", final=True)).replace("\r\n", "\n")
        self._buffer = ""
        events = []
        for block in tail.split("\n\n"):
            event = _parse_block(block)
            if event is not None:
                events.append(event)
        return events


def _parse_block(block: str) -> SSEEvent | None:
    """Parse one blank-line-delimited block, or return ``None`` to skip it."""
    event_name = ""
    data_lines: list[str] = []

    for line in block.split("\n"):
        if not line or line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event_name = value
        elif name == "data":
            data_lines.append(value)

    if not data_lines:
        return None

    raw = "\n".join(data_lines)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Skipping unparseable SSE event %r", event_name or raw[:80])
        return None
    if not isinstance(payload, dict):
        logger.debug("Skipping non-object SSE payload for event %r", event_name)
        return None

    return SSEEvent(event=event_name or str(payload.get("type", "")), data=payload)
