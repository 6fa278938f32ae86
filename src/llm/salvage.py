"""Best-effort recovery of complete file objects from truncated tool JSON.

When the model runs out of output tokens mid-way through a ``write_files``
call, the accumulated input looks like::

    {"files": [{"path": "a.py", "content": "..."}, {"path": "b.py", "cont

The scanner walks the text after the ``"files"`` array opener with three
pieces of state (inside a string, after a backslash, brace depth) and
parses each object that closes at depth zero on its own.  Objects that do
not parse, or lack string ``path`` and ``content`` fields, are dropped.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class _ScanState:
    in_string: bool = False
    escaped: bool = False
    depth: int = 0
    object_start: int = -1


def salvage_files(raw: str) -> list[dict[str, str]]:
    """Return every complete ``{path, content}`` object found in *raw*.

    Args:
        raw: Partial JSON text of the tool input.

    Returns:
        The recovered objects in stream order.  An empty list means
        nothing could be recovered.
    """
    files_idx = raw.find('"files"')
    if files_idx == -1:
        return []
    array_start = raw.find("[", files_idx)
    if array_start == -1:
        return []

    recovered: list[dict[str, str]] = []
    state = _ScanState()

    for index in range(array_start + 1, len(raw)):
        ch = raw[index]

        if state.escaped:
            state.escaped = False
            continue
        if state.in_string:
            if ch == "\\":
                state.escaped = True
            elif ch == '"':
                state.in_string = False
            continue
        if ch == '"':
            state.in_string = True
            continue

        if ch == "{":
            if state.depth == 0:
                state.object_start = index
            state.depth += 1
        elif ch == "}":
            state.depth -= 1
            if state.depth == 0 and state.object_start != -1:
                candidate = _parse_file_object(raw[state.object_start:index + 1])
                if candidate is not None:
                    recovered.append(candidate)
                state.object_start = -1
        elif ch == "]" and state.depth == 0:
            break

    logger.info("Salvaged %d complete file object(s) from truncated output", len(recovered))
    return recovered


def _parse_file_object(text: str) -> dict[str, str] | None:
    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict):
        return None
    path = obj.get("path")
    content = obj.get("content")
    if isinstance(path, str) and isinstance(content, str):
        return {"path": path, "content": content}
    return None
