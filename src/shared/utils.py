"""Shared utility functions."""
from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path


def now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def to_iso(moment: datetime) -> str:
    """Render *moment* in the same UTC ISO-8601 form as :func:`now_iso`.

    Naive datetimes are assumed to already be UTC.  Stored timestamps are
    compared as strings, so every writer must go through one of these two
    helpers.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def atomic_write_bytes(path: Path | str, data: bytes) -> None:
    """Write bytes atomically by writing to a temp file then renaming.

    Args:
        path: Target file path.
        data: Payload to write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
    except BaseException:
        # Clean up temp file on any failure
        if tmp_path.exists():
            tmp_path.unlink()
        raise
