"""Producer side of the hook event log.

Hook handlers append one JSON object per line to a single log file; the
viewer only ever reads it.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path

logger = logging.getLogger(__name__)

# Oversized hook payload fields are cut to this many characters
MAX_FIELD_CHARS = 10_000


def log_hook_event(event: str, payload: dict | None, log_file: Path) -> dict | None:
    """Append one hook event record to the log.

    Args:
        event: Hook event name (e.g. "PreToolUse", "SessionStart")
        payload: Hook stdin payload merged into the record
        log_file: JSONL file to append to (created with parents if missing)

    Returns:
        The record written, or None if the write failed. Never raises, so a
        logging problem can never break the hook that called it.
    """
    entry: dict = {"ts": time.strftime("%Y-%m-%dT%H:%M:%S%z"), "event": event}
    if payload:
        entry.update(_scrub_payload(payload))
        entry["event"] = event

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(entry, default=str) + "\n"
        # Single write call per line keeps appends from concurrent hooks whole
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(line)
    except OSError as e:
        logger.warning(f"Could not append hook event to {log_file}: {e}")
        return None
    return entry


def _scrub_payload(data: dict) -> dict:
    """Return a copy with oversized string fields truncated."""
    scrubbed = {}
    for k, v in data.items():
        if isinstance(v, str) and len(v) > MAX_FIELD_CHARS:
            scrubbed[k] = v[:MAX_FIELD_CHARS] + f"... [truncated {len(v) - MAX_FIELD_CHARS} chars]"
        else:
            scrubbed[k] = v
    return scrubbed
