"""JSONL record parsing for the hook event log.

One JSON object per line. Blank lines are ignored and malformed lines are
skipped; a bad line never aborts the batch it belongs to.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_records(text: str) -> list[dict]:
    """Parse a block of JSONL text into records, in line order.

    Args:
        text: Whole file content or an appended chunk of it.

    Returns:
        Every line that decodes to a JSON object. Empty, whitespace-only,
        undecodable and non-object lines are dropped.
    """
    records: list[dict] = []
    skipped = 0
    for line in text.split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            value = json.loads(line)
        except json.JSONDecodeError:
            skipped += 1
            continue
        if not isinstance(value, dict):
            skipped += 1
            continue
        records.append(value)

    if skipped:
        logger.debug(f"Skipped {skipped} malformed log line(s)")
    return records


def read_log_records(path: Path) -> list[dict]:
    """Read and parse the whole log file.

    A missing or unreadable file is a normal state (no hook has fired yet)
    and yields an empty list.
    """
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning(f"Could not read log file {path}: {e}")
        return []
    return parse_records(content)
