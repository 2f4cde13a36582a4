"""Read back tokenwatch JSONL session logs."""

import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


def iter_session_events(filepath: str) -> Iterator[Dict[str, Any]]:
    """Yield parsed records from a session log, skipping malformed lines.

    Raises:
        FileNotFoundError: If the log file does not exist.
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Session log not found: {filepath}")

    with path.open(encoding="utf-8") as fh:
        for lineno, raw in enumerate(fh, 1):
            raw = raw.strip()
            if not raw:
                continue
            try:
                record = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed line %d in %s", lineno, path.name)
                continue
            if isinstance(record, dict):
                yield record


def replay_session(filepath: str, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """Records of a session log, optionally only those of one event_type."""
    return [
        record for record in iter_session_events(filepath)
        if event_type is None or record.get("event_type") == event_type
    ]


def summarize_session(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Tick, failure and alert counts for a list of session log records.

    end_reason is None when the session never logged SESSION_END (crash or
    kill).
    """
    kinds = Counter(r.get("event_type") for r in records)
    failures = Counter(r.get("error") for r in records if r.get("event_type") == "TICK_FAILED")
    severities = Counter(r.get("severity") for r in records if r.get("event_type") == "ALERT")
    end = next((r for r in reversed(records) if r.get("event_type") == "SESSION_END"), None)
    ticks = [r for r in records if r.get("event_type") == "TICK"]
    return {
        "ticks": kinds.get("TICK", 0),
        "failed_ticks": kinds.get("TICK_FAILED", 0),
        "failures_by_kind": dict(failures),
        "partial_ticks": sum(1 for r in ticks if r.get("partial")),
        "alerts_by_severity": dict(severities),
        "last_baseline_status": ticks[-1].get("baseline_status") if ticks else None,
        "end_reason": end.get("reason") if end else None,
    }
