"""Alert deduplication, scoring and suppression.

Every raw alert gets a stable id from (type, wallet, condition key). A
repeat of a known id is suppressed unless its severity rose or its
numeric condition worsened; suppressed repeats still advance the sustain
counter of their history entry.
"""

import hashlib
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from ..config.thresholds import ALERT_HISTORY_LIMIT, ALERT_LIMIT
from ..models.alerts import Alert, AlertHistoryEntry, RawAlert
from ..models.app_state import Baseline
from .severity_calculator import calculate_confidence, calculate_severity, severity_rank

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertBatch:
    """Outcome of folding one tick's raw alerts into the alert list."""

    alerts: Tuple[Alert, ...]
    history: Dict[str, AlertHistoryEntry]
    surfaced: Tuple[Alert, ...]  # alerts newly emitted this tick


def generate_alert_id(alert_type: str, wallet: Optional[str], condition_key: str) -> str:
    """First 16 hex chars of sha256("type|wallet|condition_key")."""
    key = f"{alert_type}|{wallet or ''}|{condition_key or ''}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def has_condition_worsened(alert: RawAlert, last: AlertHistoryEntry) -> bool:
    """True when the numeric condition increased since the last surfaced alert."""
    if alert.value is None or last.value is None:
        return False
    return alert.value > last.value


def _next_duration(
    last: Optional[AlertHistoryEntry],
    severity: str,
    check_count: int,
) -> int:
    if last is None:
        return 1
    if severity_rank(severity) < severity_rank(last.severity):
        return 1
    if last.last_check == check_count:
        # Same id raised twice within one tick
        return last.duration
    if last.last_check == check_count - 1:
        return last.duration + 1
    return 1


def _trim_history(
    history: Dict[str, AlertHistoryEntry],
    listed: Set[str],
    limit: int,
) -> Dict[str, AlertHistoryEntry]:
    if len(history) <= limit:
        return history
    ranked = sorted(
        history.items(),
        key=lambda item: (item[0] in listed, item[1].last_check),
        reverse=True,
    )
    return dict(ranked[:limit])


def process_alerts(
    raw_alerts: Sequence[RawAlert],
    existing: Sequence[Alert],
    history: Mapping[str, AlertHistoryEntry],
    baseline: Baseline,
    check_count: int,
    limit: int = ALERT_LIMIT,
    history_limit: int = ALERT_HISTORY_LIMIT,
) -> AlertBatch:
    """Fold raw alerts into the bounded alert list.

    Args:
        raw_alerts: Detector output for this tick, in detection order.
        existing: Current surfaced alert list, oldest first.
        history: Last occurrence per alert id.
        baseline: Baseline in effect for confidence scoring.
        check_count: Tick sequence number, used for consecutive tracking.
        limit: Maximum length of the alert list.
        history_limit: Maximum history entries; ids still listed are kept,
            then the most recently seen.

    Returns:
        AlertBatch with the new list, new history, and newly surfaced alerts.
    """
    alerts: List[Alert] = list(existing)
    new_history: Dict[str, AlertHistoryEntry] = dict(history)
    surfaced: List[Alert] = []

    for raw in raw_alerts:
        alert_id = generate_alert_id(raw.type, raw.wallet, raw.condition_key)
        last = new_history.get(alert_id)
        severity = calculate_severity(raw)
        duration = _next_duration(last, severity, check_count)
        confidence = calculate_confidence(raw, baseline, duration)

        suppress = (
            last is not None
            and severity_rank(severity) <= severity_rank(last.severity)
            and not has_condition_worsened(raw, last)
        )

        if suppress:
            new_history[alert_id] = replace(last, duration=duration, last_check=check_count)
            for i, alert in enumerate(alerts):
                if alert.id == alert_id:
                    alerts[i] = replace(
                        alert, duration_intervals=duration, confidence=confidence
                    )
            logger.debug("Suppressed repeat alert %s (%s)", alert_id, raw.type)
            continue

        alert = Alert(
            id=alert_id,
            type=raw.type,
            severity=severity,
            confidence=confidence,
            explanation=raw.explanation,
            duration_intervals=duration,
            timestamp=raw.timestamp,
            wallet=raw.wallet,
            details=dict(raw.details),
        )
        # A re-emitted id replaces its older entry
        alerts = [a for a in alerts if a.id != alert_id]
        alerts.append(alert)
        surfaced.append(alert)
        new_history[alert_id] = AlertHistoryEntry(
            severity=severity,
            value=raw.value,
            duration=duration,
            last_check=check_count,
        )

    if len(alerts) > limit:
        alerts = alerts[-limit:]
    new_history = _trim_history(new_history, {a.id for a in alerts}, history_limit)

    return AlertBatch(alerts=tuple(alerts), history=new_history, surfaced=tuple(surfaced))
