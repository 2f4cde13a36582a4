"""Severity and confidence scoring for tokenwatch alerts.

Severity is ordinal (info < watch < warning < critical) and assigned by a
fixed rule per alert type. Confidence is a [0, 1] score built from a
type-specific base plus a bonus for consecutive ticks sustained.
"""

from typing import Optional

from ..models.alerts import RawAlert, Severity
from ..models.app_state import Baseline

SEVERITY_INFO = "info"
SEVERITY_WATCH = "watch"
SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"

SEVERITY_RANK = {
    SEVERITY_INFO: 0,
    SEVERITY_WATCH: 1,
    SEVERITY_WARNING: 2,
    SEVERITY_CRITICAL: 3,
}

# Types whose confidence does not depend on the behavioral baseline
STRUCTURAL_TYPES = frozenset({
    "authority_change",
    "supply_change",
    "authority_activity_coincidence",
})

CONFIDENCE_UNESTABLISHED = 0.3
CONFIDENCE_STRUCTURAL = 0.9
CONFIDENCE_DEFAULT = 0.6
DURATION_BONUS_PER_TICK = 0.05
DURATION_BONUS_CAP = 0.2


def severity_rank(severity: Optional[str]) -> int:
    return SEVERITY_RANK.get(severity or SEVERITY_INFO, 0)


def calculate_severity(alert: RawAlert) -> Severity:
    """Map an alert to its severity by type.

    Dominant share severity uses the share ratio carried in alert.value.
    """
    alert_type = alert.type

    if alert_type in STRUCTURAL_TYPES:
        return SEVERITY_CRITICAL

    if alert_type in ("large_transfer", "mint_event"):
        return SEVERITY_WARNING

    if alert_type == "dominant_wallet_share":
        share_pct = (alert.value or 0.0) * 100
        if share_pct >= 80:
            return SEVERITY_WARNING
        if share_pct >= 60:
            return SEVERITY_WATCH
        return SEVERITY_INFO

    if alert_type in ("behavior_drift", "data_integrity"):
        return SEVERITY_WATCH

    # role_change, new_distributor, dormant_activation, first_dex_interaction
    return SEVERITY_INFO


def _base_confidence(alert: RawAlert, baseline: Baseline) -> float:
    if alert.type in STRUCTURAL_TYPES:
        return CONFIDENCE_STRUCTURAL

    if not baseline.established:
        return CONFIDENCE_UNESTABLISHED

    if alert.type == "behavior_drift":
        base_value = alert.details.get("baseline") or 0.0
        current = alert.details.get("current") or 0.0
        if base_value > 0:
            delta = abs(current - base_value) / base_value
            return min(0.8, 0.4 + delta * 0.4)
        return 0.5

    if alert.type == "dominant_wallet_share":
        return min(0.8, 0.5 + (alert.value or 0.0) * 0.3)

    return CONFIDENCE_DEFAULT


def calculate_confidence(
    alert: RawAlert,
    baseline: Baseline,
    duration_intervals: int = 0,
) -> float:
    """Score confidence for an alert.

    Args:
        alert: The raw alert.
        baseline: Baseline in effect when the alert was raised.
        duration_intervals: Consecutive ticks the alert has been sustained.

    Returns:
        Confidence in [0, 1], rounded to two decimals.
    """
    bonus = min(DURATION_BONUS_CAP, duration_intervals * DURATION_BONUS_PER_TICK)
    value = _base_confidence(alert, baseline) + bonus
    return round(max(0.0, min(1.0, value)), 2)
