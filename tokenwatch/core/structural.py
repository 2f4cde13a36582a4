"""Structural signals: DEX interaction, wallet dominance, authority coincidence."""

from typing import Any, Iterable, List, Optional, Set

from ..config.thresholds import (
    COINCIDENCE_ACTIVITY_FACTOR,
    DEX_PROGRAMS,
    DOMINANT_SHARE_THRESHOLD,
    DOMINANT_SHARE_THRESHOLD_STRICT,
)
from ..models.alerts import RawAlert
from ..models.app_state import Baseline
from ..models.events import IntervalMetrics


def _key_string(key: Any) -> Optional[str]:
    if isinstance(key, str):
        return key
    if isinstance(key, dict):
        return key.get("pubkey")
    return None


def _program_ids(tx: dict) -> Set[str]:
    """Every program id and account key referenced by a jsonParsed transaction."""
    ids: Set[str] = set()
    message = (tx.get("transaction") or {}).get("message") or {}
    for key in message.get("accountKeys") or []:
        value = _key_string(key)
        if value:
            ids.add(value)
    for ix in message.get("instructions") or []:
        if ix.get("programId"):
            ids.add(ix["programId"])
    meta = tx.get("meta") or {}
    for inner in meta.get("innerInstructions") or []:
        for ix in inner.get("instructions") or []:
            if ix.get("programId"):
                ids.add(ix["programId"])
    return ids


def detect_dex_programs(transactions: Iterable[Optional[dict]]) -> List[str]:
    """Names of known DEX programs touched by any of the transactions, sorted."""
    found: Set[str] = set()
    for tx in transactions:
        if not tx:
            continue
        for program_id in _program_ids(tx):
            name = DEX_PROGRAMS.get(program_id)
            if name:
                found.add(name)
    return sorted(found)


def dominant_share_threshold(strict: bool) -> float:
    return DOMINANT_SHARE_THRESHOLD_STRICT if strict else DOMINANT_SHARE_THRESHOLD


def detect_structural_alerts(
    metrics: IntervalMetrics,
    baseline: Baseline,
    dex_programs: List[str],
    first_dex_seen: bool,
    authority_changed: bool,
    dominant_threshold: float = DOMINANT_SHARE_THRESHOLD,
    timestamp: int = 0,
    dominant_wallet: Optional[str] = None,
) -> List[RawAlert]:
    """Detect structural alerts for one tick.

    Args:
        metrics: Current tick metrics.
        baseline: Baseline as of the previous tick.
        dex_programs: DEX names seen in this tick's transactions.
        first_dex_seen: Whether a DEX interaction was already reported
            earlier in the session.
        authority_changed: Whether mint or freeze authority changed this tick.
        dominant_threshold: Share ratio above which dominance is reported.
        timestamp: Tick timestamp.
        dominant_wallet: Address holding the largest share, for details.
    """
    alerts: List[RawAlert] = []

    if dex_programs and not first_dex_seen:
        alerts.append(RawAlert(
            type="first_dex_interaction",
            condition_key="first_dex",
            timestamp=timestamp,
            explanation=f"First DEX interaction detected: {', '.join(dex_programs)}",
            details={"dex_programs": list(dex_programs)},
        ))

    share = metrics.dominant_wallet_share
    if share > dominant_threshold:
        alerts.append(RawAlert(
            type="dominant_wallet_share",
            condition_key="dominant_share",
            value=share,
            timestamp=timestamp,
            explanation=f"Dominant wallet controls {share * 100:.1f}% of interval volume",
            details={"share": share, "dominant_wallet": dominant_wallet},
        ))

    base_transfers = baseline.transfers_per_interval
    if authority_changed and baseline.established and base_transfers:
        if metrics.transfers_per_interval > base_transfers * COINCIDENCE_ACTIVITY_FACTOR:
            ratio = metrics.transfers_per_interval / base_transfers
            alerts.append(RawAlert(
                type="authority_activity_coincidence",
                condition_key="authority_activity",
                value=ratio,
                timestamp=timestamp,
                explanation=(
                    f"Authority change coincided with {ratio * 100:.0f}% "
                    f"of baseline transfer activity"
                ),
                details={"ratio": ratio},
            ))

    return alerts
