"""Pure state reducer: fold one IntervalResult into the next AppState.

No I/O and no clock reads. The previous state is never mutated; unchanged
substructures are shared with the new state.
"""

from dataclasses import replace
from typing import List, Optional, Tuple

from ..config.settings import WatchConfig
from ..config.thresholds import SERIES_LIMIT, VERIFIED_HISTORY_LIMIT
from ..core.alert_engine import process_alerts
from ..core.baseline import compute_baseline, detect_drift
from ..core.integrity import validate_interval
from ..core.metrics import wallet_gross_volumes
from ..core.structural import detect_structural_alerts, dominant_share_threshold
from ..core.wallet_roles import detect_role_changes
from ..models.alerts import RawAlert
from ..models.app_state import (
    AppState,
    Baseline,
    CurrentIntervalSnapshot,
    TimeSeries,
)
from ..models.events import IntervalMetrics, TransferEvent
from ..models.interval import IntervalResult


def create_initial_state(config: WatchConfig) -> AppState:
    """Empty state for a new session."""
    return AppState(config=config)


def normalize_dominant_share(ratio: float) -> float:
    """Convert a [0, 1] share ratio to a percentage clamped to [0, 100]."""
    return max(0.0, min(100.0, ratio * 100.0))


def _append_bounded(values: Tuple[float, ...], value: float, limit: int) -> Tuple[float, ...]:
    out = values + (value,)
    if len(out) > limit:
        out = out[-limit:]
    return out


def update_series(
    series: TimeSeries,
    snapshot: CurrentIntervalSnapshot,
    limit: int = SERIES_LIMIT,
) -> TimeSeries:
    """Append one point per metric, evicting the oldest beyond limit."""
    return TimeSeries(
        transfers=_append_bounded(series.transfers, snapshot.transfers, limit),
        wallets=_append_bounded(series.wallets, snapshot.unique_wallets, limit),
        avg_size=_append_bounded(series.avg_size, snapshot.avg_transfer_size, limit),
        dominant_share=_append_bounded(series.dominant_share, snapshot.dominant_wallet_share, limit),
    )


def build_snapshot(
    result: IntervalResult,
    refresh_seq: int,
) -> CurrentIntervalSnapshot:
    metrics = result.metrics or IntervalMetrics()
    return CurrentIntervalSnapshot(
        check_count=result.check_count,
        timestamp=result.timestamp,
        transfers=metrics.transfers_per_interval,
        mints=sum(1 for e in result.events if e.type == "mint"),
        burns=sum(1 for e in result.events if e.type == "burn"),
        total_volume=metrics.total_volume,
        unique_wallets=metrics.unique_wallets_per_interval,
        avg_transfer_size=metrics.avg_transfer_size,
        dominant_wallet_share=normalize_dominant_share(metrics.dominant_wallet_share),
        partial=not result.is_fine,
        refresh_seq=refresh_seq,
    )


def _advance_baseline(
    prev: Baseline,
    history: Tuple[IntervalMetrics, ...],
    verified_count: int,
) -> Baseline:
    computed = compute_baseline(history)
    if computed is not None:
        return replace(computed, intervals_observed=verified_count)
    return replace(prev, intervals_observed=verified_count)


def _dominant_wallet(events: Tuple[TransferEvent, ...]) -> Optional[str]:
    volumes = wallet_gross_volumes(events)
    if not volumes:
        return None
    return max(sorted(volumes), key=lambda w: volumes[w])


def _drift_alerts(
    result: IntervalResult,
    baseline: Baseline,
    strict: bool,
) -> List[RawAlert]:
    alerts = []
    for drift in detect_drift(result.metrics, baseline, strict):
        alerts.append(RawAlert(
            type="behavior_drift",
            condition_key=drift["drift_type"],
            value=drift["ratio"],
            timestamp=result.timestamp,
            explanation=drift["explanation"],
            details=drift,
        ))
    return alerts


def update_state_from_interval(prev: AppState, result: IntervalResult) -> AppState:
    """Produce the next AppState from the previous one and a tick result.

    Failure: only performance, current_interval.refresh_seq and
    current_interval.error change.

    Success: snapshot, integrity, baseline (verified ticks only), series,
    drift/role/structural detection, alert folding and tracking updates.

    Args:
        prev: Current state. Not modified.
        result: Output of the interval engine.

    Returns:
        The next state.
    """
    refresh_seq = prev.current_interval.refresh_seq + 1

    if not result.success:
        return replace(
            prev,
            performance=result.performance,
            current_interval=replace(
                prev.current_interval,
                refresh_seq=refresh_seq,
                error=result.error_kind,
            ),
        )

    config = prev.config
    metrics = result.metrics or IntervalMetrics()
    engine_internal = result.internal or prev.internal

    # Snapshot + integrity
    snapshot = build_snapshot(result, refresh_seq)
    integrity = validate_interval(
        snapshot, result.events, prev.internal.last_supply, result.current_supply
    )
    snapshot = replace(snapshot, integrity=integrity, partial=snapshot.partial or not integrity.valid)
    verified = result.is_fine and integrity.valid

    # Baseline, only from verified ticks
    baseline = prev.baseline
    history = prev.internal.verified_history
    verified_count = prev.internal.verified_count
    if verified:
        history = (history + (metrics,))[-VERIFIED_HISTORY_LIMIT:]
        verified_count += 1
        baseline = _advance_baseline(prev.baseline, history, verified_count)

    raw_alerts: List[RawAlert] = list(result.raw_alerts)

    if not integrity.valid:
        raw_alerts.append(RawAlert(
            type="data_integrity",
            condition_key="integrity",
            value=float(len(integrity.errors)),
            timestamp=result.timestamp,
            explanation=f"Integrity check failed: {'; '.join(integrity.errors)}",
            details={"errors": list(integrity.errors)},
        ))

    if verified and prev.baseline.established:
        raw_alerts.extend(_drift_alerts(result, prev.baseline, config.strict))

    raw_alerts.extend(detect_role_changes(
        result.roles, prev.internal.previous_roles, result.timestamp
    ))

    # Structural detectors need a complete event set
    first_dex_detected = prev.internal.first_dex_detected
    if result.is_fine:
        authority_changed = any(a.type == "authority_change" for a in result.raw_alerts)
        raw_alerts.extend(detect_structural_alerts(
            metrics,
            prev.baseline,
            list(result.dex_programs),
            first_dex_detected,
            authority_changed,
            dominant_threshold=dominant_share_threshold(config.strict),
            timestamp=result.timestamp,
            dominant_wallet=_dominant_wallet(result.events),
        ))
        first_dex_detected = first_dex_detected or bool(result.dex_programs)

    # Scored against the baseline the detectors saw
    batch = process_alerts(
        raw_alerts,
        prev.alerts,
        prev.internal.alert_history,
        prev.baseline,
        result.check_count,
    )

    internal = replace(
        engine_internal,
        verified_history=history,
        verified_count=verified_count,
        alert_history=batch.history,
        previous_roles={r.wallet: r.role for r in result.roles},
        first_dex_detected=first_dex_detected,
    )

    return replace(
        prev,
        token=result.token_info or prev.token,
        baseline=baseline,
        series=update_series(prev.series, snapshot),
        current_interval=snapshot,
        roles=result.roles,
        alerts=batch.alerts,
        performance=result.performance,
        internal=internal,
    )
