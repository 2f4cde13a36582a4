"""Rolling baseline formation and drift detection."""

from typing import List, Optional, Sequence, Tuple

from ..config.thresholds import (
    BASELINE_MIN_SAMPLES,
    DRIFT_MULTIPLIER,
    DRIFT_MULTIPLIER_STRICT,
)
from ..models.app_state import Baseline
from ..models.events import IntervalMetrics

# (drift type, metric attribute, label used in explanations)
DRIFT_RULES: Tuple[Tuple[str, str, str], ...] = (
    ("transfer_rate_spike", "transfers_per_interval", "Transfer count"),
    ("volume_spike", "avg_transfer_size", "Average transfer size"),
    ("counterparties_spike", "unique_wallets_per_interval", "Unique wallets"),
)


def compute_baseline(
    history: Sequence[IntervalMetrics],
    min_samples: int = BASELINE_MIN_SAMPLES,
) -> Optional[Baseline]:
    """Average the last min_samples verified metrics.

    Args:
        history: Verified interval metrics, oldest first.
        min_samples: Window size; also the minimum needed.

    Returns:
        An established Baseline, or None if there are too few samples.
    """
    if len(history) < min_samples:
        return None
    window = history[-min_samples:]
    n = float(len(window))
    return Baseline(
        status="established",
        intervals_observed=len(history),
        transfers_per_interval=sum(m.transfers_per_interval for m in window) / n,
        avg_transfer_size=sum(m.avg_transfer_size for m in window) / n,
        unique_wallets_per_interval=sum(m.unique_wallets_per_interval for m in window) / n,
        dominant_wallet_share=sum(m.dominant_wallet_share for m in window) / n,
    )


def drift_multiplier(strict: bool) -> float:
    return DRIFT_MULTIPLIER_STRICT if strict else DRIFT_MULTIPLIER


def detect_drift(
    current: IntervalMetrics,
    baseline: Baseline,
    strict: bool = False,
) -> List[dict]:
    """Compare current metrics to the baseline.

    A rule fires when current / baseline exceeds the multiplier and the
    baseline value is positive. Rules are independent.

    Returns:
        List of dicts with drift_type, ratio, current, baseline, explanation.
    """
    if not baseline.established:
        return []
    multiplier = drift_multiplier(strict)
    drifts: List[dict] = []
    for drift_type, attr, label in DRIFT_RULES:
        base_value = getattr(baseline, attr)
        if not base_value or base_value <= 0:
            continue
        value = float(getattr(current, attr))
        ratio = value / base_value
        if ratio > multiplier:
            drifts.append({
                "drift_type": drift_type,
                "ratio": ratio,
                "current": value,
                "baseline": base_value,
                "explanation": (
                    f"{label} {value:.2f} exceeds baseline {base_value:.2f} "
                    f"by {ratio * 100:.0f}%"
                ),
            })
    return drifts
