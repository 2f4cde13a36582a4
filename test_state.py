"""State reducer: baseline formation, integrity gating, failures, bounds."""

from dataclasses import replace

from tokenwatch.config.settings import WatchConfig
from tokenwatch.core.metrics import compute_interval_metrics
from tokenwatch.models.alerts import RawAlert, WalletRoleInfo
from tokenwatch.models.app_state import InternalTracking, PerformanceMetrics
from tokenwatch.models.events import TransferEvent
from tokenwatch.models.interval import IntervalResult
from tokenwatch.orchestration.state_reducer import (
    create_initial_state,
    normalize_dominant_share,
    update_state_from_interval,
)

from ledger_fixtures import MINT

CONFIG = WatchConfig(mint=MINT)


def transfers(n, amount=10.0, prefix="W"):
    return tuple(
        TransferEvent("transfer", f"{prefix}{i}", f"{prefix}{i + 1000}", amount, f"sig{prefix}{i}", 0)
        for i in range(n)
    )


def success(check, events=(), is_fine=True, supply=None, roles=(), dex=(), raw_alerts=()):
    return IntervalResult(
        success=True,
        timestamp=1000 + check,
        check_count=check,
        performance=PerformanceMetrics(total_ms=5.0),
        metrics=compute_interval_metrics(events),
        events=tuple(events),
        raw_alerts=tuple(raw_alerts),
        roles=tuple(roles),
        dex_programs=tuple(dex),
        is_fine=is_fine,
        current_supply=supply,
        internal=InternalTracking(check_count=check, last_supply=supply),
    )


def run(state, results):
    for result in results:
        state = update_state_from_interval(state, result)
    return state


def test_baseline_formation():
    print("=== Baseline Formation ===")
    state = create_initial_state(CONFIG)
    assert state.baseline.status == "forming"
    for check in (1, 2):
        state = update_state_from_interval(state, success(check, transfers(4)))
        assert state.baseline.status == "forming"
        assert state.baseline.intervals_observed == check
    state = update_state_from_interval(state, success(3, transfers(4)))
    assert state.baseline.status == "established"
    assert state.baseline.transfers_per_interval == 4.0
    print("  established on third verified tick: OK")

    # Never regresses, even on an unverified tick
    state = update_state_from_interval(state, success(4, transfers(1), is_fine=False))
    assert state.baseline.status == "established"
    assert state.baseline.intervals_observed == 3
    print("  unverified tick leaves baseline untouched: OK")


def test_unverified_ticks_do_not_count():
    print("=== Unverified Ticks ===")
    state = run(create_initial_state(CONFIG), [
        success(1, transfers(2)),
        success(2, transfers(2), is_fine=False),
        success(3, transfers(2)),
    ])
    assert state.baseline.status == "forming"
    assert state.baseline.intervals_observed == 2
    assert state.current_interval.partial is False
    print("  degraded tick skipped: OK")


def test_integrity_gating():
    print("=== Integrity Gating ===")
    state = run(create_initial_state(CONFIG), [
        success(1, transfers(2), supply=1000),
        success(2, transfers(2), supply=2000),  # supply up, no mint event
    ])
    ci = state.current_interval
    assert ci.integrity.valid is False
    assert ci.partial is True
    assert any("no mint events" in e for e in ci.integrity.errors)
    assert state.baseline.intervals_observed == 1
    assert any(a.type == "data_integrity" for a in state.alerts)
    print("  supply increase without mint rejected: OK")

    mint = TransferEvent("mint", "unknown", "T", 1000.0, "m", 0)
    state = update_state_from_interval(state, success(3, transfers(2) + (mint,), supply=3000))
    assert state.current_interval.integrity.valid
    assert state.current_interval.mints == 1
    assert state.baseline.intervals_observed == 2
    print("  supply increase with mint accepted: OK")


def test_supply_decrease_without_burn():
    print("=== Supply Decrease ===")
    state = run(create_initial_state(CONFIG), [
        success(1, transfers(2), supply=2000),
        success(2, transfers(2), supply=1500),  # supply down, no burn event
    ])
    ci = state.current_interval
    assert ci.integrity.valid is False
    assert ci.partial is True
    assert any("no burn events" in e for e in ci.integrity.errors)
    assert state.baseline.intervals_observed == 1
    assert state.internal.verified_count == 1
    print("  supply decrease without burn rejected: OK")

    burn = TransferEvent("burn", "H", "unknown", 500.0, "b", 0)
    state = update_state_from_interval(state, success(3, transfers(2) + (burn,), supply=1000))
    assert state.current_interval.integrity.valid
    assert state.baseline.intervals_observed == 2
    print("  supply decrease with burn accepted: OK")


def test_failure_changes_only_markers():
    print("=== Failure Result ===")
    state = run(create_initial_state(CONFIG), [success(1, transfers(3))])
    perf = PerformanceMetrics(total_ms=42.0)
    failed = IntervalResult.failure("network", "boom", 2000, 2, perf)
    after = update_state_from_interval(state, failed)
    expected = replace(
        state,
        performance=perf,
        current_interval=replace(
            state.current_interval,
            refresh_seq=state.current_interval.refresh_seq + 1,
            error="network",
        ),
    )
    assert after == expected
    assert after.baseline is state.baseline
    assert after.internal is state.internal
    print("  only performance/refresh_seq/error changed: OK")


def test_refresh_seq_monotonic():
    print("=== Refresh Marker ===")
    state = create_initial_state(CONFIG)
    seqs = []
    for check in range(1, 4):
        state = update_state_from_interval(state, success(check, transfers(1)))
        seqs.append(state.current_interval.refresh_seq)
        state = update_state_from_interval(state, IntervalResult.failure("rate-limit", "x", 0, check))
        seqs.append(state.current_interval.refresh_seq)
    assert seqs == sorted(set(seqs)) and len(seqs) == 6
    print(f"  {seqs}: OK")


def test_share_normalization():
    print("=== Share Normalization ===")
    assert normalize_dominant_share(0.42) == 42.0
    assert normalize_dominant_share(1.5) == 100.0
    assert normalize_dominant_share(-0.2) == 0.0
    state = run(create_initial_state(CONFIG), [success(1, transfers(1))])
    assert state.current_interval.dominant_wallet_share == 100.0
    print("  ratio -> clamped percent: OK")


def test_series_bounded():
    print("=== Series Bound ===")
    state = create_initial_state(CONFIG)
    for check in range(1, 36):
        state = update_state_from_interval(state, success(check, transfers(check % 5)))
    for name in ("transfers", "wallets", "avg_size", "dominant_share"):
        assert len(getattr(state.series, name)) == 30, name
    assert state.series.transfers[-1] == 35 % 5
    assert state.series.transfers[0] == 6 % 5
    print("  each series capped at 30: OK")


def test_previous_state_untouched():
    print("=== Copy On Write ===")
    s1 = run(create_initial_state(CONFIG), [success(1, transfers(2))])
    snapshot = s1.to_dict()
    s2 = update_state_from_interval(s1, success(2, transfers(5)))
    assert s1.to_dict() == snapshot
    assert s2.config is s1.config
    assert s2.current_interval.transfers == 5 and s1.current_interval.transfers == 2
    print("  previous state unchanged, config shared: OK")


def test_drift_after_baseline():
    print("=== Drift Through Reducer ===")
    state = run(create_initial_state(CONFIG), [success(c, transfers(2)) for c in (1, 2, 3)])
    assert state.baseline.established
    state = update_state_from_interval(state, success(4, transfers(10)))
    drift = [a for a in state.alerts if a.type == "behavior_drift"]
    kinds = {a.details["drift_type"] for a in drift}
    assert "transfer_rate_spike" in kinds and "counterparties_spike" in kinds
    assert all(a.severity == "watch" for a in drift)
    print(f"  {sorted(kinds)}: OK")


def test_role_change_and_first_dex():
    print("=== Roles / First DEX ===")
    state = run(create_initial_state(CONFIG), [
        success(1, transfers(1), roles=[WalletRoleInfo("A", "Sink")], dex=["Jupiter V6"]),
        success(2, transfers(1), roles=[WalletRoleInfo("A", "Accumulator")], dex=["Jupiter V6"]),
    ])
    types = [a.type for a in state.alerts]
    assert types.count("first_dex_interaction") == 1
    assert "role_change" in types
    assert state.internal.first_dex_detected is True
    assert state.internal.previous_roles == {"A": "Accumulator"}
    print("  first DEX once, role change detected: OK")


def test_structural_skipped_on_degraded_tick():
    print("=== Degraded Tick Structural ===")
    state = run(create_initial_state(CONFIG), [
        success(1, transfers(1), dex=["Jupiter V6"], is_fine=False),
    ])
    types = [a.type for a in state.alerts]
    assert "dominant_wallet_share" not in types
    assert "first_dex_interaction" not in types
    assert state.internal.first_dex_detected is False
    print("  no dominance or DEX alert from partial data: OK")

    state = update_state_from_interval(state, success(2, transfers(1), dex=["Jupiter V6"]))
    types = [a.type for a in state.alerts]
    assert types.count("first_dex_interaction") == 1
    assert "dominant_wallet_share" in types
    assert state.internal.first_dex_detected is True
    print("  reported on the next complete tick: OK")


def test_confidence_uses_previous_baseline():
    print("=== Confidence Baseline ===")
    big = RawAlert(type="large_transfer", explanation="big", timestamp=0, wallet="W0", condition_key="large")
    state = run(create_initial_state(CONFIG), [success(c, transfers(4)) for c in (1, 2)])
    state = update_state_from_interval(state, success(3, transfers(4), raw_alerts=[big]))
    assert state.baseline.established
    alert = next(a for a in state.alerts if a.type == "large_transfer")
    # Still scored as unestablished: the detectors ran against the forming baseline
    assert alert.confidence == 0.35
    print(f"  establishing tick confidence={alert.confidence}: OK")


if __name__ == "__main__":
    test_baseline_formation()
    test_unverified_ticks_do_not_count()
    test_integrity_gating()
    test_supply_decrease_without_burn()
    test_failure_changes_only_markers()
    test_refresh_seq_monotonic()
    test_share_normalization()
    test_series_bounded()
    test_previous_state_untouched()
    test_drift_after_baseline()
    test_role_change_and_first_dex()
    test_structural_skipped_on_degraded_tick()
    test_confidence_uses_previous_baseline()
