"""Analytics primitives: metrics, baseline, drift, roles, structural signals."""

from tokenwatch.core.baseline import compute_baseline, detect_drift
from tokenwatch.core.metrics import compute_interval_metrics, compute_wallet_stats
from tokenwatch.core.structural import (
    detect_dex_programs,
    detect_structural_alerts,
    dominant_share_threshold,
)
from tokenwatch.core.wallet_roles import (
    classify_wallet_roles,
    detect_dormant_activation,
    detect_role_changes,
    dormant_threshold,
)
from tokenwatch.models.alerts import WalletRoleInfo
from tokenwatch.models.app_state import Baseline, HolderAccount
from tokenwatch.models.events import IntervalMetrics, TransferEvent

from ledger_fixtures import make_transfer_tx


def ev(src, dst, amount, kind="transfer", sig="s"):
    return TransferEvent(kind, src, dst, amount, sig, 0)


def test_zero_activity_metrics():
    print("=== Zero Activity ===")
    m = compute_interval_metrics([])
    assert m.transfers_per_interval == 0
    assert m.avg_transfer_size == 0
    assert m.total_volume == 0
    assert m.dominant_wallet_share == 0
    print("  empty tick -> all zero: OK")

    # Mint events alone are not transfers
    m = compute_interval_metrics([ev("unknown", "A", 50.0, kind="mint")])
    assert m.transfers_per_interval == 0 and m.total_volume == 0
    print("  mint-only tick -> zero transfers: OK")


def test_interval_metrics():
    print("=== Interval Metrics ===")
    events = [ev("A", "B", 100.0), ev("A", "C", 50.0), ev("D", "unknown", 50.0)]
    m = compute_interval_metrics(events)
    assert m.transfers_per_interval == 3
    assert m.total_volume == 200.0
    assert abs(m.avg_transfer_size - 200.0 / 3) < 1e-9
    assert m.unique_wallets_per_interval == 4  # unknown excluded
    assert abs(m.dominant_wallet_share - 150.0 / 200.0) < 1e-9
    print(f"  share={m.dominant_wallet_share:.2f}, wallets={m.unique_wallets_per_interval}: OK")

    # Self transfer cannot push share above 1
    m = compute_interval_metrics([ev("A", "A", 10.0)])
    assert m.dominant_wallet_share == 1.0
    print("  self transfer share capped at 1: OK")

    # Deterministic
    assert compute_interval_metrics(events) == compute_interval_metrics(list(events))
    print("  deterministic: OK")


def test_wallet_stats():
    print("=== Wallet Stats ===")
    stats = compute_wallet_stats([ev("A", "B", 10.0), ev("B", "C", 4.0), ev("unknown", "C", 1.0)])
    assert stats["A"].outbound_count == 1 and stats["A"].net_flow == -10.0
    assert stats["B"].inbound_total == 10.0 and stats["B"].outbound_total == 4.0
    assert stats["B"].counterparties == {"A", "C"}
    assert stats["C"].counterparties == {"B"}
    assert "unknown" not in stats
    print("  inbound/outbound/counterparties: OK")


def test_baseline():
    print("=== Baseline ===")
    m1 = IntervalMetrics(10, 5.0, 4, 0.5, 50.0)
    m2 = IntervalMetrics(20, 10.0, 6, 0.3, 200.0)
    m3 = IntervalMetrics(30, 15.0, 8, 0.1, 450.0)
    assert compute_baseline([m1, m2]) is None
    b = compute_baseline([m1, m2, m3])
    assert b.status == "established"
    assert b.transfers_per_interval == 20.0
    assert b.avg_transfer_size == 10.0
    assert b.unique_wallets_per_interval == 6.0
    assert abs(b.dominant_wallet_share - 0.3) < 1e-9
    print("  established after 3, mean of samples: OK")

    m4 = IntervalMetrics(40, 20.0, 10, 0.2, 800.0)
    b = compute_baseline([m1, m2, m3, m4])
    assert b.transfers_per_interval == 30.0  # last three only
    assert b.intervals_observed == 4
    print("  rolling window of last 3: OK")


def test_drift():
    print("=== Drift ===")
    base = Baseline("established", 3, 10.0, 5.0, 4.0, 0.2)
    current = IntervalMetrics(25, 5.0, 9, 0.2, 125.0)
    drifts = detect_drift(current, base, strict=False)
    kinds = {d["drift_type"] for d in drifts}
    assert kinds == {"transfer_rate_spike", "counterparties_spike"}, kinds
    print(f"  normal mode: {sorted(kinds)}: OK")

    current = IntervalMetrics(18, 8.0, 5, 0.2, 144.0)
    assert detect_drift(current, base, strict=False) == []
    strict = {d["drift_type"] for d in detect_drift(current, base, strict=True)}
    assert strict == {"transfer_rate_spike", "volume_spike"}, strict
    print(f"  strict mode: {sorted(strict)}: OK")

    # No drift against a zero baseline value or a forming baseline
    zero = Baseline("established", 3, 0.0, 0.0, 0.0, 0.0)
    assert detect_drift(IntervalMetrics(100, 9.0, 50, 0.1, 900.0), zero) == []
    assert detect_drift(current, Baseline()) == []
    print("  zero or forming baseline -> no drift: OK")


def test_role_classification():
    print("=== Wallet Roles ===")
    events = [
        # D distributes to four wallets
        ev("D", "R1", 100.0), ev("D", "R2", 100.0), ev("D", "R3", 100.0), ev("D", "S", 100.0),
        # Accumulator receives three times
        ev("X", "ACC", 200.0), ev("Y", "ACC", 200.0), ev("Z", "ACC", 200.0),
        # Relay: balanced flow with three counterparties
        ev("P", "REL", 20.0), ev("REL", "Q", 10.0), ev("REL", "T", 10.0),
    ]
    stats = compute_wallet_stats(events)
    holders = [HolderAccount(address="WHALEATA", owner="WHALE", amount=5e9)]
    roles = {r.wallet: r.role for r in classify_wallet_roles(stats, holders)}
    assert roles["D"] == "Distributor"
    assert roles["ACC"] == "Accumulator"
    assert roles["REL"] == "Relay"
    assert roles["S"] == "Sink"
    assert roles["WHALE"] == "DormantWhale"
    assert "P" not in roles  # single outbound, no rule matches
    print(f"  roles: {sorted(roles.items())}: OK")

    # Ordering: by volume then address
    ordered = classify_wallet_roles(stats, holders)
    volumes = [r.volume for r in ordered]
    assert volumes == sorted(volumes, reverse=True)
    print("  sorted by volume: OK")


def test_first_matching_role_wins():
    print("=== Role Precedence ===")
    # D qualifies as Distributor and would also be a Relay candidate otherwise
    events = [ev("D", "A", 10.0), ev("D", "B", 10.0), ev("D", "C", 10.0), ev("E", "D", 29.0)]
    roles = {r.wallet: r.role for r in classify_wallet_roles(compute_wallet_stats(events))}
    assert roles["D"] == "Distributor"
    print("  Distributor outranks Relay: OK")


def test_role_changes():
    print("=== Role Changes ===")
    current = [
        WalletRoleInfo("A", "Accumulator"),
        WalletRoleInfo("B", "Distributor"),
        WalletRoleInfo("C", "Sink"),
    ]
    previous = {"A": "Sink", "C": "Sink"}
    alerts = detect_role_changes(current, previous, timestamp=5)
    by_type = {(a.type, a.wallet) for a in alerts}
    assert by_type == {("role_change", "A"), ("new_distributor", "B")}
    change = [a for a in alerts if a.type == "role_change"][0]
    assert change.details == {"old_role": "Sink", "new_role": "Accumulator"}
    print("  role_change + new_distributor: OK")


def test_dormant_activation():
    print("=== Dormant Activation ===")
    events = [ev("OLD", "NEW", 600.0), ev("SMALL", "OLD", 10.0)]
    alerts = detect_dormant_activation(events, {"OLD"}, threshold=500.0)
    assert [a.wallet for a in alerts] == ["NEW"]
    assert alerts[0].value == 600.0
    print("  only new wallets above threshold: OK")

    assert dormant_threshold(1000.0, strict=False) == 1000.0
    assert dormant_threshold(1000.0, strict=True) == 500.0
    print("  strict halves threshold: OK")


def test_structural_alerts():
    print("=== Structural Alerts ===")
    tx = make_transfer_tx("sig1", "A", "B", 10.0, extra_programs=["JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"])
    dex = detect_dex_programs([tx, None])
    assert dex == ["Jupiter V6"]
    print("  DEX detection: OK")

    base = Baseline("established", 3, 10.0, 5.0, 4.0, 0.2)
    metrics = IntervalMetrics(20, 5.0, 4, 0.7, 100.0)
    alerts = detect_structural_alerts(metrics, base, dex, False, True, dominant_threshold=0.6)
    types = [a.type for a in alerts]
    assert types == ["first_dex_interaction", "dominant_wallet_share", "authority_activity_coincidence"]
    print(f"  {types}: OK")

    alerts = detect_structural_alerts(metrics, base, dex, True, False, dominant_threshold=0.75)
    assert alerts == []
    print("  DEX already seen, share under threshold: OK")


def test_strict_dominance_threshold():
    print("=== Strict Dominance ===")
    assert dominant_share_threshold(False) == 0.6
    assert dominant_share_threshold(True) == 0.5
    base = Baseline()
    metrics = IntervalMetrics(5, 10.0, 4, 0.55, 50.0)

    normal = detect_structural_alerts(metrics, base, [], True, False, dominant_threshold=dominant_share_threshold(False))
    assert normal == []

    strict = detect_structural_alerts(metrics, base, [], True, False, dominant_threshold=dominant_share_threshold(True))
    assert [a.type for a in strict] == ["dominant_wallet_share"]
    assert strict[0].value == 0.55
    print("  0.55 share reported in strict mode only: OK")


if __name__ == "__main__":
    test_zero_activity_metrics()
    test_interval_metrics()
    test_wallet_stats()
    test_baseline()
    test_drift()
    test_role_classification()
    test_first_matching_role_wins()
    test_role_changes()
    test_dormant_activation()
    test_structural_alerts()
    test_strict_dominance_threshold()
