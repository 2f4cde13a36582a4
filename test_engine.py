"""Interval engine: signature selection, concurrent fetch, live ticks."""

import random
import threading
import time
from dataclasses import replace

from tokenwatch.config.settings import WatchConfig
from tokenwatch.config.thresholds import SPL_TOKEN_PROGRAM
from tokenwatch.integrations.exceptions import AuthorizationError, NetworkError, RateLimitError
from tokenwatch.models.app_state import HolderAccount, InternalTracking
from tokenwatch.models.events import SignatureInfo
from tokenwatch.orchestration.interval_engine import (
    WatchContext,
    fetch_transactions_concurrently,
    format_supply,
    merge_signatures,
    per_account_limit,
    remember_signatures,
    run_interval,
    select_new_signatures,
)

from ledger_fixtures import BASE_TIME, MINT, FakeLedger, default_mint_info, make_supply_tx, make_transfer_tx


def make_ctx(ledger, internal=None, config=None, program=SPL_TOKEN_PROGRAM):
    return WatchContext(
        mint=MINT,
        config=config or WatchConfig(mint=MINT),
        internal=internal or InternalTracking(),
        ledger=ledger,
        program=program,
        clock=lambda: BASE_TIME + 100,
    )


def add_transfers(ledger, start, count, amount=10.0):
    sigs = []
    for i in range(start, start + count):
        sig = f"sig{i:03d}"
        ledger.add_transaction(sig, make_transfer_tx(sig, f"S{i}", f"D{i}", amount, BASE_TIME + i), BASE_TIME + i)
        sigs.append(sig)
    return sigs


def test_fetch_preserves_order():
    print("=== Ordered Concurrent Fetch ===")
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def fetch(sig):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(random.random() * 0.01)
        with lock:
            state["active"] -= 1
        return {"sig": sig}

    sigs = [f"s{i}" for i in range(25)]
    results = fetch_transactions_concurrently(fetch, sigs)
    assert [s for s, _ in results] == sigs
    assert all(payload == {"sig": s} for s, payload in results)
    assert state["peak"] <= 10
    print(f"  25 signatures in order, peak concurrency {state['peak']}: OK")


def test_fetch_failures():
    print("=== Fetch Failures ===")

    def flaky(sig):
        if sig == "bad":
            raise NetworkError("connection reset")
        return {"sig": sig}

    results = fetch_transactions_concurrently(flaky, ["a", "bad", "c"])
    assert results == [("a", {"sig": "a"}), ("bad", None), ("c", {"sig": "c"})]
    print("  failure becomes None: OK")

    def denied(sig):
        raise AuthorizationError("invalid api key")

    try:
        fetch_transactions_concurrently(denied, ["a"])
        assert False, "expected AuthorizationError"
    except AuthorizationError:
        print("  authorization re-raised: OK")

    assert fetch_transactions_concurrently(flaky, []) == []


def test_signature_selection():
    print("=== Signature Selection ===")
    listing = [SignatureInfo(f"s{i}", block_time=100 - i) for i in range(15)]

    first = select_new_signatures(listing, None, set())
    assert first == [f"s{i}" for i in range(10)]
    print("  first tick takes newest 10: OK")

    assert select_new_signatures(listing, "s3", set()) == ["s0", "s1", "s2"]
    assert select_new_signatures(listing, "s3", {"s1"}) == ["s0", "s2"]
    print("  newer than last seen, minus processed: OK")

    rolled = select_new_signatures(listing, "gone", set())
    assert len(rolled) == 15
    print("  missing last signature takes whole listing: OK")

    assert select_new_signatures([], "s0", set()) == []


def test_merge_and_limits():
    print("=== Merge / Limits ===")
    a = [SignatureInfo("x", 5), SignatureInfo("y", 3)]
    b = [SignatureInfo("y", 3), SignatureInfo("z", 9)]
    assert [s.signature for s in merge_signatures([a, b])] == ["z", "x", "y"]

    assert per_account_limit(1) == 20
    assert per_account_limit(7) == 14
    assert per_account_limit(20) == 10
    assert per_account_limit(0) == 20

    cache = remember_signatures(("a", "b", "c"), ["c", "d", "e"], limit=4)
    assert cache == ("b", "c", "d", "e")
    print("  merge/per-account/cache bound: OK")


def test_format_supply():
    print("=== Supply Formatting ===")
    assert format_supply(1_000_000_500_000, 6) == "1,000,000.5"
    assert format_supply(42, 0) == "42"
    assert format_supply(1_000_000, 6) == "1"
    print("  OK")


def test_first_tick_takes_ten():
    print("=== First Live Tick ===")
    ledger = FakeLedger()
    add_transfers(ledger, 0, 15)
    result = run_interval(make_ctx(ledger))
    assert result.success and result.is_fine
    assert result.check_count == 1
    assert len(result.events) == 10
    assert sorted(ledger.tx_calls) == [f"sig{i:03d}" for i in range(5, 15)]
    assert result.internal.last_signature == "sig014"
    assert len(result.internal.processed_signatures) == 10
    assert result.metrics.transfers_per_interval == 10
    assert result.token_info.supply_display == "1,000,000"
    print("  newest 10 fetched and parsed: OK")

    # Second tick only sees what is new
    add_transfers(ledger, 20, 2)
    ledger.tx_calls.clear()
    second = run_interval(make_ctx(ledger, internal=result.internal))
    assert sorted(ledger.tx_calls) == ["sig020", "sig021"]
    assert second.check_count == 2
    assert ledger.mint_info_calls == 1
    print("  incremental tick: OK")


def test_large_transfer_and_holder_listing():
    print("=== Large Transfer / Holders ===")
    holder = HolderAccount(address="WHALEATA", owner="WHALE", amount=5e8)
    ledger = FakeLedger(holders=[holder])
    ledger.add_transaction(
        "big", make_transfer_tx("big", "SENDER", "RECEIVER", 2_000_000.0, BASE_TIME), BASE_TIME, address="WHALEATA"
    )
    result = run_interval(make_ctx(ledger))
    assert ledger.signature_calls == ["WHALEATA", MINT]
    large = [a for a in result.raw_alerts if a.type == "large_transfer"]
    assert len(large) == 1
    assert large[0].wallet == "SENDER" and large[0].value == 2_000_000.0
    roles = {r.wallet: r.role for r in result.roles}
    assert roles.get("WHALE") == "DormantWhale"
    print("  large_transfer keyed on source, idle holder DormantWhale: OK")


def test_mint_event_refreshes_supply():
    print("=== Mint Event ===")
    ledger = FakeLedger()
    first = run_interval(make_ctx(ledger))
    assert first.success

    ledger.add_transaction("mint1", make_supply_tx("mint1", "mintTo", "TREASURY", 2_000_000.0, BASE_TIME + 5), BASE_TIME + 5)
    ledger.mint_info = default_mint_info(supply_raw=1_000_000_000_000 + 2_000_000_000_000)
    calls_before = ledger.mint_info_calls
    second = run_interval(make_ctx(ledger, internal=first.internal))
    types = [a.type for a in second.raw_alerts]
    assert "mint_event" in types and "supply_change" in types
    mint_alert = [a for a in second.raw_alerts if a.type == "mint_event"][0]
    assert mint_alert.wallet == "TREASURY"
    assert ledger.mint_info_calls == calls_before + 1
    assert second.current_supply == 3_000_000_000_000
    assert second.internal.metadata_cache_age == 10  # forced refresh next tick
    print("  mint_event, supply_change, forced refresh: OK")


def test_metadata_cache_age():
    print("=== Metadata Cache ===")
    ledger = FakeLedger()
    internal = InternalTracking()
    for _ in range(11):
        result = run_interval(make_ctx(ledger, internal=internal))
        internal = result.internal
    assert ledger.mint_info_calls == 1
    assert internal.metadata_cache_age == 10
    run_interval(make_ctx(ledger, internal=internal))
    assert ledger.mint_info_calls == 2
    print("  refreshed on the 12th tick: OK")


def test_authority_change():
    print("=== Authority Change ===")
    ledger = FakeLedger()
    first = run_interval(make_ctx(ledger))
    ledger.mint_info = default_mint_info(mint_authority=None)
    internal = replace(first.internal, metadata_cache_age=10)
    second = run_interval(make_ctx(ledger, internal=internal))
    alerts = [a for a in second.raw_alerts if a.type == "authority_change"]
    assert len(alerts) == 1
    assert "revoked" in alerts[0].explanation
    assert second.internal.metadata_cache_age == 10
    print("  authority_change raised: OK")


def test_degraded_tick():
    print("=== Degraded Tick ===")
    ledger = FakeLedger()
    add_transfers(ledger, 0, 3)
    ledger.failing_signatures["sig001"] = NetworkError("reset")
    result = run_interval(make_ctx(ledger))
    assert result.success
    assert result.is_fine is False
    assert len(result.events) == 2
    assert "sig001" not in result.internal.processed_signatures
    print("  failed transaction marks tick not fine: OK")


def test_failure_kinds():
    print("=== Failure Kinds ===")
    result = run_interval(make_ctx(FakeLedger(), program="SomeOtherProgram111"))
    assert not result.success and result.error_kind == "unsupported-program"

    ledger = FakeLedger()
    ledger.unauthorized = True
    result = run_interval(make_ctx(ledger))
    assert result.error_kind == "authorization"

    ledger = FakeLedger()
    ledger.mint_info_error = RateLimitError("too many requests")
    result = run_interval(make_ctx(ledger))
    assert result.error_kind == "rate-limit"

    ledger = FakeLedger()
    ledger.mint_info = None
    result = run_interval(make_ctx(ledger))
    assert result.error_kind == "network"
    assert result.timestamp == BASE_TIME + 100
    assert result.check_count == 1
    print("  unsupported/authorization/rate-limit/network: OK")


if __name__ == "__main__":
    test_fetch_preserves_order()
    test_fetch_failures()
    test_signature_selection()
    test_merge_and_limits()
    test_format_supply()
    test_first_tick_takes_ten()
    test_large_transfer_and_holder_listing()
    test_mint_event_refreshes_supply()
    test_metadata_cache_age()
    test_authority_change()
    test_degraded_tick()
    test_failure_kinds()
