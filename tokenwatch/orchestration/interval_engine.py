"""Headless per-tick fetch-and-analyze pipeline.

One call to run_interval performs one tick:
1. Metadata (cached, refreshed every 10 ticks or when forced)
2. Signature discovery across top holder accounts and the mint
3. Transaction fetch in ordered batches of 10
4. Parse TransferEvents
5. Metrics, threshold alerts, roles, dormant activation, DEX detection
6. Optional raw recording

In replay mode the recorded tick replaces every ledger call; steps 5 and 6
run the same code as live mode.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..config.settings import WatchConfig
from ..config.thresholds import (
    FIRST_TICK_SIGNATURES,
    METADATA_REFRESH_AGE,
    PER_ACCOUNT_SIGNATURE_MAX,
    PER_ACCOUNT_SIGNATURE_MIN,
    SIGNATURE_BUDGET,
    TOKEN_PROGRAMS,
    TX_BATCH_SIZE,
)
from ..core.metrics import compute_interval_metrics, compute_wallet_stats
from ..core.structural import detect_dex_programs
from ..core.tx_parser import parse_transfer_events
from ..core.wallet_roles import (
    classify_wallet_roles,
    detect_dormant_activation,
    dormant_threshold,
)
from ..integrations.exceptions import (
    AuthorizationError,
    NetworkError,
    RateLimitError,
    TokenWatchError,
    TransactionParseError,
)
from ..integrations.rpc_client import LedgerClient
from ..models.alerts import RawAlert
from ..models.app_state import (
    HolderAccount,
    InternalTracking,
    MintInfo,
    PerformanceMetrics,
    TokenInfo,
)
from ..models.events import SignatureInfo, TransferEvent
from ..models.interval import IntervalResult
from ..recording.recorder import IntervalRecorder
from ..recording.replay import ReplaySource

logger = logging.getLogger(__name__)

TxPair = Tuple[str, Optional[dict]]


@dataclass
class WatchContext:
    """Everything one tick needs. Built fresh by the session for each tick."""

    mint: str
    config: WatchConfig
    internal: InternalTracking
    ledger: Optional[LedgerClient] = None
    program: Optional[str] = None  # owning program id of the mint
    replay: Optional[ReplaySource] = None
    recorder: Optional[IntervalRecorder] = None
    clock: Callable[[], float] = time.time


@dataclass
class _TickData:
    """Raw material gathered by the live or replay branch."""

    signatures: List[str] = field(default_factory=list)
    transactions: List[TxPair] = field(default_factory=list)
    events: List[TransferEvent] = field(default_factory=list)
    raw_alerts: List[RawAlert] = field(default_factory=list)
    mint_info: Optional[MintInfo] = None
    supply: Optional[int] = None
    top_accounts: Tuple[HolderAccount, ...] = ()
    degraded: bool = False
    force_refresh: bool = False
    internal: Optional[InternalTracking] = None
    timestamp: int = 0


def _ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def fetch_transactions_concurrently(
    fetch: Callable[[str], Optional[dict]],
    signatures: Sequence[str],
    batch_size: int = TX_BATCH_SIZE,
) -> List[TxPair]:
    """Fetch transactions in ordered batches with bounded fan-out.

    Each batch is fetched concurrently and fully awaited before the next
    one starts. Output order matches input order. A per-signature failure
    becomes None; an AuthorizationError is re-raised.

    Args:
        fetch: Callable returning a transaction payload for a signature.
        signatures: Signatures to fetch.
        batch_size: Maximum concurrent fetches.

    Returns:
        (signature, payload or None) pairs in input order.
    """
    results: List[TxPair] = []
    if not signatures:
        return results
    with ThreadPoolExecutor(max_workers=batch_size) as pool:
        for start in range(0, len(signatures), batch_size):
            batch = list(signatures[start:start + batch_size])
            futures = [pool.submit(fetch, sig) for sig in batch]
            for sig, future in zip(batch, futures):
                try:
                    payload = future.result()
                except AuthorizationError:
                    raise
                except TokenWatchError as exc:
                    logger.warning("Transaction %s fetch failed: %s", sig[:12], exc.message)
                    payload = None
                results.append((sig, payload))
    return results


def merge_signatures(listings: Sequence[Sequence[SignatureInfo]]) -> List[SignatureInfo]:
    """Merge signature listings, de-duplicated, newest first."""
    seen: Set[str] = set()
    merged: List[SignatureInfo] = []
    for listing in listings:
        for info in listing:
            if info.signature not in seen:
                seen.add(info.signature)
                merged.append(info)
    merged.sort(key=lambda s: s.block_time or 0, reverse=True)
    return merged


def select_new_signatures(
    signatures: Sequence[SignatureInfo],
    last_signature: Optional[str],
    processed: Set[str],
) -> List[str]:
    """Pick the signatures to process this tick.

    First tick: the newest 10. Later ticks: everything newer than the last
    seen signature; if it is no longer in the listing (reorg or window
    roll-over) every listed signature counts. Already processed signatures
    are always skipped.
    """
    if not signatures:
        return []
    if last_signature is None:
        candidates = list(signatures[:FIRST_TICK_SIGNATURES])
    else:
        candidates = []
        for info in signatures:
            if info.signature == last_signature:
                break
            candidates.append(info)
    return [s.signature for s in candidates if s.signature not in processed]


def per_account_limit(account_count: int) -> int:
    if account_count <= 0:
        return PER_ACCOUNT_SIGNATURE_MAX
    return max(PER_ACCOUNT_SIGNATURE_MIN, min(PER_ACCOUNT_SIGNATURE_MAX, SIGNATURE_BUDGET // account_count))


def remember_signatures(
    processed: Tuple[str, ...],
    new: Sequence[str],
    limit: int,
) -> Tuple[str, ...]:
    """Append to the bounded de-dup cache, evicting the oldest first."""
    known = set(processed)
    merged = list(processed) + [s for s in new if s not in known]
    if len(merged) > limit:
        merged = merged[-limit:]
    return tuple(merged)


def format_supply(supply_raw: int, decimals: int) -> str:
    """Thousands-separated UI supply, e.g. 1,000,000.5."""
    value = Decimal(supply_raw).scaleb(-decimals) if decimals else Decimal(supply_raw)
    text = f"{value:,f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _metadata_alerts(
    previous: Optional[MintInfo],
    current: MintInfo,
    timestamp: int,
) -> List[RawAlert]:
    if previous is None:
        return []
    if (
        previous.mint_authority == current.mint_authority
        and previous.freeze_authority == current.freeze_authority
    ):
        return []
    mint_auth = current.mint_authority or "revoked"
    freeze_auth = current.freeze_authority or "revoked"
    return [RawAlert(
        type="authority_change",
        condition_key=f"{mint_auth}|{freeze_auth}",
        timestamp=timestamp,
        explanation=f"Mint Auth: {mint_auth}, Freeze Auth: {freeze_auth}",
        details={
            "mint_authority": current.mint_authority,
            "freeze_authority": current.freeze_authority,
            "previous_mint_authority": previous.mint_authority,
            "previous_freeze_authority": previous.freeze_authority,
        },
    )]


def _supply_alert(previous: Optional[int], current: Optional[int], timestamp: int) -> List[RawAlert]:
    if previous is None or current is None or previous == current:
        return []
    return [RawAlert(
        type="supply_change",
        condition_key=str(current),
        value=float(abs(current - previous)),
        timestamp=timestamp,
        explanation=f"Supply changed from {previous:,} to {current:,}",
        details={"previous": previous, "current": current},
    )]


def _parse_all(
    transactions: Sequence[TxPair],
    mint: str,
    decimals: Optional[int],
) -> Tuple[List[TransferEvent], bool]:
    """Parse fetched payloads. Returns events and whether any were dropped."""
    events: List[TransferEvent] = []
    dropped = False
    for sig, payload in transactions:
        if payload is None:
            dropped = True
            continue
        try:
            events.extend(parse_transfer_events(payload, mint, signature=sig, decimals=decimals))
        except TransactionParseError as exc:
            logger.warning("Dropping transaction %s: %s", sig[:12], exc.message)
            dropped = True
    return events, dropped


def _collect_live(ctx: WatchContext, timestamp: int, perf: Dict[str, float]) -> _TickData:
    ledger = ctx.ledger
    internal = ctx.internal
    data = _TickData(timestamp=timestamp)

    # 1. Metadata
    previous_info = internal.metadata_cache
    age = internal.metadata_cache_age
    top_accounts = internal.top_accounts
    mint_info = previous_info
    if previous_info is None or age >= METADATA_REFRESH_AGE:
        fetched = ledger.get_mint_info(ctx.mint)
        if fetched is not None:
            mint_info = fetched
            age = 0
            holders = ledger.get_largest_accounts(ctx.mint)
            if holders:
                top_accounts = tuple(holders)
            data.raw_alerts.extend(_metadata_alerts(previous_info, fetched, timestamp))
            if data.raw_alerts:
                data.force_refresh = True
        elif previous_info is None:
            raise NetworkError("Mint metadata unavailable")
        else:
            logger.warning("Mint metadata refresh degraded, using cached copy")
    else:
        age += 1

    # 2. Signatures
    sig_start = time.perf_counter()
    addresses = [a.address for a in top_accounts]
    limit = per_account_limit(len(addresses))
    listings: List[List[SignatureInfo]] = []
    for address in addresses + [ctx.mint]:
        listing = ledger.get_signatures_for_address(
            address, limit if address != ctx.mint else PER_ACCOUNT_SIGNATURE_MAX
        )
        if listing is None:
            data.degraded = True
            continue
        listings.append(listing)
    merged = merge_signatures(listings)
    processed = set(internal.processed_signatures)
    data.signatures = select_new_signatures(merged, internal.last_signature, processed)
    last_signature = merged[0].signature if merged else internal.last_signature
    perf["signatures_fetch_ms"] = _ms(sig_start)

    # 3. Transactions
    tx_start = time.perf_counter()
    data.transactions = fetch_transactions_concurrently(ledger.get_transaction, data.signatures)
    perf["transactions_fetch_ms"] = _ms(tx_start)

    # 4. Parse
    parse_start = time.perf_counter()
    events, dropped = _parse_all(data.transactions, ctx.mint, mint_info.decimals)
    data.events = events
    data.degraded = data.degraded or dropped
    perf["parse_ms"] = _ms(parse_start)

    # Supply moved under our feet: refresh so integrity compares like with like
    if any(e.type in ("mint", "burn") for e in events):
        refreshed = ledger.get_mint_info(ctx.mint)
        if refreshed is not None:
            mint_info = replace(refreshed, name=refreshed.name or mint_info.name)
            age = 0

    data.mint_info = mint_info
    data.supply = mint_info.supply_raw
    data.top_accounts = top_accounts
    data.raw_alerts.extend(_supply_alert(internal.last_supply, data.supply, timestamp))

    fetched_ok = [sig for sig, payload in data.transactions if payload is not None]
    data.internal = replace(
        internal,
        processed_signatures=remember_signatures(
            internal.processed_signatures, fetched_ok, ctx.config.signature_cache_limit
        ),
        last_signature=last_signature,
        metadata_cache=mint_info,
        metadata_cache_age=age,
        top_accounts=top_accounts,
        last_supply=data.supply,
    )
    return data


def _collect_replay(ctx: WatchContext, perf: Dict[str, float]) -> Optional[_TickData]:
    internal = ctx.internal
    recorded = ctx.replay.get(internal.replay_index)
    if recorded is None:
        return None

    data = _TickData(timestamp=recorded.timestamp)
    data.signatures = list(recorded.signatures)
    data.transactions = list(recorded.transactions)
    decimals = recorded.decimals
    if decimals is None and internal.metadata_cache is not None:
        decimals = internal.metadata_cache.decimals

    parse_start = time.perf_counter()
    data.degraded = not recorded.is_fine
    if recorded.events is not None:
        data.events = list(recorded.events)
    else:
        events, dropped = _parse_all(data.transactions, ctx.mint, decimals)
        data.events = events
        data.degraded = data.degraded or dropped
    perf["parse_ms"] = _ms(parse_start)

    data.supply = recorded.supply if recorded.supply is not None else internal.last_supply
    data.top_accounts = recorded.top_accounts or internal.top_accounts
    if decimals is not None and data.supply is not None:
        data.mint_info = MintInfo(
            decimals=decimals,
            supply_raw=data.supply,
            mint_authority=None,
            freeze_authority=None,
            program="",
        )
    data.raw_alerts.extend(_supply_alert(internal.last_supply, recorded.supply, data.timestamp))

    fetched_ok = data.signatures
    if data.transactions:
        fetched_ok = [sig for sig, payload in data.transactions if payload is not None]
    data.internal = replace(
        internal,
        processed_signatures=remember_signatures(
            internal.processed_signatures, fetched_ok, ctx.config.signature_cache_limit
        ),
        last_signature=data.signatures[0] if data.signatures else internal.last_signature,
        last_supply=data.supply,
        top_accounts=data.top_accounts,
        replay_index=internal.replay_index + 1,
    )
    return data


def _token_info(data: _TickData, program: Optional[str]) -> TokenInfo:
    info = data.mint_info
    if info is None:
        return TokenInfo(
            supply_raw=str(data.supply) if data.supply is not None else None,
            top_accounts=data.top_accounts,
            program=TOKEN_PROGRAMS.get(program or ""),
        )
    return TokenInfo(
        name=info.name,
        decimals=info.decimals,
        supply_display=format_supply(info.supply_raw, info.decimals),
        supply_raw=str(info.supply_raw),
        mint_authority=info.mint_authority,
        freeze_authority=info.freeze_authority,
        top_accounts=data.top_accounts,
        program=TOKEN_PROGRAMS.get(info.program or program or ""),
    )


def _threshold_alerts(
    events: Sequence[TransferEvent],
    config: WatchConfig,
    timestamp: int,
) -> Tuple[List[RawAlert], bool]:
    """Large mint and large transfer alerts. Second value: force a refresh."""
    alerts: List[RawAlert] = []
    force_refresh = False
    for event in events:
        if event.type == "mint" and event.amount >= config.mint_threshold:
            force_refresh = True
            alerts.append(RawAlert(
                type="mint_event",
                wallet=event.destination,
                condition_key="mint",
                value=event.amount,
                timestamp=timestamp,
                explanation=f"Mint event: {event.amount:,.2f}",
                details={"amount": event.amount, "signature": event.signature},
            ))
        elif event.type == "transfer" and event.amount >= config.transfer_threshold:
            alerts.append(RawAlert(
                type="large_transfer",
                wallet=event.source,
                condition_key="large_transfer",
                value=event.amount,
                timestamp=timestamp,
                explanation=f"Large transfer: {event.amount:,.2f}",
                details={
                    "amount": event.amount,
                    "destination": event.destination,
                    "signature": event.signature,
                },
            ))
    return alerts, force_refresh


def _analyze(
    ctx: WatchContext,
    data: _TickData,
    check_count: int,
    perf: Dict[str, float],
) -> IntervalResult:
    analytics_start = time.perf_counter()
    config = ctx.config
    events = data.events
    internal = data.internal

    metrics = compute_interval_metrics(events)
    threshold_alerts, force_refresh = _threshold_alerts(events, config, data.timestamp)
    raw_alerts = list(data.raw_alerts) + threshold_alerts

    stats = compute_wallet_stats(events)
    roles = classify_wallet_roles(stats, data.top_accounts)
    raw_alerts.extend(detect_dormant_activation(
        events,
        set(internal.active_wallets),
        dormant_threshold(config.transfer_threshold, config.strict),
        timestamp=data.timestamp,
    ))
    dex_programs = detect_dex_programs(tx for _, tx in data.transactions)

    if force_refresh or data.force_refresh:
        internal = replace(internal, metadata_cache_age=METADATA_REFRESH_AGE)
    internal = replace(
        internal,
        active_wallets=internal.active_wallets | frozenset(stats),
        check_count=check_count,
    )
    perf["analytics_ms"] = _ms(analytics_start)

    if ctx.recorder is not None:
        try:
            ctx.recorder.record(
                check_count=check_count,
                timestamp=data.timestamp,
                signatures=data.signatures,
                transactions=data.transactions,
                events=events,
                supply=data.supply,
                decimals=data.mint_info.decimals if data.mint_info else None,
                top_accounts=data.top_accounts,
                is_fine=not data.degraded,
            )
        except OSError as exc:
            logger.error("Failed to record tick %d: %s", check_count, exc)

    return IntervalResult(
        success=True,
        timestamp=data.timestamp,
        check_count=check_count,
        performance=PerformanceMetrics(),
        metrics=metrics,
        events=tuple(events),
        raw_alerts=tuple(raw_alerts),
        token_info=_token_info(data, ctx.program),
        roles=tuple(roles),
        dex_programs=tuple(dex_programs),
        is_fine=not data.degraded,
        current_supply=data.supply,
        internal=internal,
    )


def _performance(perf: Dict[str, float], total_start: float) -> PerformanceMetrics:
    return PerformanceMetrics(
        signatures_fetch_ms=perf.get("signatures_fetch_ms", 0.0),
        transactions_fetch_ms=perf.get("transactions_fetch_ms", 0.0),
        parse_ms=perf.get("parse_ms", 0.0),
        analytics_ms=perf.get("analytics_ms", 0.0),
        total_ms=_ms(total_start),
    )


def run_interval(ctx: WatchContext) -> IntervalResult:
    """Run one tick.

    Operational failures come back as a failed IntervalResult rather than
    an exception. Only programmer errors raise.

    Args:
        ctx: Tick context built by the session.

    Returns:
        IntervalResult describing the tick.
    """
    if not isinstance(ctx.internal, InternalTracking):
        raise TypeError("WatchContext.internal must be an InternalTracking")

    total_start = time.perf_counter()
    perf: Dict[str, float] = {}
    check_count = ctx.internal.check_count + 1
    now = int(ctx.clock())

    def _fail(kind: str, message: str) -> IntervalResult:
        logger.warning("Tick %d failed (%s): %s", check_count, kind, message)
        return IntervalResult.failure(
            kind, message, now, check_count, _performance(perf, total_start)
        )

    if ctx.replay is not None:
        data = _collect_replay(ctx, perf)
        if data is None:
            return _fail("network", "Replay data exhausted")
    else:
        if ctx.ledger is None:
            raise TypeError("WatchContext needs a ledger or a replay source")
        if ctx.program not in TOKEN_PROGRAMS:
            return _fail("unsupported-program", f"Unsupported token program: {ctx.program}")
        try:
            data = _collect_live(ctx, now, perf)
        except AuthorizationError as exc:
            return _fail("authorization", exc.message)
        except RateLimitError as exc:
            return _fail("rate-limit", exc.message)
        except TokenWatchError as exc:
            return _fail("network", exc.message)

    result = _analyze(ctx, data, check_count, perf)
    return replace(result, performance=_performance(perf, total_start))
