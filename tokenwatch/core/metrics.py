"""Per-tick aggregation of transfer events into wallet stats and metrics."""

from typing import Dict, Iterable, List

from ..models.events import UNKNOWN_WALLET, IntervalMetrics, TransferEvent, WalletStats


def transfer_events(events: Iterable[TransferEvent]) -> List[TransferEvent]:
    """Return only the events of type "transfer"."""
    return [e for e in events if e.type == "transfer"]


def compute_wallet_stats(events: Iterable[TransferEvent]) -> Dict[str, WalletStats]:
    """Accumulate inbound/outbound counts, totals and counterparties per wallet.

    Unknown endpoints are not tracked as wallets and do not count as
    counterparties.

    Args:
        events: Events for a single tick. Non-transfer events are ignored.

    Returns:
        Dict mapping wallet address to its WalletStats.
    """
    stats: Dict[str, WalletStats] = {}

    def _get(wallet: str) -> WalletStats:
        if wallet not in stats:
            stats[wallet] = WalletStats(wallet=wallet)
        return stats[wallet]

    for event in transfer_events(events):
        src, dst = event.source, event.destination
        if src != UNKNOWN_WALLET:
            s = _get(src)
            s.outbound_count += 1
            s.outbound_total += event.amount
            if dst != UNKNOWN_WALLET:
                s.counterparties.add(dst)
        if dst != UNKNOWN_WALLET:
            d = _get(dst)
            d.inbound_count += 1
            d.inbound_total += event.amount
            if src != UNKNOWN_WALLET:
                d.counterparties.add(src)

    return stats


def wallet_gross_volumes(events: Iterable[TransferEvent]) -> Dict[str, float]:
    """Sent plus received amount per known wallet, over transfer events."""
    volumes: Dict[str, float] = {}
    for event in transfer_events(events):
        for wallet in (event.source, event.destination):
            if wallet != UNKNOWN_WALLET:
                volumes[wallet] = volumes.get(wallet, 0.0) + event.amount
    return volumes


def compute_interval_metrics(events: Iterable[TransferEvent]) -> IntervalMetrics:
    """Compute the tick metrics. Deterministic for a given event list.

    Dominant share is the largest single-wallet gross volume divided by
    total volume, capped at 1 (a self-transfer counts twice for one wallet).
    """
    transfers = transfer_events(events)
    if not transfers:
        return IntervalMetrics()

    volumes = wallet_gross_volumes(transfers)
    total_volume = sum(e.amount for e in transfers)
    avg_size = total_volume / len(transfers)

    dominant = 0.0
    if volumes and total_volume > 0:
        dominant = min(1.0, max(volumes.values()) / total_volume)

    return IntervalMetrics(
        transfers_per_interval=len(transfers),
        avg_transfer_size=avg_size,
        unique_wallets_per_interval=len(volumes),
        dominant_wallet_share=dominant,
        total_volume=total_volume,
    )
