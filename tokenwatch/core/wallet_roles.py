"""Wallet role classification, role change and dormant activation detection.

Roles are assigned by an ordered rule table; the first matching rule wins.
A wallet that matches no rule has no role for the tick.
"""

from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..config.thresholds import (
    ACCUMULATOR_TOP_N,
    RELAY_NET_TOLERANCE,
    ROLE_MIN_COUNTERPARTIES,
    ROLE_MIN_FLOWS,
    STRICT_DORMANT_FACTOR,
)
from ..models.alerts import RawAlert, WalletRoleInfo
from ..models.app_state import HolderAccount
from ..models.events import TransferEvent, WalletStats
from .metrics import wallet_gross_volumes


class _RoleContext:
    """Tick-wide rankings the role predicates need."""

    def __init__(self, stats: Mapping[str, WalletStats], top_holders: Set[str]) -> None:
        self.top_holders = top_holders
        active = [s for s in stats.values() if s.outbound_total > 0]
        self.top_distributor: Optional[str] = None
        if active:
            self.top_distributor = max(
                active, key=lambda s: (s.outbound_total, s.wallet)
            ).wallet
        ranked_inbound = sorted(
            (s for s in stats.values() if s.inbound_total > 0),
            key=lambda s: (-s.inbound_total, s.wallet),
        )
        self.top_inbound = {s.wallet for s in ranked_inbound[:ACCUMULATOR_TOP_N]}


def _is_distributor(s: WalletStats, ctx: _RoleContext) -> bool:
    return (
        s.outbound_count >= ROLE_MIN_FLOWS
        and s.net_flow < 0
        and s.wallet == ctx.top_distributor
    )


def _is_accumulator(s: WalletStats, ctx: _RoleContext) -> bool:
    return (
        s.inbound_count >= ROLE_MIN_FLOWS
        and s.net_flow > 0
        and s.wallet in ctx.top_inbound
    )


def _is_relay(s: WalletStats, ctx: _RoleContext) -> bool:
    return (
        s.volume > 0
        and abs(s.net_flow) <= s.volume * RELAY_NET_TOLERANCE
        and len(s.counterparties) >= ROLE_MIN_COUNTERPARTIES
    )


def _is_sink(s: WalletStats, ctx: _RoleContext) -> bool:
    return s.inbound_total > 0 and s.outbound_count == 0


def _is_dormant_whale(s: WalletStats, ctx: _RoleContext) -> bool:
    return s.wallet in ctx.top_holders and s.volume == 0


ROLE_RULES: Tuple[Tuple[str, Callable[[WalletStats, _RoleContext], bool]], ...] = (
    ("Distributor", _is_distributor),
    ("Accumulator", _is_accumulator),
    ("Relay", _is_relay),
    ("Sink", _is_sink),
    ("DormantWhale", _is_dormant_whale),
)


def _holder_addresses(top_accounts: Iterable[HolderAccount]) -> Set[str]:
    addresses: Set[str] = set()
    for account in top_accounts:
        addresses.add(account.owner or account.address)
    return addresses


def classify_wallet_roles(
    stats: Mapping[str, WalletStats],
    top_accounts: Sequence[HolderAccount] = (),
) -> List[WalletRoleInfo]:
    """Assign at most one role per wallet.

    Classification runs over the union of active wallets and top holders,
    so an idle top holder can be tagged DormantWhale.

    Args:
        stats: Per-wallet stats for the tick.
        top_accounts: Largest token accounts; owners are used when known.

    Returns:
        Role assignments sorted by volume descending, then address.
    """
    top_holders = _holder_addresses(top_accounts)
    universe: Dict[str, WalletStats] = dict(stats)
    for holder in top_holders:
        if holder not in universe:
            universe[holder] = WalletStats(wallet=holder)

    ctx = _RoleContext(universe, top_holders)
    roles: List[WalletRoleInfo] = []
    for wallet, s in universe.items():
        for role, predicate in ROLE_RULES:
            if predicate(s, ctx):
                roles.append(WalletRoleInfo(
                    wallet=wallet,
                    role=role,
                    volume=s.volume,
                    net_flow=s.net_flow,
                    counterparties=len(s.counterparties),
                ))
                break

    roles.sort(key=lambda r: (-r.volume, r.wallet))
    return roles


def detect_role_changes(
    current: Sequence[WalletRoleInfo],
    previous: Mapping[str, str],
    timestamp: int = 0,
) -> List[RawAlert]:
    """Emit role_change and new_distributor alerts.

    role_change fires only when a wallet had a different role last tick.
    new_distributor fires when a wallet becomes Distributor with no
    previous role.
    """
    alerts: List[RawAlert] = []
    for info in current:
        old_role = previous.get(info.wallet)
        if old_role is not None and old_role != info.role:
            alerts.append(RawAlert(
                type="role_change",
                wallet=info.wallet,
                condition_key=f"{old_role}->{info.role}",
                timestamp=timestamp,
                explanation=f"{info.wallet} changed from {old_role} to {info.role}",
                details={"old_role": old_role, "new_role": info.role},
            ))
        elif old_role is None and info.role == "Distributor":
            alerts.append(RawAlert(
                type="new_distributor",
                wallet=info.wallet,
                condition_key="Distributor",
                value=info.volume,
                timestamp=timestamp,
                explanation=f"New Distributor detected: {info.wallet}",
                details={"volume": info.volume},
            ))
    return alerts


def dormant_threshold(transfer_threshold: float, strict: bool) -> float:
    return transfer_threshold * STRICT_DORMANT_FACTOR if strict else transfer_threshold


def detect_dormant_activation(
    events: Iterable[TransferEvent],
    active_wallets: Set[str],
    threshold: float = 0.0,
    timestamp: int = 0,
) -> List[RawAlert]:
    """Flag wallets moving at least threshold that were not active before.

    Args:
        events: Events for the tick.
        active_wallets: Wallets seen in any earlier tick of the session.
        threshold: Minimum gross amount moved this tick.
        timestamp: Tick timestamp stamped on the alerts.
    """
    alerts: List[RawAlert] = []
    volumes = wallet_gross_volumes(events)
    for wallet in sorted(volumes):
        if wallet in active_wallets:
            continue
        amount = volumes[wallet]
        if amount >= threshold:
            alerts.append(RawAlert(
                type="dormant_activation",
                wallet=wallet,
                condition_key="activated",
                value=amount,
                timestamp=timestamp,
                explanation=f"Dormant wallet {wallet} activated with {amount:,.2f} tokens",
                details={"amount": amount},
            ))
    return alerts
