"""Immutable application state for a tokenwatch session.

A new AppState is produced once per tick by the state reducer. Unchanged
substructures are shared with the previous state; nothing is mutated in
place. Dict-valued fields are treated as read-only and replaced wholesale.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple

from ..config.settings import WatchConfig
from .alerts import Alert, AlertHistoryEntry, WalletRoleInfo
from .events import IntervalMetrics

BaselineStatus = Literal["forming", "established"]


@dataclass(frozen=True)
class HolderAccount:
    """A large token account and its owner."""

    address: str
    owner: Optional[str] = None
    amount: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "owner": self.owner, "amount": self.amount}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HolderAccount":
        return cls(
            address=data.get("address", ""),
            owner=data.get("owner"),
            amount=float(data.get("amount", 0) or 0),
        )


@dataclass(frozen=True)
class MintInfo:
    """Mint account as reported by the ledger."""

    decimals: int
    supply_raw: int
    mint_authority: Optional[str]
    freeze_authority: Optional[str]
    program: str  # owning program id
    name: Optional[str] = None


@dataclass(frozen=True)
class TokenInfo:
    name: Optional[str] = None
    decimals: Optional[int] = None
    supply_display: Optional[str] = None
    supply_raw: Optional[str] = None
    mint_authority: Optional[str] = None
    freeze_authority: Optional[str] = None
    top_accounts: Tuple[HolderAccount, ...] = ()
    program: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "decimals": self.decimals,
            "supply": {"display": self.supply_display, "raw": self.supply_raw},
            "authorities": {
                "mint": self.mint_authority,
                "freeze": self.freeze_authority,
            },
            "topTokenAccounts": [a.to_dict() for a in self.top_accounts],
            "program": self.program,
        }


@dataclass(frozen=True)
class Baseline:
    """Rolling behavioral baseline. Never regresses once established."""

    status: BaselineStatus = "forming"
    intervals_observed: int = 0
    transfers_per_interval: Optional[float] = None
    avg_transfer_size: Optional[float] = None
    unique_wallets_per_interval: Optional[float] = None
    dominant_wallet_share: Optional[float] = None

    @property
    def established(self) -> bool:
        return self.status == "established"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "intervals_observed": self.intervals_observed,
            "transfers_per_interval": self.transfers_per_interval,
            "avg_transfer_size": self.avg_transfer_size,
            "unique_wallets_per_interval": self.unique_wallets_per_interval,
            "dominant_wallet_share": self.dominant_wallet_share,
        }


@dataclass(frozen=True)
class TimeSeries:
    """Bounded per-metric history, oldest point first."""

    transfers: Tuple[float, ...] = ()
    wallets: Tuple[float, ...] = ()
    avg_size: Tuple[float, ...] = ()
    dominant_share: Tuple[float, ...] = ()

    def to_dict(self) -> Dict[str, List[float]]:
        return {
            "transfers": list(self.transfers),
            "wallets": list(self.wallets),
            "avgSize": list(self.avg_size),
            "dominantShare": list(self.dominant_share),
        }


@dataclass(frozen=True)
class IntegrityResult:
    valid: bool = True
    errors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}


@dataclass(frozen=True)
class CurrentIntervalSnapshot:
    """What happened in the most recent tick.

    dominant_wallet_share is a percentage in [0, 100]. refresh_seq
    increases on every tick, successful or not.
    """

    check_count: int = 0
    timestamp: int = 0
    transfers: int = 0
    mints: int = 0
    burns: int = 0
    total_volume: float = 0.0
    unique_wallets: int = 0
    avg_transfer_size: float = 0.0
    dominant_wallet_share: float = 0.0
    integrity: IntegrityResult = field(default_factory=IntegrityResult)
    partial: bool = False
    refresh_seq: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checkCount": self.check_count,
            "timestamp": self.timestamp,
            "transfers": self.transfers,
            "mints": self.mints,
            "burns": self.burns,
            "totalVolume": self.total_volume,
            "uniqueWallets": self.unique_wallets,
            "avgTransferSize": self.avg_transfer_size,
            "dominantWalletShare": self.dominant_wallet_share,
            "integrity": self.integrity.to_dict(),
            "partial": self.partial,
            "refreshSeq": self.refresh_seq,
            "error": self.error,
        }


@dataclass(frozen=True)
class PerformanceMetrics:
    """Per-phase wall time of the last tick, in milliseconds."""

    signatures_fetch_ms: float = 0.0
    transactions_fetch_ms: float = 0.0
    parse_ms: float = 0.0
    analytics_ms: float = 0.0
    render_ms: float = 0.0
    total_ms: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "signatures_fetch_ms": self.signatures_fetch_ms,
            "transactions_fetch_ms": self.transactions_fetch_ms,
            "parse_ms": self.parse_ms,
            "analytics_ms": self.analytics_ms,
            "render_ms": self.render_ms,
            "total_ms": self.total_ms,
        }


@dataclass(frozen=True)
class InternalTracking:
    """Caches owned by the session and threaded through every tick.

    Never serialized into snapshots.
    """

    processed_signatures: Tuple[str, ...] = ()  # insertion order, oldest first
    last_signature: Optional[str] = None
    active_wallets: FrozenSet[str] = frozenset()
    previous_roles: Dict[str, str] = field(default_factory=dict)
    verified_history: Tuple[IntervalMetrics, ...] = ()
    verified_count: int = 0
    alert_history: Dict[str, AlertHistoryEntry] = field(default_factory=dict)
    metadata_cache: Optional[MintInfo] = None
    metadata_cache_age: int = 0
    last_supply: Optional[int] = None
    top_accounts: Tuple[HolderAccount, ...] = ()
    first_dex_detected: bool = False
    check_count: int = 0
    replay_index: int = 0


@dataclass(frozen=True)
class AppState:
    config: WatchConfig
    token: TokenInfo = field(default_factory=TokenInfo)
    baseline: Baseline = field(default_factory=Baseline)
    series: TimeSeries = field(default_factory=TimeSeries)
    current_interval: CurrentIntervalSnapshot = field(default_factory=CurrentIntervalSnapshot)
    roles: Tuple[WalletRoleInfo, ...] = ()
    alerts: Tuple[Alert, ...] = ()
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    internal: InternalTracking = field(default_factory=InternalTracking)

    def to_dict(self) -> Dict[str, Any]:
        """Consumer-facing view of the state. Internal caches are excluded."""
        return {
            "config": self.config.to_dict(),
            "token": self.token.to_dict(),
            "baseline": self.baseline.to_dict(),
            "series": self.series.to_dict(),
            "currentInterval": self.current_interval.to_dict(),
            "roles": [r.to_dict() for r in self.roles],
            "alerts": [a.to_dict() for a in self.alerts],
            "performance": self.performance.to_dict(),
        }
