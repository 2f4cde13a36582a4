"""Event data models for tokenwatch."""

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Set

UNKNOWN_WALLET = "unknown"

EventType = Literal["transfer", "mint", "burn"]


@dataclass(frozen=True)
class TransferEvent:
    """Token movement observed in one transaction."""

    type: EventType
    source: str  # Owner address or "unknown"
    destination: str  # Owner address or "unknown"
    amount: float  # UI units, never negative
    signature: str
    timestamp: int  # Unix epoch seconds, 0 if the block time is unknown

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "source": self.source,
            "destination": self.destination,
            "amount": self.amount,
            "signature": self.signature,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransferEvent":
        return cls(
            type=data.get("type", "transfer"),
            source=data.get("source") or UNKNOWN_WALLET,
            destination=data.get("destination") or UNKNOWN_WALLET,
            amount=float(data.get("amount", 0) or 0),
            signature=data.get("signature", ""),
            timestamp=int(data.get("timestamp", 0) or 0),
        )


@dataclass(frozen=True)
class SignatureInfo:
    """One entry of a signature listing, newest first."""

    signature: str
    block_time: Optional[int] = None
    slot: int = 0
    failed: bool = False


@dataclass(frozen=True)
class IntervalMetrics:
    """Aggregate numbers for one tick, computed over transfer events only.

    Invariant: transfers_per_interval == 0 implies avg_transfer_size == 0
    and total_volume == 0.
    """

    transfers_per_interval: int = 0
    avg_transfer_size: float = 0.0
    unique_wallets_per_interval: int = 0
    dominant_wallet_share: float = 0.0  # ratio in [0, 1]
    total_volume: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transfers_per_interval": self.transfers_per_interval,
            "avg_transfer_size": self.avg_transfer_size,
            "unique_wallets_per_interval": self.unique_wallets_per_interval,
            "dominant_wallet_share": self.dominant_wallet_share,
            "total_volume": self.total_volume,
        }


@dataclass
class WalletStats:
    """Per-wallet flow accumulator for a single tick."""

    wallet: str
    inbound_count: int = 0
    outbound_count: int = 0
    inbound_total: float = 0.0
    outbound_total: float = 0.0
    counterparties: Set[str] = field(default_factory=set)

    @property
    def net_flow(self) -> float:
        return self.inbound_total - self.outbound_total

    @property
    def volume(self) -> float:
        return self.inbound_total + self.outbound_total
