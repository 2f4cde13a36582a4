"""Alert and wallet role models for tokenwatch."""

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional

Severity = Literal["info", "watch", "warning", "critical"]
Role = Literal["Distributor", "Accumulator", "Relay", "Sink", "DormantWhale"]


@dataclass(frozen=True)
class RawAlert:
    """Detector output before dedup, severity and confidence are applied.

    value carries the numeric condition used to decide whether a repeated
    alert has worsened (share, amount or drift ratio).
    """

    type: str
    explanation: str
    timestamp: int
    wallet: Optional[str] = None
    condition_key: str = ""
    value: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Alert:
    """Processed alert as surfaced to consumers."""

    id: str
    type: str
    severity: Severity
    confidence: float
    explanation: str
    duration_intervals: int
    timestamp: int
    wallet: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "duration_intervals": self.duration_intervals,
            "timestamp": self.timestamp,
            "wallet": self.wallet,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class AlertHistoryEntry:
    """Last known occurrence of an alert id."""

    severity: Severity
    value: Optional[float]
    duration: int
    last_check: int  # check count of the tick the id was last raised


@dataclass(frozen=True)
class WalletRoleInfo:
    """Role assignment for one wallet in one tick."""

    wallet: str
    role: Role
    volume: float = 0.0
    net_flow: float = 0.0
    counterparties: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet": self.wallet,
            "role": self.role,
            "volume": self.volume,
            "net_flow": self.net_flow,
            "counterparties": self.counterparties,
        }
