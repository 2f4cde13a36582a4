"""Result of one engine tick."""

from dataclasses import dataclass
from typing import Literal, Optional, Tuple

from .alerts import RawAlert, WalletRoleInfo
from .app_state import InternalTracking, PerformanceMetrics, TokenInfo
from .events import IntervalMetrics, TransferEvent

ErrorKind = Literal["network", "rate-limit", "authorization", "unsupported-program"]


@dataclass(frozen=True)
class IntervalResult:
    """Success or failure of a single tick.

    On success every analysis field is populated. On failure only
    error_kind, error, timestamp and performance are meaningful.
    """

    success: bool
    timestamp: int
    check_count: int
    performance: PerformanceMetrics
    metrics: Optional[IntervalMetrics] = None
    events: Tuple[TransferEvent, ...] = ()
    raw_alerts: Tuple[RawAlert, ...] = ()
    token_info: Optional[TokenInfo] = None
    roles: Tuple[WalletRoleInfo, ...] = ()
    dex_programs: Tuple[str, ...] = ()
    is_fine: bool = False
    current_supply: Optional[int] = None
    internal: Optional[InternalTracking] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        timestamp: int,
        check_count: int,
        performance: Optional[PerformanceMetrics] = None,
    ) -> "IntervalResult":
        return cls(
            success=False,
            timestamp=timestamp,
            check_count=check_count,
            performance=performance or PerformanceMetrics(),
            error_kind=kind,
            error=message,
        )
