"""Data models for tokenwatch."""
from .events import TransferEvent, SignatureInfo, IntervalMetrics, WalletStats
from .alerts import RawAlert, Alert, AlertHistoryEntry, WalletRoleInfo
from .app_state import (
    AppState,
    Baseline,
    CurrentIntervalSnapshot,
    HolderAccount,
    IntegrityResult,
    InternalTracking,
    MintInfo,
    PerformanceMetrics,
    TimeSeries,
    TokenInfo,
)
from .interval import IntervalResult

__all__ = [
    "TransferEvent",
    "SignatureInfo",
    "IntervalMetrics",
    "WalletStats",
    "RawAlert",
    "Alert",
    "AlertHistoryEntry",
    "WalletRoleInfo",
    "AppState",
    "Baseline",
    "CurrentIntervalSnapshot",
    "HolderAccount",
    "IntegrityResult",
    "InternalTracking",
    "MintInfo",
    "PerformanceMetrics",
    "TimeSeries",
    "TokenInfo",
    "IntervalResult",
]
