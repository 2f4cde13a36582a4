"""Core analytics for tokenwatch."""
from .metrics import compute_interval_metrics, compute_wallet_stats
from .baseline import compute_baseline, detect_drift
from .wallet_roles import classify_wallet_roles, detect_role_changes, detect_dormant_activation
from .structural import detect_dex_programs, detect_structural_alerts
from .severity_calculator import calculate_severity, calculate_confidence
from .alert_engine import generate_alert_id, process_alerts
from .integrity import validate_interval
from .tx_parser import parse_transfer_events

__all__ = [
    "compute_interval_metrics",
    "compute_wallet_stats",
    "compute_baseline",
    "detect_drift",
    "classify_wallet_roles",
    "detect_role_changes",
    "detect_dormant_activation",
    "detect_dex_programs",
    "detect_structural_alerts",
    "calculate_severity",
    "calculate_confidence",
    "generate_alert_id",
    "process_alerts",
    "validate_interval",
    "parse_transfer_events",
]
