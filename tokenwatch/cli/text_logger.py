"""Plain text consumer: one line per tick and one line per new alert."""

import sys
import time
from typing import List, Optional, Set, TextIO

from ..models.app_state import AppState

SEVERITY_TAGS = {
    "critical": "CRIT",
    "warning": "WARN",
    "watch": "WATCH",
    "info": "INFO",
}


def short_address(address: Optional[str]) -> str:
    """First 4 and last 4 characters of an address."""
    if not address:
        return "-"
    if len(address) <= 12:
        return address
    return f"{address[:4]}...{address[-4:]}"


class TextLogger:
    """Prints a compact status line for every state it is handed."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream or sys.stdout
        self._seen_alerts: Set[str] = set()

    def _emit(self, line: str) -> None:
        self._stream.write(line + "\n")
        self._stream.flush()

    def format_tick(self, state: AppState) -> str:
        ci = state.current_interval
        ts = time.strftime("%H:%M:%S", time.localtime(ci.timestamp)) if ci.timestamp else "--:--:--"
        if ci.error:
            return f"[{ts}] #{ci.check_count} tick failed ({ci.error})"
        flags = " PARTIAL" if ci.partial else ""
        return (
            f"[{ts}] #{ci.check_count} transfers={ci.transfers} mints={ci.mints} "
            f"wallets={ci.unique_wallets} volume={ci.total_volume:,.2f} "
            f"avg={ci.avg_transfer_size:,.2f} dominant={ci.dominant_wallet_share:.1f}% "
            f"baseline={state.baseline.status}({state.baseline.intervals_observed}){flags}"
        )

    def new_alert_lines(self, state: AppState) -> List[str]:
        """Lines for alerts not printed before (keyed by id and timestamp)."""
        lines = []
        self._seen_alerts &= {f"{a.id}:{a.timestamp}" for a in state.alerts}
        for alert in state.alerts:
            key = f"{alert.id}:{alert.timestamp}"
            if key in self._seen_alerts:
                continue
            self._seen_alerts.add(key)
            tag = SEVERITY_TAGS.get(alert.severity, alert.severity.upper())
            who = f" {short_address(alert.wallet)}" if alert.wallet else ""
            lines.append(
                f"  [{tag}] {alert.type}{who} ({alert.confidence:.2f}): {alert.explanation}"
            )
        return lines

    def on_state(self, state: AppState) -> None:
        self._emit(self.format_tick(state))
        for line in self.new_alert_lines(state):
            self._emit(line)
