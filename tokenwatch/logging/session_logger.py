"""JSONL session logger for tokenwatch."""

import json
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, TextIO

from ..config.thresholds import LOG_DIR, LOG_LEVEL_DEFAULT
from ..models.alerts import Alert
from ..models.app_state import AppState


class SessionLogger:
    """Writes session events to a JSONL file.

    In INTELLIGENCE_ONLY mode (default), session start/end, tick summaries
    and tick failures are logged. In FULL mode, every surfaced alert is
    also logged.
    """

    def __init__(
        self,
        mint: str,
        log_level: str = LOG_LEVEL_DEFAULT,
        output_dir: str = LOG_DIR,
    ) -> None:
        self.mint = mint
        self.log_level = log_level
        self._dir = Path(output_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

        ts = int(time.time())
        filename = f"tokenwatch_session_{mint}_{ts}.jsonl"
        self._filepath = self._dir / filename
        self._file: Optional[TextIO] = open(self._filepath, "a", encoding="utf-8")
        self._logged_alerts: set = set()

    def _write_line(self, data: Dict[str, Any]) -> None:
        """Write a single JSON line to the log file."""
        if self._file and not self._file.closed:
            self._file.write(json.dumps(data, separators=(",", ":"), default=str) + "\n")
            self._file.flush()

    def log_session_start(self, config: Dict[str, Any]) -> None:
        """Log session start event (always logged regardless of level)."""
        self._write_line({
            "event_type": "SESSION_START",
            "timestamp": int(time.time()),
            "mint": self.mint,
            "config": config,
        })

    def log_tick(self, state: AppState) -> None:
        """Log a compact tick summary, or TICK_FAILED for a failed tick."""
        ci = state.current_interval
        if ci.error:
            self._write_line({
                "event_type": "TICK_FAILED",
                "timestamp": int(time.time()),
                "refresh_seq": ci.refresh_seq,
                "error": ci.error,
            })
            return
        self._write_line({
            "event_type": "TICK",
            "timestamp": ci.timestamp,
            "check_count": ci.check_count,
            "transfers": ci.transfers,
            "mints": ci.mints,
            "burns": ci.burns,
            "unique_wallets": ci.unique_wallets,
            "total_volume": ci.total_volume,
            "dominant_wallet_share": ci.dominant_wallet_share,
            "partial": ci.partial,
            "integrity_errors": list(ci.integrity.errors),
            "baseline_status": state.baseline.status,
            "total_ms": state.performance.total_ms,
        })
        self.log_alerts(state.alerts)

    def log_alerts(self, alerts: Iterable[Alert]) -> None:
        """Log alerts not logged before (only in FULL mode).

        alerts is the full current alert list; remembered keys are pruned to it.
        """
        if self.log_level != "FULL":
            return
        alerts = tuple(alerts)
        # Forget alerts that dropped off the bounded list
        self._logged_alerts &= {(a.id, a.timestamp) for a in alerts}
        for alert in alerts:
            key = (alert.id, alert.timestamp)
            if key in self._logged_alerts:
                continue
            self._logged_alerts.add(key)
            record = {"event_type": "ALERT"}
            record.update(alert.to_dict())
            self._write_line(record)

    def log_session_end(self, reason: str) -> None:
        """Log session end event (always logged regardless of level)."""
        self._write_line({
            "event_type": "SESSION_END",
            "timestamp": int(time.time()),
            "reason": reason,
        })
        self.close()

    def close(self) -> None:
        """Close the log file."""
        if self._file and not self._file.closed:
            self._file.close()

    @property
    def filepath(self) -> Path:
        """Return the path to the log file."""
        return self._filepath
