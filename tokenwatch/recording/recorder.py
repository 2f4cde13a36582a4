"""Raw per-tick recorder for tokenwatch.

One JSON file per tick, named interval-<checkCount>-<epoch_ms>.json, holding
everything the engine fetched so the tick can be replayed offline.
"""

import json
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from ..models.app_state import HolderAccount
from ..models.events import TransferEvent

logger = logging.getLogger(__name__)


def interval_filename(check_count: int, epoch_ms: int) -> str:
    return f"interval-{check_count}-{epoch_ms}.json"


class IntervalRecorder:
    """Writes raw tick data under a session recording directory."""

    def __init__(self, directory: str, clock: Callable[[], float] = time.time) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._clock = clock

    @property
    def directory(self) -> Path:
        return self._dir

    def record(
        self,
        check_count: int,
        timestamp: int,
        signatures: Sequence[str],
        transactions: Sequence[Tuple[str, Optional[dict]]],
        events: Sequence[TransferEvent],
        supply: Optional[int],
        decimals: Optional[int] = None,
        top_accounts: Sequence[HolderAccount] = (),
        is_fine: bool = True,
    ) -> Path:
        """Persist one tick.

        Args:
            check_count: Tick sequence number.
            timestamp: Tick timestamp (unix seconds).
            signatures: Signatures selected as new this tick.
            transactions: (signature, payload) pairs; failed fetches are kept as null.
            events: Parsed events.
            supply: Raw supply seen this tick.
            decimals: Mint decimals, if known.
            top_accounts: Largest holders in effect for the tick.
            is_fine: False when a fetch or parse was dropped this tick.

        Returns:
            Path of the written file.
        """
        payload = {
            "timestamp": timestamp,
            "checkCount": check_count,
            "signatures": list(signatures),
            "transactions": [
                {"signature": sig, "transaction": tx}
                for sig, tx in transactions
            ],
            "events": [e.to_dict() for e in events],
            "supply": str(supply) if supply is not None else None,
            "decimals": decimals,
            "topAccounts": [a.to_dict() for a in top_accounts],
            "isFine": bool(is_fine),
        }
        epoch_ms = int(self._clock() * 1000)
        path = self._dir / interval_filename(check_count, epoch_ms)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.debug("Recorded tick %d to %s", check_count, path)
        return path
