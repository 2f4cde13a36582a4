"""Load recorded ticks for offline replay."""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..integrations.exceptions import RecordingError
from ..models.app_state import HolderAccount
from ..models.events import TransferEvent

INTERVAL_FILE_RE = re.compile(r"^interval-(\d+)-(\d+)\.json$")


@dataclass(frozen=True)
class RecordedInterval:
    """One recorded tick."""

    seq: int
    timestamp: int
    signatures: Tuple[str, ...]
    transactions: Tuple[Tuple[str, Optional[dict]], ...]
    events: Optional[Tuple[TransferEvent, ...]]  # None when not recorded
    supply: Optional[int]
    decimals: Optional[int] = None
    top_accounts: Tuple[HolderAccount, ...] = ()
    is_fine: bool = True  # False when the live tick was degraded


@dataclass(frozen=True)
class Recording:
    source: str
    intervals: Tuple[RecordedInterval, ...]

    def __len__(self) -> int:
        return len(self.intervals)


class ReplaySource:
    """Hands out recorded ticks by index. Holds no cursor of its own."""

    def __init__(self, recording: Recording) -> None:
        self.recording = recording

    def get(self, index: int) -> Optional[RecordedInterval]:
        if 0 <= index < len(self.recording.intervals):
            return self.recording.intervals[index]
        return None

    @property
    def first(self) -> Optional[RecordedInterval]:
        return self.get(0)


def _parse_supply(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(str(value).split(".")[0])
    except ValueError:
        return None


def _parse_timestamp(value: Any) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def parse_interval(data: Dict[str, Any], seq: Optional[int] = None) -> RecordedInterval:
    """Build a RecordedInterval from its JSON form."""
    if not isinstance(data, dict):
        raise RecordingError("Recorded interval must be a JSON object")
    transactions = tuple(
        (entry.get("signature", "unknown"), entry.get("transaction"))
        for entry in data.get("transactions") or []
        if isinstance(entry, dict)
    )
    events: Optional[Tuple[TransferEvent, ...]] = None
    if isinstance(data.get("events"), list):
        events = tuple(TransferEvent.from_dict(e) for e in data["events"])
    return RecordedInterval(
        seq=int(data.get("checkCount", seq or 0)),
        timestamp=_parse_timestamp(data.get("timestamp")),
        signatures=tuple(data.get("signatures") or ()),
        transactions=transactions,
        events=events,
        supply=_parse_supply(data.get("supply")),
        decimals=data.get("decimals"),
        top_accounts=tuple(HolderAccount.from_dict(a) for a in data.get("topAccounts") or []),
        is_fine=bool(data.get("isFine", True)),
    )


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise RecordingError(f"Cannot read recording {path}: {exc}") from exc


def load_recording(path: str) -> Recording:
    """Load a recording.

    Args:
        path: A directory of interval-*.json files, a manifest file with an
            "intervals" list, or a single interval file.

    Returns:
        The recording with intervals in sequence order.

    Raises:
        RecordingError: If the path is missing, unreadable or empty.
    """
    p = Path(path)
    if not p.exists():
        raise RecordingError(f"Recording not found: {path}")

    intervals: List[RecordedInterval] = []
    if p.is_dir():
        files = []
        for child in p.iterdir():
            match = INTERVAL_FILE_RE.match(child.name)
            if match:
                files.append((int(match.group(1)), int(match.group(2)), child))
        for seq, _, child in sorted(files):
            intervals.append(parse_interval(_read_json(child), seq))
    else:
        data = _read_json(p)
        if isinstance(data, dict) and isinstance(data.get("intervals"), list):
            intervals = [parse_interval(item, i + 1) for i, item in enumerate(data["intervals"])]
        else:
            intervals = [parse_interval(data, 1)]

    if not intervals:
        raise RecordingError(f"No recorded intervals in {path}")
    return Recording(source=str(p), intervals=tuple(intervals))
