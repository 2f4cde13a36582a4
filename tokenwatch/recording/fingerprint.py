"""Deterministic fingerprint of an AppState for replay comparisons."""

import hashlib
import json
from typing import Any, Dict

from ..models.app_state import AppState


def comparable_state(state: AppState) -> Dict[str, Any]:
    """State as a dict with timestamps and performance timings removed."""
    data = state.to_dict()
    data.pop("performance", None)
    data["currentInterval"].pop("timestamp", None)
    for alert in data["alerts"]:
        alert.pop("timestamp", None)
    # Recording paths differ between runs
    data["config"].pop("replay", None)
    data["config"].pop("record_dir", None)
    data["internal"] = {
        "verified_count": state.internal.verified_count,
        "processed_signatures": len(state.internal.processed_signatures),
        "active_wallets": sorted(state.internal.active_wallets),
        "previous_roles": dict(sorted(state.internal.previous_roles.items())),
    }
    return data


def state_digest(state: AppState) -> str:
    """sha256 hex digest of comparable_state."""
    blob = json.dumps(comparable_state(state), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()
