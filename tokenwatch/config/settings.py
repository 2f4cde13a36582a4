"""Session configuration and RPC endpoint resolution for tokenwatch."""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .thresholds import (
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_MINT_THRESHOLD,
    DEFAULT_RPC_URL,
    DEFAULT_TRANSFER_THRESHOLD,
    RECORD_ROOT,
    RPC_ENV_VAR,
    RPC_RC_FILE,
    SIGNATURE_CACHE_LIMIT,
)


@dataclass(frozen=True)
class WatchConfig:
    """Per-session watch configuration. Immutable once the session starts."""

    mint: str
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    transfer_threshold: float = DEFAULT_TRANSFER_THRESHOLD
    mint_threshold: float = DEFAULT_MINT_THRESHOLD
    strict: bool = False
    rpc_url: str = DEFAULT_RPC_URL
    record: bool = False
    record_dir: str = RECORD_ROOT
    replay: Optional[str] = None
    signature_cache_limit: int = SIGNATURE_CACHE_LIMIT

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {self.interval_seconds}")
        if self.transfer_threshold < 0 or self.mint_threshold < 0:
            raise ValueError("thresholds must be non-negative")
        if self.signature_cache_limit <= 0:
            raise ValueError("signature_cache_limit must be positive")

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view used by snapshots and the session log."""
        return asdict(self)


def _read_rc_file(path: Path) -> Optional[str]:
    """Return the RPC= value from an rc file, or None."""
    try:
        text = path.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return None
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("RPC="):
            value = line[len("RPC="):].strip()
            if value:
                return value
    return None


def resolve_rpc_url(
    explicit: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> str:
    """Resolve the RPC endpoint.

    Priority: explicit argument, TOKENWATCH_RPC, RPC= line in
    ~/.tokenwatchrc, then the public mainnet endpoint.

    Args:
        explicit: Endpoint passed on the command line.
        environ: Environment mapping (defaults to os.environ).
        home: Home directory holding the rc file (defaults to Path.home()).

    Returns:
        The endpoint URL to use.
    """
    if explicit:
        return explicit
    env = os.environ if environ is None else environ
    from_env = env.get(RPC_ENV_VAR, "").strip()
    if from_env:
        return from_env
    rc_value = _read_rc_file((home or Path.home()) / RPC_RC_FILE)
    if rc_value:
        return rc_value
    return DEFAULT_RPC_URL
