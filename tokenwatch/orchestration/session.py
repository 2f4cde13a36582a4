"""Watch session: owns the state and drives one tick at a time."""

import json
import logging
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Optional

import base58

from ..config.settings import WatchConfig
from ..config.thresholds import SNAPSHOT_DIR, TOKEN_PROGRAMS
from ..integrations.exceptions import AuthorizationError, RpcError, UnsupportedProgramError
from ..integrations.rpc_client import LedgerClient, SolanaRpcClient
from ..models.app_state import AppState, TokenInfo
from ..recording.recorder import IntervalRecorder
from ..recording.replay import ReplaySource, load_recording
from .interval_engine import WatchContext, format_supply, run_interval
from .state_reducer import create_initial_state, update_state_from_interval

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TickOutcome:
    success: bool
    state: AppState
    error_kind: Optional[str] = None
    error: Optional[str] = None


def validate_mint_address(mint: str) -> None:
    """Raise ValueError unless mint is a base58 string decoding to 32 bytes."""
    try:
        decoded = base58.b58decode(mint)
    except ValueError as exc:
        raise ValueError(f"Invalid mint address: {mint}") from exc
    if len(decoded) != 32:
        raise ValueError(f"Invalid mint address: {mint} (decodes to {len(decoded)} bytes)")


class WatchSession:
    """Single-token watch session.

    The state is replaced, never mutated, once per tick. Consumers may
    hold on to any AppState returned by get_state().
    """

    def __init__(
        self,
        config: WatchConfig,
        state: AppState,
        ledger: Optional[LedgerClient] = None,
        program: Optional[str] = None,
        replay: Optional[ReplaySource] = None,
        recorder: Optional[IntervalRecorder] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.program = program
        self.replay = replay
        self.recorder = recorder
        self._clock = clock
        self._state = state

    @property
    def mode(self) -> str:
        if self.replay is not None:
            return "replay"
        return "record" if self.recorder is not None else "live"

    def get_state(self) -> AppState:
        return self._state

    def run_interval(self) -> TickOutcome:
        """Run one tick and fold its result into the state.

        Raises:
            AuthorizationError: After the failure is folded into state.
        """
        ctx = WatchContext(
            mint=self.config.mint,
            config=self.config,
            internal=self._state.internal,
            ledger=self.ledger,
            program=self.program,
            replay=self.replay,
            recorder=self.recorder,
            clock=self._clock,
        )
        result = run_interval(ctx)
        self._state = update_state_from_interval(self._state, result)

        if not result.success:
            if result.error_kind == "authorization":
                raise AuthorizationError(result.error or "Authorization failed")
            return TickOutcome(False, self._state, result.error_kind, result.error)
        return TickOutcome(True, self._state)

    def save_snapshot(self, directory: str = SNAPSHOT_DIR) -> Path:
        """Write the consumer-facing state to a JSON file.

        Internal caches are not included.

        Returns:
            Path of the snapshot file.
        """
        out_dir = Path(directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        now = self._clock()
        data = {"timestamp": int(now)}
        data.update(self._state.to_dict())
        path = out_dir / f"snapshot-{self.config.mint[:8]}-{int(now * 1000)}.json"
        path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        logger.info("Snapshot saved to %s", path)
        return path

    def close(self) -> None:
        close = getattr(self.ledger, "close", None)
        if callable(close):
            close()


def _replay_session(config: WatchConfig, clock: Callable[[], float]) -> WatchSession:
    recording = load_recording(config.replay)
    source = ReplaySource(recording)
    first = source.first
    state = create_initial_state(config)
    state = replace(
        state,
        internal=replace(
            state.internal,
            last_supply=first.supply if first else None,
            top_accounts=first.top_accounts if first else (),
        ),
    )
    logger.info("Replaying %d recorded intervals from %s", len(recording), recording.source)
    return WatchSession(config, state, replay=source, clock=clock)


def create_watch_session(
    config: WatchConfig,
    ledger: Optional[LedgerClient] = None,
    clock: Callable[[], float] = time.time,
) -> WatchSession:
    """Validate the mint and build a ready-to-run session.

    Live mode resolves the owning token program once and seeds the state
    with the mint metadata and top holders. Replay mode makes no network
    calls.

    Raises:
        ValueError: Malformed mint address.
        UnsupportedProgramError: Mint owned by an unknown program.
        RpcError: Mint metadata could not be fetched.
        RecordingError: Replay source could not be loaded.
    """
    validate_mint_address(config.mint)

    if config.replay:
        return _replay_session(config, clock)

    ledger = ledger or SolanaRpcClient(config.rpc_url)
    program = ledger.get_account_owner(config.mint)
    if program not in TOKEN_PROGRAMS:
        raise UnsupportedProgramError(config.mint, program)

    mint_info = ledger.get_mint_info(config.mint)
    if mint_info is None:
        raise RpcError(f"Could not fetch mint info for {config.mint}", rpc_url=config.rpc_url)
    top_accounts = tuple(ledger.get_largest_accounts(config.mint))

    state = create_initial_state(config)
    state = replace(
        state,
        token=TokenInfo(
            name=mint_info.name,
            decimals=mint_info.decimals,
            supply_display=format_supply(mint_info.supply_raw, mint_info.decimals),
            supply_raw=str(mint_info.supply_raw),
            mint_authority=mint_info.mint_authority,
            freeze_authority=mint_info.freeze_authority,
            top_accounts=top_accounts,
            program=TOKEN_PROGRAMS[program],
        ),
        internal=replace(
            state.internal,
            metadata_cache=mint_info,
            metadata_cache_age=0,
            last_supply=mint_info.supply_raw,
            top_accounts=top_accounts,
        ),
    )

    recorder = None
    if config.record:
        run_dir = Path(config.record_dir) / time.strftime("%Y%m%d-%H%M%S", time.localtime(clock()))
        recorder = IntervalRecorder(str(run_dir), clock=clock)
        logger.info("Recording raw intervals to %s", run_dir)

    logger.info("Session ready for %s (%s)", config.mint, TOKEN_PROGRAMS[program])
    return WatchSession(config, state, ledger=ledger, program=program, recorder=recorder, clock=clock)
