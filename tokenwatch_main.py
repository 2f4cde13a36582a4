#!/usr/bin/env python3
"""tokenwatch - live behavioral monitor for a single Solana token.

Entry point for the watch engine.

Usage:
    python tokenwatch_main.py --mint MINT_ADDRESS             # Live watch
    python tokenwatch_main.py --mint MINT_ADDRESS --record    # Live + record raw ticks
    python tokenwatch_main.py --mint MINT_ADDRESS --replay tokenwatch-runs/raw/<run>

Environment:
    TOKENWATCH_RPC  RPC endpoint (or RPC= line in ~/.tokenwatchrc)
"""

import argparse
import logging
import sys

from tokenwatch.cli.text_logger import TextLogger
from tokenwatch.config.settings import WatchConfig, resolve_rpc_url
from tokenwatch.config.thresholds import (
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_MINT_THRESHOLD,
    DEFAULT_TRANSFER_THRESHOLD,
    LOG_DIR,
    LOG_LEVEL_DEFAULT,
    SNAPSHOT_DIR,
)
from tokenwatch.integrations.exceptions import TokenWatchError, UnsupportedProgramError
from tokenwatch.logging.log_replay import replay_session, summarize_session
from tokenwatch.logging.session_logger import SessionLogger
from tokenwatch.orchestration.scheduler import TickScheduler
from tokenwatch.orchestration.session import TickOutcome, create_watch_session

logger = logging.getLogger("tokenwatch")


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="tokenwatch - behavioral monitor for a single Solana token",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Environment: set TOKENWATCH_RPC to choose the RPC endpoint.",
    )
    parser.add_argument("--mint", type=str, default=None, help="Token mint address")
    parser.add_argument("--rpc", type=str, default=None, help="RPC endpoint URL")
    parser.add_argument(
        "--interval",
        type=int,
        default=DEFAULT_INTERVAL_SECONDS,
        help=f"Seconds between ticks (default: {DEFAULT_INTERVAL_SECONDS})",
    )
    parser.add_argument(
        "--transfer-threshold",
        type=float,
        default=DEFAULT_TRANSFER_THRESHOLD,
        help="Large transfer alert threshold in token units",
    )
    parser.add_argument(
        "--mint-threshold",
        type=float,
        default=DEFAULT_MINT_THRESHOLD,
        help="Mint event alert threshold in token units",
    )
    parser.add_argument("--strict", action="store_true", help="Lower drift and dominance thresholds")
    parser.add_argument("--record", action="store_true", help="Record raw tick data for replay")
    parser.add_argument("--replay", type=str, default=None, help="Replay a recording directory or manifest")
    parser.add_argument("--max-ticks", type=int, default=None, help="Stop after this many ticks")
    parser.add_argument(
        "--snapshot-on-exit",
        action="store_true",
        help=f"Write a state snapshot to {SNAPSHOT_DIR} on exit",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=LOG_LEVEL_DEFAULT,
        choices=["FULL", "INTELLIGENCE_ONLY"],
        help=f"Session log level (default: {LOG_LEVEL_DEFAULT})",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv=None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.verbose)

    mint = args.mint
    if not mint:
        try:
            mint = input("Enter token mint address: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            sys.exit(0)
    if not mint:
        print("Error: Token mint address is required.")
        sys.exit(1)

    try:
        config = WatchConfig(
            mint=mint,
            interval_seconds=args.interval,
            transfer_threshold=args.transfer_threshold,
            mint_threshold=args.mint_threshold,
            strict=args.strict,
            rpc_url=resolve_rpc_url(args.rpc),
            record=args.record,
            replay=args.replay,
        )
        session = create_watch_session(config)
    except UnsupportedProgramError as exc:
        print(f"Error: {exc.message}")
        print("Only SPL Token and Token-2022 mints are supported.")
        sys.exit(2)
    except (TokenWatchError, ValueError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    session_logger = SessionLogger(mint=mint, log_level=args.log_level, output_dir=LOG_DIR)
    session_logger.log_session_start(config.to_dict())
    print(f"Session log: {session_logger.filepath}")

    text_logger = TextLogger()
    scheduler_ref = {}

    def on_tick(outcome: TickOutcome) -> None:
        text_logger.on_state(outcome.state)
        session_logger.log_tick(outcome.state)
        if session.mode == "replay" and not outcome.success:
            scheduler_ref["scheduler"].stop()

    period = 0.0 if session.mode == "replay" else float(config.interval_seconds)
    scheduler = TickScheduler(session, period=period, on_tick=on_tick)
    scheduler_ref["scheduler"] = scheduler

    print(f"Starting tokenwatch for {mint[:8]}...{mint[-4:]} | Mode: {session.mode.upper()}")
    print("Press Ctrl+C to exit.\n")

    reason = "completed"
    try:
        scheduler.run(max_ticks=args.max_ticks)
        if scheduler.fatal_error is not None:
            reason = "authorization_error"
            print(f"Fatal: {scheduler.fatal_error.message}")
    except KeyboardInterrupt:
        reason = "interrupted"
    finally:
        if args.snapshot_on_exit:
            path = session.save_snapshot(SNAPSHOT_DIR)
            print(f"Snapshot: {path}")
        session_logger.log_session_end(reason)
        session.close()

    summary = summarize_session(replay_session(str(session_logger.filepath)))
    print(
        f"Session summary: {summary['ticks']} ticks, {summary['failed_ticks']} failed, "
        f"{summary['partial_ticks']} partial, alerts {dict(summary['alerts_by_severity'])}"
    )

    if reason == "authorization_error":
        sys.exit(3)


if __name__ == "__main__":
    main()
