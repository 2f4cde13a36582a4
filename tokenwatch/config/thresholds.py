"""Locked parameters for tokenwatch. DO NOT CHANGE."""

# Tick scheduling (seconds)
DEFAULT_INTERVAL_SECONDS: int = 30

# Alert thresholds (token UI units)
DEFAULT_TRANSFER_THRESHOLD: float = 1_000_000
DEFAULT_MINT_THRESHOLD: float = 1_000_000
STRICT_DORMANT_FACTOR: float = 0.5

# Metadata cache
METADATA_REFRESH_AGE: int = 10  # ticks

# Signature discovery
FIRST_TICK_SIGNATURES: int = 10
PER_ACCOUNT_SIGNATURE_MIN: int = 10
PER_ACCOUNT_SIGNATURE_MAX: int = 20
SIGNATURE_BUDGET: int = 100
SIGNATURE_CACHE_LIMIT: int = 5_000

# Transaction fetch
TX_BATCH_SIZE: int = 10

# Retry policy
RPC_MAX_ATTEMPTS: int = 3
RPC_RETRY_DELAY: float = 5.0
TX_RETRY_DELAY: float = 2.0
RPC_TIMEOUT: int = 30

# Baseline / drift
BASELINE_MIN_SAMPLES: int = 3
VERIFIED_HISTORY_LIMIT: int = 30
DRIFT_MULTIPLIER: float = 2.0
DRIFT_MULTIPLIER_STRICT: float = 1.5

# Structural signals
DOMINANT_SHARE_THRESHOLD: float = 0.6
DOMINANT_SHARE_THRESHOLD_STRICT: float = 0.5
COINCIDENCE_ACTIVITY_FACTOR: float = 1.5

# Wallet roles
ROLE_MIN_FLOWS: int = 3
ROLE_MIN_COUNTERPARTIES: int = 3
RELAY_NET_TOLERANCE: float = 0.10
ACCUMULATOR_TOP_N: int = 3

# Bounded buffers
SERIES_LIMIT: int = 30
ALERT_LIMIT: int = 20
ALERT_HISTORY_LIMIT: int = 200

# Session logging
LOG_LEVEL_DEFAULT: str = "INTELLIGENCE_ONLY"
LOG_DIR: str = "logs/"
RECORD_ROOT: str = "tokenwatch-runs/raw"
SNAPSHOT_DIR: str = "tokenwatch-runs/snapshots"

# Programs
SPL_TOKEN_PROGRAM: str = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM: str = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
TOKEN_PROGRAMS = {
    SPL_TOKEN_PROGRAM: "spl-token",
    TOKEN_2022_PROGRAM: "token-2022",
}

DEX_PROGRAMS = {
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8": "Raydium V4",
    "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK": "Raydium CLMM",
    "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4": "Jupiter V6",
    "JUP4Fb2cqiRUauTHVu89rAMUo44NQvCyZaa9mxs6bqf": "Jupiter V4",
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc": "Orca Whirlpool",
    "9W959DqEETiGZocYWCQPaJ6sBmUzgfxXfqGeTEdp3aQP": "Orca V2",
}

# RPC resolution
DEFAULT_RPC_URL: str = "https://api.mainnet-beta.solana.com"
RPC_ENV_VAR: str = "TOKENWATCH_RPC"
RPC_RC_FILE: str = ".tokenwatchrc"
