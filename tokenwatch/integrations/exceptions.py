"""
tokenwatch exceptions - error hierarchy for ledger access and parsing.

Transient errors (rate limit, timeout) are retried and then degraded to
missing data. Authorization and unsupported-program errors are fatal to
the session. Everything else fails the current tick only.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class TokenWatchError(Exception):
    """Base exception for all tokenwatch errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class RpcError(TokenWatchError):
    """RPC node returned an error or an unusable response."""

    def __init__(
        self,
        message: str,
        rpc_url: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.rpc_url = rpc_url
        self.status_code = status_code


class NetworkError(RpcError):
    """Connection-level failure reaching the RPC node."""


class RateLimitError(RpcError):
    """RPC node rejected the request for exceeding its rate limit."""

    def __init__(
        self,
        message: str,
        rpc_url: Optional[str] = None,
        retry_after_seconds: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, rpc_url=rpc_url, status_code=429, details=details)
        self.retry_after_seconds = retry_after_seconds


class RpcTimeoutError(RpcError):
    """Request to the RPC node timed out."""


class AuthorizationError(RpcError):
    """RPC node refused the credentials. Fatal for the session."""


class UnsupportedProgramError(TokenWatchError):
    """Mint is owned by a program other than SPL Token or Token-2022."""

    def __init__(self, mint: str, program: Optional[str]) -> None:
        super().__init__(
            f"Mint {mint} is owned by unsupported program {program}",
            details={"mint": mint, "program": program},
        )
        self.mint = mint
        self.program = program


class TransactionParseError(TokenWatchError):
    """A fetched transaction could not be parsed. Local to that transaction."""


class RecordingError(TokenWatchError):
    """A recording directory or manifest could not be read."""
