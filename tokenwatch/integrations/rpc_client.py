"""Solana JSON-RPC client for tokenwatch.

All ledger reads go through SolanaRpcClient. Rate-limit and timeout
failures are retried after a fixed delay and degrade to None once the
attempts are used up. Authorization failures raise immediately. Other
errors propagate to the caller.
"""

import itertools
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, TypeVar

import requests

from ..config.thresholds import (
    RPC_MAX_ATTEMPTS,
    RPC_RETRY_DELAY,
    RPC_TIMEOUT,
    TX_RETRY_DELAY,
)
from ..models.app_state import HolderAccount, MintInfo
from ..models.events import SignatureInfo
from .exceptions import (
    AuthorizationError,
    NetworkError,
    RateLimitError,
    RpcError,
    RpcTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_CODES = {-32005, 429}
AUTH_MARKERS = ("invalid api key", "unauthorized", "forbidden", "api key")
RATE_LIMIT_MARKERS = ("rate limit", "too many requests")


class LedgerClient(Protocol):
    """What the interval engine needs from a ledger."""

    def get_mint_info(self, mint: str) -> Optional[MintInfo]: ...

    def get_largest_accounts(self, mint: str) -> List[HolderAccount]: ...

    def get_signatures_for_address(
        self, address: str, limit: int
    ) -> Optional[List[SignatureInfo]]: ...

    def get_transaction(self, signature: str) -> Optional[dict]: ...

    def get_account_owner(self, address: str) -> Optional[str]: ...


def with_retry(
    fn: Callable[[], T],
    label: str,
    delay: float = RPC_RETRY_DELAY,
    max_attempts: int = RPC_MAX_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[T]:
    """Run fn, retrying transient failures.

    Args:
        fn: Zero-argument call to attempt.
        label: Short description for log lines.
        delay: Fixed wait between attempts, in seconds.
        max_attempts: Total attempts before giving up.
        sleep: Injected for tests.

    Returns:
        fn's result, or None if every attempt hit a rate limit or timeout.

    Raises:
        AuthorizationError: Immediately, never retried.
        RpcError: Any other non-transient failure.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except (RateLimitError, RpcTimeoutError) as exc:
            if attempt >= max_attempts:
                logger.warning("%s failed after %d attempts: %s", label, attempt, exc.message)
                return None
            wait = delay
            if isinstance(exc, RateLimitError) and exc.retry_after_seconds:
                wait = max(delay, exc.retry_after_seconds)
            logger.info("%s: %s, retrying in %.1fs (%d/%d)", label, exc.message, wait, attempt, max_attempts)
            sleep(wait)
    return None


def _classify_rpc_error(error: Dict[str, Any], rpc_url: str) -> RpcError:
    code = error.get("code")
    message = str(error.get("message", "RPC error"))
    lowered = message.lower()
    if code in RATE_LIMIT_CODES or any(m in lowered for m in RATE_LIMIT_MARKERS):
        return RateLimitError(message, rpc_url=rpc_url, details={"code": code})
    if any(m in lowered for m in AUTH_MARKERS):
        return AuthorizationError(message, rpc_url=rpc_url, details={"code": code})
    return RpcError(message, rpc_url=rpc_url, details={"code": code})


class SolanaRpcClient:
    """Thin JSON-RPC wrapper over requests with tokenwatch's retry policy."""

    def __init__(
        self,
        rpc_url: str,
        timeout: int = RPC_TIMEOUT,
        session: Optional[requests.Session] = None,
        retry_delay: float = RPC_RETRY_DELAY,
        tx_retry_delay: float = TX_RETRY_DELAY,
        max_attempts: int = RPC_MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not rpc_url:
            raise ValueError("rpc_url is required")
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.retry_delay = retry_delay
        self.tx_retry_delay = tx_retry_delay
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._ids = itertools.count(1)

    def call(self, method: str, params: Optional[list] = None) -> Any:
        """Perform one JSON-RPC request and return its result.

        Raises:
            RpcTimeoutError, NetworkError, RateLimitError,
            AuthorizationError, RpcError.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            resp = self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise RpcTimeoutError(f"{method} timed out", rpc_url=self.rpc_url) from exc
        except requests.exceptions.RequestException as exc:
            raise NetworkError(f"{method} failed: {exc}", rpc_url=self.rpc_url) from exc

        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After")
            raise RateLimitError(
                f"{method} rate limited",
                rpc_url=self.rpc_url,
                retry_after_seconds=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if resp.status_code in (401, 403):
            raise AuthorizationError(
                f"{method} unauthorized (HTTP {resp.status_code})",
                rpc_url=self.rpc_url,
                status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            raise RpcError(
                f"{method} failed with HTTP {resp.status_code}",
                rpc_url=self.rpc_url,
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise RpcError(f"{method} returned invalid JSON", rpc_url=self.rpc_url) from exc

        if isinstance(body, dict) and body.get("error"):
            raise _classify_rpc_error(body["error"], self.rpc_url)
        if not isinstance(body, dict) or "result" not in body:
            raise RpcError(f"{method} returned no result", rpc_url=self.rpc_url)
        return body["result"]

    def _retrying(self, fn: Callable[[], T], label: str, delay: Optional[float] = None) -> Optional[T]:
        return with_retry(
            fn,
            label,
            delay=self.retry_delay if delay is None else delay,
            max_attempts=self.max_attempts,
            sleep=self._sleep,
        )

    # -- ledger operations -------------------------------------------------

    def get_account_owner(self, address: str) -> Optional[str]:
        """Owning program of an account, or None if it does not exist."""
        def _fetch() -> Optional[str]:
            result = self.call("getAccountInfo", [address, {"encoding": "jsonParsed"}])
            value = (result or {}).get("value")
            return value.get("owner") if value else None

        return self._retrying(_fetch, f"getAccountInfo({address[:8]})")

    def get_mint_info(self, mint: str) -> Optional[MintInfo]:
        """Decimals, supply, authorities and owning program of a mint."""
        def _fetch() -> Optional[MintInfo]:
            result = self.call("getAccountInfo", [mint, {"encoding": "jsonParsed"}])
            value = (result or {}).get("value")
            if not value:
                raise RpcError(f"Mint account {mint} not found", rpc_url=self.rpc_url)
            data = value.get("data")
            parsed = data.get("parsed") if isinstance(data, dict) else None
            if not parsed or parsed.get("type") != "mint":
                return MintInfo(
                    decimals=0,
                    supply_raw=0,
                    mint_authority=None,
                    freeze_authority=None,
                    program=value.get("owner", ""),
                )
            info = parsed.get("info") or {}
            return MintInfo(
                decimals=int(info.get("decimals", 0)),
                supply_raw=int(info.get("supply", 0)),
                mint_authority=info.get("mintAuthority"),
                freeze_authority=info.get("freezeAuthority"),
                program=value.get("owner", ""),
                name=_metadata_name(info),
            )

        return self._retrying(_fetch, f"getMintInfo({mint[:8]})")

    def get_largest_accounts(self, mint: str) -> List[HolderAccount]:
        """Largest token accounts of a mint, with owners resolved where possible."""
        def _fetch() -> List[HolderAccount]:
            result = self.call("getTokenLargestAccounts", [mint])
            entries = (result or {}).get("value") or []
            addresses = [e.get("address") for e in entries if e.get("address")]
            owners: Dict[str, Optional[str]] = {}
            if addresses:
                multi = self.call("getMultipleAccounts", [addresses, {"encoding": "jsonParsed"}])
                for address, acct in zip(addresses, (multi or {}).get("value") or []):
                    owners[address] = _token_account_owner(acct)
            holders = []
            for entry in entries:
                address = entry.get("address")
                if not address:
                    continue
                amount = entry.get("uiAmountString") or entry.get("uiAmount") or 0
                holders.append(HolderAccount(
                    address=address,
                    owner=owners.get(address),
                    amount=float(amount),
                ))
            return holders

        return self._retrying(_fetch, f"getTokenLargestAccounts({mint[:8]})") or []

    def get_signatures_for_address(self, address: str, limit: int) -> Optional[List[SignatureInfo]]:
        """Recent signatures touching an address, newest first. None if degraded."""
        def _fetch() -> List[SignatureInfo]:
            result = self.call("getSignaturesForAddress", [address, {"limit": limit}]) or []
            return [
                SignatureInfo(
                    signature=item["signature"],
                    block_time=item.get("blockTime"),
                    slot=int(item.get("slot") or 0),
                    failed=item.get("err") is not None,
                )
                for item in result
                if item.get("signature")
            ]

        return self._retrying(_fetch, f"getSignaturesForAddress({address[:8]})")

    def get_transaction(self, signature: str) -> Optional[dict]:
        """Full jsonParsed transaction. None if missing or degraded."""
        def _fetch() -> Optional[dict]:
            return self.call("getTransaction", [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": "confirmed",
                },
            ])

        return self._retrying(_fetch, f"getTransaction({signature[:8]})", delay=self.tx_retry_delay)

    def close(self) -> None:
        self.session.close()


def _metadata_name(info: dict) -> Optional[str]:
    """Token name from the Token-2022 metadata extension, if present."""
    for ext in info.get("extensions") or []:
        if ext.get("extension") == "tokenMetadata":
            name = (ext.get("state") or {}).get("name")
            if name:
                return name.strip()
    return None


def _token_account_owner(acct: Optional[dict]) -> Optional[str]:
    if not acct:
        return None
    data = acct.get("data")
    if not isinstance(data, dict):
        return None
    return ((data.get("parsed") or {}).get("info") or {}).get("owner")
