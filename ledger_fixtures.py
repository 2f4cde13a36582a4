"""In-memory ledger and transaction builders shared by the tokenwatch tests."""

from typing import Dict, List, Optional

from tokenwatch.config.thresholds import SPL_TOKEN_PROGRAM
from tokenwatch.integrations.exceptions import AuthorizationError, RpcError
from tokenwatch.models.app_state import HolderAccount, MintInfo
from tokenwatch.models.events import SignatureInfo

MINT = "So11111111111111111111111111111111111111112"
DECIMALS = 6
BASE_TIME = 1_700_000_000


def _token_amount(amount: float, decimals: int = DECIMALS) -> dict:
    return {
        "amount": str(int(round(amount * 10 ** decimals))),
        "decimals": decimals,
        "uiAmount": amount,
        "uiAmountString": repr(float(amount)),
    }


def _balance(index: int, owner: str, amount: float, mint: str = MINT) -> dict:
    return {
        "accountIndex": index,
        "mint": mint,
        "owner": owner,
        "uiTokenAmount": _token_amount(amount),
    }


def ata(owner: str) -> str:
    """Deterministic fake token account for an owner."""
    return f"{owner}ATA"


def make_transfer_tx(
    signature: str,
    source: str,
    destination: str,
    amount: float,
    block_time: int = BASE_TIME,
    mint: str = MINT,
    extra_programs: Optional[List[str]] = None,
    inner: bool = False,
) -> dict:
    """jsonParsed transaction with one transferChecked between two owners."""
    src_acct, dst_acct = ata(source), ata(destination)
    ix = {
        "program": "spl-token",
        "programId": SPL_TOKEN_PROGRAM,
        "parsed": {
            "type": "transferChecked",
            "info": {
                "source": src_acct,
                "destination": dst_acct,
                "authority": source,
                "mint": mint,
                "tokenAmount": _token_amount(amount),
            },
        },
    }
    top_level = [{"programId": p, "accounts": [], "data": ""} for p in extra_programs or []]
    inner_ix = []
    if inner:
        inner_ix = [{"index": 0, "instructions": [ix]}]
    else:
        top_level.append(ix)
    return {
        "blockTime": block_time,
        "slot": 1,
        "meta": {
            "err": None,
            "preTokenBalances": [
                _balance(1, source, 1_000_000_000.0, mint),
                _balance(2, destination, 0.0, mint),
            ],
            "postTokenBalances": [
                _balance(1, source, 1_000_000_000.0 - amount, mint),
                _balance(2, destination, amount, mint),
            ],
            "innerInstructions": inner_ix,
        },
        "transaction": {
            "signatures": [signature],
            "message": {
                "accountKeys": [
                    {"pubkey": source, "signer": True, "writable": True},
                    {"pubkey": src_acct, "signer": False, "writable": True},
                    {"pubkey": dst_acct, "signer": False, "writable": True},
                    {"pubkey": SPL_TOKEN_PROGRAM, "signer": False, "writable": False},
                ] + [{"pubkey": p, "signer": False, "writable": False} for p in extra_programs or []],
                "instructions": top_level,
            },
        },
    }


def make_supply_tx(
    signature: str,
    kind: str,
    owner: str,
    amount: float,
    block_time: int = BASE_TIME,
) -> dict:
    """jsonParsed transaction with a single mintTo or burn."""
    acct = ata(owner)
    info = {"mint": MINT, "account": acct, "amount": str(int(amount * 10 ** DECIMALS))}
    if kind == "mintTo":
        info["mintAuthority"] = owner
        pre, post = 0.0, amount
    else:
        info["authority"] = owner
        pre, post = amount, 0.0
    return {
        "blockTime": block_time,
        "meta": {
            "err": None,
            "preTokenBalances": [_balance(1, owner, pre)],
            "postTokenBalances": [_balance(1, owner, post)],
            "innerInstructions": [],
        },
        "transaction": {
            "signatures": [signature],
            "message": {
                "accountKeys": [
                    {"pubkey": owner, "signer": True, "writable": True},
                    {"pubkey": acct, "signer": False, "writable": True},
                ],
                "instructions": [{
                    "program": "spl-token",
                    "programId": SPL_TOKEN_PROGRAM,
                    "parsed": {"type": kind, "info": info},
                }],
            },
        },
    }


def default_mint_info(supply_raw: int = 1_000_000_000_000, mint_authority: Optional[str] = "AUTH") -> MintInfo:
    return MintInfo(
        decimals=DECIMALS,
        supply_raw=supply_raw,
        mint_authority=mint_authority,
        freeze_authority=None,
        program=SPL_TOKEN_PROGRAM,
        name="Test Token",
    )


class FakeLedger:
    """Scriptable stand-in for SolanaRpcClient."""

    def __init__(
        self,
        mint_info: Optional[MintInfo] = None,
        holders: Optional[List[HolderAccount]] = None,
        owner: Optional[str] = SPL_TOKEN_PROGRAM,
    ) -> None:
        self.mint_info = mint_info or default_mint_info()
        self.holders = holders or []
        self.owner = owner
        self.signatures: Dict[str, List[SignatureInfo]] = {}
        self.transactions: Dict[str, Optional[dict]] = {}
        self.failing_signatures: Dict[str, Exception] = {}
        self.mint_info_calls = 0
        self.signature_calls: List[str] = []
        self.tx_calls: List[str] = []
        self.unauthorized = False
        self.mint_info_error: Optional[Exception] = None

    def add_transaction(self, signature: str, tx: Optional[dict], block_time: int, address: str = MINT) -> None:
        self.transactions[signature] = tx
        listing = self.signatures.setdefault(address, [])
        listing.append(SignatureInfo(signature=signature, block_time=block_time))
        listing.sort(key=lambda s: s.block_time or 0, reverse=True)

    def get_account_owner(self, address: str) -> Optional[str]:
        return self.owner

    def get_mint_info(self, mint: str) -> Optional[MintInfo]:
        self.mint_info_calls += 1
        if self.unauthorized:
            raise AuthorizationError("invalid api key")
        if self.mint_info_error is not None:
            raise self.mint_info_error
        return self.mint_info

    def get_largest_accounts(self, mint: str) -> List[HolderAccount]:
        return list(self.holders)

    def get_signatures_for_address(self, address: str, limit: int) -> Optional[List[SignatureInfo]]:
        self.signature_calls.append(address)
        return list(self.signatures.get(address, []))[:limit]

    def get_transaction(self, signature: str) -> Optional[dict]:
        self.tx_calls.append(signature)
        if signature in self.failing_signatures:
            raise self.failing_signatures[signature]
        return self.transactions.get(signature)


__all__ = [
    "MINT",
    "DECIMALS",
    "BASE_TIME",
    "FakeLedger",
    "RpcError",
    "ata",
    "default_mint_info",
    "make_supply_tx",
    "make_transfer_tx",
]
