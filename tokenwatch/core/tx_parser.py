"""Extract TransferEvents for one mint from a jsonParsed transaction.

Two readings are built for every transaction: one from token instructions
(top level and inner) and one from pre/post token balance deltas. Either
reading alone confirms a movement. When both exist, the one with fewer
unresolved endpoints wins; ties go to the instruction reading. Token
accounts are mapped to their owners using the balance entries, so events
carry owner addresses where known.
"""

from typing import Any, Dict, List, Optional, Tuple

from ..config.thresholds import TOKEN_PROGRAMS
from ..integrations.exceptions import TransactionParseError
from ..models.events import UNKNOWN_WALLET, TransferEvent

TOKEN_PROGRAM_NAMES = {"spl-token", "spl-token-2022"}

TRANSFER_TYPES = {"transfer", "transferChecked"}
MINT_TYPES = {"mintTo", "mintToChecked"}
BURN_TYPES = {"burn", "burnChecked"}

DELTA_EPSILON = 1e-6


class _BalanceEntry:
    __slots__ = ("account", "owner", "pre", "post", "decimals")

    def __init__(self, account: str) -> None:
        self.account = account
        self.owner: Optional[str] = None
        self.pre = 0.0
        self.post = 0.0
        self.decimals: Optional[int] = None

    @property
    def change(self) -> float:
        return self.post - self.pre


def _account_keys(message: dict) -> List[str]:
    keys: List[str] = []
    for key in message.get("accountKeys") or []:
        if isinstance(key, dict):
            keys.append(key.get("pubkey", ""))
        else:
            keys.append(str(key))
    return keys


def _ui_amount(token_amount: Any) -> Optional[float]:
    """Read a UI amount from a uiTokenAmount/tokenAmount object."""
    if token_amount is None:
        return None
    if isinstance(token_amount, (int, float)):
        return float(token_amount)
    if isinstance(token_amount, str):
        return float(token_amount)
    if token_amount.get("uiAmountString") is not None:
        return float(token_amount["uiAmountString"])
    if token_amount.get("uiAmount") is not None:
        return float(token_amount["uiAmount"])
    if token_amount.get("amount") is not None and token_amount.get("decimals") is not None:
        return int(token_amount["amount"]) / (10 ** int(token_amount["decimals"]))
    return None


def _balance_entries(meta: dict, keys: List[str], mint: str) -> Dict[str, _BalanceEntry]:
    """Token account address -> balance entry, for accounts of this mint."""
    entries: Dict[str, _BalanceEntry] = {}
    for field_name, attr in (("preTokenBalances", "pre"), ("postTokenBalances", "post")):
        for bal in meta.get(field_name) or []:
            if bal.get("mint") != mint:
                continue
            index = bal.get("accountIndex")
            account = keys[index] if isinstance(index, int) and index < len(keys) else f"index:{index}"
            entry = entries.setdefault(account, _BalanceEntry(account))
            entry.owner = bal.get("owner") or entry.owner
            ui = bal.get("uiTokenAmount") or {}
            setattr(entry, attr, _ui_amount(ui) or 0.0)
            if ui.get("decimals") is not None:
                entry.decimals = int(ui["decimals"])
    return entries


def _iter_token_instructions(tx: dict) -> List[dict]:
    message = tx["transaction"].get("message") or {}
    found = [ix for ix in message.get("instructions") or [] if _is_token_ix(ix)]
    for inner in (tx.get("meta") or {}).get("innerInstructions") or []:
        found.extend(ix for ix in inner.get("instructions") or [] if _is_token_ix(ix))
    return found


def _is_token_ix(ix: dict) -> bool:
    return (
        ix.get("program") in TOKEN_PROGRAM_NAMES or ix.get("programId") in TOKEN_PROGRAMS
    ) and isinstance(ix.get("parsed"), dict)


class _Resolver:
    """Resolves token accounts to owners and raw amounts to UI units."""

    def __init__(self, entries: Dict[str, _BalanceEntry], decimals: Optional[int]) -> None:
        self.entries = entries
        self.decimals = decimals
        if self.decimals is None:
            for entry in entries.values():
                if entry.decimals is not None:
                    self.decimals = entry.decimals
                    break

    def owner(self, account: Optional[str]) -> str:
        if not account:
            return UNKNOWN_WALLET
        entry = self.entries.get(account)
        if entry and entry.owner:
            return entry.owner
        return account

    def known(self, account: Optional[str]) -> bool:
        return bool(account) and account in self.entries

    def amount(self, info: dict) -> float:
        ui = _ui_amount(info.get("tokenAmount"))
        if ui is not None:
            return ui
        raw = info.get("amount")
        if raw is None or self.decimals is None:
            return 0.0
        return int(raw) / (10 ** self.decimals)


def _instruction_events(
    tx: dict,
    mint: str,
    resolver: _Resolver,
    signature: str,
    timestamp: int,
) -> List[TransferEvent]:
    events: List[TransferEvent] = []
    for ix in _iter_token_instructions(tx):
        parsed = ix["parsed"]
        kind = parsed.get("type")
        info = parsed.get("info") or {}

        if kind in TRANSFER_TYPES:
            src, dst = info.get("source"), info.get("destination")
            if info.get("mint"):
                if info["mint"] != mint:
                    continue
            elif not (resolver.known(src) or resolver.known(dst)):
                # Plain transfer carries no mint; only keep ours
                continue
            amount = resolver.amount(info)
            if amount <= 0:
                continue
            events.append(TransferEvent(
                type="transfer",
                source=resolver.owner(src),
                destination=resolver.owner(dst),
                amount=amount,
                signature=signature,
                timestamp=timestamp,
            ))

        elif kind in MINT_TYPES and info.get("mint") == mint:
            events.append(TransferEvent(
                type="mint",
                source=UNKNOWN_WALLET,
                destination=resolver.owner(info.get("account")),
                amount=resolver.amount(info),
                signature=signature,
                timestamp=timestamp,
            ))

        elif kind in BURN_TYPES and info.get("mint") == mint:
            events.append(TransferEvent(
                type="burn",
                source=resolver.owner(info.get("account")),
                destination=UNKNOWN_WALLET,
                amount=resolver.amount(info),
                signature=signature,
                timestamp=timestamp,
            ))
    return events


def _delta_events(
    entries: Dict[str, _BalanceEntry],
    signature: str,
    timestamp: int,
) -> List[TransferEvent]:
    """Pair senders and receivers by matching balance deltas.

    Each receiver is matched to an unused sender with an equal and opposite
    change; unmatched sides become "unknown".
    """
    senders: List[Tuple[str, float]] = []
    receivers: List[Tuple[str, float]] = []
    for account in sorted(entries):
        entry = entries[account]
        change = entry.change
        owner = entry.owner or account
        if change > DELTA_EPSILON:
            receivers.append((owner, change))
        elif change < -DELTA_EPSILON:
            senders.append((owner, -change))

    events: List[TransferEvent] = []
    used = set()
    for receiver, amount in receivers:
        source = UNKNOWN_WALLET
        for i, (sender, sent) in enumerate(senders):
            if i not in used and abs(sent - amount) < DELTA_EPSILON:
                source = sender
                used.add(i)
                break
        events.append(TransferEvent("transfer", source, receiver, amount, signature, timestamp))
    for i, (sender, sent) in enumerate(senders):
        if i not in used:
            events.append(TransferEvent("transfer", sender, UNKNOWN_WALLET, sent, signature, timestamp))
    return events


def _unresolved_endpoints(events: List[TransferEvent], entries: Dict[str, _BalanceEntry]) -> int:
    """Endpoints that are "unknown" or a token account with no known owner.

    The absent side of a mint or burn is not counted.
    """
    owners = {e.owner for e in entries.values() if e.owner}

    def unresolved(wallet: str) -> bool:
        return wallet == UNKNOWN_WALLET or (bool(owners) and wallet not in owners)

    count = 0
    for event in events:
        if event.type != "mint" and unresolved(event.source):
            count += 1
        if event.type != "burn" and unresolved(event.destination):
            count += 1
    return count


def choose_interpretation(
    instruction_events: List[TransferEvent],
    delta_events: List[TransferEvent],
    entries: Dict[str, _BalanceEntry],
) -> List[TransferEvent]:
    """Pick between the instruction and balance-delta readings of one transaction.

    Supply changes can only be seen in instructions, so a reading with a
    mint or burn is kept as is.
    """
    if not delta_events:
        return instruction_events
    if not instruction_events:
        return delta_events
    if any(e.type != "transfer" for e in instruction_events):
        return instruction_events
    if _unresolved_endpoints(delta_events, entries) < _unresolved_endpoints(instruction_events, entries):
        return delta_events
    return instruction_events


def parse_transfer_events(
    tx: Optional[dict],
    mint: str,
    signature: Optional[str] = None,
    decimals: Optional[int] = None,
) -> List[TransferEvent]:
    """Parse one jsonParsed transaction into TransferEvents for a mint.

    Args:
        tx: getTransaction payload (jsonParsed encoding).
        mint: Mint address to keep events for.
        signature: Signature to stamp on events; read from the payload if omitted.
        decimals: Mint decimals, used when an instruction only has a raw amount.

    Returns:
        Events in instruction order. Empty for failed or irrelevant
        transactions.

    Raises:
        TransactionParseError: If the payload is structurally malformed.
    """
    if not tx or not isinstance(tx.get("transaction"), dict) or not isinstance(tx.get("meta"), dict):
        return []
    meta = tx["meta"]
    if meta.get("err"):
        return []

    try:
        message = tx["transaction"].get("message") or {}
        keys = _account_keys(message)
        sig = signature or (tx["transaction"].get("signatures") or ["unknown"])[0]
        timestamp = int(tx.get("blockTime") or 0)
        entries = _balance_entries(meta, keys, mint)
        resolver = _Resolver(entries, decimals)

        events = choose_interpretation(
            _instruction_events(tx, mint, resolver, sig, timestamp),
            _delta_events(entries, sig, timestamp),
            entries,
        )
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise TransactionParseError(
            f"Malformed transaction {signature or '?'}: {exc}",
            details={"signature": signature},
        ) from exc

    return events
