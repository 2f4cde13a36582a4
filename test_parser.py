"""Transaction parsing into TransferEvents."""

import copy

from tokenwatch.config.thresholds import SPL_TOKEN_PROGRAM
from tokenwatch.core.tx_parser import parse_transfer_events
from tokenwatch.integrations.exceptions import TransactionParseError

from ledger_fixtures import BASE_TIME, MINT, ata, make_supply_tx, make_transfer_tx

OTHER_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"


def test_transfer_checked():
    print("=== transferChecked ===")
    tx = make_transfer_tx("sig1", "ALICE", "BOB", 1500.5)
    events = parse_transfer_events(tx, MINT)
    assert len(events) == 1
    e = events[0]
    assert e.type == "transfer"
    assert e.source == "ALICE" and e.destination == "BOB"  # owners, not token accounts
    assert e.amount == 1500.5
    assert e.signature == "sig1"
    assert e.timestamp == BASE_TIME
    print("  owner-resolved transfer: OK")


def test_inner_instruction():
    print("=== Inner Instruction ===")
    tx = make_transfer_tx("sig2", "ALICE", "BOB", 42.0, inner=True)
    events = parse_transfer_events(tx, MINT)
    assert [(e.source, e.destination, e.amount) for e in events] == [("ALICE", "BOB", 42.0)]
    print("  inner transfer parsed: OK")


def test_plain_transfer_uses_balance_decimals():
    print("=== Plain transfer ===")
    tx = make_transfer_tx("sig3", "ALICE", "BOB", 7.0)
    ix = tx["transaction"]["message"]["instructions"][0]
    ix["parsed"] = {
        "type": "transfer",
        "info": {"source": ata("ALICE"), "destination": ata("BOB"), "amount": "7000000"},
    }
    events = parse_transfer_events(tx, MINT)
    assert len(events) == 1 and events[0].amount == 7.0
    print("  raw amount scaled by decimals: OK")


def test_other_mint_ignored():
    print("=== Other Mint ===")
    tx = make_transfer_tx("sig4", "ALICE", "BOB", 5.0, mint=OTHER_MINT)
    assert parse_transfer_events(tx, MINT) == []
    print("  foreign mint -> no events: OK")


def test_mint_and_burn():
    print("=== Mint / Burn ===")
    minted = parse_transfer_events(make_supply_tx("m1", "mintTo", "TREASURY", 250.0), MINT)
    assert len(minted) == 1
    assert minted[0].type == "mint"
    assert minted[0].destination == "TREASURY"
    assert minted[0].source == "unknown"
    assert minted[0].amount == 250.0

    burned = parse_transfer_events(make_supply_tx("b1", "burn", "HOLDER", 30.0), MINT)
    assert len(burned) == 1
    assert burned[0].type == "burn"
    assert burned[0].source == "HOLDER"
    assert burned[0].amount == 30.0
    print("  mint and burn events: OK")


def test_balance_delta_fallback():
    print("=== Balance Delta Fallback ===")
    tx = make_transfer_tx("sig5", "ALICE", "BOB", 12.0)
    # Swap through an unparsed program: no token instruction survives
    tx["transaction"]["message"]["instructions"] = [
        {"programId": "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8", "accounts": [], "data": ""}
    ]
    events = parse_transfer_events(tx, MINT)
    assert [(e.source, e.destination, e.amount) for e in events] == [("ALICE", "BOB", 12.0)]
    print("  paired by matching deltas: OK")

    # Receiver without a matching sender
    one_sided = copy.deepcopy(tx)
    one_sided["meta"]["preTokenBalances"] = one_sided["meta"]["preTokenBalances"][1:]
    one_sided["meta"]["postTokenBalances"] = one_sided["meta"]["postTokenBalances"][1:]
    events = parse_transfer_events(one_sided, MINT)
    assert [(e.source, e.destination) for e in events] == [("unknown", "BOB")]
    print("  unmatched side -> unknown: OK")


def test_balance_deltas_resolve_unknown_account():
    print("=== Delta Reading Preferred ===")
    tx = make_transfer_tx("sig9", "ALICE", "BOB", 7.0)
    # Instruction names a source account missing from the balance entries
    ix = tx["transaction"]["message"]["instructions"][0]
    ix["parsed"]["info"]["source"] = "GHOSTACCT"
    events = parse_transfer_events(tx, MINT)
    assert [(e.source, e.destination, e.amount) for e in events] == [("ALICE", "BOB", 7.0)]
    print("  fewer unknown endpoints wins: OK")

    # Both readings fully resolved: instructions kept
    tied = make_transfer_tx("sig10", "ALICE", "BOB", 7.0)
    events = parse_transfer_events(tied, MINT)
    assert [(e.source, e.destination) for e in events] == [("ALICE", "BOB")]
    assert events[0].signature == "sig10"
    print("  tie keeps instruction reading: OK")


def test_failed_and_empty():
    print("=== Failed / Empty ===")
    tx = make_transfer_tx("sig6", "ALICE", "BOB", 1.0)
    tx["meta"]["err"] = {"InstructionError": [0, "Custom"]}
    assert parse_transfer_events(tx, MINT) == []
    assert parse_transfer_events(None, MINT) == []
    assert parse_transfer_events({"meta": {}}, MINT) == []
    print("  failed or incomplete payloads skipped: OK")


def test_malformed_raises():
    print("=== Malformed ===")
    tx = make_transfer_tx("sig7", "ALICE", "BOB", 1.0)
    tx["meta"]["preTokenBalances"] = [{"mint": MINT, "accountIndex": 1, "uiTokenAmount": {"uiAmountString": "abc"}}]
    try:
        parse_transfer_events(tx, MINT)
        assert False, "Should have raised"
    except TransactionParseError:
        print("  malformed amount rejected: OK")


def test_token_program_id_without_name():
    print("=== Program Id Match ===")
    tx = make_transfer_tx("sig8", "ALICE", "BOB", 3.0)
    ix = tx["transaction"]["message"]["instructions"][0]
    del ix["program"]
    assert ix["programId"] == SPL_TOKEN_PROGRAM
    assert len(parse_transfer_events(tx, MINT)) == 1
    print("  matched by program id: OK")


if __name__ == "__main__":
    test_transfer_checked()
    test_inner_instruction()
    test_plain_transfer_uses_balance_decimals()
    test_other_mint_ignored()
    test_mint_and_burn()
    test_balance_delta_fallback()
    test_balance_deltas_resolve_unknown_account()
    test_failed_and_empty()
    test_malformed_raises()
    test_token_program_id_without_name()
