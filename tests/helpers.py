"""
helpers.py - Shared helpers for vesting tests

Ledger plumbing used by fixtures and test modules alike.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Tuple

from vesting import Ledger, Move, ExecuteResult, SYSTEM_WALLET, build_transaction


T0 = datetime(2025, 1, 1)
TOKEN = "CRUNCH"
INITIAL_SUPPLY = Decimal(1_000_000)


def mint(ledger: Ledger, wallet: str, amount: int, ref: str) -> None:
    """Issue tokens from the system wallet through a logged transaction."""
    tx = build_transaction(ledger, [Move(Decimal(amount), TOKEN, SYSTEM_WALLET, wallet, ref)])
    assert ledger.execute(tx) == ExecuteResult.APPLIED


def transfer(ledger: Ledger, source: str, dest: str, amount: int, ref: str) -> None:
    tx = build_transaction(ledger, [Move(Decimal(amount), TOKEN, source, dest, ref)])
    assert ledger.execute(tx) == ExecuteResult.APPLIED


def advance(ledger: Ledger, seconds: int) -> datetime:
    """Move the ledger clock forward and return the new time."""
    new_time = ledger.current_time + timedelta(seconds=seconds)
    ledger.advance_time(new_time)
    return new_time


def balance(ledger: Ledger, wallet: str) -> int:
    return int(ledger.get_balance(wallet, TOKEN))


def apply(ledger: Ledger, pending) -> None:
    """Execute and require the transaction to be applied."""
    result = ledger.execute(pending)
    assert result == ExecuteResult.APPLIED, f"expected APPLIED, got {result}"


def verify_conservation(ledger: Ledger, expected_total: Decimal) -> Tuple[bool, Decimal]:
    """
    Verify the token supply is unchanged.

    Returns:
        (is_conserved, actual_total)
    """
    actual = ledger.total_supply(TOKEN)
    return actual == expected_total, actual
