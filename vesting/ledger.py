"""
ledger.py - The token ledger the vesting units run on

Holds wallet balances and the registered units: the token, plus every
vesting contract, whose terms and grants live in unit state. Vesting code
reads it through the LedgerView methods and hands back PendingTransactions.
execute() is the one place anything changes.

The transaction log doubles as the audit trail. events(), clone_at() and
replay() are all derived from it.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Set, Optional, Tuple
import copy

from .core import (
    Transaction, Unit, Move, ContractEvent, PendingTransaction, ExecuteResult,
    UnitState, UnitStateChange,
    SYSTEM_WALLET,
    LedgerError, UnitNotRegistered, WalletNotRegistered,
    _freeze_state,
)


ZERO = Decimal("0")
EPOCH = datetime(1970, 1, 1)


class Ledger:
    """
    Double-entry token ledger hosting the vesting units.

    execute() is all-or-nothing: token moves, unit state writes and any
    units or custody wallets the transaction registers land together or not
    at all. A state write whose old_state no longer matches the unit is
    refused, so two operations computed from one read cannot both land.

    Calls must be serialized; the ledger does no locking.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(token("CRUNCH", "Crunch Token"))
        ledger.register_wallet("treasury")
        ledger.execute(build_transaction(ledger, [
            token_move(1_000, "CRUNCH", SYSTEM_WALLET, "treasury", "mint_001"),
        ]))
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Args:
            name: Ledger name, part of every exec_id
            initial_time: Logical clock start (default: 1970-01-01)
            verbose: Print registrations, applied transactions and rejections
            test_mode: Allow set_balance() for fixtures
        """
        self.name = name
        self.verbose = verbose
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = {SYSTEM_WALLET}
        self.transaction_log: List[Transaction] = []
        self.seen_intent_ids: Set[str] = set()
        self._holdings: Dict[str, Dict[str, Decimal]] = {SYSTEM_WALLET: {}}
        self._current_time = initial_time or EPOCH
        self._test_mode = test_mode

    # ========================================================================
    # READS (LedgerView)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def _require_unit(self, symbol: str) -> Unit:
        unit = self.units.get(symbol)
        if unit is None:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return unit

    def _require_wallet(self, wallet_id: str) -> None:
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Raises:
            WalletNotRegistered, UnitNotRegistered
        """
        self._require_wallet(wallet_id)
        self._require_unit(unit_symbol)
        return self._holdings[wallet_id].get(unit_symbol, ZERO)

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Deep copy of the unit's state; mutating it does not touch the ledger."""
        return copy.deepcopy(self._require_unit(unit_symbol).state)

    def get_unit(self, symbol: str) -> Unit:
        return self._require_unit(symbol)

    def list_wallets(self) -> Set[str]:
        return set(self.registered_wallets)

    def list_units(self) -> List[str]:
        return sorted(self.units)

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Sum of every wallet's balance of the unit, the system wallet included.

        Minting debits SYSTEM_WALLET, so a supply issued through transactions
        sums to zero, and one seeded with set_balance() sums to what was set.
        Either way the figure never changes while vesting runs.
        """
        self._require_unit(unit_symbol)
        return sum(
            (self._holdings[w].get(unit_symbol, ZERO) for w in sorted(self.registered_wallets)),
            ZERO,
        )

    def events(self, kind: Optional[str] = None, unit: Optional[str] = None) -> List[ContractEvent]:
        """Events of applied transactions, oldest first, filtered by kind and emitting unit."""
        return [
            ev
            for tx in self.transaction_log
            for ev in tx.events
            if (kind is None or ev.kind == kind) and (unit is None or ev.unit == unit)
        ]

    # ========================================================================
    # CLOCK AND REGISTRATION
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """Move the logical clock forward. Raises ValueError for a past time."""
        if new_time < self._current_time:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._current_time}")
        self._current_time = new_time

    def register_wallet(self, wallet_id: str) -> str:
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self._holdings[wallet_id] = {}
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Overwrite a balance outside any transaction.

        Fixtures only: nothing is logged, so replay() cannot reproduce it.
        Raises LedgerError unless the ledger was created with test_mode=True.
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() needs a ledger created with test_mode=True; "
                "move tokens with build_transaction() and execute() instead"
            )
        self._require_wallet(wallet_id)
        self._require_unit(unit_symbol)
        self._holdings[wallet_id][unit_symbol] = Decimal(str(quantity))

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Apply a PendingTransaction, or refuse it and leave no trace.

        New units and wallets are registered first so the checks can see
        them, then dropped again if any check fails.

        Returns:
            APPLIED, including for a pending transaction with nothing in it
                (such a transaction is not logged)
            ALREADY_APPLIED if this intent_id was applied before
            REJECTED if a check failed
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED
        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        staged_units: List[str] = []
        staged_wallets: List[str] = []
        reason = self._stage(pending, staged_units, staged_wallets) or self._first_failure(pending)
        if reason:
            for symbol in staged_units:
                del self.units[symbol]
            for wallet in staged_wallets:
                self.registered_wallets.discard(wallet)
                del self._holdings[wallet]
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        sequence = len(self.transaction_log)
        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
            wallets_to_create=pending.wallets_to_create,
            events=pending.events,
        )
        for move in tx.moves:
            self._book(move, 1)
        for sc in tx.state_changes:
            self._install_state(sc.unit, sc.new_state)
        self.transaction_log.append(tx)
        self.seen_intent_ids.add(tx.intent_id)

        if self.verbose:
            for wallet in tx.wallets_to_create:
                print(f"👛 Opened wallet: {wallet}")
            print(tx.render("✓ APPLIED"))
        return ExecuteResult.APPLIED

    def _exec_id(self, sequence: int) -> str:
        """exec:{ledger}:{sequence:012d}:{clock in microseconds}"""
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def _stage(self, pending: PendingTransaction, units: List[str], wallets: List[str]) -> Optional[str]:
        """Register the transaction's new units and wallets, recording what was added."""
        for unit in pending.units_to_create:
            if unit.symbol in self.units:
                return f"unit already registered: {unit.symbol}"
            self.register_unit(unit)
            units.append(unit.symbol)
        for wallet in pending.wallets_to_create:
            if wallet in self.registered_wallets:
                return f"wallet already registered: {wallet}"
            self.register_wallet(wallet)
            wallets.append(wallet)
        return None

    def _first_failure(self, pending: PendingTransaction) -> Optional[str]:
        for check in (self._check_clock, self._check_moves, self._check_state_writes, self._check_limits):
            reason = check(pending)
            if reason:
                return reason
        return None

    def _check_clock(self, pending: PendingTransaction) -> Optional[str]:
        if pending.timestamp > self._current_time:
            return f"future timestamp: {pending.timestamp} > {self._current_time}"
        return None

    def _check_moves(self, pending: PendingTransaction) -> Optional[str]:
        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return f"unit not registered: {move.unit_symbol}"
            for wallet in (move.source, move.dest):
                if wallet not in self.registered_wallets:
                    return f"wallet not registered: {wallet}"
        return None

    def _check_state_writes(self, pending: PendingTransaction) -> Optional[str]:
        """One write per unit, each over the state the unit holds right now."""
        written: Set[str] = set()
        for sc in pending.state_changes:
            unit = self.units.get(sc.unit)
            if unit is None:
                return f"unit not registered: {sc.unit}"
            if sc.unit in written:
                return f"multiple state changes for {sc.unit}"
            written.add(sc.unit)
            if sc.old_state is None:
                continue
            drift = UnitStateChange(sc.unit, sc.old_state, unit.state).changed_fields()
            if drift:
                key = min(drift)
                expected, found = drift[key]
                if self.verbose:
                    print(f"⚠️  STALE STATE DETECTED for {sc.unit}.{key}: "
                          f"expected {expected!r}, found {found!r}")
                return f"stale state for {sc.unit}"
        return None

    def _check_limits(self, pending: PendingTransaction) -> Optional[str]:
        """Net effect per (wallet, unit) must keep every balance in bounds. SYSTEM_WALLET is exempt."""
        net: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        for move in pending.moves:
            net[move.source, move.unit_symbol] -= move.quantity
            net[move.dest, move.unit_symbol] += move.quantity

        for (wallet, symbol), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[symbol]
            after = unit.round(self._holdings[wallet].get(symbol, ZERO) + delta)
            if after < unit.min_balance:
                return f"{wallet} {symbol}: {after} < min {unit.min_balance}"
            if after > unit.max_balance:
                return f"{wallet} {symbol}: {after} > max {unit.max_balance}"
        return None

    def _book(self, move: Move, sign: int) -> None:
        """Post a move (sign=1) or take it back out (sign=-1)."""
        unit = self._require_unit(move.unit_symbol)
        amount = move.quantity * sign
        for wallet, delta in ((move.source, -amount), (move.dest, amount)):
            held = self._holdings[wallet]
            held[move.unit_symbol] = unit.round(held.get(move.unit_symbol, ZERO) + delta)

    def _install_state(self, symbol: str, state: Optional[UnitState]) -> None:
        # Units are frozen: a state write swaps in a new Unit
        fresh = copy.deepcopy(state) if isinstance(state, dict) else {}
        self.units[symbol] = replace(self.units[symbol], _frozen_state=_freeze_state(fresh))

    # ========================================================================
    # HISTORY
    # ========================================================================

    def clone(self) -> Ledger:
        """Independent deep copy, including the log and the applied intents."""
        twin = Ledger(self.name, self._current_time, verbose=self.verbose, test_mode=self._test_mode)
        twin.units = dict(self.units)
        for symbol, unit in self.units.items():
            twin._install_state(symbol, unit.state)
        twin.registered_wallets = set(self.registered_wallets)
        twin._holdings = {wallet: dict(held) for wallet, held in self._holdings.items()}
        twin.transaction_log = list(self.transaction_log)
        twin.seen_intent_ids = set(self.seen_intent_ids)
        return twin

    def clone_at(self, target_time: datetime) -> Ledger:
        """
        The ledger as it stood at target_time.

        Works backward from the newest transaction executed after
        target_time. Each one has its moves reversed, every unit it wrote
        reset to the old_state the write was made over, and any units or
        wallets it registered removed.

        Raises:
            ValueError: If target_time is after the ledger's clock
        """
        if target_time > self._current_time:
            raise ValueError(f"Target time {target_time} is in the future")

        past = self.clone()
        past._current_time = target_time
        while past.transaction_log and past.transaction_log[-1].execution_time > target_time:
            past._take_back(past.transaction_log.pop())
        past.seen_intent_ids = {tx.intent_id for tx in past.transaction_log}
        return past

    def _take_back(self, tx: Transaction) -> None:
        for move in reversed(tx.moves):
            self._book(move, -1)
        for sc in tx.state_changes:
            if sc.unit in self.units:
                self._install_state(sc.unit, sc.old_state)
        for unit in tx.units_to_create:
            del self.units[unit.symbol]
            for held in self._holdings.values():
                held.pop(unit.symbol, None)
        for wallet in tx.wallets_to_create:
            self.registered_wallets.discard(wallet)
            self._holdings.pop(wallet, None)

    def replay(self, from_tx: int = 0) -> Ledger:
        """
        A fresh ledger built by re-executing the log from position from_tx.

        Wallets and units that predate the replayed transactions are set up
        first. Such a unit starts from the old_state of its first logged
        write, or from its current state when nothing wrote it. Balances
        seeded with set_balance() are not in the log and are not reproduced,
        so a ledger meant for replay mints through SYSTEM_WALLET.

        Raises:
            LedgerError: If a logged transaction is rejected on replay
        """
        window = self.transaction_log[from_tx:]
        fresh = Ledger(f"{self.name}_replayed", EPOCH, verbose=self.verbose, test_mode=self._test_mode)

        created_units = {unit.symbol for tx in window for unit in tx.units_to_create}
        created_wallets = {wallet for tx in window for wallet in tx.wallets_to_create}
        starting_state: Dict[str, Optional[UnitState]] = {}
        for tx in reversed(window):
            for sc in tx.state_changes:
                starting_state[sc.unit] = sc.old_state

        for symbol, unit in self.units.items():
            if symbol not in created_units:
                fresh.units[symbol] = unit
                fresh._install_state(symbol, starting_state.get(symbol, unit.state))
        for wallet in sorted(self.registered_wallets - created_wallets - {SYSTEM_WALLET}):
            fresh.register_wallet(wallet)

        for tx in window:
            if tx.timestamp > fresh.current_time:
                fresh.advance_time(tx.timestamp)
            outcome = fresh.execute(PendingTransaction(
                moves=tx.moves,
                state_changes=tx.state_changes,
                origin=tx.origin,
                timestamp=tx.timestamp,
                units_to_create=tx.units_to_create,
                wallets_to_create=tx.wallets_to_create,
                events=tx.events,
            ))
            if outcome is ExecuteResult.REJECTED:
                raise LedgerError(f"Replay failed at tx {tx.exec_id}")
        return fresh
