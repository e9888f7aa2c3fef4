"""
lifecycle_engine.py - Drives vesting forward in time

Each step(timestamp) moves the ledger clock, runs the scheduled events that
have come due, then polls the contract registered for each unit type
(auto-release sweeps). A transaction can make more work due, so the pair
repeats until a pass applies nothing, up to max_passes.
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .core import PendingTransaction, Transaction, ExecuteResult, LedgerError, SmartContract
from .ledger import Ledger
from .scheduled_events import Event, EventScheduler
from .event_handlers import create_default_scheduler


class LifecycleEngine:
    """
    Scheduled events plus contract polling over one ledger.

    Scheduled events run with the unit administrator's authority (see
    event_handlers). Contracts are looked up by unit type and called as
    contract(ledger, symbol, timestamp) for every registered unit of that
    type, in symbol order.
    """

    def __init__(
        self,
        ledger: Ledger,
        scheduler: Optional[EventScheduler] = None,
        contracts: Optional[Dict[str, SmartContract]] = None,
    ):
        self.ledger = ledger
        self.scheduler = scheduler or create_default_scheduler()
        self.contracts: Dict[str, SmartContract] = contracts or {}
        self.max_passes = 10
        self.verbose = ledger.verbose

    def register(self, unit_type: str, contract: SmartContract) -> None:
        self.contracts[unit_type] = contract

    def schedule(self, event: Event) -> str:
        return self.scheduler.schedule(event)

    def schedule_many(self, events: List[Event]) -> List[str]:
        return self.scheduler.schedule_many(events)

    def step(self, timestamp: datetime) -> List[Transaction]:
        """
        Advance to timestamp and apply everything due.

        Returns:
            The transactions applied, in order

        Raises:
            ValueError: If timestamp is before the ledger's clock
            VestingError: From a scheduled event's handler
            LedgerError: If a contract misbehaves or its transaction is rejected
        """
        self.ledger.advance_time(timestamp)
        applied: List[Transaction] = []
        for _ in range(self.max_passes):
            this_pass = self._run_scheduled(timestamp) + self._poll_contracts(timestamp)
            if not this_pass:
                break
            applied += this_pass
        return applied

    def run(self, timestamps: Iterable[datetime]) -> List[Transaction]:
        applied: List[Transaction] = []
        for timestamp in timestamps:
            applied += self.step(timestamp)
        return applied

    def _run_scheduled(self, timestamp: datetime) -> List[Transaction]:
        applied = []
        for pending in self.scheduler.step(timestamp, self.ledger):
            if self.verbose:
                print(f"[SCHEDULED] {pending.origin}")
            if self.ledger.execute(pending) is ExecuteResult.APPLIED:
                applied.append(self.ledger.transaction_log[-1])
        return applied

    def _poll_contracts(self, timestamp: datetime) -> List[Transaction]:
        applied = []
        for symbol in sorted(self.ledger.units):
            contract = self.contracts.get(self.ledger.units[symbol].unit_type)
            if contract is None:
                continue
            pending = contract(self.ledger, symbol, timestamp)
            if not isinstance(pending, PendingTransaction):
                raise LedgerError(f"Contract for {symbol} must return PendingTransaction, got {type(pending)}")
            if pending.is_empty():
                continue
            result = self.ledger.execute(pending)
            if result is ExecuteResult.REJECTED:
                raise LedgerError(f"Lifecycle event failed for {symbol}: contract execution rejected")
            if result is ExecuteResult.APPLIED:
                applied.append(self.ledger.transaction_log[-1])
        return applied

    def pending_event_count(self) -> int:
        return self.scheduler.pending_count()

    def peek_next_event(self) -> Optional[Event]:
        return self.scheduler.peek_next()
