"""
scheduled_events.py - Vesting actions planned for a known date

A registry that begins on the first trading day, a release on a payroll
date, a revocation on an employee's leaving date. Each is an Event: plain
data naming a unit, an action and its parameters. Handlers (see
event_handlers.py) turn a due Event into a PendingTransaction. Once it has
been applied, the ledger's transaction log is the only record kept.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Callable, Any, Set, Tuple
import heapq

from .core import LedgerView, PendingTransaction


# Order within one timestamp: a registry begins before anything is released
# from it, and a leaver's last release lands before the revocation.
PRIORITY_BEGIN = 0
PRIORITY_RELEASE = 30
PRIORITY_REVOKE = 40


@dataclass(frozen=True, slots=True)
class Event:
    """
    One planned action on a vesting unit.

    params is a tuple of (name, value) pairs so the event stays hashable,
    e.g. (("grant_id", 3), ("send_back", False)).
    """
    trigger_time: datetime
    priority: int = 0
    symbol: str = ""
    action: str = ""
    params: Tuple[Tuple[str, Any], ...] = ()

    def __lt__(self, other: Event) -> bool:
        return (self.trigger_time, self.priority, self.symbol) < (other.trigger_time, other.priority, other.symbol)

    @property
    def params_dict(self) -> Dict[str, Any]:
        return dict(self.params)

    @property
    def event_id(self) -> str:
        """Same action, unit, time and parameters give the same id."""
        args = ",".join(f"{name}={value}" for name, value in sorted(self.params))
        return "|".join((self.action, self.symbol, self.trigger_time.isoformat(), args))


# (event, view) -> PendingTransaction
EventHandler = Callable[[Event, LedgerView], PendingTransaction]


class EventScheduler:
    """
    Time-ordered queue of Events plus the handler for each action.

    An event id that has already run is skipped if it is scheduled again.
    """

    def __init__(self):
        self._queue: List[Event] = []
        self._handlers: Dict[str, EventHandler] = {}
        self._done: Set[str] = set()

    def register(self, action: str, handler: EventHandler) -> None:
        self._handlers[action] = handler

    def schedule(self, event: Event) -> str:
        heapq.heappush(self._queue, event)
        return event.event_id

    def schedule_many(self, events: List[Event]) -> List[str]:
        return [self.schedule(event) for event in events]

    def get_due(self, as_of: datetime) -> List[Event]:
        """Pop every event triggering at or before as_of, in run order, minus those already run."""
        due = []
        while self._queue and self._queue[0].trigger_time <= as_of:
            event = heapq.heappop(self._queue)
            if event.event_id not in self._done:
                due.append(event)
        return due

    def execute(self, event: Event, view: LedgerView) -> Optional[PendingTransaction]:
        """
        Run the handler for event.action. None when the action has no handler.

        A VestingError from the handler propagates, and the event is then not
        marked as run.
        """
        handler = self._handlers.get(event.action)
        if handler is None:
            return None
        pending = handler(event, view)
        self._done.add(event.event_id)
        return pending

    def step(self, as_of: datetime, view: LedgerView) -> List[PendingTransaction]:
        """Handle everything due by as_of; returns the non-empty results."""
        results = (self.execute(event, view) for event in self.get_due(as_of))
        return [pending for pending in results if pending is not None and not pending.is_empty()]

    def pending_count(self) -> int:
        return len(self._queue)

    def peek_next(self) -> Optional[Event]:
        return self._queue[0] if self._queue else None

    def clear_executed(self) -> None:
        self._done.clear()


# ============================================================================
# EVENT FACTORIES
# ============================================================================

def begin_event(symbol: str, at: datetime) -> Event:
    """Start a grant registry at `at`."""
    return Event(trigger_time=at, priority=PRIORITY_BEGIN, symbol=symbol, action="begin")


def release_event(
    symbol: str,
    at: datetime,
    grant_id: Optional[int] = None,
    beneficiary: Optional[str] = None,
) -> Event:
    """
    Release on behalf of a beneficiary at `at`.

    For a registry, pass grant_id for one grant or beneficiary for all of
    its grants. A single-grant unit takes neither.
    """
    params = (("grant_id", grant_id), ("beneficiary", beneficiary))
    return Event(
        trigger_time=at,
        priority=PRIORITY_RELEASE,
        symbol=symbol,
        action="release",
        params=tuple((name, value) for name, value in params if value is not None),
    )


def revoke_event(
    symbol: str,
    at: datetime,
    grant_id: Optional[int] = None,
    send_back: bool = True,
) -> Event:
    """Revoke at `at`, e.g. an employee's leaving date. send_back applies to registries."""
    params: Tuple[Tuple[str, Any], ...] = (("send_back", send_back),)
    if grant_id is not None:
        params += (("grant_id", grant_id),)
    return Event(trigger_time=at, priority=PRIORITY_REVOKE, symbol=symbol, action="revoke", params=params)
