"""
Shared vocabulary of the vesting engine: value types, the read-only ledger
protocol, the error taxonomy, contract events and time units.

Vesting operations are pure. They read a LedgerView, raise a VestingError
when a request is not allowed, and otherwise describe what should happen as
a PendingTransaction (token moves, unit state writes, events). Only
Ledger.execute() turns that description into new state.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
import copy
import hashlib
from typing import Dict, List, Optional, Any, Protocol, Tuple, FrozenSet, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT
# ============================================================================
#
# Balances are Decimals. The process-wide context is set once here and must
# not be changed elsewhere; use decimal.localcontext() for local tweaks.
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Issuer and burn sink. Its balance may go negative.
SYSTEM_WALLET = "system"

# The null account. Grants can never be assigned to it.
ZERO_ADDRESS = ""

UNIT_TYPE_TOKEN = "TOKEN"
UNIT_TYPE_VESTING = "VESTING"
UNIT_TYPE_VESTING_FACTORY = "VESTING_FACTORY"
UNIT_TYPE_MULTI_VESTING = "MULTI_VESTING"

QUANTITY_EPSILON = Decimal("1e-12")

# Token amounts are whole base units, truncated.
TOKEN_DECIMAL_PLACES = 0
DECIMAL_ROUNDING = {
    UNIT_TYPE_TOKEN: ROUND_DOWN,
}

# Durations are integer seconds. A year is 365.25 days.
SECONDS_PER_DAY = 86_400
ONE_YEAR = int(SECONDS_PER_DAY * 365.25)
ONE_MONTH = int(SECONDS_PER_DAY * 30.4167)


def years(amount: float) -> int:
    """Whole seconds in `amount` years of 365.25 days."""
    return int(amount * SECONDS_PER_DAY * 365.25)


def months(amount: float) -> int:
    return int(amount * SECONDS_PER_DAY * 30.4167)


def days(amount: float) -> int:
    return int(amount * SECONDS_PER_DAY)


def is_zero_address(account: Optional[str]) -> bool:
    """True for None, the empty string, or whitespace."""
    return account is None or not str(account).strip()


# Unit state: grant terms, registry arena, roles. Plain dict, deep-copied on read.
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    What a vesting operation may see of the ledger.

    Ledger satisfies it; tests also pass tests.fake_view.FakeView.
    """

    @property
    def current_time(self) -> datetime:
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """A copy the caller may mutate."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        ...


class SmartContract(Protocol):
    """
    Polled by the LifecycleEngine for every unit of a given type.

    Returns whatever is due at `timestamp` (typically an automatic release)
    as a PendingTransaction, or empty_pending_transaction() when nothing is.
    """

    def __call__(self, view: LedgerView, symbol: str, timestamp: datetime) -> 'PendingTransaction':
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of Ledger.execute().

    REJECTED covers every failed check: overdraft, unregistered wallet or
    unit, future timestamp, and a state write built from a stale read.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    USER_ACTION = "user_action"     # funding, plain transfers
    CONTRACT = "contract"           # a compute_* call made by an account
    LIFECYCLE = "lifecycle"         # auto-release, scheduled events
    SYSTEM = "system"               # issuance
    EXTERNAL = "external"           # push funding through the token


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Root of every error raised by this package."""
    pass


class UnitNotRegistered(LedgerError):
    pass


class WalletNotRegistered(LedgerError):
    pass


class VestingError(LedgerError):
    """
    A vesting operation refused the request.

    Raised while the PendingTransaction is being computed, so nothing has
    reached the ledger yet.
    """
    pass


class InvalidGrantParameters(VestingError, ValueError):
    """Zero beneficiary, amount or duration, cliff past duration, bad batch shape."""
    pass


class Unauthorized(VestingError):
    """Caller is not the administrator, the beneficiary, or the creator delegate."""
    pass


class InvalidGrantState(VestingError):
    """Operation is not allowed in the grant's or registry's current state."""
    pass


class NothingDue(InvalidGrantState):
    """Release requested while the releasable amount is zero."""
    pass


class InsufficientReserve(VestingError):
    """Custody does not hold enough unpromised tokens."""
    pass


class GrantNotFound(VestingError, LookupError):
    """Unknown grant identifier or owned-index position."""
    pass


# ============================================================================
# ORIGIN AND STATE CHANGES
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Who asked for a transaction and through which operation.

    source_id is the calling account (or contract name for lifecycle work),
    unit_symbol the vesting unit involved, event_type the operation name
    such as "RELEASE" or "REVOKE".
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        text = f"{self.origin_type.value}:{self.source_id}"
        if self.unit_symbol:
            text += f", unit={self.unit_symbol}"
        if self.event_type:
            text += f", event={self.event_type}"
        return f"Origin({text})"


@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    A whole-state write to one unit.

    old_state is the state the operation read. The ledger refuses the write
    if the unit has moved on since, and clone_at() restores it when taking
    the transaction back.
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """{field: (before, after)} for every field whose value differs."""
        before = self.old_state if isinstance(self.old_state, dict) else {}
        after = self.new_state if isinstance(self.new_state, dict) else {}
        return {
            key: (before.get(key), after.get(key))
            for key in before.keys() | after.keys()
            if before.get(key) != after.get(key)
        }


def with_nonce(old_state: Optional[UnitState], new_state: UnitState) -> UnitState:
    """
    new_state with the unit's operation counter advanced past old_state's.

    Every state write goes through here, so no two writes to a unit share
    an intent id even when their before/after contents repeat.
    """
    previous = (old_state or {}).get('nonce', 0)
    return {**new_state, 'nonce': previous + 1}


# ============================================================================
# CONTRACT EVENTS
# ============================================================================

EVENT_GRANT_CREATED = "GrantCreated"
EVENT_OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
EVENT_TOKENS_RELEASED = "TokensReleased"
EVENT_SCHEDULE_REVOKED = "ScheduleRevoked"
EVENT_REGISTRY_STARTED = "RegistryStarted"
EVENT_ADMINISTRATOR_CHANGED = "AdministratorChanged"
EVENT_TOKEN_CHANGED = "TokenChanged"
EVENT_CREATOR_CHANGED = "CreatorChanged"
EVENT_GRANT_CLEARED = "GrantCleared"
EVENT_RESERVE_WITHDRAWN = "ReserveWithdrawn"


@dataclass(frozen=True, slots=True)
class ContractEvent:
    """
    Notification emitted by a vesting operation for external indexers.

    Events ride on the transaction that produced them and become visible
    only when that transaction is applied. Nothing inside the engine reads
    them back for control flow.

    Attributes:
        kind: One of the EVENT_* constants
        unit: Symbol of the emitting unit
        grant_id: Registry grant identifier (None for single-grant units)
        account: Beneficiary, new administrator, new token, ...
        previous: Prior holder of the role for ownership/admin changes
        amount: Token amount for releases, revocations and withdrawals
        at: Effective time when it differs from the transaction time (registry start)
    """
    kind: str
    unit: str
    grant_id: Optional[int] = None
    account: Optional[str] = None
    previous: Optional[str] = None
    amount: Optional[int] = None
    at: Optional[datetime] = None

    def __repr__(self) -> str:
        optional = (
            ("id", self.grant_id), ("from", self.previous), ("account", self.account),
            ("amount", self.amount), ("at", self.at.isoformat() if self.at else None),
        )
        shown = [f"{label}={value}" for label, value in optional if value is not None]
        return f"Event({', '.join([f'{self.kind}@{self.unit}'] + shown)})"


# ============================================================================
# MOVES AND TRANSACTIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    One token transfer: `quantity` of `unit_symbol` from `source` to `dest`.

    contract_id names the operation that produced the move (for example
    "MV:release:3:250") and takes part in the intent hash.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        for label in ("source", "dest", "unit_symbol", "contract_id"):
            value = getattr(self, label)
            if not value or not value.strip():
                raise ValueError(f"Move {label} cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if not self.quantity.is_finite():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError("Move quantity is effectively zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def token_move(amount: int, token_symbol: str, source: str, dest: str, contract_id: str) -> Move:
    """Move a whole number of token base units."""
    return Move(Decimal(amount), token_symbol, source, dest, contract_id)


def _decimal_text(d: Decimal) -> str:
    """Exponent-free text, so Decimal("1.0") and Decimal("1.00") read "1"."""
    d = d.normalize()
    if d == d.to_integral_value():
        return str(int(d))
    return format(d, 'f')


def _canonical(value: Any) -> str:
    """Text form of a value that ignores dict order and Decimal exponents."""
    if isinstance(value, dict):
        pairs = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{_canonical(k)}={_canonical(v)}" for k, v in pairs) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonical(item) for item in value) + "]"
    if isinstance(value, (set, frozenset)):
        return "<" + ",".join(sorted(_canonical(item) for item in value)) + ">"
    if isinstance(value, Decimal):
        return "D" + _decimal_text(value)
    if isinstance(value, datetime):
        return "T" + value.isoformat()
    # None, bool, int, float, str: the type initial keeps 1, "1" and True apart
    return type(value).__name__[0] + repr(value)


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = (),
    wallets_to_create: Tuple[str, ...] = (),
    events: Tuple[ContractEvent, ...] = (),
) -> str:
    """
    Hash of what a transaction does, for duplicate detection.

    Timestamps and ledger names are left out: the same intent computed
    twice hashes the same. Moves, created units and wallets, and state
    writes are order-independent; events keep their order.
    """
    records: List[tuple] = [
        ("origin", origin.origin_type.value, origin.source_id, origin.unit_symbol, origin.event_type),
    ]
    records += sorted(("unit", u.symbol, u.unit_type) for u in units_to_create)
    records += sorted(("wallet", w) for w in wallets_to_create)
    records += sorted(
        ("move", _decimal_text(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
        for m in moves
    )
    records += sorted(
        (("state", sc.unit, _canonical(sc.old_state), _canonical(sc.new_state)) for sc in state_changes),
        key=lambda record: record[1],
    )
    records += [
        ("event", ev.kind, ev.unit, ev.grant_id, ev.account, ev.previous, ev.amount, ev.at)
        for ev in events
    ]
    return hashlib.sha256(_canonical(records).encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    An operation's result, not yet applied.

    intent_id is derived from the content when not given. Executing the
    same intent twice yields ALREADY_APPLIED the second time.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    wallets_to_create: Tuple[str, ...] = ()
    events: Tuple[ContractEvent, ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            object.__setattr__(self, 'intent_id', _compute_intent_id(
                self.moves, self.state_changes, self.origin,
                self.units_to_create, self.wallets_to_create, self.events,
            ))

    def is_empty(self) -> bool:
        """Nothing to move, write or register. Events alone do not count."""
        return not (self.moves or self.state_changes or self.units_to_create or self.wallets_to_create)

    def __repr__(self) -> str:
        return (
            f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, "
            f"{len(self.events)} events, {self.origin})"
        )


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
    wallets_to_create: Optional[Tuple[str, ...]] = None,
    events: Optional[List[ContractEvent]] = None,
) -> PendingTransaction:
    """
    Assemble a PendingTransaction stamped with the view's current time.

    State snapshots are deep-copied, so the caller may keep mutating the
    dicts it passed in. The origin defaults to a generic CONTRACT origin.

    Example:
        old = view.get_unit_state("VEST-1")
        new = with_nonce(old, {**old, "released": old["released"] + 25})
        return build_transaction(
            view,
            [token_move(25, "CRUNCH", "VEST-1", "alice", "VEST-1:release:25")],
            [UnitStateChange("VEST-1", old, new)],
        )
    """
    writes = tuple(
        replace(sc, old_state=copy.deepcopy(sc.old_state), new_state=copy.deepcopy(sc.new_state))
        for sc in state_changes or ()
    )
    return PendingTransaction(
        moves=tuple(moves),
        state_changes=writes,
        origin=origin or TransactionOrigin(OriginType.CONTRACT, "contract"),
        timestamp=view.current_time,
        units_to_create=tuple(units_to_create or ()),
        wallets_to_create=tuple(wallets_to_create or ()),
        events=tuple(events or ()),
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """The 'nothing is due' answer of a contract poll."""
    return PendingTransaction(
        moves=(),
        state_changes=(),
        origin=TransactionOrigin(OriginType.CONTRACT, "noop"),
        timestamp=view.current_time,
    )


_BOX_WIDTH = 100


def _boxed(sections: List[List[str]]) -> str:
    """Draw groups of lines inside one box, with a rule between groups."""
    bar = "─" * _BOX_WIDTH

    def row(text: str) -> str:
        if len(text) > _BOX_WIDTH:
            text = text[:_BOX_WIDTH - 3] + "..."
        return f"│{text.ljust(_BOX_WIDTH)}│"

    out = ["", f"┌{bar}┐"]
    for i, section in enumerate(sections):
        if i:
            out.append(f"├{bar}┤")
        out.extend(row(line) for line in section)
    out.append(f"└{bar}┘")
    return "\n".join(out)


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    A PendingTransaction as the ledger applied it.

    Adds where and when it ran: exec_id, ledger_name, execution_time and
    the ledger's sequence_number. contract_ids is filled in from the moves.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    wallets_to_create: Tuple[str, ...] = ()
    events: Tuple[ContractEvent, ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not (self.moves or self.state_changes or self.units_to_create or self.wallets_to_create):
            raise ValueError("Transaction must have moves, state_changes, units_to_create or wallets_to_create")
        if self.contract_ids is None:
            object.__setattr__(self, 'contract_ids', frozenset(m.contract_id for m in self.moves))

    def render(self, status: Optional[str] = None) -> str:
        """Boxed summary of the transaction; `status` becomes a closing row."""
        sections = [
            [f" Transaction: {self.exec_id}"],
            [
                f"   intent_id      : {self.intent_id}",
                f"   timestamp      : {self.timestamp}",
                f"   ledger_name    : {self.ledger_name}",
                f"   execution_time : {self.execution_time}",
                f"   sequence       : {self.sequence_number}",
                f"   origin         : {self.origin}",
                f"   contract_ids   : {sorted(self.contract_ids)}",
            ],
        ]
        if self.units_to_create or self.wallets_to_create:
            created = [f"   unit {u.symbol} ({u.name})" for u in self.units_to_create]
            created += [f"   wallet {w}" for w in self.wallets_to_create]
            sections.append([f" Created ({len(created)}):"] + created)
        sections.append([f" Moves ({len(self.moves)}):"] + [
            f"   [{i}] {m.quantity} {m.unit_symbol}: {m.source} → {m.dest}"
            for i, m in enumerate(self.moves)
        ])
        if self.state_changes:
            writes = [f" State Changes ({len(self.state_changes)}):"]
            for sc in self.state_changes:
                writes.append(f"   [{sc.unit}]")
                writes += [
                    f"      {name}: {before!r} → {after!r}"
                    for name, (before, after) in sorted(sc.changed_fields().items())
                ]
            sections.append(writes)
        if self.events:
            sections.append([f" Events ({len(self.events)}):"] + [f"   {ev!r}" for ev in self.events])
        if status:
            sections.append([f" {status}"])
        return _boxed(sections)

    def __repr__(self) -> str:
        return self.render()


# ============================================================================
# UNITS
# ============================================================================

def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Sorted (key, value) pairs, hashable enough to live on a frozen Unit."""
    return tuple(sorted(state.items())) if state else ()


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Something registered on the ledger: the token, or a vesting contract.

    Contract units never hold balances themselves (their max_balance is
    zero); their terms and registry live in `state`. Their tokens sit in a
    custody wallet named after the unit.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """A fresh dict on every access."""
        return dict(self._frozen_state)

    def round(self, value: Decimal) -> Decimal:
        """Quantize to decimal_places with the unit type's rounding; no-op when unset."""
        if self.decimal_places is None:
            return value
        step = Decimal(1).scaleb(-self.decimal_places)
        mode = DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN)
        return Decimal(str(value)).quantize(step, rounding=mode)


def token(symbol: str, name: str, decimals: int = 18, issuer: str = SYSTEM_WALLET) -> Unit:
    """
    The fungible token that grants are paid in.

    Balances are whole base units truncated toward zero and may not go
    negative. `decimals` is display metadata only.
    """
    if not symbol or not symbol.strip():
        raise ValueError("symbol cannot be empty")
    if decimals < 0:
        raise ValueError(f"decimals cannot be negative, got {decimals}")
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_TOKEN,
        decimal_places=TOKEN_DECIMAL_PLACES,
        _frozen_state=_freeze_state({'decimals': decimals, 'issuer': issuer}),
    )
