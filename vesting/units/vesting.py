"""
vesting.py - Single-Grant Vesting Units

One unit per grant. The unit's state holds the schedule and the roles; the
tokens sit in a custody wallet named after the unit symbol.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - VestingTerms: token, administrator, custody wallet, automation flag
   - VestingSchedule (from schedule.py): the grant itself

2. ADAPTER FUNCTIONS (load_vesting / to_state_dict):
   - The ONLY place that touches unit state for reads

3. CONVENIENCE FUNCTIONS (compute_*):
   - Take (view, symbol, caller, ...) and return a PendingTransaction
   - Authorization and state checks raise before anything is built

State machine:
    Unstarted --(time passes start)--> Active
    Unstarted/Active --revoke--> Revoked (terminal)

Revocation settles eagerly: the unvested remainder goes back to the
administrator in the same transaction.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence, Tuple

from ..core import (
    LedgerView, PendingTransaction, Unit, UnitStateChange, ContractEvent,
    TransactionOrigin, OriginType,
    UNIT_TYPE_VESTING,
    EVENT_GRANT_CREATED, EVENT_TOKENS_RELEASED, EVENT_SCHEDULE_REVOKED,
    EVENT_OWNERSHIP_TRANSFERRED, EVENT_ADMINISTRATOR_CHANGED, EVENT_TOKEN_CHANGED,
    InvalidGrantParameters, InsufficientReserve, Unauthorized,
    build_transaction, empty_pending_transaction, is_zero_address, token_move,
    with_nonce, _freeze_state,
)
from ..schedule import (
    VestingSchedule,
    new_schedule, apply_release, apply_revocation, apply_transfer,
    calculate_vested_amount, calculate_releasable_amount, calculate_grant_balance,
    schedule_to_dict, schedule_from_dict,
)


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class VestingTerms:
    """Roles and wiring of a single-grant unit."""
    token: str                # Token unit being vested
    owner: str                # Administrator: may revoke, change roles
    custody_wallet: str       # Wallet holding the unreleased tokens
    auto_release: bool = False


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def load_vesting(view: LedgerView, symbol: str) -> Tuple[VestingTerms, VestingSchedule]:
    """
    Load a single-grant unit as typed frozen dataclasses.

    Example:
        terms, schedule = load_vesting(view, "VEST-ALICE")
        due = calculate_releasable_amount(schedule, view.current_time)
    """
    raw = view.get_unit_state(symbol)
    terms = VestingTerms(
        token=raw['token'],
        owner=raw['owner'],
        custody_wallet=raw.get('custody_wallet', symbol),
        auto_release=raw.get('auto_release', False),
    )
    return terms, schedule_from_dict(raw)


def to_state_dict(terms: VestingTerms, schedule: VestingSchedule) -> Dict[str, Any]:
    """Inverse of load_vesting()."""
    return {
        'token': terms.token,
        'owner': terms.owner,
        'custody_wallet': terms.custody_wallet,
        'auto_release': terms.auto_release,
        **schedule_to_dict(schedule),
    }


def _origin(caller: str, symbol: str, event_type: str,
            origin_type: OriginType = OriginType.CONTRACT) -> TransactionOrigin:
    return TransactionOrigin(origin_type, caller, symbol, event_type)


def _require_owner(terms: VestingTerms, caller: str) -> None:
    if caller != terms.owner:
        raise Unauthorized("caller is not the owner")


def _state_change(symbol: str, old_state: Dict[str, Any],
                  terms: VestingTerms, schedule: VestingSchedule) -> UnitStateChange:
    new_state = with_nonce(old_state, to_state_dict(terms, schedule))
    return UnitStateChange(unit=symbol, old_state=old_state, new_state=new_state)


# ============================================================================
# UNIT CREATION
# ============================================================================

def create_vesting_unit(
    symbol: str,
    token: str,
    owner: str,
    beneficiary: str,
    total_amount: int,
    start: datetime,
    cliff_duration: int,
    duration: int,
    revocable: bool = True,
    auto_release: bool = False,
    name: Optional[str] = None,
) -> Unit:
    """
    Create a single-grant vesting unit.

    The unit itself holds no balances: it records the grant. Tokens are
    custodied in the wallet named `symbol`, which the caller must fund.

    Args:
        symbol: Unit symbol, also the custody wallet id
        token: Token unit being vested
        owner: Administrator (may revoke and reassign roles)
        beneficiary: Account entitled to releases
        total_amount: Whole base units, must be positive
        start: When vesting starts
        cliff_duration: Seconds after start before anything is releasable
        duration: Seconds after start until everything is releasable
        revocable: Whether the administrator may revoke
        auto_release: Let the lifecycle engine release automatically

    Raises:
        InvalidGrantParameters (a ValueError): zero beneficiary, amount or
            duration, cliff longer than duration, empty token or owner.
    """
    if not symbol or not symbol.strip():
        raise InvalidGrantParameters("symbol cannot be empty")
    if not token or not token.strip():
        raise InvalidGrantParameters("token cannot be empty")
    if is_zero_address(owner):
        raise InvalidGrantParameters("owner is the zero address")
    if start is None:
        raise InvalidGrantParameters("start cannot be empty")

    schedule = new_schedule(beneficiary, total_amount, start, cliff_duration, duration, revocable)
    terms = VestingTerms(token=token, owner=owner, custody_wallet=symbol, auto_release=auto_release)

    return Unit(
        symbol=symbol,
        name=name or f"Vesting {total_amount} {token} for {beneficiary}",
        unit_type=UNIT_TYPE_VESTING,
        min_balance=Decimal("0"),
        max_balance=Decimal("0"),
        decimal_places=0,
        _frozen_state=_freeze_state(to_state_dict(terms, schedule)),
    )


def build_vesting_creation(
    view: LedgerView,
    symbol: str,
    token: str,
    owner: str,
    funding_wallet: str,
    beneficiary: str,
    amount: int,
    cliff_duration: int,
    duration: int,
    revocable: bool,
    origin: TransactionOrigin,
    extra_state_changes: Sequence[UnitStateChange] = (),
    extra_events: Sequence[ContractEvent] = (),
) -> PendingTransaction:
    """
    One transaction that registers the grant unit, opens its custody wallet
    and moves `amount` from `funding_wallet` into custody. Start is `now`.
    """
    unit = create_vesting_unit(
        symbol=symbol,
        token=token,
        owner=owner,
        beneficiary=beneficiary,
        total_amount=amount,
        start=view.current_time,
        cliff_duration=cliff_duration,
        duration=duration,
        revocable=revocable,
    )
    moves = [token_move(amount, token, funding_wallet, symbol, f"{symbol}:fund")]
    events = list(extra_events) + [
        ContractEvent(EVENT_GRANT_CREATED, symbol, account=beneficiary, amount=amount),
    ]
    return build_transaction(
        view, moves, list(extra_state_changes), origin,
        units_to_create=(unit,),
        wallets_to_create=(symbol,),
        events=events,
    )


def compute_create(
    view: LedgerView,
    symbol: str,
    token: str,
    caller: str,
    beneficiary: str,
    amount: int,
    cliff_duration: int,
    duration: int,
    revocable: bool = True,
) -> PendingTransaction:
    """
    Create and fund a grant in one step; `caller` becomes the administrator
    and pays `amount` from its own wallet.

    Example:
        tx = compute_create(ledger, "VEST-ALICE", "CRUNCH", "treasury",
                            "alice", 1_000, cliff_duration=ONE_YEAR, duration=years(4))
        ledger.execute(tx)
    """
    if is_zero_address(caller):
        raise Unauthorized("caller is the zero address")
    funded = view.get_balance(caller, token)
    if funded < amount:
        raise InsufficientReserve(
            f"{caller} holds {funded} {token}, needs {amount}"
        )
    return build_vesting_creation(
        view, symbol, token,
        owner=caller,
        funding_wallet=caller,
        beneficiary=beneficiary,
        amount=amount,
        cliff_duration=cliff_duration,
        duration=duration,
        revocable=revocable,
        origin=_origin(caller, symbol, "CREATE"),
    )


# ============================================================================
# READ VIEWS
# ============================================================================

def get_vested_amount(view: LedgerView, symbol: str, at: Optional[datetime] = None) -> int:
    _, schedule = load_vesting(view, symbol)
    return calculate_vested_amount(schedule, at or view.current_time)


def get_releasable_amount(view: LedgerView, symbol: str, at: Optional[datetime] = None) -> int:
    _, schedule = load_vesting(view, symbol)
    return calculate_releasable_amount(schedule, at or view.current_time)


def get_grant_balance(view: LedgerView, symbol: str) -> int:
    _, schedule = load_vesting(view, symbol)
    return calculate_grant_balance(schedule, view.current_time)


# ============================================================================
# LIFECYCLE OPERATIONS
# ============================================================================

def compute_release(
    view: LedgerView,
    symbol: str,
    caller: Optional[str] = None,
    origin_type: OriginType = OriginType.CONTRACT,
) -> PendingTransaction:
    """
    Pay out everything currently releasable to the beneficiary.

    Anyone may trigger a release; the tokens always go to the beneficiary.

    Raises:
        NothingDue: releasable amount is zero
        InsufficientReserve: custody holds less than the amount due
    """
    terms, schedule = load_vesting(view, symbol)
    old_state = view.get_unit_state(symbol)
    now = view.current_time

    updated, amount = apply_release(schedule, now)

    custody = view.get_balance(terms.custody_wallet, terms.token)
    if custody < amount:
        raise InsufficientReserve(
            f"{symbol}: custody holds {custody} {terms.token}, release needs {amount}"
        )

    moves = [token_move(
        amount, terms.token, terms.custody_wallet, schedule.beneficiary,
        f"{symbol}:release:{updated.released}",
    )]
    events = [ContractEvent(EVENT_TOKENS_RELEASED, symbol, account=schedule.beneficiary, amount=amount)]
    return build_transaction(
        view, moves, [_state_change(symbol, old_state, terms, updated)],
        _origin(caller or schedule.beneficiary, symbol, "RELEASE", origin_type),
        events=events,
    )


def compute_revoke(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """
    Freeze vesting now and hand the unvested remainder back to the administrator.

    Raises:
        Unauthorized: caller is not the administrator
        InvalidGrantState: not revocable, or already revoked
    """
    terms, schedule = load_vesting(view, symbol)
    _require_owner(terms, caller)
    old_state = view.get_unit_state(symbol)

    revoked, remainder = apply_revocation(schedule, view.current_time)

    moves = []
    if remainder > 0:
        moves.append(token_move(
            remainder, terms.token, terms.custody_wallet, terms.owner, f"{symbol}:revoke",
        ))
    events = [ContractEvent(EVENT_SCHEDULE_REVOKED, symbol, account=schedule.beneficiary, amount=remainder)]
    return build_transaction(
        view, moves, [_state_change(symbol, old_state, terms, revoked)],
        _origin(caller, symbol, "REVOKE"),
        events=events,
    )


def compute_transfer_beneficiary(
    view: LedgerView,
    symbol: str,
    caller: str,
    new_beneficiary: str,
) -> PendingTransaction:
    """
    Reassign the right to future releases. Only the current beneficiary may call.

    Raises:
        Unauthorized: caller is not the beneficiary
        InvalidGrantParameters: new_beneficiary is the zero address
    """
    terms, schedule = load_vesting(view, symbol)
    if caller != schedule.beneficiary:
        raise Unauthorized("caller is not the beneficiary")
    old_state = view.get_unit_state(symbol)

    updated = apply_transfer(schedule, new_beneficiary)
    events = [ContractEvent(
        EVENT_OWNERSHIP_TRANSFERRED, symbol, account=new_beneficiary, previous=schedule.beneficiary,
    )]
    return build_transaction(
        view, [], [_state_change(symbol, old_state, terms, updated)],
        _origin(caller, symbol, "TRANSFER_BENEFICIARY"),
        events=events,
    )


def compute_set_owner(view: LedgerView, symbol: str, caller: str, new_owner: str) -> PendingTransaction:
    """Replace the administrator."""
    terms, schedule = load_vesting(view, symbol)
    _require_owner(terms, caller)
    if is_zero_address(new_owner):
        raise InvalidGrantParameters("new owner is the zero address")
    old_state = view.get_unit_state(symbol)
    events = [ContractEvent(EVENT_ADMINISTRATOR_CHANGED, symbol, account=new_owner, previous=terms.owner)]
    return build_transaction(
        view, [], [_state_change(symbol, old_state, replace(terms, owner=new_owner), schedule)],
        _origin(caller, symbol, "SET_OWNER"),
        events=events,
    )


def compute_set_token(view: LedgerView, symbol: str, caller: str, new_token: str) -> PendingTransaction:
    """Point the grant at a different token unit."""
    terms, schedule = load_vesting(view, symbol)
    _require_owner(terms, caller)
    if not new_token or not new_token.strip():
        raise InvalidGrantParameters("token cannot be empty")
    old_state = view.get_unit_state(symbol)
    events = [ContractEvent(EVENT_TOKEN_CHANGED, symbol, account=new_token, previous=terms.token)]
    return build_transaction(
        view, [], [_state_change(symbol, old_state, replace(terms, token=new_token), schedule)],
        _origin(caller, symbol, "SET_TOKEN"),
        events=events,
    )


# ============================================================================
# TRANSACT DISPATCHER
# ============================================================================

def transact(
    view: LedgerView,
    symbol: str,
    event_type: str,
    caller: Optional[str] = None,
    **kwargs
) -> PendingTransaction:
    """
    Unified entry point for single-grant operations.

    Args:
        event_type:
            - RELEASE: pay out what is due
            - REVOKE: administrator revocation (requires caller)
            - TRANSFER_BENEFICIARY: requires 'new_beneficiary'
        caller: Account performing the operation

    Example:
        tx = transact(view, "VEST-ALICE", "TRANSFER_BENEFICIARY", "alice", new_beneficiary="bob")
    """
    if event_type == 'RELEASE':
        return compute_release(view, symbol, caller)

    elif event_type == 'REVOKE':
        if caller is None:
            raise ValueError(f"Missing 'caller' for REVOKE event on {symbol}")
        return compute_revoke(view, symbol, caller)

    elif event_type == 'TRANSFER_BENEFICIARY':
        new_beneficiary = kwargs.get('new_beneficiary')
        if new_beneficiary is None:
            raise ValueError(f"Missing 'new_beneficiary' parameter for TRANSFER_BENEFICIARY event on {symbol}")
        if caller is None:
            raise ValueError(f"Missing 'caller' for TRANSFER_BENEFICIARY event on {symbol}")
        return compute_transfer_beneficiary(view, symbol, caller, new_beneficiary)

    else:
        raise ValueError(f"Unknown event type '{event_type}' for vesting {symbol}")


# ============================================================================
# SMART CONTRACT
# ============================================================================

def vesting_contract(
    view: LedgerView,
    symbol: str,
    timestamp: datetime,
) -> PendingTransaction:
    """
    SmartContract function for automatic releases.

    Only units created with auto_release=True are touched. Returns an empty
    transaction when nothing is due or custody cannot cover the amount.
    """
    terms, schedule = load_vesting(view, symbol)
    if not terms.auto_release:
        return empty_pending_transaction(view)

    due = calculate_releasable_amount(schedule, timestamp)
    if due == 0:
        return empty_pending_transaction(view)
    if view.get_balance(terms.custody_wallet, terms.token) < due:
        return empty_pending_transaction(view)

    return compute_release(view, symbol, caller="lifecycle", origin_type=OriginType.LIFECYCLE)
