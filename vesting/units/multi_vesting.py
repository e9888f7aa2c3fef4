"""
multi_vesting.py - Multi-Grant Vesting Registry

Many grants sharing one custody wallet and one optional registry start date.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - RegistryTerms: token, administrator, custody wallet, flags
   - GrantRegistry: arena of schedules keyed by grant id, the
     beneficiary -> ids index, the id counter and the start date

2. ADAPTER FUNCTIONS (load_multi_vesting / to_state_dict):
   - The ONLY place that touches unit state for reads

3. PURE PLANNING FUNCTIONS (plan_*, calculate_*):
   - Take a registry, amounts and `now` explicitly
   - Return a NEW registry plus what has to move
   - Raise a VestingError subclass when the operation is not allowed

4. CONVENIENCE FUNCTIONS (compute_*):
   - Take (view, symbol, caller, ...) and return a PendingTransaction

Reserve accounting:
    reserve           = custody wallet balance
    outstanding       = sum(grant balance over every grant in the arena)
    available_reserve = reserve - outstanding   (never negative)

Grant ids are assigned from a monotonically increasing counter and never
reused, even after clear(). Iteration always follows creation order.

A grant created before the registry begins has no start of its own; it
accrues from the registry start date once that is set.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange, ContractEvent,
    TransactionOrigin, OriginType,
    UNIT_TYPE_MULTI_VESTING,
    EVENT_GRANT_CREATED, EVENT_TOKENS_RELEASED, EVENT_SCHEDULE_REVOKED,
    EVENT_OWNERSHIP_TRANSFERRED, EVENT_REGISTRY_STARTED, EVENT_GRANT_CLEARED,
    EVENT_RESERVE_WITHDRAWN, EVENT_ADMINISTRATOR_CHANGED, EVENT_TOKEN_CHANGED,
    InvalidGrantParameters, InvalidGrantState, NothingDue, InsufficientReserve,
    Unauthorized, GrantNotFound,
    build_transaction, empty_pending_transaction, is_zero_address, token_move,
    with_nonce, _freeze_state,
)
from ..schedule import (
    VestingSchedule,
    new_schedule, with_start, apply_release, apply_revocation, apply_transfer,
    calculate_vested_amount, calculate_releasable_amount, calculate_grant_balance,
    schedule_to_dict, schedule_from_dict,
)


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class RegistryTerms:
    """
    Roles and configuration of a registry.

    pre_start_only: grants may only be created before the registry begins
    auto_release: let the lifecycle engine sweep due releases
    """
    token: str
    owner: str
    custody_wallet: str
    pre_start_only: bool = True
    auto_release: bool = False


@dataclass(frozen=True, slots=True)
class GrantRegistry:
    """
    Immutable snapshot of every grant in a registry.

    `owned` maps each beneficiary to the ids it currently holds, ascending.
    Every id in `owned` is a key of `grants` and vice versa.
    `withdrawn` is the running total of reserve sent back to the administrator.
    """
    grants: Mapping[int, VestingSchedule]
    owned: Mapping[str, Tuple[int, ...]]
    next_id: int = 0
    start_date: Optional[datetime] = None
    withdrawn: int = 0


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def load_multi_vesting(view: LedgerView, symbol: str) -> Tuple[RegistryTerms, GrantRegistry]:
    """
    Load a registry unit as typed frozen dataclasses.

    Example:
        terms, registry = load_multi_vesting(view, "MV-CRUNCH")
        reserve = int(view.get_balance(terms.custody_wallet, terms.token))
        free = calculate_available_reserve(reserve, registry, view.current_time)
    """
    raw = view.get_unit_state(symbol)
    terms = RegistryTerms(
        token=raw['token'],
        owner=raw['owner'],
        custody_wallet=raw.get('custody_wallet', symbol),
        pre_start_only=raw.get('pre_start_only', True),
        auto_release=raw.get('auto_release', False),
    )
    registry = GrantRegistry(
        grants={int(gid): schedule_from_dict(s) for gid, s in raw.get('grants', {}).items()},
        owned={b: tuple(int(i) for i in ids) for b, ids in raw.get('owned', {}).items()},
        next_id=int(raw.get('next_id', 0)),
        start_date=raw.get('start_date'),
        withdrawn=int(raw.get('withdrawn', 0)),
    )
    return terms, registry


def to_state_dict(terms: RegistryTerms, registry: GrantRegistry) -> Dict[str, Any]:
    """Inverse of load_multi_vesting()."""
    return {
        'token': terms.token,
        'owner': terms.owner,
        'custody_wallet': terms.custody_wallet,
        'pre_start_only': terms.pre_start_only,
        'auto_release': terms.auto_release,
        'start_date': registry.start_date,
        'next_id': registry.next_id,
        'grants': {gid: schedule_to_dict(s) for gid, s in registry.grants.items()},
        'owned': {b: list(ids) for b, ids in registry.owned.items()},
        'withdrawn': registry.withdrawn,
    }


def create_multi_vesting_unit(
    symbol: str,
    token: str,
    owner: str,
    name: Optional[str] = None,
    pre_start_only: bool = True,
    auto_release: bool = False,
) -> Unit:
    """
    Create an empty grant registry.

    The custody wallet is the wallet named `symbol`. Register it and fund it
    with ordinary token transfers, or push tokens with on_token_received().

    Raises:
        ValueError: empty symbol or token, or zero owner
    """
    if not symbol or not symbol.strip():
        raise InvalidGrantParameters("symbol cannot be empty")
    if not token or not token.strip():
        raise InvalidGrantParameters("token cannot be empty")
    if is_zero_address(owner):
        raise InvalidGrantParameters("owner is the zero address")

    terms = RegistryTerms(
        token=token, owner=owner, custody_wallet=symbol,
        pre_start_only=pre_start_only, auto_release=auto_release,
    )
    return Unit(
        symbol=symbol,
        name=name or f"Vested {token}",
        unit_type=UNIT_TYPE_MULTI_VESTING,
        min_balance=Decimal("0"),
        max_balance=Decimal("0"),
        decimal_places=0,
        _frozen_state=_freeze_state(to_state_dict(terms, GrantRegistry(grants={}, owned={}))),
    )


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def resolve_grant(registry: GrantRegistry, grant_id: int) -> VestingSchedule:
    """
    Grant with its start resolved against the registry start date.

    Raises:
        GrantNotFound: unknown id
    """
    schedule = registry.grants.get(grant_id)
    if schedule is None:
        raise GrantNotFound(f"MultiVesting: vesting {grant_id} does not exist")
    return with_start(schedule, registry.start_date)


def calculate_outstanding(registry: GrantRegistry, now: datetime) -> int:
    """Tokens promised to grants and not yet released."""
    return sum(
        calculate_grant_balance(resolve_grant(registry, gid), now)
        for gid in sorted(registry.grants)
    )


def calculate_available_reserve(reserve: int, registry: GrantRegistry, now: datetime) -> int:
    """Part of the reserve not promised to any grant."""
    return reserve - calculate_outstanding(registry, now)


def _index_add(owned: Mapping[str, Tuple[int, ...]], beneficiary: str, grant_id: int) -> Dict[str, Tuple[int, ...]]:
    index = dict(owned)
    index[beneficiary] = tuple(sorted(index.get(beneficiary, ()) + (grant_id,)))
    return index


def _index_remove(owned: Mapping[str, Tuple[int, ...]], beneficiary: str, grant_id: int) -> Dict[str, Tuple[int, ...]]:
    index = dict(owned)
    remaining = tuple(i for i in index.get(beneficiary, ()) if i != grant_id)
    if remaining:
        index[beneficiary] = remaining
    else:
        index.pop(beneficiary, None)
    return index


def plan_vest(
    registry: GrantRegistry,
    terms: RegistryTerms,
    reserve: int,
    entries: Sequence[Tuple[str, int]],
    cliff_duration: int,
    duration: int,
    revocable: bool,
    now: datetime,
) -> Tuple[GrantRegistry, List[int]]:
    """
    Create one grant per (beneficiary, amount) entry, all or nothing.

    Phase 1 validates every entry against a snapshot of the available
    reserve; phase 2 only runs if all of them pass.

    Returns:
        (new_registry, new_grant_ids)

    Raises:
        InvalidGrantParameters: empty batch or any bad entry
        InvalidGrantState: registry already started and pre_start_only is set
        InsufficientReserve: the batch total exceeds the available reserve
    """
    if not entries:
        raise InvalidGrantParameters("MultiVesting: no beneficiaries")
    if terms.pre_start_only and registry.start_date is not None:
        raise InvalidGrantState("MultiVesting: already started")

    # Phase 1: validate
    available = calculate_available_reserve(reserve, registry, now)
    # Grants added after the registry began start at creation
    start = now if registry.start_date is not None else None
    schedules = []
    for beneficiary, amount in entries:
        schedule = new_schedule(beneficiary, amount, start, cliff_duration, duration, revocable)
        if amount > available:
            raise InsufficientReserve(
                f"MultiVesting: available reserve is {available}, vesting needs {amount}"
            )
        available -= amount
        schedules.append(schedule)

    # Phase 2: commit
    grants = dict(registry.grants)
    owned: Mapping[str, Tuple[int, ...]] = registry.owned
    next_id = registry.next_id
    created = []
    for schedule in schedules:
        grants[next_id] = schedule
        owned = _index_add(owned, schedule.beneficiary, next_id)
        created.append(next_id)
        next_id += 1

    return replace(registry, grants=grants, owned=owned, next_id=next_id), created


def plan_release(
    registry: GrantRegistry,
    grant_ids: Sequence[int],
    now: datetime,
) -> Tuple[GrantRegistry, List[Tuple[int, str, int]]]:
    """
    Release every listed grant that has something due, in the given order.

    Grants with nothing due are skipped; the call fails only when nothing at
    all is due across the whole set.

    Returns:
        (new_registry, [(grant_id, beneficiary, amount), ...])

    Raises:
        GrantNotFound: unknown id
        NothingDue: aggregate releasable amount is zero
    """
    grants = dict(registry.grants)
    payouts = []
    for gid in grant_ids:
        schedule = resolve_grant(registry, gid)
        if calculate_releasable_amount(schedule, now) == 0:
            continue
        updated, amount = apply_release(schedule, now)
        grants[gid] = updated
        payouts.append((gid, schedule.beneficiary, amount))

    if not payouts:
        raise NothingDue("MultiVesting: no tokens are due")
    return replace(registry, grants=grants), payouts


def plan_revoke(
    registry: GrantRegistry,
    grant_id: int,
    now: datetime,
) -> Tuple[GrantRegistry, VestingSchedule, int]:
    """
    Freeze one grant.

    Returns:
        (new_registry, revoked_schedule, unvested_remainder)
    """
    schedule = resolve_grant(registry, grant_id)
    revoked, remainder = apply_revocation(schedule, now)
    grants = {**registry.grants, grant_id: revoked}
    return replace(registry, grants=grants), revoked, remainder


def plan_transfer(
    registry: GrantRegistry,
    grant_id: int,
    caller: str,
    to: str,
) -> GrantRegistry:
    """
    Reassign one grant and move its id between the two index entries.

    Raises:
        InvalidGrantParameters: `to` is the zero address
        GrantNotFound: unknown id
        Unauthorized: caller is not the grant's beneficiary
        InvalidGrantState: transfer to self
    """
    if is_zero_address(to):
        raise InvalidGrantParameters("MultiVesting: beneficiary is the zero address")
    schedule = resolve_grant(registry, grant_id)
    if caller != schedule.beneficiary:
        raise Unauthorized("MultiVesting: caller is not the beneficiary")
    if to == caller:
        raise InvalidGrantState("MultiVesting: cannot transfer to self")

    stored = apply_transfer(registry.grants[grant_id], to)
    owned = _index_add(_index_remove(registry.owned, caller, grant_id), to, grant_id)
    grants = {**registry.grants, grant_id: stored}
    return replace(registry, grants=grants, owned=owned)


def plan_clear(registry: GrantRegistry, grant_id: int, now: datetime) -> Tuple[GrantRegistry, VestingSchedule]:
    """
    Drop a drained grant from the arena and the index.

    Raises:
        GrantNotFound: unknown id
        InvalidGrantState: the grant still has an outstanding balance
    """
    schedule = resolve_grant(registry, grant_id)
    if calculate_grant_balance(schedule, now) != 0:
        raise InvalidGrantState("MultiVesting: vesting still has outstanding balance")
    grants = {gid: s for gid, s in registry.grants.items() if gid != grant_id}
    owned = _index_remove(registry.owned, schedule.beneficiary, grant_id)
    return replace(registry, grants=grants, owned=owned), schedule


# ============================================================================
# READ VIEWS
# ============================================================================

def get_reserve(view: LedgerView, symbol: str) -> int:
    """Tokens held in the registry's custody wallet."""
    terms, _ = load_multi_vesting(view, symbol)
    return int(view.get_balance(terms.custody_wallet, terms.token))


def get_available_reserve(view: LedgerView, symbol: str) -> int:
    """Reserve minus everything promised to outstanding grants."""
    terms, registry = load_multi_vesting(view, symbol)
    reserve = int(view.get_balance(terms.custody_wallet, terms.token))
    return calculate_available_reserve(reserve, registry, view.current_time)


def get_total_supply(view: LedgerView, symbol: str) -> int:
    """Outstanding balance across all grants."""
    _, registry = load_multi_vesting(view, symbol)
    return calculate_outstanding(registry, view.current_time)


def get_start_date(view: LedgerView, symbol: str) -> Optional[datetime]:
    _, registry = load_multi_vesting(view, symbol)
    return registry.start_date


def get_grant(view: LedgerView, symbol: str, grant_id: int) -> VestingSchedule:
    _, registry = load_multi_vesting(view, symbol)
    return resolve_grant(registry, grant_id)


def get_vested_amount(view: LedgerView, symbol: str, grant_id: int, at: Optional[datetime] = None) -> int:
    return calculate_vested_amount(get_grant(view, symbol, grant_id), at or view.current_time)


def get_releasable_amount(view: LedgerView, symbol: str, grant_id: int, at: Optional[datetime] = None) -> int:
    return calculate_releasable_amount(get_grant(view, symbol, grant_id), at or view.current_time)


def get_grant_balance(view: LedgerView, symbol: str, grant_id: int) -> int:
    return calculate_grant_balance(get_grant(view, symbol, grant_id), view.current_time)


def get_owned_count(view: LedgerView, symbol: str, beneficiary: str) -> int:
    _, registry = load_multi_vesting(view, symbol)
    return len(registry.owned.get(beneficiary, ()))


def get_owned(view: LedgerView, symbol: str, beneficiary: str, index: int) -> int:
    """
    The index-th grant id held by `beneficiary`, in creation order.

    Raises:
        GrantNotFound: index out of range
    """
    _, registry = load_multi_vesting(view, symbol)
    ids = registry.owned.get(beneficiary, ())
    if index < 0 or index >= len(ids):
        raise GrantNotFound(f"MultiVesting: index {index} out of range for {beneficiary}")
    return ids[index]


def get_active_grant_ids(view: LedgerView, symbol: str, beneficiary: str) -> List[int]:
    """Ids held by `beneficiary` that still have an outstanding balance."""
    _, registry = load_multi_vesting(view, symbol)
    now = view.current_time
    return [
        gid for gid in registry.owned.get(beneficiary, ())
        if calculate_grant_balance(resolve_grant(registry, gid), now) > 0
    ]


def get_vested_amount_of(view: LedgerView, symbol: str, beneficiary: str) -> int:
    _, registry = load_multi_vesting(view, symbol)
    now = view.current_time
    return sum(calculate_vested_amount(resolve_grant(registry, gid), now)
               for gid in registry.owned.get(beneficiary, ()))


def get_releasable_amount_of(view: LedgerView, symbol: str, beneficiary: str) -> int:
    _, registry = load_multi_vesting(view, symbol)
    now = view.current_time
    return sum(calculate_releasable_amount(resolve_grant(registry, gid), now)
               for gid in registry.owned.get(beneficiary, ()))


def get_balance_of(view: LedgerView, symbol: str, beneficiary: str) -> int:
    """What `beneficiary` could release right now, summed over its grants."""
    return get_releasable_amount_of(view, symbol, beneficiary)


# ============================================================================
# TRANSACTION BUILDING
# ============================================================================

def _origin(caller: str, symbol: str, event_type: str,
            origin_type: OriginType = OriginType.CONTRACT) -> TransactionOrigin:
    return TransactionOrigin(origin_type, caller, symbol, event_type)


def _require_owner(terms: RegistryTerms, caller: str) -> None:
    if caller != terms.owner:
        raise Unauthorized("caller is not the owner")


def _commit(
    view: LedgerView,
    symbol: str,
    old_state: Dict[str, Any],
    terms: RegistryTerms,
    registry: GrantRegistry,
    moves: List[Move],
    events: List[ContractEvent],
    origin: TransactionOrigin,
) -> PendingTransaction:
    new_state = with_nonce(old_state, to_state_dict(terms, registry))
    change = UnitStateChange(unit=symbol, old_state=old_state, new_state=new_state)
    return build_transaction(view, moves, [change], origin, events=events)


def _vest(
    view: LedgerView,
    symbol: str,
    caller: str,
    entries: Sequence[Tuple[str, int]],
    cliff_duration: int,
    duration: int,
    revocable: bool,
    origin: TransactionOrigin,
    pushed: int = 0,
) -> PendingTransaction:
    """
    The single vesting routine behind vest(), vest_multiple() and pushes.

    `pushed` tokens arrive in the same transaction, so they count toward
    the reserve the entries are checked against.
    """
    terms, registry = load_multi_vesting(view, symbol)
    _require_owner(terms, caller)
    old_state = view.get_unit_state(symbol)

    reserve = int(view.get_balance(terms.custody_wallet, terms.token)) + pushed
    updated, created = plan_vest(
        registry, terms, reserve, entries, cliff_duration, duration, revocable, view.current_time,
    )

    moves = []
    if pushed:
        moves.append(token_move(pushed, terms.token, caller, terms.custody_wallet, f"{symbol}:deposit:{created[0]}"))
    events = [
        ContractEvent(EVENT_GRANT_CREATED, symbol, grant_id=gid, account=beneficiary, amount=amount)
        for gid, (beneficiary, amount) in zip(created, entries)
    ]
    return _commit(view, symbol, old_state, terms, updated, moves, events, origin)


def _release(
    view: LedgerView,
    symbol: str,
    grant_ids: Sequence[int],
    origin: TransactionOrigin,
) -> PendingTransaction:
    terms, registry = load_multi_vesting(view, symbol)
    old_state = view.get_unit_state(symbol)

    updated, payouts = plan_release(registry, grant_ids, view.current_time)

    total = sum(amount for _, _, amount in payouts)
    custody = int(view.get_balance(terms.custody_wallet, terms.token))
    if custody < total:
        raise InsufficientReserve(
            f"MultiVesting: custody holds {custody}, release needs {total}"
        )

    moves = []
    events = []
    for gid, beneficiary, amount in payouts:
        released = updated.grants[gid].released
        moves.append(token_move(
            amount, terms.token, terms.custody_wallet, beneficiary, f"{symbol}:release:{gid}:{released}",
        ))
        events.append(ContractEvent(EVENT_TOKENS_RELEASED, symbol, grant_id=gid, account=beneficiary, amount=amount))
    return _commit(view, symbol, old_state, terms, updated, moves, events, origin)


# ============================================================================
# REGISTRY START
# ============================================================================

def compute_begin_at(view: LedgerView, symbol: str, caller: str, timestamp: datetime) -> PendingTransaction:
    """
    Fix the registry start date. One-way, administrator only.

    Grants created before this point accrue from `timestamp`.

    Raises:
        Unauthorized: caller is not the administrator
        InvalidGrantState: already started
    """
    terms, registry = load_multi_vesting(view, symbol)
    _require_owner(terms, caller)
    if registry.start_date is not None:
        raise InvalidGrantState("MultiVesting: already started")
    if timestamp is None:
        raise InvalidGrantParameters("MultiVesting: start date cannot be empty")
    old_state = view.get_unit_state(symbol)

    updated = replace(registry, start_date=timestamp)
    events = [ContractEvent(EVENT_REGISTRY_STARTED, symbol, at=timestamp)]
    return _commit(view, symbol, old_state, terms, updated, [], events, _origin(caller, symbol, "BEGIN"))


def compute_begin_now(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    return compute_begin_at(view, symbol, caller, view.current_time)


# ============================================================================
# GRANT CREATION
# ============================================================================

def compute_vest(
    view: LedgerView,
    symbol: str,
    caller: str,
    beneficiary: str,
    amount: int,
    cliff_duration: int,
    duration: int,
    revocable: bool = True,
) -> PendingTransaction:
    """
    Create one grant against the available reserve.

    Example:
        tx = compute_vest(ledger, "MV-CRUNCH", "treasury", "alice", 1_000,
                          cliff_duration=ONE_YEAR, duration=years(2))
        ledger.execute(tx)
    """
    return _vest(
        view, symbol, caller, [(beneficiary, amount)],
        cliff_duration, duration, revocable,
        _origin(caller, symbol, "VEST"),
    )


def compute_vest_multiple(
    view: LedgerView,
    symbol: str,
    caller: str,
    beneficiaries: Sequence[str],
    amounts: Sequence[int],
    cliff_duration: int,
    duration: int,
    revocable: bool = True,
) -> PendingTransaction:
    """
    Create one grant per beneficiary with shared timing, all or nothing.

    Raises:
        InvalidGrantParameters: arrays of unequal length, empty batch, or any
            invalid entry (nothing is created)
        InsufficientReserve: batch total exceeds the available reserve
    """
    if len(beneficiaries) != len(amounts):
        raise InvalidGrantParameters("MultiVesting: arrays length mismatch")
    return _vest(
        view, symbol, caller, list(zip(beneficiaries, amounts)),
        cliff_duration, duration, revocable,
        _origin(caller, symbol, "VEST_MULTIPLE"),
    )


def on_token_received(
    view: LedgerView,
    symbol: str,
    sender: str,
    amount: int,
    payload: Mapping[str, Any],
) -> PendingTransaction:
    """
    Handle tokens pushed to the registry with a grant request attached.

    The pushed amount becomes one grant for payload['beneficiary']; the
    transfer and the grant apply together. Only the administrator may push.

    Payload keys: beneficiary, duration, cliff_duration (default 0),
    revocable (default True).

    Raises:
        Unauthorized: sender is not the administrator
        InvalidGrantParameters: malformed payload or bad grant parameters
    """
    if 'beneficiary' not in payload or 'duration' not in payload:
        raise InvalidGrantParameters("MultiVesting: payload needs beneficiary and duration")
    return _vest(
        view, symbol, sender, [(payload['beneficiary'], amount)],
        int(payload.get('cliff_duration', 0)),
        int(payload['duration']),
        bool(payload.get('revocable', True)),
        _origin(sender, symbol, "TOKEN_RECEIVED", OriginType.EXTERNAL),
        pushed=amount if isinstance(amount, int) and amount > 0 else 0,
    )


# ============================================================================
# RELEASE
# ============================================================================

def compute_release(view: LedgerView, symbol: str, caller: str, grant_id: int) -> PendingTransaction:
    """
    Beneficiary releases one grant.

    Raises:
        GrantNotFound: unknown id
        Unauthorized: caller does not hold the grant
        NothingDue: nothing releasable
    """
    grant = get_grant(view, symbol, grant_id)
    if caller != grant.beneficiary:
        raise Unauthorized("MultiVesting: caller is not the beneficiary")
    return _release(view, symbol, [grant_id], _origin(caller, symbol, "RELEASE"))


def compute_release_all(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """
    Beneficiary releases every grant it holds, in creation order.

    Grants with nothing due are skipped.

    Raises:
        NothingDue: nothing due across all of the caller's grants
    """
    _, registry = load_multi_vesting(view, symbol)
    return _release(view, symbol, registry.owned.get(caller, ()), _origin(caller, symbol, "RELEASE_ALL"))


def compute_release_for(view: LedgerView, symbol: str, caller: str, grant_id: int) -> PendingTransaction:
    """Administrator releases one grant; tokens go to its beneficiary."""
    terms, _ = load_multi_vesting(view, symbol)
    _require_owner(terms, caller)
    return _release(view, symbol, [grant_id], _origin(caller, symbol, "RELEASE_FOR"))


def compute_release_all_for(view: LedgerView, symbol: str, caller: str, beneficiary: str) -> PendingTransaction:
    """Administrator releases every grant held by `beneficiary`."""
    terms, registry = load_multi_vesting(view, symbol)
    _require_owner(terms, caller)
    return _release(
        view, symbol, registry.owned.get(beneficiary, ()), _origin(caller, symbol, "RELEASE_ALL_FOR"),
    )


# ============================================================================
# REVOCATION, TRANSFER, CLEAR
# ============================================================================

def compute_revoke(
    view: LedgerView,
    symbol: str,
    caller: str,
    grant_id: int,
    send_back_immediately: bool = True,
) -> PendingTransaction:
    """
    Freeze a grant at its current vested amount.

    With send_back_immediately the unvested remainder moves to the
    administrator now. Otherwise it stays in custody as unpromised reserve
    and can be taken back with compute_withdraw_available_reserve().

    Raises:
        Unauthorized: caller is not the administrator
        GrantNotFound: unknown id
        InvalidGrantState: not revocable, already revoked, fully released
    """
    terms, registry = load_multi_vesting(view, symbol)
    _require_owner(terms, caller)
    old_state = view.get_unit_state(symbol)

    updated, revoked, remainder = plan_revoke(registry, grant_id, view.current_time)

    moves = []
    if send_back_immediately and remainder > 0:
        moves.append(token_move(
            remainder, terms.token, terms.custody_wallet, terms.owner, f"{symbol}:revoke:{grant_id}",
        ))
    events = [ContractEvent(
        EVENT_SCHEDULE_REVOKED, symbol, grant_id=grant_id, account=revoked.beneficiary, amount=remainder,
    )]
    return _commit(view, symbol, old_state, terms, updated, moves, events, _origin(caller, symbol, "REVOKE"))


def compute_transfer(
    view: LedgerView,
    symbol: str,
    caller: str,
    to: str,
    grant_id: int,
) -> PendingTransaction:
    """Hand one grant over to another beneficiary."""
    terms, registry = load_multi_vesting(view, symbol)
    old_state = view.get_unit_state(symbol)

    updated = plan_transfer(registry, grant_id, caller, to)
    events = [ContractEvent(EVENT_OWNERSHIP_TRANSFERRED, symbol, grant_id=grant_id, account=to, previous=caller)]
    return _commit(view, symbol, old_state, terms, updated, [], events, _origin(caller, symbol, "TRANSFER"))


def _clear(view: LedgerView, symbol: str, caller: str, grant_id: int, as_owner: bool) -> PendingTransaction:
    terms, registry = load_multi_vesting(view, symbol)
    if as_owner:
        _require_owner(terms, caller)
    elif caller != resolve_grant(registry, grant_id).beneficiary:
        raise Unauthorized("MultiVesting: caller is not the beneficiary")
    old_state = view.get_unit_state(symbol)

    updated, cleared = plan_clear(registry, grant_id, view.current_time)
    events = [ContractEvent(EVENT_GRANT_CLEARED, symbol, grant_id=grant_id, account=cleared.beneficiary)]
    event_type = "CLEAR_FOR" if as_owner else "CLEAR"
    return _commit(view, symbol, old_state, terms, updated, [], events, _origin(caller, symbol, event_type))


def compute_clear(view: LedgerView, symbol: str, caller: str, grant_id: int) -> PendingTransaction:
    """Beneficiary removes one of its drained grants."""
    return _clear(view, symbol, caller, grant_id, as_owner=False)


def compute_clear_for(view: LedgerView, symbol: str, caller: str, grant_id: int) -> PendingTransaction:
    """Administrator removes a drained grant."""
    return _clear(view, symbol, caller, grant_id, as_owner=True)


# ============================================================================
# ADMINISTRATION
# ============================================================================

def compute_withdraw_available_reserve(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """
    Send every unpromised token in custody back to the administrator.

    Raises:
        Unauthorized: caller is not the administrator
        InsufficientReserve: nothing is available
    """
    terms, registry = load_multi_vesting(view, symbol)
    _require_owner(terms, caller)

    reserve = int(view.get_balance(terms.custody_wallet, terms.token))
    available = calculate_available_reserve(reserve, registry, view.current_time)
    if available <= 0:
        raise InsufficientReserve("MultiVesting: reserve is already empty")
    old_state = view.get_unit_state(symbol)

    updated = replace(registry, withdrawn=registry.withdrawn + available)
    moves = [token_move(
        available, terms.token, terms.custody_wallet, terms.owner, f"{symbol}:withdraw:{updated.withdrawn}",
    )]
    events = [ContractEvent(EVENT_RESERVE_WITHDRAWN, symbol, account=terms.owner, amount=available)]
    return _commit(view, symbol, old_state, terms, updated, moves, events, _origin(caller, symbol, "WITHDRAW"))


def compute_set_owner(view: LedgerView, symbol: str, caller: str, new_owner: str) -> PendingTransaction:
    terms, registry = load_multi_vesting(view, symbol)
    _require_owner(terms, caller)
    if is_zero_address(new_owner):
        raise InvalidGrantParameters("new owner is the zero address")
    old_state = view.get_unit_state(symbol)
    events = [ContractEvent(EVENT_ADMINISTRATOR_CHANGED, symbol, account=new_owner, previous=terms.owner)]
    return _commit(
        view, symbol, old_state, replace(terms, owner=new_owner), registry, [], events,
        _origin(caller, symbol, "SET_OWNER"),
    )


def compute_set_token(view: LedgerView, symbol: str, caller: str, new_token: str) -> PendingTransaction:
    terms, registry = load_multi_vesting(view, symbol)
    _require_owner(terms, caller)
    if not new_token or not new_token.strip():
        raise InvalidGrantParameters("MultiVesting: token cannot be empty")
    old_state = view.get_unit_state(symbol)
    events = [ContractEvent(EVENT_TOKEN_CHANGED, symbol, account=new_token, previous=terms.token)]
    return _commit(
        view, symbol, old_state, replace(terms, token=new_token), registry, [], events,
        _origin(caller, symbol, "SET_TOKEN"),
    )


# ============================================================================
# TRANSACT DISPATCHER
# ============================================================================

def transact(
    view: LedgerView,
    symbol: str,
    event_type: str,
    caller: str,
    **kwargs
) -> PendingTransaction:
    """
    Unified entry point for registry operations.

    Args:
        event_type:
            - BEGIN: optional 'timestamp' (default: now)
            - VEST: 'beneficiary', 'amount', 'cliff_duration', 'duration', optional 'revocable'
            - RELEASE: 'grant_id' (beneficiary) or 'grant_id' + 'on_behalf'=True (administrator)
            - RELEASE_ALL: optional 'beneficiary' (administrator releasing for someone else)
            - REVOKE: 'grant_id', optional 'send_back_immediately'
            - TRANSFER: 'to', 'grant_id'
            - CLEAR: 'grant_id'
        caller: Account performing the operation

    Example:
        tx = transact(view, "MV-CRUNCH", "RELEASE_ALL", "alice")
    """
    def require(name: str) -> Any:
        value = kwargs.get(name)
        if value is None:
            raise ValueError(f"Missing '{name}' parameter for {event_type} event on {symbol}")
        return value

    if event_type == 'BEGIN':
        timestamp = kwargs.get('timestamp')
        if timestamp is None:
            return compute_begin_now(view, symbol, caller)
        return compute_begin_at(view, symbol, caller, timestamp)

    elif event_type == 'VEST':
        return compute_vest(
            view, symbol, caller,
            require('beneficiary'), require('amount'),
            kwargs.get('cliff_duration', 0), require('duration'),
            kwargs.get('revocable', True),
        )

    elif event_type == 'RELEASE':
        grant_id = require('grant_id')
        if kwargs.get('on_behalf'):
            return compute_release_for(view, symbol, caller, grant_id)
        return compute_release(view, symbol, caller, grant_id)

    elif event_type == 'RELEASE_ALL':
        beneficiary = kwargs.get('beneficiary')
        if beneficiary is not None and beneficiary != caller:
            return compute_release_all_for(view, symbol, caller, beneficiary)
        return compute_release_all(view, symbol, caller)

    elif event_type == 'REVOKE':
        return compute_revoke(
            view, symbol, caller, require('grant_id'), kwargs.get('send_back_immediately', True),
        )

    elif event_type == 'TRANSFER':
        return compute_transfer(view, symbol, caller, require('to'), require('grant_id'))

    elif event_type == 'CLEAR':
        return compute_clear(view, symbol, caller, require('grant_id'))

    else:
        raise ValueError(f"Unknown event type '{event_type}' for multi vesting {symbol}")


# ============================================================================
# SMART CONTRACT
# ============================================================================

def multi_vesting_contract(
    view: LedgerView,
    symbol: str,
    timestamp: datetime,
) -> PendingTransaction:
    """
    SmartContract function sweeping every due grant in one transaction.

    Only registries created with auto_release=True are touched. Returns an
    empty transaction when nothing is due or custody cannot cover it.
    """
    terms, registry = load_multi_vesting(view, symbol)
    if not terms.auto_release:
        return empty_pending_transaction(view)

    due_ids = [
        gid for gid in sorted(registry.grants)
        if calculate_releasable_amount(resolve_grant(registry, gid), timestamp) > 0
    ]
    if not due_ids:
        return empty_pending_transaction(view)

    total = sum(calculate_releasable_amount(resolve_grant(registry, gid), timestamp) for gid in due_ids)
    if view.get_balance(terms.custody_wallet, terms.token) < total:
        return empty_pending_transaction(view)

    return _release(view, symbol, due_ids, _origin("lifecycle", symbol, "AUTO_RELEASE", OriginType.LIFECYCLE))
