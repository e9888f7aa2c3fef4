"""
vesting_factory.py - Vesting Factory Units

A factory holds a token reserve and mints single-grant vesting units funded
from it. The owner, or a delegated creator, may create grants; the created
grants are administered by the factory owner, never by the factory itself.

Creation is one transaction: the new unit, its custody wallet, the funding
move out of the factory reserve and the factory's bookkeeping all apply
together or not at all.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..core import (
    LedgerView, PendingTransaction, Unit, UnitStateChange, ContractEvent,
    TransactionOrigin, OriginType,
    UNIT_TYPE_VESTING_FACTORY, ONE_YEAR,
    EVENT_CREATOR_CHANGED, EVENT_ADMINISTRATOR_CHANGED, EVENT_TOKEN_CHANGED,
    EVENT_RESERVE_WITHDRAWN,
    InvalidGrantParameters, InsufficientReserve, Unauthorized,
    build_transaction, is_zero_address, token_move, years,
    with_nonce, _freeze_state,
)
from .vesting import build_vesting_creation


# createSimple() defaults
SIMPLE_CLIFF_DURATION = ONE_YEAR
SIMPLE_DURATION = years(4)


def create_vesting_factory_unit(
    symbol: str,
    token: str,
    owner: str,
    creator: Optional[str] = None,
    name: Optional[str] = None,
) -> Unit:
    """
    Create a vesting factory unit.

    The factory reserve is the wallet named `symbol`; fund it with ordinary
    token transfers.

    Args:
        symbol: Factory symbol, also its reserve wallet id
        token: Token unit the factory vests
        owner: Factory owner; administrator of every grant it creates
        creator: Optional delegate allowed to create grants

    Raises:
        ValueError: empty symbol or token, or zero owner
    """
    if not symbol or not symbol.strip():
        raise InvalidGrantParameters("symbol cannot be empty")
    if not token or not token.strip():
        raise InvalidGrantParameters("token cannot be empty")
    if is_zero_address(owner):
        raise InvalidGrantParameters("owner is the zero address")

    return Unit(
        symbol=symbol,
        name=name or f"{token} Vesting Factory",
        unit_type=UNIT_TYPE_VESTING_FACTORY,
        min_balance=Decimal("0"),
        max_balance=Decimal("0"),
        decimal_places=0,
        _frozen_state=_freeze_state({
            'token': token,
            'owner': owner,
            'creator': creator,
            'custody_wallet': symbol,
            'created': [],
            'withdrawn': 0,
        }),
    )


def _origin(caller: str, symbol: str, event_type: str) -> TransactionOrigin:
    return TransactionOrigin(OriginType.CONTRACT, caller, symbol, event_type)


def _require_owner(state: Dict[str, Any], caller: str) -> None:
    if caller != state['owner']:
        raise Unauthorized("caller is not the owner")


def get_reserve(view: LedgerView, factory_symbol: str) -> int:
    """Tokens held by the factory and not yet committed to any grant."""
    state = view.get_unit_state(factory_symbol)
    return int(view.get_balance(state['custody_wallet'], state['token']))


def get_created(view: LedgerView, factory_symbol: str) -> List[str]:
    """Symbols of grants created by this factory, oldest first."""
    return list(view.get_unit_state(factory_symbol).get('created', []))


def compute_create(
    view: LedgerView,
    factory_symbol: str,
    caller: str,
    vesting_symbol: str,
    beneficiary: str,
    amount: int,
    cliff_duration: int,
    duration: int,
    revocable: bool = True,
) -> PendingTransaction:
    """
    Create a grant funded from the factory reserve. Vesting starts now.

    Raises:
        Unauthorized: caller is neither the owner nor the creator
        InvalidGrantParameters: bad schedule parameters
        InsufficientReserve: the reserve holds less than `amount`

    Example:
        tx = compute_create(ledger, "FACTORY", "treasury", "VEST-ALICE",
                            "alice", 1_000, cliff_duration=60, duration=600)
        ledger.execute(tx)
    """
    state = view.get_unit_state(factory_symbol)
    if caller not in (state['owner'], state.get('creator')) or is_zero_address(caller):
        raise Unauthorized("only creator or owner can do this")

    reserve = get_reserve(view, factory_symbol)
    if isinstance(amount, int) and amount > reserve:
        raise InsufficientReserve(
            f"Vesting Factory: reserve holds {reserve}, grant needs {amount}"
        )

    new_state = {**state, 'created': list(state.get('created', [])) + [vesting_symbol]}
    return build_vesting_creation(
        view, vesting_symbol, state['token'],
        owner=state['owner'],
        funding_wallet=state['custody_wallet'],
        beneficiary=beneficiary,
        amount=amount,
        cliff_duration=cliff_duration,
        duration=duration,
        revocable=revocable,
        origin=_origin(caller, factory_symbol, "CREATE"),
        extra_state_changes=[UnitStateChange(factory_symbol, state, with_nonce(state, new_state))],
    )


def compute_create_simple(
    view: LedgerView,
    factory_symbol: str,
    caller: str,
    vesting_symbol: str,
    beneficiary: str,
    amount: int,
) -> PendingTransaction:
    """Revocable grant with a one-year cliff over four years."""
    return compute_create(
        view, factory_symbol, caller, vesting_symbol, beneficiary, amount,
        cliff_duration=SIMPLE_CLIFF_DURATION,
        duration=SIMPLE_DURATION,
        revocable=True,
    )


def compute_empty_reserve(view: LedgerView, factory_symbol: str, caller: str) -> PendingTransaction:
    """
    Send the whole factory reserve back to the owner.

    Raises:
        Unauthorized: caller is not the owner
        InsufficientReserve: the reserve is already empty
    """
    state = view.get_unit_state(factory_symbol)
    _require_owner(state, caller)

    reserve = get_reserve(view, factory_symbol)
    if reserve == 0:
        raise InsufficientReserve("Vesting Factory: reserve is already empty")

    withdrawn = state.get('withdrawn', 0) + reserve
    new_state = {**state, 'withdrawn': withdrawn}
    moves = [token_move(
        reserve, state['token'], state['custody_wallet'], state['owner'],
        f"{factory_symbol}:empty_reserve:{withdrawn}",
    )]
    events = [ContractEvent(EVENT_RESERVE_WITHDRAWN, factory_symbol, account=state['owner'], amount=reserve)]
    return build_transaction(
        view, moves, [UnitStateChange(factory_symbol, state, with_nonce(state, new_state))],
        _origin(caller, factory_symbol, "EMPTY_RESERVE"),
        events=events,
    )


def _compute_role_change(
    view: LedgerView,
    factory_symbol: str,
    caller: str,
    role: str,
    value: Optional[str],
    event_kind: str,
    allow_zero: bool = False,
) -> PendingTransaction:
    state = view.get_unit_state(factory_symbol)
    _require_owner(state, caller)
    if not allow_zero and is_zero_address(value):
        raise InvalidGrantParameters(f"{role} is the zero address")
    new_state = {**state, role: value}
    events = [ContractEvent(event_kind, factory_symbol, account=value, previous=state.get(role))]
    return build_transaction(
        view, [], [UnitStateChange(factory_symbol, state, with_nonce(state, new_state))],
        _origin(caller, factory_symbol, f"SET_{role.upper()}"),
        events=events,
    )


def compute_set_creator(
    view: LedgerView,
    factory_symbol: str,
    caller: str,
    creator: Optional[str],
) -> PendingTransaction:
    """Replace the creator delegate. None removes it."""
    return _compute_role_change(
        view, factory_symbol, caller, 'creator', creator or None, EVENT_CREATOR_CHANGED, allow_zero=True,
    )


def compute_set_owner(view: LedgerView, factory_symbol: str, caller: str, new_owner: str) -> PendingTransaction:
    return _compute_role_change(view, factory_symbol, caller, 'owner', new_owner, EVENT_ADMINISTRATOR_CHANGED)


def compute_set_token(view: LedgerView, factory_symbol: str, caller: str, new_token: str) -> PendingTransaction:
    return _compute_role_change(view, factory_symbol, caller, 'token', new_token, EVENT_TOKEN_CHANGED)
