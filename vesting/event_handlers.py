"""
event_handlers.py - Event Handler Functions

Simple functions that process Event -> PendingTransaction.
Each handler delegates to the compute_* functions of the unit modules and
acts as the unit's administrator.

- No handler classes, just functions
- Dict of functions instead of class hierarchy
- Thin adapters between Event and unit module functions
"""

from __future__ import annotations
from typing import Dict

from .core import (
    LedgerView, PendingTransaction, OriginType,
    UNIT_TYPE_VESTING, UNIT_TYPE_MULTI_VESTING,
)
from .scheduled_events import Event, EventHandler, EventScheduler
from .units import vesting as single
from .units import multi_vesting as multi


def _unit_type(view: LedgerView, symbol: str) -> str:
    return view.get_unit(symbol).unit_type


def _administrator(view: LedgerView, symbol: str) -> str:
    return view.get_unit_state(symbol)['owner']


# ============================================================================
# HANDLER FUNCTIONS
# ============================================================================

def handle_begin(event: Event, view: LedgerView) -> PendingTransaction:
    """Start a registry at the event's trigger time."""
    if _unit_type(view, event.symbol) != UNIT_TYPE_MULTI_VESTING:
        raise ValueError(f"begin event needs a multi vesting unit, got {event.symbol}")
    return multi.compute_begin_at(
        view, event.symbol, _administrator(view, event.symbol), event.trigger_time,
    )


def handle_release(event: Event, view: LedgerView) -> PendingTransaction:
    """Release for the beneficiary; tokens always go to the grant's holder."""
    unit_type = _unit_type(view, event.symbol)
    params = event.params_dict

    if unit_type == UNIT_TYPE_VESTING:
        return single.compute_release(
            view, event.symbol, caller=_administrator(view, event.symbol),
            origin_type=OriginType.LIFECYCLE,
        )
    elif unit_type == UNIT_TYPE_MULTI_VESTING:
        admin = _administrator(view, event.symbol)
        if params.get("grant_id") is not None:
            return multi.compute_release_for(view, event.symbol, admin, int(params["grant_id"]))
        if params.get("beneficiary"):
            return multi.compute_release_all_for(view, event.symbol, admin, params["beneficiary"])
        raise ValueError(f"release event on {event.symbol} needs 'grant_id' or 'beneficiary'")
    else:
        raise ValueError(f"Unknown unit_type '{unit_type}' in release event for {event.symbol}")


def handle_revoke(event: Event, view: LedgerView) -> PendingTransaction:
    """Revoke as the administrator."""
    unit_type = _unit_type(view, event.symbol)
    params = event.params_dict
    admin = _administrator(view, event.symbol)

    if unit_type == UNIT_TYPE_VESTING:
        return single.compute_revoke(view, event.symbol, admin)
    elif unit_type == UNIT_TYPE_MULTI_VESTING:
        grant_id = params.get("grant_id")
        if grant_id is None:
            raise ValueError(f"Missing 'grant_id' in revoke event params for {event.symbol}")
        return multi.compute_revoke(
            view, event.symbol, admin, int(grant_id), bool(params.get("send_back", True)),
        )
    else:
        raise ValueError(f"Unknown unit_type '{unit_type}' in revoke event for {event.symbol}")


# ============================================================================
# HANDLER REGISTRY
# ============================================================================

DEFAULT_HANDLERS: Dict[str, EventHandler] = {
    "begin": handle_begin,
    "release": handle_release,
    "revoke": handle_revoke,
}


def create_default_scheduler() -> EventScheduler:
    """EventScheduler with the begin, release and revoke handlers registered."""
    scheduler = EventScheduler()
    for action, handler in DEFAULT_HANDLERS.items():
        scheduler.register(action, handler)
    return scheduler
