"""
schedule.py - Vesting Schedule and Accounting Engine

Pure, side-effect-free vesting arithmetic shared by every vesting unit.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASS (explicit input):
   - VestingSchedule: one beneficiary's right to a fixed amount over time

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take a schedule and `now` explicitly
   - No LedgerView, no hidden state

3. PURE TRANSITIONS (apply_*):
   - Return a NEW schedule plus the amount that moves
   - Raise a VestingError subclass when the transition is not allowed

4. SERIALIZATION (schedule_to_dict / schedule_from_dict):
   - The only bridge to unit state dictionaries

Key Formulas:
    vested     = 0                                  if now < start + cliff_duration
               = total                              if now >= start + duration
               = total * elapsed_seconds // duration otherwise
    releasable = vested - released
    balance    = total - released                   (not revoked)
               = vested_at_revocation - released    (revoked)

Amounts are whole base units. Floor division means the engine never
promises more than `total_amount`; the dust is released at maturity.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from .core import (
    InvalidGrantParameters, InvalidGrantState, NothingDue,
    is_zero_address,
)


_ONE_SECOND = timedelta(seconds=1)


# ============================================================================
# FROZEN DATACLASS
# ============================================================================

@dataclass(frozen=True, slots=True)
class VestingSchedule:
    """
    Immutable snapshot of a single grant.

    Each state change creates a NEW instance (value semantics).

    A schedule whose `start` is None is deferred: it belongs to a registry
    that has not begun yet, and it accrues nothing until the registry's
    start date resolves it (see with_start()).
    """
    beneficiary: str
    total_amount: int
    start: Optional[datetime]
    cliff_duration: int            # seconds after start before anything vests
    duration: int                  # seconds after start until fully vested
    released: int = 0
    revocable: bool = True
    revoked: bool = False
    vested_at_revocation: Optional[int] = None

    @property
    def cliff(self) -> Optional[datetime]:
        if self.start is None:
            return None
        return self.start + timedelta(seconds=self.cliff_duration)

    @property
    def end(self) -> Optional[datetime]:
        if self.start is None:
            return None
        return self.start + timedelta(seconds=self.duration)

    @property
    def is_started(self) -> bool:
        return self.start is not None


# ============================================================================
# VALIDATION
# ============================================================================

def validate_schedule_parameters(
    beneficiary: Optional[str],
    amount: int,
    cliff_duration: int,
    duration: int,
) -> None:
    """
    Reject grant parameters that can never describe a valid schedule.

    Raises:
        InvalidGrantParameters: zero beneficiary, amount or durations that
            are not ints, non-positive amount or duration, negative cliff,
            or cliff longer than duration.
    """
    if is_zero_address(beneficiary):
        raise InvalidGrantParameters("beneficiary is the zero address")
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidGrantParameters(f"amount must be a whole number of base units, got {amount!r}")
    if amount <= 0:
        raise InvalidGrantParameters("amount is 0")
    for name, seconds in (("cliff_duration", cliff_duration), ("duration", duration)):
        if not isinstance(seconds, int) or isinstance(seconds, bool):
            raise InvalidGrantParameters(f"{name} must be a whole number of seconds, got {seconds!r}")
    if duration <= 0:
        raise InvalidGrantParameters("duration is 0")
    if cliff_duration < 0:
        raise InvalidGrantParameters(f"cliff_duration cannot be negative, got {cliff_duration}")
    if cliff_duration > duration:
        raise InvalidGrantParameters("cliff is longer than duration")


def new_schedule(
    beneficiary: str,
    amount: int,
    start: Optional[datetime],
    cliff_duration: int,
    duration: int,
    revocable: bool = True,
) -> VestingSchedule:
    """Validate parameters and build a fresh, unreleased schedule."""
    validate_schedule_parameters(beneficiary, amount, cliff_duration, duration)
    return VestingSchedule(
        beneficiary=beneficiary,
        total_amount=amount,
        start=start,
        cliff_duration=cliff_duration,
        duration=duration,
        revocable=revocable,
    )


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def elapsed_seconds(start: datetime, now: datetime) -> int:
    """Whole seconds from start to now (negative before start)."""
    return (now - start) // _ONE_SECOND


def calculate_vested_amount(schedule: VestingSchedule, now: datetime) -> int:
    """
    Cumulative amount unlocked by time, independent of what was withdrawn.

    PURE FUNCTION - All inputs explicit, no hidden state.

    A revoked schedule returns the snapshot recorded at revocation; it is
    never recomputed.
    """
    if schedule.revoked:
        return schedule.vested_at_revocation or 0
    if schedule.start is None:
        return 0

    elapsed = elapsed_seconds(schedule.start, now)
    if elapsed < schedule.cliff_duration:
        return 0
    if elapsed >= schedule.duration:
        return schedule.total_amount
    return schedule.total_amount * elapsed // schedule.duration


def calculate_releasable_amount(schedule: VestingSchedule, now: datetime) -> int:
    """Vested amount minus what has already been released."""
    return max(calculate_vested_amount(schedule, now) - schedule.released, 0)


def calculate_grant_balance(schedule: VestingSchedule, now: datetime) -> int:
    """
    Outstanding obligation of the grant, whether or not it is unlocked yet.

    This is what custody must keep back for the grant.
    """
    if schedule.revoked:
        return calculate_vested_amount(schedule, now) - schedule.released
    return schedule.total_amount - schedule.released


def is_settled(schedule: VestingSchedule, now: datetime) -> bool:
    """True once nothing more will ever be paid out for this grant."""
    return calculate_grant_balance(schedule, now) == 0


# ============================================================================
# PURE TRANSITIONS
# ============================================================================

def with_start(schedule: VestingSchedule, start: Optional[datetime]) -> VestingSchedule:
    """Resolve a deferred start. Schedules with their own start are returned as-is."""
    if schedule.start is not None or start is None:
        return schedule
    return replace(schedule, start=start)


def apply_release(schedule: VestingSchedule, now: datetime) -> Tuple[VestingSchedule, int]:
    """
    Release everything currently due.

    Returns:
        (new_schedule, amount_released)

    Raises:
        NothingDue: if the releasable amount is zero
    """
    amount = calculate_releasable_amount(schedule, now)
    if amount == 0:
        raise NothingDue("no tokens are due")
    return replace(schedule, released=schedule.released + amount), amount


def apply_revocation(schedule: VestingSchedule, now: datetime) -> Tuple[VestingSchedule, int]:
    """
    Freeze vesting at `now`.

    The vested amount is snapshotted into `vested_at_revocation`; the
    beneficiary keeps the right to release up to it.

    Returns:
        (new_schedule, unvested_remainder) where the remainder is what goes
        back to the administrator.

    Raises:
        InvalidGrantState: not revocable, already revoked, or fully released
    """
    if not schedule.revocable:
        raise InvalidGrantState("vesting is not revocable")
    if schedule.revoked:
        raise InvalidGrantState("vesting already revoked")
    if schedule.released >= schedule.total_amount:
        raise InvalidGrantState("vesting is already fully released")

    vested = calculate_vested_amount(schedule, now)
    revoked = replace(schedule, revoked=True, vested_at_revocation=vested)
    return revoked, schedule.total_amount - vested


def apply_transfer(schedule: VestingSchedule, new_beneficiary: str) -> VestingSchedule:
    """Reassign the grant; every scheduling parameter is kept."""
    if is_zero_address(new_beneficiary):
        raise InvalidGrantParameters("beneficiary is the zero address")
    return replace(schedule, beneficiary=new_beneficiary)


# ============================================================================
# SERIALIZATION
# ============================================================================

def schedule_to_dict(schedule: VestingSchedule) -> Dict[str, Any]:
    """Plain dict for unit state storage."""
    return {
        'beneficiary': schedule.beneficiary,
        'total_amount': schedule.total_amount,
        'start': schedule.start,
        'cliff_duration': schedule.cliff_duration,
        'duration': schedule.duration,
        'released': schedule.released,
        'revocable': schedule.revocable,
        'revoked': schedule.revoked,
        'vested_at_revocation': schedule.vested_at_revocation,
    }


def schedule_from_dict(raw: Dict[str, Any]) -> VestingSchedule:
    """Inverse of schedule_to_dict()."""
    return VestingSchedule(
        beneficiary=raw['beneficiary'],
        total_amount=int(raw['total_amount']),
        start=raw.get('start'),
        cliff_duration=int(raw.get('cliff_duration', 0)),
        duration=int(raw['duration']),
        released=int(raw.get('released', 0)),
        revocable=raw.get('revocable', True),
        revoked=raw.get('revoked', False),
        vested_at_revocation=raw.get('vested_at_revocation'),
    )
