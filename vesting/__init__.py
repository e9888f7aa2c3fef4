"""
vesting - Token Vesting Engine

Linear token vesting with cliffs, revocation, grant transfer and strict
reserve accounting, running on a double-entry token ledger.

Usage:
    from decimal import Decimal
    from vesting import Ledger, token, Move, build_transaction, SYSTEM_WALLET, ONE_YEAR, years
    from vesting import multi_vesting as mv

    ledger = Ledger("main")
    ledger.register_unit(token("CRUNCH", "Crunch Token"))
    ledger.register_wallet("treasury")
    ledger.register_wallet("alice")

    ledger.register_unit(mv.create_multi_vesting_unit("MV", "CRUNCH", owner="treasury"))
    ledger.register_wallet("MV")

    # Fund the registry's custody wallet (proper issuance)
    ledger.execute(build_transaction(ledger, [
        Move(Decimal(1_000), "CRUNCH", SYSTEM_WALLET, "MV", "mint_001")
    ]))

    ledger.execute(mv.compute_vest(ledger, "MV", "treasury", "alice", 1_000,
                                   cliff_duration=ONE_YEAR, duration=years(2)))
    ledger.execute(mv.compute_begin_now(ledger, "MV", "treasury"))
"""

# Core types
from .core import (
    LedgerView,
    SmartContract,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    ContractEvent,
    build_transaction,
    empty_pending_transaction,
    token_move,
    Unit,
    UnitStateChange, with_nonce,
    ExecuteResult,
    LedgerError,
    UnitNotRegistered,
    WalletNotRegistered,
    VestingError,
    InvalidGrantParameters,
    Unauthorized,
    InvalidGrantState,
    NothingDue,
    InsufficientReserve,
    GrantNotFound,
    token,
    years,
    months,
    days,
    is_zero_address,
    SYSTEM_WALLET,
    ZERO_ADDRESS,
    ONE_YEAR,
    ONE_MONTH,
    SECONDS_PER_DAY,
    UNIT_TYPE_TOKEN,
    UNIT_TYPE_VESTING,
    UNIT_TYPE_VESTING_FACTORY,
    UNIT_TYPE_MULTI_VESTING,
    EVENT_GRANT_CREATED,
    EVENT_OWNERSHIP_TRANSFERRED,
    EVENT_TOKENS_RELEASED,
    EVENT_SCHEDULE_REVOKED,
    EVENT_REGISTRY_STARTED,
    EVENT_ADMINISTRATOR_CHANGED,
    EVENT_TOKEN_CHANGED,
    EVENT_CREATOR_CHANGED,
    EVENT_GRANT_CLEARED,
    EVENT_RESERVE_WITHDRAWN,
)

# Ledger
from .ledger import Ledger

# Accounting engine
from .schedule import (
    VestingSchedule,
    validate_schedule_parameters,
    new_schedule,
    calculate_vested_amount,
    calculate_releasable_amount,
    calculate_grant_balance,
    is_settled,
    apply_release,
    apply_revocation,
    apply_transfer,
    with_start,
)

# Unit modules (namespaced: their compute_* names overlap)
from .units import vesting as single_vesting
from .units import vesting_factory
from .units import multi_vesting

from .units.vesting import (
    VestingTerms,
    create_vesting_unit,
    vesting_contract,
)
from .units.vesting_factory import create_vesting_factory_unit
from .units.multi_vesting import (
    RegistryTerms,
    GrantRegistry,
    create_multi_vesting_unit,
    multi_vesting_contract,
)

# Lifecycle
from .lifecycle_engine import LifecycleEngine

from .scheduled_events import (
    Event,
    EventScheduler,
    EventHandler,
    begin_event,
    release_event,
    revoke_event,
)

from .event_handlers import (
    handle_begin,
    handle_release,
    handle_revoke,
    DEFAULT_HANDLERS,
    create_default_scheduler,
)

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin', 'OriginType',
    'ContractEvent', 'build_transaction', 'empty_pending_transaction', 'token_move',
    'Unit', 'UnitStateChange', 'with_nonce',
    'ExecuteResult', 'LedgerError',
    'UnitNotRegistered', 'WalletNotRegistered',
    'VestingError', 'InvalidGrantParameters', 'Unauthorized', 'InvalidGrantState',
    'NothingDue', 'InsufficientReserve', 'GrantNotFound',
    'token', 'years', 'months', 'days', 'is_zero_address',
    'SYSTEM_WALLET', 'ZERO_ADDRESS', 'ONE_YEAR', 'ONE_MONTH', 'SECONDS_PER_DAY',
    'UNIT_TYPE_TOKEN', 'UNIT_TYPE_VESTING', 'UNIT_TYPE_VESTING_FACTORY', 'UNIT_TYPE_MULTI_VESTING',
    'EVENT_GRANT_CREATED', 'EVENT_OWNERSHIP_TRANSFERRED', 'EVENT_TOKENS_RELEASED',
    'EVENT_SCHEDULE_REVOKED', 'EVENT_REGISTRY_STARTED', 'EVENT_ADMINISTRATOR_CHANGED',
    'EVENT_TOKEN_CHANGED', 'EVENT_CREATOR_CHANGED', 'EVENT_GRANT_CLEARED',
    'EVENT_RESERVE_WITHDRAWN',
    # Ledger
    'Ledger',
    # Accounting engine
    'VestingSchedule', 'validate_schedule_parameters', 'new_schedule',
    'calculate_vested_amount', 'calculate_releasable_amount', 'calculate_grant_balance',
    'is_settled', 'apply_release', 'apply_revocation', 'apply_transfer', 'with_start',
    # Units
    'single_vesting', 'vesting_factory', 'multi_vesting',
    'VestingTerms', 'create_vesting_unit', 'vesting_contract',
    'create_vesting_factory_unit',
    'RegistryTerms', 'GrantRegistry', 'create_multi_vesting_unit', 'multi_vesting_contract',
    # Lifecycle
    'SmartContract', 'LifecycleEngine',
    'Event', 'EventScheduler', 'EventHandler',
    'begin_event', 'release_event', 'revoke_event',
    'handle_begin', 'handle_release', 'handle_revoke',
    'DEFAULT_HANDLERS', 'create_default_scheduler',
]

__version__ = '1.0.0'
