"""
Units module - Vesting unit factories and operations.

- vesting: one grant per unit, with its own custody wallet
- vesting_factory: a reserve that mints funded single-grant units
- multi_vesting: a registry of many grants over one shared custody wallet

The modules share operation names (compute_release, compute_revoke, ...),
so import them as modules rather than star-importing.
"""

from .vesting import (
    create_vesting_unit,
    vesting_contract,
    transact as vesting_transact,
)

from .vesting_factory import (
    create_vesting_factory_unit,
)

from .multi_vesting import (
    create_multi_vesting_unit,
    multi_vesting_contract,
    transact as multi_vesting_transact,
)

__all__ = [
    'create_vesting_unit',
    'vesting_contract',
    'vesting_transact',
    'create_vesting_factory_unit',
    'create_multi_vesting_unit',
    'multi_vesting_contract',
    'multi_vesting_transact',
]
