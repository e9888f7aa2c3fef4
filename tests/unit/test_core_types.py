"""
test_core_types.py - Unit tests for core data structures

Tests:
- Move / token_move: creation, validation, immutability
- ContractEvent: fields and repr
- PendingTransaction: intent ids, emptiness
- Transaction: creation, validation
- UnitStateChange: changed fields
- Unit: token factory, rounding
- Durations and zero-address helper
- Error taxonomy
"""

import pytest
from dataclasses import FrozenInstanceError
from datetime import datetime
from decimal import Decimal

from vesting import (
    Move, Transaction, UnitStateChange, PendingTransaction, ContractEvent,
    TransactionOrigin, OriginType,
    token, token_move, is_zero_address,
    years, months, days, ONE_YEAR, ONE_MONTH, SECONDS_PER_DAY,
    LedgerError, VestingError, InvalidGrantParameters, Unauthorized,
    InvalidGrantState, NothingDue, InsufficientReserve, GrantNotFound,
    EVENT_TOKENS_RELEASED, EVENT_REGISTRY_STARTED,
)


T = datetime(2025, 1, 1)


def _test_origin() -> TransactionOrigin:
    return TransactionOrigin(
        origin_type=OriginType.USER_ACTION,
        source_id="test",
    )


def _pending(moves=(), state_changes=(), events=()) -> PendingTransaction:
    return PendingTransaction(
        moves=tuple(moves), state_changes=tuple(state_changes),
        origin=_test_origin(), timestamp=T, events=tuple(events),
    )


class TestMoveCreation:
    """Tests for Move creation and validation."""

    def test_create_valid_move(self):
        move = Move(Decimal(100), "CRUNCH", "alice", "bob", "tx_001")
        assert move.source == "alice"
        assert move.dest == "bob"
        assert move.unit_symbol == "CRUNCH"
        assert move.quantity == Decimal(100)
        assert move.metadata is None

    def test_token_move_converts_to_decimal(self):
        move = token_move(250, "CRUNCH", "MV", "alice", "MV:release:0:250")
        assert isinstance(move.quantity, Decimal)
        assert move.quantity == Decimal(250)

    def test_float_quantity_rejected(self):
        with pytest.raises(ValueError, match="must be Decimal"):
            Move(100.0, "CRUNCH", "alice", "bob", "tx_001")

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValueError, match="effectively zero"):
            token_move(0, "CRUNCH", "alice", "bob", "tx_001")

    def test_same_source_dest_rejected(self):
        with pytest.raises(ValueError, match="different"):
            token_move(1, "CRUNCH", "alice", "alice", "tx_001")

    @pytest.mark.parametrize("field_values", [
        ("", "bob", "CRUNCH", "tx"),
        ("alice", " ", "CRUNCH", "tx"),
        ("alice", "bob", "", "tx"),
        ("alice", "bob", "CRUNCH", ""),
    ])
    def test_empty_fields_rejected(self, field_values):
        source, dest, unit, contract_id = field_values
        with pytest.raises(ValueError):
            Move(Decimal(1), unit, source, dest, contract_id)

    def test_nan_rejected(self):
        with pytest.raises(ValueError, match="finite"):
            Move(Decimal("NaN"), "CRUNCH", "alice", "bob", "tx_001")

    def test_move_is_frozen(self):
        move = token_move(1, "CRUNCH", "alice", "bob", "tx_001")
        with pytest.raises(FrozenInstanceError):
            move.quantity = Decimal(2)

    def test_move_repr(self):
        assert "alice→bob" in repr(token_move(5, "CRUNCH", "alice", "bob", "tx_001"))


class TestContractEvent:

    def test_defaults(self):
        event = ContractEvent(EVENT_TOKENS_RELEASED, "VEST-1", account="alice", amount=10)
        assert event.grant_id is None
        assert event.previous is None
        assert event.at is None

    def test_repr_lists_set_fields(self):
        event = ContractEvent(EVENT_REGISTRY_STARTED, "MV", at=T)
        text = repr(event)
        assert "RegistryStarted@MV" in text
        assert "2025-01-01" in text
        assert "account" not in text


class TestPendingTransaction:
    """Tests for intent ids and emptiness."""

    def test_intent_id_is_content_hash(self):
        move = token_move(10, "CRUNCH", "alice", "bob", "tx_001")
        a = _pending([move])
        b = PendingTransaction(
            moves=(move,), state_changes=(), origin=_test_origin(),
            timestamp=datetime(2030, 6, 1),
        )
        assert a.intent_id == b.intent_id
        assert len(a.intent_id) == 16

    def test_contract_id_changes_intent(self):
        a = _pending([token_move(10, "CRUNCH", "alice", "bob", "tx_001")])
        b = _pending([token_move(10, "CRUNCH", "alice", "bob", "tx_002")])
        assert a.intent_id != b.intent_id

    def test_move_order_does_not_change_intent(self):
        m1 = token_move(10, "CRUNCH", "alice", "bob", "tx_001")
        m2 = token_move(20, "CRUNCH", "bob", "charlie", "tx_002")
        assert _pending([m1, m2]).intent_id == _pending([m2, m1]).intent_id

    def test_events_change_intent(self):
        move = token_move(10, "CRUNCH", "alice", "bob", "tx_001")
        event = ContractEvent(EVENT_TOKENS_RELEASED, "VEST-1", account="bob", amount=10)
        assert _pending([move]).intent_id != _pending([move], events=[event]).intent_id

    def test_decimal_representation_ignored(self):
        sc1 = UnitStateChange("U", {"x": Decimal("1.0")}, {"x": Decimal("2")})
        sc2 = UnitStateChange("U", {"x": Decimal("1.00")}, {"x": Decimal("2.0")})
        assert _pending(state_changes=[sc1]).intent_id == _pending(state_changes=[sc2]).intent_id

    def test_is_empty(self):
        assert _pending().is_empty()
        # Events alone change nothing
        assert _pending(events=[ContractEvent(EVENT_TOKENS_RELEASED, "V")]).is_empty()


class TestTransaction:

    def _tx(self, moves=(), state_changes=()):
        return Transaction(
            moves=tuple(moves), state_changes=tuple(state_changes), origin=_test_origin(),
            timestamp=T, intent_id="abc", exec_id="exec:test:0", ledger_name="test",
            execution_time=T, sequence_number=0,
        )

    def test_contract_ids_collected(self):
        tx = self._tx([
            token_move(1, "CRUNCH", "a", "b", "MV:release:0:1"),
            token_move(2, "CRUNCH", "a", "c", "MV:release:2:2"),
        ])
        assert tx.contract_ids == frozenset({"MV:release:0:1", "MV:release:2:2"})

    def test_state_only_transaction(self):
        tx = self._tx(state_changes=[UnitStateChange("MV", {"owner": "a"}, {"owner": "b"})])
        assert tx.moves == ()

    def test_empty_transaction_raises(self):
        with pytest.raises(ValueError):
            self._tx()

    def test_repr_shows_changed_fields(self):
        tx = self._tx(state_changes=[UnitStateChange("MV", {"owner": "a", "next_id": 1},
                                                     {"owner": "b", "next_id": 1})])
        text = repr(tx)
        assert "owner" in text
        assert "next_id" not in text


class TestUnitStateChange:

    def test_changed_fields(self):
        sc = UnitStateChange("MV", {"a": 1, "b": 2}, {"a": 1, "b": 3, "c": 4})
        assert sc.changed_fields() == {"b": (2, 3), "c": (None, 4)}

    def test_none_old_state(self):
        sc = UnitStateChange("MV", None, {"a": 1})
        assert sc.changed_fields() == {"a": (None, 1)}


class TestTokenUnit:

    def test_token_unit(self):
        unit = token("CRUNCH", "Crunch Token")
        assert unit.min_balance == Decimal(0)
        assert unit.decimal_places == 0
        assert unit.state == {'decimals': 18, 'issuer': "system"}

    def test_rounding_truncates(self):
        unit = token("CRUNCH", "Crunch Token")
        assert unit.round(Decimal("10.9")) == Decimal(10)
        assert unit.round(Decimal("-0.5")) == Decimal(0)

    def test_empty_symbol(self):
        with pytest.raises(ValueError):
            token("", "Nothing")

    def test_negative_decimals(self):
        with pytest.raises(ValueError):
            token("CRUNCH", "Crunch Token", decimals=-1)

    def test_state_is_a_copy(self):
        unit = token("CRUNCH", "Crunch Token")
        state = unit.state
        state['issuer'] = "mallory"
        assert unit.state['issuer'] == "system"


class TestDurations:

    def test_year(self):
        assert ONE_YEAR == 31_557_600
        assert years(1) == ONE_YEAR
        assert years(2) == 63_115_200

    def test_month_and_day(self):
        assert months(1) == ONE_MONTH
        assert days(1) == SECONDS_PER_DAY == 86_400

    def test_durations_are_ints(self):
        assert isinstance(years(0.5), int)
        assert isinstance(months(3), int)

    @pytest.mark.parametrize("account,expected", [
        (None, True), ("", True), ("   ", True), ("alice", False),
    ])
    def test_zero_address(self, account, expected):
        assert is_zero_address(account) is expected


class TestErrorTaxonomy:

    def test_all_vesting_errors_are_ledger_errors(self):
        for exc in (InvalidGrantParameters, Unauthorized, InvalidGrantState,
                    NothingDue, InsufficientReserve, GrantNotFound):
            assert issubclass(exc, VestingError)
            assert issubclass(exc, LedgerError)

    def test_builtin_bases(self):
        assert issubclass(InvalidGrantParameters, ValueError)
        assert issubclass(GrantNotFound, LookupError)
        assert issubclass(NothingDue, InvalidGrantState)
