"""
Atomicity Conformance Tests

INVARIANT: Transactions are all-or-nothing.

    ∀ transaction T:
        T succeeds ⟹ all moves, state changes and creations in T are applied
        T fails ⟹ none of them are applied

A vesting operation is one transaction: the registry bookkeeping and the
token moves it implies land together or not at all.
"""

import pytest
from hypothesis import given, settings, assume, HealthCheck
from hypothesis import strategies as st
from decimal import Decimal

from vesting import (
    ExecuteResult, VestingError, InsufficientReserve, InvalidGrantParameters,
    build_transaction, token_move, days,
)
from vesting.units import multi_vesting as mv
from tests.helpers import TOKEN, balance
from tests.conformance.scenarios import (
    histories, operation, build_ledger, pending_for, run_operation, snapshot,
)


def assert_unchanged(ledger, before, log_len, seen):
    assert snapshot(ledger) == before
    assert len(ledger.transaction_log) == log_len
    assert ledger.seen_intent_ids == seen


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(histories, operation)
    @settings(max_examples=100, deadline=None, suppress_health_check=[HealthCheck.too_slow, HealthCheck.filter_too_much])
    def test_stale_operation_rejected_without_effect(self, history, op):
        """
        PROPERTY: An operation built before the registry changed is rejected whole.
        """
        ledger = build_ledger()
        for step in history:
            run_operation(ledger, step)
        assume(op[0] != "advance")
        try:
            stale = pending_for(ledger, op)
        except VestingError:
            assume(False)

        # any registry write makes the stale transaction's old_state outdated
        assume(run_operation(ledger, ("vest", "alice", 1, 0, 1)) is not None)
        assume(stale.intent_id not in ledger.seen_intent_ids)

        before, log_len, seen = snapshot(ledger), len(ledger.transaction_log), set(ledger.seen_intent_ids)
        assert ledger.execute(stale) == ExecuteResult.REJECTED
        assert_unchanged(ledger, before, log_len, seen)

    @given(histories, st.integers(min_value=1, max_value=5))
    @settings(max_examples=50, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_batch_vest_all_or_nothing(self, history, size):
        """
        PROPERTY: A batch that does not fit the available reserve creates no grants.
        """
        ledger = build_ledger()
        for step in history:
            run_operation(ledger, step)
        available = mv.get_available_reserve(ledger, "MV")
        _, registry = mv.load_multi_vesting(ledger, "MV")

        amounts = [1] * (size - 1) + [available + 1]
        with pytest.raises(InsufficientReserve):
            mv.compute_vest_multiple(ledger, "MV", "treasury", ["alice"] * size, amounts, 0, days(1))

        _, after = mv.load_multi_vesting(ledger, "MV")
        assert after == registry


class TestAtomicityExamples:
    """Explicit atomicity examples."""

    def test_release_with_foreign_overdraft_rolls_back(self):
        ledger = build_ledger()
        run_operation(ledger, ("vest", "alice", 100, 0, 10))
        run_operation(ledger, ("begin",))
        run_operation(ledger, ("advance", 5))

        release = mv.compute_release(ledger, "MV", "alice", 0)
        combined = build_transaction(
            ledger,
            list(release.moves) + [token_move(1, TOKEN, "bob", "charlie", "overdraft")],
            list(release.state_changes),
        )
        before, log_len, seen = snapshot(ledger), len(ledger.transaction_log), set(ledger.seen_intent_ids)

        assert ledger.execute(combined) == ExecuteResult.REJECTED
        assert_unchanged(ledger, before, log_len, seen)
        assert mv.get_grant(ledger, "MV", 0).released == 0

        # the untouched original still applies
        assert ledger.execute(release) == ExecuteResult.APPLIED
        assert balance(ledger, "alice") == 50

    def test_invalid_entry_fails_whole_batch(self):
        ledger = build_ledger()
        _, registry = mv.load_multi_vesting(ledger, "MV")
        with pytest.raises(InvalidGrantParameters):
            mv.compute_vest_multiple(ledger, "MV", "treasury", ["alice", ""], [10, 10], 0, days(1))
        assert mv.load_multi_vesting(ledger, "MV")[1] == registry

    def test_rejected_push_leaves_treasury_untouched(self):
        ledger = build_ledger()
        push = mv.on_token_received(ledger, "MV", "treasury", 150, {'beneficiary': "bob", 'duration': days(1)})
        run_operation(ledger, ("vest", "alice", 1, 0, 1))
        before = snapshot(ledger)

        assert ledger.execute(push) == ExecuteResult.REJECTED
        assert snapshot(ledger) == before
        assert mv.get_owned_count(ledger, "MV", "bob") == 0

    def test_revoke_state_and_refund_together(self):
        ledger = build_ledger()
        run_operation(ledger, ("vest", "alice", 100, 0, 10))
        run_operation(ledger, ("begin",))
        run_operation(ledger, ("advance", 2))
        treasury = balance(ledger, "treasury")

        pending = mv.compute_revoke(ledger, "MV", "treasury", 0)
        assert len(pending.moves) == 1
        assert len(pending.state_changes) == 1
        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert mv.get_grant(ledger, "MV", 0).revoked
        assert balance(ledger, "treasury") - treasury == 80
        assert ledger.get_balance("MV", TOKEN) == Decimal(2_000 - 80)
