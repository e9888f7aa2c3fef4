"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the vesting ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Token supply and registry solvency
2. atomicity.py - All-or-nothing transaction semantics
3. idempotency.py - Duplicate execution handling
4. determinism.py - Reproducible behavior and replay
5. temporal.py - Time ordering and historical reconstruction

Random grant histories come from scenarios.py. These tests use hypothesis
for property-based testing.
"""
