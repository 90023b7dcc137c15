"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the vesting engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_vesting_invariants.py - Accounting invariants over arbitrary operation sequences
2. test_rollback.py - All-or-nothing operations and re-entrancy protection
3. test_vesting_law.py - Deterministic ids and the linear vesting law

These tests use hypothesis for property-based testing.
"""
