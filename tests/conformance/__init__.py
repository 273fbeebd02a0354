"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the option ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - All-or-nothing invocation semantics
2. conservation.py - Double-entry accounting across option lifecycles
3. funds_matching.py - Multiset equality of exercise payments

These tests use hypothesis for property-based testing.
"""
