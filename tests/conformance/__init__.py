"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lottery and its ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. lottery_properties.py - Entry, authorization and draw semantics
2. conservation.py - Value is redistributed, never created or destroyed
3. atomicity.py - All-or-nothing operations
4. determinism.py - Reproducible draws and replay

These tests use hypothesis for property-based testing.
"""
