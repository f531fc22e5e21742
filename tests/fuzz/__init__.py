"""Fuzz testing infrastructure for routeoracle.

This package contains:
- shadow_router: Reference router whose routes are consistent by construction
- test_replay_property: Never-crash, differential and determinism properties

Python 3.13+.
"""
