"""Hypothesis strategies for routeoracle property-based testing.

Usage:
    from tests.strategies import replay_inputs, opcode_streams
    from tests.strategies.routing import node_indices, source_keys

Event-Emitting Strategies (HypoFuzz-Optimized):
    These strategies emit hypothesis.event() calls for coverage-guided fuzzing:
    - replay_inputs, opcode_streams
"""

from .routing import (
    node_indices,
    opcode_streams,
    replay_inputs,
    source_keys,
)

__all__ = [
    "node_indices",
    "opcode_streams",
    "replay_inputs",
    "source_keys",
]
