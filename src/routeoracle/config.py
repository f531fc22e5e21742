"""Replay configuration for RouterHarness.

Provides a single frozen dataclass that encapsulates the tunable parameters
of a replay run. Defaults reproduce the canonical opcode semantics; fuzz
targets normally construct ``HarnessConfig()`` with no arguments.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass

from routeoracle.constants import (
    DEFAULT_IDENTITY_SEED,
    INITIAL_SYNTHETIC_SCID,
    MAX_NODE_ADDRESS_BYTES,
)

__all__ = ["HarnessConfig"]

_MAX_U64 = (1 << 64) - 1


@dataclass(frozen=True, slots=True)
class HarnessConfig:
    """Immutable configuration for a replay run.

    Attributes:
        initial_scid: Counter base for synthetic short channel ids. The first
            first-hop or route hint of a run receives ``initial_scid + 1``; the
            counter wraps to 0 past the u64 maximum.
        max_node_address_bytes: Node announcements whose address block
            exceeds this length end the run cleanly.
        identity_seed: Key for the identity iteration order. Runs are only
            reproducible against crash reports made with the same seed.
        record_trace: Record every graph mutation and route request in
            ``RunOutcome.trace`` (default: False).

    Example:
        >>> config = HarnessConfig(record_trace=True)
        >>> config.initial_scid
        42
    """

    initial_scid: int = INITIAL_SYNTHETIC_SCID
    max_node_address_bytes: int = MAX_NODE_ADDRESS_BYTES
    identity_seed: bytes = DEFAULT_IDENTITY_SEED
    record_trace: bool = False

    def __post_init__(self) -> None:
        """Validate configuration values at construction time.

        Raises:
            ValueError: If initial_scid is outside the u64 range, if
                max_node_address_bytes is negative or wider than 16 bits,
                or if identity_seed is empty or longer than 64 bytes.
        """
        if not 0 <= self.initial_scid <= _MAX_U64:
            msg = "initial_scid must fit in an unsigned 64-bit integer"
            raise ValueError(msg)
        if not 0 <= self.max_node_address_bytes <= 0xFFFF:
            msg = "max_node_address_bytes must be between 0 and 65535"
            raise ValueError(msg)
        if not isinstance(self.identity_seed, bytes):
            msg = "identity_seed must be bytes"
            raise TypeError(msg)
        # BLAKE2b accepts keys of 1..64 bytes
        if not 1 <= len(self.identity_seed) <= 64:
            msg = "identity_seed must be between 1 and 64 bytes"
            raise ValueError(msg)
