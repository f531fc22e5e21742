"""Shared constants for routeoracle.

Wire sizes are taken from the unsigned BOLT 7 gossip message layouts the
replay loop sizes its reads from. Placing them here keeps the replay loop,
the validator, and the configuration layer on a single source of truth.

Constants are grouped by domain:
- Wire sizes: Fixed field widths and per-message trailing lengths
- Replay defaults: Synthetic channel ids and address limits
- Fee arithmetic: Proportional fee denominator

Python 3.13+. Zero external dependencies.
"""

# ruff: noqa: RUF022 - __all__ organized by category for readability
__all__ = [
    # Wire sizes
    "NODE_ID_LENGTH",
    "NODE_ANNOUNCEMENT_EXCESS",
    "NODE_ANNOUNCEMENT_ADDRLEN_OFFSET",
    "CHANNEL_ANNOUNCEMENT_EXCESS",
    "CHANNEL_UPDATE_LENGTH",
    # Replay defaults
    "INITIAL_SYNTHETIC_SCID",
    "MAX_NODE_ADDRESS_BYTES",
    "DEFAULT_IDENTITY_SEED",
    # Fee arithmetic
    "FEE_RATE_DENOMINATOR",
]

# ============================================================================
# WIRE SIZES
# ============================================================================

NODE_ID_LENGTH: int = 33
"""Compressed secp256k1 public key."""

# Unsigned node_announcement after the feature bits:
#   timestamp(4) node_id(33) rgb(3) alias(32) addrlen(2) addresses(addrlen)
# The trailing allowance covers the fixed fields plus the largest address
# block accepted by MAX_NODE_ADDRESS_BYTES, so decoding never needs to read
# past the slice the replay loop handed out.
NODE_ANNOUNCEMENT_EXCESS: int = 288

# addrlen sits after: flen(2) features(flen) timestamp(4) node_id(33) rgb(3) alias(32)
NODE_ANNOUNCEMENT_ADDRLEN_OFFSET: int = 4 + 33 + 3 + 32

# Unsigned channel_announcement after the feature bits:
#   chain_hash(32) short_channel_id(8) node_id_1 node_id_2 bitcoin_key_1 bitcoin_key_2
CHANNEL_ANNOUNCEMENT_EXCESS: int = 32 + 8 + 33 * 4

# Unsigned channel_update with htlc_maximum_msat present:
#   chain_hash(32) short_channel_id(8) timestamp(4) flags(2) cltv_expiry_delta(2)
#   htlc_minimum_msat(8) fee_base_msat(4) fee_proportional_millionths(4)
#   htlc_maximum_msat(8)
CHANNEL_UPDATE_LENGTH: int = 72

# ============================================================================
# REPLAY DEFAULTS
# ============================================================================

INITIAL_SYNTHETIC_SCID: int = 42
"""Counter base for short channel ids assigned to first hops and route hints."""

MAX_NODE_ADDRESS_BYTES: int = (37 + 1) * 4
"""Largest address block (four maximal tor v3 descriptors) replayed from input."""

DEFAULT_IDENTITY_SEED: bytes = b"routeoracle/identity-order/v1"
"""Fixed key for the identity iteration order. Must never be randomized."""

# ============================================================================
# FEE ARITHMETIC
# ============================================================================

FEE_RATE_DENOMINATOR: int = 1_000_000
"""Proportional fees are expressed in millionths of the forwarded amount."""
