"""Enumerations for routeoracle type-safe constants.

Uses StrEnum (Python 3.11+) for automatic string conversion, so stop reasons
and error kinds serialize directly into fuzz reports and log lines.

Python 3.13+.
"""

from enum import IntEnum, StrEnum


class Opcode(IntEnum):
    """Opcode byte values understood by the replay loop.

    Any byte not listed here is a route query.
    """

    NODE_ANNOUNCEMENT = 0
    CHANNEL_ANNOUNCEMENT = 1
    CHANNEL_ANNOUNCEMENT_CHECKED = 2
    CHANNEL_UPDATE = 3
    CHANNEL_CLOSE = 4


class MessageKind(StrEnum):
    """Gossip message type handed to the message codec."""

    NODE_ANNOUNCEMENT = "node_announcement"
    CHANNEL_ANNOUNCEMENT = "channel_announcement"
    CHANNEL_UPDATE = "channel_update"


class DecodeErrorKind(StrEnum):
    """Failure kinds a message codec may report.

    The first four are driven by adversarial content and end a run cleanly.
    SHORT_READ and IO on a length the harness chose itself indicate a harness
    bug.
    """

    UNKNOWN_VERSION = "unknown_version"
    UNKNOWN_REQUIRED_FEATURE = "unknown_required_feature"
    INVALID_VALUE = "invalid_value"
    BAD_LENGTH_DESCRIPTOR = "bad_length_descriptor"
    SHORT_READ = "short_read"
    IO = "io"


class ChainAccessErrorKind(StrEnum):
    """Failure kinds of a UTXO lookup."""

    UNKNOWN_CHAIN = "unknown_chain"
    UNKNOWN_TX = "unknown_tx"


class StopReason(StrEnum):
    """Why a replay run ended without a fatal finding."""

    INPUT_EXHAUSTED = "input_exhausted"
    DECODE_REJECTED = "decode_rejected"
    INVALID_SOURCE = "invalid_source"
    ADDRESS_LIMIT = "address_limit"


class PolicySource(StrEnum):
    """Where the validator resolved a hop's forwarding policy from."""

    FIRST_HOP = "first_hop"
    LAST_HOP = "last_hop"
    CHANNEL_UPDATE = "channel_update"


__all__ = [
    "ChainAccessErrorKind",
    "DecodeErrorKind",
    "MessageKind",
    "Opcode",
    "PolicySource",
    "StopReason",
]
