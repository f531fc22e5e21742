"""Exception hierarchy for the route oracle.

Two disjoint families, matching the two ways a replay run may end:

    HarnessStop (expected termination - caught by RouterHarness.run)
    ├─ InputExhausted (the byte stream ran out)
    ├─ DecodeRejected (adversarial message content)
    ├─ InvalidSourceIdentity (leading payer key is not a public key)
    └─ AddressLimitExceeded (oversized node announcement address block)

    OracleFailure (fatal - never caught inside the package)
    ├─ RouteInvariantViolation (the router returned an inconsistent route)
    └─ HarnessInconsistency (the harness or a collaborator broke its contract)

OracleFailure must reach the fuzzing engine uncaught: an unhandled exception
is how Atheris marks the current input as a reproducer.

Collaborator-facing exceptions (raised by codecs, routers and chain oracles)
live here too so backends can depend on this module alone.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import final

from routeoracle.enums import ChainAccessErrorKind, DecodeErrorKind, StopReason

# ruff: noqa: RUF022 - __all__ organized by category for readability
__all__ = [
    # Expected termination
    "HarnessStop",
    "InputExhausted",
    "DecodeRejected",
    "InvalidSourceIdentity",
    "AddressLimitExceeded",
    # Fatal findings
    "FailureContext",
    "OracleFailure",
    "RouteInvariantViolation",
    "HarnessInconsistency",
    # Collaborator errors
    "MessageDecodeError",
    "RoutingFailure",
    "ChainAccessError",
    "BackendLoadError",
]


# ============================================================================
# EXPECTED TERMINATION
# ============================================================================


class HarnessStop(Exception):
    """Base for conditions that end a run cleanly.

    Attributes:
        reason: Stop reason reported in the run outcome
    """

    reason: StopReason = StopReason.INPUT_EXHAUSTED


@final
class InputExhausted(HarnessStop):
    """Fewer bytes remain than a read or peek requested."""

    reason = StopReason.INPUT_EXHAUSTED

    def __init__(self, requested: int, available: int) -> None:
        super().__init__(f"Requested {requested} bytes, {available} available")
        self.requested = requested
        self.available = available


@final
class DecodeRejected(HarnessStop):
    """A message or key failed to decode for content reasons."""

    reason = StopReason.DECODE_REJECTED

    def __init__(self, message: str, kind: DecodeErrorKind | None = None) -> None:
        super().__init__(message)
        self.kind = kind


@final
class InvalidSourceIdentity(HarnessStop):
    """The leading payer identity is not a valid public key."""

    reason = StopReason.INVALID_SOURCE


@final
class AddressLimitExceeded(HarnessStop):
    """Node announcement advertises more address bytes than replay accepts."""

    reason = StopReason.ADDRESS_LIMIT

    def __init__(self, address_len: int, limit: int) -> None:
        super().__init__(f"Address block of {address_len} bytes exceeds {limit}")
        self.address_len = address_len
        self.limit = limit


# ============================================================================
# FATAL FINDINGS
# ============================================================================


@dataclass(frozen=True, slots=True)
class FailureContext:
    """Structured context for a fatal finding.

    Attributes:
        check: Name of the failed check (e.g. "fee", "htlc_maximum")
        short_channel_id: Channel of the hop under check, if any
        path_index: Index of the path within the route, if any
        hop_index: Index of the hop pair within the path, if any
        expected: Expected value, rendered for reporting
        actual: Observed value, rendered for reporting
    """

    check: str
    short_channel_id: int | None = None
    path_index: int | None = None
    hop_index: int | None = None
    expected: str | None = None
    actual: str | None = None


class OracleFailure(Exception):
    """Base for fatal findings.

    Attributes:
        context: Structured diagnostic context for crash triage
    """

    def __init__(self, message: str, context: FailureContext | None = None) -> None:
        super().__init__(message)
        self.context = context

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return f"{self.__class__.__name__}({self.args[0]!r}, context={self.context!r})"


@final
class RouteInvariantViolation(OracleFailure):
    """A returned route disagrees with the advertised fee, bound or timing policy.

    This is the finding the oracle exists to produce.
    """


@final
class HarnessInconsistency(OracleFailure):
    """The harness or one of its collaborators broke an internal contract.

    Examples:
        - Codec reported a short read on a length the harness sized itself
        - Codec consumed a different number of bytes than it was given
        - Router used a channel for which no policy is known
    """


# ============================================================================
# COLLABORATOR ERRORS
# ============================================================================


class MessageDecodeError(Exception):
    """Raised by message codecs when a payload cannot be decoded.

    Attributes:
        kind: Classified failure kind
    """

    _EXPECTED: frozenset[DecodeErrorKind] = frozenset(
        (
            DecodeErrorKind.UNKNOWN_VERSION,
            DecodeErrorKind.UNKNOWN_REQUIRED_FEATURE,
            DecodeErrorKind.INVALID_VALUE,
            DecodeErrorKind.BAD_LENGTH_DESCRIPTOR,
        )
    )

    def __init__(self, kind: DecodeErrorKind, detail: str = "") -> None:
        super().__init__(f"{kind}: {detail}" if detail else str(kind))
        self.kind = kind

    @property
    def is_expected(self) -> bool:
        """True if adversarial input alone can produce this failure."""
        return self.kind in self._EXPECTED


class RoutingFailure(Exception):
    """Raised by routers when no route satisfies the request."""


class ChainAccessError(Exception):
    """Raised by chain oracles when a UTXO cannot be looked up.

    Attributes:
        kind: UNKNOWN_CHAIN or UNKNOWN_TX
    """

    def __init__(self, kind: ChainAccessErrorKind) -> None:
        super().__init__(str(kind))
        self.kind = kind


class BackendLoadError(Exception):
    """Collaborator backend could not be resolved from configuration."""
