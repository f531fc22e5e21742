"""Value types exchanged with the router and chain collaborators.

The replay loop builds FirstHop and RouteHint values for each route query
and reads Route/RouteHop values back. Routers may return their own objects
as long as they expose the same attributes; Route and RouteHop here are the
reference shapes used by test doubles and backends without a native model.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TypeAlias

__all__ = [
    "FirstHop",
    "NodeId",
    "Route",
    "RouteHint",
    "RouteHop",
    "RoutingFees",
    "TxOut",
]

NodeId: TypeAlias = bytes
"""33-byte compressed public key identifying a node."""


@dataclass(frozen=True, slots=True)
class RoutingFees:
    """Forwarding fee schedule: ``base_msat + proportional_millionths * amount / 1e6``."""

    base_msat: int = 0
    proportional_millionths: int = 0


@dataclass(frozen=True, slots=True)
class FirstHop:
    """A direct channel from the payer, known only by its capacity.

    Attributes:
        short_channel_id: Synthetic id assigned by the replay loop
        remote_node_id: Counterparty picked from the identity set
        capacity_msat: Upper bound for the amount forwarded over this channel
    """

    short_channel_id: int
    remote_node_id: NodeId
    capacity_msat: int


@dataclass(frozen=True, slots=True)
class RouteHint:
    """A caller-supplied last hop into the payee with its own policy.

    Attributes:
        src_node_id: Node forwarding into the payee over this hint
        short_channel_id: Synthetic id assigned by the replay loop
        fees: Fee schedule charged by src_node_id
        cltv_expiry_delta: Time-lock delta required by src_node_id
        htlc_minimum_msat: Smallest amount the hint accepts, if advertised
        htlc_maximum_msat: Largest amount the hint accepts, if advertised
    """

    src_node_id: NodeId
    short_channel_id: int
    fees: RoutingFees
    cltv_expiry_delta: int
    htlc_minimum_msat: int | None = None
    htlc_maximum_msat: int | None = None


@dataclass(frozen=True, slots=True)
class RouteHop:
    """One hop of a payment path.

    ``fee_msat`` is the fee paid to this hop's node for forwarding, except on
    the terminal hop where it is the amount delivered to the payee.
    ``cltv_expiry_delta`` follows the same convention: on the terminal hop it
    is the final CLTV requested by the payer.
    """

    pubkey: NodeId
    short_channel_id: int
    fee_msat: int
    cltv_expiry_delta: int


@dataclass(frozen=True, slots=True)
class Route:
    """Router output: one or more paths, each an ordered list of hops."""

    paths: tuple[tuple[RouteHop, ...], ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class TxOut:
    """Transaction output returned by a chain oracle."""

    value: int
    script_pubkey: bytes
