"""Contracts for the external collaborators driven by the replay loop.

The oracle never implements gossip decoding, graph bookkeeping or path
finding itself. It drives them through the protocols below, which a backend
(see ``routeoracle.backend``) satisfies by adapting the routing engine under
test.

Components:
    MessageCodec - Decodes unsigned gossip payloads and node ids
    NetworkGraph - Channel graph mutated by replayed gossip
    Router - Path finding over a NetworkGraph
    ChainAccess - UTXO lookup used when validating channel announcements
    NodeAnnouncementLike / ChannelAnnouncementLike / ChannelUpdateLike -
        Fields of decoded messages the oracle reads
    RouteLike / RouteHopLike - Fields of router output the validator reads

These are Protocols (structural typing) rather than ABCs so that backends
can wrap third-party objects without inheriting from anything here.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    import logging
    from collections.abc import Sequence

    from routeoracle.enums import MessageKind
    from routeoracle.types import FirstHop, NodeId, RouteHint, TxOut

# ruff: noqa: RUF022 - __all__ organized by category for readability
__all__ = [
    # Messages
    "NodeAnnouncementLike",
    "ChannelAnnouncementLike",
    "ChannelUpdateLike",
    # Route output
    "RouteHopLike",
    "RouteLike",
    # Collaborators
    "MessageCodec",
    "ChainAccess",
    "NetworkGraph",
    "Router",
]


# ============================================================================
# MESSAGES
# ============================================================================


class NodeAnnouncementLike(Protocol):
    node_id: NodeId


class ChannelAnnouncementLike(Protocol):
    short_channel_id: int
    node_id_1: NodeId
    node_id_2: NodeId


class ChannelUpdateLike(Protocol):
    """Decoded unsigned channel_update.

    ``flags`` bit 0 selects the direction the update applies to.
    ``htlc_maximum_msat`` is None when the update does not advertise one.
    """

    short_channel_id: int
    flags: int
    cltv_expiry_delta: int
    htlc_minimum_msat: int
    htlc_maximum_msat: int | None
    fee_base_msat: int
    fee_proportional_millionths: int


# ============================================================================
# ROUTE OUTPUT
# ============================================================================


class RouteHopLike(Protocol):
    short_channel_id: int
    fee_msat: int
    cltv_expiry_delta: int


class RouteLike(Protocol):
    @property
    def paths(self) -> Sequence[Sequence[RouteHopLike]]: ...


# ============================================================================
# COLLABORATORS
# ============================================================================


class MessageCodec(Protocol):
    """Decoder for unsigned gossip messages."""

    def decode(self, kind: MessageKind, payload: bytes) -> tuple[Any, int]:
        """Decode payload as a message of the given kind.

        Returns:
            (message, consumed) where consumed is the number of payload bytes
            the decoder read. The oracle treats consumed != len(payload) as a
            harness inconsistency.

        Raises:
            MessageDecodeError: If the payload is not a valid message
        """
        ...

    def read_node_id(self, raw: bytes) -> NodeId:
        """Validate a 33-byte serialized public key.

        Raises:
            MessageDecodeError: With kind INVALID_VALUE if raw is not a key
        """
        ...


class ChainAccess(Protocol):
    def get_utxo(self, genesis_hash: bytes, short_channel_id: int) -> TxOut:
        """Look up the funding output of a channel.

        Raises:
            ChainAccessError: If the chain or transaction is unknown
        """
        ...


class NetworkGraph(Protocol):
    """Channel graph mutated by replayed gossip.

    Every mutation returns True on acceptance and False on rejection. The
    oracle ignores rejections, except that policy bookkeeping only follows
    accepted channel updates.
    """

    def update_node_from_announcement(self, msg: Any) -> bool: ...

    def update_channel_from_announcement(
        self, msg: Any, chain_access: ChainAccess | None
    ) -> bool: ...

    def update_channel(self, msg: Any) -> bool:
        """Apply a channel update; return True if the graph accepted it."""
        ...

    def close_channel(self, short_channel_id: int) -> None: ...


class Router(Protocol):
    def find_route(
        self,
        source: NodeId,
        graph: NetworkGraph,
        target: NodeId,
        first_hops: Sequence[FirstHop] | None,
        last_hops: Sequence[RouteHint],
        amount_msat: int,
        final_cltv: int,
        logger: logging.Logger,
    ) -> RouteLike:
        """Find a route paying amount_msat from source to target.

        ``first_hops`` is None when the payer supplies no direct channels,
        which routers may treat differently from an empty sequence.

        Raises:
            RoutingFailure: If no route satisfies the request
        """
        ...
