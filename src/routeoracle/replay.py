"""Opcode interpreter replaying gossip and route queries from raw bytes.

Input layout:
    source_node_id(33) then a sequence of opcodes, each a single byte
    followed by its operands:

    0   node_announcement      payload sized from its own feature length
    1   channel_announcement   forwarded without chain validation
    2   channel_announcement   forwarded with FuzzChainSource validation
    3   channel_update         fixed 72-byte payload
    4   channel close          u64 short_channel_id
    *   route query            only once at least one identity is known:
            u8  first-hop count (0: no first hops at all)
                per entry: u16 identity index, u64 capacity_msat
            u8  route-hint count
                per entry: u16 identity index, u32 fee base, u32 fee rate,
                           u16 cltv_expiry_delta, u64 htlc_minimum_msat
            per known identity, in fixed-seed order:
                u64 amount_msat, u32 final_cltv

All integers are big-endian. The run ends cleanly (HarnessStop) when input
runs out or a message is rejected for content reasons, and ends fatally
(OracleFailure, propagated to the caller) when a returned route breaks an
invariant or the harness detects an impossible condition.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from routeoracle.chain import FuzzChainSource
from routeoracle.config import HarnessConfig
from routeoracle.constants import (
    CHANNEL_ANNOUNCEMENT_EXCESS,
    CHANNEL_UPDATE_LENGTH,
    NODE_ANNOUNCEMENT_ADDRLEN_OFFSET,
    NODE_ANNOUNCEMENT_EXCESS,
    NODE_ID_LENGTH,
)
from routeoracle.cursor import InputCursor, be16
from routeoracle.enums import DecodeErrorKind, MessageKind, Opcode, StopReason
from routeoracle.errors import (
    AddressLimitExceeded,
    DecodeRejected,
    FailureContext,
    HarnessInconsistency,
    HarnessStop,
    InvalidSourceIdentity,
    MessageDecodeError,
    RoutingFailure,
)
from routeoracle.identities import IdentitySet
from routeoracle.policy import ChannelPolicyTable
from routeoracle.types import FirstHop, RouteHint, RoutingFees
from routeoracle.validation import RouteValidator

if TYPE_CHECKING:
    from routeoracle.backend import Backend
    from routeoracle.collaborators import NetworkGraph
    from routeoracle.types import NodeId

__all__ = ["RouterHarness", "RunOutcome", "TraceEvent", "run_one"]

logger = logging.getLogger(__name__)

_ROUTE_QUERY = "route_query"
_MAX_U64 = (1 << 64) - 1


@dataclass(frozen=True, slots=True)
class TraceEvent:
    """One externally visible action of a replay run.

    Attributes:
        action: "node_announcement", "channel_announcement", "channel_update",
            "channel_close" or "route_request"
        node_ids: Identities involved (announced nodes, or route target)
        short_channel_id: Channel involved, if any
        accepted: Graph verdict for mutations, route found for requests
        amount_msat: Requested amount (route requests only)
        final_cltv: Requested final CLTV (route requests only)
    """

    action: str
    node_ids: tuple[bytes, ...] = ()
    short_channel_id: int | None = None
    accepted: bool | None = None
    amount_msat: int | None = None
    final_cltv: int | None = None


@dataclass(slots=True)
class RunOutcome:
    """Summary of a replay run that ended without a fatal finding.

    Attributes:
        stop_reason: Why the run stopped
        opcodes: Count of each replayed operation, keyed by name
        route_requests: Router invocations issued
        routes_found: Router invocations that returned a route
        paths_checked: Paths fully verified by the validator
        paths_skipped_ambiguous: Paths abandoned on a two-direction channel
        hops_checked: Hop pairs verified across all routes
        trace: Ordered actions, recorded only with HarnessConfig.record_trace
    """

    stop_reason: StopReason = StopReason.INPUT_EXHAUSTED
    opcodes: dict[str, int] = field(default_factory=dict)
    route_requests: int = 0
    routes_found: int = 0
    paths_checked: int = 0
    paths_skipped_ambiguous: int = 0
    hops_checked: int = 0
    trace: list[TraceEvent] = field(default_factory=list)


class RouterHarness:
    """Replays one input against fresh collaborators and validates routes.

    A harness instance is single-use: construct one per input and call run()
    once.

    Example:
        >>> outcome = RouterHarness(b"", backend).run()  # doctest: +SKIP
        >>> outcome.stop_reason
        <StopReason.INPUT_EXHAUSTED: 'input_exhausted'>
    """

    __slots__ = (
        "_codec",
        "_config",
        "_cursor",
        "_graph",
        "_identities",
        "_next_scid",
        "_outcome",
        "_policies",
        "_router",
        "_source",
        "_started",
    )

    def __init__(
        self,
        data: bytes,
        backend: Backend,
        config: HarnessConfig | None = None,
    ) -> None:
        self._config = config if config is not None else HarnessConfig()
        self._cursor = InputCursor(data)
        self._codec = backend.codec
        self._graph = backend.new_graph()
        self._router = backend.router
        self._identities = IdentitySet(seed=self._config.identity_seed)
        self._policies = ChannelPolicyTable()
        self._next_scid = self._config.initial_scid
        self._outcome = RunOutcome()
        self._source: NodeId | None = None
        self._started = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def graph(self) -> NetworkGraph:
        return self._graph

    @property
    def identities(self) -> IdentitySet:
        return self._identities

    @property
    def policies(self) -> ChannelPolicyTable:
        return self._policies

    @property
    def source(self) -> NodeId | None:
        """Payer identity, once read from input."""
        return self._source

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def run(self) -> RunOutcome:
        """Replay the whole input.

        Returns:
            Outcome of a run that stopped cleanly

        Raises:
            RouteInvariantViolation: If a route breaks an invariant
            HarnessInconsistency: If the harness or a collaborator broke its
                contract
            RuntimeError: If run() was already called on this harness
        """
        if self._started:
            msg = "RouterHarness.run() may only be called once"
            raise RuntimeError(msg)
        self._started = True

        try:
            source = self._read_source()
            self._source = source
            while True:
                self._step(source)
        except HarnessStop as stop:
            self._outcome.stop_reason = stop.reason
            logger.debug(
                "Run stopped at offset %d: %s (%s)", self._cursor.offset, stop.reason, stop
            )
        return self._outcome

    def _read_source(self) -> NodeId:
        raw = self._cursor.read(NODE_ID_LENGTH)
        try:
            return self._codec.read_node_id(raw)
        except MessageDecodeError as e:
            msg = f"Invalid source node id: {e}"
            raise InvalidSourceIdentity(msg) from e

    def _step(self, source: NodeId) -> None:
        opcode = self._cursor.read_u8()
        match opcode:
            case Opcode.NODE_ANNOUNCEMENT:
                self._count(Opcode.NODE_ANNOUNCEMENT)
                self._replay_node_announcement()
            case Opcode.CHANNEL_ANNOUNCEMENT:
                self._count(Opcode.CHANNEL_ANNOUNCEMENT)
                self._replay_channel_announcement(checked=False)
            case Opcode.CHANNEL_ANNOUNCEMENT_CHECKED:
                self._count(Opcode.CHANNEL_ANNOUNCEMENT_CHECKED)
                self._replay_channel_announcement(checked=True)
            case Opcode.CHANNEL_UPDATE:
                self._count(Opcode.CHANNEL_UPDATE)
                self._replay_channel_update()
            case Opcode.CHANNEL_CLOSE:
                self._count(Opcode.CHANNEL_CLOSE)
                self._replay_channel_close()
            case _ if not self._identities:
                self._count("route_query_skipped")
            case _:
                self._count(_ROUTE_QUERY)
                self._replay_route_query(source)

    def _count(self, op: Opcode | str) -> None:
        name = op.name.lower() if isinstance(op, Opcode) else op
        self._outcome.opcodes[name] = self._outcome.opcodes.get(name, 0) + 1

    def _record(self, event: TraceEvent) -> None:
        if self._config.record_trace:
            self._outcome.trace.append(event)

    # ------------------------------------------------------------------
    # Message decoding
    # ------------------------------------------------------------------

    def _decode(self, kind: MessageKind, length: int) -> Any:
        payload = self._cursor.read(length)
        try:
            message, consumed = self._codec.decode(kind, payload)
        except MessageDecodeError as e:
            if e.is_expected:
                raise DecodeRejected(f"{kind} rejected: {e}", e.kind) from e
            detail = (
                "short read" if e.kind is DecodeErrorKind.SHORT_READ else "I/O error"
            )
            msg = f"Codec reported {detail} decoding {kind} of harness-chosen length {length}"
            raise HarnessInconsistency(
                msg, FailureContext(check="decode_length", expected=str(length), actual=str(e))
            ) from e
        if consumed != length:
            msg = f"Codec consumed {consumed} of {length} bytes decoding {kind}"
            raise HarnessInconsistency(
                msg,
                FailureContext(check="decode_consumed", expected=str(length), actual=str(consumed)),
            )
        return message

    def _decode_with_len16(self, kind: MessageKind, excess: int) -> Any:
        feature_len = be16(self._cursor.peek(2))
        return self._decode(kind, 2 + feature_len + excess)

    # ------------------------------------------------------------------
    # Graph mutations
    # ------------------------------------------------------------------

    def _replay_node_announcement(self) -> None:
        feature_len = be16(self._cursor.peek(2))
        addrlen_at = 2 + feature_len + NODE_ANNOUNCEMENT_ADDRLEN_OFFSET
        address_len = be16(self._cursor.peek(addrlen_at + 2)[addrlen_at:])
        if address_len > self._config.max_node_address_bytes:
            raise AddressLimitExceeded(address_len, self._config.max_node_address_bytes)

        msg = self._decode_with_len16(MessageKind.NODE_ANNOUNCEMENT, NODE_ANNOUNCEMENT_EXCESS)
        self._identities.add(msg.node_id)
        accepted = self._graph.update_node_from_announcement(msg)
        logger.debug("Node announcement %s accepted=%s", msg.node_id.hex(), accepted)
        self._record(
            TraceEvent("node_announcement", node_ids=(bytes(msg.node_id),), accepted=accepted)
        )

    def _replay_channel_announcement(self, *, checked: bool) -> None:
        msg = self._decode_with_len16(
            MessageKind.CHANNEL_ANNOUNCEMENT, CHANNEL_ANNOUNCEMENT_EXCESS
        )
        self._identities.add(msg.node_id_1)
        self._identities.add(msg.node_id_2)
        chain = FuzzChainSource(self._cursor) if checked else None
        accepted = self._graph.update_channel_from_announcement(msg, chain)
        logger.debug(
            "Channel announcement scid %d checked=%s accepted=%s",
            msg.short_channel_id,
            checked,
            accepted,
        )
        self._record(
            TraceEvent(
                "channel_announcement",
                node_ids=(bytes(msg.node_id_1), bytes(msg.node_id_2)),
                short_channel_id=msg.short_channel_id,
                accepted=accepted,
            )
        )

    def _replay_channel_update(self) -> None:
        msg = self._decode(MessageKind.CHANNEL_UPDATE, CHANNEL_UPDATE_LENGTH)
        accepted = self._graph.update_channel(msg)
        if accepted:
            self._policies.upsert(msg)
        logger.debug("Channel update scid %d accepted=%s", msg.short_channel_id, accepted)
        self._record(
            TraceEvent(
                "channel_update", short_channel_id=msg.short_channel_id, accepted=accepted
            )
        )

    def _replay_channel_close(self) -> None:
        scid = self._cursor.read_u64()
        self._graph.close_channel(scid)
        removed = self._policies.remove_channel(scid)
        logger.debug("Channel close scid %d dropped %d policies", scid, removed)
        self._record(TraceEvent("channel_close", short_channel_id=scid))

    # ------------------------------------------------------------------
    # Route queries
    # ------------------------------------------------------------------

    def _allocate_scid(self) -> int:
        # short_channel_id is a u64 on the wire
        self._next_scid = (self._next_scid + 1) & _MAX_U64
        return self._next_scid

    def _read_first_hops(self) -> tuple[FirstHop, ...] | None:
        count = self._cursor.read_u8()
        if count == 0:
            return None
        hops: list[FirstHop] = []
        for _ in range(count):
            scid = self._allocate_scid()
            remote = self._identities.pick(self._cursor.read_u16())
            hops.append(
                FirstHop(
                    short_channel_id=scid,
                    remote_node_id=remote,
                    capacity_msat=self._cursor.read_u64(),
                )
            )
        return tuple(hops)

    def _read_last_hops(self) -> tuple[RouteHint, ...]:
        hints: list[RouteHint] = []
        for _ in range(self._cursor.read_u8()):
            scid = self._allocate_scid()
            src = self._identities.pick(self._cursor.read_u16())
            base_msat = self._cursor.read_u32()
            proportional = self._cursor.read_u32()
            cltv_expiry_delta = self._cursor.read_u16()
            htlc_minimum_msat = self._cursor.read_u64()
            hints.append(
                RouteHint(
                    src_node_id=src,
                    short_channel_id=scid,
                    fees=RoutingFees(base_msat, proportional),
                    cltv_expiry_delta=cltv_expiry_delta,
                    htlc_minimum_msat=htlc_minimum_msat,
                    htlc_maximum_msat=None,
                )
            )
        return tuple(hints)

    def _replay_route_query(self, source: NodeId) -> None:
        first_hops = self._read_first_hops()
        last_hops = self._read_last_hops()
        validator = RouteValidator(self._policies, first_hops, last_hops)
        logger.debug(
            "Route query: %d first hops, %d hints, %d targets",
            len(first_hops or ()),
            len(last_hops),
            len(self._identities),
        )
        for target in self._identities.snapshot():
            amount_msat = self._cursor.read_u64()
            final_cltv = self._cursor.read_u32()
            self._outcome.route_requests += 1
            try:
                route = self._router.find_route(
                    source,
                    self._graph,
                    target,
                    first_hops,
                    last_hops,
                    amount_msat,
                    final_cltv,
                    logger,
                )
            except RoutingFailure as e:
                logger.debug("No route to %s: %s", target.hex(), e)
                self._record(
                    TraceEvent(
                        "route_request",
                        node_ids=(target,),
                        accepted=False,
                        amount_msat=amount_msat,
                        final_cltv=final_cltv,
                    )
                )
                continue

            self._outcome.routes_found += 1
            self._record(
                TraceEvent(
                    "route_request",
                    node_ids=(target,),
                    accepted=True,
                    amount_msat=amount_msat,
                    final_cltv=final_cltv,
                )
            )
            report = validator.validate(route, amount_msat, final_cltv)
            self._outcome.paths_checked += report.paths_checked
            self._outcome.paths_skipped_ambiguous += report.paths_skipped_ambiguous
            self._outcome.hops_checked += report.hops_checked


def run_one(
    data: bytes,
    backend: Backend,
    config: HarnessConfig | None = None,
) -> RunOutcome:
    """Replay data against a fresh graph from backend and validate all routes.

    This is the per-input entry point for fuzz targets: it returns on every
    clean stop and lets OracleFailure propagate as the crash signal.
    """
    return RouterHarness(data, backend, config).run()
