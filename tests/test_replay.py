"""Tests for routeoracle.replay opcode interpretation and route checking.

Each test assembles an input with InputBuilder, replays it against the
in-memory collaborators from tests.helpers.backend, and inspects the run
outcome, the recorded graph mutations and the router requests.
"""

from __future__ import annotations

import pytest

from routeoracle import (
    HarnessConfig,
    HarnessInconsistency,
    RouteInvariantViolation,
    RouterHarness,
    StopReason,
    TraceEvent,
    run_one,
)
from routeoracle.chain import p2wsh_script
from routeoracle.enums import ChainAccessErrorKind, DecodeErrorKind
from routeoracle.types import Route, RouteHop, TxOut
from tests.helpers.backend import (
    InputBuilder,
    RouteRequest,
    ShortReadCodec,
    UnderConsumingCodec,
    direct_route,
    make_backend,
    no_route,
    node_key,
)

SOURCE = node_key(0)
ALICE = node_key(1)
BOB = node_key(2)
CAROL = node_key(3)


def _fee_route(request: RouteRequest) -> Route:
    """Route through the first hop then channel 7 (base 1000, delta 40)."""
    assert request.first_hops is not None
    first_scid = request.first_hops[0].short_channel_id
    return Route(
        paths=(
            (
                RouteHop(ALICE, first_scid, 1000, 40),
                RouteHop(request.target, 7, request.amount_msat, request.final_cltv),
            ),
        )
    )


def _hint_route(request: RouteRequest) -> Route:
    """Route through the first hop then the first route hint (base 1000, delta 40)."""
    assert request.first_hops is not None
    return Route(
        paths=(
            (
                RouteHop(ALICE, request.first_hops[0].short_channel_id, 1000, 40),
                RouteHop(
                    request.target,
                    request.last_hops[0].short_channel_id,
                    request.amount_msat,
                    request.final_cltv,
                ),
            ),
        )
    )


def _fee_scenario(**update_overrides: int) -> bytes:
    update = {"cltv_expiry_delta": 40, "fee_base_msat": 1000} | update_overrides
    return (
        InputBuilder(SOURCE)
        .channel(7, ALICE, BOB)
        .update(7, **update)
        .query(first_hops=[(0, 10**9)], requests=[(5000, 100), (5000, 100)])
        .build()
    )


# ============================================================================
# CLEAN STOPS
# ============================================================================


class TestCleanStops:
    """Malformed input ends the run with a stop reason, never an exception."""

    def test_empty_input(self) -> None:
        tb = make_backend()
        outcome = run_one(b"", tb.backend)
        assert outcome.stop_reason is StopReason.INPUT_EXHAUSTED
        assert outcome.opcodes == {}
        assert tb.graph.mutations == []
        assert tb.router.requests == []

    def test_short_source(self) -> None:
        outcome = run_one(SOURCE[:20], make_backend().backend)
        assert outcome.stop_reason is StopReason.INPUT_EXHAUSTED

    def test_invalid_source(self) -> None:
        outcome = run_one(node_key(1, parity=5), make_backend().backend)
        assert outcome.stop_reason is StopReason.INVALID_SOURCE

    def test_source_only(self) -> None:
        harness = RouterHarness(SOURCE, make_backend().backend)
        outcome = harness.run()
        assert outcome.stop_reason is StopReason.INPUT_EXHAUSTED
        assert harness.source == SOURCE
        assert not harness.identities

    def test_rejected_node_key(self) -> None:
        data = InputBuilder(SOURCE).node(node_key(1, parity=5)).build()
        assert run_one(data, make_backend().backend).stop_reason is StopReason.DECODE_REJECTED

    def test_rejected_required_feature(self) -> None:
        data = InputBuilder(SOURCE).channel(7, ALICE, BOB, features=b"\x01").build()
        tb = make_backend()
        outcome = run_one(data, tb.backend)
        assert outcome.stop_reason is StopReason.DECODE_REJECTED
        assert tb.graph.mutations == []

    def test_address_limit(self) -> None:
        data = InputBuilder(SOURCE).node(ALICE, addresses=b"\x00" * 153).build()
        tb = make_backend()
        outcome = run_one(data, tb.backend)
        assert outcome.stop_reason is StopReason.ADDRESS_LIMIT
        assert tb.codec.decoded == []

    def test_address_limit_boundary_accepted(self) -> None:
        data = InputBuilder(SOURCE).node(ALICE, addresses=b"\x00" * 152).build()
        outcome = run_one(data, make_backend().backend)
        assert outcome.stop_reason is StopReason.INPUT_EXHAUSTED
        assert outcome.opcodes == {"node_announcement": 1}

    def test_address_limit_is_configurable(self) -> None:
        data = InputBuilder(SOURCE).node(ALICE, addresses=b"\x00" * 10).build()
        config = HarnessConfig(max_node_address_bytes=9)
        outcome = run_one(data, make_backend().backend, config)
        assert outcome.stop_reason is StopReason.ADDRESS_LIMIT

    def test_truncated_message(self) -> None:
        data = InputBuilder(SOURCE).update(7).build()[:-1]
        tb = make_backend()
        assert run_one(data, tb.backend).stop_reason is StopReason.INPUT_EXHAUSTED
        assert tb.codec.decoded == []


# ============================================================================
# GRAPH MUTATIONS
# ============================================================================


class TestGraphMutations:
    """Gossip opcodes reach the graph in input order."""

    def test_node_announcement(self) -> None:
        tb = make_backend()
        harness = RouterHarness(
            InputBuilder(SOURCE).node(ALICE).build(),
            tb.backend,
            HarnessConfig(record_trace=True),
        )
        outcome = harness.run()
        assert outcome.opcodes == {"node_announcement": 1}
        assert tb.graph.nodes == {ALICE}
        assert ALICE in harness.identities
        assert outcome.trace == [
            TraceEvent("node_announcement", node_ids=(ALICE,), accepted=True)
        ]

    def test_channel_announcement_registers_both_ends(self) -> None:
        tb = make_backend()
        harness = RouterHarness(InputBuilder(SOURCE).channel(7, ALICE, BOB).build(), tb.backend)
        harness.run()
        assert tb.graph.channels == {7: (ALICE, BOB)}
        assert set(harness.identities) == {ALICE, BOB}
        assert tb.graph.utxo_results == []

    def test_checked_channel_unknown_chain(self) -> None:
        tb = make_backend()
        data = InputBuilder(SOURCE).checked_channel(7, ALICE, BOB, b"\x00\x00").build()
        outcome = run_one(data, tb.backend, HarnessConfig(record_trace=True))
        assert tb.graph.utxo_results == [ChainAccessErrorKind.UNKNOWN_CHAIN]
        assert 7 not in tb.graph.channels
        assert outcome.opcodes == {"channel_announcement_checked": 1}
        assert outcome.trace[0].accepted is False

    def test_checked_channel_scripted_output(self) -> None:
        tb = make_backend()
        data = InputBuilder(SOURCE).checked_channel(7, ALICE, BOB, b"\x02\x05").build()
        run_one(data, tb.backend)
        assert tb.graph.utxo_results == [TxOut(0, p2wsh_script(b"\x55"))]
        assert 7 in tb.graph.channels

    def test_checked_channel_at_end_of_input(self) -> None:
        """Chain lookup past the end answers unknown tx; the run then stops."""
        tb = make_backend()
        data = InputBuilder(SOURCE).checked_channel(7, ALICE, BOB, b"").build()
        outcome = run_one(data, tb.backend)
        assert tb.graph.utxo_results == [ChainAccessErrorKind.UNKNOWN_TX]
        assert outcome.stop_reason is StopReason.INPUT_EXHAUSTED

    def test_accepted_update_records_policy(self) -> None:
        tb = make_backend()
        data = InputBuilder(SOURCE).channel(7, ALICE, BOB).update(7, direction=1).build()
        harness = RouterHarness(data, tb.backend)
        harness.run()
        assert (7, True) in harness.policies
        assert (7, False) not in harness.policies

    def test_rejected_update_is_not_recorded(self) -> None:
        tb = make_backend()
        harness = RouterHarness(InputBuilder(SOURCE).update(7).build(), tb.backend)
        harness.run()
        assert tb.graph.mutations == [("update", 7, 0, False)]
        assert len(harness.policies) == 0

    def test_close_drops_both_directions(self) -> None:
        tb = make_backend()
        data = (
            InputBuilder(SOURCE)
            .channel(7, ALICE, BOB)
            .update(7, direction=0)
            .update(7, direction=1)
            .close(7)
            .build()
        )
        harness = RouterHarness(data, tb.backend)
        outcome = harness.run()
        assert len(harness.policies) == 0
        assert 7 not in tb.graph.channels
        assert outcome.opcodes["channel_close"] == 1

    def test_each_run_gets_a_fresh_graph(self) -> None:
        tb = make_backend()
        data = InputBuilder(SOURCE).node(ALICE).build()
        run_one(data, tb.backend)
        run_one(data, tb.backend)
        assert len(tb.graphs) == 2
        assert tb.graphs[0] is not tb.graphs[1]
        assert tb.graphs[1].mutations == [("node", ALICE)]


# ============================================================================
# ROUTE QUERIES
# ============================================================================


class TestRouteQueries:
    """Route queries decode first hops and hints, then ask for every identity."""

    def test_query_before_any_identity_is_skipped(self) -> None:
        tb = make_backend()
        outcome = run_one(SOURCE + b"\xff\x07", tb.backend)
        assert outcome.opcodes == {"route_query_skipped": 2}
        assert tb.router.requests == []

    def test_one_request_per_identity_in_fixed_order(self) -> None:
        tb = make_backend()
        data = (
            InputBuilder(SOURCE)
            .channel(7, ALICE, BOB)
            .node(CAROL)
            .query(requests=[(1, 10), (2, 20), (3, 30)])
            .build()
        )
        harness = RouterHarness(data, tb.backend)
        outcome = harness.run()
        assert outcome.route_requests == 3
        assert outcome.routes_found == 0
        assert [r.target for r in tb.router.requests] == list(harness.identities.snapshot())
        assert [(r.amount_msat, r.final_cltv) for r in tb.router.requests] == [
            (1, 10),
            (2, 20),
            (3, 30),
        ]
        assert all(r.source == SOURCE for r in tb.router.requests)

    def test_zero_first_hops_means_none(self) -> None:
        tb = make_backend()
        data = InputBuilder(SOURCE).node(ALICE).query(requests=[(1, 1)]).build()
        run_one(data, tb.backend)
        assert tb.router.requests[0].first_hops is None
        assert tb.router.requests[0].last_hops == ()

    def test_synthetic_scids_are_preincremented(self) -> None:
        tb = make_backend()
        data = (
            InputBuilder(SOURCE)
            .channel(7, ALICE, BOB)
            .query(
                first_hops=[(0, 100), (1, 200)],
                hints=[(0, 10, 20, 30, 40)],
                requests=[(1, 1), (1, 1)],
            )
            .build()
        )
        harness = RouterHarness(data, tb.backend)
        harness.run()
        request = tb.router.requests[0]
        assert request.first_hops is not None
        assert [h.short_channel_id for h in request.first_hops] == [43, 44]
        assert [h.capacity_msat for h in request.first_hops] == [100, 200]
        assert request.first_hops[0].remote_node_id == harness.identities.pick(0)
        assert request.first_hops[1].remote_node_id == harness.identities.pick(1)
        (hint,) = request.last_hops
        assert hint.short_channel_id == 45
        assert hint.src_node_id == harness.identities.pick(0)
        assert (hint.fees.base_msat, hint.fees.proportional_millionths) == (10, 20)
        assert hint.cltv_expiry_delta == 30
        assert hint.htlc_minimum_msat == 40
        assert hint.htlc_maximum_msat is None

    def test_scid_counter_spans_queries(self) -> None:
        tb = make_backend()
        data = (
            InputBuilder(SOURCE)
            .node(ALICE)
            .query(first_hops=[(0, 1)], requests=[(1, 1)])
            .query(first_hops=[(0, 1)], requests=[(1, 1)])
            .build()
        )
        run_one(data, tb.backend, HarnessConfig(initial_scid=100))
        scids = [r.first_hops[0].short_channel_id for r in tb.router.requests if r.first_hops]
        assert scids == [101, 102]

    def test_scid_counter_wraps_at_u64(self) -> None:
        tb = make_backend()
        data = (
            InputBuilder(SOURCE)
            .node(ALICE)
            .query(first_hops=[(0, 1)], hints=[(0, 0, 0, 0, 0)], requests=[(1, 1)])
            .build()
        )
        run_one(data, tb.backend, HarnessConfig(initial_scid=2**64 - 1))
        request = tb.router.requests[0]
        assert request.first_hops is not None
        assert request.first_hops[0].short_channel_id == 0
        assert request.last_hops[0].short_channel_id == 1

    def test_query_truncated_in_requests(self) -> None:
        tb = make_backend()
        data = InputBuilder(SOURCE).channel(7, ALICE, BOB).query(requests=[(1, 1)]).build()
        outcome = run_one(data, tb.backend)
        assert outcome.stop_reason is StopReason.INPUT_EXHAUSTED
        assert outcome.route_requests == 1

    def test_request_trace(self) -> None:
        tb = make_backend(direct_route)
        data = InputBuilder(SOURCE).node(ALICE).query(requests=[(5, 6)]).build()
        outcome = run_one(data, tb.backend, HarnessConfig(record_trace=True))
        assert outcome.trace[-1] == TraceEvent(
            "route_request", node_ids=(ALICE,), accepted=True, amount_msat=5, final_cltv=6
        )

    def test_trace_is_off_by_default(self) -> None:
        data = InputBuilder(SOURCE).node(ALICE).query(requests=[(5, 6)]).build()
        assert run_one(data, make_backend(no_route).backend).trace == []


# ============================================================================
# ROUTE VALIDATION THROUGH REPLAY
# ============================================================================


class TestRouteValidationEndToEnd:
    """Routes returned by the router are checked against replayed policies."""

    def test_consistent_fee_route(self) -> None:
        tb = make_backend(_fee_route)
        outcome = run_one(_fee_scenario(), tb.backend)
        assert outcome.stop_reason is StopReason.INPUT_EXHAUSTED
        assert outcome.routes_found == 2
        assert outcome.paths_checked == 2
        assert outcome.hops_checked == 2
        assert tb.router.requests[0].first_hops is not None
        assert tb.router.requests[0].first_hops[0].short_channel_id == 43

    def test_inconsistent_fee_route(self) -> None:
        tb = make_backend(_fee_route)
        with pytest.raises(RouteInvariantViolation) as exc_info:
            run_one(_fee_scenario(fee_base_msat=999), tb.backend)
        assert exc_info.value.context is not None
        assert exc_info.value.context.check == "fee"
        assert exc_info.value.context.short_channel_id == 7

    def test_inconsistent_cltv_route(self) -> None:
        tb = make_backend(_fee_route)
        with pytest.raises(RouteInvariantViolation) as exc_info:
            run_one(_fee_scenario(cltv_expiry_delta=41), tb.backend)
        assert exc_info.value.context is not None
        assert exc_info.value.context.check == "cltv_expiry_delta"

    def test_ambiguous_channel_is_skipped(self) -> None:
        def through_hint(request: RouteRequest) -> Route:
            (hint,) = request.last_hops
            return Route(
                paths=(
                    (
                        RouteHop(ALICE, 50, 123, 456),
                        RouteHop(BOB, 7, 10, 20),
                        RouteHop(request.target, hint.short_channel_id, 5000, 100),
                    ),
                )
            )

        tb = make_backend(through_hint)
        data = (
            InputBuilder(SOURCE)
            .channel(7, ALICE, BOB)
            .update(7, direction=0, fee_base_msat=1)
            .update(7, direction=1, fee_base_msat=2)
            .query(hints=[(0, 10, 0, 20, 0)], requests=[(5000, 100), (5000, 100)])
            .build()
        )
        outcome = run_one(data, tb.backend)
        assert tb.router.requests[0].first_hops is None
        assert tb.router.requests[0].last_hops[0].short_channel_id == 43
        assert outcome.paths_skipped_ambiguous == 2
        assert outcome.paths_checked == 0
        assert outcome.hops_checked == 2

    def test_route_over_closed_channel(self) -> None:
        tb = make_backend(_fee_route)
        data = (
            InputBuilder(SOURCE)
            .channel(7, ALICE, BOB)
            .update(7, cltv_expiry_delta=40, fee_base_msat=1000)
            .close(7)
            .query(first_hops=[(0, 10**9)], requests=[(5000, 100), (5000, 100)])
            .build()
        )
        with pytest.raises(HarnessInconsistency) as exc_info:
            run_one(data, tb.backend)
        assert exc_info.value.context is not None
        assert exc_info.value.context.check == "policy_known"

    def test_close_then_query_around_closed_channel(self) -> None:
        """Routes that avoid a closed channel never need its dropped policy."""
        tb = make_backend(_hint_route)
        data = (
            InputBuilder(SOURCE)
            .channel(7, ALICE, BOB)
            .update(7, cltv_expiry_delta=40, fee_base_msat=1000)
            .close(7)
            .query(
                first_hops=[(0, 10**9)],
                hints=[(1, 1000, 0, 40, 0)],
                requests=[(5000, 100), (5000, 100)],
            )
            .build()
        )
        outcome = run_one(data, tb.backend)
        assert ("close", 7) in tb.graph.mutations
        assert outcome.stop_reason is StopReason.INPUT_EXHAUSTED
        assert outcome.routes_found == 2
        assert outcome.paths_checked == 2
        assert outcome.hops_checked == 2

    def test_zero_amount_request_is_not_walked(self) -> None:
        tb = make_backend(_fee_route)
        data = (
            InputBuilder(SOURCE)
            .channel(7, ALICE, BOB)
            .query(first_hops=[(0, 1)], requests=[(0, 100), (0, 100)])
            .build()
        )
        outcome = run_one(data, tb.backend)
        assert outcome.routes_found == 2
        assert outcome.paths_checked == 0


# ============================================================================
# HARNESS CONTRACT
# ============================================================================


class TestHarnessContract:
    def test_short_read_codec_is_inconsistency(self) -> None:
        tb = make_backend(codec=ShortReadCodec())
        with pytest.raises(HarnessInconsistency) as exc_info:
            run_one(InputBuilder(SOURCE).node(ALICE).build(), tb.backend)
        assert exc_info.value.context is not None
        assert exc_info.value.context.check == "decode_length"
        assert str(DecodeErrorKind.SHORT_READ) in str(exc_info.value.context.actual)

    def test_under_consuming_codec_is_inconsistency(self) -> None:
        tb = make_backend(codec=UnderConsumingCodec())
        with pytest.raises(HarnessInconsistency) as exc_info:
            run_one(InputBuilder(SOURCE).update(7).build(), tb.backend)
        assert exc_info.value.context is not None
        assert exc_info.value.context.check == "decode_consumed"
        assert exc_info.value.context.expected == "72"
        assert exc_info.value.context.actual == "71"

    def test_run_is_single_use(self) -> None:
        harness = RouterHarness(b"", make_backend().backend)
        harness.run()
        with pytest.raises(RuntimeError, match="only be called once"):
            harness.run()

    def test_replay_is_deterministic(self) -> None:
        data = (
            InputBuilder(SOURCE)
            .channel(7, ALICE, BOB)
            .node(CAROL)
            .update(7, fee_base_msat=3)
            .query(first_hops=[(5, 1)], hints=[(9, 1, 2, 3, 4)], requests=[(1, 2)] * 3)
            .build()
        )
        config = HarnessConfig(record_trace=True)
        first = run_one(data, make_backend(direct_route).backend, config)
        second = run_one(data, make_backend(direct_route).backend, config)
        assert first == second
        assert len(first.trace) == 6
