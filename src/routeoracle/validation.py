"""Route invariant validator.

Recomputes, for every path of a route, what each forwarding hop should have
charged and required given the policies in force when the route was
requested, and raises RouteInvariantViolation on the first disagreement.

Walk:
    Each path is walked from the payee backward. ``path_total`` starts at the
    amount delivered by the terminal hop and grows by each forwarding fee, so
    at every hop pair (prev_hop, hop) it is the amount prev_hop's node
    forwards over hop's channel. The policy for that channel is resolved with
    this precedence, first match wins:

        1. First pair of the path and the channel is a payer first hop:
           bounded by capacity, no fee, no time-lock delta
        2. Last pair of the path and the channel is a route hint:
           the hint's own bounds, fees and delta
        3. Channel update table: usable only when exactly one direction is
           known. Both directions known means the path cannot be attributed
           and is skipped; neither known means the router used a channel the
           oracle never saw, which is a HarnessInconsistency.

Checks per hop pair:
    path_total <= htlc_maximum_msat           (when advertised)
    path_total >= htlc_minimum_msat           (when advertised)
    fee >= base_msat
    fee == base_msat + proportional_millionths * path_total // 1_000_000
    cltv_expiry_delta == policy cltv_expiry_delta

Route-level checks:
    terminal cltv_expiry_delta == requested final CLTV   (every path)
    sum of terminal amounts == requested amount

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NoReturn

from routeoracle.constants import FEE_RATE_DENOMINATOR
from routeoracle.enums import PolicySource
from routeoracle.errors import FailureContext, HarnessInconsistency, RouteInvariantViolation
from routeoracle.policy import ChannelPolicy
from routeoracle.types import RoutingFees

if TYPE_CHECKING:
    from collections.abc import Sequence

    from routeoracle.collaborators import RouteHopLike, RouteLike
    from routeoracle.policy import ChannelPolicyTable
    from routeoracle.types import FirstHop, RouteHint

__all__ = ["RouteValidator", "ValidationReport", "expected_fee"]

logger = logging.getLogger(__name__)


def expected_fee(fees: RoutingFees, amount_msat: int) -> int:
    """Fee a node charges for forwarding amount_msat under fees."""
    return fees.base_msat + fees.proportional_millionths * amount_msat // FEE_RATE_DENOMINATOR


@dataclass(slots=True)
class ValidationReport:
    """Counters describing what a validate() call actually verified.

    Attributes:
        paths_checked: Paths whose every hop pair was verified
        paths_skipped_zero_amount: Paths not walked because the amount is 0
        paths_skipped_ambiguous: Paths abandoned on a two-direction channel
        hops_checked: Hop pairs verified across all paths
        sent_msat: Sum of terminal hop amounts
        policy_sources: How often each policy source was used
    """

    paths_checked: int = 0
    paths_skipped_zero_amount: int = 0
    paths_skipped_ambiguous: int = 0
    hops_checked: int = 0
    sent_msat: int = 0
    policy_sources: dict[PolicySource, int] = field(default_factory=dict)


class _AmbiguousDirection(Exception):
    """Both directions of a mid-path channel carry a policy."""


class RouteValidator:
    """Validates routes against the policies known for one route query.

    Args:
        policies: Channel update table as of the query
        first_hops: Payer direct channels passed to the router, or None
        last_hops: Route hints passed to the router
    """

    __slots__ = ("_first_hops", "_last_hops", "_policies")

    def __init__(
        self,
        policies: ChannelPolicyTable,
        first_hops: Sequence[FirstHop] | None,
        last_hops: Sequence[RouteHint],
    ) -> None:
        self._policies = policies
        self._first_hops: dict[int, FirstHop] = {}
        for hop in first_hops or ():
            self._first_hops.setdefault(hop.short_channel_id, hop)
        self._last_hops: dict[int, RouteHint] = {}
        for hint in last_hops:
            self._last_hops.setdefault(hint.short_channel_id, hint)

    def validate(self, route: RouteLike, amount_msat: int, final_cltv: int) -> ValidationReport:
        """Verify every path of route against the request and known policies.

        Returns:
            Report of what was checked and what was skipped

        Raises:
            RouteInvariantViolation: If any fee, bound, time-lock or amount
                check fails
            HarnessInconsistency: If a hop uses a channel with no known policy
        """
        report = ValidationReport()
        for path_index, path in enumerate(route.paths):
            if not path:
                msg = f"Path {path_index} has no hops"
                raise RouteInvariantViolation(
                    msg, FailureContext(check="non_empty_path", path_index=path_index)
                )
            terminal = path[-1]
            report.sent_msat += terminal.fee_msat
            if terminal.cltv_expiry_delta != final_cltv:
                msg = (
                    f"Path {path_index} ends with cltv_expiry_delta "
                    f"{terminal.cltv_expiry_delta}, requested {final_cltv}"
                )
                raise RouteInvariantViolation(
                    msg,
                    FailureContext(
                        check="final_cltv",
                        short_channel_id=terminal.short_channel_id,
                        path_index=path_index,
                        expected=str(final_cltv),
                        actual=str(terminal.cltv_expiry_delta),
                    ),
                )

            if amount_msat == 0:
                report.paths_skipped_zero_amount += 1
                continue

            try:
                self._walk_path(path, path_index, report)
            except _AmbiguousDirection:
                report.paths_skipped_ambiguous += 1
                logger.info(
                    "Skipping path %d: both directions of a channel carry a policy",
                    path_index,
                )
                continue
            report.paths_checked += 1

        if report.sent_msat != amount_msat:
            msg = f"Route delivers {report.sent_msat} msat, requested {amount_msat}"
            raise RouteInvariantViolation(
                msg,
                FailureContext(
                    check="amount_sent",
                    expected=str(amount_msat),
                    actual=str(report.sent_msat),
                ),
            )
        return report

    def _walk_path(
        self,
        path: Sequence[RouteHopLike],
        path_index: int,
        report: ValidationReport,
    ) -> None:
        path_total = path[-1].fee_msat
        last_pair = len(path) - 2
        for idx in range(last_pair, -1, -1):
            prev_hop, hop = path[idx], path[idx + 1]
            source, policy = self._resolve(idx, last_pair, hop, path_index)
            report.policy_sources[source] = report.policy_sources.get(source, 0) + 1
            self._check_hop(policy, prev_hop, hop, path_total, path_index, idx)
            report.hops_checked += 1
            path_total += prev_hop.fee_msat

    def _resolve(
        self,
        idx: int,
        last_pair: int,
        hop: RouteHopLike,
        path_index: int,
    ) -> tuple[PolicySource, ChannelPolicy]:
        scid = hop.short_channel_id
        if idx == 0 and (first_hop := self._first_hops.get(scid)) is not None:
            return PolicySource.FIRST_HOP, ChannelPolicy(
                htlc_minimum_msat=None,
                htlc_maximum_msat=first_hop.capacity_msat,
                fees=RoutingFees(),
                cltv_expiry_delta=0,
            )
        if idx == last_pair and (hint := self._last_hops.get(scid)) is not None:
            return PolicySource.LAST_HOP, ChannelPolicy(
                htlc_minimum_msat=hint.htlc_minimum_msat,
                htlc_maximum_msat=hint.htlc_maximum_msat,
                fees=hint.fees,
                cltv_expiry_delta=hint.cltv_expiry_delta,
            )

        lookup = self._policies.lookup(scid)
        if lookup.is_ambiguous:
            raise _AmbiguousDirection
        policy = lookup.single
        if policy is None:
            msg = f"Route uses channel {scid} with no first hop, hint or channel update"
            raise HarnessInconsistency(
                msg,
                FailureContext(
                    check="policy_known",
                    short_channel_id=scid,
                    path_index=path_index,
                    hop_index=idx,
                ),
            )
        return PolicySource.CHANNEL_UPDATE, policy

    @staticmethod
    def _check_hop(
        policy: ChannelPolicy,
        prev_hop: RouteHopLike,
        hop: RouteHopLike,
        path_total: int,
        path_index: int,
        idx: int,
    ) -> None:
        def fail(check: str, expected: int, actual: int, message: str) -> NoReturn:
            raise RouteInvariantViolation(
                f"Path {path_index} hop {idx} (scid {hop.short_channel_id}): {message}",
                FailureContext(
                    check=check,
                    short_channel_id=hop.short_channel_id,
                    path_index=path_index,
                    hop_index=idx,
                    expected=str(expected),
                    actual=str(actual),
                ),
            )

        if policy.htlc_maximum_msat is not None and path_total > policy.htlc_maximum_msat:
            fail(
                "htlc_maximum",
                policy.htlc_maximum_msat,
                path_total,
                f"forwards {path_total} msat above maximum {policy.htlc_maximum_msat}",
            )
        if policy.htlc_minimum_msat is not None and path_total < policy.htlc_minimum_msat:
            fail(
                "htlc_minimum",
                policy.htlc_minimum_msat,
                path_total,
                f"forwards {path_total} msat below minimum {policy.htlc_minimum_msat}",
            )
        base = policy.fees.base_msat
        if prev_hop.fee_msat < base:
            fail("fee_base", base, prev_hop.fee_msat, f"fee {prev_hop.fee_msat} below base {base}")
        fee = expected_fee(policy.fees, path_total)
        if prev_hop.fee_msat != fee:
            fail("fee", fee, prev_hop.fee_msat, f"fee {prev_hop.fee_msat}, expected {fee}")
        if prev_hop.cltv_expiry_delta != policy.cltv_expiry_delta:
            fail(
                "cltv_expiry_delta",
                policy.cltv_expiry_delta,
                prev_hop.cltv_expiry_delta,
                f"cltv_expiry_delta {prev_hop.cltv_expiry_delta}, "
                f"expected {policy.cltv_expiry_delta}",
            )
