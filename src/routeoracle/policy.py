"""Per-direction channel policy bookkeeping.

Mirrors the channel updates the graph has accepted so the validator can
recompute what each forwarding hop should have charged. Keys are
``(short_channel_id, direction)`` where direction is bit 0 of the update's
flags.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from routeoracle.types import RoutingFees

if TYPE_CHECKING:
    from collections.abc import Iterator

    from routeoracle.collaborators import ChannelUpdateLike

__all__ = ["ChannelPolicy", "ChannelPolicyTable", "PolicyLookup"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChannelPolicy:
    """Forwarding policy advertised for one direction of a channel.

    Attributes:
        htlc_minimum_msat: Smallest forwardable amount, if advertised
        htlc_maximum_msat: Largest forwardable amount, if advertised
        fees: Base and proportional forwarding fee
        cltv_expiry_delta: Time-lock delta the forwarding node requires
    """

    htlc_minimum_msat: int | None
    htlc_maximum_msat: int | None
    fees: RoutingFees
    cltv_expiry_delta: int

    @classmethod
    def from_update(cls, update: ChannelUpdateLike) -> ChannelPolicy:
        return cls(
            htlc_minimum_msat=update.htlc_minimum_msat,
            htlc_maximum_msat=update.htlc_maximum_msat,
            fees=RoutingFees(update.fee_base_msat, update.fee_proportional_millionths),
            cltv_expiry_delta=update.cltv_expiry_delta,
        )


@dataclass(frozen=True, slots=True)
class PolicyLookup:
    """Both directional entries for a channel.

    A route does not reveal which direction of a channel it used, so a
    policy can only be attributed to a hop when exactly one direction is
    known.
    """

    forward: ChannelPolicy | None
    backward: ChannelPolicy | None

    @property
    def is_ambiguous(self) -> bool:
        return self.forward is not None and self.backward is not None

    @property
    def is_missing(self) -> bool:
        return self.forward is None and self.backward is None

    @property
    def single(self) -> ChannelPolicy | None:
        """The only known direction, or None if ambiguous or missing."""
        if self.is_ambiguous:
            return None
        return self.forward if self.forward is not None else self.backward


class ChannelPolicyTable:
    """Latest accepted policy per ``(short_channel_id, direction)``.

    Holds at most one record per key; a newer accepted update for the same
    direction replaces the older one.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[tuple[int, bool], ChannelPolicy] = {}

    @staticmethod
    def direction_of(flags: int) -> bool:
        return flags & 1 == 1

    def upsert(self, update: ChannelUpdateLike) -> ChannelPolicy:
        """Record an accepted channel update and return the stored policy."""
        key = (update.short_channel_id, self.direction_of(update.flags))
        policy = ChannelPolicy.from_update(update)
        self._entries[key] = policy
        logger.debug("Policy for scid %d direction %d updated", key[0], key[1])
        return policy

    def remove_channel(self, short_channel_id: int) -> int:
        """Drop both directions of a channel; return how many entries existed."""
        removed = 0
        for direction in (False, True):
            if self._entries.pop((short_channel_id, direction), None) is not None:
                removed += 1
        return removed

    def get(self, short_channel_id: int, direction: bool) -> ChannelPolicy | None:
        return self._entries.get((short_channel_id, direction))

    def lookup(self, short_channel_id: int) -> PolicyLookup:
        return PolicyLookup(
            forward=self._entries.get((short_channel_id, False)),
            backward=self._entries.get((short_channel_id, True)),
        )

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[tuple[int, bool]]:
        return iter(self._entries)
