"""Deterministic identity picker.

Python randomizes ``hash()`` of bytes per process (PYTHONHASHSEED), so a
plain ``set`` of node ids would visit identities in a different order on
every run and make crash reproducers useless. IdentitySet orders its members
by a keyed BLAKE2b digest instead: the key is fixed at configuration time,
which makes the order independent of both insertion order and process.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

import bisect
import hashlib
from typing import TYPE_CHECKING

from routeoracle.constants import DEFAULT_IDENTITY_SEED

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

__all__ = ["IdentitySet", "identity_order_key"]


def identity_order_key(identity: bytes, seed: bytes = DEFAULT_IDENTITY_SEED) -> bytes:
    """Sort key placing an identity in the fixed-seed iteration order.

    The identity itself is appended so distinct identities never compare
    equal even on a digest collision.
    """
    return hashlib.blake2b(identity, digest_size=16, key=seed).digest() + identity


class IdentitySet:
    """Grow-only set of node identities with reproducible iteration order.

    Example:
        >>> ids = IdentitySet()
        >>> ids.add(b"\\x02" + b"\\x11" * 32)
        True
        >>> ids.add(b"\\x02" + b"\\x11" * 32)
        False
        >>> len(ids)
        1
        >>> ids.pick(7) == b"\\x02" + b"\\x11" * 32
        True
    """

    __slots__ = ("_keys", "_members", "_ordered", "_seed")

    def __init__(
        self,
        identities: Iterable[bytes] = (),
        *,
        seed: bytes = DEFAULT_IDENTITY_SEED,
    ) -> None:
        self._seed = seed
        self._members: set[bytes] = set()
        self._keys: list[bytes] = []
        self._ordered: list[bytes] = []
        for identity in identities:
            self.add(identity)

    def add(self, identity: bytes) -> bool:
        """Insert identity; return True if it was not already present."""
        identity = bytes(identity)
        if identity in self._members:
            return False
        key = identity_order_key(identity, self._seed)
        pos = bisect.bisect_left(self._keys, key)
        self._keys.insert(pos, key)
        self._ordered.insert(pos, identity)
        self._members.add(identity)
        return True

    def pick(self, index: int) -> bytes:
        """Return the ``index % len(self)``-th identity in hash order.

        Raises:
            LookupError: If the set is empty. Callers skip the operation
                that needed a pick instead of calling this.
        """
        if not self._ordered:
            msg = "Cannot pick from an empty identity set"
            raise LookupError(msg)
        return self._ordered[index % len(self._ordered)]

    def snapshot(self) -> tuple[bytes, ...]:
        """Identities in iteration order, frozen against later inserts."""
        return tuple(self._ordered)

    def __contains__(self, identity: object) -> bool:
        return identity in self._members

    def __len__(self) -> int:
        return len(self._ordered)

    def __bool__(self) -> bool:
        return bool(self._ordered)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._ordered)

    def __repr__(self) -> str:
        return f"IdentitySet(size={len(self._ordered)})"
