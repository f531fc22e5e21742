"""Input-driven chain oracle for checked channel announcements.

Opcode 2 asks the graph to validate a channel announcement against the
chain. The answer is scripted from the same byte stream the replay loop
reads, two bytes per lookup:

    [0, _] -> unknown chain
    [1, _] -> unknown transaction
    [_, x] -> a zero-value P2WSH output committing to a script that pushes x

A short read answers "unknown transaction"; the cursor is left exhausted so
the run stops at the replay loop's next read.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

from routeoracle.enums import ChainAccessErrorKind
from routeoracle.errors import ChainAccessError, InputExhausted
from routeoracle.types import TxOut

if TYPE_CHECKING:
    from routeoracle.cursor import InputCursor

__all__ = ["FuzzChainSource", "p2wsh_script", "push_int_script"]

logger = logging.getLogger(__name__)

_OP_0 = 0x00
_OP_1NEGATE = 0x4F
_OP_1 = 0x51
_OP_SHA256_PUSH = 0x20


def _scriptnum(value: int) -> bytes:
    """Minimal little-endian sign-magnitude encoding used by script numbers."""
    negative = value < 0
    magnitude = abs(value)
    out = bytearray()
    while magnitude:
        out.append(magnitude & 0xFF)
        magnitude >>= 8
    if out[-1] & 0x80:
        out.append(0x80 if negative else 0x00)
    elif negative:
        out[-1] |= 0x80
    return bytes(out)


def push_int_script(value: int) -> bytes:
    """Script that pushes a single integer, using small-int opcodes when possible."""
    if value == 0:
        return bytes((_OP_0,))
    if value == -1:
        return bytes((_OP_1NEGATE,))
    if 1 <= value <= 16:
        return bytes((_OP_1 + value - 1,))
    data = _scriptnum(value)
    return bytes((len(data),)) + data


def p2wsh_script(witness_script: bytes) -> bytes:
    """Version 0 pay-to-witness-script-hash output script."""
    return bytes((_OP_0, _OP_SHA256_PUSH)) + hashlib.sha256(witness_script).digest()


class FuzzChainSource:
    """ChainAccess implementation answering from the shared input cursor."""

    __slots__ = ("_cursor", "lookups")

    def __init__(self, cursor: InputCursor) -> None:
        self._cursor = cursor
        self.lookups = 0

    def get_utxo(self, genesis_hash: bytes, short_channel_id: int) -> TxOut:  # noqa: ARG002
        """Answer a UTXO lookup from the next two input bytes.

        Raises:
            ChainAccessError: UNKNOWN_CHAIN or UNKNOWN_TX as scripted
        """
        self.lookups += 1
        try:
            selector, value = self._cursor.read(2)
        except InputExhausted:
            logger.debug("Chain lookup for scid %d hit end of input", short_channel_id)
            raise ChainAccessError(ChainAccessErrorKind.UNKNOWN_TX) from None
        if selector == 0:
            raise ChainAccessError(ChainAccessErrorKind.UNKNOWN_CHAIN)
        if selector == 1:
            raise ChainAccessError(ChainAccessErrorKind.UNKNOWN_TX)
        return TxOut(value=0, script_pubkey=p2wsh_script(push_int_script(value)))
