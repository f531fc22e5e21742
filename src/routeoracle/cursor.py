"""Bounds-checked sequential reader over an untrusted byte buffer.

Every extraction either returns exactly the requested number of bytes or
raises InputExhausted. Callers never see partial slices, so a short buffer
can only ever end a run, never steer it.

Design:
    - The buffer is an immutable ``bytes`` view shared by every reader of
      the run (replay loop and chain oracle read the same stream)
    - The offset is monotonically non-decreasing
    - A failed read still advances the offset, so every later read fails as
      well and the run cannot resume past a short read
    - peek() never advances

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from routeoracle.errors import InputExhausted

__all__ = ["InputCursor", "be16", "be32", "be64"]


def be16(data: bytes) -> int:
    """Decode a big-endian u16 from the first 2 bytes of data."""
    return int.from_bytes(data[:2], "big")


def be32(data: bytes) -> int:
    """Decode a big-endian u32 from the first 4 bytes of data."""
    return int.from_bytes(data[:4], "big")


def be64(data: bytes) -> int:
    """Decode a big-endian u64 from the first 8 bytes of data."""
    return int.from_bytes(data[:8], "big")


class InputCursor:
    """Sequential reader with a single forward-only offset.

    Example:
        >>> cursor = InputCursor(b"\\x00\\x01\\x02")
        >>> cursor.peek(2)
        b'\\x00\\x01'
        >>> cursor.read_u16()
        1
        >>> cursor.remaining
        1
        >>> cursor.read(2)
        Traceback (most recent call last):
        ...
        routeoracle.errors.InputExhausted: Requested 2 bytes, 1 available
    """

    __slots__ = ("_data", "_offset")

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._offset = 0

    @property
    def offset(self) -> int:
        """Current read offset (may exceed len(data) after a short read)."""
        return self._offset

    @property
    def remaining(self) -> int:
        """Bytes left before the end of the buffer."""
        return max(0, len(self._data) - self._offset)

    def __len__(self) -> int:
        return len(self._data)

    def _check(self, length: int) -> int:
        if length < 0:
            msg = f"Read length must be non-negative, got {length}"
            raise ValueError(msg)
        end = self._offset + length
        if end > len(self._data):
            raise InputExhausted(length, self.remaining)
        return end

    def read(self, length: int) -> bytes:
        """Return the next ``length`` bytes and advance past them.

        Raises:
            InputExhausted: If fewer than ``length`` bytes remain. The offset
                is advanced regardless.
            ValueError: If length is negative
        """
        start = self._offset
        try:
            end = self._check(length)
        except InputExhausted:
            self._offset = start + length
            raise
        self._offset = end
        return self._data[start:end]

    def peek(self, length: int) -> bytes:
        """Return the next ``length`` bytes without advancing.

        Raises:
            InputExhausted: If fewer than ``length`` bytes remain
            ValueError: If length is negative
        """
        end = self._check(length)
        return self._data[self._offset : end]

    def read_u8(self) -> int:
        return self.read(1)[0]

    def read_u16(self) -> int:
        return be16(self.read(2))

    def read_u32(self) -> int:
        return be32(self.read(4))

    def read_u64(self) -> int:
        return be64(self.read(8))
