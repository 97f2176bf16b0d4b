"""Decoder for raw LZ4 block data, feeding a pluggable sink."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

MIN_MATCH = 4
_RUN_MASK = 15


class Lz4Error(ValueError):
    """Raised when LZ4 data is malformed or cannot be applied to a sink."""


class Sink(ABC):
    """Receives the literal runs and back-references of a decoded stream."""

    @abstractmethod
    def literal(self, data: bytes) -> None:
        """Append literal bytes to the output."""

    @abstractmethod
    def backref(self, offset: int, length: int) -> None:
        """Copy ``length`` bytes starting ``offset`` bytes back in the output."""


class BufferSink(Sink):
    """A sink that collects output in memory, with an optional preset dictionary."""

    def __init__(self, dictionary: bytes = b"") -> None:
        self.dictionary = bytes(dictionary)
        self.output = bytearray()

    @property
    def data(self) -> bytes:
        return bytes(self.output)

    def literal(self, data: bytes) -> None:
        self.output += data

    def backref(self, offset: int, length: int) -> None:
        if offset == 0 or offset > len(self.output) + len(self.dictionary):
            raise Lz4Error(f"Back-reference offset {offset} out of range")
        position = len(self.output) - offset
        for _ in range(length):
            # Negative positions reach back into the dictionary.
            source = self.dictionary if position < 0 else self.output
            self.output.append(source[position])
            position += 1


class _Cursor:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    def byte(self) -> Optional[int]:
        if self._pos >= len(self._data):
            return None
        value = self._data[self._pos]
        self._pos += 1
        return value

    def take(self, count: int) -> Optional[bytes]:
        end = self._pos + count
        if end > len(self._data):
            return None
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk


def _extend_length(length: int, cursor: _Cursor) -> int:
    if length != _RUN_MASK:
        return length
    while True:
        extra = cursor.byte()
        if extra is None:
            raise Lz4Error("Unexpected end of input in length extension")
        length += extra
        if extra != 255:
            return length


def decompress(source: bytes, sink: Sink) -> None:
    """Decode the LZ4 block ``source`` into ``sink``."""
    cursor = _Cursor(source)
    while True:
        token = cursor.byte()
        if token is None:
            raise Lz4Error("Unexpected end of input: missing token")

        literal_len = _extend_length(token >> 4, cursor)
        literals = cursor.take(literal_len)
        if literals is None:
            raise Lz4Error("Literal run extends past end of input")
        sink.literal(literals)

        offset_lsb = cursor.byte()
        if offset_lsb is None:
            # The last sequence only carries literals.
            return
        offset_msb = cursor.byte()
        if offset_msb is None:
            raise Lz4Error("Unexpected end of input in match offset")
        offset = (offset_msb << 8) | offset_lsb

        match_len = _extend_length(token & 0x0F, cursor) + MIN_MATCH
        sink.backref(offset, match_len)