"""Reading Intel HEX files into contiguous memory segments."""

from __future__ import annotations

import string
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Tuple, Union


class IntelHexError(ValueError):
    """Raised when Intel HEX data cannot be parsed."""


@dataclass
class Segment:
    """A contiguous run of bytes to be placed at ``address``."""

    address: int
    data: bytes


class _RecordType(IntEnum):
    DATA = 0x00
    END_OF_FILE = 0x01
    EXTENDED_SEGMENT_ADDRESS = 0x02
    START_SEGMENT_ADDRESS = 0x03
    EXTENDED_LINEAR_ADDRESS = 0x04
    START_LINEAR_ADDRESS = 0x05


_FIXED_LENGTHS = {
    _RecordType.END_OF_FILE: 0,
    _RecordType.EXTENDED_SEGMENT_ADDRESS: 2,
    _RecordType.START_SEGMENT_ADDRESS: 4,
    _RecordType.EXTENDED_LINEAR_ADDRESS: 2,
    _RecordType.START_LINEAR_ADDRESS: 4,
}

_HEX_DIGITS = frozenset(string.hexdigits)


def _invalid(detail: str) -> IntelHexError:
    return IntelHexError(f"Invalid record: {detail}")


def _parse_record(line: str) -> Tuple[_RecordType, int, bytes]:
    if not line.startswith(":"):
        raise _invalid(f"missing start code in {line!r}")
    body = line[1:]
    if len(body) % 2 or not _HEX_DIGITS.issuperset(body):
        raise _invalid(f"malformed hex digits in {line!r}")
    raw = bytes.fromhex(body)
    if len(raw) < 5:
        raise _invalid(f"record too short in {line!r}")
    length = raw[0]
    if len(raw) != length + 5:
        raise _invalid(f"byte count mismatch in {line!r}")
    if sum(raw) & 0xFF:
        raise _invalid(f"checksum mismatch in {line!r}")
    try:
        kind = _RecordType(raw[3])
    except ValueError:
        raise _invalid(f"unsupported record type 0x{raw[3]:02x}") from None
    payload = raw[4:-1]
    expected = _FIXED_LENGTHS.get(kind)
    if expected is not None and len(payload) != expected:
        raise _invalid(f"wrong length for record type 0x{kind:02x}")
    offset = int.from_bytes(raw[1:3], "big")
    return kind, offset, payload


def segments(hexdata: Union[bytes, bytearray, str]) -> List[Segment]:
    """Parse Intel HEX data, merging adjacent data records into segments."""
    if isinstance(hexdata, str):
        text = hexdata
    else:
        try:
            text = bytes(hexdata).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise IntelHexError(f"Invalid UTF-8 string ({exc})") from exc

    result: List[Segment] = []
    address_base = 0
    segment_buf = bytearray()
    segment_start = 0

    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        kind, offset, payload = _parse_record(line)
        if kind is _RecordType.DATA:
            addr = address_base + offset
            if addr != segment_start + len(segment_buf):
                if segment_buf:
                    result.append(Segment(segment_start, bytes(segment_buf)))
                segment_buf = bytearray()
                segment_start = addr
            segment_buf += payload
        elif kind is _RecordType.END_OF_FILE:
            if segment_buf:
                result.append(Segment(segment_start, bytes(segment_buf)))
            return result
        elif kind is _RecordType.EXTENDED_SEGMENT_ADDRESS:
            address_base = int.from_bytes(payload, "big") << 4
        elif kind is _RecordType.EXTENDED_LINEAR_ADDRESS:
            address_base = int.from_bytes(payload, "big") << 16

    raise IntelHexError("Unexpected end of file")