"""Extracting loadable segments from little-endian ELF files."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List

PT_LOAD = 1

_MAGIC = b"\x7fELF"
_ELFCLASS32 = 1
_ELFCLASS64 = 2
_ELFDATA2LSB = 1


class ElfError(ValueError):
    """Raised when ELF data cannot be parsed."""


@dataclass(frozen=True)
class LoadSegment:
    """A loadable segment: file contents placed at a physical address."""

    address: int
    data: bytes


@dataclass(frozen=True)
class _Layout:
    header: struct.Struct
    phdr: struct.Struct


# Header fields after e_ident: type, machine, version, entry, phoff, shoff,
# flags, ehsize, phentsize, phnum, shentsize, shnum, shstrndx.
_LAYOUTS = {
    _ELFCLASS32: _Layout(struct.Struct("<HHIIIIIHHHHHH"), struct.Struct("<IIIIIIII")),
    _ELFCLASS64: _Layout(struct.Struct("<HHIQQQIHHHHHH"), struct.Struct("<IIQQQQQQ")),
}


def _unpack_phdr(layout: _Layout, cls: int, raw: bytes):
    fields = layout.phdr.unpack(raw)
    if cls == _ELFCLASS32:
        p_type, p_offset, _vaddr, p_paddr, p_filesz, _memsz, _flags, _align = fields
    else:
        p_type, _flags, p_offset, _vaddr, p_paddr, p_filesz, _memsz, _align = fields
    return p_type, p_offset, p_paddr, p_filesz


def load_segments(elfdata: bytes) -> List[LoadSegment]:
    """Return the PT_LOAD segments with file contents, in program header order."""
    data = bytes(elfdata)
    if len(data) < 16 or data[:4] != _MAGIC:
        raise ElfError("Not an ELF file")
    cls, encoding = data[4], data[5]
    layout = _LAYOUTS.get(cls)
    if layout is None:
        raise ElfError(f"Unsupported ELF class {cls}")
    if encoding != _ELFDATA2LSB:
        raise ElfError(f"Unsupported ELF data encoding {encoding}")
    if len(data) < 16 + layout.header.size:
        raise ElfError("Truncated ELF header")

    fields = layout.header.unpack_from(data, 16)
    phoff, phentsize, phnum = fields[4], fields[8], fields[9]
    if phnum == 0:
        raise ElfError("No segments found in ELF file")
    if phentsize != layout.phdr.size:
        raise ElfError(f"Unexpected program header size {phentsize}")
    if phoff + phnum * phentsize > len(data):
        raise ElfError("Program header table extends past end of file")

    result: List[LoadSegment] = []
    for start in range(phoff, phoff + phnum * phentsize, phentsize):
        p_type, p_offset, p_paddr, p_filesz = _unpack_phdr(
            layout, cls, data[start:start + phentsize]
        )
        if p_type != PT_LOAD or p_filesz == 0:
            continue
        if p_offset + p_filesz > len(data):
            raise ElfError(f"Segment at offset 0x{p_offset:x} extends past end of file")
        result.append(LoadSegment(p_paddr, data[p_offset:p_offset + p_filesz]))
    return result