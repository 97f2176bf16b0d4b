"""The address space and register file of an emulated device."""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import List, Optional, Tuple, Union

from .device import CpuModel, Device
from .elf import load_segments
from .generic import FlashController, Sram
from .intelhex import segments as ihex_segments
from .peripherals import DirectMapping, MemoryMapping, MmioError, MmioMapping

_U32_MASK = 0xFFFF_FFFF
_MMIO_ACCESS = 4

log = logging.getLogger(__name__)


class MachineError(Exception):
    """Raised when the emulated machine cannot carry out an access."""


class Reg(IntEnum):
    R0 = 0
    R1 = 1
    R2 = 2
    R3 = 3
    R4 = 4
    R5 = 5
    R6 = 6
    R7 = 7
    R8 = 8
    R9 = 9
    R10 = 10
    R11 = 11
    R12 = 12
    SP = 13
    LR = 14
    PC = 15


class LogWriter:
    """A line-buffered byte sink that logs each completed batch of lines."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger if logger is not None else logging.getLogger("moonbow.target")
        self._pending = bytearray()

    def write(self, data: bytes) -> int:
        self._pending += data
        cut = self._pending.rfind(b"\n")
        if cut >= 0:
            self._emit(bytes(self._pending[:cut + 1]))
            del self._pending[:cut + 1]
        return len(data)

    def flush(self) -> None:
        if self._pending:
            self._emit(bytes(self._pending))
            self._pending.clear()

    def _emit(self, chunk: bytes) -> None:
        text = chunk.decode("utf-8", errors="replace").rstrip()
        if text:
            self._logger.info("%s", text)


_Chunk = Tuple[MemoryMapping, int, int]


class Machine:
    """Registers plus a memory map built from a :class:`Device`'s peripherals."""

    def __init__(self, device: Device, log: Optional[LogWriter] = None) -> None:
        self.device = device
        self._log = log if log is not None else LogWriter()
        self._regs = {reg: 0 for reg in Reg}
        self._regions: List[Tuple[int, int, MemoryMapping]] = []
        self.running = False
        self.exit_error: Optional[str] = None
        for mapping in device.mappings():
            self._map(mapping)

    def _map(self, mapping: MemoryMapping) -> None:
        base = mapping.base
        end = base + mapping.size
        kind = "MMIO" if isinstance(mapping, MmioMapping) else "memory"
        for other_base, other_end, _ in self._regions:
            if base < other_end and other_base < end:
                raise MachineError(
                    f"Could not map {kind} segment at 0x{base:08x}: overlaps 0x{other_base:08x}"
                )
        log.debug("Mapping %s segment at 0x%08x (%d bytes)", kind, base, mapping.size)
        self._regions.append((base, end, mapping))
        self._regions.sort(key=lambda region: region[0])

    def _resolve(self, address: int, length: int) -> Optional[List[_Chunk]]:
        if length < 0:
            raise ValueError("Access length must not be negative")
        chunks: List[_Chunk] = []
        pos, end = address, address + length
        while pos < end:
            region = next(((b, e, m) for b, e, m in self._regions if b <= pos < e), None)
            if region is None:
                return None
            base, region_end, mapping = region
            count = min(end, region_end) - pos
            chunks.append((mapping, pos - base, count))
            pos += count
        return chunks

    def _mmio_read(self, base: int, offset: int, size: int) -> int:
        try:
            value = self.device.mmio_read(base, offset, size)
        except MmioError as exc:
            log.error("mmio read failed: %s", exc)
            return 0
        return value & ((1 << (8 * size)) - 1)

    def _mmio_write(self, base: int, offset: int, size: int, value: int) -> None:
        try:
            self.device.mmio_write(base, offset, size, value)
        except MmioError as exc:
            log.error("mmio write failed: %s", exc)

    # Registers

    def read_reg(self, register: Reg) -> int:
        return self._regs[Reg(register)]

    def write_reg(self, register: Reg, value: int) -> None:
        self._regs[Reg(register)] = value & _U32_MASK

    def read_pc(self) -> int:
        return self.read_reg(Reg.PC) & ~1

    def write_pc(self, pc: int) -> None:
        self.write_reg(Reg.PC, pc | 1)

    # Memory

    def read_mem(self, address: int, length: int) -> bytes:
        """Read ``length`` bytes; MMIO regions are read in word-sized accesses."""
        chunks = self._resolve(address, length)
        if chunks is None:
            raise MachineError(
                f"Could not read {length} bytes at 0x{address:08x} (unmapped memory)"
            )
        out = bytearray()
        for mapping, offset, count in chunks:
            if isinstance(mapping, DirectMapping):
                out += mapping.data[offset:offset + count]
                continue
            for start in range(offset, offset + count, _MMIO_ACCESS):
                size = min(_MMIO_ACCESS, offset + count - start)
                out += self._mmio_read(mapping.base, start, size).to_bytes(size, "little")
        return bytes(out)

    def read_u16(self, address: int) -> int:
        return int.from_bytes(self.read_mem(address, 2), "little")

    def read_u32(self, address: int) -> int:
        return int.from_bytes(self.read_mem(address, 4), "little")

    def read_str(self, address: int, length: int) -> str:
        raw = self.read_mem(address, length)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MachineError(f"Invalid UTF-8 string ({exc})") from exc

    def read_str_lossy(self, address: int, length: int) -> str:
        return self.read_mem(address, length).decode("utf-8", errors="replace")

    def load_segment(self, address: int, data: bytes) -> None:
        """Write ``data`` into memory regardless of region permissions."""
        data = bytes(data)
        log.debug("Loading segment at 0x%08x (%d bytes)", address, len(data))
        chunks = self._resolve(address, len(data))
        if chunks is None:
            raise MachineError(
                f"Could not write {len(data)} bytes at 0x{address:08x} (unmapped memory)"
            )
        pos = 0
        for mapping, offset, count in chunks:
            piece = data[pos:pos + count]
            pos += count
            if isinstance(mapping, DirectMapping):
                mapping.data[offset:offset + count] = piece
                continue
            for start in range(0, count, _MMIO_ACCESS):
                word = piece[start:start + _MMIO_ACCESS]
                self._mmio_write(
                    mapping.base, offset + start, len(word), int.from_bytes(word, "little")
                )

    def load_elf(self, elfdata: bytes) -> None:
        for segment in load_segments(elfdata):
            self.load_segment(segment.address & _U32_MASK, segment.data)

    def load_ihex(self, ihexdata: Union[bytes, str]) -> None:
        for segment in ihex_segments(ihexdata):
            self.load_segment(segment.address & _U32_MASK, segment.data)

    # Control

    def reset(self) -> None:
        """Load SP and PC from the vector table at address zero."""
        vtor = 0
        sp = self.read_u32(vtor)
        pc = self.read_u32(vtor + 4)
        self.write_reg(Reg.SP, sp)
        self.write_reg(Reg.PC, pc)
        self.running = True
        self.exit_error = None

    def stop_emu(self, error: Optional[str] = None) -> None:
        if error is not None:
            log.error("%s", error)
        self.running = False
        self.exit_error = error
        log.debug("Emulation stopped")

    def advance_pc(self) -> None:
        """Step PC past the current 16- or 32-bit Thumb instruction."""
        pc = self.read_pc()
        ins = self.read_u16(pc)
        step = 4 if (ins >> 11) > 0x1C else 2
        self.write_pc(pc + step)

    def log(self, data: bytes) -> None:
        self._log.write(bytes(data))


def create_default_device() -> Device:
    """A Cortex-M0+ with 4 KiB SRAM and 64 KiB of 1 KiB-page flash."""
    return Device(
        CpuModel.M0PLUS,
        [
            Sram(0x2000_0000, 4 * 1024),
            FlashController(0x0000_0000, 1024, 64, 0x4000_0000),
        ],
    )