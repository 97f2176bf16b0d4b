"""Generic memory peripherals: plain SRAM and a page-erasable flash."""

from __future__ import annotations

from typing import List, Optional

from .peripherals import DirectMapping, MemoryMapping, MmioMapping, Peripheral, Permissions
from .registers import WORD_SIZE, Register, RegisterBlock


class Sram(Peripheral):
    """Zero-initialised read/write/execute memory."""

    def __init__(self, base: int, size: int, name: Optional[str] = None) -> None:
        if size < 0:
            raise ValueError("SRAM size must not be negative")
        self.name = name if name is not None else "SRAM"
        self.base = base
        self.data = bytearray(size)

    def mappings(self) -> List[MemoryMapping]:
        return [DirectMapping(self.base, self.data, Permissions(r=True, w=True, x=True))]


class FlashController(RegisterBlock, Peripheral):
    """Flash memory together with the MMIO controller that programs and erases it.

    Programming can only clear bits (the new word is ANDed into flash);
    erasing sets a whole page back to ``0xff``.
    """

    CMD_PROGRAM = 0x860CD758
    CMD_ERASE = 0x4C6F315F
    CTRL_SIZE = 1024

    reg_status = Register(write_nop=True)
    reg_addr = Register()
    reg_data = Register()
    reg_command = Register(read_const=0, stored=False)

    def __init__(
        self,
        flash_base: int,
        page_size: int,
        page_count: int,
        ctrl_base: int,
        name: Optional[str] = None,
    ) -> None:
        if page_size <= 0 or page_size & (page_size - 1):
            raise ValueError(f"Page size {page_size} is not a power of two")
        if page_count < 0:
            raise ValueError("Page count must not be negative")
        self.name = name if name is not None else "FLASH"
        self.flash_base = flash_base
        self.ctrl_base = ctrl_base
        self.page_size = page_size
        self.data = bytearray(b"\xff" * (page_size * page_count))
        self.reset_registers()

    def _offset(self, addr: int) -> Optional[int]:
        if self.flash_base <= addr < self.flash_base + len(self.data):
            return addr - self.flash_base
        return None

    def set_reg_command(self, value: int) -> None:
        """Execute a controller command on the address held in ``reg_addr``."""
        if value == self.CMD_PROGRAM:
            off = self._offset(self.reg_addr & ~(WORD_SIZE - 1))
            if off is not None and off + WORD_SIZE <= len(self.data):
                current = int.from_bytes(self.data[off:off + WORD_SIZE], "little")
                self.data[off:off + WORD_SIZE] = (self.reg_data & current).to_bytes(
                    WORD_SIZE, "little"
                )
        elif value == self.CMD_ERASE:
            off = self._offset(self.reg_addr & ~(self.page_size - 1))
            if off is not None:
                self.data[off:off + self.page_size] = b"\xff" * self.page_size

    def mappings(self) -> List[MemoryMapping]:
        return [
            DirectMapping(self.flash_base, self.data, Permissions(r=True, w=False, x=True)),
            MmioMapping(self.ctrl_base, self.CTRL_SIZE),
        ]

    def mmio_read(self, base: int, offset: int, size: int) -> int:
        return self.read_registers(base, offset, size)

    def mmio_write(self, base: int, offset: int, size: int, value: int) -> None:
        self.write_registers(base, offset, size, value)