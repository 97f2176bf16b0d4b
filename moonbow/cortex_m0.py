"""Cortex-M0 core peripherals."""

from __future__ import annotations

from typing import List

from .peripherals import MemoryMapping, MmioMapping, Peripheral
from .registers import Register, RegisterBlock


class SCS(RegisterBlock, Peripheral):
    """System Control Space."""

    BASE = 0xE000E000
    SIZE = 4096

    vtor = Register(0xD08)

    def __init__(self) -> None:
        self.name = "SCS"
        self.reset_registers()

    def mappings(self) -> List[MemoryMapping]:
        return [MmioMapping(self.BASE, self.SIZE)]

    def mmio_read(self, base: int, offset: int, size: int) -> int:
        return self.read_registers(base, offset, size)

    def mmio_write(self, base: int, offset: int, size: int, value: int) -> None:
        self.write_registers(base, offset, size, value)