"""A device: a CPU model together with the peripherals on its bus."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List

from .cortex_m0 import SCS
from .peripherals import MemoryMapping, MmioError, MmioMapping, Peripheral


class DeviceError(MmioError):
    """Raised when no peripheral serves an MMIO region."""


class CpuModel(Enum):
    M0PLUS = "cortex-m0+"


class Device:
    """The peripherals of a device, with MMIO regions routed by base address."""

    def __init__(self, model: CpuModel, peripherals: Iterable[Peripheral]) -> None:
        self.cpu_model = model
        self.peripherals: List[Peripheral] = list(peripherals)
        if model is CpuModel.M0PLUS:
            self.peripherals.append(SCS())
        self.mmio_mappings: Dict[int, Peripheral] = {
            mapping.base: peripheral
            for peripheral in self.peripherals
            for mapping in peripheral.mappings()
            if isinstance(mapping, MmioMapping)
        }

    def mappings(self) -> List[MemoryMapping]:
        """All memory regions of all peripherals."""
        return [m for peripheral in self.peripherals for m in peripheral.mappings()]

    def _peripheral(self, base: int) -> Peripheral:
        try:
            return self.mmio_mappings[base]
        except KeyError:
            raise DeviceError(f"No peripheral mapped at 0x{base:08x}") from None

    def mmio_read(self, base: int, offset: int, size: int) -> int:
        return self._peripheral(base).mmio_read(base, offset, size)

    def mmio_write(self, base: int, offset: int, size: int, value: int) -> None:
        self._peripheral(base).mmio_write(base, offset, size, value)