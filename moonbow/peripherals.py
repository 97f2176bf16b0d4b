"""Peripheral interface and the memory mappings peripherals expose."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Union


class MmioError(Exception):
    """Raised when a memory-mapped I/O access cannot be served."""


@dataclass(frozen=True)
class Permissions:
    """Access permissions of a directly mapped memory region."""

    r: bool = False
    w: bool = False
    x: bool = False


@dataclass(frozen=True)
class MmioMapping:
    """A region whose accesses are routed to a peripheral's MMIO handlers."""

    base: int
    size: int


@dataclass(frozen=True, eq=False)
class DirectMapping:
    """A region backed directly by a peripheral-owned buffer."""

    base: int
    data: bytearray
    perms: Permissions

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def end(self) -> int:
        return self.base + len(self.data)


MemoryMapping = Union[MmioMapping, DirectMapping]


class Peripheral(ABC):
    """A device component that occupies one or more regions of the address space."""

    name: str = "PERIPHERAL"

    @abstractmethod
    def mappings(self) -> List[MemoryMapping]:
        """Return the memory regions this peripheral occupies."""

    def mmio_read(self, base: int, offset: int, size: int) -> int:
        """Serve a read from one of this peripheral's MMIO regions."""
        raise MmioError(f"{self.name} does not handle MMIO reads")

    def mmio_write(self, base: int, offset: int, size: int, value: int) -> None:
        """Serve a write to one of this peripheral's MMIO regions."""
        raise MmioError(f"{self.name} does not handle MMIO writes")