"""A minimal bootloader: validates firmware and installs pending updates."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

_U32_MASK = 0xFFFF_FFFF
_WORD = 4


class NanoReason(Enum):
    HAL_ERROR = "HAL error"
    FW_SIZE_INVALID = "firmware size invalid"
    FW_CRC_MISMATCH = "firmware CRC mismatch"


class NanoError(Exception):
    """Raised with a :class:`NanoReason` when a boot step fails."""

    def __init__(self, reason: NanoReason, code: Optional[int] = None) -> None:
        self.reason = reason
        self.code = code
        detail = reason.name if code is None else f"{reason.name}({code})"
        super().__init__(detail)


class NanoHal(ABC):
    """Board support the bootloader needs.

    ``FW_START``..``FW_END`` is the firmware area; the firmware's own size is
    stored at ``FW_SIZE_OFF`` and its checksum follows the image.
    """

    FW_START: int = 0
    FW_END: int = 0
    FW_SIZE_OFF: int = 0
    FW_PAGE_SZ: int = 1

    def abort(self, reason: NanoReason) -> None:
        """Give up booting. Must not return normally."""
        raise NanoError(reason)

    @abstractmethod
    def checksum(self, data: bytes) -> int:
        """Checksum used for both firmware and update images."""

    @abstractmethod
    def read_memory(self, address: int, length: int) -> bytes:
        """Read ``length`` bytes of memory at ``address``."""

    @abstractmethod
    def update_address(self) -> Optional[int]:
        """Address of a pending update, if any."""

    @abstractmethod
    def update_clear(self) -> None:
        """Mark the pending update as handled."""

    @abstractmethod
    def program_start(self) -> None:
        """Begin writing a new firmware image at ``FW_START``."""

    @abstractmethod
    def program_write(self, value: int) -> None:
        """Write the next byte of the firmware image."""

    @abstractmethod
    def program_read(self, offset: int) -> int:
        """Read back a byte of the image being programmed."""

    @abstractmethod
    def program_finish(self) -> None:
        """Complete programming."""


@dataclass(frozen=True)
class UpdateInfo:
    """Header at the start of an update image."""

    checksum: int
    upsize: int
    uptype: int
    fwsize: int

    TYPE_PLAIN = 0
    SIZE = 16

    @classmethod
    def from_bytes(cls, data: bytes) -> "UpdateInfo":
        if len(data) < cls.SIZE:
            raise ValueError(f"Update header needs {cls.SIZE} bytes, got {len(data)}")
        return cls(*struct.unpack_from("<IIII", data))


@dataclass(frozen=True)
class Update:
    """A verified update: its header, location and payload."""

    info: UpdateInfo
    address: int
    data: bytes


def _firmware_area(hal: NanoHal) -> bytes:
    return hal.read_memory(hal.FW_START, hal.FW_END - hal.FW_START)


def _read_checked(area: bytes, area_base: int, offset: int, size: int) -> Optional[bytes]:
    if offset < 0 or offset + size > len(area) or (area_base + offset) % _WORD:
        return None
    return area[offset:offset + size]


def _read_u32(area: bytes, area_base: int, offset: int) -> Optional[int]:
    raw = _read_checked(area, area_base, offset, _WORD)
    return None if raw is None else int.from_bytes(raw, "little")


def _align_up(value: int, alignment: int) -> Optional[int]:
    aligned = (value + alignment - 1) & ~(alignment - 1)
    return aligned if aligned <= _U32_MASK else None


def check_firmware(hal: NanoHal) -> None:
    """Verify the firmware in flash, raising :class:`NanoError` if it is not valid."""
    area = _firmware_area(hal)
    fwsize = _read_u32(area, hal.FW_START, hal.FW_SIZE_OFF)
    if fwsize is None or fwsize > len(area):
        raise NanoError(NanoReason.FW_SIZE_INVALID)
    expected = _read_u32(area, hal.FW_START, fwsize)
    if expected is None:
        raise NanoError(NanoReason.FW_SIZE_INVALID)
    if hal.checksum(area[:fwsize]) != expected:
        raise NanoError(NanoReason.FW_CRC_MISMATCH)


def check_update(hal: NanoHal) -> Optional[Update]:
    """Return the pending update if there is one and its checksum matches."""
    address = hal.update_address()
    if address is None:
        return None
    offset = address - hal.FW_START
    if offset < 0:
        return None
    area = _firmware_area(hal)
    header = _read_checked(area, hal.FW_START, offset, UpdateInfo.SIZE)
    if header is None:
        return None
    info = UpdateInfo.from_bytes(header)
    end = offset + info.upsize
    if end > len(area) or info.upsize < _WORD:
        return None
    image = area[offset:end]
    if hal.checksum(image[_WORD:]) != info.checksum:
        return None
    if len(image) < UpdateInfo.SIZE:
        return None
    return Update(info=info, address=address, data=image[UpdateInfo.SIZE:])


def install_plain(hal: NanoHal, update: Update) -> bool:
    """Copy an uncompressed update into place; return whether it completed."""
    if update.info.fwsize != len(update.data):
        return False
    size = _align_up(update.info.fwsize, hal.FW_PAGE_SZ)
    if size is None or hal.FW_START + size > update.address:
        return False
    try:
        hal.program_start()
        for byte in update.data:
            hal.program_write(byte)
        hal.program_finish()
    except NanoError:
        return False
    return True


def process_update(hal: NanoHal) -> None:
    """Install a pending update and clear it once the firmware is valid."""
    update = check_update(hal)
    if update is None:
        return
    if update.info.uptype == UpdateInfo.TYPE_PLAIN:
        install_plain(hal, update)
    # Clearing only with valid firmware keeps a half-installed update recoverable.
    try:
        check_firmware(hal)
    except NanoError:
        return
    hal.update_clear()


def boot(hal: NanoHal) -> int:
    """Run the boot sequence and return the vector table address to start from."""
    process_update(hal)
    try:
        check_firmware(hal)
    except NanoError as exc:
        hal.abort(exc.reason)
        raise
    return hal.FW_START