"""A bootloader board support package for the emulated default device."""

from __future__ import annotations

import logging
import zlib
from typing import Optional

from .generic import FlashController
from .machine import Machine
from .nanoloader import NanoError, NanoHal, NanoReason

log = logging.getLogger(__name__)

_U32_MASK = 0xFFFF_FFFF
_WORD = 4

_REG_ADDR = 0x4
_REG_DATA = 0x8
_REG_COMMAND = 0xC


class TestHal(NanoHal):
    """Bootloader HAL driving the flash controller of an emulated device.

    Pending updates are announced in a table of 256 words at
    ``bl_opts_address``: the first non-zero word holds the update address,
    and an erased word (all ones) means there is none.
    """

    __test__ = False

    FW_START = 16 * 1024
    FW_END = 64 * 1024
    FW_SIZE_OFF = 0x30
    FW_PAGE_SZ = 1024
    BL_OPTS_WORDS = 256

    def __init__(
        self, machine: Machine, bl_opts_address: int, flash_ctrl_base: int = 0x4000_0000
    ) -> None:
        self.machine = machine
        self.bl_opts_address = bl_opts_address
        self.flash_ctrl_base = flash_ctrl_base
        self.current_prog_addr = 0
        self.current_prog_data = 0

    def _write_ctrl(self, offset: int, value: int) -> None:
        self.machine.load_segment(self.flash_ctrl_base + offset, value.to_bytes(_WORD, "little"))

    def update_find(self) -> Optional[int]:
        """Address of the options entry announcing a pending update, if any."""
        entries = (self.bl_opts_address + _WORD * i for i in range(self.BL_OPTS_WORDS))
        entry = next((a for a in entries if self.machine.read_u32(a) != 0), None)
        if entry is None or self.machine.read_u32(entry) == _U32_MASK:
            return None
        return entry

    def abort(self, reason: NanoReason) -> None:
        log.info("[NL] ABORT - %s", reason.name)
        self.machine.stop_emu(f"Bootloader aborted: {reason.value}")
        raise NanoError(reason)

    def checksum(self, data: bytes) -> int:
        return zlib.crc32(data)

    def read_memory(self, address: int, length: int) -> bytes:
        return self.machine.read_mem(address, length)

    def update_address(self) -> Optional[int]:
        entry = self.update_find()
        if entry is None:
            return None
        address = self.machine.read_u32(entry)
        log.info("[NL] Update found: 0x%08x", address)
        return address

    def update_clear(self) -> None:
        entry = self.update_find()
        if entry is None:
            return
        self._write_ctrl(_REG_ADDR, entry)
        self._write_ctrl(_REG_DATA, 0)
        self._write_ctrl(_REG_COMMAND, FlashController.CMD_PROGRAM)
        log.info("[NL] Update cleared")

    def program_start(self) -> None:
        log.info("[NL] Programming started")
        self.current_prog_addr = self.FW_START
        self.current_prog_data = 0

    def program_write(self, value: int) -> None:
        self.current_prog_data = ((self.current_prog_data << 8) | (value & 0xFF)) & _U32_MASK
        self.current_prog_addr += 1
        if self.current_prog_addr % _WORD:
            return
        addr = self.current_prog_addr - _WORD
        if addr % self.FW_PAGE_SZ == 0:
            log.info("[NL] Erasing flash page at 0x%08x", addr)
            self._write_ctrl(_REG_ADDR, addr)
            self._write_ctrl(_REG_COMMAND, FlashController.CMD_ERASE)
        word = int.from_bytes(self.current_prog_data.to_bytes(_WORD, "big"), "little")
        self._write_ctrl(_REG_ADDR, addr)
        self._write_ctrl(_REG_DATA, word)
        self._write_ctrl(_REG_COMMAND, FlashController.CMD_PROGRAM)
        self.current_prog_data = 0

    def program_read(self, offset: int) -> int:
        raise NanoError(NanoReason.HAL_ERROR)

    def program_finish(self) -> None:
        while self.current_prog_addr % _WORD:
            self.program_write(0xFF)
        log.info("[NL] Programming completed")