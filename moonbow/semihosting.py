"""A bare-minimum ARM semihosting handler for the emulated machine."""

from __future__ import annotations

from typing import Callable, Dict

from .machine import Machine, Reg

SYS_OPEN = 0x01
SYS_WRITE = 0x05
ANGEL_REPORT_EXCEPTION = 0x18

ADP_STOPPED_RUNTIME_ERROR_UNKNOWN = 0x20023
ADP_STOPPED_APPLICATION_EXIT = 0x20026

FILENO_STDIO_MAGIC = 0x1234
_OPEN_FAILED = 0xFFFF_FFFF


class SemihostingError(Exception):
    """Raised for semihosting requests that are not supported."""


def _sys_open(emu: Machine) -> None:
    block = emu.read_reg(Reg.R1)
    name_ptr = emu.read_u32(block)
    name_len = emu.read_u32(block + 8)
    name = emu.read_str(name_ptr, name_len)
    emu.write_reg(Reg.R0, FILENO_STDIO_MAGIC if name == ":tt" else _OPEN_FAILED)


def _sys_write(emu: Machine) -> None:
    block = emu.read_reg(Reg.R1)
    fd = emu.read_u32(block)
    data_ptr = emu.read_u32(block + 4)
    data_len = emu.read_u32(block + 8)
    if fd == FILENO_STDIO_MAGIC:
        emu.log(emu.read_mem(data_ptr, data_len))
        remaining = 0
    else:
        remaining = data_len
    emu.write_reg(Reg.R0, remaining)


def _angel_report_exception(emu: Machine) -> None:
    reason = emu.read_reg(Reg.R1)
    if reason == ADP_STOPPED_APPLICATION_EXIT:
        emu.stop_emu()
    elif reason == ADP_STOPPED_RUNTIME_ERROR_UNKNOWN:
        emu.stop_emu("Application exited with error")
    else:
        raise SemihostingError(f"Unsupported exception reported to angel: 0x{reason:08x}")


_HANDLERS: Dict[int, Callable[[Machine], None]] = {
    SYS_OPEN: _sys_open,
    SYS_WRITE: _sys_write,
    ANGEL_REPORT_EXCEPTION: _angel_report_exception,
}


def dispatch(emu: Machine) -> None:
    """Serve the semihosting call selected by R0, then step past the trap."""
    op = emu.read_reg(Reg.R0)
    handler = _HANDLERS.get(op)
    if handler is None:
        raise SemihostingError(f"Unsupported semihosting call {op} (0x{op:08x})")
    handler(emu)
    emu.advance_pc()