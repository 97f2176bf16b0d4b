import struct
import zlib

import pytest

from moonbow.machine import Machine, create_default_device
from moonbow.nanoloader import NanoError, NanoReason, boot
from moonbow.testloader import TestHal

BL_OPTS = 0x3C00
UPDATE_AT = 0x8000


@pytest.fixture
def machine():
    m = Machine(create_default_device())
    m.running = True
    return m


@pytest.fixture
def hal(machine):
    return TestHal(machine, BL_OPTS)


def make_firmware(seed=0, size=64):
    body = bytearray((seed + i) & 0xFF for i in range(size))
    body[0x30:0x34] = size.to_bytes(4, "little")
    return bytes(body) + zlib.crc32(bytes(body)).to_bytes(4, "little")


def make_update(image):
    rest = struct.pack("<III", 16 + len(image), 0, len(image)) + image
    return struct.pack("<I", zlib.crc32(rest)) + rest


def test_checksum_is_crc32_iso_hdlc(hal):
    assert hal.checksum(b"123456789") == 0xCBF43926


def test_no_update_in_erased_table(hal):
    assert hal.update_find() is None
    assert hal.update_address() is None


def test_update_address_skips_cleared_entries(hal, machine):
    machine.load_segment(BL_OPTS, (0).to_bytes(4, "little") + UPDATE_AT.to_bytes(4, "little"))
    assert hal.update_find() == BL_OPTS + 4
    assert hal.update_address() == UPDATE_AT


def test_program_write_keeps_byte_order(hal, machine):
    hal.program_start()
    for b in b"\x01\x02\x03\x04":
        hal.program_write(b)
    assert machine.read_mem(hal.FW_START, 4) == b"\x01\x02\x03\x04"


def test_program_finish_pads_with_ones(hal, machine):
    hal.program_start()
    hal.program_write(0xAA)
    hal.program_write(0xBB)
    hal.program_finish()
    assert machine.read_mem(hal.FW_START, 4) == b"\xaa\xbb\xff\xff"


def test_program_erases_page_first(hal, machine):
    machine.load_segment(hal.FW_START, b"\x00" * hal.FW_PAGE_SZ)
    hal.program_start()
    for b in b"\x5a\xa5\x5a\xa5":
        hal.program_write(b)
    assert machine.read_mem(hal.FW_START, 4) == b"\x5a\xa5\x5a\xa5"
    assert machine.read_mem(hal.FW_START + 4, 4) == b"\xff" * 4


def test_program_read_unsupported(hal):
    with pytest.raises(NanoError) as info:
        hal.program_read(0)
    assert info.value.reason is NanoReason.HAL_ERROR


def test_boot_valid_firmware(hal, machine):
    machine.load_segment(hal.FW_START, make_firmware())
    assert boot(hal) == hal.FW_START
    assert machine.running is True


def test_boot_without_firmware_aborts(hal, machine):
    with pytest.raises(NanoError) as info:
        boot(hal)
    assert info.value.reason is NanoReason.FW_SIZE_INVALID
    assert machine.running is False
    assert machine.exit_error is not None and "abort" in machine.exit_error


def test_boot_installs_update_and_clears_it(hal, machine):
    machine.load_segment(hal.FW_START, make_firmware(seed=3))
    image = make_firmware(seed=11)
    machine.load_segment(UPDATE_AT, make_update(image))
    machine.load_segment(BL_OPTS, UPDATE_AT.to_bytes(4, "little"))
    assert boot(hal) == hal.FW_START
    assert machine.read_mem(hal.FW_START, len(image)) == image
    assert machine.read_u32(BL_OPTS) == 0
    assert hal.update_find() is None