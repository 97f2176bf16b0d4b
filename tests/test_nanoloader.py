import struct
import zlib

import pytest

from moonbow.nanoloader import (
    NanoError,
    NanoHal,
    NanoReason,
    Update,
    UpdateInfo,
    boot,
    check_firmware,
    check_update,
    install_plain,
    process_update,
)


class FakeHal(NanoHal):
    FW_START = 0x1000
    FW_END = 0x3000
    FW_SIZE_OFF = 0x10
    FW_PAGE_SZ = 0x100

    def __init__(self):
        self.memory = bytearray(b"\xff" * (self.FW_END - self.FW_START))
        self.pending = None
        self.cleared = False
        self.aborted = None
        self.fail_write = False
        self.prog_pos = None

    def place(self, address, data):
        off = address - self.FW_START
        self.memory[off:off + len(data)] = data

    def abort(self, reason):
        self.aborted = reason
        super().abort(reason)

    def checksum(self, data):
        return zlib.crc32(data)

    def read_memory(self, address, length):
        off = address - self.FW_START
        return bytes(self.memory[off:off + length])

    def update_address(self):
        return self.pending

    def update_clear(self):
        self.pending = None
        self.cleared = True

    def program_start(self):
        self.prog_pos = 0

    def program_write(self, value):
        if self.fail_write:
            raise NanoError(NanoReason.HAL_ERROR, 1)
        self.memory[self.prog_pos] = value
        self.prog_pos += 1

    def program_read(self, offset):
        return self.memory[offset]

    def program_finish(self):
        pass


def make_firmware(size=0x20, seed=0):
    body = bytearray((seed + i) & 0xFF for i in range(size))
    body[0x10:0x14] = size.to_bytes(4, "little")
    return bytes(body) + zlib.crc32(bytes(body)).to_bytes(4, "little")


def make_update(image, uptype=0, fwsize=None):
    if fwsize is None:
        fwsize = len(image)
    rest = struct.pack("<III", 16 + len(image), uptype, fwsize) + image
    return struct.pack("<I", zlib.crc32(rest)) + rest


UPDATE_AT = 0x2000


def test_valid_firmware_boots():
    hal = FakeHal()
    hal.place(hal.FW_START, make_firmware())
    check_firmware(hal)
    assert boot(hal) == hal.FW_START
    assert hal.aborted is None


def test_crc_mismatch():
    hal = FakeHal()
    image = bytearray(make_firmware())
    image[0] ^= 1
    hal.place(hal.FW_START, image)
    with pytest.raises(NanoError) as info:
        check_firmware(hal)
    assert info.value.reason is NanoReason.FW_CRC_MISMATCH


def test_erased_flash_has_invalid_size_and_aborts():
    hal = FakeHal()
    with pytest.raises(NanoError) as info:
        boot(hal)
    assert info.value.reason is NanoReason.FW_SIZE_INVALID
    assert hal.aborted is NanoReason.FW_SIZE_INVALID


def test_unaligned_size_is_invalid():
    hal = FakeHal()
    hal.place(hal.FW_START, make_firmware(size=0x21))
    with pytest.raises(NanoError) as info:
        check_firmware(hal)
    assert info.value.reason is NanoReason.FW_SIZE_INVALID


def test_update_info_from_bytes():
    assert UpdateInfo.from_bytes(struct.pack("<IIII", 1, 2, 3, 4)) == UpdateInfo(1, 2, 3, 4)
    with pytest.raises(ValueError):
        UpdateInfo.from_bytes(b"\x00" * 8)


def test_check_update_none_without_address():
    assert check_update(FakeHal()) is None


def test_check_update_reads_payload():
    hal = FakeHal()
    image = make_firmware()
    hal.place(UPDATE_AT, make_update(image))
    hal.pending = UPDATE_AT
    update = check_update(hal)
    assert update.address == UPDATE_AT
    assert update.data == image
    assert update.info.fwsize == len(image)


@pytest.mark.parametrize("address", [UPDATE_AT + 2, 0x800])
def test_check_update_rejects_bad_location(address):
    hal = FakeHal()
    hal.place(UPDATE_AT, make_update(make_firmware()))
    hal.pending = address
    assert check_update(hal) is None


def test_check_update_rejects_bad_checksum():
    hal = FakeHal()
    blob = bytearray(make_update(make_firmware()))
    blob[-1] ^= 0xFF
    hal.place(UPDATE_AT, blob)
    hal.pending = UPDATE_AT
    assert check_update(hal) is None


def test_install_plain_rejects_size_mismatch():
    hal = FakeHal()
    info = UpdateInfo(0, 16 + 8, 0, 9)
    assert install_plain(hal, Update(info, UPDATE_AT, b"\x00" * 8)) is False
    assert hal.prog_pos is None


def test_install_plain_rejects_overlap():
    hal = FakeHal()
    info = UpdateInfo(0, 16 + 8, 0, 8)
    assert install_plain(hal, Update(info, hal.FW_START + 0x80, b"\x00" * 8)) is False
    assert hal.prog_pos is None


def test_install_plain_reports_write_failure():
    hal = FakeHal()
    hal.fail_write = True
    info = UpdateInfo(0, 16 + 8, 0, 8)
    assert install_plain(hal, Update(info, UPDATE_AT, b"\x00" * 8)) is False


def test_process_update_installs_and_clears():
    hal = FakeHal()
    hal.place(hal.FW_START, make_firmware(seed=1))
    image = make_firmware(seed=9)
    hal.place(UPDATE_AT, make_update(image))
    hal.pending = UPDATE_AT
    assert boot(hal) == hal.FW_START
    assert hal.read_memory(hal.FW_START, len(image)) == image
    assert hal.cleared is True


def test_unknown_type_clears_when_old_firmware_valid():
    hal = FakeHal()
    old = make_firmware(seed=1)
    hal.place(hal.FW_START, old)
    hal.place(UPDATE_AT, make_update(make_firmware(seed=9), uptype=7))
    hal.pending = UPDATE_AT
    process_update(hal)
    assert hal.read_memory(hal.FW_START, len(old)) == old
    assert hal.cleared is True


def test_failed_install_keeps_update_pending():
    hal = FakeHal()
    hal.place(UPDATE_AT, make_update(make_firmware()))
    hal.pending = UPDATE_AT
    hal.fail_write = True
    process_update(hal)
    assert hal.cleared is False
    assert hal.pending == UPDATE_AT