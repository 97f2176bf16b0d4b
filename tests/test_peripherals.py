import dataclasses

import pytest

from moonbow.peripherals import (
    DirectMapping,
    MmioError,
    MmioMapping,
    Peripheral,
    Permissions,
)


class Plain(Peripheral):
    name = "PLAIN"

    def __init__(self):
        self.buffer = bytearray(16)

    def mappings(self):
        return [
            DirectMapping(0x2000_0000, self.buffer, Permissions(r=True, w=True)),
            MmioMapping(0x4000_0000, 1024),
        ]


def test_permissions_fields():
    perms = Permissions(r=True, w=False, x=True)
    assert (perms.r, perms.w, perms.x) == (True, False, True)
    assert perms == Permissions(True, False, True)


def test_permissions_default_to_none():
    assert Permissions() == Permissions(False, False, False)


def test_mmio_mapping_is_frozen():
    mapping = MmioMapping(0x4000_0000, 1024)
    with pytest.raises(dataclasses.FrozenInstanceError):
        mapping.base = 0
    assert mapping == MmioMapping(0x4000_0000, 1024)


def test_direct_mapping_shares_buffer():
    buffer = bytearray(16)
    direct = DirectMapping(0x2000_0000, buffer, Permissions(r=True, w=True))
    assert direct.size == len(buffer)
    assert direct.end == direct.base + len(buffer)
    direct.data[3] = 0xAA
    assert buffer[3] == 0xAA


def test_default_mmio_read_raises():
    with pytest.raises(MmioError, match="PLAIN"):
        Peripheral.mmio_read(Plain(), 0x4000_0000, 0, 4)


def test_default_mmio_write_raises():
    with pytest.raises(MmioError, match="PLAIN"):
        Peripheral.mmio_write(Plain(), 0x4000_0000, 0, 4, 1)


def test_mappings_is_abstract():
    with pytest.raises(TypeError):
        Peripheral()