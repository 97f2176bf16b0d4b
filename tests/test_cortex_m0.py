import pytest

from moonbow.cortex_m0 import SCS
from moonbow.peripherals import MmioMapping
from moonbow.registers import RegisterError

BASE = 0xE000E000


def test_mapping():
    assert SCS().mappings() == [MmioMapping(BASE, 4096)]


def test_vtor_round_trip():
    scs = SCS()
    assert scs.mmio_read(BASE, 0xD08, 4) == 0
    scs.mmio_write(BASE, 0xD08, 4, 0x4000)
    assert scs.mmio_read(BASE, 0xD08, 4) == 0x4000
    assert scs.vtor == 0x4000


def test_reset_restores_vtor():
    scs = SCS()
    scs.vtor = 0x100
    scs.reset_registers()
    assert scs.vtor == 0


def test_unmapped_register():
    scs = SCS()
    with pytest.raises(RegisterError, match=r"SCS\+0xd0c"):
        scs.mmio_read(BASE, 0xD0C, 4)


def test_unaligned_write():
    with pytest.raises(RegisterError, match="Unaligned access"):
        SCS().mmio_write(BASE, 0xD08, 1, 0)