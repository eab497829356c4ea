from __future__ import annotations

from lr35902.constants import Flag
from lr35902.registers import Registers


def test_power_on_values_match_boot_rom_handoff() -> None:
    regs = Registers()
    assert regs.af == 0x01B0
    assert regs.bc == 0x0013
    assert regs.de == 0x00D8
    assert regs.hl == 0x014D
    assert regs.sp == 0xFFFE
    assert regs.pc == 0x0100


def test_flag_register_low_nibble_is_always_zero() -> None:
    regs = Registers()
    regs.f = 0xFF
    assert regs.f == 0xF0

    regs.af = 0x12FF
    assert regs.a == 0x12
    assert regs.f == 0xF0
    assert regs.af == 0x12F0


def test_pairs_split_into_high_and_low_bytes() -> None:
    regs = Registers()
    regs.bc = 0xBEEF
    regs.de = 0x1234
    regs.hl = 0x10000 + 0x5678

    assert (regs.b, regs.c) == (0xBE, 0xEF)
    assert (regs.d, regs.e) == (0x12, 0x34)
    assert (regs.h, regs.l) == (0x56, 0x78)


def test_set_flags_leaves_unspecified_flags_untouched() -> None:
    regs = Registers()
    regs.f = 0
    regs.set_flags(z=True, c=True)
    assert regs.f == Flag.Z | Flag.C

    regs.set_flags(c=False, h=True)
    assert regs.flag(Flag.Z)
    assert regs.flag(Flag.H)
    assert not regs.flag(Flag.C)
    assert not regs.flag(Flag.N)


def test_set_flag_toggles_single_bit() -> None:
    regs = Registers()
    regs.f = 0
    regs.set_flag(Flag.N, True)
    assert regs.f == 0x40
    regs.set_flag(Flag.N, False)
    assert regs.f == 0


def test_to_dict_and_flags_dict() -> None:
    regs = Registers()
    snapshot = regs.to_dict()
    assert snapshot["a"] == 0x01
    assert snapshot["f"] == 0xB0
    assert regs.flags_dict() == {"Z": 1, "N": 0, "H": 1, "C": 1}
