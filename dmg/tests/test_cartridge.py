"""Tests for header parsing and bank switching."""

from __future__ import annotations

from pathlib import Path

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from dmg.cartridge import (
    Cartridge,
    CartridgeError,
    CartridgeLoadMismatch,
    MapperKind,
    UnsupportedCartridge,
    load_cartridge,
)
from dmg.cartridge.header import CartridgeHeader

from .roms import build_rom

SWITCHABLE_TAG = 0x7FFF
FIXED_TAG = 0x3FFF

_PROP_SETTINGS = settings(
    max_examples=100,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)


def _cart(**kwargs) -> Cartridge:
    return Cartridge.from_rom(build_rom(**kwargs))


def test_header_fields_are_parsed() -> None:
    header = CartridgeHeader.parse(
        build_rom(cartridge_type=0x03, rom_code=0x01, ram_code=0x03)
    )

    assert header.title == "TESTROM"
    assert header.mapper is MapperKind.MBC1
    assert header.rom_banks == 4
    assert header.ram_size == 0x8000
    assert header.ram_banks == 4
    assert header.battery
    assert header.header_checksum_valid


def test_rom_only_maps_bank_one_high() -> None:
    cart = _cart()

    assert cart.kind is MapperKind.ROM_ONLY
    assert cart.read(FIXED_TAG) == 0
    assert cart.read(SWITCHABLE_TAG) == 1
    cart.write(0x2000, 0x05)
    assert cart.read(SWITCHABLE_TAG) == 1


def test_rom_is_never_written() -> None:
    cart = _cart(cartridge_type=0x01, rom_code=0x02)
    before = cart.rom

    for address in (0x0000, 0x1FFF, 0x3FFF, 0x5000, 0x7FFF):
        cart.write(address, 0x0A)

    assert cart.rom == before


def test_mbc1_switch_is_visible_immediately() -> None:
    cart = _cart(cartridge_type=0x01, rom_code=0x02)

    cart.write(0x2000, 0x03)
    assert cart.read(SWITCHABLE_TAG) == 3
    cart.write(0x2000, 0x06)
    assert cart.read(SWITCHABLE_TAG) == 6


def test_mbc1_bank_zero_selects_bank_one() -> None:
    cart = _cart(cartridge_type=0x01, rom_code=0x02)

    cart.write(0x2000, 0x00)

    assert cart.rom_bank == 1
    assert cart.read(SWITCHABLE_TAG) == 1


def test_out_of_range_bank_wraps_to_modulo() -> None:
    cart = _cart(cartridge_type=0x01, rom_code=0x01)  # four banks

    cart.write(0x2000, 0x05)
    wrapped = cart.read(SWITCHABLE_TAG)
    cart.write(0x2000, 0x01)

    assert wrapped == cart.read(SWITCHABLE_TAG) == 1


@given(index=st.integers(min_value=0, max_value=0x1F))
@_PROP_SETTINGS
def test_mbc1_selection_matches_modulo(index: int) -> None:
    cart = _cart(cartridge_type=0x01, rom_code=0x01)

    cart.write(0x2000, index)

    assert cart.read(SWITCHABLE_TAG) == (index or 1) % 4


@given(index=st.integers(min_value=0, max_value=0x1FF))
@_PROP_SETTINGS
def test_mbc5_nine_bit_selection_wraps(index: int) -> None:
    cart = _cart(cartridge_type=0x19, rom_code=0x02)  # eight banks

    cart.write(0x2000, index & 0xFF)
    cart.write(0x3000, index >> 8)

    assert cart.read(SWITCHABLE_TAG) == index % 8


def test_disabled_ram_drops_writes_and_reads_open_bus() -> None:
    cart = _cart(cartridge_type=0x03, ram_code=0x02)
    before = cart.external_ram_bytes()

    cart.write(0xA000, 0x55)

    assert cart.external_ram_bytes() == before
    assert cart.read(0xA000) == 0xFF


def test_ram_gate_opens_and_closes() -> None:
    cart = _cart(cartridge_type=0x03, ram_code=0x02)

    cart.write(0x0000, 0x0A)
    cart.write(0xA123, 0x55)
    assert cart.read(0xA123) == 0x55

    cart.write(0x0000, 0x00)
    assert cart.read(0xA123) == 0xFF
    cart.write(0xA123, 0x66)
    assert cart.external_ram_bytes()[0x123] == 0x55


def test_mbc1_ram_banking_needs_mode_one() -> None:
    cart = _cart(cartridge_type=0x03, ram_code=0x03)
    cart.write(0x0000, 0x0A)
    cart.write(0x4000, 0x02)

    cart.write(0xA000, 0x11)
    assert cart.external_ram_bytes()[0] == 0x11

    cart.write(0x6000, 0x01)
    cart.write(0xA000, 0x22)
    assert cart.ram_bank == 2
    assert cart.external_ram_bytes()[2 * 0x2000] == 0x22


def test_mbc2_uses_address_bit_eight_and_nibble_ram() -> None:
    cart = _cart(cartridge_type=0x06, rom_code=0x01)

    cart.write(0x0000, 0x0A)
    cart.write(0x0100, 0x03)
    cart.write(0xA000, 0xAB)

    assert cart.read(SWITCHABLE_TAG) == 3
    assert cart.read(0xA000) == 0xFB
    # 512 cells repeat across the window
    assert cart.read(0xA200) == 0xFB


def test_mbc3_rom_bank_wraps_and_rtc_select_reads_open_bus() -> None:
    cart = _cart(cartridge_type=0x13, rom_code=0x03, ram_code=0x03)
    cart.write(0x0000, 0x0A)

    cart.write(0x2000, 0x11)
    assert cart.read(SWITCHABLE_TAG) == 0x11 % 16

    cart.write(0x4000, 0x01)
    cart.write(0xA000, 0x42)
    assert cart.external_ram_bytes()[0x2000] == 0x42

    cart.write(0x4000, 0x08)
    assert cart.read(0xA000) == 0xFF


def test_size_mismatch_is_a_load_failure() -> None:
    rom = build_rom(cartridge_type=0x01, rom_code=0x01)

    with pytest.raises(CartridgeLoadMismatch):
        Cartridge.from_rom(rom[: len(rom) // 2])


def test_truncated_header_is_a_load_failure() -> None:
    with pytest.raises(CartridgeLoadMismatch):
        Cartridge.from_rom(bytes(0x100))


@pytest.mark.parametrize("offset,value", [(0x0148, 0x20), (0x0149, 0x07)])
def test_unknown_size_codes_are_load_failures(offset: int, value: int) -> None:
    rom = bytearray(build_rom())
    rom[offset] = value

    with pytest.raises(CartridgeLoadMismatch):
        Cartridge.from_rom(bytes(rom))


def test_unknown_cartridge_type_is_rejected() -> None:
    with pytest.raises(UnsupportedCartridge) as excinfo:
        Cartridge.from_rom(build_rom(cartridge_type=0xFC))

    assert isinstance(excinfo.value, CartridgeError)
    assert "0xFC" in str(excinfo.value)


def test_restore_external_ram_keeps_bank_selection() -> None:
    cart = _cart(cartridge_type=0x03, rom_code=0x02, ram_code=0x03)
    cart.write(0x0000, 0x0A)
    cart.write(0x2000, 0x05)
    cart.write(0x4000, 0x01)
    cart.write(0x6000, 0x01)
    banks = cart.bank_state()
    payload = bytes(range(256)) * (0x8000 // 256)

    cart.restore_external_ram(payload)

    assert cart.external_ram_bytes() == payload
    assert cart.bank_state() == banks
    assert cart.read(0xA000) == payload[0x2000]


def test_restore_external_ram_rejects_wrong_size() -> None:
    cart = _cart(cartridge_type=0x03, ram_code=0x02)

    with pytest.raises(ValueError):
        cart.restore_external_ram(b"\x00" * 16)


def test_reset_restores_power_on_banks() -> None:
    cart = _cart(cartridge_type=0x03, rom_code=0x02, ram_code=0x02)
    cart.write(0x0000, 0x0A)
    cart.write(0x2000, 0x04)

    cart.reset()

    assert not cart.ram_enabled
    assert cart.rom_bank == 1


def test_load_cartridge_reads_file(tmp_path: Path) -> None:
    path = tmp_path / "game.gb"
    path.write_bytes(build_rom(cartridge_type=0x01, rom_code=0x01))

    cart = load_cartridge(path)

    assert cart.kind is MapperKind.MBC1
    assert cart.rom_bank_count == 4
    assert cart.identity == "TESTROM-0000"
