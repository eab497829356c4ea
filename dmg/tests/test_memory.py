"""Tests for the memory unit's address routing."""

from __future__ import annotations

from typing import Tuple

import pytest

from dmg.cartridge import Cartridge
from dmg.memory import MemoryUnit, region_name
from dmg.peripherals import JoypadKey, PeripheralManager
from dmg.timer import Timer
from lr35902.interrupts import InterruptController, InterruptSource

from .roms import build_rom


def _memory(**rom_kwargs) -> Tuple[MemoryUnit, InterruptController]:
    interrupts = InterruptController()
    cartridge = Cartridge.from_rom(build_rom(**rom_kwargs))
    timer = Timer(interrupts)
    peripherals = PeripheralManager(interrupts)
    return MemoryUnit(cartridge, interrupts, timer, peripherals), interrupts


def test_work_ram_round_trip() -> None:
    memory, _ = _memory()

    memory.write(0xC123, 0x42)
    memory.write(0xDFFF, 0x99)

    assert memory.read(0xC123) == 0x42
    assert memory.read(0xDFFF) == 0x99


def test_echo_region_mirrors_work_ram_both_ways() -> None:
    memory, _ = _memory()

    memory.write(0xC010, 0x11)
    memory.write(0xFDFF, 0x22)

    assert memory.read(0xE010) == 0x11
    assert memory.read(0xDDFF) == 0x22


def test_unusable_region_reads_ff_and_ignores_writes() -> None:
    memory, _ = _memory()

    memory.write(0xFEA0, 0x00)
    memory.write(0xFEFF, 0x12)

    assert memory.read(0xFEA0) == 0xFF
    assert memory.read(0xFEFF) == 0xFF


def test_unassigned_io_reads_ff() -> None:
    memory, _ = _memory()

    memory.write(0xFF03, 0x12)

    assert memory.read(0xFF03) == 0xFF
    assert memory.read(0xFF7F) == 0xFF


def test_interrupt_registers_route_to_controller() -> None:
    memory, interrupts = _memory()

    memory.write(0xFFFF, 0x05)
    memory.write(0xFF0F, 0x04)

    assert interrupts.read_ie() == 0x05
    assert interrupts.highest_pending() is InterruptSource.TIMER
    assert memory.read(0xFF0F) == 0xE4
    assert memory.read(0xFFFF) == 0x05


def test_div_write_resets_divider_regardless_of_value() -> None:
    memory, _ = _memory()
    memory.timer.tick(0x300)
    assert memory.read(0xFF04) != 0

    memory.write(0xFF04, 0xAB)

    assert memory.read(0xFF04) == 0
    assert memory.timer.divider == 0


def test_timer_registers_route_through_io_window() -> None:
    memory, _ = _memory()

    memory.write(0xFF06, 0x80)
    memory.write(0xFF07, 0x05)

    assert memory.timer.tma == 0x80
    assert memory.read(0xFF07) == 0xFD


def test_high_ram_is_plain_storage() -> None:
    memory, _ = _memory()

    memory.write(0xFF80, 0x01)
    memory.write(0xFFFE, 0x02)

    assert memory.read(0xFF80) == 0x01
    assert memory.read(0xFFFE) == 0x02


def test_collaborator_windows_pass_bytes_through() -> None:
    memory, _ = _memory()

    memory.write(0x8000, 0x3C)
    memory.write(0xFE9F, 0x7E)
    memory.write(0xFF40, 0x91)
    memory.write(0xFF26, 0x80)

    peripherals = memory.peripherals
    assert peripherals.vram.data[0] == 0x3C
    assert peripherals.oam.data[0x9F] == 0x7E
    assert memory.read(0xFF40) == 0x91
    assert peripherals.audio.read(0xFF26) == 0x80


def test_cartridge_ram_window_honours_gate() -> None:
    memory, _ = _memory(cartridge_type=0x03, ram_code=0x02)

    memory.write(0xA000, 0x55)
    assert memory.read(0xA000) == 0xFF

    memory.write(0x0000, 0x0A)
    memory.write(0xA000, 0x55)
    assert memory.read(0xA000) == 0x55


def test_rom_bank_switch_through_bus() -> None:
    memory, _ = _memory(cartridge_type=0x01, rom_code=0x02)

    memory.write(0x2100, 0x05)

    assert memory.read(0x7FFF) == 5
    assert memory.read(0x3FFF) == 0


def test_serial_transfer_captures_byte_and_requests_interrupt() -> None:
    memory, interrupts = _memory()

    memory.write(0xFF01, ord("A"))
    memory.write(0xFF02, 0x81)

    assert memory.peripherals.serial.output_text() == "A"
    assert memory.read(0xFF01) == 0xFF
    assert not memory.read(0xFF02) & 0x80
    assert interrupts.read_if() & InterruptSource.SERIAL.bit


def test_joypad_matrix_is_active_low() -> None:
    memory, interrupts = _memory()
    memory.peripherals.joypad.press(JoypadKey.START)

    memory.write(0xFF00, 0x10)  # select buttons
    assert memory.read(0xFF00) & 0x0F == 0x07
    memory.write(0xFF00, 0x20)  # select directions
    assert memory.read(0xFF00) & 0x0F == 0x0F
    assert interrupts.request_counts["JOYPAD"] == 1


def test_words_are_little_endian() -> None:
    memory, _ = _memory()

    memory.write_word(0xC000, 0xBEEF)

    assert memory.read(0xC000) == 0xEF
    assert memory.read(0xC001) == 0xBE
    assert memory.read_word(0xC000) == 0xBEEF


def test_access_log_and_peek() -> None:
    memory, _ = _memory()
    memory.enable_access_log(limit=2)

    memory.write(0xC000, 1)
    memory.write(0xC001, 2)
    memory.write(0xFF80, 3)
    memory.read(0xC000)
    reads = memory.memory_read_count
    memory.peek(0xC001)

    writes = memory.write_log()
    assert [entry.address for entry in writes] == [0xC001, 0xFF80]
    assert writes[-1].region == "hram"
    assert memory.read_log()[0].value == 1
    assert memory.memory_read_count == reads


def test_reset_clears_ram() -> None:
    memory, _ = _memory()
    memory.write(0xC000, 0x12)
    memory.write(0xFF90, 0x34)

    memory.reset()

    assert memory.read(0xC000) == 0
    assert memory.read(0xFF90) == 0


@pytest.mark.parametrize(
    "address,name",
    [
        (0x0000, "rom"),
        (0x8000, "vram"),
        (0xA000, "cart_ram"),
        (0xC000, "wram"),
        (0xE000, "echo"),
        (0xFE00, "oam"),
        (0xFEA0, "unusable"),
        (0xFF00, "io"),
        (0xFF80, "hram"),
        (0xFFFF, "ie"),
    ],
)
def test_region_names(address: int, name: str) -> None:
    assert region_name(address) == name


def test_io_snapshot_covers_whole_window() -> None:
    memory, _ = _memory()
    memory.write(0xFF42, 0x10)

    snapshot = memory.io_snapshot()

    assert len(snapshot) == 0x80
    assert snapshot[0x42] == 0x10
    assert snapshot[0x0F] == memory.interrupts.read_if()
