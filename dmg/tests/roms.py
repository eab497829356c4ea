"""ROM builders and console helpers shared by the DMG tests."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from dmg.cartridge import Cartridge
from dmg.cartridge.header import (
    CARTRIDGE_TYPE_ADDRESS,
    HEADER_CHECKSUM_ADDRESS,
    RAM_SIZE_ADDRESS,
    ROM_BANK_SIZE,
    ROM_SIZE_ADDRESS,
    TITLE_START,
    compute_header_checksum,
)
from dmg.config import MachineConfig, RuntimeConfig
from dmg.console import Console

ENTRY_POINT = 0x0100
PROGRAM_START = 0x0150
# NOP ; JP 0x0150
BOOT_STUB = (0x00, 0xC3, PROGRAM_START & 0xFF, PROGRAM_START >> 8)
BOOT_STEPS = 2
# Offset inside every ROM bank holding that bank's index.
BANK_TAG_OFFSET = 0x3FFF

QUIET_RUNTIME = RuntimeConfig(trace=False, trace_path="unused", memory_log=False)


def build_rom(
    program: Iterable[int] = (0x18, 0xFE),
    *,
    cartridge_type: int = 0x00,
    rom_code: int = 0x00,
    ram_code: int = 0x00,
    title: bytes = b"TESTROM",
    patches: Optional[Mapping[int, Iterable[int]]] = None,
) -> bytes:
    """Assemble a ROM image with a valid header.

    ``program`` lands at 0x0150 behind a boot stub at the entry point;
    ``patches`` places extra byte runs (e.g. interrupt handlers) at absolute
    ROM offsets. Every bank carries its own index at ``BANK_TAG_OFFSET``.
    """

    banks = 2 << rom_code
    rom = bytearray(banks * ROM_BANK_SIZE)
    for bank in range(banks):
        rom[bank * ROM_BANK_SIZE + BANK_TAG_OFFSET] = bank & 0xFF
    rom[ENTRY_POINT : ENTRY_POINT + len(BOOT_STUB)] = bytes(BOOT_STUB)
    rom[TITLE_START : TITLE_START + len(title)] = title
    rom[CARTRIDGE_TYPE_ADDRESS] = cartridge_type
    rom[ROM_SIZE_ADDRESS] = rom_code
    rom[RAM_SIZE_ADDRESS] = ram_code
    code = bytes(program)
    rom[PROGRAM_START : PROGRAM_START + len(code)] = code
    for offset, payload in (patches or {}).items():
        data = bytes(payload)
        rom[offset : offset + len(data)] = data
    rom[HEADER_CHECKSUM_ADDRESS] = compute_header_checksum(bytes(rom))
    return bytes(rom)


def make_console(
    program: Iterable[int] = (0x18, 0xFE),
    *,
    boot: bool = True,
    config: Optional[MachineConfig] = None,
    **rom_kwargs: Any,
) -> Console:
    """Build a console around ``build_rom`` and run it to ``PROGRAM_START``."""

    cartridge = Cartridge.from_rom(build_rom(program, **rom_kwargs))
    console = Console(cartridge, config=config, runtime=QUIET_RUNTIME)
    if boot:
        console.run(BOOT_STEPS)
    return console


def ld_a(value: int) -> list[int]:
    return [0x3E, value & 0xFF]


def ldh_a8(offset: int) -> list[int]:
    """LDH (0xFF00+offset),A"""
    return [0xE0, offset & 0xFF]


def ld_a16_a(address: int) -> list[int]:
    return [0xEA, address & 0xFF, (address >> 8) & 0xFF]


def handler_writing(marker: int, address: int) -> list[int]:
    """Interrupt routine: store ``marker`` at ``address`` then RETI."""

    return ld_a(marker) + ld_a16_a(address) + [0xD9]
