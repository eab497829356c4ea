"""Cartridge storage and bank switching.

The mapper is chosen once from the header. All bank arithmetic wraps modulo
the number of banks physically present, so software may select any index.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

from .errors import CartridgeLoadMismatch
from .header import (
    RAM_BANK_SIZE,
    ROM_BANK_SIZE,
    CartridgeHeader,
    MapperKind,
)

logger = logging.getLogger(__name__)

# Value driven onto the bus when no storage answers.
OPEN_BUS = 0xFF

CART_RAM_START = 0xA000
CART_RAM_END = 0xBFFF


class Cartridge:
    """ROM/RAM storage plus the bank registers of one mapper variant."""

    def __init__(self, rom: bytes, header: CartridgeHeader) -> None:
        if len(rom) != header.rom_size:
            raise CartridgeLoadMismatch(
                f"ROM image is {len(rom)} bytes but header declares "
                f"{header.rom_banks} banks ({header.rom_size} bytes)"
            )
        self.header = header
        self.kind = header.mapper
        self._rom = bytes(rom)
        self._ram = bytearray(header.ram_size)
        self.rom_bank_count = header.rom_banks
        self.ram_bank_count = max(1, header.ram_banks)
        self.reset()
        logger.info(
            "loaded cartridge %r: %s, %d ROM banks, %d bytes RAM%s",
            header.title,
            self.kind.value,
            header.rom_banks,
            header.ram_size,
            " (battery)" if header.battery else "",
        )

    @classmethod
    def from_rom(cls, rom: bytes) -> "Cartridge":
        return cls(rom, CartridgeHeader.parse(rom))

    def reset(self) -> None:
        """Return bank registers to their power-on state; RAM is kept."""

        # ROM-only boards without a RAM gate always expose their RAM.
        self.ram_enabled = self.kind is MapperKind.ROM_ONLY
        self.rom_bank_register = 1
        self.ram_bank_register = 0
        self.banking_mode = 0

    # ------------------------------------------------------------------ #
    # Bank arithmetic
    # ------------------------------------------------------------------ #
    @property
    def rom_bank(self) -> int:
        """Bank currently mapped into 0x4000-0x7FFF."""

        match self.kind:
            case MapperKind.ROM_ONLY:
                bank = 1
            case MapperKind.MBC1:
                bank = (self.ram_bank_register << 5) | self.rom_bank_register
            case MapperKind.MBC2 | MapperKind.MBC3 | MapperKind.MBC5:
                bank = self.rom_bank_register
        return bank % self.rom_bank_count

    @property
    def rom_bank0(self) -> int:
        """Bank currently mapped into 0x0000-0x3FFF."""

        if self.kind is MapperKind.MBC1 and self.banking_mode:
            return (self.ram_bank_register << 5) % self.rom_bank_count
        return 0

    @property
    def ram_bank(self) -> int:
        match self.kind:
            case MapperKind.MBC1:
                bank = self.ram_bank_register if self.banking_mode else 0
            case MapperKind.MBC3 | MapperKind.MBC5:
                bank = self.ram_bank_register
            case MapperKind.ROM_ONLY | MapperKind.MBC2:
                bank = 0
        return bank % self.ram_bank_count

    def _ram_offset(self, address: int) -> Optional[int]:
        if not self._ram or not self.ram_enabled:
            return None
        if self.kind is MapperKind.MBC3 and self.ram_bank_register > 0x03:
            # RTC register selected; the clock itself is not modelled.
            return None
        offset = address - CART_RAM_START
        if self.kind is MapperKind.MBC2:
            return offset % len(self._ram)
        return (self.ram_bank * RAM_BANK_SIZE + offset) % len(self._ram)

    # ------------------------------------------------------------------ #
    # Bus interface
    # ------------------------------------------------------------------ #
    def read(self, address: int) -> int:
        if address < 0x4000:
            offset = self.rom_bank0 * ROM_BANK_SIZE + address
            return self._rom[offset % len(self._rom)]
        if address < 0x8000:
            offset = self.rom_bank * ROM_BANK_SIZE + (address - 0x4000)
            return self._rom[offset % len(self._rom)]
        if CART_RAM_START <= address <= CART_RAM_END:
            offset = self._ram_offset(address)
            if offset is None:
                return OPEN_BUS
            if self.kind is MapperKind.MBC2:
                return 0xF0 | (self._ram[offset] & 0x0F)
            return self._ram[offset]
        return OPEN_BUS

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address < 0x8000:
            self._write_control(address, value)
            return
        if CART_RAM_START <= address <= CART_RAM_END:
            offset = self._ram_offset(address)
            if offset is None:
                return
            if self.kind is MapperKind.MBC2:
                value &= 0x0F
            self._ram[offset] = value

    def _write_control(self, address: int, value: int) -> None:
        match self.kind:
            case MapperKind.ROM_ONLY:
                return
            case MapperKind.MBC1:
                if address < 0x2000:
                    self._set_ram_enabled(value)
                elif address < 0x4000:
                    self.rom_bank_register = (value & 0x1F) or 1
                elif address < 0x6000:
                    self.ram_bank_register = value & 0x03
                else:
                    self.banking_mode = value & 0x01
            case MapperKind.MBC2:
                if address >= 0x4000:
                    return
                # Address bit 8 selects between the RAM gate and ROM bank.
                if address & 0x0100:
                    self.rom_bank_register = (value & 0x0F) or 1
                else:
                    self._set_ram_enabled(value)
            case MapperKind.MBC3:
                if address < 0x2000:
                    self._set_ram_enabled(value)
                elif address < 0x4000:
                    self.rom_bank_register = (value & 0x7F) or 1
                elif address < 0x6000:
                    self.ram_bank_register = value & 0x0F
                # 0x6000-0x7FFF latches the RTC, which is not modelled.
            case MapperKind.MBC5:
                if address < 0x2000:
                    self._set_ram_enabled(value)
                elif address < 0x3000:
                    self.rom_bank_register = (self.rom_bank_register & 0x100) | value
                elif address < 0x4000:
                    self.rom_bank_register = (self.rom_bank_register & 0xFF) | (
                        (value & 0x01) << 8
                    )
                elif address < 0x6000:
                    self.ram_bank_register = value & 0x0F
        logger.debug(
            "%s control write 0x%04X=0x%02X -> rom bank %d, ram bank %d, ram %s",
            self.kind.value,
            address,
            value,
            self.rom_bank,
            self.ram_bank,
            "on" if self.ram_enabled else "off",
        )

    def _set_ram_enabled(self, value: int) -> None:
        self.ram_enabled = (value & 0x0F) == 0x0A

    # ------------------------------------------------------------------ #
    # Persistence boundary
    # ------------------------------------------------------------------ #
    @property
    def identity(self) -> str:
        """Key a host can use to file battery RAM for this cartridge."""

        return f"{self.header.title or 'UNTITLED'}-{self.header.global_checksum:04X}"

    @property
    def battery(self) -> bool:
        return self.header.battery

    @property
    def rom(self) -> bytes:
        return self._rom

    def external_ram_bytes(self) -> bytes:
        return bytes(self._ram)

    def restore_external_ram(self, data: bytes) -> None:
        """Replace external RAM verbatim; bank selection is left untouched."""

        if len(data) != len(self._ram):
            raise ValueError(
                f"external RAM size mismatch "
                f"(expected {len(self._ram)}, got {len(data)})"
            )
        self._ram[:] = data

    def bank_state(self) -> Dict[str, int]:
        return {
            "ram_enabled": int(self.ram_enabled),
            "rom_bank_register": self.rom_bank_register,
            "ram_bank_register": self.ram_bank_register,
            "banking_mode": self.banking_mode,
        }

    def restore_bank_state(self, state: Dict[str, int]) -> None:
        self.ram_enabled = bool(state.get("ram_enabled", self.ram_enabled))
        self.rom_bank_register = int(state.get("rom_bank_register", 1))
        self.ram_bank_register = int(state.get("ram_bank_register", 0))
        self.banking_mode = int(state.get("banking_mode", 0))


def load_cartridge(path: str | Path) -> Cartridge:
    """Read a ROM image from disk and construct its cartridge."""

    source = Path(path)
    rom = source.read_bytes()
    logger.info("reading ROM image %s (%d bytes)", source, len(rom))
    return Cartridge.from_rom(rom)


__all__ = [
    "CART_RAM_END",
    "CART_RAM_START",
    "Cartridge",
    "OPEN_BUS",
    "load_cartridge",
]
