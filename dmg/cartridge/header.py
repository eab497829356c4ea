"""Cartridge header parsing and mapper selection."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from .errors import CartridgeLoadMismatch, UnsupportedCartridge

TITLE_START = 0x0134
TITLE_END = 0x0143
CARTRIDGE_TYPE_ADDRESS = 0x0147
ROM_SIZE_ADDRESS = 0x0148
RAM_SIZE_ADDRESS = 0x0149
HEADER_CHECKSUM_ADDRESS = 0x014D
GLOBAL_CHECKSUM_ADDRESS = 0x014E
HEADER_END = 0x0150

ROM_BANK_SIZE = 0x4000
RAM_BANK_SIZE = 0x2000

# MBC2 carries 512 four-bit cells on the controller itself.
MBC2_RAM_SIZE = 0x200

# RAM size code -> total external RAM bytes.
RAM_SIZES: Dict[int, int] = {
    0x00: 0,
    0x01: 0x800,
    0x02: 0x2000,
    0x03: 0x8000,
    0x04: 0x20000,
    0x05: 0x10000,
}


class MapperKind(Enum):
    """Closed set of supported bank-switching rule sets."""

    ROM_ONLY = "ROM ONLY"
    MBC1 = "MBC1"
    MBC2 = "MBC2"
    MBC3 = "MBC3"
    MBC5 = "MBC5"


# Cartridge type code -> (mapper, has external RAM, battery backed).
CARTRIDGE_TYPES: Dict[int, Tuple[MapperKind, bool, bool]] = {
    0x00: (MapperKind.ROM_ONLY, False, False),
    0x01: (MapperKind.MBC1, False, False),
    0x02: (MapperKind.MBC1, True, False),
    0x03: (MapperKind.MBC1, True, True),
    0x05: (MapperKind.MBC2, True, False),
    0x06: (MapperKind.MBC2, True, True),
    0x08: (MapperKind.ROM_ONLY, True, False),
    0x09: (MapperKind.ROM_ONLY, True, True),
    # 0x0F/0x10 carry a real-time clock that is not emulated.
    0x0F: (MapperKind.MBC3, False, True),
    0x10: (MapperKind.MBC3, True, True),
    0x11: (MapperKind.MBC3, False, False),
    0x12: (MapperKind.MBC3, True, False),
    0x13: (MapperKind.MBC3, True, True),
    0x19: (MapperKind.MBC5, False, False),
    0x1A: (MapperKind.MBC5, True, False),
    0x1B: (MapperKind.MBC5, True, True),
    0x1C: (MapperKind.MBC5, False, False),
    0x1D: (MapperKind.MBC5, True, False),
    0x1E: (MapperKind.MBC5, True, True),
}


@dataclass(frozen=True)
class CartridgeHeader:
    """Fields derived from the 0x0100-0x014F header block."""

    title: str
    cartridge_type: int
    mapper: MapperKind
    rom_banks: int
    ram_size: int
    battery: bool = False
    header_checksum: int = 0
    global_checksum: int = 0
    header_checksum_valid: bool = True

    @property
    def rom_size(self) -> int:
        return self.rom_banks * ROM_BANK_SIZE

    @property
    def ram_banks(self) -> int:
        """Number of 8 KiB RAM banks; a 2 KiB chip still counts as one."""

        if self.ram_size == 0:
            return 0
        return max(1, self.ram_size // RAM_BANK_SIZE)

    @classmethod
    def parse(cls, rom: bytes) -> "CartridgeHeader":
        if len(rom) < HEADER_END:
            raise CartridgeLoadMismatch(
                f"ROM image of {len(rom)} bytes is too small to hold a header"
            )

        type_code = rom[CARTRIDGE_TYPE_ADDRESS]
        try:
            mapper, has_ram, battery = CARTRIDGE_TYPES[type_code]
        except KeyError:
            raise UnsupportedCartridge(
                f"Unsupported cartridge type 0x{type_code:02X}"
            ) from None

        rom_code = rom[ROM_SIZE_ADDRESS]
        if rom_code > 0x08:
            raise CartridgeLoadMismatch(f"Unknown ROM size code 0x{rom_code:02X}")
        rom_banks = 2 << rom_code

        ram_code = rom[RAM_SIZE_ADDRESS]
        if ram_code not in RAM_SIZES:
            raise CartridgeLoadMismatch(f"Unknown RAM size code 0x{ram_code:02X}")
        if mapper is MapperKind.MBC2:
            ram_size = MBC2_RAM_SIZE
        elif has_ram:
            ram_size = RAM_SIZES[ram_code]
        else:
            ram_size = 0

        header_checksum = rom[HEADER_CHECKSUM_ADDRESS]
        return cls(
            title=_decode_title(rom[TITLE_START : TITLE_END + 1]),
            cartridge_type=type_code,
            mapper=mapper,
            rom_banks=rom_banks,
            ram_size=ram_size,
            battery=battery,
            header_checksum=header_checksum,
            global_checksum=int.from_bytes(
                rom[GLOBAL_CHECKSUM_ADDRESS : GLOBAL_CHECKSUM_ADDRESS + 2], "big"
            ),
            header_checksum_valid=compute_header_checksum(rom) == header_checksum,
        )


def compute_header_checksum(rom: bytes) -> int:
    checksum = 0
    for byte in rom[TITLE_START:HEADER_CHECKSUM_ADDRESS]:
        checksum = (checksum - byte - 1) & 0xFF
    return checksum


def _decode_title(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("ascii", errors="replace").strip()


__all__ = [
    "CARTRIDGE_TYPES",
    "CartridgeHeader",
    "MBC2_RAM_SIZE",
    "MapperKind",
    "RAM_BANK_SIZE",
    "RAM_SIZES",
    "ROM_BANK_SIZE",
    "compute_header_checksum",
]
