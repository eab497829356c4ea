"""Cartridge loading and bank switching."""

from .cartridge import (
    CART_RAM_END,
    CART_RAM_START,
    OPEN_BUS,
    Cartridge,
    load_cartridge,
)
from .errors import CartridgeError, CartridgeLoadMismatch, UnsupportedCartridge
from .header import CartridgeHeader, MapperKind

__all__ = [
    "CART_RAM_END",
    "CART_RAM_START",
    "Cartridge",
    "CartridgeError",
    "CartridgeHeader",
    "CartridgeLoadMismatch",
    "MapperKind",
    "OPEN_BUS",
    "UnsupportedCartridge",
    "load_cartridge",
]
