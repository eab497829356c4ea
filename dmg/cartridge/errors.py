"""Cartridge load failures."""


class CartridgeError(Exception):
    """Base class for problems found while constructing a cartridge."""


class CartridgeLoadMismatch(CartridgeError):
    """ROM image size disagrees with the bank count its header declares."""


class UnsupportedCartridge(CartridgeError):
    """Header names a cartridge type with no supported mapper."""


__all__ = ["CartridgeError", "CartridgeLoadMismatch", "UnsupportedCartridge"]
