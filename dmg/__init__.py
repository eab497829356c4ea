"""DMG console core: memory map, cartridge banking, timer and orchestration."""

from .cartridge import (
    Cartridge,
    CartridgeError,
    CartridgeLoadMismatch,
    UnsupportedCartridge,
    load_cartridge,
)
from .clock import CycleClock
from .config import MachineConfig
from .console import Console, MachineHalted
from .memory import MemoryUnit
from .timer import Timer

__all__ = [
    "Cartridge",
    "CartridgeError",
    "CartridgeLoadMismatch",
    "Console",
    "CycleClock",
    "MachineConfig",
    "MachineHalted",
    "MemoryUnit",
    "Timer",
    "UnsupportedCartridge",
    "load_cartridge",
]
