"""Address-space router for the 16-bit bus."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Literal, Optional, Protocol, Tuple

from lr35902.interrupts import IE_ADDRESS, IF_ADDRESS, InterruptController

from .cartridge import OPEN_BUS, Cartridge
from .peripherals import PeripheralManager
from .peripherals.joypad import P1_ADDRESS
from .peripherals.serial import SB_ADDRESS, SC_ADDRESS
from .timer import DIV_ADDRESS, TAC_ADDRESS, Timer

WRAM_START, WRAM_SIZE = 0xC000, 0x2000
ECHO_START, ECHO_END = 0xE000, 0xFDFF
UNUSABLE_START, UNUSABLE_END = 0xFEA0, 0xFEFF
IO_START, IO_END = 0xFF00, 0xFF7F
HRAM_START, HRAM_SIZE = 0xFF80, 0x7F

ACCESS_LOG_LIMIT = 256


class IORegister(Protocol):
    def read(self, address: int) -> int: ...

    def write(self, address: int, value: int) -> None: ...


@dataclass
class MemoryAccessLog:
    kind: Literal["read", "write"]
    address: int
    value: int
    region: str


def region_name(address: int) -> str:
    """Name the owner of ``address``; used for logs and traces."""

    address &= 0xFFFF
    if address < 0x8000:
        return "rom"
    if address < 0xA000:
        return "vram"
    if address < 0xC000:
        return "cart_ram"
    if address < ECHO_START:
        return "wram"
    if address <= ECHO_END:
        return "echo"
    if address < UNUSABLE_START:
        return "oam"
    if address <= UNUSABLE_END:
        return "unusable"
    if address <= IO_END:
        return "io"
    if address < IE_ADDRESS:
        return "hram"
    return "ie"


class MemoryUnit:
    """Routes every address to exactly one owner.

    Reads from addresses with no owner, or whose owner is gated off, return
    0xFF; writes to them are dropped. Neither direction ever fails.
    """

    def __init__(
        self,
        cartridge: Cartridge,
        interrupts: InterruptController,
        timer: Timer,
        peripherals: PeripheralManager,
        *,
        access_log_limit: int = 0,
    ) -> None:
        self.cartridge = cartridge
        self.interrupts = interrupts
        self.timer = timer
        self.peripherals = peripherals
        self.wram = bytearray(WRAM_SIZE)
        self.hram = bytearray(HRAM_SIZE)
        self.memory_read_count = 0
        self.memory_write_count = 0
        self._log_enabled = access_log_limit > 0
        limit = max(access_log_limit, 1)
        self._read_log: Deque[MemoryAccessLog] = deque(maxlen=limit)
        self._write_log: Deque[MemoryAccessLog] = deque(maxlen=limit)

    def reset(self) -> None:
        self.wram[:] = bytes(WRAM_SIZE)
        self.hram[:] = bytes(HRAM_SIZE)
        self.memory_read_count = 0
        self.memory_write_count = 0
        self.clear_logs()

    # ------------------------------------------------------------------ #
    # Access logging
    # ------------------------------------------------------------------ #
    def enable_access_log(self, limit: int = ACCESS_LOG_LIMIT) -> None:
        self._log_enabled = True
        self._read_log = deque(self._read_log, maxlen=limit)
        self._write_log = deque(self._write_log, maxlen=limit)

    def disable_access_log(self) -> None:
        self._log_enabled = False

    def read_log(self) -> Tuple[MemoryAccessLog, ...]:
        return tuple(self._read_log)

    def write_log(self) -> Tuple[MemoryAccessLog, ...]:
        return tuple(self._write_log)

    def clear_logs(self) -> None:
        self._read_log.clear()
        self._write_log.clear()

    # ------------------------------------------------------------------ #
    # Bus interface
    # ------------------------------------------------------------------ #
    def read(self, address: int) -> int:
        address &= 0xFFFF
        value = self._route_read(address) & 0xFF
        self.memory_read_count += 1
        if self._log_enabled:
            self._read_log.append(
                MemoryAccessLog("read", address, value, region_name(address))
            )
        return value

    def write(self, address: int, value: int) -> None:
        address &= 0xFFFF
        value &= 0xFF
        self.memory_write_count += 1
        if self._log_enabled:
            self._write_log.append(
                MemoryAccessLog("write", address, value, region_name(address))
            )
        self._route_write(address, value)

    def read_word(self, address: int) -> int:
        low = self.read(address)
        high = self.read((address + 1) & 0xFFFF)
        return (high << 8) | low

    def write_word(self, address: int, value: int) -> None:
        self.write(address, value & 0xFF)
        self.write((address + 1) & 0xFFFF, (value >> 8) & 0xFF)

    def peek(self, address: int) -> int:
        """Read without counting or logging the access."""

        return self._route_read(address & 0xFFFF) & 0xFF

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #
    def _route_read(self, address: int) -> int:
        if address < 0x8000:
            return self.cartridge.read(address)
        if address < 0xA000:
            return self.peripherals.vram.read(address)
        if address < 0xC000:
            return self.cartridge.read(address)
        if address < ECHO_START:
            return self.wram[address - WRAM_START]
        if address <= ECHO_END:
            return self.wram[address - ECHO_START]
        if address < UNUSABLE_START:
            return self.peripherals.oam.read(address)
        if address <= UNUSABLE_END:
            return OPEN_BUS
        if address <= IO_END:
            return self._read_io(address)
        if address < IE_ADDRESS:
            return self.hram[address - HRAM_START]
        return self.interrupts.read_ie()

    def _route_write(self, address: int, value: int) -> None:
        if address < 0x8000:
            self.cartridge.write(address, value)
        elif address < 0xA000:
            self.peripherals.vram.write(address, value)
        elif address < 0xC000:
            self.cartridge.write(address, value)
        elif address < ECHO_START:
            self.wram[address - WRAM_START] = value
        elif address <= ECHO_END:
            self.wram[address - ECHO_START] = value
        elif address < UNUSABLE_START:
            self.peripherals.oam.write(address, value)
        elif address <= UNUSABLE_END:
            return
        elif address <= IO_END:
            self._write_io(address, value)
        elif address < IE_ADDRESS:
            self.hram[address - HRAM_START] = value
        else:
            self.interrupts.write_ie(value)

    def _io_owner(self, address: int) -> Optional[IORegister]:
        peripherals = self.peripherals
        if address == P1_ADDRESS:
            return peripherals.joypad
        if address in (SB_ADDRESS, SC_ADDRESS):
            return peripherals.serial
        if DIV_ADDRESS <= address <= TAC_ADDRESS:
            return self.timer
        for bank in peripherals.io_banks():
            if bank.contains(address):
                return bank
        return None

    def _read_io(self, address: int) -> int:
        if address == IF_ADDRESS:
            return self.interrupts.read_if()
        owner = self._io_owner(address)
        if owner is None:
            return OPEN_BUS
        return owner.read(address)

    def _write_io(self, address: int, value: int) -> None:
        if address == IF_ADDRESS:
            self.interrupts.write_if(value)
            return
        owner = self._io_owner(address)
        if owner is None:
            return
        # Timer.write resets the divider for any value written to DIV.
        owner.write(address, value)

    # ------------------------------------------------------------------ #
    # Snapshot helpers
    # ------------------------------------------------------------------ #
    def io_snapshot(self) -> bytes:
        """Current values of the whole I/O window as the CPU would read them."""

        return bytes(self.peek(address) for address in range(IO_START, IO_END + 1))


__all__ = [
    "ECHO_END",
    "ECHO_START",
    "HRAM_START",
    "IO_END",
    "IO_START",
    "MemoryAccessLog",
    "MemoryUnit",
    "WRAM_START",
    "region_name",
]
