"""Divider and programmable timer (DIV/TIMA/TMA/TAC)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from lr35902.interrupts import InterruptController, InterruptSource

DIV_ADDRESS = 0xFF04
TIMA_ADDRESS = 0xFF05
TMA_ADDRESS = 0xFF06
TAC_ADDRESS = 0xFF07

TAC_ENABLE = 0x04
TAC_SELECT_MASK = 0x03
# Upper five bits of TAC are not backed by hardware and read as 1.
TAC_UNUSED_BITS = 0xF8

# TIMA input period in cycles, indexed by TAC bits 0-1.
TIMA_PERIODS: Tuple[int, ...] = (1024, 16, 64, 256)

# Internal divider value at power-on; DIV (its high byte) reads 0x18.
DIVIDER_POWER_ON = 0x1800


@dataclass
class Timer:
    """Free-running divider plus the gated TIMA counter.

    ``divider`` is the 16-bit internal counter; DIV exposes its upper byte so
    it increments every 256 cycles regardless of TAC.
    """

    interrupts: InterruptController
    divider: int = DIVIDER_POWER_ON
    tima: int = 0
    tma: int = 0
    tac: int = TAC_UNUSED_BITS
    overflow_count: int = 0
    _tima_cycles: int = field(default=0, init=False, repr=False)

    def reset(self) -> None:
        """Reset timer registers to their power-on values."""

        self.divider = DIVIDER_POWER_ON
        self.tima = 0
        self.tma = 0
        self.tac = TAC_UNUSED_BITS
        self.overflow_count = 0
        self._tima_cycles = 0

    @property
    def enabled(self) -> bool:
        return bool(self.tac & TAC_ENABLE)

    @property
    def period(self) -> int:
        return TIMA_PERIODS[self.tac & TAC_SELECT_MASK]

    @property
    def div(self) -> int:
        return (self.divider >> 8) & 0xFF

    def tick(self, cycles: int) -> int:
        """Advance by ``cycles`` and return how many times TIMA overflowed.

        Each overflow reloads TIMA from TMA and requests the timer
        interrupt. Large advances may overflow more than once.
        """

        self.divider = (self.divider + cycles) & 0xFFFF
        if not self.enabled:
            return 0

        self._tima_cycles += cycles
        period = self.period
        overflows = 0
        while self._tima_cycles >= period:
            self._tima_cycles -= period
            if self.tima == 0xFF:
                self.tima = self.tma
                overflows += 1
                self.interrupts.request(InterruptSource.TIMER)
            else:
                self.tima += 1

        self.overflow_count += overflows
        return overflows

    def reset_divider(self) -> None:
        """Handle a CPU write to DIV: both counters restart from zero."""

        self.divider = 0
        self._tima_cycles = 0

    # ------------------------------------------------------------------ #
    # Register interface
    # ------------------------------------------------------------------ #
    def read(self, address: int) -> int:
        if address == DIV_ADDRESS:
            return self.div
        if address == TIMA_ADDRESS:
            return self.tima
        if address == TMA_ADDRESS:
            return self.tma
        if address == TAC_ADDRESS:
            return self.tac | TAC_UNUSED_BITS
        raise ValueError(f"Address 0x{address:04X} is not a timer register")

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == DIV_ADDRESS:
            self.reset_divider()
        elif address == TIMA_ADDRESS:
            self.tima = value
        elif address == TMA_ADDRESS:
            self.tma = value
        elif address == TAC_ADDRESS:
            if (value ^ self.tac) & TAC_SELECT_MASK:
                self._tima_cycles = 0
            self.tac = value | TAC_UNUSED_BITS
        else:
            raise ValueError(f"Address 0x{address:04X} is not a timer register")

    def snapshot(self) -> Dict[str, int]:
        return {
            "divider": self.divider,
            "tima": self.tima,
            "tma": self.tma,
            "tac": self.tac,
            "tima_cycles": self._tima_cycles,
            "overflow_count": self.overflow_count,
        }

    def restore(self, state: Dict[str, int]) -> None:
        self.divider = int(state.get("divider", DIVIDER_POWER_ON)) & 0xFFFF
        self.tima = int(state.get("tima", 0)) & 0xFF
        self.tma = int(state.get("tma", 0)) & 0xFF
        self.tac = (int(state.get("tac", 0)) & 0xFF) | TAC_UNUSED_BITS
        self._tima_cycles = int(state.get("tima_cycles", 0))
        self.overflow_count = int(state.get("overflow_count", 0))


__all__ = [
    "DIV_ADDRESS",
    "TAC_ADDRESS",
    "TIMA_ADDRESS",
    "TIMA_PERIODS",
    "TMA_ADDRESS",
    "Timer",
]
