"""Machine-wide cycle clock."""

from __future__ import annotations

from dataclasses import dataclass

from lr35902.constants import CYCLES_PER_FRAME


@dataclass
class CycleClock:
    """Monotonic count of elapsed T-cycles since power-on.

    The clock is the only time source in the machine. Console resets keep
    counting so traces and snapshots stay ordered within a session.
    """

    cycles: int = 0

    def advance(self, cycles: int) -> None:
        if cycles < 0:
            raise ValueError(f"Cannot rewind the cycle clock by {cycles}")
        self.cycles += int(cycles)

    @property
    def machine_cycles(self) -> int:
        return self.cycles // 4

    @property
    def frame(self) -> int:
        return self.cycles // CYCLES_PER_FRAME

    def cycles_into_frame(self) -> int:
        return self.cycles % CYCLES_PER_FRAME


__all__ = ["CycleClock"]
