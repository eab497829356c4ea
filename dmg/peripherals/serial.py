"""Serial port (SB/SC) with an internal-clock transfer capture."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from lr35902.interrupts import InterruptController, InterruptSource

logger = logging.getLogger(__name__)

SB_ADDRESS = 0xFF01
SC_ADDRESS = 0xFF02

SC_TRANSFER_START = 0x80
SC_INTERNAL_CLOCK = 0x01
# Bits 1-6 of SC are unused on the DMG and read as 1.
SC_UNUSED_BITS = 0x7E


@dataclass
class SerialSnapshot:
    """Snapshot of serial port state suitable for deterministic tests."""

    sb: int
    sc: int
    output: bytes


class SerialPort:
    """SB/SC registers.

    With no link partner attached, a transfer started on the internal clock
    completes immediately: the outgoing byte is captured, SB shifts in 0xFF
    and a serial interrupt is requested. Test ROMs use this channel to print
    their results.
    """

    def __init__(
        self,
        interrupts: InterruptController,
        *,
        on_byte: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._interrupts = interrupts
        self._on_byte = on_byte
        self.sb = 0
        self.sc = 0
        self._output: List[int] = []

    def reset(self) -> None:
        self.sb = 0
        self.sc = 0
        self._output.clear()

    def read(self, address: int) -> int:
        if address == SB_ADDRESS:
            return self.sb
        if address == SC_ADDRESS:
            return self.sc | SC_UNUSED_BITS
        raise ValueError(f"Address 0x{address:04X} is not a serial register")

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == SB_ADDRESS:
            self.sb = value
        elif address == SC_ADDRESS:
            self.sc = value & (SC_TRANSFER_START | SC_INTERNAL_CLOCK)
            if value & SC_TRANSFER_START and value & SC_INTERNAL_CLOCK:
                self._complete_transfer()
        else:
            raise ValueError(f"Address 0x{address:04X} is not a serial register")

    def _complete_transfer(self) -> None:
        byte = self.sb
        self._output.append(byte)
        if self._on_byte is not None:
            self._on_byte(byte)
        logger.debug("serial out: 0x%02X", byte)
        self.sb = 0xFF
        self.sc &= ~SC_TRANSFER_START & 0xFF
        self._interrupts.request(InterruptSource.SERIAL)

    def output_bytes(self) -> bytes:
        return bytes(self._output)

    def output_text(self) -> str:
        return self.output_bytes().decode("latin-1")

    def snapshot(self) -> SerialSnapshot:
        return SerialSnapshot(sb=self.sb, sc=self.sc, output=self.output_bytes())

    def restore(self, snapshot: SerialSnapshot) -> None:
        self.sb = snapshot.sb & 0xFF
        self.sc = snapshot.sc & (SC_TRANSFER_START | SC_INTERNAL_CLOCK)
        self._output = list(snapshot.output)


__all__ = ["SB_ADDRESS", "SC_ADDRESS", "SerialPort", "SerialSnapshot"]
