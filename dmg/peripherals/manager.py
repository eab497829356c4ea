"""Peripheral manager wiring the register windows of external collaborators."""

from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple

from lr35902.interrupts import InterruptController

from .joypad import Joypad
from .register_bank import RegisterBank
from .serial import SerialPort

VRAM_START, VRAM_SIZE = 0x8000, 0x2000
OAM_START, OAM_SIZE = 0xFE00, 0xA0
AUDIO_START, AUDIO_SIZE = 0xFF10, 0x30
VIDEO_START, VIDEO_SIZE = 0xFF40, 0x0C


class PeripheralManager:
    """Owns the pass-through windows and the serial/joypad adapters."""

    def __init__(
        self,
        interrupts: InterruptController,
        *,
        serial_listener: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.serial = SerialPort(interrupts, on_byte=serial_listener)
        self.joypad = Joypad(interrupts)
        self.vram = RegisterBank("vram", VRAM_START, VRAM_SIZE)
        self.oam = RegisterBank("oam", OAM_START, OAM_SIZE)
        self.audio = RegisterBank("audio", AUDIO_START, AUDIO_SIZE)
        self.video = RegisterBank("video", VIDEO_START, VIDEO_SIZE)

    def io_banks(self) -> Tuple[RegisterBank, ...]:
        """Register banks living inside the 0xFF00-0xFF7F I/O window."""

        return (self.audio, self.video)

    def banks(self) -> Dict[str, RegisterBank]:
        return {
            bank.name: bank for bank in (self.vram, self.oam, self.audio, self.video)
        }

    def reset(self) -> None:
        self.serial.reset()
        self.joypad.reset()
        for bank in self.banks().values():
            bank.reset()


__all__ = ["PeripheralManager"]
