"""Joypad register (P1) fed by the host input collaborator."""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Set

from lr35902.interrupts import InterruptController, InterruptSource

P1_ADDRESS = 0xFF00

SELECT_DIRECTIONS = 0x10
SELECT_BUTTONS = 0x20
SELECT_MASK = SELECT_DIRECTIONS | SELECT_BUTTONS


class JoypadKey(Enum):
    # (select line, bit within the low nibble)
    RIGHT = (SELECT_DIRECTIONS, 0x01)
    LEFT = (SELECT_DIRECTIONS, 0x02)
    UP = (SELECT_DIRECTIONS, 0x04)
    DOWN = (SELECT_DIRECTIONS, 0x08)
    A = (SELECT_BUTTONS, 0x01)
    B = (SELECT_BUTTONS, 0x02)
    SELECT = (SELECT_BUTTONS, 0x04)
    START = (SELECT_BUTTONS, 0x08)


class Joypad:
    """Active-low key matrix behind P1.

    Writing P1 only changes the two select lines. Pressing a key requests
    the joypad interrupt, which is also what wakes the CPU from STOP.
    """

    def __init__(self, interrupts: InterruptController) -> None:
        self._interrupts = interrupts
        self._select = SELECT_MASK
        self._pressed: Set[JoypadKey] = set()

    def reset(self) -> None:
        self._select = SELECT_MASK
        self._pressed.clear()

    @property
    def pressed(self) -> FrozenSet[JoypadKey]:
        return frozenset(self._pressed)

    def press(self, key: JoypadKey) -> None:
        if key in self._pressed:
            return
        self._pressed.add(key)
        self._interrupts.request(InterruptSource.JOYPAD)

    def release(self, key: JoypadKey) -> None:
        self._pressed.discard(key)

    def release_all(self) -> None:
        self._pressed.clear()

    def read(self, address: int = P1_ADDRESS) -> int:
        low = 0x0F
        for key in self._pressed:
            line, bit = key.value
            if not self._select & line:
                low &= ~bit
        return 0xC0 | self._select | (low & 0x0F)

    def write(self, address: int, value: int) -> None:
        self._select = value & SELECT_MASK

    def snapshot(self) -> dict:
        return {
            "select": self._select,
            "pressed": sorted(key.name for key in self._pressed),
        }

    def restore(self, state: dict) -> None:
        self._select = int(state.get("select", SELECT_MASK)) & SELECT_MASK
        self._pressed = {JoypadKey[name] for name in state.get("pressed", ())}


__all__ = ["Joypad", "JoypadKey", "P1_ADDRESS"]
