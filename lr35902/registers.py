"""LR35902 register file."""

from __future__ import annotations

from typing import Dict, Optional

from .constants import FLAG_MASK, POWER_ON_REGISTERS, Flag


class Registers:
    """Eight 8-bit registers addressable as four 16-bit pairs plus SP and PC.

    The flag register only ever holds its upper nibble; every write path
    (``f``, ``af``, ``set_flag``) masks the low four bits to zero.
    """

    __slots__ = ("a", "_f", "b", "c", "d", "e", "h", "l", "sp", "pc")

    def __init__(self) -> None:
        self.a = 0
        self._f = 0
        self.b = 0
        self.c = 0
        self.d = 0
        self.e = 0
        self.h = 0
        self.l = 0  # noqa: E741
        self.sp = 0
        self.pc = 0
        self.reset()

    def reset(self) -> None:
        """Restore the values the boot ROM leaves behind."""

        for name, value in POWER_ON_REGISTERS.items():
            setattr(self, name, value)

    # ------------------------------------------------------------------ #
    # Flag register
    # ------------------------------------------------------------------ #
    @property
    def f(self) -> int:
        return self._f

    @f.setter
    def f(self, value: int) -> None:
        self._f = value & FLAG_MASK

    def flag(self, flag: Flag) -> bool:
        return bool(self._f & flag)

    def set_flag(self, flag: Flag, enabled: bool) -> None:
        if enabled:
            self._f |= flag
        else:
            self._f &= ~flag & FLAG_MASK

    def set_flags(
        self,
        z: Optional[bool] = None,
        n: Optional[bool] = None,
        h: Optional[bool] = None,
        c: Optional[bool] = None,
    ) -> None:
        """Update several flags at once; ``None`` leaves a flag untouched."""

        value = self._f
        for flag, state in ((Flag.Z, z), (Flag.N, n), (Flag.H, h), (Flag.C, c)):
            if state is None:
                continue
            if state:
                value |= flag
            else:
                value &= ~flag
        self._f = value & FLAG_MASK

    # ------------------------------------------------------------------ #
    # 16-bit pairs
    # ------------------------------------------------------------------ #
    @property
    def af(self) -> int:
        return (self.a << 8) | self._f

    @af.setter
    def af(self, value: int) -> None:
        self.a = (value >> 8) & 0xFF
        self._f = value & FLAG_MASK

    @property
    def bc(self) -> int:
        return (self.b << 8) | self.c

    @bc.setter
    def bc(self, value: int) -> None:
        self.b = (value >> 8) & 0xFF
        self.c = value & 0xFF

    @property
    def de(self) -> int:
        return (self.d << 8) | self.e

    @de.setter
    def de(self, value: int) -> None:
        self.d = (value >> 8) & 0xFF
        self.e = value & 0xFF

    @property
    def hl(self) -> int:
        return (self.h << 8) | self.l

    @hl.setter
    def hl(self, value: int) -> None:
        self.h = (value >> 8) & 0xFF
        self.l = value & 0xFF

    def to_dict(self) -> Dict[str, int]:
        return {
            "a": self.a,
            "f": self._f,
            "b": self.b,
            "c": self.c,
            "d": self.d,
            "e": self.e,
            "h": self.h,
            "l": self.l,
            "sp": self.sp,
            "pc": self.pc,
        }

    def flags_dict(self) -> Dict[str, int]:
        return {flag.name: int(self.flag(flag)) for flag in Flag}

    def __repr__(self) -> str:
        return (
            f"Registers(AF={self.af:04X} BC={self.bc:04X} DE={self.de:04X} "
            f"HL={self.hl:04X} SP={self.sp:04X} PC={self.pc:04X})"
        )


__all__ = ["Registers"]
