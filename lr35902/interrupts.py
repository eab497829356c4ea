"""Interrupt controller: enable mask, request flags and master enable."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# Address of the request-flag register (IF) in the I/O window.
IF_ADDRESS = 0xFF0F
# Address of the enable-mask register (IE).
IE_ADDRESS = 0xFFFF

# Only the low five bits of IF are backed by hardware; the rest read as 1.
INTERRUPT_MASK = 0x1F
IF_UNUSED_BITS = 0xE0
IF_POWER_ON = 0xE1


class InterruptSource(Enum):
    """The five interrupt sources.

    Enum values store the request/enable bit. Lower bits take priority.
    """

    VBLANK = 0x01
    LCD_STAT = 0x02
    TIMER = 0x04
    SERIAL = 0x08
    JOYPAD = 0x10

    @property
    def bit(self) -> int:
        return self.value

    @property
    def vector(self) -> int:
        """Fixed service routine address."""
        return 0x40 + 8 * self.priority

    @property
    def priority(self) -> int:
        """Rank in dispatch order, 0 is serviced first."""
        return self.value.bit_length() - 1


# Sources ordered from highest to lowest priority.
PRIORITY_ORDER: Tuple[InterruptSource, ...] = tuple(
    sorted(InterruptSource, key=lambda source: source.priority)
)


class InterruptController:
    """Holds IE, IF and IME.

    All operations are immediate state transitions. The CPU owns the timing
    of the delayed enable; this controller only stores the resulting flag.
    """

    def __init__(self) -> None:
        self._enable_mask = 0
        self._request_flags = 0
        self._master_enable = False
        self.request_counts: Dict[str, int] = {
            source.name: 0 for source in InterruptSource
        }

    def reset(self) -> None:
        self._enable_mask = 0
        self._request_flags = IF_POWER_ON & INTERRUPT_MASK
        self._master_enable = False
        for name in self.request_counts:
            self.request_counts[name] = 0

    # ------------------------------------------------------------------ #
    # Request / acknowledge
    # ------------------------------------------------------------------ #
    def request(self, source: InterruptSource) -> None:
        self._request_flags |= source.bit
        self.request_counts[source.name] += 1
        logger.debug("interrupt requested: %s", source.name)

    def acknowledge(self, source: InterruptSource) -> None:
        """Clear exactly the request bit belonging to ``source``."""

        self._request_flags &= ~source.bit & INTERRUPT_MASK

    def pending_mask(self) -> int:
        return self._enable_mask & self._request_flags & INTERRUPT_MASK

    def has_pending(self) -> bool:
        """Return True when any enabled source is requested, ignoring IME."""

        return self.pending_mask() != 0

    def highest_pending(self) -> Optional[InterruptSource]:
        """Return the highest-priority enabled request without clearing it."""

        pending = self.pending_mask()
        if not pending:
            return None
        for source in PRIORITY_ORDER:
            if pending & source.bit:
                return source
        return None

    # ------------------------------------------------------------------ #
    # Master enable
    # ------------------------------------------------------------------ #
    def set_master_enable(self, enabled: bool) -> None:
        self._master_enable = bool(enabled)

    def is_master_enabled(self) -> bool:
        return self._master_enable

    # ------------------------------------------------------------------ #
    # Register views
    # ------------------------------------------------------------------ #
    def read_if(self) -> int:
        return IF_UNUSED_BITS | (self._request_flags & INTERRUPT_MASK)

    def write_if(self, value: int) -> None:
        self._request_flags = value & INTERRUPT_MASK

    def read_ie(self) -> int:
        return self._enable_mask

    def write_ie(self, value: int) -> None:
        self._enable_mask = value & 0xFF

    def snapshot(self) -> Dict[str, object]:
        return {
            "ie": self._enable_mask,
            "if": self._request_flags,
            "ime": self._master_enable,
            "request_counts": dict(self.request_counts),
        }

    def restore(self, state: Dict[str, object]) -> None:
        self._enable_mask = int(state.get("ie", 0)) & 0xFF
        self._request_flags = int(state.get("if", 0)) & INTERRUPT_MASK
        self._master_enable = bool(state.get("ime", False))
        counts = state.get("request_counts") or {}
        for name in self.request_counts:
            self.request_counts[name] = int(counts.get(name, 0))


__all__ = [
    "IE_ADDRESS",
    "IF_ADDRESS",
    "IF_POWER_ON",
    "InterruptController",
    "InterruptSource",
    "PRIORITY_ORDER",
]
