"""Shared architecture constants for the LR35902 core.

Cycle counts are expressed in T-cycles (4.194304 MHz clock ticks); one
machine cycle is four T-cycles.
"""

from enum import IntFlag

# The LR35902 master clock.
CPU_FREQUENCY_HZ = 4_194_304

# 154 scanlines of 456 cycles each.
CYCLES_PER_FRAME = 70224

# Fixed increment the CPU reports while halted with nothing to service, so
# the timer keeps observing time.
HALT_IDLE_CYCLES = 4

# Interrupt dispatch costs five machine cycles: two wait states, two stack
# pushes and the jump to the vector.
INTERRUPT_DISPATCH_CYCLES = 20

ADDRESS_MASK = 0xFFFF

# Low nibble of F is hard-wired to zero.
FLAG_MASK = 0xF0

# Prefix byte selecting the extended (rotate/shift/bit) opcode page.
CB_PREFIX = 0xCB


class Flag(IntFlag):
    """Flag bits held in the upper nibble of F.

    Bit layout:
        7   6   5   4   3   2   1   0
      +---+---+---+---+---+---+---+---+
      | Z | N | H | C | 0 | 0 | 0 | 0 |
      +---+---+---+---+---+---+---+---+
    """

    Z = 0x80  # Result was zero
    N = 0x40  # Last operation was a subtraction
    H = 0x20  # Carry out of bit 3 (bit 11 for 16-bit adds)
    C = 0x10  # Carry out of bit 7 (bit 15 for 16-bit adds)


# Register values left behind by the DMG boot ROM.
POWER_ON_REGISTERS = {
    "a": 0x01,
    "f": 0xB0,
    "b": 0x00,
    "c": 0x13,
    "d": 0x00,
    "e": 0xD8,
    "h": 0x01,
    "l": 0x4D,
    "sp": 0xFFFE,
    "pc": 0x0100,
}

# Divider register; any write resets it. STOP writes here to halt the divider.
DIV_ADDRESS = 0xFF04
