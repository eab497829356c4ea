"""Canonical console state snapshots and diff utilities."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from .console import Console
from .peripherals import SerialSnapshot


@dataclass(frozen=True)
class CPUState:
    """Registers, flags, latches, and execution counters."""

    registers: Dict[str, int]
    flags: Dict[str, int]
    ime: bool
    ei_pending: bool
    halted: bool
    stopped: bool
    cycles: int
    instruction_count: int


@dataclass(frozen=True)
class InterruptState:
    """Enable mask, request flags and the master enable."""

    ie: int
    if_: int
    ime: bool


@dataclass(frozen=True)
class TimerState:
    """Divider and gated counter registers."""

    divider: int
    tima: int
    tma: int
    tac: int


@dataclass(frozen=True)
class MemoryState:
    """Work RAM and high RAM contents."""

    wram: bytes
    hram: bytes


@dataclass(frozen=True)
class CartridgeState:
    """Bank registers and external RAM contents."""

    rom_bank: int
    ram_bank: int
    ram_enabled: bool
    external_ram: bytes


@dataclass(frozen=True)
class ConsoleState:
    """Composite immutable snapshot of console subsystems."""

    cpu: CPUState
    interrupts: InterruptState
    timer: TimerState
    memory: MemoryState
    cartridge: CartridgeState
    serial: SerialSnapshot


@dataclass(frozen=True)
class FieldDiff:
    """Difference for a single named field."""

    name: str
    before: object
    after: object


@dataclass(frozen=True)
class StateDiff:
    """Aggregated differences between two console states."""

    cpu: Tuple[FieldDiff, ...] = field(default_factory=tuple)
    interrupts: Tuple[FieldDiff, ...] = field(default_factory=tuple)
    timer: Tuple[FieldDiff, ...] = field(default_factory=tuple)
    memory: Tuple[FieldDiff, ...] = field(default_factory=tuple)
    cartridge: Tuple[FieldDiff, ...] = field(default_factory=tuple)
    serial_changed: bool = False

    def is_empty(self) -> bool:
        """Return True when no differences were recorded."""

        return (
            not self.cpu
            and not self.interrupts
            and not self.timer
            and not self.memory
            and not self.cartridge
            and not self.serial_changed
        )


def empty_state_diff() -> StateDiff:
    """Return a reusable empty diff instance."""

    return StateDiff()


def capture_state(console: Console) -> ConsoleState:
    """Capture the current console state as canonical snapshot."""

    with console.exclusive():
        return ConsoleState(
            cpu=_capture_cpu_state(console),
            interrupts=InterruptState(
                ie=console.interrupts.read_ie(),
                if_=console.interrupts.read_if(),
                ime=console.interrupts.is_master_enabled(),
            ),
            timer=TimerState(
                divider=console.timer.divider,
                tima=console.timer.tima,
                tma=console.timer.tma,
                tac=console.timer.tac,
            ),
            memory=MemoryState(
                wram=bytes(console.memory.wram), hram=bytes(console.memory.hram)
            ),
            cartridge=CartridgeState(
                rom_bank=console.cartridge.rom_bank,
                ram_bank=console.cartridge.ram_bank,
                ram_enabled=console.cartridge.ram_enabled,
                external_ram=console.cartridge.external_ram_bytes(),
            ),
            serial=console.peripherals.serial.snapshot(),
        )


def diff_states(before: Optional[ConsoleState], after: ConsoleState) -> StateDiff:
    """Compute structured differences between two console states."""

    if before is None:
        return empty_state_diff()

    return StateDiff(
        cpu=_diff_cpu(before.cpu, after.cpu),
        interrupts=_diff_fields(
            before.interrupts, after.interrupts, ("ie", "if_", "ime")
        ),
        timer=_diff_fields(
            before.timer, after.timer, ("divider", "tima", "tma", "tac")
        ),
        memory=_diff_bytes(before.memory, after.memory, ("wram", "hram")),
        cartridge=_diff_fields(
            before.cartridge, after.cartridge, ("rom_bank", "ram_bank", "ram_enabled")
        )
        + _diff_bytes(before.cartridge, after.cartridge, ("external_ram",)),
        serial_changed=before.serial != after.serial,
    )


def _capture_cpu_state(console: Console) -> CPUState:
    cpu = console.cpu
    return CPUState(
        registers=cpu.regs.to_dict(),
        flags=cpu.regs.flags_dict(),
        ime=cpu.ime,
        ei_pending=cpu.ei_pending,
        halted=cpu.halted,
        stopped=cpu.stopped,
        cycles=console.timeline_cycles,
        instruction_count=cpu.instruction_count,
    )


def _diff_cpu(before: CPUState, after: CPUState) -> Tuple[FieldDiff, ...]:
    diffs: list[FieldDiff] = []
    diffs.extend(_diff_mapping("registers", before.registers, after.registers))
    diffs.extend(_diff_mapping("flags", before.flags, after.flags))
    diffs.extend(
        _diff_fields(
            before,
            after,
            ("ime", "ei_pending", "halted", "stopped", "cycles", "instruction_count"),
        )
    )
    return tuple(diffs)


def _diff_fields(
    before: object, after: object, names: Iterable[str]
) -> Tuple[FieldDiff, ...]:
    diffs: list[FieldDiff] = []
    for name in names:
        previous = getattr(before, name)
        current = getattr(after, name)
        if previous != current:
            diffs.append(FieldDiff(name, previous, current))
    return tuple(diffs)


def _diff_bytes(
    before: object, after: object, names: Iterable[str]
) -> Tuple[FieldDiff, ...]:
    diffs: list[FieldDiff] = []
    for name in names:
        previous: bytes = getattr(before, name)
        current: bytes = getattr(after, name)
        if previous != current:
            changed = sum(1 for a, b in zip(previous, current) if a != b)
            diffs.append(FieldDiff(name, "<bytes>", f"<{changed} bytes changed>"))
    return tuple(diffs)


def _diff_mapping(
    prefix: str, before: Dict[str, int], after: Dict[str, int]
) -> Iterable[FieldDiff]:
    for key in sorted(set(before.keys()) | set(after.keys())):
        previous = before.get(key)
        current = after.get(key)
        if previous != current:
            yield FieldDiff(f"{prefix}.{key}", previous, current)


__all__ = [
    "CPUState",
    "CartridgeState",
    "ConsoleState",
    "FieldDiff",
    "InterruptState",
    "MemoryState",
    "StateDiff",
    "TimerState",
    "capture_state",
    "diff_states",
    "empty_state_diff",
]
