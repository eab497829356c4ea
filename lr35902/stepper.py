"""Snapshot-driven LR35902 CPU stepper.

This module exposes a pure stepping helper that accepts a register snapshot and
an in-memory image, executes a single instruction using :class:`CPU`, and
returns an updated snapshot together with the side effects that occurred
during the step. Unit tests use it to feed deterministic state fixtures and
assert the resulting deltas without building a whole console.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, MutableMapping, Optional, Tuple

from .cpu import CPU
from .interrupts import InterruptController

_CORE_REGISTER_FIELDS: Tuple[str, ...] = (
    "pc",
    "sp",
    "a",
    "f",
    "b",
    "c",
    "d",
    "e",
    "h",
    "l",
)

_STATE_FIELDS: Tuple[str, ...] = (
    "ime",
    "ei_pending",
    "halted",
    "stopped",
    "halt_bug",
)


@dataclass(slots=True)
class CPURegistersSnapshot:
    """Register file plus the interpreter's latch state."""

    pc: int
    sp: int = 0xFFFE
    a: int = 0
    f: int = 0
    b: int = 0
    c: int = 0
    d: int = 0
    e: int = 0
    h: int = 0
    l: int = 0  # noqa: E741
    ime: bool = False
    ei_pending: bool = False
    halted: bool = False
    stopped: bool = False
    halt_bug: bool = False

    @classmethod
    def from_cpu(cls, cpu: CPU) -> "CPURegistersSnapshot":
        regs = cpu.regs
        return cls(
            pc=regs.pc,
            sp=regs.sp,
            a=regs.a,
            f=regs.f,
            b=regs.b,
            c=regs.c,
            d=regs.d,
            e=regs.e,
            h=regs.h,
            l=regs.l,
            ime=cpu.ime,
            ei_pending=cpu.ei_pending,
            halted=cpu.halted,
            stopped=cpu.stopped,
            halt_bug=cpu.halt_bug,
        )

    def apply_to(self, cpu: CPU) -> None:
        regs = cpu.regs
        for name in _CORE_REGISTER_FIELDS:
            setattr(regs, name, getattr(self, name))
        cpu.interrupts.set_master_enable(self.ime)
        cpu.ei_pending = self.ei_pending
        cpu.halted = self.halted
        cpu.stopped = self.stopped
        cpu.halt_bug = self.halt_bug

    def to_dict(self) -> Dict[str, int]:
        values = {name: int(getattr(self, name)) for name in _CORE_REGISTER_FIELDS}
        for name in _STATE_FIELDS:
            values[name] = int(getattr(self, name))
        return values

    def diff(self, other: "CPURegistersSnapshot") -> Dict[str, Tuple[int, int]]:
        diffs: Dict[str, Tuple[int, int]] = {}
        for field_name in _CORE_REGISTER_FIELDS:
            before = getattr(self, field_name)
            after = getattr(other, field_name)
            if before != after:
                diffs[field_name.upper()] = (before, after)

        for field_name in _STATE_FIELDS:
            before = int(getattr(self, field_name))
            after = int(getattr(other, field_name))
            if before != after:
                diffs[field_name] = (before, after)

        return diffs


@dataclass(slots=True)
class MemoryWrite:
    """Memory mutation captured during a CPU step."""

    address: int
    value: int
    previous: int


class _SnapshotMemory:
    """Flat 64 KiB bus that records mutations while servicing CPU fetches."""

    def __init__(self, image: Mapping[int, int], default_value: int = 0) -> None:
        self._backing: MutableMapping[int, int] = dict(image)
        self._default = default_value & 0xFF
        self._writes: List[MemoryWrite] = []

    def read(self, address: int) -> int:
        return self._backing.get(address & 0xFFFF, self._default)

    def write(self, address: int, value: int) -> None:
        address &= 0xFFFF
        value &= 0xFF
        previous = self._backing.get(address, self._default)
        self._backing[address] = value
        self._writes.append(
            MemoryWrite(address=address, value=value, previous=previous)
        )

    @property
    def writes(self) -> Tuple[MemoryWrite, ...]:
        return tuple(self._writes)

    def snapshot(self) -> Dict[int, int]:
        return dict(self._backing)


@dataclass(slots=True)
class CPUStepResult:
    registers: CPURegistersSnapshot
    changed_registers: Dict[str, Tuple[int, int]]
    memory_writes: Tuple[MemoryWrite, ...]
    memory_image: Dict[int, int]
    cycles: int
    instruction_name: Optional[str]
    instruction_length: int
    serviced_interrupt: Optional[str] = None
    interrupt_flags: int = 0


class CPUStepper:
    """Utility that executes a single LR35902 instruction from a snapshot."""

    def __init__(self, *, default_memory_value: int = 0) -> None:
        self._default_memory_value = default_memory_value & 0xFF

    def step(
        self,
        registers: CPURegistersSnapshot,
        memory_image: Mapping[int, int],
        *,
        interrupt_enable: int = 0,
        interrupt_flags: int = 0,
    ) -> CPUStepResult:
        snapshot_memory = _SnapshotMemory(
            memory_image,
            default_value=self._default_memory_value,
        )
        interrupts = InterruptController()
        interrupts.write_ie(interrupt_enable)
        interrupts.write_if(interrupt_flags)
        cpu = CPU(snapshot_memory, interrupts)
        registers.apply_to(cpu)

        cycles = cpu.step()

        new_registers = CPURegistersSnapshot.from_cpu(cpu)
        info = cpu.last_opcode
        serviced = cpu.last_interrupt

        return CPUStepResult(
            registers=new_registers,
            changed_registers=registers.diff(new_registers),
            memory_writes=snapshot_memory.writes,
            memory_image=snapshot_memory.snapshot(),
            cycles=cycles,
            instruction_name=info.mnemonic if info is not None else None,
            instruction_length=info.length if info is not None else 0,
            serviced_interrupt=serviced.name if serviced is not None else None,
            interrupt_flags=interrupts.read_if() & 0x1F,
        )


__all__ = [
    "CPUStepper",
    "CPUStepResult",
    "CPURegistersSnapshot",
    "MemoryWrite",
]
