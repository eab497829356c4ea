"""Shared pytest fixtures for LR35902 core tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

import pytest

from lr35902.cpu import CPU
from lr35902.interrupts import InterruptController

PROGRAM_START = 0xC000


class FlatMemory:
    """Plain 64 KiB RAM used as the CPU bus in isolation tests."""

    def __init__(self) -> None:
        self.data = bytearray(0x10000)

    def read(self, address: int) -> int:
        return self.data[address & 0xFFFF]

    def write(self, address: int, value: int) -> None:
        self.data[address & 0xFFFF] = value & 0xFF

    def load(self, address: int, payload: Iterable[int]) -> None:
        for offset, byte in enumerate(payload):
            self.data[(address + offset) & 0xFFFF] = byte & 0xFF


@dataclass
class CycleCounter:
    cycles: int = 0

    def advance(self, cycles: int) -> None:
        self.cycles += cycles


@dataclass
class CPUHarness:
    cpu: CPU
    memory: FlatMemory
    interrupts: InterruptController
    clock: CycleCounter = field(default_factory=CycleCounter)

    def load(self, program: Iterable[int], *, at: int = PROGRAM_START) -> None:
        self.memory.load(at, program)
        self.cpu.regs.pc = at

    def run(self, steps: int) -> list[int]:
        return [self.cpu.step() for _ in range(steps)]


def build_harness() -> CPUHarness:
    memory = FlatMemory()
    interrupts = InterruptController()
    clock = CycleCounter()
    cpu = CPU(memory, interrupts, clock)
    cpu.regs.sp = 0xDFFE
    return CPUHarness(cpu=cpu, memory=memory, interrupts=interrupts, clock=clock)


@pytest.fixture
def harness() -> CPUHarness:
    return build_harness()


@pytest.fixture
def make_harness() -> Callable[[], CPUHarness]:
    return build_harness
