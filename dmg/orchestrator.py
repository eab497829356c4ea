"""Snapshot-driven orchestrator harness wrapping the console."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from lr35902.interrupts import InterruptSource

from .cartridge import Cartridge
from .config import MachineConfig
from .console import Console
from .memory import MemoryAccessLog
from .peripherals import JoypadKey, SerialSnapshot
from .tracing import TraceObserver, trace_dispatcher


@dataclass
class CPUSnapshot:
    """Registers and flag state captured from the CPU core."""

    registers: Dict[str, int]
    flags: Dict[str, int]
    ime: bool
    halted: bool
    cycles: int
    instruction_count: int


@dataclass
class InterruptSnapshot:
    """Interrupt enable/request registers and the master enable."""

    ie: int
    if_: int
    ime: bool


@dataclass
class TimerSnapshot:
    """Divider and gated counter registers."""

    div: int
    tima: int
    tma: int
    tac: int
    overflow_count: int


@dataclass
class OrchestratorSnapshot:
    """Composite snapshot captured after each orchestrator step."""

    cpu: CPUSnapshot
    interrupts: InterruptSnapshot
    timer: TimerSnapshot
    serial: SerialSnapshot
    rom_bank: int
    ram_bank: int
    memory_access_log: Dict[str, List[MemoryAccessLog]]
    executed_instructions: int = 0
    cycle_count: int = 0
    metadata: Dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class OrchestratorInputs:
    """Inputs applied before advancing the system.

    ``max_instructions`` and ``cycle_budget`` may be combined; the step ends
    at whichever limit is hit first.
    """

    max_instructions: Optional[int] = 1
    cycle_budget: Optional[int] = None
    request_interrupts: Sequence[InterruptSource] = ()
    press_keys: Sequence[JoypadKey] = ()
    release_keys: Sequence[JoypadKey] = ()
    metadata: Dict[str, object] = field(default_factory=dict)


class SnapshotOrchestrator:
    """High-level orchestrator that produces deterministic snapshots."""

    def __init__(
        self,
        *,
        console: Optional[Console] = None,
        cartridge: Optional[Cartridge] = None,
        config: Optional[MachineConfig] = None,
    ) -> None:
        if console is None:
            if cartridge is None:
                raise ValueError("SnapshotOrchestrator needs a console or a cartridge")
            console = Console(cartridge, config=config)
        self._console = console
        self._registered_observers: set[TraceObserver] = set()

    # ------------------------------------------------------------------ #
    # Lifecycle helpers
    # ------------------------------------------------------------------ #
    @property
    def console(self) -> Console:
        return self._console

    def reset(self) -> None:
        """Reset all subsystems to their power-on state."""

        self._console.reset()

    def close(self) -> None:
        """Release registered observers and stop tracing."""

        for observer in tuple(self._registered_observers):
            trace_dispatcher.unregister(observer)
        self._registered_observers.clear()
        self._console.close()

    def __enter__(self) -> "SnapshotOrchestrator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    # ------------------------------------------------------------------ #
    # Observer management
    # ------------------------------------------------------------------ #
    def register_observer(self, observer: TraceObserver) -> None:
        """Subscribe a tracing observer to execution events."""

        trace_dispatcher.register(observer)
        self._registered_observers.add(observer)
        self._console.trace_events = True

    def unregister_observer(self, observer: TraceObserver) -> None:
        """Remove a previously registered observer."""

        if observer in self._registered_observers:
            trace_dispatcher.unregister(observer)
            self._registered_observers.discard(observer)

    # ------------------------------------------------------------------ #
    # Snapshot + step API
    # ------------------------------------------------------------------ #
    def capture_snapshot(
        self,
        *,
        executed_instructions: int = 0,
        metadata: Optional[Dict[str, object]] = None,
    ) -> OrchestratorSnapshot:
        """Capture a composite snapshot of console subsystems."""

        console = self._console
        with console.exclusive():
            return OrchestratorSnapshot(
                cpu=self._capture_cpu_state(),
                interrupts=self._capture_interrupt_state(),
                timer=self._capture_timer_state(),
                serial=console.peripherals.serial.snapshot(),
                rom_bank=console.cartridge.rom_bank,
                ram_bank=console.cartridge.ram_bank,
                memory_access_log={
                    "reads": list(console.memory.read_log()),
                    "writes": list(console.memory.write_log()),
                },
                executed_instructions=executed_instructions,
                cycle_count=console.cycle_count,
                metadata=dict(metadata or {}),
            )

    def apply_inputs(self, inputs: OrchestratorInputs) -> int:
        """Apply inputs and return number of instructions executed."""

        console = self._console
        joypad = console.peripherals.joypad
        with console.exclusive():
            for key in inputs.release_keys:
                joypad.release(key)
            for key in inputs.press_keys:
                joypad.press(key)
            for source in inputs.request_interrupts:
                console.request_interrupt(source)

        if inputs.cycle_budget is None:
            if inputs.max_instructions is None:
                return 0
            return console.run(max_instructions=inputs.max_instructions)

        return console.run(
            max_instructions=inputs.max_instructions,
            until_cycle=console.cycle_count + inputs.cycle_budget,
        )

    def step(self, inputs: Optional[OrchestratorInputs] = None) -> OrchestratorSnapshot:
        """Apply inputs, advance the system, and return the resulting snapshot."""

        step_inputs = inputs or OrchestratorInputs()
        executed = self.apply_inputs(step_inputs)
        return self.capture_snapshot(
            executed_instructions=executed, metadata=step_inputs.metadata
        )

    def run_scenario(
        self,
        steps: Sequence[OrchestratorInputs],
        *,
        include_initial_snapshot: bool = False,
    ) -> List[OrchestratorSnapshot]:
        """Run a multi-step scenario returning snapshots after each step."""

        snapshots: List[OrchestratorSnapshot] = []
        if include_initial_snapshot:
            snapshots.append(self.capture_snapshot())

        for step_inputs in steps:
            snapshots.append(self.step(step_inputs))
        return snapshots

    # ------------------------------------------------------------------ #
    # Internal snapshot helpers
    # ------------------------------------------------------------------ #
    def _capture_cpu_state(self) -> CPUSnapshot:
        state = self._console.get_cpu_state()
        registers = {
            key: int(state[key])
            for key in ("pc", "sp", "a", "f", "b", "c", "d", "e", "h", "l")
        }
        return CPUSnapshot(
            registers=registers,
            flags=dict(state["flags"]),
            ime=bool(state["ime"]),
            halted=bool(state["halted"]),
            cycles=int(state["cycles"]),
            instruction_count=int(state["instruction_count"]),
        )

    def _capture_interrupt_state(self) -> InterruptSnapshot:
        interrupts = self._console.interrupts
        return InterruptSnapshot(
            ie=interrupts.read_ie(),
            if_=interrupts.read_if(),
            ime=interrupts.is_master_enabled(),
        )

    def _capture_timer_state(self) -> TimerSnapshot:
        timer = self._console.timer
        return TimerSnapshot(
            div=timer.div,
            tima=timer.tima,
            tma=timer.tma,
            tac=timer.tac,
            overflow_count=timer.overflow_count,
        )


__all__ = [
    "CPUSnapshot",
    "InterruptSnapshot",
    "TimerSnapshot",
    "OrchestratorSnapshot",
    "OrchestratorInputs",
    "SnapshotOrchestrator",
]
