"""Tests for the snapshot-driven orchestrator harness."""

from __future__ import annotations

from typing import List

import pytest

from dmg.cartridge import Cartridge
from dmg.orchestrator import OrchestratorInputs, SnapshotOrchestrator
from dmg.peripherals import JoypadKey
from dmg.tracing import TraceEvent, TraceEventType, trace_dispatcher
from lr35902.interrupts import InterruptSource

from .roms import build_rom, handler_writing, ld_a, ldh_a8, make_console


class _Recorder:
    def __init__(self) -> None:
        self.events: List[TraceEvent] = []

    def handle_event(self, event: TraceEvent) -> None:
        self.events.append(event)


def _orchestrator(program: List[int], **rom_kwargs) -> SnapshotOrchestrator:
    return SnapshotOrchestrator(console=make_console(program, **rom_kwargs))


def test_step_advances_cpu_registers() -> None:
    # LD A,0x42 ; LD B,0x33 ; NOP
    orchestrator = _orchestrator([0x3E, 0x42, 0x06, 0x33, 0x00, 0x18, 0xFE])

    snapshot = orchestrator.step(OrchestratorInputs(max_instructions=2))

    assert snapshot.executed_instructions == 2
    assert snapshot.cpu.registers["a"] == 0x42
    assert snapshot.cpu.registers["b"] == 0x33
    assert snapshot.cpu.registers["pc"] == 0x0154
    assert snapshot.cycle_count == orchestrator.console.cycle_count


def test_cycle_budget_limits_the_step() -> None:
    orchestrator = _orchestrator([0x00] * 64)
    start = orchestrator.console.cycle_count

    snapshot = orchestrator.step(
        OrchestratorInputs(max_instructions=None, cycle_budget=40)
    )

    assert snapshot.executed_instructions == 10
    assert snapshot.cycle_count == start + 40


def test_instruction_limit_wins_over_larger_budget() -> None:
    orchestrator = _orchestrator([0x00] * 64)

    snapshot = orchestrator.step(
        OrchestratorInputs(max_instructions=3, cycle_budget=1000)
    )

    assert snapshot.executed_instructions == 3


def test_stop_request_ends_a_budgeted_step() -> None:
    orchestrator = _orchestrator([0x00] * 64)
    start = orchestrator.console.cycle_count
    orchestrator.console.request_stop()

    snapshot = orchestrator.step(
        OrchestratorInputs(max_instructions=None, cycle_budget=400)
    )

    assert snapshot.executed_instructions == 0
    assert snapshot.cycle_count == start
    follow_up = orchestrator.step(
        OrchestratorInputs(max_instructions=None, cycle_budget=8)
    )
    assert follow_up.executed_instructions == 2


def test_requested_interrupts_are_serviced() -> None:
    program = ld_a(0x08) + ldh_a8(0xFF) + [0xFB, 0x18, 0xFE]
    orchestrator = _orchestrator(
        program, patches={0x0058: handler_writing(0x5E, 0xC010)}
    )
    orchestrator.step(OrchestratorInputs(max_instructions=4))

    snapshot = orchestrator.step(
        OrchestratorInputs(
            max_instructions=4, request_interrupts=(InterruptSource.SERIAL,)
        )
    )

    assert orchestrator.console.memory.peek(0xC010) == 0x5E
    assert not snapshot.interrupts.if_ & InterruptSource.SERIAL.bit


def test_key_inputs_reach_the_joypad() -> None:
    orchestrator = _orchestrator([0x18, 0xFE])

    snapshot = orchestrator.step(
        OrchestratorInputs(max_instructions=1, press_keys=(JoypadKey.A,))
    )
    assert JoypadKey.A in orchestrator.console.peripherals.joypad.pressed
    assert snapshot.interrupts.if_ & InterruptSource.JOYPAD.bit

    orchestrator.step(
        OrchestratorInputs(max_instructions=0, release_keys=(JoypadKey.A,))
    )
    assert not orchestrator.console.peripherals.joypad.pressed


def test_run_scenario_collects_snapshots() -> None:
    orchestrator = _orchestrator([0x00] * 16)

    snapshots = orchestrator.run_scenario(
        [
            OrchestratorInputs(max_instructions=1, metadata={"label": "one"}),
            OrchestratorInputs(max_instructions=2, metadata={"label": "two"}),
        ],
        include_initial_snapshot=True,
    )

    assert len(snapshots) == 3
    assert [snap.metadata.get("label") for snap in snapshots] == [None, "one", "two"]
    pcs = [snap.cpu.registers["pc"] for snap in snapshots]
    assert pcs == [0x0150, 0x0151, 0x0153]


def test_snapshot_reports_banks_timer_and_access_log() -> None:
    program = [0x3E, 0x03, 0xEA, 0x00, 0x20, 0x18, 0xFE]  # select ROM bank 3
    console = make_console(program, cartridge_type=0x01, rom_code=0x02)
    console.memory.enable_access_log(limit=4)
    orchestrator = SnapshotOrchestrator(console=console)

    snapshot = orchestrator.step(OrchestratorInputs(max_instructions=2))

    assert snapshot.rom_bank == 3
    assert snapshot.ram_bank == 0
    assert snapshot.timer.div == console.timer.div
    writes = snapshot.memory_access_log["writes"]
    assert writes[-1].address == 0x2000
    assert writes[-1].region == "rom"


def test_observers_receive_events_and_close_unregisters() -> None:
    orchestrator = _orchestrator([0x00] * 16)
    recorder = _Recorder()

    with orchestrator:
        orchestrator.register_observer(recorder)
        orchestrator.step(OrchestratorInputs(max_instructions=2))
        assert recorder in trace_dispatcher.observers()

    assert recorder not in trace_dispatcher.observers()
    counters = [
        event for event in recorder.events if event.type is TraceEventType.COUNTER
    ]
    assert [event.name for event in counters] == [
        "instructions",
        "cycles",
        "instructions",
        "cycles",
    ]
    assert counters[-2].payload["value"] == orchestrator.console.instruction_count


def test_unregister_observer_stops_delivery() -> None:
    orchestrator = _orchestrator([0x00] * 16)
    recorder = _Recorder()
    orchestrator.register_observer(recorder)
    orchestrator.unregister_observer(recorder)

    orchestrator.step(OrchestratorInputs(max_instructions=2))

    assert recorder.events == []
    orchestrator.close()


def test_orchestrator_builds_console_from_cartridge() -> None:
    orchestrator = SnapshotOrchestrator(
        cartridge=Cartridge.from_rom(build_rom([0x00]))
    )

    snapshot = orchestrator.capture_snapshot()

    assert snapshot.cpu.registers["pc"] == 0x0100
    assert snapshot.executed_instructions == 0
    orchestrator.close()


def test_orchestrator_requires_a_machine() -> None:
    with pytest.raises(ValueError):
        SnapshotOrchestrator()
