"""Tracing event dispatcher and observer interfaces."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

CPU_TRACK = "CPU"
INTERRUPTS_TRACK = "Interrupts"
TIMER_TRACK = "Timer"
CARTRIDGE_TRACK = "Cartridge"
TRACKS = (CPU_TRACK, INTERRUPTS_TRACK, TIMER_TRACK, CARTRIDGE_TRACK)
COUNTERS = ("instructions", "cycles")


class TraceEventType(Enum):
    """Kinds of tracing events emitted by the console."""

    START = "start"
    STOP = "stop"
    INSTANT = "instant"
    COUNTER = "counter"
    CLOCK = "clock"


@dataclass
class TraceEvent:
    """Structured tracing event."""

    type: TraceEventType
    thread: Optional[str] = None
    name: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


class TraceObserver(Protocol):
    """Interface for tracing observers."""

    def handle_event(self, event: TraceEvent) -> None: ...


class TraceDispatcher:
    """Dispatches tracing events to registered observers."""

    def __init__(self) -> None:
        self._observers: List[TraceObserver] = []

    # ------------------------------------------------------------------ #
    # Observer management
    # ------------------------------------------------------------------ #
    def register(self, observer: TraceObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unregister(self, observer: TraceObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def observers(self) -> Iterable[TraceObserver]:
        return tuple(self._observers)

    def has_observers(self) -> bool:
        """Return True when any observers are registered."""
        return bool(self._observers)

    # ------------------------------------------------------------------ #
    # Convenience emission helpers
    # ------------------------------------------------------------------ #
    def start_trace(self, output_path: Path | str) -> None:
        self._emit(
            TraceEvent(
                TraceEventType.START,
                payload={"output_path": Path(output_path)},
            )
        )

    def stop_trace(self) -> None:
        self._emit(TraceEvent(TraceEventType.STOP))

    def record_instant(
        self,
        thread: str,
        name: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._emit(
            TraceEvent(
                TraceEventType.INSTANT,
                thread=thread,
                name=name,
                payload=payload or {},
            )
        )

    def record_counter(
        self, name: str, value: float, *, thread: str = CPU_TRACK
    ) -> None:
        self._emit(
            TraceEvent(
                TraceEventType.COUNTER,
                thread=thread,
                name=name,
                payload={"value": value},
            )
        )

    def set_clock(self, cycles: int) -> None:
        """Publish the machine's cycle count as the trace timestamp."""

        self._emit(TraceEvent(TraceEventType.CLOCK, payload={"cycles": cycles}))

    # ------------------------------------------------------------------ #
    # Machine events
    # ------------------------------------------------------------------ #
    def record_interrupt(self, source: str, vector: int, cycles: int) -> None:
        """An interrupt was dispatched to ``vector``."""

        self.record_instant(
            INTERRUPTS_TRACK, source, {"vector": vector, "cycles": cycles}
        )

    def record_timer_overflow(self, count: int, tima: int) -> None:
        self.record_instant(
            TIMER_TRACK, "TIMA overflow", {"count": count, "tima": tima}
        )

    def record_bank_switch(self, rom_bank: int, ram_bank: int) -> None:
        self.record_instant(
            CARTRIDGE_TRACK,
            "bank switch",
            {"rom_bank": rom_bank, "ram_bank": ram_bank},
        )

    def record_fault(self, opcode: int, pc: int) -> None:
        """The CPU stopped on an undefined opcode."""

        self.record_instant(CPU_TRACK, "fault", {"opcode": opcode, "pc": pc})

    def record_progress(self, instructions: int, cycles: int) -> None:
        """Update the instruction and cycle counters after a step."""

        self.record_counter("instructions", instructions)
        self.record_counter("cycles", cycles)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _emit(self, event: TraceEvent) -> None:
        for observer in tuple(self._observers):
            observer.handle_event(event)


# Global dispatcher used by the console.
trace_dispatcher = TraceDispatcher()

__all__ = [
    "CARTRIDGE_TRACK",
    "COUNTERS",
    "CPU_TRACK",
    "INTERRUPTS_TRACK",
    "TIMER_TRACK",
    "TRACKS",
    "TraceDispatcher",
    "TraceObserver",
    "TraceEvent",
    "TraceEventType",
    "trace_dispatcher",
]
