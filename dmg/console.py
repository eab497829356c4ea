"""The console: one machine instance with all of its components wired up."""

from __future__ import annotations

import json
import logging
import sys
import threading
import zipfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from lr35902.cpu import CPU, UnimplementedOpcode
from lr35902.interrupts import InterruptController, InterruptSource
from lr35902.stepper import CPURegistersSnapshot

from .cartridge import Cartridge
from .clock import CycleClock
from .config import MachineConfig, RuntimeConfig, load_runtime_config
from .memory import ACCESS_LOG_LIMIT, IO_START, MemoryUnit
from .peripherals import PeripheralManager, SerialSnapshot
from .timer import Timer
from .tracing import trace_dispatcher

logger = logging.getLogger(__name__)

SNAPSHOT_MAGIC = "dmg.snapshot"
SNAPSHOT_VERSION = 1
_SNAPSHOT_REGISTER_LAYOUT = (
    ("pc", 2),
    ("sp", 2),
    ("a", 1),
    ("f", 1),
    ("b", 1),
    ("c", 1),
    ("d", 1),
    ("e", 1),
    ("h", 1),
    ("l", 1),
)


class MachineHalted(RuntimeError):
    """Raised when stepping a console that has already faulted."""


def _pack_register_bytes(snapshot: CPURegistersSnapshot) -> bytes:
    """Pack the register file into a deterministic little-endian blob."""

    chunks: list[bytes] = []
    for name, width in _SNAPSHOT_REGISTER_LAYOUT:
        value = getattr(snapshot, name)
        chunks.append(int(value).to_bytes(width, byteorder="little", signed=False))
    return b"".join(chunks)


def _unpack_register_bytes(payload: bytes) -> Dict[str, int]:
    """Unpack a register blob created by ``_pack_register_bytes``."""

    expected = sum(width for _, width in _SNAPSHOT_REGISTER_LAYOUT)
    if len(payload) != expected:
        raise ValueError(
            f"registers.bin length mismatch (expected {expected}, got {len(payload)})"
        )
    offset = 0
    values: Dict[str, int] = {}
    for name, width in _SNAPSHOT_REGISTER_LAYOUT:
        values[name] = int.from_bytes(
            payload[offset : offset + width], byteorder="little", signed=False
        )
        offset += width
    return values


def _echo_serial(byte: int) -> None:
    sys.stdout.write(chr(byte))
    sys.stdout.flush()


class Console:
    """Owns the clock, CPU, memory unit, timer, interrupts and peripherals.

    The machine itself is single threaded. Hosts that drive it from another
    thread take :meth:`exclusive` to inspect or mutate state between steps,
    and use :meth:`request_stop` to end a ``run*`` loop cooperatively.
    """

    def __init__(
        self,
        cartridge: Cartridge,
        *,
        config: Optional[MachineConfig] = None,
        runtime: Optional[RuntimeConfig] = None,
    ) -> None:
        self.config = config or MachineConfig()
        runtime = runtime or load_runtime_config(self.config.trace_path)

        self.cartridge = cartridge
        self.clock = CycleClock()
        self.interrupts = InterruptController()
        self.timer = Timer(self.interrupts)
        self.peripherals = PeripheralManager(
            self.interrupts,
            serial_listener=_echo_serial if self.config.serial_echo else None,
        )
        access_log_limit = self.config.access_log_limit
        if not access_log_limit and runtime.memory_log:
            access_log_limit = ACCESS_LOG_LIMIT
        self.memory = MemoryUnit(
            cartridge,
            self.interrupts,
            self.timer,
            self.peripherals,
            access_log_limit=access_log_limit,
        )
        self.cpu = CPU(self.memory, self.interrupts, self.clock)

        self.fault: Optional[UnimplementedOpcode] = None
        self.trace_events = False
        self._owns_trace = False
        self._traced_banks = (-1, -1)
        self._cycle_offset = 0
        self._lock = threading.RLock()
        self._stop_event = threading.Event()

        self.reset()

        if self.config.trace_enabled or runtime.trace:
            self.start_tracing(self.config.trace_path or runtime.trace_path)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def reset(self) -> None:
        """Return every component to power-on state; the clock keeps counting."""

        with self._lock:
            self.interrupts.reset()
            self.timer.reset()
            self.peripherals.reset()
            self.memory.reset()
            self.cartridge.reset()
            self.cpu.reset()
            self.fault = None
            self._stop_event.clear()
        logger.debug("console reset at cycle %d", self.clock.cycles)

    def close(self) -> None:
        self.stop_tracing()

    def __enter__(self) -> "Console":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    @contextmanager
    def exclusive(self) -> Iterator["Console"]:
        """Hold the machine lock; steps from other threads wait until release."""

        with self._lock:
            yield self

    def request_stop(self) -> None:
        """Ask the active run loop to return before its next step."""

        self._stop_event.set()

    def _consume_stop(self) -> bool:
        if self._stop_event.is_set():
            self._stop_event.clear()
            return True
        return False

    # ------------------------------------------------------------------ #
    # Stepping
    # ------------------------------------------------------------------ #
    @property
    def cycle_count(self) -> int:
        return self.clock.cycles

    @property
    def timeline_cycles(self) -> int:
        """Cycle position on the timeline of the last loaded snapshot.

        Equals :attr:`cycle_count` until a snapshot is loaded. Snapshots
        record this value, so a resumed run reports the same positions as
        the run that saved it while the clock itself only moves forward.
        """

        return self.clock.cycles - self._cycle_offset

    @property
    def instruction_count(self) -> int:
        return self.cpu.instruction_count

    def step(self) -> int:
        """Advance by one instruction (or one interrupt dispatch).

        Returns the cycles consumed. The timer observes those cycles after
        the CPU finishes, so any request it raises is seen on the next step.
        """

        with self._lock:
            if self.fault is not None:
                raise MachineHalted(
                    f"console halted by earlier fault: {self.fault}"
                ) from self.fault
            try:
                cycles = self.cpu.step()
            except UnimplementedOpcode as exc:
                self.fault = exc
                logger.error("CPU fault at cycle %d: %s", self.clock.cycles, exc)
                if self.trace_events:
                    trace_dispatcher.record_fault(exc.opcode, exc.pc)
                raise
            overflows = self.timer.tick(cycles)
            if self.trace_events:
                self._trace_step(cycles, overflows)
            return cycles

    def run(
        self,
        max_instructions: Optional[int] = None,
        *,
        until_cycle: Optional[int] = None,
    ) -> int:
        """Step until ``max_instructions`` have run or a stop is requested.

        With ``until_cycle`` the loop also ends once the clock reaches that
        absolute cycle, whichever limit comes first. Returns the number of
        steps taken.
        """

        count = 0
        while max_instructions is None or count < max_instructions:
            if until_cycle is not None and self.clock.cycles >= until_cycle:
                break
            if self._consume_stop():
                break
            self.step()
            count += 1
        return count

    def run_until(self, target_cycle: int) -> int:
        """Step until the cycle clock reaches ``target_cycle``.

        The target is absolute. The last instruction may overshoot it; the
        return value is the number of cycles actually consumed.
        """

        start = self.clock.cycles
        self.run(until_cycle=target_cycle)
        return self.clock.cycles - start

    def run_frame(self) -> int:
        return self.run_until(self.clock.cycles + self.config.cycles_per_frame)

    def request_interrupt(self, source: InterruptSource) -> None:
        with self._lock:
            self.interrupts.request(source)

    def get_cpu_state(self) -> Dict[str, Any]:
        regs = self.cpu.regs
        with self._lock:
            state: Dict[str, Any] = regs.to_dict()
            state.update(
                {
                    "af": regs.af,
                    "bc": regs.bc,
                    "de": regs.de,
                    "hl": regs.hl,
                    "flags": regs.flags_dict(),
                    "ime": self.cpu.ime,
                    "halted": self.cpu.halted,
                    "stopped": self.cpu.stopped,
                    "cycles": self.clock.cycles,
                    "instruction_count": self.cpu.instruction_count,
                }
            )
        return state

    # ------------------------------------------------------------------ #
    # Tracing
    # ------------------------------------------------------------------ #
    def start_tracing(self, path: str | Path) -> None:
        self.trace_events = True
        self._owns_trace = True
        trace_dispatcher.start_trace(path)
        trace_dispatcher.set_clock(self.clock.cycles)

    def stop_tracing(self) -> None:
        if self._owns_trace:
            trace_dispatcher.stop_trace()
            self._owns_trace = False
        self.trace_events = False

    def _trace_step(self, cycles: int, overflows: int) -> None:
        trace_dispatcher.set_clock(self.clock.cycles)
        serviced = self.cpu.last_interrupt
        if serviced is not None:
            trace_dispatcher.record_interrupt(serviced.name, serviced.vector, cycles)
        if overflows:
            trace_dispatcher.record_timer_overflow(overflows, self.timer.tima)
        banks = (self.cartridge.rom_bank, self.cartridge.ram_bank)
        if banks != self._traced_banks:
            self._traced_banks = banks
            trace_dispatcher.record_bank_switch(*banks)
        trace_dispatcher.record_progress(self.cpu.instruction_count, self.clock.cycles)

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #
    def external_ram_bytes(self) -> bytes:
        with self._lock:
            return self.cartridge.external_ram_bytes()

    def restore_external_ram(self, data: bytes) -> None:
        with self._lock:
            self.cartridge.restore_external_ram(data)

    def save_snapshot(self, path: str | Path) -> Path:
        """Persist the whole machine to a zip bundle."""

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        with self._lock:
            cpu_snapshot = CPURegistersSnapshot.from_cpu(self.cpu)
            serial = self.peripherals.serial.snapshot()
            metadata = {
                "magic": SNAPSHOT_MAGIC,
                "version": SNAPSHOT_VERSION,
                "created": datetime.now(timezone.utc)
                .isoformat()
                .replace("+00:00", "Z"),
                "instruction_count": int(self.cpu.instruction_count),
                "cycle_count": int(self.timeline_cycles),
                "memory_reads": int(self.memory.memory_read_count),
                "memory_writes": int(self.memory.memory_write_count),
                "pc": int(cpu_snapshot.pc),
                "cpu": {
                    "ei_pending": cpu_snapshot.ei_pending,
                    "halted": cpu_snapshot.halted,
                    "stopped": cpu_snapshot.stopped,
                    "halt_bug": cpu_snapshot.halt_bug,
                },
                "interrupts": self.interrupts.snapshot(),
                "timer": self.timer.snapshot(),
                "serial": {
                    "sb": serial.sb,
                    "sc": serial.sc,
                    "output": serial.output.hex(),
                },
                "joypad": self.peripherals.joypad.snapshot(),
                "cartridge": {
                    "identity": self.cartridge.identity,
                    "mapper": self.cartridge.kind.value,
                    "banks": self.cartridge.bank_state(),
                    "ram_size": len(self.cartridge.external_ram_bytes()),
                },
            }
            payloads = {
                "registers.bin": _pack_register_bytes(cpu_snapshot),
                "wram.bin": bytes(self.memory.wram),
                "hram.bin": bytes(self.memory.hram),
                "vram.bin": self.peripherals.vram.snapshot(),
                "oam.bin": self.peripherals.oam.snapshot(),
                "io.bin": self.memory.io_snapshot(),
                "cart_ram.bin": self.cartridge.external_ram_bytes(),
            }

        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr("snapshot.json", json.dumps(metadata, indent=2, sort_keys=True))
            for name, payload in payloads.items():
                zf.writestr(name, payload)

        logger.info(
            "saved snapshot %s at cycle %d (PC=0x%04X)",
            target,
            metadata["cycle_count"],
            cpu_snapshot.pc,
        )
        return target

    def load_snapshot(self, path: str | Path) -> None:
        """Load a snapshot created by ``save_snapshot``.

        The cycle clock is not rewound. The saved cycle count becomes the
        current :attr:`timeline_cycles` instead.
        """

        source = Path(path)
        if not source.exists():
            raise FileNotFoundError(source)

        with zipfile.ZipFile(source, "r") as zf:
            metadata = json.loads(zf.read("snapshot.json"))
            if metadata.get("magic") != SNAPSHOT_MAGIC:
                raise ValueError("Snapshot magic mismatch")
            if int(metadata.get("version", -1)) != SNAPSHOT_VERSION:
                raise ValueError("Unsupported snapshot version")
            payloads = {
                name: zf.read(name)
                for name in (
                    "registers.bin",
                    "wram.bin",
                    "hram.bin",
                    "vram.bin",
                    "oam.bin",
                    "io.bin",
                    "cart_ram.bin",
                )
            }

        cart_meta = metadata.get("cartridge", {})
        if cart_meta.get("identity") != self.cartridge.identity:
            raise ValueError(
                f"Snapshot was taken with cartridge {cart_meta.get('identity')!r}, "
                f"not {self.cartridge.identity!r}"
            )
        if len(payloads["wram.bin"]) != len(self.memory.wram):
            raise ValueError("wram.bin size mismatch")
        if len(payloads["hram.bin"]) != len(self.memory.hram):
            raise ValueError("hram.bin size mismatch")
        registers = _unpack_register_bytes(payloads["registers.bin"])
        io = payloads["io.bin"]

        with self._lock:
            self.memory.wram[:] = payloads["wram.bin"]
            self.memory.hram[:] = payloads["hram.bin"]
            self.memory.memory_read_count = int(metadata.get("memory_reads", 0))
            self.memory.memory_write_count = int(metadata.get("memory_writes", 0))
            self.peripherals.vram.restore(payloads["vram.bin"])
            self.peripherals.oam.restore(payloads["oam.bin"])
            for bank in self.peripherals.io_banks():
                offset = bank.start - IO_START
                bank.restore(io[offset : offset + bank.size])
            self.cartridge.restore_external_ram(payloads["cart_ram.bin"])
            self.cartridge.restore_bank_state(cart_meta.get("banks", {}))

            serial = metadata.get("serial", {})
            self.peripherals.serial.restore(
                SerialSnapshot(
                    sb=int(serial.get("sb", 0)),
                    sc=int(serial.get("sc", 0)),
                    output=bytes.fromhex(serial.get("output", "")),
                )
            )
            self.peripherals.joypad.restore(metadata.get("joypad", {}))
            self.timer.restore(metadata.get("timer", {}))
            self.interrupts.restore(metadata.get("interrupts", {}))

            latches = metadata.get("cpu", {})
            CPURegistersSnapshot(
                ime=self.interrupts.is_master_enabled(),
                ei_pending=bool(latches.get("ei_pending", False)),
                halted=bool(latches.get("halted", False)),
                stopped=bool(latches.get("stopped", False)),
                halt_bug=bool(latches.get("halt_bug", False)),
                **registers,
            ).apply_to(self.cpu)
            self.cpu.instruction_count = int(metadata.get("instruction_count", 0))
            self._cycle_offset = self.clock.cycles - int(
                metadata.get("cycle_count", 0)
            )
            self.fault = None

        logger.info(
            "loaded snapshot %s (cycle %d, PC=0x%04X)",
            source,
            self.timeline_cycles,
            self.cpu.regs.pc,
        )


__all__ = ["Console", "MachineHalted", "SNAPSHOT_MAGIC", "SNAPSHOT_VERSION"]
