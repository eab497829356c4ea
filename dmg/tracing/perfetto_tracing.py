# dmg/tracing/perfetto_tracing.py
import atexit
import logging
import threading
import time
from typing import Any, Dict, Optional, cast

from retrobus_perfetto import PerfettoTraceBuilder

from lr35902.constants import CPU_FREQUENCY_HZ

from ..config.runtime import DEFAULT_TRACE_PATH
from .dispatcher import (
    COUNTERS,
    CPU_TRACK,
    TRACKS,
    TraceEvent,
    TraceEventType,
    trace_dispatcher,
)

logger = logging.getLogger(__name__)

# Nanoseconds per emulated cycle, rounded down.
CYCLE_NS = 1_000_000_000 // CPU_FREQUENCY_HZ


class PerfettoTracer:
    """
    Perfetto tracer using retrobus-perfetto protobuf format.
    Timestamps come from wall-clock time until a manual clock is enabled,
    after which they follow the emulated cycle count.
    Off by default; safe to leave in production.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._enabled = False
        self._start = 0.0
        self._builder: Optional[Any] = None
        self._path: Optional[str] = None
        self._track_uuids: Dict[str, int] = {}
        self._counter_tracks: Dict[str, int] = {}
        self._manual_clock_enabled = False
        self._manual_clock_units = 0
        self._manual_tick_ns = 1

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def path(self) -> Optional[str]:
        return self._path

    def _now_ns(self) -> int:
        """Get current timestamp in nanoseconds."""
        if self._manual_clock_enabled:
            return int(self._manual_clock_units * self._manual_tick_ns)
        return int((time.perf_counter() - self._start) * 1_000_000_000)

    def _ensure_track(self, name: str) -> int:
        """Ensure a track exists and return its UUID."""
        with self._lock:
            if name in self._track_uuids:
                return self._track_uuids[name]

            if not self._builder:
                return 0

            uuid = self._builder.add_thread(name)
            self._track_uuids[name] = uuid
            return uuid

    def _ensure_counter_track(self, name: str, unit: str = "count") -> int:
        """Ensure a counter track exists and return its UUID."""
        with self._lock:
            if name in self._counter_tracks:
                return self._counter_tracks[name]

            if not self._builder:
                return 0

            uuid = self._builder.add_counter_track(name, unit)
            self._counter_tracks[name] = uuid
            return uuid

    def _is_active(self) -> bool:
        """Return ``True`` when tracing is enabled and a builder is available."""

        return self._enabled and self._builder is not None

    def _get_builder(self) -> Optional[PerfettoTraceBuilder]:
        """Return the active trace builder if tracing is currently enabled."""

        if not self._is_active():
            return None

        return cast(PerfettoTraceBuilder, self._builder)

    def start(self, path: str = DEFAULT_TRACE_PATH) -> None:
        """Start tracing to the specified file."""
        with self._lock:
            if self._enabled:
                return

            self._enabled = True
            self._path = path
            self._start = time.perf_counter()
            self._track_uuids.clear()
            self._counter_tracks.clear()
            self._manual_clock_enabled = False
            self._manual_clock_units = 0
            self._manual_tick_ns = 1

            self._builder = PerfettoTraceBuilder("DMG Core")
            for track in TRACKS:
                self._ensure_track(track)
            for counter in COUNTERS:
                self._ensure_counter_track(counter, "count")

            atexit.register(self.safe_stop)
            logger.info("perfetto tracing started -> %s", path)

    def safe_stop(self) -> None:
        """Stop for atexit; a failed save is logged rather than raised."""
        try:
            self.stop()
        except OSError as exc:
            logger.warning("could not save perfetto trace: %s", exc)

    def stop(self) -> None:
        """Stop tracing and save the file."""
        with self._lock:
            if not self._enabled or not self._builder:
                return

            path = self._path or DEFAULT_TRACE_PATH
            builder = self._builder

            self._enabled = False
            self._builder = None
            self._track_uuids.clear()
            self._counter_tracks.clear()
            self._path = None
            self._manual_clock_enabled = False
            self._manual_clock_units = 0
            self._manual_tick_ns = 1

            builder.save(path)
            logger.info("perfetto trace saved to %s", path)

    # ---- Event APIs ----

    def instant(
        self, track: str, name: str, args: Optional[Dict[str, Any]] = None
    ) -> None:
        """Add an instant event to the trace."""
        builder = self._get_builder()
        if not builder:
            return

        track_uuid = self._ensure_track(track)
        event = builder.add_instant_event(track_uuid, name, self._now_ns())

        if args:
            event.add_annotations(args)

    def counter(self, name: str, value: float) -> None:
        """Add a counter value to the trace."""
        builder = self._get_builder()
        if not builder:
            return

        track_uuid = self._ensure_counter_track(name)
        builder.update_counter(track_uuid, value, self._now_ns())

    def set_manual_clock_mode(self, enabled: bool, *, tick_ns: int = 1) -> None:
        """Enable or disable deterministic logical clocking for trace events."""

        with self._lock:
            self._manual_clock_enabled = bool(enabled)
            self._manual_clock_units = 0
            self._manual_tick_ns = max(1, int(tick_ns))

    def set_manual_clock_units(self, units: int) -> None:
        """Set the logical clock position when manual clocking is active."""

        if not self._manual_clock_enabled:
            return
        with self._lock:
            self._manual_clock_units = max(0, int(units))


# Global tracer for convenience
tracer = PerfettoTracer()


class _PerfettoObserver:
    """Bridge trace_dispatcher events into the PerfettoTraceBuilder tracer."""

    def handle_event(self, event: TraceEvent) -> None:
        if event.type == TraceEventType.START:
            path = event.payload.get("output_path")
            if path:
                tracer.start(str(path))
                tracer.set_manual_clock_mode(True, tick_ns=CYCLE_NS)
        elif event.type == TraceEventType.STOP:
            tracer.safe_stop()
        elif event.type == TraceEventType.INSTANT:
            tracer.instant(
                event.thread or CPU_TRACK, event.name or "event", event.payload
            )
        elif event.type == TraceEventType.COUNTER:
            value = event.payload.get("value")
            if value is not None:
                tracer.counter(event.name or "counter", value)
        elif event.type == TraceEventType.CLOCK:
            tracer.set_manual_clock_units(int(event.payload.get("cycles", 0)))


# Register observer so dispatcher-driven events flush into perfetto files.
trace_dispatcher.register(_PerfettoObserver())


def ensure_trace_started(path: str) -> None:
    """Force-start the Perfetto tracer if it is not already active."""
    if not tracer.enabled:
        tracer.start(path)
        tracer.set_manual_clock_mode(True, tick_ns=CYCLE_NS)


__all__ = [
    "CYCLE_NS",
    "DEFAULT_TRACE_PATH",
    "PerfettoTracer",
    "ensure_trace_started",
    "tracer",
]
