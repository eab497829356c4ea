"""Tracing utilities for the DMG core."""

from .dispatcher import (
    CARTRIDGE_TRACK,
    CPU_TRACK,
    INTERRUPTS_TRACK,
    TIMER_TRACK,
    TraceDispatcher,
    TraceEvent,
    TraceEventType,
    TraceObserver,
    trace_dispatcher,
)

# Import perfetto tracer to register its observer with the dispatcher.
from . import perfetto_tracing  # noqa: F401

__all__ = [
    "CARTRIDGE_TRACK",
    "CPU_TRACK",
    "INTERRUPTS_TRACK",
    "TIMER_TRACK",
    "TraceDispatcher",
    "TraceEvent",
    "TraceEventType",
    "TraceObserver",
    "trace_dispatcher",
]
