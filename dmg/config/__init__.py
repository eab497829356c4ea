"""Configuration system for the DMG core."""

from .machine_config import MachineConfig
from .runtime import DEFAULT_TRACE_PATH, RuntimeConfig, load_runtime_config

__all__ = [
    "DEFAULT_TRACE_PATH",
    "MachineConfig",
    "RuntimeConfig",
    "load_runtime_config",
]
