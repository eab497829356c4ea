from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Optional

DEFAULT_TRACE_PATH = "dmg.perfetto-trace"


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().casefold()
    return normalized not in {"0", "false", "off", ""}


@dataclass(frozen=True)
class RuntimeConfig:
    trace: bool
    trace_path: str
    memory_log: bool


def load_runtime_config(trace_path: Optional[str] = None) -> RuntimeConfig:
    return RuntimeConfig(
        trace=_env_flag("DMG_TRACE", default=False),
        trace_path=os.getenv("DMG_TRACE_PATH") or trace_path or DEFAULT_TRACE_PATH,
        memory_log=_env_flag("DMG_MEMORY_LOG", default=False),
    )


__all__ = ["DEFAULT_TRACE_PATH", "RuntimeConfig", "load_runtime_config"]
