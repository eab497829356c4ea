"""Machine configuration for the DMG core."""

from dataclasses import dataclass, asdict
from typing import Optional
import json
from pathlib import Path

from lr35902.constants import CPU_FREQUENCY_HZ, CYCLES_PER_FRAME


@dataclass
class MachineConfig:
    """Console-level settings that are not part of emulated hardware state."""

    name: str = "DMG"
    cpu_frequency: int = CPU_FREQUENCY_HZ
    cycles_per_frame: int = CYCLES_PER_FRAME
    access_log_limit: int = 0  # 0 disables the memory access ring buffers
    serial_echo: bool = False  # print serial output bytes as they arrive
    trace_enabled: bool = False
    trace_path: Optional[str] = None

    def __post_init__(self) -> None:
        if self.cycles_per_frame <= 0:
            raise ValueError("cycles_per_frame must be positive")
        if self.access_log_limit < 0:
            raise ValueError("access_log_limit cannot be negative")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MachineConfig":
        defaults = cls()
        return cls(
            name=data.get("name", defaults.name),
            cpu_frequency=int(data.get("cpu_frequency", defaults.cpu_frequency)),
            cycles_per_frame=int(
                data.get("cycles_per_frame", defaults.cycles_per_frame)
            ),
            access_log_limit=int(
                data.get("access_log_limit", defaults.access_log_limit)
            ),
            serial_echo=bool(data.get("serial_echo", defaults.serial_echo)),
            trace_enabled=bool(data.get("trace_enabled", defaults.trace_enabled)),
            trace_path=data.get("trace_path", defaults.trace_path),
        )

    def save(self, path: str | Path) -> None:
        """Save configuration to JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str | Path) -> "MachineConfig":
        """Load configuration from JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)
