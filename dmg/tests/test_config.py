from __future__ import annotations

import json
from pathlib import Path

import pytest

from dmg.cartridge import Cartridge
from dmg.config import (
    DEFAULT_TRACE_PATH,
    MachineConfig,
    RuntimeConfig,
    load_runtime_config,
)
from dmg.console import Console
from dmg.memory import ACCESS_LOG_LIMIT
from lr35902.constants import CPU_FREQUENCY_HZ, CYCLES_PER_FRAME

from .roms import build_rom, make_console


def test_defaults_match_hardware() -> None:
    config = MachineConfig()

    assert config.cpu_frequency == CPU_FREQUENCY_HZ
    assert config.cycles_per_frame == CYCLES_PER_FRAME
    assert config.access_log_limit == 0
    assert not config.trace_enabled


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "machine.json"
    config = MachineConfig(name="bench", access_log_limit=32, serial_echo=True)

    config.save(path)

    assert json.loads(path.read_text())["access_log_limit"] == 32
    assert MachineConfig.load(path) == config


def test_from_dict_fills_missing_fields() -> None:
    config = MachineConfig.from_dict({"cycles_per_frame": "1000"})

    assert config.cycles_per_frame == 1000
    assert config.name == "DMG"
    assert config.trace_path is None


@pytest.mark.parametrize(
    "kwargs",
    [{"cycles_per_frame": 0}, {"access_log_limit": -1}],
)
def test_invalid_values_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        MachineConfig(**kwargs)


def test_runtime_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DMG_TRACE", "1")
    monkeypatch.setenv("DMG_TRACE_PATH", "/tmp/run.perfetto-trace")
    monkeypatch.setenv("DMG_MEMORY_LOG", "off")

    runtime = load_runtime_config("ignored.perfetto-trace")

    assert runtime == RuntimeConfig(
        trace=True, trace_path="/tmp/run.perfetto-trace", memory_log=False
    )


def test_runtime_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("DMG_TRACE", "DMG_TRACE_PATH", "DMG_MEMORY_LOG"):
        monkeypatch.delenv(name, raising=False)

    assert load_runtime_config().trace_path == DEFAULT_TRACE_PATH
    assert load_runtime_config("custom.trace").trace_path == "custom.trace"
    assert not load_runtime_config().trace


def test_access_log_limit_enables_logging() -> None:
    console = make_console([0x00] * 8, config=MachineConfig(access_log_limit=3))

    console.run(4)

    assert len(console.memory.read_log()) == 3


def test_memory_log_flag_uses_default_limit() -> None:
    runtime = RuntimeConfig(trace=False, trace_path="unused", memory_log=True)
    console = Console(Cartridge.from_rom(build_rom([0x00] * 300)), runtime=runtime)

    console.run(ACCESS_LOG_LIMIT + 10)

    assert len(console.memory.read_log()) == ACCESS_LOG_LIMIT
