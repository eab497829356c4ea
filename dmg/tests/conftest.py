"""Shared pytest fixtures for the DMG console tests."""

from __future__ import annotations

from typing import Callable

import pytest

from dmg.console import Console

from .roms import build_rom, make_console


@pytest.fixture
def rom_builder() -> Callable[..., bytes]:
    return build_rom


@pytest.fixture
def console_factory() -> Callable[..., Console]:
    return make_console


@pytest.fixture
def console() -> Console:
    """Booted console parked on a ``JR -2`` loop."""
    return make_console()
