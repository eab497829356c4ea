"""Peripheral adapters bridging the core to its external collaborators."""

from .joypad import Joypad, JoypadKey
from .manager import PeripheralManager
from .register_bank import RegisterBank
from .serial import SerialPort, SerialSnapshot

__all__ = [
    "Joypad",
    "JoypadKey",
    "PeripheralManager",
    "RegisterBank",
    "SerialPort",
    "SerialSnapshot",
]
