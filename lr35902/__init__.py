"""LR35902 CPU core exports."""

from .constants import CYCLES_PER_FRAME, Flag
from .cpu import CPU, UnimplementedOpcode
from .interrupts import InterruptController, InterruptSource
from .opcodes import OPCODES, CB_OPCODES, OpcodeInfo, Operation
from .registers import Registers
from .stepper import CPURegistersSnapshot, CPUStepper, CPUStepResult

__all__ = [
    "CPU",
    "CYCLES_PER_FRAME",
    "CB_OPCODES",
    "CPURegistersSnapshot",
    "CPUStepResult",
    "CPUStepper",
    "Flag",
    "InterruptController",
    "InterruptSource",
    "OPCODES",
    "OpcodeInfo",
    "Operation",
    "Registers",
    "UnimplementedOpcode",
]
