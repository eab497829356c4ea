"""LR35902 opcode table.

Every defined opcode maps to one immutable :class:`OpcodeInfo` entry that
names the :class:`Operation` to perform, its operands, its encoded length
and its cost in T-cycles. Conditional control flow carries a second cost in
``cycles_taken`` that applies when the condition holds.

Timings follow the gbdev opcode tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Optional, Tuple, Union

from .constants import CB_PREFIX

Operand = Union[str, int]


class Operation(Enum):
    """Closed set of operations the interpreter dispatches on."""

    NOP = auto()
    STOP = auto()
    HALT = auto()
    DI = auto()
    EI = auto()
    LD8 = auto()
    LD16 = auto()
    LD_A16_SP = auto()
    LD_SP_HL = auto()
    LD_HL_SP_E = auto()
    PUSH = auto()
    POP = auto()
    INC8 = auto()
    DEC8 = auto()
    INC16 = auto()
    DEC16 = auto()
    ALU = auto()
    ADD_HL = auto()
    ADD_SP_E = auto()
    RLCA = auto()
    RRCA = auto()
    RLA = auto()
    RRA = auto()
    DAA = auto()
    CPL = auto()
    SCF = auto()
    CCF = auto()
    JP = auto()
    JP_HL = auto()
    JR = auto()
    CALL = auto()
    RET = auto()
    RETI = auto()
    RST = auto()
    PREFIX = auto()
    # CB page
    ROTATE = auto()
    BIT = auto()
    RES = auto()
    SET = auto()


class AluOp(Enum):
    ADD = "ADD"
    ADC = "ADC"
    SUB = "SUB"
    SBC = "SBC"
    AND = "AND"
    XOR = "XOR"
    OR = "OR"
    CP = "CP"


class RotateOp(Enum):
    RLC = "RLC"
    RRC = "RRC"
    RL = "RL"
    RR = "RR"
    SLA = "SLA"
    SRA = "SRA"
    SWAP = "SWAP"
    SRL = "SRL"


@dataclass(frozen=True, slots=True)
class OpcodeInfo:
    """Decoded description of a single opcode."""

    opcode: int
    mnemonic: str
    length: int
    cycles: int
    operation: Operation
    operands: Tuple[Operand, ...] = ()
    condition: Optional[str] = None
    cycles_taken: Optional[int] = None
    prefixed: bool = False

    @property
    def conditional(self) -> bool:
        return self.condition is not None


# Register operand order used by the regular opcode blocks (bits 0-2 / 3-5).
REGISTER_ORDER: Tuple[str, ...] = ("B", "C", "D", "E", "H", "L", "(HL)", "A")
_PAIR_ORDER: Tuple[str, ...] = ("BC", "DE", "HL", "SP")
_STACK_PAIR_ORDER: Tuple[str, ...] = ("BC", "DE", "HL", "AF")
_CONDITIONS: Tuple[str, ...] = ("NZ", "Z", "NC", "C")
_ALU_ORDER: Tuple[AluOp, ...] = tuple(AluOp)
_ROTATE_ORDER: Tuple[RotateOp, ...] = tuple(RotateOp)

# Opcodes with no defined behaviour; fetching one is a fatal fault.
UNDEFINED_OPCODES = frozenset(
    {0xD3, 0xDB, 0xDD, 0xE3, 0xE4, 0xEB, 0xEC, 0xED, 0xF4, 0xFC, 0xFD}
)


def _build_base_table() -> Dict[int, OpcodeInfo]:
    table: Dict[int, OpcodeInfo] = {}

    def add(
        opcode: int,
        mnemonic: str,
        length: int,
        cycles: int,
        operation: Operation,
        *operands: Operand,
        condition: Optional[str] = None,
        taken: Optional[int] = None,
    ) -> None:
        table[opcode] = OpcodeInfo(
            opcode=opcode,
            mnemonic=mnemonic,
            length=length,
            cycles=cycles,
            operation=operation,
            operands=tuple(operands),
            condition=condition,
            cycles_taken=taken,
        )

    add(0x00, "NOP", 1, 4, Operation.NOP)
    add(0x10, "STOP", 2, 4, Operation.STOP)
    add(0x76, "HALT", 1, 4, Operation.HALT)
    add(0xF3, "DI", 1, 4, Operation.DI)
    add(0xFB, "EI", 1, 4, Operation.EI)

    # 16-bit immediate loads, INC/DEC rr, ADD HL,rr
    for index, pair in enumerate(_PAIR_ORDER):
        base = index << 4
        add(base | 0x01, f"LD {pair},d16", 3, 12, Operation.LD16, pair)
        add(base | 0x03, f"INC {pair}", 1, 8, Operation.INC16, pair)
        add(base | 0x09, f"ADD HL,{pair}", 1, 8, Operation.ADD_HL, pair)
        add(base | 0x0B, f"DEC {pair}", 1, 8, Operation.DEC16, pair)

    # Indirect accumulator loads
    for index, target in enumerate(("(BC)", "(DE)", "(HL+)", "(HL-)")):
        base = index << 4
        add(base | 0x02, f"LD {target},A", 1, 8, Operation.LD8, target, "A")
        add(base | 0x0A, f"LD A,{target}", 1, 8, Operation.LD8, "A", target)

    # INC r / DEC r / LD r,d8
    for index, reg in enumerate(REGISTER_ORDER):
        base = index << 3
        memory = reg == "(HL)"
        add(base | 0x04, f"INC {reg}", 1, 12 if memory else 4, Operation.INC8, reg)
        add(base | 0x05, f"DEC {reg}", 1, 12 if memory else 4, Operation.DEC8, reg)
        add(
            base | 0x06,
            f"LD {reg},d8",
            2,
            12 if memory else 8,
            Operation.LD8,
            reg,
            "d8",
        )

    add(0x07, "RLCA", 1, 4, Operation.RLCA)
    add(0x0F, "RRCA", 1, 4, Operation.RRCA)
    add(0x17, "RLA", 1, 4, Operation.RLA)
    add(0x1F, "RRA", 1, 4, Operation.RRA)
    add(0x27, "DAA", 1, 4, Operation.DAA)
    add(0x2F, "CPL", 1, 4, Operation.CPL)
    add(0x37, "SCF", 1, 4, Operation.SCF)
    add(0x3F, "CCF", 1, 4, Operation.CCF)
    add(0x08, "LD (a16),SP", 3, 20, Operation.LD_A16_SP)

    add(0x18, "JR r8", 2, 12, Operation.JR)
    for index, cond in enumerate(_CONDITIONS):
        add(0x20 | (index << 3), f"JR {cond},r8", 2, 8, Operation.JR,
            condition=cond, taken=12)

    # LD r,r' block (0x76 is HALT, added above)
    for dst_index, dst in enumerate(REGISTER_ORDER):
        for src_index, src in enumerate(REGISTER_ORDER):
            opcode = 0x40 | (dst_index << 3) | src_index
            if opcode == 0x76:
                continue
            memory = dst == "(HL)" or src == "(HL)"
            add(opcode, f"LD {dst},{src}", 1, 8 if memory else 4,
                Operation.LD8, dst, src)

    # 8-bit ALU block
    for alu_index, alu in enumerate(_ALU_ORDER):
        for src_index, src in enumerate(REGISTER_ORDER):
            opcode = 0x80 | (alu_index << 3) | src_index
            add(opcode, f"{alu.value} A,{src}", 1, 8 if src == "(HL)" else 4,
                Operation.ALU, alu.value, src)
        add(0xC6 | (alu_index << 3), f"{alu.value} A,d8", 2, 8,
            Operation.ALU, alu.value, "d8")

    # Conditional control flow
    for index, cond in enumerate(_CONDITIONS):
        base = 0xC0 | (index << 3)
        add(base, f"RET {cond}", 1, 8, Operation.RET, condition=cond, taken=20)
        add(base | 0x02, f"JP {cond},a16", 3, 12, Operation.JP,
            condition=cond, taken=16)
        add(base | 0x04, f"CALL {cond},a16", 3, 12, Operation.CALL,
            condition=cond, taken=24)

    for index, pair in enumerate(_STACK_PAIR_ORDER):
        base = 0xC0 | (index << 4)
        add(base | 0x01, f"POP {pair}", 1, 12, Operation.POP, pair)
        add(base | 0x05, f"PUSH {pair}", 1, 16, Operation.PUSH, pair)

    for index in range(8):
        vector = index << 3
        add(0xC7 | vector, f"RST {vector:02X}H", 1, 16, Operation.RST, vector)

    add(0xC3, "JP a16", 3, 16, Operation.JP)
    add(0xC9, "RET", 1, 16, Operation.RET)
    add(0xD9, "RETI", 1, 16, Operation.RETI)
    add(0xCB, "PREFIX CB", 1, 4, Operation.PREFIX)
    add(0xCD, "CALL a16", 3, 24, Operation.CALL)
    add(0xE9, "JP (HL)", 1, 4, Operation.JP_HL)

    add(0xE0, "LDH (a8),A", 2, 12, Operation.LD8, "(a8)", "A")
    add(0xF0, "LDH A,(a8)", 2, 12, Operation.LD8, "A", "(a8)")
    add(0xE2, "LD (C),A", 1, 8, Operation.LD8, "(C)", "A")
    add(0xF2, "LD A,(C)", 1, 8, Operation.LD8, "A", "(C)")
    add(0xEA, "LD (a16),A", 3, 16, Operation.LD8, "(a16)", "A")
    add(0xFA, "LD A,(a16)", 3, 16, Operation.LD8, "A", "(a16)")

    add(0xE8, "ADD SP,r8", 2, 16, Operation.ADD_SP_E)
    add(0xF8, "LD HL,SP+r8", 2, 12, Operation.LD_HL_SP_E)
    add(0xF9, "LD SP,HL", 1, 8, Operation.LD_SP_HL)

    return table


def _build_cb_table() -> Dict[int, OpcodeInfo]:
    table: Dict[int, OpcodeInfo] = {}
    for opcode in range(0x100):
        reg = REGISTER_ORDER[opcode & 0x07]
        memory = reg == "(HL)"
        group = opcode >> 6
        selector = (opcode >> 3) & 0x07
        if group == 0:
            rotate = _ROTATE_ORDER[selector]
            info = OpcodeInfo(
                opcode=opcode,
                mnemonic=f"{rotate.value} {reg}",
                length=2,
                cycles=16 if memory else 8,
                operation=Operation.ROTATE,
                operands=(rotate.value, reg),
                prefixed=True,
            )
        elif group == 1:
            info = OpcodeInfo(
                opcode=opcode,
                mnemonic=f"BIT {selector},{reg}",
                length=2,
                cycles=12 if memory else 8,
                operation=Operation.BIT,
                operands=(selector, reg),
                prefixed=True,
            )
        else:
            operation = Operation.RES if group == 2 else Operation.SET
            info = OpcodeInfo(
                opcode=opcode,
                mnemonic=f"{operation.name} {selector},{reg}",
                length=2,
                cycles=16 if memory else 8,
                operation=operation,
                operands=(selector, reg),
                prefixed=True,
            )
        table[opcode] = info
    return table


OPCODES: Dict[int, OpcodeInfo] = _build_base_table()
CB_OPCODES: Dict[int, OpcodeInfo] = _build_cb_table()


def lookup(opcode: int) -> Optional[OpcodeInfo]:
    """Return the base-page entry for ``opcode`` or ``None`` when undefined."""

    return OPCODES.get(opcode & 0xFF)


def lookup_cb(opcode: int) -> OpcodeInfo:
    return CB_OPCODES[opcode & 0xFF]


def is_defined(opcode: int) -> bool:
    return (opcode & 0xFF) in OPCODES


__all__ = [
    "AluOp",
    "CB_OPCODES",
    "CB_PREFIX",
    "OPCODES",
    "OpcodeInfo",
    "Operand",
    "Operation",
    "REGISTER_ORDER",
    "RotateOp",
    "UNDEFINED_OPCODES",
    "is_defined",
    "lookup",
    "lookup_cb",
]
