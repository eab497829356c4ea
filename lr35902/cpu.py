"""LR35902 fetch/decode/execute interpreter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Protocol

from .constants import (
    ADDRESS_MASK,
    DIV_ADDRESS,
    HALT_IDLE_CYCLES,
    INTERRUPT_DISPATCH_CYCLES,
    Flag,
)
from .interrupts import InterruptController, InterruptSource
from .opcodes import AluOp, OpcodeInfo, Operation, RotateOp, lookup, lookup_cb
from .registers import Registers

if TYPE_CHECKING:
    from .stepper import CPURegistersSnapshot

logger = logging.getLogger(__name__)

_REGISTER_ATTRS = {
    "A": "a",
    "B": "b",
    "C": "c",
    "D": "d",
    "E": "e",
    "H": "h",
    "L": "l",
}


class UnimplementedOpcode(Exception):
    """Raised when the fetched opcode has no defined behaviour."""

    def __init__(self, opcode: int, pc: int) -> None:
        super().__init__(f"Unimplemented opcode 0x{opcode:02X} at PC=0x{pc:04X}")
        self.opcode = opcode
        self.pc = pc


class Bus(Protocol):
    def read(self, address: int) -> int: ...

    def write(self, address: int, value: int) -> None: ...


class Clock(Protocol):
    def advance(self, cycles: int) -> None: ...


def _signed8(value: int) -> int:
    return value - 0x100 if value & 0x80 else value


class CPU:
    """Single-instruction stepping interpreter.

    Every load, store and instruction fetch goes through ``bus``. When a
    ``clock`` is supplied, :meth:`step` advances it by the cost of the work
    performed before returning that cost.
    """

    def __init__(
        self,
        bus: Bus,
        interrupts: InterruptController,
        clock: Optional[Clock] = None,
    ) -> None:
        self.bus = bus
        self.interrupts = interrupts
        self.clock = clock
        self.regs = Registers()
        self.halted = False
        self.stopped = False
        self.halt_bug = False
        self.ei_pending = False
        self.instruction_count = 0
        self.last_opcode: Optional[OpcodeInfo] = None
        self.last_interrupt: Optional[InterruptSource] = None

    def reset(self) -> None:
        self.regs.reset()
        self.halted = False
        self.stopped = False
        self.halt_bug = False
        self.ei_pending = False
        self.instruction_count = 0
        self.last_opcode = None
        self.last_interrupt = None

    @property
    def ime(self) -> bool:
        return self.interrupts.is_master_enabled()

    def snapshot_registers(self) -> "CPURegistersSnapshot":
        from .stepper import CPURegistersSnapshot

        return CPURegistersSnapshot.from_cpu(self)

    def apply_snapshot(self, snapshot: "CPURegistersSnapshot") -> None:
        snapshot.apply_to(self)

    # ------------------------------------------------------------------ #
    # Stepping
    # ------------------------------------------------------------------ #
    def step(self) -> int:
        """Execute one instruction or service one interrupt.

        Returns the number of cycles consumed. Raises
        :class:`UnimplementedOpcode` before touching any state when the
        opcode at PC is undefined.
        """

        cycles = self._step()
        if self.clock is not None:
            self.clock.advance(cycles)
        return cycles

    def _step(self) -> int:
        self.last_opcode = None
        self.last_interrupt = None
        interrupts = self.interrupts

        if (self.halted or self.stopped) and not interrupts.has_pending():
            return HALT_IDLE_CYCLES

        if interrupts.is_master_enabled():
            source = interrupts.highest_pending()
            if source is not None:
                return self._service_interrupt(source)

        return self._execute_next()

    def _service_interrupt(self, source: InterruptSource) -> int:
        self.halted = False
        self.stopped = False
        self.interrupts.set_master_enable(False)
        self.ei_pending = False
        return_address = self.regs.pc
        if self.halt_bug:
            # EI ; HALT with a request pending: resume at the HALT byte.
            self.halt_bug = False
            return_address = (return_address - 1) & ADDRESS_MASK
        self._push(return_address)
        self.interrupts.acknowledge(source)
        self.regs.pc = source.vector
        self.last_interrupt = source
        return INTERRUPT_DISPATCH_CYCLES

    def _execute_next(self) -> int:
        regs = self.regs
        bus = self.bus
        pc = regs.pc
        opcode = bus.read(pc) & 0xFF
        info = lookup(opcode)
        if info is None:
            logger.error("undefined opcode 0x%02X at 0x%04X", opcode, pc)
            raise UnimplementedOpcode(opcode, pc)

        self.halted = False
        self.stopped = False
        # HALT bug: the byte after HALT is fetched without advancing PC.
        skew = 1 if self.halt_bug else 0
        self.halt_bug = False
        operand_address = (pc + 1 - skew) & ADDRESS_MASK

        if info.operation is Operation.PREFIX:
            info = lookup_cb(bus.read(operand_address))
            immediate = 0
        elif info.length == 2:
            immediate = bus.read(operand_address) & 0xFF
        elif info.length == 3:
            low = bus.read(operand_address) & 0xFF
            high = bus.read((operand_address + 1) & ADDRESS_MASK) & 0xFF
            immediate = (high << 8) | low
        else:
            immediate = 0

        regs.pc = (pc + info.length - skew) & ADDRESS_MASK
        enable_after = self.ei_pending
        self.last_opcode = info

        cycles = self._execute(info, immediate)

        if enable_after and self.ei_pending:
            self.ei_pending = False
            self.interrupts.set_master_enable(True)
        self.instruction_count += 1
        return cycles

    # ------------------------------------------------------------------ #
    # Execute
    # ------------------------------------------------------------------ #
    def _execute(self, info: OpcodeInfo, imm: int) -> int:
        regs = self.regs
        operands = info.operands
        cycles = info.cycles

        match info.operation:
            case Operation.NOP:
                pass
            case Operation.STOP:
                self.stopped = True
                self.bus.write(DIV_ADDRESS, 0)
            case Operation.HALT:
                if not self.ime and self.interrupts.has_pending():
                    self.halt_bug = True
                else:
                    self.halted = True
            case Operation.DI:
                self.interrupts.set_master_enable(False)
                self.ei_pending = False
            case Operation.EI:
                self.ei_pending = True
            case Operation.LD8:
                dst, src = operands
                self._write_operand(str(dst), imm, self._read_operand(str(src), imm))
            case Operation.LD16:
                setattr(regs, str(operands[0]).lower(), imm)
            case Operation.LD_A16_SP:
                self.bus.write(imm, regs.sp & 0xFF)
                self.bus.write((imm + 1) & ADDRESS_MASK, regs.sp >> 8)
            case Operation.LD_SP_HL:
                regs.sp = regs.hl
            case Operation.LD_HL_SP_E:
                regs.hl = self._sp_plus_offset(imm)
            case Operation.ADD_SP_E:
                regs.sp = self._sp_plus_offset(imm)
            case Operation.PUSH:
                self._push(getattr(regs, str(operands[0]).lower()))
            case Operation.POP:
                setattr(regs, str(operands[0]).lower(), self._pop())
            case Operation.INC8:
                target = str(operands[0])
                value = self._read_operand(target, imm)
                result = (value + 1) & 0xFF
                regs.set_flags(z=result == 0, n=False, h=(value & 0x0F) == 0x0F)
                self._write_operand(target, imm, result)
            case Operation.DEC8:
                target = str(operands[0])
                value = self._read_operand(target, imm)
                result = (value - 1) & 0xFF
                regs.set_flags(z=result == 0, n=True, h=(value & 0x0F) == 0)
                self._write_operand(target, imm, result)
            case Operation.INC16:
                name = str(operands[0]).lower()
                setattr(regs, name, (getattr(regs, name) + 1) & 0xFFFF)
            case Operation.DEC16:
                name = str(operands[0]).lower()
                setattr(regs, name, (getattr(regs, name) - 1) & 0xFFFF)
            case Operation.ALU:
                value = self._read_operand(str(operands[1]), imm)
                self._alu(AluOp(operands[0]), value)
            case Operation.ADD_HL:
                hl = regs.hl
                value = getattr(regs, str(operands[0]).lower())
                result = hl + value
                regs.set_flags(
                    n=False,
                    h=(hl & 0x0FFF) + (value & 0x0FFF) > 0x0FFF,
                    c=result > 0xFFFF,
                )
                regs.hl = result & 0xFFFF
            case Operation.RLCA:
                regs.a = self._rotate(RotateOp.RLC, regs.a)
                regs.set_flag(Flag.Z, False)
            case Operation.RRCA:
                regs.a = self._rotate(RotateOp.RRC, regs.a)
                regs.set_flag(Flag.Z, False)
            case Operation.RLA:
                regs.a = self._rotate(RotateOp.RL, regs.a)
                regs.set_flag(Flag.Z, False)
            case Operation.RRA:
                regs.a = self._rotate(RotateOp.RR, regs.a)
                regs.set_flag(Flag.Z, False)
            case Operation.DAA:
                self._daa()
            case Operation.CPL:
                regs.a ^= 0xFF
                regs.set_flags(n=True, h=True)
            case Operation.SCF:
                regs.set_flags(n=False, h=False, c=True)
            case Operation.CCF:
                regs.set_flags(n=False, h=False, c=not regs.flag(Flag.C))
            case Operation.JP:
                if self._condition_met(info.condition):
                    regs.pc = imm
                    cycles = info.cycles_taken or cycles
            case Operation.JP_HL:
                regs.pc = regs.hl
            case Operation.JR:
                if self._condition_met(info.condition):
                    regs.pc = (regs.pc + _signed8(imm)) & ADDRESS_MASK
                    cycles = info.cycles_taken or cycles
            case Operation.CALL:
                if self._condition_met(info.condition):
                    self._push(regs.pc)
                    regs.pc = imm
                    cycles = info.cycles_taken or cycles
            case Operation.RET:
                if self._condition_met(info.condition):
                    regs.pc = self._pop()
                    cycles = info.cycles_taken or cycles
            case Operation.RETI:
                regs.pc = self._pop()
                self.interrupts.set_master_enable(True)
            case Operation.RST:
                self._push(regs.pc)
                regs.pc = int(operands[0])
            case Operation.ROTATE:
                target = str(operands[1])
                value = self._read_operand(target, imm)
                result = self._rotate(RotateOp(operands[0]), value)
                self._write_operand(target, imm, result)
            case Operation.BIT:
                bit = int(operands[0])
                value = self._read_operand(str(operands[1]), imm)
                regs.set_flags(z=not value & (1 << bit), n=False, h=True)
            case Operation.RES:
                bit, target = int(operands[0]), str(operands[1])
                value = self._read_operand(target, imm)
                self._write_operand(target, imm, value & ~(1 << bit) & 0xFF)
            case Operation.SET:
                bit, target = int(operands[0]), str(operands[1])
                value = self._read_operand(target, imm)
                self._write_operand(target, imm, value | (1 << bit))
            case Operation.PREFIX:
                raise AssertionError("CB prefix is resolved during decode")

        return cycles

    # ------------------------------------------------------------------ #
    # Operand helpers
    # ------------------------------------------------------------------ #
    def _address_of(self, operand: str, imm: int) -> int:
        regs = self.regs
        if operand == "(HL)":
            return regs.hl
        if operand == "(HL+)":
            address = regs.hl
            regs.hl = (address + 1) & 0xFFFF
            return address
        if operand == "(HL-)":
            address = regs.hl
            regs.hl = (address - 1) & 0xFFFF
            return address
        if operand == "(BC)":
            return regs.bc
        if operand == "(DE)":
            return regs.de
        if operand == "(C)":
            return 0xFF00 | regs.c
        if operand == "(a8)":
            return 0xFF00 | (imm & 0xFF)
        if operand == "(a16)":
            return imm & ADDRESS_MASK
        raise ValueError(f"Operand {operand!r} is not a memory reference")

    def _read_operand(self, operand: str, imm: int) -> int:
        attr = _REGISTER_ATTRS.get(operand)
        if attr is not None:
            return getattr(self.regs, attr)
        if operand == "d8":
            return imm & 0xFF
        return self.bus.read(self._address_of(operand, imm)) & 0xFF

    def _write_operand(self, operand: str, imm: int, value: int) -> None:
        attr = _REGISTER_ATTRS.get(operand)
        if attr is not None:
            setattr(self.regs, attr, value & 0xFF)
            return
        self.bus.write(self._address_of(operand, imm), value & 0xFF)

    def _condition_met(self, condition: Optional[str]) -> bool:
        if condition is None:
            return True
        flags = self.regs
        if condition == "NZ":
            return not flags.flag(Flag.Z)
        if condition == "Z":
            return flags.flag(Flag.Z)
        if condition == "NC":
            return not flags.flag(Flag.C)
        if condition == "C":
            return flags.flag(Flag.C)
        raise ValueError(f"Unknown condition {condition!r}")

    def _push(self, value: int) -> None:
        regs = self.regs
        regs.sp = (regs.sp - 1) & 0xFFFF
        self.bus.write(regs.sp, (value >> 8) & 0xFF)
        regs.sp = (regs.sp - 1) & 0xFFFF
        self.bus.write(regs.sp, value & 0xFF)

    def _pop(self) -> int:
        regs = self.regs
        low = self.bus.read(regs.sp) & 0xFF
        regs.sp = (regs.sp + 1) & 0xFFFF
        high = self.bus.read(regs.sp) & 0xFF
        regs.sp = (regs.sp + 1) & 0xFFFF
        return (high << 8) | low

    # ------------------------------------------------------------------ #
    # Arithmetic
    # ------------------------------------------------------------------ #
    def _alu(self, op: AluOp, value: int) -> None:
        regs = self.regs
        a = regs.a
        carry_in = 1 if regs.flag(Flag.C) else 0

        match op:
            case AluOp.ADD:
                result = a + value
                regs.set_flags(
                    z=(result & 0xFF) == 0,
                    n=False,
                    h=(a & 0x0F) + (value & 0x0F) > 0x0F,
                    c=result > 0xFF,
                )
                regs.a = result & 0xFF
            case AluOp.ADC:
                result = a + value + carry_in
                regs.set_flags(
                    z=(result & 0xFF) == 0,
                    n=False,
                    h=(a & 0x0F) + (value & 0x0F) + carry_in > 0x0F,
                    c=result > 0xFF,
                )
                regs.a = result & 0xFF
            case AluOp.SUB | AluOp.CP:
                result = a - value
                regs.set_flags(
                    z=(result & 0xFF) == 0,
                    n=True,
                    h=(a & 0x0F) < (value & 0x0F),
                    c=a < value,
                )
                if op is AluOp.SUB:
                    regs.a = result & 0xFF
            case AluOp.SBC:
                result = a - value - carry_in
                regs.set_flags(
                    z=(result & 0xFF) == 0,
                    n=True,
                    h=(a & 0x0F) < (value & 0x0F) + carry_in,
                    c=a < value + carry_in,
                )
                regs.a = result & 0xFF
            case AluOp.AND:
                regs.a = a & value
                regs.set_flags(z=regs.a == 0, n=False, h=True, c=False)
            case AluOp.XOR:
                regs.a = (a ^ value) & 0xFF
                regs.set_flags(z=regs.a == 0, n=False, h=False, c=False)
            case AluOp.OR:
                regs.a = (a | value) & 0xFF
                regs.set_flags(z=regs.a == 0, n=False, h=False, c=False)

    def _rotate(self, op: RotateOp, value: int) -> int:
        carry_in = 1 if self.regs.flag(Flag.C) else 0

        match op:
            case RotateOp.RLC:
                carry = value >> 7
                result = ((value << 1) | carry) & 0xFF
            case RotateOp.RRC:
                carry = value & 1
                result = (value >> 1) | (carry << 7)
            case RotateOp.RL:
                carry = value >> 7
                result = ((value << 1) | carry_in) & 0xFF
            case RotateOp.RR:
                carry = value & 1
                result = (value >> 1) | (carry_in << 7)
            case RotateOp.SLA:
                carry = value >> 7
                result = (value << 1) & 0xFF
            case RotateOp.SRA:
                carry = value & 1
                result = (value >> 1) | (value & 0x80)
            case RotateOp.SWAP:
                carry = 0
                result = ((value << 4) | (value >> 4)) & 0xFF
            case RotateOp.SRL:
                carry = value & 1
                result = value >> 1

        self.regs.set_flags(z=result == 0, n=False, h=False, c=bool(carry))
        return result

    def _sp_plus_offset(self, imm: int) -> int:
        # Flags come from the unsigned low-byte addition.
        sp = self.regs.sp
        self.regs.set_flags(
            z=False,
            n=False,
            h=(sp & 0x0F) + (imm & 0x0F) > 0x0F,
            c=(sp & 0xFF) + (imm & 0xFF) > 0xFF,
        )
        return (sp + _signed8(imm)) & 0xFFFF

    def _daa(self) -> None:
        regs = self.regs
        a = regs.a
        carry = regs.flag(Flag.C)
        adjust = 0
        if not regs.flag(Flag.N):
            if regs.flag(Flag.H) or (a & 0x0F) > 0x09:
                adjust |= 0x06
            if carry or a > 0x99:
                adjust |= 0x60
                carry = True
            a = (a + adjust) & 0xFF
        else:
            if regs.flag(Flag.H):
                adjust |= 0x06
            if carry:
                adjust |= 0x60
            a = (a - adjust) & 0xFF
        regs.a = a
        regs.set_flags(z=a == 0, h=False, c=carry)


__all__ = ["Bus", "CPU", "Clock", "UnimplementedOpcode"]
