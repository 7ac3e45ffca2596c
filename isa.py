"""ISA: E20 instruction encodings and helpers.

Every instruction is one 16-bit word. The top three bits select the opcode,
the remaining fields sit at fixed bit positions:

    ALU   ooo aaa bbb ddd ffff     (regA, regB, regDst, func)
    RRI   ooo aaa bbb iiiiiii      (regA, regB/regDst, imm7)
    IMM13 ooo iiiiiiiiiiiii        (imm13)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

NUM_REGS = 8
MEM_SIZE = 1 << 13  # 8192 words
WORD_MASK = 0xFFFF
ADDR_MASK = MEM_SIZE - 1  # 0x1FFF
RA_REG = 7  # JAL link register


class DecodeError(Exception):
    """Raised when an instruction word cannot be decoded."""

    def __init__(self, opcode: int, pc: int | None = None) -> None:
        self.opcode = opcode
        self.pc = pc
        where = f" at pc={pc}" if pc is not None else ""
        super().__init__(f"Unknown opcode: {opcode}{where}")


class OpCode(IntEnum):
    """Keeps the eight 3-bit opcodes."""

    ALU = 0b000  # add/sub/or/and/slt/jr, selected by func
    ADDI = 0b001
    J = 0b010
    JAL = 0b011
    LW = 0b100
    SW = 0b101
    JEQ = 0b110
    SLTI = 0b111


class AluFunc(IntEnum):
    """Sub-opcodes (low four bits) of ALU-class instructions."""

    ADD = 0b0000
    SUB = 0b0001
    OR = 0b0010
    AND = 0b0011
    SLT = 0b0100
    JR = 0b1000


def extract_bits(word: int, lo: int, hi: int) -> int:
    """Return bits lo..hi (inclusive, 0 = LSB) of `word`, right-justified."""
    mask = (1 << (hi - lo + 1)) - 1
    return (word >> lo) & mask


def sign_extend7(value: int) -> int:
    """Sign-extend a 7-bit two's-complement value to a 16-bit word."""
    if value & 0b1000000:
        value |= 0xFF80
    return value & WORD_MASK


def imm7_to_int(imm: int) -> int:
    """Interpret a raw 7-bit immediate as a signed Python int (-64..63)."""
    return imm - 0x80 if imm & 0x40 else imm


# --- decoded instructions ---
@dataclass(frozen=True)
class Instruction:
    """Base of all decoded instructions."""

    word: int

    @property
    def opcode(self) -> OpCode:
        return OpCode(extract_bits(self.word, 13, 15))


@dataclass(frozen=True)
class AluInstr(Instruction):
    reg_a: int
    reg_b: int
    reg_dst: int
    func: int  # raw 4 bits; undefined values are no-ops


@dataclass(frozen=True)
class AddiInstr(Instruction):
    reg_a: int
    reg_dst: int
    imm: int


@dataclass(frozen=True)
class JInstr(Instruction):
    imm: int


@dataclass(frozen=True)
class JalInstr(Instruction):
    imm: int


@dataclass(frozen=True)
class LwInstr(Instruction):
    reg_a: int
    reg_dst: int
    imm: int


@dataclass(frozen=True)
class SwInstr(Instruction):
    reg_a: int
    reg_b: int
    imm: int


@dataclass(frozen=True)
class JeqInstr(Instruction):
    reg_a: int
    reg_b: int
    imm: int


@dataclass(frozen=True)
class SltiInstr(Instruction):
    reg_a: int
    reg_dst: int
    imm: int


def decode_instr(word: int, pc: int | None = None) -> Instruction:
    """Decode one 16-bit word into its instruction variant.

    Raises DecodeError if the opcode field does not name an instruction.
    """
    word &= WORD_MASK
    raw_op = extract_bits(word, 13, 15)
    try:
        op = OpCode(raw_op)
    except ValueError as e:
        raise DecodeError(raw_op, pc) from e

    reg_a = extract_bits(word, 10, 12)
    reg_b = extract_bits(word, 7, 9)
    imm7 = extract_bits(word, 0, 6)
    imm13 = extract_bits(word, 0, 12)

    if op == OpCode.ALU:
        return AluInstr(word, reg_a, reg_b, extract_bits(word, 4, 6), extract_bits(word, 0, 3))
    if op == OpCode.ADDI:
        return AddiInstr(word, reg_a, reg_b, imm7)
    if op == OpCode.J:
        return JInstr(word, imm13)
    if op == OpCode.JAL:
        return JalInstr(word, imm13)
    if op == OpCode.LW:
        return LwInstr(word, reg_a, reg_b, imm7)
    if op == OpCode.SW:
        return SwInstr(word, reg_a, reg_b, imm7)
    if op == OpCode.JEQ:
        return JeqInstr(word, reg_a, reg_b, imm7)
    if op == OpCode.SLTI:
        return SltiInstr(word, reg_a, reg_b, imm7)
    raise DecodeError(raw_op, pc)


# --- encoders ---
def _check_reg(*regs: int) -> None:
    for r in regs:
        if not 0 <= r < NUM_REGS:
            err = f"register index out of range: {r}"
            raise ValueError(err)


def encode_alu(func: AluFunc | int, reg_dst: int, reg_a: int, reg_b: int = 0) -> int:
    """Encode an ALU-class instruction (add/sub/or/and/slt/jr)."""
    _check_reg(reg_dst, reg_a, reg_b)
    if not 0 <= int(func) <= 0xF:
        err = f"ALU func out of range: {func}"
        raise ValueError(err)
    return (OpCode.ALU << 13) | (reg_a << 10) | (reg_b << 7) | (reg_dst << 4) | int(func)


def encode_rri(opcode: OpCode, reg_a: int, reg_b: int, imm: int) -> int:
    """Encode a two-register, 7-bit-immediate instruction.

    `reg_b` is the second field (regDst for ADDI/LW/SLTI, regB for SW/JEQ).
    `imm` is a signed value in -64..63.
    """
    _check_reg(reg_a, reg_b)
    if not -64 <= imm <= 63:
        err = f"7-bit immediate out of range: {imm}"
        raise ValueError(err)
    return (int(opcode) << 13) | (reg_a << 10) | (reg_b << 7) | (imm & 0x7F)


def encode_imm13(opcode: OpCode, imm: int) -> int:
    """Encode J or JAL with a 13-bit absolute address."""
    if not 0 <= imm <= ADDR_MASK:
        err = f"13-bit immediate out of range: {imm}"
        raise ValueError(err)
    return (int(opcode) << 13) | imm


def mnemonic(instr: Instruction) -> str:
    """Get assembler-like text for a decoded instruction."""
    if isinstance(instr, AluInstr):
        if instr.func == AluFunc.JR:
            return f"jr ${instr.reg_a}"
        try:
            name = AluFunc(instr.func).name.lower()
        except ValueError:
            return "nop"
        return f"{name} ${instr.reg_dst}, ${instr.reg_a}, ${instr.reg_b}"
    if isinstance(instr, AddiInstr):
        return f"addi ${instr.reg_dst}, ${instr.reg_a}, {imm7_to_int(instr.imm)}"
    if isinstance(instr, SltiInstr):
        return f"slti ${instr.reg_dst}, ${instr.reg_a}, {imm7_to_int(instr.imm)}"
    if isinstance(instr, LwInstr):
        return f"lw ${instr.reg_dst}, {imm7_to_int(instr.imm)}(${instr.reg_a})"
    if isinstance(instr, SwInstr):
        return f"sw ${instr.reg_b}, {imm7_to_int(instr.imm)}(${instr.reg_a})"
    if isinstance(instr, JeqInstr):
        return f"jeq ${instr.reg_a}, ${instr.reg_b}, {imm7_to_int(instr.imm)}"
    if isinstance(instr, JInstr):
        return f"j {instr.imm}"
    if isinstance(instr, JalInstr):
        return f"jal {instr.imm}"
    return instr.opcode.name
