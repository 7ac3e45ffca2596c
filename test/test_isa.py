"""Tests for bit-field helpers, decoding, encoding and mnemonics."""

from __future__ import annotations

import pytest
from isa import (
    AddiInstr,
    AluFunc,
    AluInstr,
    JalInstr,
    JeqInstr,
    JInstr,
    LwInstr,
    OpCode,
    SltiInstr,
    SwInstr,
    decode_instr,
    encode_alu,
    encode_imm13,
    encode_rri,
    extract_bits,
    imm7_to_int,
    mnemonic,
    sign_extend7,
)


def test_extract_bits() -> None:
    word = 0b1100010000000011
    assert extract_bits(word, 13, 15) == 0b110
    assert extract_bits(word, 10, 12) == 0b001
    assert extract_bits(word, 0, 6) == 3
    assert extract_bits(word, 0, 15) == word
    assert extract_bits(word, 15, 15) == 1


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0, 0), (5, 5), (63, 63), (0b1000000, 0xFFC0), (0b1111111, 0xFFFF)],
)
def test_sign_extend7(value: int, expected: int) -> None:
    assert sign_extend7(value) == expected


def test_imm7_to_int() -> None:
    assert imm7_to_int(0b1000000) == -64
    assert imm7_to_int(0b1111111) == -1
    assert imm7_to_int(0b0111111) == 63


def test_decode_every_opcode_variant() -> None:
    """Each 3-bit opcode value decodes into its own instruction type."""
    kinds = {
        OpCode.ALU: AluInstr,
        OpCode.ADDI: AddiInstr,
        OpCode.J: JInstr,
        OpCode.JAL: JalInstr,
        OpCode.LW: LwInstr,
        OpCode.SW: SwInstr,
        OpCode.JEQ: JeqInstr,
        OpCode.SLTI: SltiInstr,
    }
    for op, cls in kinds.items():
        instr = decode_instr(int(op) << 13)
        assert type(instr) is cls
        assert instr.opcode == op


def test_decode_fields() -> None:
    alu = decode_instr(0b0000010100110000)
    assert alu == AluInstr(0b0000010100110000, reg_a=1, reg_b=2, reg_dst=3, func=AluFunc.ADD)

    addi = decode_instr(0b0010000011000000)
    assert isinstance(addi, AddiInstr)
    assert (addi.reg_a, addi.reg_dst, addi.imm) == (0, 1, 0b1000000)

    sw = decode_instr(0b1010000100010100)
    assert isinstance(sw, SwInstr)
    assert (sw.reg_a, sw.reg_b, sw.imm) == (0, 2, 20)

    j = decode_instr(0b0101111111111111)
    assert isinstance(j, JInstr)
    assert j.imm == 8191


def test_encoders_match_hand_assembled_words() -> None:
    assert encode_rri(OpCode.ADDI, 0, 1, 5) == 0x2085
    assert encode_rri(OpCode.ADDI, 0, 1, -64) == 0x20C0
    assert encode_alu(AluFunc.ADD, 3, 1, 2) == 0x0530
    assert encode_alu(AluFunc.JR, 0, 7) == 0x1C08
    assert encode_rri(OpCode.JEQ, 1, 0, 3) == 0xC403
    assert encode_imm13(OpCode.J, 3) == 0x4003
    assert encode_imm13(OpCode.JAL, 11) == 0x600B


def test_encoders_reject_out_of_range_fields() -> None:
    with pytest.raises(ValueError):
        encode_rri(OpCode.ADDI, 0, 1, 64)
    with pytest.raises(ValueError):
        encode_rri(OpCode.ADDI, 8, 1, 0)
    with pytest.raises(ValueError):
        encode_imm13(OpCode.J, 8192)
    with pytest.raises(ValueError):
        encode_alu(16, 1, 1, 1)


@pytest.mark.parametrize(
    ("word", "text"),
    [
        (0x0530, "add $3, $1, $2"),
        (encode_alu(AluFunc.SUB, 1, 2, 3), "sub $1, $2, $3"),
        (encode_alu(AluFunc.SLT, 4, 5, 6), "slt $4, $5, $6"),
        (0x1C08, "jr $7"),
        (encode_alu(0b0101, 1, 1, 1), "nop"),
        (0x20C0, "addi $1, $0, -64"),
        (encode_rri(OpCode.LW, 1, 2, 5), "lw $2, 5($1)"),
        (encode_rri(OpCode.SW, 1, 2, -3), "sw $2, -3($1)"),
        (encode_rri(OpCode.JEQ, 1, 2, -1), "jeq $1, $2, -1"),
        (encode_rri(OpCode.SLTI, 2, 1, 3), "slti $1, $2, 3"),
        (0x4003, "j 3"),
        (0x600B, "jal 11"),
    ],
)
def test_mnemonic(word: int, text: str) -> None:
    assert mnemonic(decode_instr(word)) == text
