"""Decoder: maps fetched CHOP-8 words onto verified operation keys.

Architecture:
    word -> Decoder.decode -> DecodeResult(key, fields) -> Registry -> Execute

The top nibble selects one of 16 instruction families; within a family
the remaining fields pick the exact operation. Anything that does not
match a defined case decodes to Op.INVALID.

Field layout of a word:
    F X Y N
    |  \\__/   kk  = low byte
    |   nnn        = low 12 bits
    family
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Op(str, Enum):
    """Operation keys understood by the instruction registry."""
    CLS = "OP_CLS"
    RET = "OP_RET"
    JP = "OP_JP"
    CALL = "OP_CALL"
    SE_IMM = "OP_SE_IMM"
    SNE_IMM = "OP_SNE_IMM"
    SE_REG = "OP_SE_REG"
    LD_IMM = "OP_LD_IMM"
    ADD_IMM = "OP_ADD_IMM"
    LD_REG = "OP_LD_REG"
    OR = "OP_OR"
    AND = "OP_AND"
    XOR = "OP_XOR"
    ADD_REG = "OP_ADD_REG"
    SUB = "OP_SUB"
    SHR = "OP_SHR"
    SUBN = "OP_SUBN"
    SHL = "OP_SHL"
    SNE_REG = "OP_SNE_REG"
    LD_I = "OP_LD_I"
    JP_V0 = "OP_JP_V0"
    RND = "OP_RND"
    DRW = "OP_DRW"
    SKP = "OP_SKP"
    SKNP = "OP_SKNP"
    LD_VX_DT = "OP_LD_VX_DT"
    LD_VX_K = "OP_LD_VX_K"
    LD_DT_VX = "OP_LD_DT_VX"
    LD_ST_VX = "OP_LD_ST_VX"
    ADD_I = "OP_ADD_I"
    LD_F = "OP_LD_F"
    LD_B = "OP_LD_B"
    LD_I_VX = "OP_LD_I_VX"
    LD_VX_I = "OP_LD_VX_I"
    INVALID = "OP_INVALID"


@dataclass
class DecodeResult:
    """Result of decoding one word.

    Attributes:
        key: Operation key
        opcode: Raw 16-bit word
        address: Address the word was fetched from
        valid: Whether decode succeeded
        error: Error message if decode failed
    """
    key: Op
    opcode: int
    address: int = 0
    valid: bool = True
    error: Optional[str] = None

    @property
    def family(self) -> int:
        return (self.opcode >> 12) & 0xF

    @property
    def nnn(self) -> int:
        return self.opcode & 0xFFF

    @property
    def x(self) -> int:
        return (self.opcode >> 8) & 0xF

    @property
    def y(self) -> int:
        return (self.opcode >> 4) & 0xF

    @property
    def n(self) -> int:
        return self.opcode & 0xF

    @property
    def kk(self) -> int:
        return self.opcode & 0xFF


# Sub-dispatch tables for the families keyed by a low field
_ARITHMETIC_OPS = {
    0x0: Op.LD_REG,
    0x1: Op.OR,
    0x2: Op.AND,
    0x3: Op.XOR,
    0x4: Op.ADD_REG,
    0x5: Op.SUB,
    0x6: Op.SHR,
    0x7: Op.SUBN,
    0xE: Op.SHL,
}

_KEY_OPS = {
    0x9E: Op.SKP,
    0xA1: Op.SKNP,
}

_MISC_OPS = {
    0x07: Op.LD_VX_DT,
    0x0A: Op.LD_VX_K,
    0x15: Op.LD_DT_VX,
    0x18: Op.LD_ST_VX,
    0x1E: Op.ADD_I,
    0x29: Op.LD_F,
    0x33: Op.LD_B,
    0x55: Op.LD_I_VX,
    0x65: Op.LD_VX_I,
}

# Families whose operation is fully determined by the top nibble
_SIMPLE_OPS = {
    0x1: Op.JP,
    0x2: Op.CALL,
    0x3: Op.SE_IMM,
    0x4: Op.SNE_IMM,
    0x6: Op.LD_IMM,
    0x7: Op.ADD_IMM,
    0xA: Op.LD_I,
    0xB: Op.JP_V0,
    0xC: Op.RND,
    0xD: Op.DRW,
}

_MNEMONICS = {
    Op.CLS: "CLS",
    Op.RET: "RET",
    Op.JP: "JP 0x{nnn:03X}",
    Op.CALL: "CALL 0x{nnn:03X}",
    Op.SE_IMM: "SE V{x:X}, 0x{kk:02X}",
    Op.SNE_IMM: "SNE V{x:X}, 0x{kk:02X}",
    Op.SE_REG: "SE V{x:X}, V{y:X}",
    Op.LD_IMM: "LD V{x:X}, 0x{kk:02X}",
    Op.ADD_IMM: "ADD V{x:X}, 0x{kk:02X}",
    Op.LD_REG: "LD V{x:X}, V{y:X}",
    Op.OR: "OR V{x:X}, V{y:X}",
    Op.AND: "AND V{x:X}, V{y:X}",
    Op.XOR: "XOR V{x:X}, V{y:X}",
    Op.ADD_REG: "ADD V{x:X}, V{y:X}",
    Op.SUB: "SUB V{x:X}, V{y:X}",
    Op.SHR: "SHR V{x:X}, V{y:X}",
    Op.SUBN: "SUBN V{x:X}, V{y:X}",
    Op.SHL: "SHL V{x:X}, V{y:X}",
    Op.SNE_REG: "SNE V{x:X}, V{y:X}",
    Op.LD_I: "LD I, 0x{nnn:03X}",
    Op.JP_V0: "JP V0, 0x{nnn:03X}",
    Op.RND: "RND V{x:X}, 0x{kk:02X}",
    Op.DRW: "DRW V{x:X}, V{y:X}, {n}",
    Op.SKP: "SKP V{x:X}",
    Op.SKNP: "SKNP V{x:X}",
    Op.LD_VX_DT: "LD V{x:X}, DT",
    Op.LD_VX_K: "LD V{x:X}, K",
    Op.LD_DT_VX: "LD DT, V{x:X}",
    Op.LD_ST_VX: "LD ST, V{x:X}",
    Op.ADD_I: "ADD I, V{x:X}",
    Op.LD_F: "LD F, V{x:X}",
    Op.LD_B: "LD B, V{x:X}",
    Op.LD_I_VX: "LD [I], V{x:X}",
    Op.LD_VX_I: "LD V{x:X}, [I]",
}


class Decoder:
    """Bit-pattern decoder for CHOP-8 instruction words."""

    def decode(self, opcode: int, address: int = 0) -> DecodeResult:
        """Decode a word to an operation key.

        Args:
            opcode: 16-bit instruction word
            address: Address the word was fetched from

        Returns:
            DecodeResult; key is Op.INVALID when nothing matches
        """
        opcode &= 0xFFFF
        key = self._match(opcode)

        if key is Op.INVALID:
            return DecodeResult(
                Op.INVALID,
                opcode,
                address,
                valid=False,
                error=f"Invalid opcode 0x{opcode:04X}",
            )
        return DecodeResult(key, opcode, address)

    def _match(self, opcode: int) -> Op:
        family = (opcode >> 12) & 0xF
        n = opcode & 0xF
        kk = opcode & 0xFF

        if family in _SIMPLE_OPS:
            return _SIMPLE_OPS[family]

        if family == 0x0:
            if opcode == 0x00E0:
                return Op.CLS
            if opcode == 0x00EE:
                return Op.RET
            return Op.INVALID

        if family == 0x5:
            return Op.SE_REG if n == 0 else Op.INVALID

        if family == 0x8:
            return _ARITHMETIC_OPS.get(n, Op.INVALID)

        if family == 0x9:
            return Op.SNE_REG if n == 0 else Op.INVALID

        if family == 0xE:
            return _KEY_OPS.get(kk, Op.INVALID)

        # family == 0xF
        return _MISC_OPS.get(kk, Op.INVALID)

    def mnemonic(self, result: DecodeResult) -> str:
        """Render a decoded instruction in assembler notation."""
        if result.key is Op.INVALID:
            return f"DW 0x{result.opcode:04X}"
        return _MNEMONICS[result.key].format(
            nnn=result.nnn, x=result.x, y=result.y, n=result.n, kk=result.kk
        )
