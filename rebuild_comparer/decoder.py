"""x86-32 instruction decoding on top of capstone.

Capstone's instruction objects are converted into small typed records so the
formatter never touches decoder internals. Relative branch immediates are
exposed as raw deltas from the end of the instruction; the formatter derives
targets from the instruction address itself.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

import capstone
from capstone import x86 as cs_x86

from rebuild_comparer.errors import FormatterError

# imm8 encodings sign-extended to the operand size
_SIGN_EXTENDED_IMM8 = {0x6A, 0x6B, 0x83}
# far call/jmp ptr16:32
_FAR_BRANCHES = {0x9A, 0xEA}


class OperandKind(Enum):
    MEMORY = "memory"
    IMMEDIATE = "immediate"
    REGISTER = "register"
    OTHER = "other"


@dataclass(frozen=True)
class Operand:
    kind: OperandKind
    size: int  # bytes
    reg: str = ""
    segment: str = ""
    base: str = ""
    index: str = ""
    scale: int = 1
    disp: int = 0
    has_disp: bool = False
    imm: int = 0
    is_signed: bool = False
    is_relative: bool = False
    is_address: bool = False


@dataclass(frozen=True)
class Instruction:
    address: int
    length: int
    mnemonic: str
    opcode: int
    modrm_reg: int
    operands: tuple[Operand, ...] = field(default_factory=tuple)


def _to_signed(value: int, size: int) -> int:
    bits = size * 8
    value &= (1 << bits) - 1
    return value - (1 << bits) if value & (1 << (bits - 1)) else value


def _is_relative_branch(opcode: list[int]) -> bool:
    op = opcode[0]
    if op in (0xE8, 0xE9, 0xEB) or 0x70 <= op <= 0x7F or 0xE0 <= op <= 0xE3:
        return True
    return op == 0x0F and 0x80 <= opcode[1] <= 0x8F


def _encodes_disp(insn: capstone.CsInsn) -> bool:
    mod = insn.modrm >> 6
    # mod 01 / 10 carry a disp8 / disp32 even when it is zero
    if mod in (1, 2):
        return True
    # mod 00 with a SIB base of 101 has no base register and a disp32
    return mod == 0 and (insn.modrm & 7) == 4 and (insn.sib & 7) == 5


def _reg_name(insn: capstone.CsInsn, reg_id: int) -> str:
    if not reg_id:
        return ""
    return insn.reg_name(reg_id) or ""


def _convert_operand(insn: capstone.CsInsn, op, relative: bool, far: bool, signed_imm: bool) -> Operand:
    size = op.size or 4
    if op.type == cs_x86.X86_OP_REG:
        return Operand(kind=OperandKind.REGISTER, size=size, reg=_reg_name(insn, op.reg))
    if op.type == cs_x86.X86_OP_IMM:
        if relative:
            # capstone reports the resolved target; recover the encoded delta
            delta = _to_signed(op.imm - (insn.address + insn.size), 4)
            return Operand(kind=OperandKind.IMMEDIATE, size=size, imm=delta, is_signed=True, is_relative=True)
        if signed_imm:
            return Operand(kind=OperandKind.IMMEDIATE, size=size, imm=_to_signed(op.imm, size), is_signed=True)
        mask = (1 << (size * 8)) - 1
        return Operand(kind=OperandKind.IMMEDIATE, size=size, imm=op.imm & mask, is_address=far)
    if op.type == cs_x86.X86_OP_MEM:
        mem = op.mem
        base = _reg_name(insn, mem.base)
        index = _reg_name(insn, mem.index)
        if base or index:
            disp = _to_signed(mem.disp, 4)
        else:
            disp = mem.disp & 0xFFFFFFFF
        has_disp = disp != 0 or _encodes_disp(insn)
        return Operand(
            kind=OperandKind.MEMORY,
            size=size,
            segment=_reg_name(insn, mem.segment),
            base=base,
            index=index,
            scale=mem.scale or 1,
            disp=disp,
            has_disp=has_disp,
        )
    return Operand(kind=OperandKind.OTHER, size=size)


def _convert(insn: capstone.CsInsn) -> Instruction:
    opcode = list(insn.opcode)
    relative = _is_relative_branch(opcode)
    far = opcode[0] in _FAR_BRANCHES
    signed_imm = opcode[0] in _SIGN_EXTENDED_IMM8
    return Instruction(
        address=insn.address,
        length=insn.size,
        mnemonic=insn.mnemonic,
        opcode=opcode[0],
        modrm_reg=(insn.modrm >> 3) & 7,
        operands=tuple(_convert_operand(insn, op, relative, far, signed_imm) for op in insn.operands),
    )


def new_disassembler() -> capstone.Cs:
    md = capstone.Cs(capstone.CS_ARCH_X86, capstone.CS_MODE_32)
    md.detail = True
    return md


def decode(code: bytes, base_address: int) -> Iterator[Instruction]:
    """Decode ``code`` as one sequential stream starting at ``base_address``.

    Raises FormatterError at the first byte capstone cannot decode; there is no
    resynchronization past a bad opcode.
    """
    md = new_disassembler()
    consumed = 0
    for insn in md.disasm(bytes(code), base_address):
        consumed = insn.address + insn.size - base_address
        yield _convert(insn)
    if consumed < len(code):
        raise FormatterError(base_address + consumed)
