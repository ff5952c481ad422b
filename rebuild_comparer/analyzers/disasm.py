"""Selective disassembly: one normalized text line per instruction.

Addresses that differ between two unrelated builds (absolute data addresses,
stack displacements, indirect call slots) can be redacted, and direct call
targets are replaced by function names so calls compare across address spaces.
"""

from dataclasses import dataclass
from typing import Mapping

from rebuild_comparer.analyzers.symbols import demangle_function_name
from rebuild_comparer.decoder import Instruction, Operand, OperandKind, decode
from rebuild_comparer.hexfmt import hex_addr, signed_hex
from rebuild_comparer.models import DisasmOpts, FunctionDefinition

_CALL_REL32 = 0xE8
_GROUP5 = 0xFF  # reg field 2 = call m32, 3 = call far m16:32

_PTR_SIZES = {
    1: "byte",
    2: "word",
    4: "dword",
    6: "fword",
    8: "qword",
    10: "tbyte",
    16: "xmmword",
    32: "ymmword",
}


@dataclass(frozen=True)
class FormatContext:
    """Everything an operand formatter may consult for the current instruction."""

    opts: DisasmOpts
    addr_map: Mapping[int, FunctionDefinition]
    address: int


def _is_indirect_call(insn: Instruction) -> bool:
    return insn.opcode == _GROUP5 and insn.modrm_reg in (2, 3)


def format_memory(insn: Instruction, op: Operand, ctx: FormatContext) -> str:
    show = ctx.opts.show_mem_disp
    if not op.base and not op.index:
        if not show:
            inner = "<indir_addr>"
        elif _is_indirect_call(insn):
            inner = "<indir_fn>"
        else:
            inner = hex_addr(op.disp)
    else:
        parts = []
        if op.base:
            parts.append(op.base)
        if op.index:
            parts.append(op.index if op.scale == 1 else f"{op.index}*{op.scale}")
        inner = " + ".join(parts)
        if op.has_disp:
            sign = "-" if op.disp < 0 else "+"
            if not show:
                value = f"<disp{op.size}>"
            else:
                value = hex_addr(abs(op.disp))
            inner = f"{inner} {sign} {value}"
    segment = f"{op.segment}:" if op.segment else ""
    if insn.mnemonic == "lea":
        return f"{segment}[{inner}]"
    ptr = _PTR_SIZES.get(op.size, f"m{op.size * 8}")
    return f"{ptr} ptr {segment}[{inner}]"


def format_immediate(insn: Instruction, op: Operand, ctx: FormatContext) -> str:
    if insn.opcode == _CALL_REL32:
        target = (ctx.address + op.imm + insn.length) & 0xFFFFFFFF
        func = ctx.addr_map.get(target)
        return demangle_function_name(func.name) if func else hex_addr(target)
    if op.is_relative:
        return "$" + signed_hex(op.imm)
    if op.is_address:
        return hex_addr(op.imm) if ctx.opts.show_imms else "<imm_addr>"
    if not ctx.opts.show_imms:
        return f"<imm{op.size}>"
    if op.imm < 0:
        return "-" + hex_addr(-op.imm)
    return hex_addr(op.imm)


def format_operand(insn: Instruction, op: Operand, ctx: FormatContext) -> str:
    if op.kind is OperandKind.MEMORY:
        return format_memory(insn, op, ctx)
    if op.kind is OperandKind.IMMEDIATE:
        return format_immediate(insn, op, ctx)
    if op.kind is OperandKind.REGISTER:
        return op.reg
    return "?"


def format_instruction(insn: Instruction, opts: DisasmOpts, addr_map: Mapping[int, FunctionDefinition]) -> str:
    ctx = FormatContext(opts=opts, addr_map=addr_map, address=insn.address)
    operands = ", ".join(format_operand(insn, op, ctx) for op in insn.operands)
    text = f"{insn.mnemonic} {operands}" if operands else insn.mnemonic
    if opts.print_addresses:
        return f"{insn.address:X}: {text}"
    return text


def render_lines(
    code: bytes,
    base_address: int,
    opts: DisasmOpts,
    addr_map: Mapping[int, FunctionDefinition],
) -> list[str]:
    return [format_instruction(insn, opts, addr_map) for insn in decode(code, base_address)]


def render(
    code: bytes,
    base_address: int,
    opts: DisasmOpts,
    addr_map: Mapping[int, FunctionDefinition],
) -> str:
    """Disassemble ``code`` at ``base_address``; every line is newline-terminated.

    Raises FormatterError if any instruction fails to decode.
    """
    return "".join(line + "\n" for line in render_lines(code, base_address, opts, addr_map))
