"""Formatter tests: real capstone decoding of hand-assembled x86-32 bytes."""

import pytest

from rebuild_comparer.analyzers.compare import diff_texts
from rebuild_comparer.analyzers.disasm import render, render_lines
from rebuild_comparer.errors import FormatterError
from rebuild_comparer.models import DisasmOpts, FunctionDefinition

CALL_NOPS_RET = bytes.fromhex("E80B000000") + b"\x90" * 4 + b"\xC3"

SHOW_ALL = DisasmOpts()
HIDE_DISP = DisasmOpts(show_mem_disp=False)
HIDE_IMMS = DisasmOpts(show_imms=False)


def _one(code: bytes, opts: DisasmOpts = SHOW_ALL, base: int = 0x401000, addr_map=None) -> str:
    lines = render_lines(code, base, opts, addr_map or {})
    assert len(lines) == 1
    return lines[0]


def test_unmapped_call_renders_uppercase_hex_target() -> None:
    text = render(CALL_NOPS_RET, 0x401000, SHOW_ALL, {})
    assert text.splitlines() == ["call 0x401010", "nop", "nop", "nop", "nop", "ret"]
    assert text.endswith("\n")


def test_mapped_call_renders_function_name() -> None:
    addr_map = {0x401010: FunctionDefinition(name="target", addr=0x401010)}
    assert render_lines(CALL_NOPS_RET, 0x401000, SHOW_ALL, addr_map)[0] == "call target"


def test_call_name_drops_parameter_decoration() -> None:
    addr_map = {0x401010: FunctionDefinition(name="Unit::Move(int)", addr=0x401010)}
    assert render_lines(CALL_NOPS_RET, 0x401000, SHOW_ALL, addr_map)[0] == "call Unit::Move"


def test_call_target_hex_uses_uppercase_digits() -> None:
    # call +0x1A from 0x401000 -> 0x40101F
    assert _one(bytes.fromhex("E81A000000")) == "call 0x40101F"


def test_print_addresses_prefixes_each_line() -> None:
    lines = render_lines(CALL_NOPS_RET, 0x401000, DisasmOpts(print_addresses=True), {})
    assert lines[0] == "401000: call 0x401010"
    assert lines[1] == "401005: nop"
    assert lines[-1] == "401009: ret"


def test_register_operands() -> None:
    assert _one(b"\x55") == "push ebp"
    assert _one(b"\x8B\xEC") == "mov ebp, esp"


def test_positive_stack_displacement() -> None:
    assert _one(b"\x8B\x45\x08") == "mov eax, dword ptr [ebp + 0x8]"
    assert _one(b"\x8B\x45\x08", HIDE_DISP) == "mov eax, dword ptr [ebp + <disp4>]"


def test_negative_stack_displacement_keeps_sign() -> None:
    assert _one(b"\x8B\x45\xF8") == "mov eax, dword ptr [ebp - 0x8]"
    assert _one(b"\x8B\x45\xF8", HIDE_DISP) == "mov eax, dword ptr [ebp - <disp4>]"


def test_memory_without_displacement_has_no_placeholder() -> None:
    assert _one(b"\x8B\x00") == "mov eax, dword ptr [eax]"
    assert _one(b"\x8B\x00", HIDE_DISP) == "mov eax, dword ptr [eax]"


def test_absolute_memory_operand() -> None:
    code = bytes.fromhex("8B0D78563412")  # mov ecx, [0x12345678]
    assert _one(code) == "mov ecx, dword ptr [0x12345678]"
    assert _one(code, HIDE_DISP) == "mov ecx, dword ptr [<indir_addr>]"


def test_indirect_call_through_memory_is_always_normalized() -> None:
    code = bytes.fromhex("FF1578563412")  # call [0x12345678]
    assert _one(code) == "call dword ptr [<indir_fn>]"
    assert _one(code, HIDE_DISP) == "call dword ptr [<indir_addr>]"


def test_indirect_jump_keeps_literal_slot() -> None:
    # FF /4 is not one of the normalized call forms
    code = bytes.fromhex("FF2578563412")  # jmp [0x12345678]
    assert _one(code) == "jmp dword ptr [0x12345678]"
    assert _one(code, HIDE_DISP) == "jmp dword ptr [<indir_addr>]"


def test_unsigned_immediate() -> None:
    assert _one(bytes.fromhex("B801000000")) == "mov eax, 0x1"
    assert _one(bytes.fromhex("B801000000"), HIDE_IMMS) == "mov eax, <imm4>"


def test_sign_extended_immediate() -> None:
    assert _one(b"\x83\xC4\xF8") == "add esp, -0x8"


def test_push_immediate_hidden() -> None:
    assert _one(bytes.fromhex("6878563412"), HIDE_IMMS) == "push <imm4>"


def test_relative_jumps_render_as_deltas() -> None:
    assert _one(b"\xEB\x02", base=0x1000) == "jmp $+0x2"
    assert _one(b"\xEB\xFE", base=0x1000) == "jmp $-0x2"
    assert _one(b"\x74\x05", base=0x1000) == "je $+0x5"


def test_relative_jump_independent_of_base_address() -> None:
    assert _one(b"\xEB\x10", base=0x401000) == _one(b"\xEB\x10", base=0x402C00)


def test_render_is_deterministic() -> None:
    code = bytes.fromhex("558BEC83EC088B4508E80B000000C9C3")
    addr_map = {0x401014: FunctionDefinition(name="callee", addr=0x401014)}
    first = render(code, 0x401000, SHOW_ALL, addr_map)
    second = render(code, 0x401000, SHOW_ALL, dict(addr_map))
    assert first == second


def test_hidden_immediates_make_streams_equal() -> None:
    a = render(bytes.fromhex("B801000000C3"), 0x401000, HIDE_IMMS, {})
    b = render(bytes.fromhex("B802000000C3"), 0x402C00, HIDE_IMMS, {})
    assert a == b


def test_truncated_instruction_fails_whole_render() -> None:
    with pytest.raises(FormatterError) as exc:
        render(b"\x90\xE8\x00\x00", 0x401000, SHOW_ALL, {})
    assert exc.value.address == 0x401001
    assert "0x401001" in str(exc.value)


def test_empty_code_renders_empty_text() -> None:
    assert render(b"", 0x401000, SHOW_ALL, {}) == ""


def test_virtual_call_keeps_slot_offset() -> None:
    slot_10 = _one(bytes.fromhex("FF5010"))  # call [eax+0x10]
    slot_14 = _one(bytes.fromhex("FF5014"), base=0x402C00)
    assert slot_10 == "call dword ptr [eax + 0x10]"
    assert slot_14 == "call dword ptr [eax + 0x14]"
    assert diff_texts(slot_10 + "\n", slot_14 + "\n").match_ratio == 0.0
    assert _one(bytes.fromhex("FF5010"), HIDE_DISP) == "call dword ptr [eax + <disp4>]"


def test_sib_without_base_always_has_displacement() -> None:
    code = bytes.fromhex("FF148500000000")  # call [eax*4 + 0]
    assert _one(code) == "call dword ptr [eax*4 + 0x0]"
    assert _one(code, HIDE_DISP) == "call dword ptr [eax*4 + <disp4>]"
