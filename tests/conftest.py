"""Shared fixtures: in-memory debug info and hand-assembled binary images."""

from typing import Callable, Iterator

import pytest

from rebuild_comparer.analyzers.address_map import BinaryImage, RebuiltSide, ReferenceSide
from rebuild_comparer.debuginfo import DebugInfoSource
from rebuild_comparer.models import FunctionDefinition, FunctionSymbol, RawFunction

# call +0x0B; nop x4; ret
CALL_NOPS_RET = bytes.fromhex("E80B000000") + b"\x90" * 4 + b"\xC3"

REF_ADDRESS_OFFSET = 0x400000


class FakeDebugInfo(DebugInfoSource):
    def __init__(self, records: list[RawFunction], path: str = "fake.pdb") -> None:
        self.records = records
        self.path = path

    def functions(self) -> Iterator[RawFunction]:
        return iter(list(self.records))


@pytest.fixture
def fake_debug_info() -> Callable[..., FakeDebugInfo]:
    return FakeDebugInfo


def make_image(size: int, placements: dict[int, bytes], fill: int = 0x90) -> bytes:
    data = bytearray([fill]) * size
    for offset, code in placements.items():
        data[offset : offset + len(code)] = code
    return bytes(data)


@pytest.fixture
def image_factory() -> Callable[..., bytes]:
    return make_image


@pytest.fixture
def reference_side() -> ReferenceSide:
    """Original binary: sub_401000 (size 0x10) calls target at 0x401010."""
    image = make_image(0x2000, {0x1000: CALL_NOPS_RET, 0x1010: b"\xC3"})
    functions = {
        "sub_401000": FunctionDefinition(name="sub_401000", addr=0x401000, size=0x10),
        "target": FunctionDefinition(name="target", addr=0x401010, size=0x1),
    }
    return ReferenceSide(BinaryImage(image), functions, REF_ADDRESS_OFFSET)


@pytest.fixture
def rebuilt_side() -> RebuiltSide:
    """Rebuilt binary: sub_401000 at debug offset 0x2000 (0x402C00), size 0x20, calls target at 0x402C20."""
    code = bytes.fromhex("E81B000000") + b"\x90" * 4 + b"\xC3"
    image = make_image(0x3000, {0x2000: code, 0x2020: b"\xC3"})
    symbols = {
        "sub_401000": FunctionSymbol(name="sub_401000", source_file="src/sub.cpp", offset=0x2000, size=0x20),
        "target": FunctionSymbol(name="target", source_file="src/target.cpp", offset=0x2020, size=0x1),
    }
    return RebuiltSide(BinaryImage(image), symbols)
