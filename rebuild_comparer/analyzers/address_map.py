"""Address/symbol model for the two binaries.

Each side owns its own address map; addresses are only meaningful inside the
binary they came from, so the maps are never merged.
"""

import logging
from pathlib import Path
from typing import Iterable, Mapping

from rebuild_comparer.analyzers.symbols import PDB_SEGMENT_OFFSET
from rebuild_comparer.decoder import decode
from rebuild_comparer.errors import ComparerIOError, FormatterError, OutOfBoundsError
from rebuild_comparer.models import FunctionDefinition, FunctionSymbol

logger = logging.getLogger(__name__)

AddressMap = Mapping[int, FunctionDefinition]

_CALL_REL32 = 0xE8
_JMP_REL32 = 0xE9


def symbol_to_definition(sym: FunctionSymbol, segment_offset: int = PDB_SEGMENT_OFFSET) -> FunctionDefinition:
    return FunctionDefinition(name=sym.name, addr=sym.offset + segment_offset, size=sym.size)


def build_address_map(
    symbols: Mapping[str, FunctionSymbol],
    segment_offset: int = PDB_SEGMENT_OFFSET,
) -> dict[int, FunctionDefinition]:
    """Rebuilt side: key = debug offset + segment offset."""
    out: dict[int, FunctionDefinition] = {}
    for name in sorted(symbols):
        d = symbol_to_definition(symbols[name], segment_offset)
        out[d.addr] = d
    return out


def build_definition_map(definitions: Iterable[FunctionDefinition]) -> dict[int, FunctionDefinition]:
    """Reference side: key = configured address, verbatim."""
    return {d.addr: d for d in definitions}


class BinaryImage:
    """A whole binary file held in memory."""

    def __init__(self, data: bytes, path: str = "<memory>") -> None:
        self.data = data
        self.path = path

    @classmethod
    def from_file(cls, path: Path) -> "BinaryImage":
        try:
            return cls(path.read_bytes(), str(path))
        except OSError as e:
            raise ComparerIOError(str(path), e) from e

    def __len__(self) -> int:
        return len(self.data)

    def slice(self, name: str, offset: int, size: int) -> bytes:
        if offset < 0 or size < 0 or offset + size > len(self.data):
            raise OutOfBoundsError(name, offset, size, len(self.data))
        return self.data[offset : offset + size]


class _Side:
    image: BinaryImage
    addr_map: dict[int, FunctionDefinition]
    # virtual address of file offset 0
    virtual_base: int

    def thunk_map(self, code: bytes, base_address: int) -> dict[int, FunctionDefinition]:
        return resolve_thunks(code, base_address, self.image, self.virtual_base, self.addr_map)


class ReferenceSide(_Side):
    """The original binary: functions come from the config at absolute addresses."""

    def __init__(self, image: BinaryImage, functions: Mapping[str, FunctionDefinition], address_offset: int) -> None:
        self.image = image
        self.functions = dict(functions)
        self.address_offset = address_offset
        self.virtual_base = address_offset
        self.addr_map = build_definition_map(self.functions.values())

    def file_offset(self, func: FunctionDefinition) -> int:
        return func.addr - self.address_offset


class RebuiltSide(_Side):
    """The rebuilt binary: functions come from its debug file at file-relative offsets."""

    def __init__(
        self,
        image: BinaryImage,
        symbols: Mapping[str, FunctionSymbol],
        segment_offset: int = PDB_SEGMENT_OFFSET,
    ) -> None:
        self.image = image
        self.symbols = dict(symbols)
        self.segment_offset = segment_offset
        self.virtual_base = segment_offset
        self.addr_map = build_address_map(self.symbols, segment_offset)

    def file_offset(self, sym: FunctionSymbol) -> int:
        return sym.offset

    def virtual_address(self, sym: FunctionSymbol) -> int:
        return sym.offset + self.segment_offset


def _thunk_destination(image: BinaryImage, virtual_base: int, address: int) -> int | None:
    offset = address - virtual_base
    if offset < 0 or offset + 5 > len(image) or image.data[offset] != _JMP_REL32:
        return None
    try:
        insn = next(decode(image.data[offset : offset + 5], address))
    except (StopIteration, FormatterError):
        return None
    if insn.length != 5:
        return None
    return (address + insn.operands[0].imm + insn.length) & 0xFFFFFFFF


def resolve_thunks(
    code: bytes,
    base_address: int,
    image: BinaryImage,
    virtual_base: int,
    addr_map: AddressMap,
) -> dict[int, FunctionDefinition]:
    """
    Copy of ``addr_map`` extended with incremental-linking thunks.
    A direct call in ``code`` whose target is unmapped but holds a lone
    ``jmp rel32`` to a mapped function gets that function's entry under the
    thunk address.
    """
    out = dict(addr_map)
    for insn in decode(code, base_address):
        if insn.opcode != _CALL_REL32 or not insn.operands:
            continue
        target = (insn.address + insn.operands[0].imm + insn.length) & 0xFFFFFFFF
        if target in out:
            continue
        dest = _thunk_destination(image, virtual_base, target)
        if dest is not None and dest in addr_map:
            logger.debug("Resolved thunk 0x%X -> %s", target, addr_map[dest].name)
            out[target] = addr_map[dest]
    return out
