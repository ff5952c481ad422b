"""Deterministic analyzers: symbol extraction, address maps, disassembly, comparison, listings."""

from rebuild_comparer.analyzers.symbols import (
    PDB_SEGMENT_OFFSET,
    demangle_function_name,
    extract_function_symbols,
)
from rebuild_comparer.analyzers.address_map import (
    BinaryImage,
    RebuiltSide,
    ReferenceSide,
    build_address_map,
    build_definition_map,
)
from rebuild_comparer.analyzers.disasm import render
from rebuild_comparer.analyzers.compare import compare, compare_all, diff_texts
from rebuild_comparer.analyzers.full_listing import write_rebuilt_listing, write_reference_listing

__all__ = [
    "PDB_SEGMENT_OFFSET",
    "demangle_function_name",
    "extract_function_symbols",
    "BinaryImage",
    "RebuiltSide",
    "ReferenceSide",
    "build_address_map",
    "build_definition_map",
    "render",
    "compare",
    "compare_all",
    "diff_texts",
    "write_rebuilt_listing",
    "write_reference_listing",
]
