"""Function symbol extraction from debug information (deterministic, one pass per run)."""

import logging
import re

from rebuild_comparer.debuginfo import DebugInfoSource
from rebuild_comparer.models import UNKNOWN_SOURCE, FunctionSymbol, RawFunction

logger = logging.getLogger(__name__)

# Reserved header region in front of the code section as seen by the PDB
PDB_SECTION_PREAMBLE = 0xC00
# Debug-file offsets + this = the rebuilt binary's apparent virtual addresses
PDB_SEGMENT_OFFSET = 0x0040_0C00

# Base name ends where the compiler's parameter/overload decoration starts
_BASE_NAME = re.compile(r"[^@(]+")


def demangle_function_name(name: str) -> str:
    """``foo@@YAXXZ(int)`` -> ``foo``. Keeps the raw name when nothing matches."""
    m = _BASE_NAME.search(name)
    return m.group(0) if m else name


def to_function_symbol(raw: RawFunction) -> FunctionSymbol:
    end = raw.end_rva if raw.end_rva is not None else raw.start_rva
    return FunctionSymbol(
        name=demangle_function_name(raw.name or ""),
        source_file=raw.source_file or UNKNOWN_SOURCE,
        offset=raw.start_rva - PDB_SECTION_PREAMBLE,
        size=max(end - raw.start_rva, 0),
    )


def extract_function_symbols(source: DebugInfoSource) -> dict[str, FunctionSymbol]:
    """
    Map demangled name -> symbol for every named function in ``source``.
    Unnamed records are skipped; a later record with the same demangled name
    replaces the earlier one.
    """
    symbols: dict[str, FunctionSymbol] = {}
    for raw in source.functions():
        if not raw.name:
            continue
        if raw.start_rva < PDB_SECTION_PREAMBLE:
            logger.warning("Skipping %s: RVA 0x%X lies inside the section preamble", raw.name, raw.start_rva)
            continue
        sym = to_function_symbol(raw)
        key = sym.name
        if key in symbols:
            logger.debug("Duplicate function name %s in %s; keeping the later symbol", key, source.path)
        symbols[key] = sym
    return symbols
