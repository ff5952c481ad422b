"""Comparison engine: carve one function out of each binary, render both, diff the lines."""

import difflib
import logging
from dataclasses import dataclass

from rebuild_comparer.analyzers.address_map import RebuiltSide, ReferenceSide
from rebuild_comparer.analyzers.disasm import render
from rebuild_comparer.errors import (
    ComparerError,
    MissingSizeError,
    RequiredSizeError,
    SymbolNotFoundError,
)
from rebuild_comparer.models import (
    CompareResult,
    DiffLine,
    DiffTag,
    DisasmOpts,
    FunctionDefinition,
    FunctionReport,
    FunctionSymbol,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionPlan:
    """Resolved lengths for both sides, fixed before any bytes are read."""

    orig_size: int | None
    new_size: int | None


def plan_extraction(
    name: str,
    orig_fn: FunctionDefinition | None,
    new_fn: FunctionSymbol | None,
    truncate_to_original: bool = False,
) -> ExtractionPlan:
    """Byte counts to disassemble on each side (None = side absent)."""
    if truncate_to_original and (orig_fn is None or orig_fn.size is None):
        raise RequiredSizeError(name)
    orig_size = None
    if orig_fn is not None:
        if orig_fn.size is not None:
            orig_size = orig_fn.size
        elif new_fn is not None:
            orig_size = new_fn.size
        else:
            raise MissingSizeError(name)
    new_size = None
    if new_fn is not None:
        new_size = orig_fn.size if truncate_to_original else new_fn.size
    return ExtractionPlan(orig_size=orig_size, new_size=new_size)


def diff_texts(orig_asm: str, new_asm: str, fromfile: str = "orig.asm", tofile: str = "compare.asm") -> CompareResult:
    """Line diff of two rendered texts; ratio is 2*M/T over the instruction lines."""
    a = orig_asm.splitlines()
    b = new_asm.splitlines()
    matcher = difflib.SequenceMatcher(None, a, b, autojunk=False)
    matching = sum(block.size for block in matcher.get_matching_blocks())
    diff_lines: list[DiffLine] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            diff_lines.extend(DiffLine(tag=DiffTag.EQUAL, text=line) for line in a[i1:i2])
            continue
        diff_lines.extend(DiffLine(tag=DiffTag.DELETE, text=line) for line in a[i1:i2])
        diff_lines.extend(DiffLine(tag=DiffTag.INSERT, text=line) for line in b[j1:j2])
    unified = "\n".join(difflib.unified_diff(a, b, fromfile=fromfile, tofile=tofile, lineterm=""))
    return CompareResult(
        orig_asm=orig_asm,
        new_asm=new_asm,
        unified_diff=unified + "\n" if unified else "",
        match_ratio=matcher.ratio(),
        matching_lines=matching,
        total_lines=len(a) + len(b),
        diff_lines=diff_lines,
    )


def compare(
    name: str,
    reference: ReferenceSide,
    rebuilt: RebuiltSide,
    opts: DisasmOpts,
    truncate_to_original: bool = False,
    resolve_thunks: bool = False,
) -> CompareResult:
    """
    Compare ``name`` between the two binaries.
    A side that does not know the function renders as empty text; at least
    one side must know it.
    """
    orig_fn = reference.functions.get(name)
    new_fn = rebuilt.symbols.get(name)
    if orig_fn is None and new_fn is None:
        raise SymbolNotFoundError(name)

    plan = plan_extraction(name, orig_fn, new_fn, truncate_to_original)

    orig_code = b""
    new_code = b""
    if orig_fn is not None and plan.orig_size is not None:
        orig_code = reference.image.slice(name, reference.file_offset(orig_fn), plan.orig_size)
    if new_fn is not None and plan.new_size is not None:
        new_code = rebuilt.image.slice(name, rebuilt.file_offset(new_fn), plan.new_size)

    orig_asm = ""
    if orig_fn is not None:
        orig_map = reference.thunk_map(orig_code, orig_fn.addr) if resolve_thunks else reference.addr_map
        orig_asm = render(orig_code, orig_fn.addr, opts, orig_map)
    new_asm = ""
    if new_fn is not None:
        new_addr = rebuilt.virtual_address(new_fn)
        new_map = rebuilt.thunk_map(new_code, new_addr) if resolve_thunks else rebuilt.addr_map
        new_asm = render(new_code, new_addr, opts, new_map)

    return diff_texts(orig_asm, new_asm)


def sweep_function_names(reference: ReferenceSide, rebuilt: RebuiltSide) -> list[str]:
    """Config order first, then debug-only names sorted."""
    names = list(reference.functions)
    names.extend(sorted(n for n in rebuilt.symbols if n not in reference.functions))
    return names


def compare_all(
    reference: ReferenceSide,
    rebuilt: RebuiltSide,
    opts: DisasmOpts,
    truncate_to_original: bool = False,
    resolve_thunks: bool = False,
) -> list[FunctionReport]:
    """Compare every known function; per-function failures are logged and recorded, never raised."""
    reports: list[FunctionReport] = []
    for name in sweep_function_names(reference, rebuilt):
        orig_fn = reference.functions.get(name)
        new_fn = rebuilt.symbols.get(name)
        if new_fn is None:
            logger.warning("Function '%s' was not found in the debug file.", name)
        result: CompareResult | None = None
        error: str | None = None
        try:
            result = compare(name, reference, rebuilt, opts, truncate_to_original, resolve_thunks)
        except ComparerError as e:
            logger.warning("%s", e)
            error = str(e)
        reports.append(
            FunctionReport(
                fn_name=name,
                file=new_fn.source_file if new_fn else "",
                new_addr=new_fn.offset if new_fn else None,
                new_size=new_fn.size if new_fn else None,
                orig_addr=orig_fn.addr if orig_fn else None,
                orig_size=orig_fn.size if orig_fn else None,
                compare_result=result,
                error=error,
            )
        )
    return reports
