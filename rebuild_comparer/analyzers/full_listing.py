"""Full-binary listings: every configured function rendered one after another."""

import logging
from typing import TextIO

from rebuild_comparer.analyzers.address_map import RebuiltSide, ReferenceSide
from rebuild_comparer.analyzers.disasm import render
from rebuild_comparer.config import ComparerConfig
from rebuild_comparer.errors import ComparerError
from rebuild_comparer.hexfmt import hex_addr
from rebuild_comparer.models import DisasmOpts

logger = logging.getLogger(__name__)


def function_head(name: str, size: int) -> str:
    return f"\n;\n; {name}\n; size: {hex_addr(size)}\n;\n\n"


def write_reference_listing(
    out: TextIO,
    reference: ReferenceSide,
    cfg: ComparerConfig,
    opts: DisasmOpts,
) -> int:
    """Render every config function that declares a size. Returns the number written."""
    written = 0
    for func in cfg.func:
        if func.size is None:
            logger.warning("Skipping '%s' because no size was defined.", func.name)
            continue
        try:
            code = reference.image.slice(func.name, reference.file_offset(func), func.size)
            text = render(code, func.addr, opts, reference.addr_map)
        except ComparerError as e:
            logger.warning("%s", e)
            continue
        out.write(function_head(func.name, func.size))
        out.write(text)
        written += 1
    return written


def write_rebuilt_listing(
    out: TextIO,
    rebuilt: RebuiltSide,
    cfg: ComparerConfig,
    opts: DisasmOpts,
    truncate_to_original: bool = False,
) -> int:
    """Render every config function found in the debug file, at its debug offset."""
    remaining = dict(rebuilt.symbols)
    written = 0
    for func in cfg.func:
        sym = remaining.pop(func.name, None)
        if sym is None:
            logger.warning("Function '%s' was not found in the debug file.", func.name)
            continue
        size = sym.size
        if truncate_to_original:
            if func.size is not None:
                size = func.size
            else:
                logger.warning(
                    "No size defined for the original function '%s', using the debug file size instead.", func.name
                )
        try:
            code = rebuilt.image.slice(func.name, rebuilt.file_offset(sym), size)
            text = render(code, rebuilt.virtual_address(sym), opts, rebuilt.addr_map)
        except ComparerError as e:
            logger.warning("%s", e)
            continue
        out.write(function_head(func.name, sym.size))
        out.write(text)
        written += 1
    for name in sorted(remaining):
        logger.warning("Function '%s' was not found in the config.", name)
    return written
