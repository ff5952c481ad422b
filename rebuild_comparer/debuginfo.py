"""Debug-information readers: raw function records from a rebuilt binary's companion file."""

import errno
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator

import lief

from rebuild_comparer.errors import ComparerIOError, DebugFormatError
from rebuild_comparer.models import RawFunction

logger = logging.getLogger(__name__)


class DebugInfoSource(ABC):
    """Yields the raw function records of one debug-information container."""

    path: str = "<memory>"

    @abstractmethod
    def functions(self) -> Iterator[RawFunction]:
        ...


class PdbDebugInfo(DebugInfoSource):
    """Program database read through LIEF's PDB support."""

    def __init__(self, path: Path) -> None:
        self.path = str(path)
        if not path.is_file():
            raise ComparerIOError(self.path, FileNotFoundError(errno.ENOENT, "No such file or directory", self.path))
        try:
            with path.open("rb"):
                pass
        except OSError as e:
            raise ComparerIOError(self.path, e) from e
        info = lief.pdb.load(self.path)
        if info is None:
            raise DebugFormatError(self.path, "not a readable PDB")
        self._info = info

    def functions(self) -> Iterator[RawFunction]:
        for unit in self._info.compilation_units:
            for func in unit.functions:
                size = func.code_size
                location = func.debug_location
                source_file = getattr(location, "file", "") if location is not None else ""
                yield RawFunction(
                    name=func.name or None,
                    start_rva=func.RVA,
                    end_rva=func.RVA + size if size else None,
                    source_file=source_file or None,
                )


def open_debug_info(path: Path) -> DebugInfoSource:
    """Open the debug file next to a rebuilt binary."""
    logger.debug("Loading debug info from %s", path)
    return PdbDebugInfo(path)


def debug_file_for(binary_path: Path) -> Path:
    return binary_path.with_suffix(".pdb")
