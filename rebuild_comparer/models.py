"""Data models for function identities, disassembly options, comparison results and reports."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN_SOURCE = "UNKNOWN"


# --- Function identity ---


class FunctionSymbol(BaseModel):
    """A function known from the rebuilt binary's debug file.

    ``offset`` is file-relative, before the segment correction is applied.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    source_file: str = UNKNOWN_SOURCE
    offset: int
    size: int = 0


class FunctionDefinition(BaseModel):
    """A function declared for the reference binary (absolute virtual address, optional size)."""

    model_config = ConfigDict(frozen=True)

    name: str
    addr: int
    size: int | None = None


class RawFunction(BaseModel):
    """One function record as read from a debug-information container."""

    name: str | None = None
    start_rva: int
    end_rva: int | None = None
    source_file: str | None = None


# --- Disassembly ---


class DisasmOpts(BaseModel):
    """Rendering options; one instance is shared by both sides of a comparison."""

    model_config = ConfigDict(frozen=True)

    print_addresses: bool = False
    show_mem_disp: bool = True
    show_imms: bool = True


# --- Comparison ---


class DiffTag(str, Enum):
    EQUAL = "equal"
    DELETE = "delete"
    INSERT = "insert"


class DiffLine(BaseModel):
    """One row of the side-by-side rendering."""

    tag: DiffTag
    text: str


class CompareResult(BaseModel):
    """Both rendered texts, their unified diff and the line match ratio."""

    orig_asm: str
    new_asm: str
    unified_diff: str
    match_ratio: float = Field(ge=0.0, le=1.0)
    matching_lines: int = 0
    total_lines: int = 0
    diff_lines: list[DiffLine] = Field(default_factory=list)

    @property
    def is_match(self) -> bool:
        return self.match_ratio == 1.0


class OffsetSize(BaseModel):
    """Resolved location of the compared function in the rebuilt binary."""

    model_config = ConfigDict(frozen=True)

    address: int
    size: int


# --- Reports ---


class FunctionReport(BaseModel):
    """One function's entry in a full comparison sweep."""

    fn_name: str
    file: str = ""
    new_addr: int | None = None
    new_size: int | None = None
    orig_addr: int | None = None
    orig_size: int | None = None
    compare_result: CompareResult | None = None
    error: str | None = None

    @property
    def match_ratio(self) -> float:
        return self.compare_result.match_ratio if self.compare_result else 0.0


class PathReport(BaseModel):
    """Functions grouped under one source path, with nested sub-paths."""

    path: str
    match_ratio: float = 0.0
    num_matching_fns: int = 0
    total_fns: int = 0
    functions: list[FunctionReport] = Field(default_factory=list)
    children: list["PathReport"] = Field(default_factory=list)
