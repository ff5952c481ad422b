"""CLI: compare, generate-full, report."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from rebuild_comparer.analyzers import (
    BinaryImage,
    RebuiltSide,
    ReferenceSide,
    compare_all,
    extract_function_symbols,
    write_rebuilt_listing,
    write_reference_listing,
)
from rebuild_comparer.config import ComparerConfig, Settings, load_comparer_config
from rebuild_comparer.debuginfo import debug_file_for, open_debug_info
from rebuild_comparer.errors import ComparerError, ComparerIOError
from rebuild_comparer.models import DisasmOpts
from rebuild_comparer.refresh import CompareRequest, RefreshController
from rebuild_comparer.reports import structure_report_data, write_report

app = typer.Typer(help="Compare functions of an original binary against a rebuilt one, instruction by instruction.")
console = Console()


@dataclass
class CliState:
    settings: Settings
    config_path: Path
    opts: DisasmOpts
    truncate_to_original: bool
    resolve_thunks: bool

    def load_config(self) -> ComparerConfig:
        return load_comparer_config(self.config_path)


def _fail(e: ComparerError) -> None:
    console.print(f"[red]{e}[/red]")
    raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    show_ip: bool = typer.Option(False, "--show-ip", "-i", help="Show leading addresses in the output."),
    no_mem_disp: bool = typer.Option(
        False,
        "--no-mem-disp",
        help="Hide memory displacements and indirect call slots. Can hide wrong stack variables or globals.",
    ),
    no_imms: bool = typer.Option(False, "--no-imms", help="Hide all immediate values."),
    truncate_to_original: bool = typer.Option(
        False,
        "--truncate-to-original",
        help="Disassemble only as many bytes of the rebuilt function as the original declares.",
    ),
    resolve_thunks: Optional[bool] = typer.Option(
        None, "--resolve-thunks/--no-resolve-thunks", help="Name calls that go through jmp thunks."
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to comparer-config.toml."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    settings = Settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
        force=True,
    )
    ctx.obj = CliState(
        settings=settings,
        config_path=config or settings.config_path,
        opts=DisasmOpts(print_addresses=show_ip, show_mem_disp=not no_mem_disp, show_imms=not no_imms),
        truncate_to_original=truncate_to_original,
        resolve_thunks=settings.resolve_thunks if resolve_thunks is None else resolve_thunks,
    )


@app.command()
def compare(
    ctx: typer.Context,
    orig_file: Path = typer.Argument(..., help="Original binary"),
    rebuilt_file: Path = typer.Argument(..., help="Rebuilt binary; its .pdb must sit next to it"),
    symbol: str = typer.Argument(..., help="Function to compare; must be declared in the config"),
    watch: bool = typer.Option(False, "--watch", "-w", help="Re-run whenever the .pdb file changes."),
) -> None:
    """Write orig.asm and compare.asm for one function."""
    state: CliState = ctx.obj
    try:
        cfg = state.load_config()
        request = CompareRequest(
            orig_path=orig_file,
            rebuilt_path=rebuilt_file,
            debug_path=debug_file_for(rebuilt_file),
            symbol=symbol,
            opts=state.opts,
            truncate_to_original=state.truncate_to_original,
            resolve_thunks=state.resolve_thunks,
        )
        controller = RefreshController(
            request, cfg, settings=state.settings, console=console, debug_loader=open_debug_info
        )
        controller.run(watch=watch)
    except ComparerError as e:
        _fail(e)


@app.command()
def generate_full(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="Binary to list"),
    orig_file: bool = typer.Option(
        False, "--orig-file", help="FILE is the original binary; functions without a size are skipped."
    ),
) -> None:
    """Write a disassembly of every function declared in the config."""
    state: CliState = ctx.obj
    try:
        cfg = state.load_config()
        image = BinaryImage.from_file(file)
        if orig_file:
            out_path = state.settings.output_dir / "orig_full.asm"
            reference = ReferenceSide(image, cfg.by_name(), cfg.address_offset)
            with _open_output(out_path) as out:
                count = write_reference_listing(out, reference, cfg, state.opts)
        else:
            out_path = state.settings.output_dir / "compare_full.asm"
            symbols = extract_function_symbols(open_debug_info(debug_file_for(file)))
            rebuilt = RebuiltSide(image, symbols)
            with _open_output(out_path) as out:
                count = write_rebuilt_listing(out, rebuilt, cfg, state.opts, state.truncate_to_original)
    except ComparerError as e:
        _fail(e)
    console.print(f"[green]Wrote {count} functions to {out_path}[/green]")


def _open_output(path: Path):
    try:
        return path.open("w", encoding="utf-8")
    except OSError as e:
        raise ComparerIOError(str(path), e) from e


@app.command()
def report(
    ctx: typer.Context,
    orig_file: Path = typer.Argument(..., help="Original binary"),
    rebuilt_file: Path = typer.Argument(..., help="Rebuilt binary; its .pdb must sit next to it"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Report directory"),
) -> None:
    """Compare every known function and write a report tree."""
    state: CliState = ctx.obj
    try:
        cfg = state.load_config()
        symbols = extract_function_symbols(open_debug_info(debug_file_for(rebuilt_file)))
        reference = ReferenceSide(BinaryImage.from_file(orig_file), cfg.by_name(), cfg.address_offset)
        rebuilt = RebuiltSide(BinaryImage.from_file(rebuilt_file), symbols)
        reports = compare_all(reference, rebuilt, state.opts, state.truncate_to_original, state.resolve_thunks)
        root = structure_report_data(reports)
        out_dir = write_report(root, out, state.settings)
    except ComparerError as e:
        _fail(e)

    table = Table(title="Function comparison")
    table.add_column("Function")
    table.add_column("Match", justify="right")
    table.add_column("Status")
    for r in reports:
        if r.compare_result is None:
            table.add_row(r.fn_name, "-", f"[red]{r.error}[/red]")
        elif r.compare_result.is_match:
            table.add_row(r.fn_name, "100.0%", "[green]match[/green]")
        else:
            table.add_row(r.fn_name, f"{r.match_ratio * 100:.1f}%", "[yellow]differs[/yellow]")
    console.print(table)
    console.print(
        f"[green]{root.num_matching_fns}/{root.total_fns} functions matching "
        f"({root.match_ratio * 100:.1f}%); report written to {out_dir}[/green]"
    )


if __name__ == "__main__":
    app()
