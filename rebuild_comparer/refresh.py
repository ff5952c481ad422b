"""Single-function comparison with optional re-runs whenever the debug file changes."""

import logging
import os
import queue
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from rich.console import Console
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from rebuild_comparer.analyzers.address_map import BinaryImage, RebuiltSide, ReferenceSide
from rebuild_comparer.analyzers.compare import compare
from rebuild_comparer.analyzers.symbols import extract_function_symbols
from rebuild_comparer.config import ComparerConfig, Settings
from rebuild_comparer.debuginfo import DebugInfoSource, open_debug_info
from rebuild_comparer.errors import (
    ComparerError,
    ComparerIOError,
    RequiredSizeError,
    SymbolNotFoundError,
    WatchError,
)
from rebuild_comparer.hexfmt import hex_addr, signed_hex
from rebuild_comparer.models import CompareResult, DisasmOpts, FunctionDefinition, FunctionSymbol, OffsetSize

logger = logging.getLogger(__name__)

ORIG_ASM = "orig.asm"
COMPARE_ASM = "compare.asm"


@dataclass(frozen=True)
class CompareRequest:
    orig_path: Path
    rebuilt_path: Path
    debug_path: Path
    symbol: str
    opts: DisasmOpts
    truncate_to_original: bool = False
    resolve_thunks: bool = False


class DebugFileHandler(FileSystemEventHandler):
    """Queues an event whenever the watched file is created, modified or moved into place."""

    def __init__(self, path: Path, events: "queue.Queue[str]") -> None:
        self._path = path.resolve()
        self._events = events

    def _matches(self, raw_path: str | bytes) -> bool:
        return Path(os.fsdecode(raw_path)).resolve() == self._path

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.src_path):
            self._events.put(event.event_type)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.src_path):
            self._events.put(event.event_type)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.dest_path):
            self._events.put(event.event_type)


def _polling_observer(timeout: float) -> BaseObserver:
    return PollingObserver(timeout=timeout)


class RefreshController:
    """Owns the last resolved (address, size) of the compared function for delta output."""

    def __init__(
        self,
        request: CompareRequest,
        cfg: ComparerConfig,
        settings: Settings | None = None,
        console: Console | None = None,
        debug_loader: Callable[[Path], DebugInfoSource] = open_debug_info,
        observer_factory: Callable[[float], BaseObserver] = _polling_observer,
    ) -> None:
        self.request = request
        self.cfg = cfg
        self.settings = settings or Settings()
        self.console = console or Console()
        self.last_offset_size: OffsetSize | None = None
        self._debug_loader = debug_loader
        self._observer_factory = observer_factory

    def check_reference(self) -> FunctionDefinition:
        """Resolve the function in the config and apply the size policy up front."""
        orig_fn = self.cfg.find(self.request.symbol)
        if orig_fn.size is None:
            if self.request.truncate_to_original:
                raise RequiredSizeError(orig_fn.name)
            logger.warning("No size defined for the original function, using the debug file size instead.")
        return orig_fn

    def run_once(self) -> CompareResult:
        """One comparison: reload everything, write both listings, print the resolved location."""
        req = self.request
        orig_fn = self.check_reference()
        symbols = extract_function_symbols(self._debug_loader(req.debug_path))
        sym = symbols.get(req.symbol)
        if sym is None:
            raise SymbolNotFoundError(req.symbol)

        reference = ReferenceSide(BinaryImage.from_file(req.orig_path), self.cfg.by_name(), self.cfg.address_offset)
        rebuilt = RebuiltSide(BinaryImage.from_file(req.rebuilt_path), symbols)
        result = compare(
            req.symbol,
            reference,
            rebuilt,
            req.opts,
            truncate_to_original=req.truncate_to_original,
            resolve_thunks=req.resolve_thunks,
        )
        self._write(ORIG_ASM, result.orig_asm)
        self._write(COMPARE_ASM, result.new_asm)

        self.console.print(self.describe(sym, orig_fn), markup=False, highlight=False)
        self.last_offset_size = OffsetSize(address=sym.offset, size=sym.size)
        return result

    def describe(self, sym: FunctionSymbol, orig_fn: FunctionDefinition) -> str:
        head = f"Found {self.request.symbol} in {sym.source_file}"
        last = self.last_offset_size
        if last is not None:
            msg = (
                f"{head} at {hex_addr(sym.offset)} ({signed_hex(sym.offset - last.address)}), "
                f"size: {hex_addr(sym.size)} ({signed_hex(sym.size - last.size)})"
            )
        else:
            msg = f"{head} at {hex_addr(sym.offset)}, size: {hex_addr(sym.size)}"
        if orig_fn.size is not None:
            msg += f"; orig size: {hex_addr(orig_fn.size)}"
        return msg

    def _write(self, filename: str, text: str) -> None:
        path = self.settings.output_dir / filename
        try:
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise ComparerIOError(str(path), e) from e

    def run(self, watch: bool = False) -> None:
        self.run_once()
        if watch:
            self.watch()

    def watch(self) -> None:
        """Re-run on every change to the debug file until the watcher fails."""
        debug_path = self.request.debug_path
        interval = self.settings.watch_poll_interval
        events: "queue.Queue[str]" = queue.Queue()
        observer = self._observer_factory(interval)
        try:
            observer.schedule(DebugFileHandler(debug_path, events), str(debug_path.parent), recursive=False)
            observer.start()
        except OSError as e:
            raise WatchError(str(e)) from e

        self.console.print(f"Started watching {debug_path} for changes. CTRL+C to quit.", markup=False)
        try:
            while True:
                try:
                    events.get(timeout=interval)
                except queue.Empty:
                    if not observer.is_alive():
                        raise WatchError("file observer stopped unexpectedly")
                    continue
                # one rebuild usually produces a burst of events
                while not events.empty():
                    events.get_nowait()
                try:
                    self.run_once()
                except ComparerError as e:
                    self.console.print(f"[red]{e}[/red]")
        finally:
            observer.stop()
            if observer.is_alive():
                observer.join()
