"""Error taxonomy. Every error renders as one short, human-readable line."""

from rebuild_comparer.hexfmt import hex_addr


class ComparerError(Exception):
    """Base for all errors surfaced to the user."""


class DebugFormatError(ComparerError):
    def __init__(self, path: str, detail: str = "") -> None:
        self.path = path
        msg = f"Failed to parse debug file {path}"
        super().__init__(f"{msg}: {detail}" if detail else msg)


class ComparerIOError(ComparerError):
    def __init__(self, path: str, err: OSError) -> None:
        self.path = path
        self.err = err
        super().__init__(f"I/O error on {path}: {err.strerror or err}")


class ConfigError(ComparerError):
    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        super().__init__(f"Invalid comparer config {path}: {detail}")


class ConfigLookupError(ComparerError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Could not find '{name}' in the config.")


class SymbolNotFoundError(ComparerError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Could not find '{name}' in the debug file, skipping.")


class MissingSizeError(ComparerError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No size known for '{name}' on either side.")


class RequiredSizeError(ComparerError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"No size defined for the original function '{name}', but truncate_to_original was specified."
        )


class OutOfBoundsError(ComparerError):
    def __init__(self, name: str, offset: int, size: int, image_size: int) -> None:
        self.name = name
        self.offset = offset
        self.size = size
        self.image_size = image_size
        super().__init__(
            f"The offset/size of '{name}' ({hex_addr(offset)}+{hex_addr(size)}) is outside of the input file ({hex_addr(image_size)} bytes)."
        )


class FormatterError(ComparerError):
    def __init__(self, address: int, detail: str = "undecodable instruction") -> None:
        self.address = address
        super().__init__(f"Disassembly failed at {hex_addr(address)}: {detail}")


class WatchError(ComparerError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Watcher error: {detail}")
