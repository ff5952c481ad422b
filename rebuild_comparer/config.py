"""Application settings and the comparer-config function table."""

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from rebuild_comparer.errors import ComparerIOError, ConfigError, ConfigLookupError
from rebuild_comparer.models import FunctionDefinition


class Settings(BaseSettings):
    """App settings; COMPARER_* env vars override defaults."""

    model_config = SettingsConfigDict(
        env_prefix="COMPARER_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    config_path: Path = Path("comparer-config.toml")
    output_dir: Path = Path(".")  # orig.asm / compare.asm land here
    report_dir: Path = Path("report")
    watch_poll_interval: float = 2.0
    resolve_thunks: bool = False
    log_level: str = "WARNING"


class ComparerConfig(BaseModel):
    """Reference binary description: base-address correction plus declared functions."""

    address_offset: int = 0
    func: list[FunctionDefinition] = Field(default_factory=list)

    def by_name(self) -> dict[str, FunctionDefinition]:
        return {f.name: f for f in self.func}

    def by_address(self) -> dict[int, FunctionDefinition]:
        return {f.addr: f for f in self.func}

    def find(self, name: str) -> FunctionDefinition:
        """Same entry `by_name` resolves to: a later duplicate replaces an earlier one."""
        func = self.by_name().get(name)
        if func is None:
            raise ConfigLookupError(name)
        return func


def load_comparer_config(path: Path) -> ComparerConfig:
    """Parse and validate a comparer-config TOML file."""
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ComparerIOError(str(path), e) from e
    try:
        data = tomllib.loads(raw.decode("utf-8"))
        return ComparerConfig.model_validate(data)
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        raise ConfigError(str(path), str(e)) from e
    except ValidationError as e:
        raise ConfigError(str(path), f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}") from e
