"""Per-function instruction-level comparison of an original binary against its rebuild."""

__version__ = "0.1.0"
