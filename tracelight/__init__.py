"""Tracelight - structural and call-graph extraction for Rust source trees."""

__version__ = "0.1.0"

from .config import Config, ConfigError, load_config  # noqa: E402

__all__ = [
    "__version__",
    "Config",
    "ConfigError",
    "load_config",
]
