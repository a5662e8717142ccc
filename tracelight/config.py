"""Configuration loading and source file selection."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

import pathspec

DEFAULT_OUTPUT_DIR = "public/data"
DEFAULT_EXTENSIONS = (".rs",)


class ConfigError(ValueError):
    """Malformed or unusable configuration. Aborts a run before analysis."""


@dataclass(frozen=True)
class Config:
    target_dir: Path                    # absolute
    output_dir: Path                    # absolute
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    exclude: tuple[str, ...] = ()
    config_path: Path | None = None
    _spec: pathspec.PathSpec = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self._spec is None:
            object.__setattr__(
                self, "_spec",
                pathspec.PathSpec.from_lines("gitwildmatch", self.exclude),
            )

    def is_excluded(self, rel_path: str) -> bool:
        """Whether a target-relative posix path matches an exclude pattern."""
        return self._spec.match_file(rel_path)

    def collect_files(self) -> list[str]:
        """Sorted target-relative posix paths of every source file to analyse."""
        files = []
        for ext in self.extensions:
            for path in self.target_dir.rglob(f"*{ext}"):
                if not path.is_file():
                    continue
                rel = path.relative_to(self.target_dir).as_posix()
                if not self.is_excluded(rel):
                    files.append(rel)
        return sorted(set(files))


def config_from_dict(raw: dict[str, Any], base_dir: Path,
                     config_path: Path | None = None) -> Config:
    """Validate a raw configuration mapping; relative paths resolve against base_dir."""
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a JSON object")

    target = raw.get("target_dir")
    if not isinstance(target, str) or not target:
        raise ConfigError("'target_dir' is required and must be a string")
    target_dir = (base_dir / target).resolve()
    if not target_dir.is_dir():
        raise ConfigError(f"Target directory not found: {target_dir}")

    output = raw.get("output_dir", DEFAULT_OUTPUT_DIR)
    if not isinstance(output, str) or not output:
        raise ConfigError("'output_dir' must be a string")

    extensions = raw.get("extensions", list(DEFAULT_EXTENSIONS))
    if (not isinstance(extensions, list) or not extensions
            or not all(isinstance(e, str) for e in extensions)):
        raise ConfigError("'extensions' must be a non-empty list of strings")
    extensions = [e if e.startswith(".") else f".{e}" for e in extensions]

    exclude = raw.get("exclude", [])
    if not isinstance(exclude, list) or not all(isinstance(p, str) for p in exclude):
        raise ConfigError("'exclude' must be a list of strings")

    return Config(
        target_dir=target_dir,
        output_dir=(base_dir / output).resolve(),
        extensions=tuple(extensions),
        exclude=tuple(exclude),
        config_path=config_path,
    )


def load_config(config_path: Union[str, Path]) -> Config:
    """Load a JSON configuration file.

    Raises:
        FileNotFoundError: If the configuration file is missing.
        ConfigError: If it cannot be read or its content is invalid.
    """
    config_path = Path(config_path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    try:
        with open(config_path, encoding="utf8") as f:
            raw = json.load(f)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Malformed config file {config_path}: {e}") from e
    return config_from_dict(raw, config_path.parent, config_path)
