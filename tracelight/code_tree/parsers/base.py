"""Abstract base class for language parsers and shared helpers."""

import re
import textwrap
from abc import ABC, abstractmethod
from pathlib import Path

from .models import CallEdge, FileAnalysis, UnresolvedEdge


class LanguageParser(ABC):
    """Base class that all language parsers must extend.

    Parsers hold a tree-sitter parser and are therefore not thread-safe;
    create one instance per worker thread.
    """

    @property
    @abstractmethod
    def language_name(self) -> str:
        """Return the language identifier (e.g. 'rust')."""
        ...

    @property
    @abstractmethod
    def file_extensions(self) -> list[str]:
        """Return list of file extensions this parser handles (e.g. ['.rs'])."""
        ...

    @abstractmethod
    def parse_file(self, filepath: Path, rel_path: str) -> FileAnalysis:
        """Pass 1: parse a single source file and extract its items and tests."""
        ...

    @abstractmethod
    def find_calls(self, analysis: FileAnalysis,
                   registry) -> tuple[list[CallEdge], list[UnresolvedEdge]]:
        """Pass 2: walk every callable body of an analysed file.

        Returns the textual call edges and the calls whose receiver could
        not be resolved. ``analysis.referenced_types`` is updated with the
        type names the registry was consulted for.
        """
        ...


# ── Shared helpers ─────────────────────────────────────────────────────


def node_text(node, source: bytes) -> str:
    """Extract the text of a tree-sitter node."""
    return source[node.start_byte:node.end_byte].decode("utf8")


_WS_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Collapse internal whitespace and newlines to single spaces."""
    return _WS_RE.sub(" ", text).strip()


def normalize_signature(text: str) -> str:
    """Normalize a declaration header sliced from source.

    The first line starts at the declaration, so only continuation lines
    carry indentation; those are dedented together. Single-line headers
    collapse to one trimmed string.
    """
    text = text.rstrip().rstrip(";").rstrip()
    lines = text.split("\n")
    if len(lines) == 1:
        return lines[0].strip()
    rest = textwrap.dedent("\n".join(line.rstrip() for line in lines[1:]))
    joined = [lines[0].strip()] + [line for line in rest.split("\n") if line.strip()]
    return "\n".join(joined)


def module_key(rel_path: str) -> str:
    """Id prefix of a file: its relative path without extension."""
    return Path(rel_path).with_suffix("").as_posix()
