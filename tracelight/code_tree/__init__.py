"""Extract items and resolved call graphs from Rust codebases using tree-sitter.

Requires: ``pip install tracelight``

Usage::

    from tracelight.config import load_config
    from tracelight.code_tree import build, build_incremental

    config = load_config("tracelight.json")
    result = build(config)
    result = build_incremental(config, ["src/lib.rs"])
"""

try:
    import tree_sitter  # noqa: F401
except ImportError:
    raise ImportError(
        "The tracelight.code_tree module requires tree-sitter. "
        "Install with: pip install tree-sitter tree-sitter-rust"
    ) from None

from .builder import BuildResult, CodeTreeBuilder, build, build_incremental
from .documents import DocumentError, decode_file_document

__all__ = [
    "BuildResult", "CodeTreeBuilder", "build", "build_incremental",
    "DocumentError", "decode_file_document",
]
