"""Tree-sitter parsers extracting items and call edges."""

from .models import (
    FieldInfo, ExtractedItem, TestInfo,
    CallContext, CallEdge, UnresolvedEdge,
    CallableBody, FileAnalysis,
)
from .base import LanguageParser
from .registry import get_parser, language_for, EXTENSION_MAP

__all__ = [
    "FieldInfo", "ExtractedItem", "TestInfo",
    "CallContext", "CallEdge", "UnresolvedEdge",
    "CallableBody", "FileAnalysis",
    "LanguageParser",
    "get_parser", "language_for", "EXTENSION_MAP",
]
