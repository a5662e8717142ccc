"""Language detection and parser registry."""

from .base import LanguageParser

EXTENSION_MAP: dict[str, str] = {
    ".rs": "rust",
}


def get_parser(language: str) -> LanguageParser:
    """Get a parser instance for the given language name."""
    if language == "rust":
        from .rust import RustParser
        return RustParser()
    else:
        raise ValueError(f"Unsupported language: {language}")


def language_for(extension: str) -> str:
    """Language name for a file extension (e.g. '.rs' -> 'rust')."""
    try:
        return EXTENSION_MAP[extension]
    except KeyError:
        raise ValueError(f"Unsupported file extension: {extension}") from None
