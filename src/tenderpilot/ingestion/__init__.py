"""Document text extraction."""

from .service import (
    SUPPORTED_EXTENSIONS,
    ExtractionConfig,
    LangChainTextExtractor,
    TextExtractor,
    ensure_supported,
)

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "ExtractionConfig",
    "LangChainTextExtractor",
    "TextExtractor",
    "ensure_supported",
]
