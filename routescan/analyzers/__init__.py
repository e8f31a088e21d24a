"""Source analyzers: parsing, declarations, dialects, resolution and routes."""

from __future__ import annotations

from .declarations import DeclarationExtractor, extract_source
from .descriptions import resolve_description
from .dialects import DialectNormalizer, normalize
from .endpoints import DetectorRegistry, discover_detectors, normalize_path
from .resolver import SourceCache, SymbolResolver
from .tree_sitter import SourceParser

__all__ = [
    "DeclarationExtractor",
    "DetectorRegistry",
    "DialectNormalizer",
    "SourceCache",
    "SourceParser",
    "SymbolResolver",
    "discover_detectors",
    "extract_source",
    "normalize",
    "normalize_path",
    "resolve_description",
]
