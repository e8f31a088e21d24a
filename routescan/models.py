"""Core data models shared across routescan components."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

FIELD_TYPES = ("string", "number", "boolean", "array", "object")


class Dialect(str, Enum):
    """Schema dialects recognized by the declaration extractor."""

    ZOD = "zod"
    JOI = "joi"
    CLASS_VALIDATOR = "class-validator"
    TYPE_DECLARATION = "type-declaration"


@dataclass(frozen=True)
class Span:
    """Source extent of a declaration (byte offsets, 1-based lines)."""

    start: int
    end: int
    start_line: int
    end_line: int


@dataclass(frozen=True)
class Declaration:
    """A named, file-scoped schema definition.

    ``base`` names the schema binding a derived declaration builds on, as in
    ``BaseSchema.extend({...})`` or ``interface Admin extends User``.
    """

    name: str
    dialect: Dialect
    span: Span
    text: str
    node: Any = field(default=None, repr=False, compare=False)
    base: Optional[str] = None


@dataclass(frozen=True)
class ImportEdge:
    """Relates a local identifier to the module it was imported from."""

    identifier: str
    source: str
    declared_in: Path
    imported_name: str


@dataclass
class SourceFile:
    """Parsed view of a single source file."""

    path: Path
    text: str
    declarations: Dict[str, Declaration] = field(default_factory=dict)
    imports: Dict[str, ImportEdge] = field(default_factory=dict)
    star_exports: List[str] = field(default_factory=list)
    tree: Any = field(default=None, repr=False)


@dataclass(frozen=True)
class FieldSchema:
    """Canonical description of one object property."""

    name: str
    type: str = "string"
    required: bool = True
    format: Optional[str] = None
    minimum: Optional[float] = None
    items: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ObjectSchema:
    """Dialect-independent field list every schema style normalizes to."""

    fields: Tuple[FieldSchema, ...] = ()
    name: Optional[str] = None

    @classmethod
    def from_fields(
        cls, fields: Iterable[FieldSchema], name: Optional[str] = None
    ) -> "ObjectSchema":
        ordered: Dict[str, FieldSchema] = {}
        for item in fields:
            ordered[item.name] = item
        return cls(fields=tuple(ordered.values()), name=name)

    def field(self, name: str) -> Optional[FieldSchema]:
        for item in self.fields:
            if item.name == name:
                return item
        return None

    @property
    def field_names(self) -> List[str]:
        return [item.name for item in self.fields]

    @property
    def required(self) -> List[str]:
        return [item.name for item in self.fields if item.required]

    @property
    def is_empty(self) -> bool:
        return not self.fields


@dataclass(frozen=True)
class SchemaRef:
    """Unresolved reference to a schema identifier."""

    identifier: str
    file: Path


@dataclass
class RouteDescriptor:
    """As-scanned route whose schema references are not yet resolved."""

    method: str
    raw_path: str
    file: Path
    line: Optional[int] = None
    offset: int = 0
    framework: Optional[str] = None
    handler: Optional[str] = None
    confidence: float = 1.0
    body: Optional[SchemaRef] = None
    query: Optional[SchemaRef] = None
    params: Optional[SchemaRef] = None
    headers: Optional[SchemaRef] = None
    responses: Dict[str, SchemaRef] = field(default_factory=dict)


@dataclass
class RouteInfo:
    """Fully resolved route handed to the document assembler."""

    method: str
    path: str
    raw_path: str
    file: Path
    line: Optional[int] = None
    framework: Optional[str] = None
    handler: Optional[str] = None
    body: Optional[ObjectSchema] = None
    query: Optional[ObjectSchema] = None
    params: Optional[ObjectSchema] = None
    headers: Optional[ObjectSchema] = None
    responses: Dict[str, ObjectSchema] = field(default_factory=dict)
