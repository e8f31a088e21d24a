"""Static OpenAPI extraction for TypeScript/JavaScript HTTP services."""

from .models import (
    Declaration,
    Dialect,
    FieldSchema,
    ObjectSchema,
    RouteDescriptor,
    RouteInfo,
    SchemaRef,
    SourceFile,
)
from .scanner import ProjectScanner

__all__ = [
    "Declaration",
    "Dialect",
    "FieldSchema",
    "ObjectSchema",
    "ProjectScanner",
    "RouteDescriptor",
    "RouteInfo",
    "SchemaRef",
    "SourceFile",
]
