"""OpenAPI document assembly and output."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import yaml

from .config import ScanConfig
from .logging import get_logger
from .models import FieldSchema, ObjectSchema, RouteInfo

LOGGER = get_logger("openapi")

_BODY_METHODS = {"POST", "PUT", "PATCH"}
_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")
_JSON = "application/json"


def field_to_openapi(item: FieldSchema) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": item.type}
    if item.format:
        schema["format"] = item.format
    if item.minimum is not None:
        schema["minimum"] = item.minimum
    if item.type == "array":
        schema["items"] = {"type": item.items or "string"}
    if item.description:
        schema["description"] = item.description
    return schema


def schema_to_openapi(schema: ObjectSchema) -> Dict[str, Any]:
    """Render an :class:`ObjectSchema` as an OpenAPI object schema."""
    document: Dict[str, Any] = {"type": "object"}
    if schema.is_empty:
        return document
    document["properties"] = {item.name: field_to_openapi(item) for item in schema.fields}
    if schema.required:
        document["required"] = schema.required
    return document


def _parameters(route: RouteInfo) -> List[Dict[str, Any]]:
    parameters: List[Dict[str, Any]] = []
    covered = set()
    if route.params is not None:
        for item in route.params.fields:
            covered.add(item.name)
            parameters.append(_parameter(item, "path", required=True))
    for name in _PLACEHOLDER.findall(route.path):
        if name not in covered:
            covered.add(name)
            parameters.append({"name": name, "in": "path", "required": True, "schema": {"type": "string"}})
    if route.query is not None:
        parameters.extend(_parameter(item, "query", required=item.required) for item in route.query.fields)
    if route.headers is not None:
        parameters.extend(_parameter(item, "header", required=item.required) for item in route.headers.fields)
    return parameters


def _parameter(item: FieldSchema, location: str, *, required: bool) -> Dict[str, Any]:
    schema = field_to_openapi(item)
    description = schema.pop("description", None)
    parameter: Dict[str, Any] = {"name": item.name, "in": location, "required": required, "schema": schema}
    if description:
        parameter["description"] = description
    return parameter


def _responses(route: RouteInfo) -> Dict[str, Any]:
    if not route.responses:
        return {"200": _response("200", {"type": "object"})}
    return {
        status: _response(status, schema_to_openapi(schema))
        for status, schema in sorted(route.responses.items())
    }


def _response(status: str, schema: Dict[str, Any]) -> Dict[str, Any]:
    description = "Success" if status == "200" else f"Response {status}"
    return {"description": description, "content": {_JSON: {"schema": schema}}}


def build_operation(route: RouteInfo) -> Dict[str, Any]:
    operation: Dict[str, Any] = {"summary": f"{route.method} {route.path}"}
    if route.handler:
        operation["operationId"] = route.handler
    if route.body is not None and route.method in _BODY_METHODS:
        operation["requestBody"] = {
            "required": True,
            "content": {_JSON: {"schema": schema_to_openapi(route.body)}},
        }
    parameters = _parameters(route)
    if parameters:
        operation["parameters"] = parameters
    operation["responses"] = _responses(route)
    return operation


def build_document(config: ScanConfig, routes: Sequence[RouteInfo]) -> Dict[str, Any]:
    """Assemble an OpenAPI 3 document; path order follows ``routes``."""
    info: Dict[str, Any] = {"title": config.title, "version": config.version}
    if config.description:
        info["description"] = config.description

    document: Dict[str, Any] = {"openapi": config.openapi_version, "info": info}
    if config.base_url:
        document["servers"] = [{"url": config.base_url}]

    paths: Dict[str, Dict[str, Any]] = {}
    for route in routes:
        operations = paths.setdefault(route.path, {})
        method = route.method.lower()
        if method in operations:
            LOGGER.debug("Replacing duplicate operation %s %s from %s", route.method, route.path, route.file)
        operations[method] = build_operation(route)
    document["paths"] = paths
    document["components"] = {"schemas": {}}
    return document


def write_document(document: Dict[str, Any], output_path: Path) -> Path:
    """Write JSON, or YAML for ``.yaml``/``.yml`` outputs; returns the written path."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if output_path.suffix.lower() in {".yaml", ".yml"}:
        text = yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
    output_path.write_text(text, encoding="utf-8")
    LOGGER.info("Wrote OpenAPI document to %s", output_path)
    return output_path


def route_summaries(routes: Iterable[RouteInfo]) -> List[Dict[str, Any]]:
    """Compact, JSON-friendly view of routes used by the CLI and service."""
    return [_summary(route) for route in routes]


def _summary(route: RouteInfo) -> Dict[str, Any]:
    def _names(schema: Optional[ObjectSchema]) -> Optional[List[str]]:
        return schema.field_names if schema is not None else None

    return {
        "method": route.method,
        "path": route.path,
        "file": str(route.file),
        "line": route.line,
        "framework": route.framework,
        "handler": route.handler,
        "body": _names(route.body),
        "query": _names(route.query),
        "params": _names(route.params),
        "headers": _names(route.headers),
        "responses": {status: _names(schema) for status, schema in route.responses.items()},
    }


__all__ = [
    "build_document",
    "build_operation",
    "field_to_openapi",
    "route_summaries",
    "schema_to_openapi",
    "write_document",
]
