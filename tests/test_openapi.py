"""Tests for OpenAPI document assembly."""

from __future__ import annotations

import json
from pathlib import Path

import yaml

from routescan.config import ScanConfig
from routescan.models import FieldSchema, ObjectSchema, RouteInfo
from routescan.openapi import (
    build_document,
    build_operation,
    field_to_openapi,
    route_summaries,
    schema_to_openapi,
    write_document,
)

USER = ObjectSchema.from_fields(
    [
        FieldSchema(name="name", description="Full name"),
        FieldSchema(name="age", type="number", minimum=18),
        FieldSchema(name="tags", type="array", items="string", required=False),
        FieldSchema(name="email", format="email", required=False),
    ],
    name="UserSchema",
)


def _route(method: str, path: str, **kwargs) -> RouteInfo:
    return RouteInfo(method=method, path=path, raw_path=path, file=Path("/src/app.ts"), **kwargs)


def test_field_to_openapi() -> None:
    assert field_to_openapi(FieldSchema(name="plain")) == {"type": "string"}
    assert field_to_openapi(USER.field("age")) == {"type": "number", "minimum": 18}
    assert field_to_openapi(USER.field("tags")) == {"type": "array", "items": {"type": "string"}}
    assert field_to_openapi(FieldSchema(name="ids", type="array")) == {"type": "array", "items": {"type": "string"}}
    assert field_to_openapi(USER.field("name")) == {"type": "string", "description": "Full name"}


def test_schema_to_openapi() -> None:
    assert schema_to_openapi(USER) == {
        "type": "object",
        "properties": {
            "name": {"type": "string", "description": "Full name"},
            "age": {"type": "number", "minimum": 18},
            "tags": {"type": "array", "items": {"type": "string"}},
            "email": {"type": "string", "format": "email"},
        },
        "required": ["name", "age"],
    }
    assert schema_to_openapi(ObjectSchema()) == {"type": "object"}
    optional = ObjectSchema.from_fields([FieldSchema(name="page", type="number", required=False)])
    assert "required" not in schema_to_openapi(optional)


def test_operation_with_body_params_and_responses() -> None:
    route = _route(
        "PUT",
        "/users/{id}/posts/{postId}",
        handler="updatePost",
        body=USER,
        params=ObjectSchema.from_fields([FieldSchema(name="id", format="uuid")]),
        query=ObjectSchema.from_fields([FieldSchema(name="draft", type="boolean", required=False)]),
        headers=ObjectSchema.from_fields([FieldSchema(name="x-token", description="Session token")]),
        responses={"201": USER, "200": ObjectSchema()},
    )

    operation = build_operation(route)

    assert operation["summary"] == "PUT /users/{id}/posts/{postId}"
    assert operation["operationId"] == "updatePost"
    assert operation["requestBody"] == {
        "required": True,
        "content": {"application/json": {"schema": schema_to_openapi(USER)}},
    }
    assert operation["parameters"] == [
        {"name": "id", "in": "path", "required": True, "schema": {"type": "string", "format": "uuid"}},
        {"name": "postId", "in": "path", "required": True, "schema": {"type": "string"}},
        {"name": "draft", "in": "query", "required": False, "schema": {"type": "boolean"}},
        {
            "name": "x-token",
            "in": "header",
            "required": True,
            "schema": {"type": "string"},
            "description": "Session token",
        },
    ]
    assert list(operation["responses"]) == ["200", "201"]
    assert operation["responses"]["200"]["description"] == "Success"
    assert operation["responses"]["201"]["description"] == "Response 201"
    assert operation["responses"]["201"]["content"]["application/json"]["schema"] == schema_to_openapi(USER)


def test_operation_defaults() -> None:
    operation = build_operation(_route("GET", "/health", body=USER))

    assert "requestBody" not in operation
    assert "parameters" not in operation
    assert "operationId" not in operation
    assert operation["responses"] == {
        "200": {"description": "Success", "content": {"application/json": {"schema": {"type": "object"}}}}
    }


def test_build_document_groups_paths_in_route_order(tmp_path: Path) -> None:
    config = ScanConfig(
        root=tmp_path,
        title="Users API",
        version="2.1.0",
        description="User management",
        base_url="https://api.example.com",
    )
    routes = [
        _route("POST", "/users", body=USER),
        _route("GET", "/health"),
        _route("GET", "/users"),
        _route("GET", "/users", handler="listUsersV2"),
    ]

    document = build_document(config, routes)

    assert document["openapi"] == "3.0.0"
    assert document["info"] == {"title": "Users API", "version": "2.1.0", "description": "User management"}
    assert document["servers"] == [{"url": "https://api.example.com"}]
    assert list(document["paths"]) == ["/users", "/health"]
    assert list(document["paths"]["/users"]) == ["post", "get"]
    assert document["paths"]["/users"]["get"]["operationId"] == "listUsersV2"
    assert document["components"] == {"schemas": {}}


def test_build_document_without_optional_info(tmp_path: Path) -> None:
    document = build_document(ScanConfig(root=tmp_path), [])

    assert document == {
        "openapi": "3.0.0",
        "info": {"title": "API", "version": "1.0.0"},
        "paths": {},
        "components": {"schemas": {}},
    }


def test_write_document_json_and_yaml(tmp_path: Path) -> None:
    document = build_document(ScanConfig(root=tmp_path), [_route("POST", "/users", body=USER)])

    json_path = write_document(document, tmp_path / "out" / "openapi.json")
    yaml_path = write_document(document, tmp_path / "openapi.yaml")

    assert json.loads(json_path.read_text(encoding="utf-8")) == document
    assert yaml.safe_load(yaml_path.read_text(encoding="utf-8")) == document
    assert yaml_path.read_text(encoding="utf-8").startswith("openapi: 3.0.0")


def test_route_summaries() -> None:
    route = _route(
        "GET",
        "/users/{id}",
        handler="getUser",
        line=7,
        framework="Express",
        params=ObjectSchema.from_fields([FieldSchema(name="id")]),
        responses={"200": USER},
    )

    assert route_summaries([route]) == [
        {
            "method": "GET",
            "path": "/users/{id}",
            "file": str(Path("/src/app.ts")),
            "line": 7,
            "framework": "Express",
            "handler": "getUser",
            "body": None,
            "query": None,
            "params": ["id"],
            "headers": None,
            "responses": {"200": ["name", "age", "tags", "email"]},
        }
    ]
