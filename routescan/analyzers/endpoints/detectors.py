"""Built-in route detectors."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from tree_sitter import Node

from ...models import RouteDescriptor, SchemaRef, SourceFile
from ..tree_sitter import (
    argument_nodes,
    collect_decorators,
    decorator_call,
    first_identifier,
    line_of,
    node_text,
    numeric_value,
    object_pairs,
    string_value,
    unwrap_expression,
    walk,
)
from .core import HTTP_VERBS, join_paths

_ROUTER_NAMES = {"app", "router", "server", "api", "fastify", "instance"}
_ROUTER_SUFFIXES = ("Router", "App", "Server")
_SCHEMA_SUFFIXES = ("Schema", "Dto", "DTO")
_FUNCTION_NODES = {"arrow_function", "function_expression", "function", "generator_function"}

# Keys of per-location configuration objects.
_LOCATION_KEYS = {
    "body": "body",
    "query": "query",
    "querystring": "query",
    "params": "params",
    "headers": "headers",
}


def _is_router_name(name: Optional[str]) -> bool:
    if not name:
        return False
    return name in _ROUTER_NAMES or name.endswith(_ROUTER_SUFFIXES)


def _receiver_name(node: Optional[Node]) -> Optional[str]:
    node = unwrap_expression(node)
    if node is None:
        return None
    if node.type == "identifier":
        return node_text(node)
    if node.type == "member_expression":
        # this.router / deps.app
        return node_text(node.child_by_field_name("property"))
    return None


def _looks_like_schema(name: Optional[str]) -> bool:
    return bool(name) and name.endswith(_SCHEMA_SUFFIXES)


def _verb_call(node: Node) -> Optional[Tuple[str, Node, Tuple[Node, ...]]]:
    """Return ``(verb, receiver, arguments)`` for ``<receiver>.<verb>(...)`` calls."""
    if node.type != "call_expression":
        return None
    function = node.child_by_field_name("function")
    if function is None or function.type != "member_expression":
        return None
    verb = node_text(function.child_by_field_name("property")).lower()
    if verb not in HTTP_VERBS:
        return None
    receiver = function.child_by_field_name("object")
    return verb, receiver, argument_nodes(node.child_by_field_name("arguments"))


def _verb_offset(call: Node) -> int:
    # Chained verbs share the start of their call; order them by the verb itself.
    return call.child_by_field_name("function").child_by_field_name("property").start_byte


def _ref_from_value(value: Optional[Node], file: Path) -> Optional[SchemaRef]:
    value = unwrap_expression(value)
    if value is None:
        return None
    if value.type in {"identifier", "shorthand_property_identifier"}:
        return SchemaRef(node_text(value), file)
    if value.type == "call_expression":
        identifier = first_identifier(value)
        if identifier:
            return SchemaRef(identifier, file)
    return None


def _assign(route: RouteDescriptor, location: str, ref: Optional[SchemaRef]) -> None:
    if ref is not None and getattr(route, location) is None:
        setattr(route, location, ref)


def _is_location_config(node: Optional[Node]) -> bool:
    """True for a bare ``{ body, query, params, headers, response }`` object literal.

    Objects carrying a Fastify ``schema`` key never qualify.
    """
    node = unwrap_expression(node)
    if node is None or node.type != "object":
        return False
    keys = {key for key, _, _ in object_pairs(node)}
    return "schema" not in keys and bool(keys & (set(_LOCATION_KEYS) | {"response"}))


def _apply_location_config(route: RouteDescriptor, config: Node, file: Path, default_status: str = "200") -> bool:
    """Assign refs from a ``{ body, query, params, headers, response }`` object."""
    matched = False
    for key, value, _ in object_pairs(config):
        if key in _LOCATION_KEYS:
            _assign(route, _LOCATION_KEYS[key], _ref_from_value(value, file))
            matched = True
        elif key == "response":
            _apply_responses(route, value, file, default_status)
            matched = True
    return matched


def _apply_responses(route: RouteDescriptor, value: Node, file: Path, default_status: str) -> None:
    value = unwrap_expression(value)
    if value is not None and value.type == "object":
        for status, response, _ in object_pairs(value):
            ref = _ref_from_value(response, file)
            if ref is not None:
                route.responses.setdefault(status, ref)
        return
    ref = _ref_from_value(value, file)
    if ref is not None:
        route.responses.setdefault(default_status, ref)


def _handler_name(node: Optional[Node]) -> Optional[str]:
    node = unwrap_expression(node)
    if node is None:
        return None
    if node.type == "identifier":
        return node_text(node)
    if node.type == "member_expression":
        return node_text(node.child_by_field_name("property"))
    if node.type in {"function_expression", "function"}:
        name = node.child_by_field_name("name")
        return node_text(name) if name is not None else None
    return None


# ---------------------------------------------------------------------------
# Express detector
# ---------------------------------------------------------------------------


class ExpressDetector:
    """Detect Express-style router verb invocations."""

    name = "express"

    def supports(self, source: SourceFile) -> bool:
        return source.tree is not None

    def extract(self, source: SourceFile) -> Iterable[RouteDescriptor]:
        for node in walk(source.tree.root_node):
            call = _verb_call(node)
            if call is None:
                continue
            verb, receiver, arguments = call
            located = self._locate(receiver, arguments)
            if located is None:
                continue
            raw_path, handlers = located
            first = unwrap_expression(handlers[0]) if handlers else None
            if first is not None and first.type == "object" and not _is_location_config(first):
                # Other options objects belong to the Fastify detector.
                continue
            route = RouteDescriptor(
                method=verb,
                raw_path=raw_path,
                file=source.path,
                line=line_of(node),
                offset=_verb_offset(node),
                framework="Express",
                handler=_handler_name(handlers[-1]) if handlers else None,
            )
            for handler in handlers[:-1] if len(handlers) > 1 else handlers:
                self._collect_refs(route, handler, source.path)
            yield route

    def _locate(self, receiver: Node, arguments: Tuple[Node, ...]) -> Optional[Tuple[str, Tuple[Node, ...]]]:
        receiver = unwrap_expression(receiver)
        # router.route('/x').get(a).post(b): walk down to the route() call.
        while receiver is not None and receiver.type == "call_expression" and _verb_call(receiver) is not None:
            receiver = unwrap_expression(receiver.child_by_field_name("function").child_by_field_name("object"))
        if receiver is None:
            return None

        if receiver.type == "call_expression":
            function = receiver.child_by_field_name("function")
            if function is None or function.type != "member_expression":
                return None
            if node_text(function.child_by_field_name("property")) != "route":
                return None
            if not _is_router_name(_receiver_name(function.child_by_field_name("object"))):
                return None
            route_arguments = argument_nodes(receiver.child_by_field_name("arguments"))
            raw_path = string_value(route_arguments[0]) if route_arguments else None
            if raw_path is None:
                return None
            return raw_path, arguments

        # A single argument is the settings getter, app.get("env").
        if not _is_router_name(_receiver_name(receiver)) or len(arguments) < 2:
            return None
        raw_path = string_value(arguments[0])
        if raw_path is None:
            return None
        return raw_path, arguments[1:]

    def _collect_refs(self, route: RouteDescriptor, handler: Node, file: Path) -> None:
        handler = unwrap_expression(handler)
        if handler is None or handler.type in _FUNCTION_NODES:
            return
        if handler.type == "array":
            for element in handler.named_children:
                self._collect_refs(route, element, file)
        elif handler.type == "identifier":
            name = node_text(handler)
            if _looks_like_schema(name):
                _assign(route, "body", SchemaRef(name, file))
        elif handler.type == "object":
            _apply_location_config(route, handler, file)
        elif handler.type == "call_expression":
            self._collect_call_refs(route, handler, file)

    def _collect_call_refs(self, route: RouteDescriptor, call: Node, file: Path) -> None:
        callee = node_text(call.child_by_field_name("function")).split(".")[-1]
        arguments = argument_nodes(call.child_by_field_name("arguments"))
        for argument in arguments:
            if _apply_location_config(route, argument, file):
                return
        location = _validator_location(callee)
        identifier = first_identifier(call)
        if identifier is None:
            return
        if location is not None:
            _assign(route, location, SchemaRef(identifier, file))
        elif _looks_like_schema(identifier):
            _assign(route, "body", SchemaRef(identifier, file))


def _validator_location(callee: str) -> Optional[str]:
    """Map ``validateQuery``-style wrapper names to a request location."""
    lowered = callee.lower()
    if not lowered.startswith("validat"):
        return None
    if "quer" in lowered:
        return "query"
    if "param" in lowered:
        return "params"
    if "header" in lowered:
        return "headers"
    return "body"


# ---------------------------------------------------------------------------
# Fastify detector
# ---------------------------------------------------------------------------


class FastifyDetector:
    """Detect options-object route registrations carrying a ``schema`` key."""

    name = "fastify"

    def supports(self, source: SourceFile) -> bool:
        return source.tree is not None

    def extract(self, source: SourceFile) -> Iterable[RouteDescriptor]:
        for node in walk(source.tree.root_node):
            if node.type != "call_expression":
                continue
            call = _verb_call(node)
            if call is not None:
                route = self._shorthand(node, call, source.path)
                if route is not None:
                    yield route
                continue
            yield from self._full_declaration(node, source.path)

    def _shorthand(
        self, node: Node, call: Tuple[str, Node, Tuple[Node, ...]], file: Path
    ) -> Optional[RouteDescriptor]:
        verb, receiver, arguments = call
        if len(arguments) < 2:
            return None
        raw_path = string_value(arguments[0])
        options = unwrap_expression(arguments[1])
        if raw_path is None or options is None or options.type != "object":
            return None
        if _is_location_config(options):
            # Express-style { body, query, ... } middleware config.
            return None
        pairs = {key: value for key, value, _ in object_pairs(options)}
        schema = pairs.get("schema")
        if schema is None and not _is_router_name(_receiver_name(receiver)):
            return None
        handler = arguments[2] if len(arguments) > 2 else pairs.get("handler")
        route = RouteDescriptor(
            method=verb,
            raw_path=raw_path,
            file=file,
            line=line_of(node),
            offset=node.start_byte,
            framework="Fastify",
            handler=_handler_name(handler),
            confidence=1.0 if schema is not None else 0.8,
        )
        if schema is not None:
            _apply_location_config(route, schema, file)
        return route

    def _full_declaration(self, node: Node, file: Path) -> Iterator[RouteDescriptor]:
        function = node.child_by_field_name("function")
        if function is None or function.type != "member_expression":
            return
        if node_text(function.child_by_field_name("property")) != "route":
            return
        arguments = argument_nodes(node.child_by_field_name("arguments"))
        if len(arguments) != 1:
            return
        pairs = {key: value for key, value, _ in object_pairs(arguments[0])}
        raw_path = string_value(pairs.get("url")) or string_value(pairs.get("path"))
        methods = _method_values(pairs.get("method"))
        if raw_path is None or not methods:
            return
        schema = pairs.get("schema")
        for method in methods:
            route = RouteDescriptor(
                method=method,
                raw_path=raw_path,
                file=file,
                line=line_of(node),
                offset=node.start_byte,
                framework="Fastify",
                handler=_handler_name(pairs.get("handler")),
            )
            if schema is not None:
                _apply_location_config(route, schema, file)
            yield route


def _method_values(node: Optional[Node]) -> List[str]:
    node = unwrap_expression(node)
    if node is None:
        return []
    values = node.named_children if node.type == "array" else [node]
    methods = []
    for value in values:
        text = string_value(value)
        if text and text.lower() in HTTP_VERBS:
            methods.append(text.lower())
    return methods


# ---------------------------------------------------------------------------
# Decorator-based controllers (NestJS, routing-controllers)
# ---------------------------------------------------------------------------

_CONTROLLER_DECORATORS = {"Controller", "JsonController"}
_VERB_DECORATORS = {verb.capitalize(): verb for verb in HTTP_VERBS}
_PARAMETER_DECORATORS = {
    "Body": "body",
    "Query": "query",
    "QueryParams": "query",
    "Param": "params",
    "Params": "params",
    "Headers": "headers",
    "HeaderParams": "headers",
}
_RESPONSE_DECORATORS = {"ApiResponse": None, "ApiOkResponse": "200", "ApiCreatedResponse": "201"}
_WRAPPER_TYPES = {"Promise", "Observable", "Response"}
_PARAMETER_NODES = {"required_parameter", "optional_parameter"}


class ControllerDetector:
    """Detect decorator-based controller classes and their verb methods."""

    name = "controller"

    def supports(self, source: SourceFile) -> bool:
        return source.tree is not None and "@" in source.text

    def extract(self, source: SourceFile) -> Iterable[RouteDescriptor]:
        for node in walk(source.tree.root_node):
            if node.type not in {"class_declaration", "abstract_class_declaration", "class"}:
                continue
            base_path = self._base_path(node)
            if base_path is None:
                continue
            body = node.child_by_field_name("body")
            if body is None:
                continue
            for member in body.named_children:
                if member.type != "method_definition":
                    continue
                yield from self._routes_for_method(member, base_path, source.path)

    def _base_path(self, class_node: Node) -> Optional[str]:
        for decorator in collect_decorators(class_node):
            name, arguments = decorator_call(decorator)
            if name not in _CONTROLLER_DECORATORS:
                continue
            if not arguments:
                return ""
            text = string_value(arguments[0])
            if text is not None:
                return text
            options = {key: value for key, value, _ in object_pairs(arguments[0])}
            return string_value(options.get("path")) or ""
        return None

    def _routes_for_method(self, member: Node, base_path: str, file: Path) -> Iterator[RouteDescriptor]:
        decorators = [(decorator, *decorator_call(decorator)) for decorator in collect_decorators(member)]
        verbs = [
            (decorator, _VERB_DECORATORS[name], arguments)
            for decorator, name, arguments in decorators
            if name in _VERB_DECORATORS
        ]
        if not verbs:
            return

        default_status = "200"
        for _, name, arguments in decorators:
            if name == "HttpCode" and arguments:
                code = numeric_value(arguments[0])
                if code is not None:
                    default_status = str(int(code))

        handler = node_text(member.child_by_field_name("name")) or None
        for decorator, verb, arguments in verbs:
            method_path = string_value(arguments[0]) if arguments else ""
            route = RouteDescriptor(
                method=verb,
                raw_path=join_paths(base_path, method_path or ""),
                file=file,
                line=line_of(decorator),
                offset=decorator.start_byte,
                framework="Controller",
                handler=handler,
            )
            self._decorator_refs(route, decorators, file, default_status)
            self._parameter_refs(route, member, file)
            return_type = _type_reference(member.child_by_field_name("return_type"))
            if return_type:
                route.responses.setdefault(default_status, SchemaRef(return_type, file))
            yield route

    def _decorator_refs(
        self,
        route: RouteDescriptor,
        decorators: List[Tuple[Node, str, Tuple[Node, ...]]],
        file: Path,
        default_status: str,
    ) -> None:
        for _, name, arguments in decorators:
            if name in _VERB_DECORATORS or name == "HttpCode":
                continue
            if name in _RESPONSE_DECORATORS:
                self._response_decorator(route, name, arguments, file, default_status)
                continue
            if name == "ApiBody":
                options = {key: value for key, value, _ in object_pairs(arguments[0])} if arguments else {}
                _assign(route, "body", _ref_from_value(options.get("type"), file))
                continue
            for argument in arguments:
                for node in walk(argument):
                    if node.type == "object":
                        _apply_location_config(route, node, file, default_status)

    def _response_decorator(
        self,
        route: RouteDescriptor,
        name: str,
        arguments: Tuple[Node, ...],
        file: Path,
        default_status: str,
    ) -> None:
        options: Dict[str, Node] = {key: value for key, value, _ in object_pairs(arguments[0])} if arguments else {}
        status = _RESPONSE_DECORATORS[name]
        if status is None:
            raw_status = options.get("status")
            number = numeric_value(raw_status)
            status = str(int(number)) if number is not None else string_value(raw_status) or default_status
        ref = _ref_from_value(options.get("type"), file)
        if ref is not None:
            route.responses.setdefault(status, ref)

    def _parameter_refs(self, route: RouteDescriptor, member: Node, file: Path) -> None:
        parameters = member.child_by_field_name("parameters")
        if parameters is None:
            return
        for parameter in parameters.named_children:
            if parameter.type not in _PARAMETER_NODES:
                continue
            location = None
            for decorator in parameter.children:
                if decorator.type != "decorator":
                    continue
                name, _ = decorator_call(decorator)
                location = _PARAMETER_DECORATORS.get(name, location)
            if location is None:
                continue
            identifier = _type_reference(parameter.child_by_field_name("type"))
            if identifier:
                _assign(route, location, SchemaRef(identifier, file))


def _type_reference(node: Optional[Node]) -> Optional[str]:
    """Return the named type behind ``X``, ``Promise<X>`` or ``Promise<Response<X>>``."""
    if node is not None and node.type == "type_annotation":
        node = next((child for child in node.named_children if child.type != "comment"), None)
    if node is None:
        return None
    if node.type == "type_identifier":
        name = node_text(node)
        return None if name in _WRAPPER_TYPES else name
    if node.type == "nested_type_identifier":
        return node_text(node).split(".")[-1]
    if node.type == "generic_type":
        # Promise<express.Response<X>> qualifies the wrapper by its namespace.
        name = node_text(node.child_by_field_name("name")).split(".")[-1]
        if name not in _WRAPPER_TYPES:
            return None
        arguments = node.child_by_field_name("type_arguments")
        inner = next((child for child in arguments.named_children if child.type != "comment"), None) if arguments is not None else None
        return _type_reference(inner)
    return None


__all__ = ["ControllerDetector", "ExpressDetector", "FastifyDetector"]
