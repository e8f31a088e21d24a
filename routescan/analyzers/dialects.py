"""Normalization of every schema dialect into :class:`ObjectSchema`."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from tree_sitter import Node

from ..models import Declaration, Dialect, FieldSchema, ObjectSchema
from .descriptions import resolve_description
from .tree_sitter import (
    ChainCall,
    collect_decorators,
    decorator_call,
    node_text,
    numeric_value,
    object_pairs,
    property_key,
    string_value,
    unwind_chain,
    unwrap_expression,
)

_FIELD_NODES = {"public_field_definition", "field_definition"}


class DialectNormalizer(ABC):
    """Contract shared by all dialect converters."""

    dialect: Dialect

    @abstractmethod
    def normalize(self, declaration: Declaration, base: Optional[ObjectSchema] = None) -> ObjectSchema:
        """Convert a raw declaration into the canonical field list.

        ``base`` is the already normalized schema named by ``declaration.base``;
        its fields come first and may be overridden by the declaration's own.
        """


def _base_fields(base: Optional[ObjectSchema]) -> List[FieldSchema]:
    return list(base.fields) if base is not None else []


@dataclass
class _FieldShape:
    type: str = "string"
    items: Optional[str] = None
    format: Optional[str] = None
    minimum: Optional[Union[int, float]] = None
    optional: bool = False
    required_marker: bool = False
    description: Optional[str] = None


# ---------------------------------------------------------------------------
# Builder chains (zod, joi)
# ---------------------------------------------------------------------------


class _BuilderChainNormalizer(DialectNormalizer):
    type_tokens: Mapping[str, str] = {}
    type_formats: Mapping[str, str] = {}
    format_calls: Mapping[str, str] = {}
    object_calls: FrozenSet[str] = frozenset()
    optional_calls: FrozenSet[str] = frozenset()
    required_calls: FrozenSet[str] = frozenset()
    minimum_calls: FrozenSet[str] = frozenset({"min"})
    description_call: str = ""
    subset_calls: FrozenSet[str] = frozenset()

    def normalize(self, declaration: Declaration, base: Optional[ObjectSchema] = None) -> ObjectSchema:
        node = declaration.node
        if node is not None and node.type == "ERROR":
            fields = [
                self._field(key, value, pair)
                for key, value, pair in _loose_pairs(node, declaration.span.start)
            ]
            return ObjectSchema.from_fields(fields, name=declaration.name)

        value = node.child_by_field_name("value") if node is not None else None
        _, calls = unwind_chain(value)
        fields = _base_fields(base)
        for call in calls:
            if call.name in self.object_calls and call.arguments:
                literal = unwrap_expression(call.arguments[0])
                if literal is not None and literal.type == "object":
                    fields.extend(self._field(key, item, pair) for key, item, pair in object_pairs(literal))
            elif call.name == "partial" and not call.arguments:
                fields = [replace(item, required=False) for item in fields]
            elif call.name in self.subset_calls and call.arguments:
                selected = {key for key, _, _ in object_pairs(call.arguments[0])}
                keep = call.name == "pick"
                fields = [item for item in fields if (item.name in selected) == keep]
        return ObjectSchema.from_fields(fields, name=declaration.name)

    def _field(self, name: str, value: Node, member: Node) -> FieldSchema:
        shape = self._interpret(value)
        return FieldSchema(
            name=name,
            type=shape.type,
            required=self._is_required(shape),
            format=shape.format,
            minimum=shape.minimum,
            items=shape.items,
            description=resolve_description(member, shape.description),
        )

    @abstractmethod
    def _is_required(self, shape: _FieldShape) -> bool:
        ...

    def _interpret(self, value: Optional[Node]) -> _FieldShape:
        shape = _FieldShape()
        value = unwrap_expression(value)
        if value is None:
            return shape
        if value.type in {"identifier", "member_expression"}:
            # Reference to another schema binding.
            shape.type = "object"
            return shape

        root, calls = unwind_chain(value)
        if not calls:
            return shape

        modifiers: Sequence[ChainCall] = calls
        base = calls[0]
        if base.name in self.optional_calls and base.arguments and root is not None:
            # z.optional(z.string()) style wrappers.
            shape = self._interpret(base.arguments[0])
            shape.optional = shape.optional or base.name != "nullable"
            modifiers = calls[1:]
        elif base.name in self.type_tokens or base.name not in self._modifier_names():
            shape.type = self.type_tokens.get(base.name, "string")
            shape.format = self.type_formats.get(base.name)
            if shape.type == "array" and base.arguments:
                shape.items = self._interpret(base.arguments[0]).type
            modifiers = calls[1:]
        else:
            shape.type = "object"

        for call in modifiers:
            self._apply(shape, call)
        return shape

    def _modifier_names(self) -> FrozenSet[str]:
        return (
            self.optional_calls
            | self.required_calls
            | self.minimum_calls
            | frozenset(self.format_calls)
            | frozenset({self.description_call, "array", "items", "nonnegative", "default"})
        )

    def _apply(self, shape: _FieldShape, call: ChainCall) -> None:
        name = call.name
        if name in self.optional_calls:
            shape.optional = shape.optional or name != "nullable"
        elif name in self.required_calls:
            shape.required_marker = True
        elif name in self.minimum_calls and call.arguments:
            bound = numeric_value(call.arguments[0])
            if bound is not None:
                shape.minimum = bound
        elif name == "nonnegative":
            shape.minimum = 0
        elif name in self.format_calls:
            shape.format = self.format_calls[name]
        elif name == self.description_call and call.arguments:
            text = string_value(call.arguments[0])
            if text is not None:
                shape.description = text
        elif name == "array" and not call.arguments:
            shape.items = shape.type
            shape.type = "array"
            shape.format = None
        elif name == "items" and call.arguments:
            shape.items = self._interpret(call.arguments[0]).type


def _loose_pairs(fragment: Node, start: int) -> Iterator[Tuple[str, Node, Node]]:
    """Completed ``key: value`` pairs left behind by error recovery after ``start``."""
    for child in fragment.named_children:
        if child.end_byte <= start:
            continue
        if child.type == "pair":
            key = property_key(child.child_by_field_name("key"))
            value = child.child_by_field_name("value")
            if key is not None and value is not None:
                yield key, value, child
        elif child.type in {"object", "ERROR"}:
            yield from _loose_pairs(child, start)


class ZodNormalizer(_BuilderChainNormalizer):
    """``z.object({...})`` schemas; optionality is an explicit modifier."""

    dialect = Dialect.ZOD
    type_tokens = {
        "string": "string",
        "number": "number",
        "bigint": "number",
        "int": "number",
        "boolean": "boolean",
        "date": "string",
        "array": "array",
        "tuple": "array",
        "set": "array",
        "object": "object",
        "record": "object",
        "map": "object",
        "enum": "string",
        "nativeEnum": "string",
        "literal": "string",
    }
    type_formats = {"date": "date-time"}
    format_calls = {"email": "email", "url": "uri", "uuid": "uuid", "datetime": "date-time"}
    object_calls = frozenset({"object", "strictObject", "looseObject", "extend"})
    optional_calls = frozenset({"optional", "nullish", "nullable"})
    minimum_calls = frozenset({"min", "gte"})
    description_call = "describe"
    subset_calls = frozenset({"pick", "omit"})

    def _is_required(self, shape: _FieldShape) -> bool:
        return not shape.optional


class JoiNormalizer(_BuilderChainNormalizer):
    """``Joi.object({...})`` schemas; fields are optional unless ``.required()``."""

    dialect = Dialect.JOI
    type_tokens = {
        "string": "string",
        "number": "number",
        "boolean": "boolean",
        "bool": "boolean",
        "date": "string",
        "array": "array",
        "object": "object",
        "any": "string",
        "alternatives": "string",
        "binary": "string",
    }
    type_formats = {"date": "date-time"}
    format_calls = {
        "email": "email",
        "uri": "uri",
        "uuid": "uuid",
        "guid": "uuid",
        "iso": "date-time",
        "isoDate": "date-time",
    }
    object_calls = frozenset({"object", "keys", "append"})
    optional_calls = frozenset({"optional"})
    required_calls = frozenset({"required", "exist"})
    description_call = "description"

    def _is_required(self, shape: _FieldShape) -> bool:
        return shape.required_marker and not shape.optional


# ---------------------------------------------------------------------------
# TypeScript annotations (class-validator classes, interfaces, type aliases)
# ---------------------------------------------------------------------------

_PREDEFINED_TYPES = {
    "string": "string",
    "number": "number",
    "bigint": "number",
    "boolean": "boolean",
    "object": "object",
}

_WRAPPER_TYPES = {"String": "string", "Number": "number", "Boolean": "boolean", "Object": "object"}

_NULLISH_TYPES = {"null", "undefined"}


def annotation_shape(annotation: Optional[Node]) -> _FieldShape:
    """Map a ``type_annotation`` (or bare type node) onto canonical type data."""
    shape = _FieldShape()
    node = annotation
    if node is not None and node.type == "type_annotation":
        node = next((child for child in node.named_children if child.type != "comment"), None)
    if node is None:
        return shape

    if node.type == "parenthesized_type":
        inner = next((child for child in node.named_children if child.type != "comment"), None)
        return annotation_shape(inner)
    if node.type == "predefined_type":
        shape.type = _PREDEFINED_TYPES.get(node_text(node), "string")
    elif node.type == "type_identifier":
        name = node_text(node)
        if name == "Date":
            shape.type, shape.format = "string", "date-time"
        else:
            shape.type = _WRAPPER_TYPES.get(name, "object")
    elif node.type == "array_type":
        element = next((child for child in node.named_children if child.type != "comment"), None)
        shape.type = "array"
        shape.items = annotation_shape(element).type
    elif node.type == "generic_type":
        name = node_text(node.child_by_field_name("name"))
        arguments = node.child_by_field_name("type_arguments")
        first = next((child for child in arguments.named_children if child.type != "comment"), None) if arguments is not None else None
        if name in {"Array", "ReadonlyArray", "Set"}:
            shape.type = "array"
            shape.items = annotation_shape(first).type
        else:
            shape.type = "object"
    elif node.type == "union_type":
        members = [child for child in node.named_children if child.type != "comment"]
        concrete = [child for child in members if node_text(child) not in _NULLISH_TYPES]
        if concrete:
            return annotation_shape(concrete[0])
    elif node.type == "literal_type":
        literal = node_text(node)
        if literal in {"true", "false"}:
            shape.type = "boolean"
        elif numeric_value(next(iter(node.named_children), None)) is not None:
            shape.type = "number"
    elif node.type in {"object_type", "tuple_type"}:
        shape.type = "object" if node.type == "object_type" else "array"
    return shape


def _is_optional_member(member: Node) -> bool:
    return any(child.type == "?" for child in member.children)


class ClassValidatorNormalizer(DialectNormalizer):
    """Classes whose properties carry class-validator / swagger decorators."""

    dialect = Dialect.CLASS_VALIDATOR

    _decorator_types = {
        "IsString": "string",
        "IsNumber": "number",
        "IsInt": "number",
        "IsPositive": "number",
        "IsBoolean": "boolean",
        "IsObject": "object",
    }
    _decorator_formats = {
        "IsEmail": "email",
        "IsUUID": "uuid",
        "IsUrl": "uri",
        "IsDate": "date-time",
        "IsDateString": "date-time",
        "IsISO8601": "date-time",
    }

    def normalize(self, declaration: Declaration, base: Optional[ObjectSchema] = None) -> ObjectSchema:
        body = declaration.node.child_by_field_name("body") if declaration.node is not None else None
        if body is None:
            return ObjectSchema.from_fields(_base_fields(base), name=declaration.name)
        fields = _base_fields(base)
        fields.extend(
            item
            for item in (self._field(member) for member in body.named_children if member.type in _FIELD_NODES)
            if item is not None
        )
        return ObjectSchema.from_fields(fields, name=declaration.name)

    def _field(self, member: Node) -> Optional[FieldSchema]:
        if any(child.type == "static" for child in member.children):
            return None
        name = property_key(member.child_by_field_name("name"))
        if not name:
            return None

        annotated = member.child_by_field_name("type")
        shape = annotation_shape(annotated)
        shape.optional = _is_optional_member(member)
        decorated_type: Optional[str] = None
        is_array = False
        explicit: Optional[str] = None

        for decorator in collect_decorators(member):
            decorator_name, arguments = decorator_call(decorator)
            if decorator_name == "IsOptional":
                shape.optional = True
            elif decorator_name == "IsArray":
                is_array = True
            elif decorator_name in self._decorator_types:
                decorated_type = self._decorator_types[decorator_name]
            elif decorator_name in self._decorator_formats:
                shape.format = self._decorator_formats[decorator_name]
                if decorator_name == "IsDate":
                    decorated_type = "string"
            elif decorator_name == "Min" and arguments:
                bound = numeric_value(arguments[0])
                if bound is not None:
                    shape.minimum = bound
            elif decorator_name in {"ApiProperty", "ApiPropertyOptional"}:
                if decorator_name == "ApiPropertyOptional":
                    shape.optional = True
                options = dict(_option_pairs(arguments))
                if "description" in options:
                    explicit = string_value(options["description"])
                if node_text(options.get("required")) == "false":
                    shape.optional = True
                if "minimum" in options:
                    bound = numeric_value(options["minimum"])
                    if bound is not None:
                        shape.minimum = bound
                if "format" in options:
                    shape.format = string_value(options["format"]) or shape.format

        if is_array and shape.type != "array":
            shape.type, shape.items = "array", decorated_type or "string"
        elif shape.type == "array":
            # @IsString({ each: true }) describes the elements.
            shape.items = decorated_type or shape.items
        elif decorated_type is not None:
            shape.type = decorated_type

        return FieldSchema(
            name=name,
            type=shape.type,
            required=not shape.optional,
            format=shape.format,
            minimum=shape.minimum,
            items=shape.items,
            description=resolve_description(member, explicit),
        )


def _option_pairs(arguments: Sequence[Node]) -> Iterable[tuple]:
    for argument in arguments:
        for key, value, _ in object_pairs(argument):
            yield key, value


class TypeDeclarationNormalizer(DialectNormalizer):
    """Interfaces and object type aliases; ``?`` is the only optionality marker."""

    dialect = Dialect.TYPE_DECLARATION

    def normalize(self, declaration: Declaration, base: Optional[ObjectSchema] = None) -> ObjectSchema:
        node = declaration.node
        body = None
        if node is not None:
            body = node.child_by_field_name("body")
            if body is None:
                body = node.child_by_field_name("value")
        fields = _base_fields(base)
        if body is None:
            return ObjectSchema.from_fields(fields, name=declaration.name)
        for member in body.named_children:
            if member.type != "property_signature":
                continue
            name = property_key(member.child_by_field_name("name"))
            if not name:
                continue
            shape = annotation_shape(member.child_by_field_name("type"))
            fields.append(
                FieldSchema(
                    name=name,
                    type=shape.type,
                    required=not _is_optional_member(member),
                    format=shape.format,
                    items=shape.items,
                    description=resolve_description(member),
                )
            )
        return ObjectSchema.from_fields(fields, name=declaration.name)


_NORMALIZERS: Dict[Dialect, DialectNormalizer] = {
    normalizer.dialect: normalizer
    for normalizer in (
        ZodNormalizer(),
        JoiNormalizer(),
        ClassValidatorNormalizer(),
        TypeDeclarationNormalizer(),
    )
}


def normalizer_for(dialect: Dialect) -> DialectNormalizer:
    return _NORMALIZERS[dialect]


def normalize(declaration: Declaration, base: Optional[ObjectSchema] = None) -> ObjectSchema:
    """Convert any declaration into an :class:`ObjectSchema`, on top of ``base`` when given."""
    return normalizer_for(declaration.dialect).normalize(declaration, base)


__all__ = [
    "ClassValidatorNormalizer",
    "DialectNormalizer",
    "JoiNormalizer",
    "TypeDeclarationNormalizer",
    "ZodNormalizer",
    "annotation_shape",
    "normalize",
    "normalizer_for",
]
