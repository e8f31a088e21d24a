"""Tree-sitter parsing and syntax-node helpers shared by the analyzers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

_LANGUAGE_FACTORIES: Dict[str, Callable[[], object]] = {
    "typescript": tree_sitter_typescript.language_typescript,
    "tsx": tree_sitter_typescript.language_tsx,
}

_LANGUAGE_BY_SUFFIX = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".js": "typescript",
    ".mjs": "typescript",
    ".cjs": "typescript",
    ".tsx": "tsx",
    ".jsx": "tsx",
}

SOURCE_SUFFIXES = frozenset(_LANGUAGE_BY_SUFFIX)

# Expression wrappers that do not change which value is being built.
_TRANSPARENT_EXPRESSIONS = {
    "parenthesized_expression",
    "as_expression",
    "satisfies_expression",
    "non_null_expression",
    "await_expression",
}


@dataclass(frozen=True)
class ChainCall:
    """One call in a fluent chain such as ``z.string().min(1)``."""

    name: str
    arguments: Tuple[Node, ...]
    node: Node


class SourceParser:
    """Lazily builds one tree-sitter parser per grammar."""

    def __init__(self) -> None:
        self._parsers: Dict[str, Parser] = {}

    def parse(self, text: str, path: Optional[Path] = None) -> Tree:
        language_key = language_for_path(path) if path is not None else None
        parser = self._get_parser(language_key or "typescript")
        return parser.parse(text.encode("utf-8"))

    def _get_parser(self, language_key: str) -> Parser:
        parser = self._parsers.get(language_key)
        if parser is not None:
            return parser
        language = Language(_LANGUAGE_FACTORIES[language_key]())
        parser = Parser(language)
        self._parsers[language_key] = parser
        return parser


def language_for_path(path: Path) -> Optional[str]:
    return _LANGUAGE_BY_SUFFIX.get(path.suffix.lower())


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def line_of(node: Node) -> int:
    """Return the 1-based line a node starts on."""
    return node.start_point[0] + 1


def is_comment(node: Node) -> bool:
    return node.type == "comment"


def walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and its descendants in source (pre-)order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def unwrap_expression(node: Optional[Node]) -> Optional[Node]:
    while node is not None and node.type in _TRANSPARENT_EXPRESSIONS:
        inner = next((child for child in node.named_children if not is_comment(child)), None)
        if inner is None:
            return node
        node = inner
    return node


def argument_nodes(arguments: Optional[Node]) -> Tuple[Node, ...]:
    if arguments is None:
        return ()
    return tuple(child for child in arguments.named_children if not is_comment(child))


def string_value(node: Optional[Node]) -> Optional[str]:
    """Return the literal value of a string or substitution-free template string."""
    node = unwrap_expression(node)
    if node is None:
        return None
    if node.type == "string":
        raw = node_text(node)
        return _unescape(raw[1:-1]) if len(raw) >= 2 else ""
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.children):
            return None
        raw = node_text(node)
        return raw[1:-1] if len(raw) >= 2 else ""
    return None


def _unescape(value: str) -> str:
    if "\\" not in value:
        return value
    replacements = {"\\'": "'", '\\"': '"', "\\n": "\n", "\\t": "\t", "\\`": "`"}
    for escaped, plain in replacements.items():
        value = value.replace(escaped, plain)
    return value.replace("\\\\", "\\")


def numeric_value(node: Optional[Node]) -> Optional[Union[int, float]]:
    node = unwrap_expression(node)
    if node is None:
        return None
    if node.type == "unary_expression":
        operand = node.child_by_field_name("argument")
        operator = node.child_by_field_name("operator")
        value = numeric_value(operand)
        if value is None:
            return None
        return -value if node_text(operator) == "-" else value
    if node.type != "number":
        return None
    raw = node_text(node).replace("_", "")
    try:
        if raw.lower().startswith(("0x", "0o", "0b")):
            return int(raw, 0)
        number = float(raw)
    except ValueError:
        return None
    return int(number) if number.is_integer() and "." not in raw and "e" not in raw.lower() else number


def property_key(node: Optional[Node]) -> Optional[str]:
    """Return the static name of an object key or class member name."""
    if node is None:
        return None
    if node.type in {"property_identifier", "identifier", "shorthand_property_identifier", "private_property_identifier", "type_identifier"}:
        return node_text(node)
    if node.type == "number":
        return node_text(node)
    if node.type in {"string", "template_string"}:
        return string_value(node)
    return None


def object_pairs(node: Optional[Node]) -> Iterator[Tuple[str, Node, Node]]:
    """Yield ``(key, value, pair)`` for each statically keyed pair of an object literal."""
    node = unwrap_expression(node)
    if node is None or node.type != "object":
        return
    for child in node.named_children:
        if child.type == "pair":
            key = property_key(child.child_by_field_name("key"))
            value = child.child_by_field_name("value")
            if key is not None and value is not None:
                yield key, value, child
        elif child.type == "shorthand_property_identifier":
            yield node_text(child), child, child


def unwind_chain(node: Optional[Node]) -> Tuple[Optional[str], List[ChainCall]]:
    """Split a fluent call chain into its root identifier and calls (innermost first).

    ``z.string().email().optional()`` yields ``("z", [string, email, optional])``;
    property hops without a call (``z.coerce.number()``) are skipped. The root is
    ``None`` when the chain starts with a bare function call.
    """
    calls: List[ChainCall] = []
    root: Optional[str] = None
    current = unwrap_expression(node)
    while current is not None:
        if current.type == "call_expression":
            function = current.child_by_field_name("function")
            arguments = argument_nodes(current.child_by_field_name("arguments"))
            if function is not None and function.type == "member_expression":
                prop = function.child_by_field_name("property")
                calls.append(ChainCall(node_text(prop), arguments, current))
                current = unwrap_expression(function.child_by_field_name("object"))
                continue
            if function is not None and function.type == "identifier":
                calls.append(ChainCall(node_text(function), arguments, current))
            break
        if current.type == "member_expression":
            current = unwrap_expression(current.child_by_field_name("object"))
            continue
        if current.type == "identifier":
            root = node_text(current)
        break
    calls.reverse()
    return root, calls


def collect_decorators(member: Node) -> List[Node]:
    """Return decorators attached to a class member or class, in source order.

    Depending on grammar placement a decorator is either a child of the member
    or a preceding sibling inside the class body. The backward scan stops at
    the first node that is neither a decorator nor a comment, so decorators of
    the previous member are never picked up.
    """
    preceding: List[Node] = []
    sibling = member.prev_sibling
    while sibling is not None and sibling.type in {"decorator", "comment"}:
        if sibling.type == "decorator":
            preceding.append(sibling)
        sibling = sibling.prev_sibling
    preceding.reverse()

    outer: List[Node] = []
    parent = member.parent
    if parent is not None and parent.type == "export_statement":
        outer = [child for child in parent.children if child.type == "decorator"]

    own = [child for child in member.children if child.type == "decorator"]
    return outer + preceding + own


def decorator_call(decorator: Node) -> Tuple[str, Tuple[Node, ...]]:
    """Return ``(name, arguments)`` for ``@Name``, ``@Name(...)`` or ``@ns.Name(...)``."""
    expression = next((child for child in decorator.named_children if not is_comment(child)), None)
    if expression is None:
        return "", ()
    if expression.type == "call_expression":
        function = expression.child_by_field_name("function")
        arguments = argument_nodes(expression.child_by_field_name("arguments"))
        return _last_segment(function), arguments
    return _last_segment(expression), ()


def _last_segment(node: Optional[Node]) -> str:
    if node is None:
        return ""
    if node.type == "member_expression":
        return node_text(node.child_by_field_name("property"))
    return node_text(node)


def first_identifier(node: Optional[Node]) -> Optional[str]:
    """Return the first identifier referenced by a value expression, skipping callees."""
    node = unwrap_expression(node)
    if node is None:
        return None
    if node.type in {"identifier", "shorthand_property_identifier"}:
        return node_text(node)
    if node.type == "call_expression":
        for argument in argument_nodes(node.child_by_field_name("arguments")):
            found = first_identifier(argument)
            if found:
                return found
    return None


__all__ = [
    "ChainCall",
    "SOURCE_SUFFIXES",
    "SourceParser",
    "argument_nodes",
    "collect_decorators",
    "decorator_call",
    "first_identifier",
    "is_comment",
    "language_for_path",
    "line_of",
    "node_text",
    "numeric_value",
    "object_pairs",
    "property_key",
    "string_value",
    "unwind_chain",
    "unwrap_expression",
    "walk",
]
