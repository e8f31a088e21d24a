"""Declaration extraction: schema definitions and imports of one source file."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional

from tree_sitter import Node, Tree

from ..models import Declaration, Dialect, ImportEdge, SourceFile, Span
from .tree_sitter import (
    ChainCall,
    SourceParser,
    argument_nodes,
    is_comment,
    node_text,
    string_value,
    unwind_chain,
    unwrap_expression,
)

_BUILDER_MODULES = {
    "zod": Dialect.ZOD,
    "joi": Dialect.JOI,
    "@hapi/joi": Dialect.JOI,
}

_DEFAULT_BUILDERS = {
    "z": Dialect.ZOD,
    "zod": Dialect.ZOD,
    "Joi": Dialect.JOI,
    "joi": Dialect.JOI,
}

# Calls that derive a new object schema from an existing binding.
_DERIVING_CALLS = {
    "extend": Dialect.ZOD,
    "partial": Dialect.ZOD,
    "pick": Dialect.ZOD,
    "omit": Dialect.ZOD,
    "strict": Dialect.ZOD,
    "passthrough": Dialect.ZOD,
    "keys": Dialect.JOI,
    "append": Dialect.JOI,
}

_OBJECT_BUILDERS = {"object", "strictObject", "looseObject"}

_CLASS_NODES = {"class_declaration", "abstract_class_declaration", "class"}
_FIELD_NODES = {"public_field_definition", "field_definition"}
_OBJECT_TYPE_NODES = {"object_type", "interface_body"}


class DeclarationExtractor:
    """Turns file text into declarations and an import table."""

    def __init__(self, parser: SourceParser | None = None) -> None:
        self._parser = parser or SourceParser()

    def extract(self, path: Path, text: str) -> SourceFile:
        tree = self._parser.parse(text, path)
        return extract_from_tree(path, text, tree)


def extract_source(path: Path, text: str, parser: Optional[SourceParser] = None) -> SourceFile:
    """Parse ``text`` and return its declarations and import table."""
    return DeclarationExtractor(parser).extract(path, text)


def extract_from_tree(path: Path, text: str, tree: Tree) -> SourceFile:
    """Build a :class:`SourceFile` from an already parsed tree."""
    root = tree.root_node
    statements = list(_top_level_statements(root))

    imports: Dict[str, ImportEdge] = {}
    star_exports: List[str] = []
    builders: Dict[str, Dialect] = dict(_DEFAULT_BUILDERS)
    for statement in statements:
        for edge in _import_edges(statement, path):
            imports[edge.identifier] = edge
            dialect = _BUILDER_MODULES.get(edge.source)
            if dialect is not None:
                builders[edge.identifier] = dialect
        star = _star_export(statement)
        if star is not None:
            star_exports.append(star)

    declarations: Dict[str, Declaration] = {}
    scope = _Scope(builders, declarations, imports)
    for statement in statements:
        for declaration in _declarations(statement, scope):
            # Later definitions shadow earlier ones, as in module scope.
            declarations.pop(declaration.name, None)
            declarations[declaration.name] = declaration

    return SourceFile(
        path=path,
        text=text,
        declarations=declarations,
        imports=imports,
        star_exports=star_exports,
        tree=tree,
    )


class _Scope:
    """Bindings visible while walking one file's statements in order."""

    def __init__(
        self,
        builders: Dict[str, Dialect],
        declarations: Dict[str, Declaration],
        imports: Dict[str, ImportEdge],
    ) -> None:
        self.builders = builders
        self.declarations = declarations
        self.imports = imports

    def derived_dialect(self, root: str, first_call: str) -> Optional[Dialect]:
        """Dialect of ``root.<first_call>(...)`` when ``root`` is a schema binding."""
        if first_call not in _DERIVING_CALLS:
            return None
        known = self.declarations.get(root)
        if known is not None:
            return known.dialect if known.dialect in {Dialect.ZOD, Dialect.JOI} else None
        if root in self.imports:
            return _DERIVING_CALLS[first_call]
        return None


def _top_level_statements(root: Node) -> Iterable[Node]:
    for child in root.children:
        if child.type == "ERROR":
            # The fragment may hold a declaration cut off at end of input;
            # complete statements inside it are recovered as well.
            yield child
            yield from _top_level_statements(child)
        else:
            yield child


# ---------------------------------------------------------------------------
# Imports
# ---------------------------------------------------------------------------


def _import_edges(statement: Node, path: Path) -> Iterable[ImportEdge]:
    if statement.type == "import_statement":
        source = string_value(statement.child_by_field_name("source"))
        if source is None:
            return
        clause = next((child for child in statement.named_children if child.type == "import_clause"), None)
        if clause is None:
            return
        for child in clause.named_children:
            if child.type == "identifier":
                yield ImportEdge(node_text(child), source, path, "default")
            elif child.type == "namespace_import":
                alias = next((item for item in child.named_children if item.type == "identifier"), None)
                if alias is not None:
                    yield ImportEdge(node_text(alias), source, path, "*")
            elif child.type == "named_imports":
                for specifier in child.named_children:
                    if specifier.type != "import_specifier":
                        continue
                    name = _export_name(specifier.child_by_field_name("name"))
                    alias_node = specifier.child_by_field_name("alias")
                    local = node_text(alias_node) if alias_node is not None else name
                    if name and local:
                        yield ImportEdge(local, source, path, name)
    elif statement.type == "export_statement":
        source = string_value(statement.child_by_field_name("source"))
        clause = next((child for child in statement.named_children if child.type == "export_clause"), None)
        if source is None or clause is None:
            return
        for specifier in clause.named_children:
            if specifier.type != "export_specifier":
                continue
            name = _export_name(specifier.child_by_field_name("name"))
            alias_node = specifier.child_by_field_name("alias")
            exported = _export_name(alias_node) if alias_node is not None else name
            if name and exported:
                yield ImportEdge(exported, source, path, name)
    elif statement.type in {"lexical_declaration", "variable_declaration"}:
        yield from _require_edges(statement, path)


def _export_name(node: Optional[Node]) -> str:
    if node is None:
        return ""
    if node.type == "string":
        return string_value(node) or ""
    return node_text(node)


def _require_edges(statement: Node, path: Path) -> Iterable[ImportEdge]:
    for declarator in statement.named_children:
        if declarator.type != "variable_declarator":
            continue
        value = unwrap_expression(declarator.child_by_field_name("value"))
        if value is None or value.type != "call_expression":
            continue
        function = value.child_by_field_name("function")
        if node_text(function) != "require":
            continue
        arguments = argument_nodes(value.child_by_field_name("arguments"))
        source = string_value(arguments[0]) if arguments else None
        if source is None:
            continue
        name = declarator.child_by_field_name("name")
        if name is None:
            continue
        if name.type == "identifier":
            yield ImportEdge(node_text(name), source, path, "default")
        elif name.type == "object_pattern":
            for item in name.named_children:
                if item.type == "shorthand_property_identifier_pattern":
                    local = node_text(item)
                    yield ImportEdge(local, source, path, local)
                elif item.type == "pair_pattern":
                    key = node_text(item.child_by_field_name("key"))
                    local = node_text(item.child_by_field_name("value"))
                    if key and local:
                        yield ImportEdge(local, source, path, key)


def _star_export(statement: Node) -> Optional[str]:
    if statement.type != "export_statement":
        return None
    if any(child.type == "export_clause" or child.type == "namespace_export" for child in statement.named_children):
        return None
    if not any(child.type == "*" for child in statement.children):
        return None
    return string_value(statement.child_by_field_name("source"))


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


def _declarations(statement: Node, scope: _Scope) -> Iterable[Declaration]:
    if statement.type == "ERROR":
        declaration = _truncated_declaration(statement, scope.builders)
        if declaration is not None:
            yield declaration
        return

    target = statement
    if statement.type == "export_statement":
        target = statement.child_by_field_name("declaration")
        if target is None:
            return

    if target.type in {"lexical_declaration", "variable_declaration"}:
        for declarator in target.named_children:
            if declarator.type != "variable_declarator":
                continue
            declaration = _builder_declaration(statement, declarator, scope)
            if declaration is not None:
                yield declaration
    elif target.type in _CLASS_NODES:
        declaration = _class_declaration(statement, target)
        if declaration is not None:
            yield declaration
    elif target.type == "interface_declaration":
        name = node_text(target.child_by_field_name("name"))
        if name:
            yield _make(name, Dialect.TYPE_DECLARATION, statement, target, base=_extended_interface(target))
    elif target.type == "type_alias_declaration":
        name = node_text(target.child_by_field_name("name"))
        value = target.child_by_field_name("value")
        if name and value is not None and value.type in _OBJECT_TYPE_NODES:
            yield _make(name, Dialect.TYPE_DECLARATION, statement, target)


def _builder_declaration(statement: Node, declarator: Node, scope: _Scope) -> Optional[Declaration]:
    name_node = declarator.child_by_field_name("name")
    value = declarator.child_by_field_name("value")
    if name_node is None or name_node.type != "identifier" or value is None:
        return None
    root, calls = unwind_chain(value)
    if root is None or not calls:
        return None
    dialect = scope.builders.get(root)
    if dialect is not None:
        return _make(node_text(name_node), dialect, statement, declarator)
    dialect = scope.derived_dialect(root, calls[0].name)
    if dialect is None:
        return None
    return _make(node_text(name_node), dialect, statement, declarator, base=root)


def _truncated_declaration(fragment: Node, builders: Dict[str, Dialect]) -> Optional[Declaration]:
    """Recover ``const S = z.object({ a: ..., b: ...`` cut off at end of input.

    Error recovery leaves the binding name, the builder expression and the
    completed ``pair`` nodes as loose children of the fragment.
    """
    named = [child for child in fragment.named_children if not is_comment(child)]
    for index, child in enumerate(named[:-1]):
        if child.type != "identifier":
            continue
        builder = named[index + 1]
        if builder.type not in {"member_expression", "call_expression"}:
            continue
        root, calls = unwind_chain(builder)
        dialect = builders.get(root) if root is not None else None
        if dialect is None or not _opens_object(builder, calls):
            continue
        span = Span(
            start=child.start_byte,
            end=fragment.end_byte,
            start_line=child.start_point[0] + 1,
            end_line=fragment.end_point[0] + 1,
        )
        text = fragment.text[child.start_byte - fragment.start_byte :].decode("utf-8", errors="replace")
        return Declaration(name=node_text(child), dialect=dialect, span=span, text=text, node=fragment)
    return None


def _opens_object(builder: Node, calls: List[ChainCall]) -> bool:
    if builder.type == "member_expression":
        return node_text(builder.child_by_field_name("property")) in _OBJECT_BUILDERS
    return any(call.name in _OBJECT_BUILDERS for call in calls)


def _extended_interface(node: Node) -> Optional[str]:
    clause = next((child for child in node.named_children if child.type == "extends_type_clause"), None)
    if clause is None:
        return None
    base = next((child for child in clause.named_children if not is_comment(child)), None)
    if base is not None and base.type == "type_identifier":
        return node_text(base)
    return None


def _class_declaration(statement: Node, node: Node) -> Optional[Declaration]:
    name = node_text(node.child_by_field_name("name"))
    body = node.child_by_field_name("body")
    if not name or body is None:
        return None
    if not any(child.type in _FIELD_NODES for child in body.named_children):
        return None
    return _make(name, Dialect.CLASS_VALIDATOR, statement, node, base=_extended_class(node))


def _extended_class(node: Node) -> Optional[str]:
    heritage = next((child for child in node.named_children if child.type == "class_heritage"), None)
    if heritage is None:
        return None
    clause = next((child for child in heritage.named_children if child.type == "extends_clause"), None)
    value = clause.child_by_field_name("value") if clause is not None else None
    if value is not None and value.type == "identifier":
        return node_text(value)
    return None


def _make(name: str, dialect: Dialect, statement: Node, node: Node, base: Optional[str] = None) -> Declaration:
    span = Span(
        start=statement.start_byte,
        end=statement.end_byte,
        start_line=statement.start_point[0] + 1,
        end_line=statement.end_point[0] + 1,
    )
    return Declaration(name=name, dialect=dialect, span=span, text=node_text(statement), node=node, base=base)


__all__ = ["DeclarationExtractor", "extract_from_tree", "extract_source"]
