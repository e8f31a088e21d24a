"""Field description lookup over comments and schema-native annotations.

Precedence, first match wins:

1. an explicit description carried by the schema itself (``.describe("...")``,
   ``.description("...")`` or ``@ApiProperty({ description })``), passed in by
   the dialect normalizer;
2. a ``/** ... */`` documentation comment immediately preceding the field;
3. a ``/* ... */`` block comment immediately preceding the field;
4. a comment trailing the field on its last line;
5. nothing.
"""

from __future__ import annotations

import re
from typing import List, Optional

from tree_sitter import Node

from .tree_sitter import is_comment, node_text

_SEPARATORS = {",", ";"}
_OPENERS = {"{", "(", "["}
_LEADING_STAR = re.compile(r"^\s*\*+ ?")


def resolve_description(member: Node, explicit: Optional[str] = None) -> Optional[str]:
    """Return the best available description for a field-level syntax node."""
    if explicit and explicit.strip():
        return explicit.strip()

    leading = leading_comments(member)
    for comment in leading:
        if node_text(comment).startswith("/**"):
            return clean_comment(node_text(comment))
    for comment in leading:
        if node_text(comment).startswith("/*"):
            return clean_comment(node_text(comment))

    trailing = trailing_comment(member)
    if trailing is not None:
        return clean_comment(node_text(trailing))
    return None


def leading_comments(member: Node) -> List[Node]:
    """Return comments directly above ``member``, nearest first.

    Comments between a field's decorators and its name count as leading. A
    comment that shares a line with the end of the previous field belongs to
    that field and stops the scan, as does a blank line.
    """
    found: List[Node] = []
    name = member.child_by_field_name("name")
    if name is None:
        name = member.child_by_field_name("key")
    if name is not None:
        inner = [child for child in member.children if is_comment(child) and child.end_byte <= name.start_byte]
        found.extend(reversed(inner))

    anchor = member
    sibling = member.prev_sibling
    while sibling is not None and (is_comment(sibling) or sibling.type == "decorator"):
        if sibling.end_point[0] < anchor.start_point[0] - 1:
            break
        if is_comment(sibling):
            previous = sibling.prev_sibling
            if (
                previous is not None
                and not is_comment(previous)
                and previous.type not in _OPENERS
                and previous.type != "decorator"
                and previous.end_point[0] == sibling.start_point[0]
            ):
                break
            found.append(sibling)
        anchor = sibling
        sibling = sibling.prev_sibling
    return found


def trailing_comment(member: Node) -> Optional[Node]:
    """Return a comment starting on the line where ``member`` ends, if any."""
    row = member.end_point[0]
    sibling = member.next_sibling
    while sibling is not None and sibling.type in _SEPARATORS:
        sibling = sibling.next_sibling
    if sibling is not None and is_comment(sibling) and sibling.start_point[0] == row:
        return sibling
    return None


def clean_comment(raw: str) -> Optional[str]:
    """Strip comment delimiters, leading ``*`` and JSDoc tag lines."""
    text = raw.strip()
    if text.startswith("//"):
        body = text[2:].strip()
        return body or None
    if text.startswith("/*"):
        text = text[3:] if text.startswith("/**") else text[2:]
    if text.endswith("*/"):
        text = text[:-2].rstrip("*")

    lines: List[str] = []
    for line in text.splitlines():
        stripped = _LEADING_STAR.sub("", line).strip()
        if stripped.startswith("@"):
            break
        if stripped:
            lines.append(stripped)
    body = " ".join(lines).strip()
    return body or None


__all__ = ["clean_comment", "leading_comments", "resolve_description", "trailing_comment"]
