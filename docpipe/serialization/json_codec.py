"""Editor JSON <-> document tree codec.

The wire shape is the rich-text editor's document JSON::

    {"type": "doc", "content": [
        {"type": "heading", "attrs": {"level": 2}, "content": [
            {"type": "text", "text": "Plan", "marks": [{"type": "bold"}]}
        ]}
    ]}

Node kinds the pipeline does not interpret are wrapped in ``Unknown`` and
dumped back exactly as received.
"""

import copy

from docpipe.errors import StructuralError
from docpipe.domain.nodes import (
    BulletList,
    CodeBlock,
    Document,
    Heading,
    ListItem,
    Mark,
    OrderedList,
    Paragraph,
    TextRun,
    Unknown,
    validate_tree,
)

_CONTAINERS = {
    "doc": Document,
    "paragraph": Paragraph,
    "listItem": ListItem,
    "bulletList": BulletList,
}


def parse_document(data: dict) -> Document:
    """Parse editor JSON into a validated ``Document`` tree.

    Raises:
        StructuralError: If the JSON is not a well-formed document
    """
    node = parse_node(data)
    validate_tree(node)
    return node


def parse_node(data, path: str = "$"):
    """Parse a single editor JSON node (and its subtree)."""
    if not isinstance(data, dict):
        raise StructuralError(f"Node at {path} must be an object, got {type(data).__name__}")

    node_type = data.get("type")
    if not isinstance(node_type, str) or not node_type:
        raise StructuralError(f"Node at {path} has no type")

    attrs = data.get("attrs") or {}
    if not isinstance(attrs, dict):
        raise StructuralError(f"Attributes of {node_type} at {path} must be an object")

    if node_type == "text":
        text = data.get("text")
        if not isinstance(text, str):
            raise StructuralError(f"Text node at {path} has no text")
        return TextRun(text=text, marks=_parse_marks(data.get("marks"), path))

    if node_type == "codeBlock":
        rest = dict(attrs)
        language = rest.pop("language", None)
        return CodeBlock(
            text="".join(child.text for child in _parse_children(data, path) if isinstance(child, TextRun)),
            language=language,
            attrs=rest,
        )

    if node_type == "heading":
        rest = dict(attrs)
        level = rest.pop("level", 1)
        if not isinstance(level, int) or not 1 <= level <= 6:
            raise StructuralError(f"Heading at {path} has invalid level {level!r}")
        return Heading(level=level, children=_parse_children(data, path), attrs=rest)

    if node_type == "orderedList":
        rest = dict(attrs)
        start = rest.pop("start", None)
        return OrderedList(children=_parse_children(data, path), start=start, attrs=rest)

    container = _CONTAINERS.get(node_type)
    if container is not None:
        return container(children=_parse_children(data, path), attrs=dict(attrs))

    return Unknown(raw=copy.deepcopy(data))


def _parse_children(data: dict, path: str) -> list:
    content = data.get("content", [])
    if content is None:
        return []
    if not isinstance(content, list):
        raise StructuralError(f"Content at {path} must be a list")
    children = []
    for i, child in enumerate(content):
        node = parse_node(child, f"{path}.content[{i}]")
        # Empty text nodes carry nothing and are not valid editor content
        if isinstance(node, TextRun) and not node.text:
            continue
        children.append(node)
    return children


def _parse_marks(raw_marks, path: str) -> tuple[Mark, ...]:
    if raw_marks is None:
        return ()
    if not isinstance(raw_marks, list):
        raise StructuralError(f"Marks at {path} must be a list")
    marks = []
    for raw in raw_marks:
        if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
            raise StructuralError(f"Malformed mark at {path}")
        attrs = dict(raw.get("attrs") or {})
        href = attrs.pop("href", None)
        marks.append(
            Mark(type=raw["type"], href=href, extra=tuple(sorted(attrs.items())))
        )
    return tuple(marks)


def dump_document(document: Document) -> dict:
    """Dump a tree back to editor JSON."""
    return dump_node(document)


def dump_node(node) -> dict:
    if isinstance(node, Unknown):
        return copy.deepcopy(node.raw)

    if isinstance(node, TextRun):
        data = {"type": "text", "text": node.text}
        if node.marks:
            data["marks"] = [_dump_mark(mark) for mark in node.marks]
        return data

    if isinstance(node, CodeBlock):
        attrs = dict(node.attrs)
        attrs["language"] = node.language
        data = {"type": "codeBlock", "attrs": attrs}
        if node.text:
            data["content"] = [{"type": "text", "text": node.text}]
        return data

    data = {"type": node.node_type}
    attrs = dict(node.attrs)
    if isinstance(node, Heading):
        attrs["level"] = node.level
    elif isinstance(node, OrderedList) and node.start is not None:
        attrs["start"] = node.start
    if attrs:
        data["attrs"] = attrs
    if node.children:
        data["content"] = [dump_node(child) for child in node.children]
    return data


def _dump_mark(mark: Mark) -> dict:
    data = {"type": mark.type}
    attrs = dict(mark.extra)
    if mark.href is not None:
        attrs["href"] = mark.href
    if attrs:
        data["attrs"] = attrs
    return data
