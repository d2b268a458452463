"""Plain-text serialization of document trees.

Plain text is the search and embedding domain, and the domain in which the
content patcher matches edits. Every textblock (heading, paragraph, code
block) contributes its text followed by exactly one newline; lists and list
items contribute the newlines of the blocks they hold. Marks are dropped and
``Unknown`` nodes contribute nothing.
"""

from typing import Iterator

from docpipe.errors import StructuralError
from docpipe.domain.nodes import (
    ALL_NODES,
    ContentNode,
    Path,
    TextRun,
    Unknown,
    children_of,
    inline_text,
    is_textblock,
)


def iter_textblocks(node: ContentNode, path: Path = ()) -> Iterator[tuple[Path, ContentNode]]:
    """Yield ``(path, textblock)`` pairs in document order.

    Raises:
        StructuralError: If a non-node object is found in the tree
    """
    if not isinstance(node, ALL_NODES):
        raise StructuralError(f"Cannot serialize {type(node).__name__} at {path}")
    if is_textblock(node):
        yield path, node
        return
    children = children_of(node)
    if children is None:
        return
    if not isinstance(children, list):
        raise StructuralError(f"Children at {path} must be a list")
    for i, child in enumerate(children):
        yield from iter_textblocks(child, path + (i,))


def serialize_to_plain_text(node: ContentNode) -> str:
    """Flatten a tree or subtree into plain text."""
    if isinstance(node, TextRun):
        return node.text
    if isinstance(node, Unknown):
        return ""
    return "".join(inline_text(block) + "\n" for _, block in iter_textblocks(node))


def serialize_nodes(nodes: list) -> str:
    """Serialize a list of sibling nodes as if they were one subtree."""
    return "".join(serialize_to_plain_text(node) for node in nodes)
