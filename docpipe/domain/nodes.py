"""Typed document tree.

A rich document is a tree of block and inline nodes. Each node kind the
pipeline interprets has its own dataclass; anything else is carried through
as ``Unknown`` so a parsed tree can be dumped back without loss.

Nodes are mutable: the content patcher edits them in place. A tree belongs to
exactly one editing session and no node may appear in it twice.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, Union

from docpipe.errors import StructuralError

MARK_BOLD = "bold"
MARK_ITALIC = "italic"
MARK_STRIKE = "strike"
MARK_CODE = "code"
MARK_LINK = "link"


@dataclass(frozen=True, slots=True)
class Mark:
    """Inline formatting applied to a text run.

    Attributes:
        type: Mark kind (``bold``, ``italic``, ``strike``, ``code``, ``link`` or
            any other kind the editor emits)
        href: Link target, only meaningful for ``link`` marks
        extra: Remaining wire attributes as sorted ``(key, value)`` pairs
    """

    type: str
    href: str | None = None
    extra: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def link(cls, href: str) -> "Mark":
        return cls(type=MARK_LINK, href=href)


@dataclass(slots=True)
class TextRun:
    text: str
    marks: tuple[Mark, ...] = ()

    node_type: ClassVar[str] = "text"

    def has_mark(self, mark_type: str) -> bool:
        return any(mark.type == mark_type for mark in self.marks)


@dataclass(slots=True)
class Unknown:
    """Node kind the pipeline does not interpret, kept as its raw wire dict."""

    raw: dict

    node_type: ClassVar[str] = "unknown"


@dataclass(slots=True)
class CodeBlock:
    text: str = ""
    language: str | None = None
    attrs: dict = field(default_factory=dict)

    node_type: ClassVar[str] = "codeBlock"


@dataclass(slots=True)
class Heading:
    level: int = 1
    children: list = field(default_factory=list)
    attrs: dict = field(default_factory=dict)

    node_type: ClassVar[str] = "heading"


@dataclass(slots=True)
class Paragraph:
    children: list = field(default_factory=list)
    attrs: dict = field(default_factory=dict)

    node_type: ClassVar[str] = "paragraph"


@dataclass(slots=True)
class ListItem:
    children: list = field(default_factory=list)
    attrs: dict = field(default_factory=dict)

    node_type: ClassVar[str] = "listItem"


@dataclass(slots=True)
class BulletList:
    children: list = field(default_factory=list)
    attrs: dict = field(default_factory=dict)

    node_type: ClassVar[str] = "bulletList"


@dataclass(slots=True)
class OrderedList:
    children: list = field(default_factory=list)
    start: int | None = None
    attrs: dict = field(default_factory=dict)

    node_type: ClassVar[str] = "orderedList"


@dataclass(slots=True)
class Document:
    children: list = field(default_factory=list)
    attrs: dict = field(default_factory=dict)

    node_type: ClassVar[str] = "doc"


InlineNode = Union[TextRun, Unknown]
TextBlock = Union[Heading, Paragraph, CodeBlock]
ContentNode = Union[
    Document,
    Heading,
    Paragraph,
    BulletList,
    OrderedList,
    ListItem,
    CodeBlock,
    TextRun,
    Unknown,
]

INLINE_CONTAINERS = (Heading, Paragraph)
BLOCK_CONTAINERS = (Document, ListItem, BulletList, OrderedList)
TEXTBLOCKS = (Heading, Paragraph, CodeBlock)
ALL_NODES = (
    Document,
    Heading,
    Paragraph,
    BulletList,
    OrderedList,
    ListItem,
    CodeBlock,
    TextRun,
    Unknown,
)

Path = tuple[int, ...]


def is_textblock(node: Any) -> bool:
    """Return True for nodes whose content is a single run of text."""
    return isinstance(node, TEXTBLOCKS)


def children_of(node: Any) -> list | None:
    """Return the child list of a container node, or None for leaves."""
    if isinstance(node, INLINE_CONTAINERS + BLOCK_CONTAINERS):
        return node.children
    return None


def walk(node: ContentNode, path: Path = ()) -> Iterator[tuple[Path, ContentNode]]:
    """Yield ``(path, node)`` pairs in pre-order (document order)."""
    yield path, node
    children = children_of(node)
    if children:
        for i, child in enumerate(children):
            yield from walk(child, path + (i,))


def get_node(root: ContentNode, path: Path) -> ContentNode:
    """Resolve a child-index path from ``root``."""
    node = root
    for i in path:
        children = children_of(node)
        if children is None or not 0 <= i < len(children):
            raise StructuralError(f"Path {path} does not resolve in tree")
        node = children[i]
    return node


def inline_text(block: TextBlock) -> str:
    """Plain text of a single textblock, marks stripped."""
    if isinstance(block, CodeBlock):
        return block.text
    return "".join(child.text for child in block.children if isinstance(child, TextRun))


def validate_tree(root: Any) -> None:
    """Check structural validity of a whole tree.

    Raises:
        StructuralError: On the first violation found
    """
    if not isinstance(root, Document):
        raise StructuralError(
            f"Tree root must be a Document, got {type(root).__name__}"
        )

    seen: set[int] = set()

    def visit(node: Any, path: Path) -> None:
        if not isinstance(node, ALL_NODES):
            raise StructuralError(f"Unsupported node {type(node).__name__} at {path}")
        if id(node) in seen:
            raise StructuralError(f"Node at {path} appears more than once in the tree")
        seen.add(id(node))

        if isinstance(node, TextRun):
            if not isinstance(node.text, str) or not node.text:
                raise StructuralError(f"Text run at {path} must hold non-empty text")
            if not all(isinstance(mark, Mark) for mark in node.marks):
                raise StructuralError(f"Text run at {path} has an invalid mark")
            return
        if isinstance(node, CodeBlock):
            if not isinstance(node.text, str):
                raise StructuralError(f"Code block at {path} must hold text")
            return
        if isinstance(node, Unknown):
            if not isinstance(node.raw, dict):
                raise StructuralError(f"Unknown node at {path} must wrap a dict")
            return

        if not isinstance(node.children, list):
            raise StructuralError(f"Children of {node.node_type} at {path} must be a list")

        if isinstance(node, Heading) and (
            not isinstance(node.level, int) or not 1 <= node.level <= 6
        ):
            raise StructuralError(f"Heading at {path} has invalid level {node.level!r}")

        inline_only = isinstance(node, INLINE_CONTAINERS)
        for i, child in enumerate(node.children):
            child_path = path + (i,)
            if inline_only and not isinstance(child, (TextRun, Unknown)):
                raise StructuralError(
                    f"{node.node_type} at {path} holds block node at {child_path}"
                )
            if not inline_only and isinstance(child, TextRun):
                raise StructuralError(
                    f"{node.node_type} at {path} holds text run at {child_path}"
                )
            visit(child, child_path)

    visit(root, ())
