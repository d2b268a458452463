"""Heading-bounded section extraction and section-level change detection."""

from dataclasses import dataclass, field

from docpipe.errors import StructuralError
from docpipe.domain.chunk import Section
from docpipe.domain.nodes import Document, Heading, inline_text
from docpipe.logging import get_logger
from docpipe.serialization.text import serialize_nodes
from docpipe.utils import sha256_text

logger = get_logger(__name__)

BREADCRUMB_SEPARATOR = " > "


def extract_sections(tree: Document) -> list[Section]:
    """Split a document's top-level nodes into heading-bounded sections.

    Every top-level heading opens a section that runs until the node before
    the next heading (of any level) or the end of the document. Open headings
    are tracked on a stack so each section carries its ancestor path.

    Args:
        tree: Document root

    Returns:
        One section per top-level heading, in document order. A document
        without headings yields an empty list.

    Raises:
        StructuralError: If the tree is not a walkable document
    """
    if not isinstance(tree, Document):
        raise StructuralError(
            f"Sections can only be extracted from a Document, got {type(tree).__name__}"
        )
    if not isinstance(tree.children, list):
        raise StructuralError("Document children must be a list")

    nodes = tree.children
    sections: list[Section] = []
    stack: list[tuple[int, str]] = []
    open_section: tuple[tuple[str, ...], tuple[int, ...], int] | None = None

    def close(end_index: int) -> None:
        path, levels, start = open_section
        breadcrumb = BREADCRUMB_SEPARATOR.join(path)
        body = serialize_nodes(nodes[start + 1 : end_index + 1])
        sections.append(
            Section(
                heading_path=path,
                heading_levels=levels,
                start_node_index=start,
                end_node_index=end_index,
                breadcrumb=breadcrumb,
                breadcrumb_hash=sha256_text(breadcrumb),
                content_hash=sha256_text(body),
            )
        )

    for index, node in enumerate(nodes):
        if not isinstance(node, Heading):
            continue
        if not isinstance(node.level, int) or not 1 <= node.level <= 6:
            raise StructuralError(f"Heading at {index} has invalid level {node.level!r}")

        if open_section is not None:
            close(index - 1)

        while stack and stack[-1][0] >= node.level:
            stack.pop()
        stack.append((node.level, inline_text(node).strip()))

        open_section = (
            tuple(text for _, text in stack),
            tuple(level for level, _ in stack),
            index,
        )

    if open_section is not None:
        close(len(nodes) - 1)

    logger.debug(f"Extracted {len(sections)} sections from {len(nodes)} nodes")
    return sections


@dataclass
class SectionDiff:
    """Result of comparing a fresh extraction against stored section hashes."""

    changed_sections: list[Section] = field(default_factory=list)
    unchanged_keys: list[str] = field(default_factory=list)
    is_full_reindex: bool = False


def section_keys(sections: list[Section]) -> list[str]:
    """Stable keys for sections: the breadcrumb, numbered when repeated."""
    keys = []
    seen: dict[str, int] = {}
    for section in sections:
        count = seen.get(section.breadcrumb, 0) + 1
        seen[section.breadcrumb] = count
        keys.append(section.breadcrumb if count == 1 else f"{section.breadcrumb}#{count}")
    return keys


def sections_to_hash_map(sections: list[Section]) -> dict[str, str]:
    """Map each section key to the hash of its body text."""
    return dict(zip(section_keys(sections), (s.content_hash for s in sections)))


def find_changed_sections(
    old_hashes: dict[str, str] | None,
    sections: list[Section],
) -> SectionDiff:
    """Compare sections against the hashes stored at the previous index run.

    A missing or empty hash map, or any section that disappeared since the
    previous run, requires a full re-index.
    """
    if not old_hashes:
        return SectionDiff(changed_sections=list(sections), is_full_reindex=True)

    diff = SectionDiff()
    keys = section_keys(sections)
    for key, section in zip(keys, sections):
        if old_hashes.get(key) == section.content_hash:
            diff.unchanged_keys.append(key)
        else:
            diff.changed_sections.append(section)

    deleted = set(old_hashes) - set(keys)
    diff.is_full_reindex = bool(deleted)
    return diff
