"""Chunk and section entities for the content pipeline."""

from dataclasses import dataclass, asdict


@dataclass(frozen=True, slots=True)
class Section:
    """Heading-bounded span of a document's top-level nodes.

    Produced fresh by every extraction call and never persisted.

    Attributes:
        heading_path: Heading texts from the root heading to this one
        heading_levels: Levels parallel to ``heading_path``
        start_node_index: Index of the heading node among the document's children
        end_node_index: Index of the last node belonging to the section
        breadcrumb: ``" > "``-joined heading path
        breadcrumb_hash: SHA-256 of ``breadcrumb``
        content_hash: SHA-256 of the section body's plain text
    """

    heading_path: tuple[str, ...]
    heading_levels: tuple[int, ...]
    start_node_index: int
    end_node_index: int
    breadcrumb: str
    breadcrumb_hash: str
    content_hash: str = ""

    @property
    def heading(self) -> str:
        return self.heading_path[-1]

    @property
    def level(self) -> int:
        return self.heading_levels[-1]

    @property
    def body_range(self) -> range:
        """Indexes of the document children that form the section body."""
        return range(self.start_node_index + 1, self.end_node_index + 1)


@dataclass(frozen=True, slots=True)
class Chunk:
    """Immutable unit of plain text prepared for embedding.

    ``index`` is set only on simple (fixed-size) chunks; the heading fields
    are set only on section-aware chunks.
    """

    content: str
    index: int | None = None
    heading: str | None = None
    heading_level: int | None = None
    header_breadcrumb: str | None = None
    breadcrumb_hash: str | None = None

    def to_dict(self) -> dict:
        """Convert chunk to dictionary for serialization."""
        return asdict(self)


@dataclass(frozen=True, slots=True)
class EmbeddedChunk:
    """A chunk paired with the vector computed from its own content."""

    chunk: Chunk
    embedding: list[float]
