"""Stored document entity."""

from dataclasses import dataclass, field, replace

from docpipe.domain.nodes import Document
from docpipe.serialization.json_codec import dump_document, parse_document

INDEX_PENDING = "pending"
INDEX_OUTDATED = "outdated"
INDEX_INDEXING = "indexing"
INDEX_INDEXED = "indexed"
INDEX_FAILED = "failed"


@dataclass(frozen=True, slots=True)
class DocumentRecord:
    """A workspace document as the pipeline sees it.

    Attributes:
        id: Unique document identifier
        title: Document title (embedded separately from the content)
        content: Parsed document tree
        last_indexed_title: Title at the last successful index run
        last_indexed_content_hash: Plain-text hash at the last successful index run
        index_status: One of pending, outdated, indexing, indexed, failed
    """

    id: str
    title: str
    content: Document = field(default_factory=Document)
    last_indexed_title: str | None = None
    last_indexed_content_hash: str | None = None
    index_status: str = INDEX_PENDING

    def with_index_state(self, **changes) -> "DocumentRecord":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Convert document to dictionary (JSONL format)."""
        return {
            "id": self.id,
            "title": self.title,
            "json_content": dump_document(self.content),
            "last_indexed_title": self.last_indexed_title,
            "last_indexed_content_hash": self.last_indexed_content_hash,
            "index_status": self.index_status,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentRecord":
        """Create document from dictionary (JSONL format).

        Args:
            data: Dictionary with document fields; the tree lives under
                ``json_content`` (or ``content``) in editor JSON form

        Returns:
            DocumentRecord instance

        Raises:
            StructuralError: If the document tree is malformed
        """
        raw_tree = data.get("json_content", data.get("content"))
        content = parse_document(raw_tree) if raw_tree is not None else Document()
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            content=content,
            last_indexed_title=data.get("last_indexed_title"),
            last_indexed_content_hash=data.get("last_indexed_content_hash"),
            index_status=data.get("index_status", INDEX_PENDING),
        )
