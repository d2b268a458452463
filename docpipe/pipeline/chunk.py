"""Document chunking strategies.

Two modes are offered. Section-aware chunking follows the heading structure
of the tree and tags every chunk with its heading breadcrumb. Simple chunking
cuts flattened plain text into fixed-size windows and is the fallback whenever
section-aware chunking cannot be trusted.
"""

from typing import List

from langchain_text_splitters import RecursiveCharacterTextSplitter

from docpipe.errors import ChunkingError, StructuralError
from docpipe.domain.chunk import Chunk, Section
from docpipe.domain.nodes import Document, Heading
from docpipe.pipeline.config import ChunkingConfig
from docpipe.pipeline.sections import extract_sections
from docpipe.serialization.text import serialize_nodes


class ChunkingStrategy:
    """Structure-first chunking over document trees."""

    def __init__(self, config: ChunkingConfig | None = None):
        """Initialize chunking strategy."""
        self._config = config or ChunkingConfig()

        # Block boundaries first (one newline per block), then sentences, then words;
        # a separator stays with the piece it closes
        self._recursive_splitter = RecursiveCharacterTextSplitter(
            chunk_size=self._config.max_chunk_chars,
            chunk_overlap=self._config.chunk_overlap,
            length_function=len,
            separators=["\n", ". ", " ", ""],
            keep_separator="end",
        )

    @property
    def config(self) -> ChunkingConfig:
        return self._config

    def generate_paragraph_chunks(
        self,
        tree: Document,
        sections: List[Section] | None = None,
    ) -> List[Chunk]:
        """Split a tree into heading-aware chunks.

        Args:
            tree: Document root
            sections: Sections already extracted from ``tree`` (extracted
                here when omitted)

        Returns:
            Chunks in document order. Sections without body text produce no
            chunk. Text before the first heading is kept as chunks without
            heading fields.

        Raises:
            ChunkingError: If sections cannot be computed or do not fit the tree
        """
        if sections is None:
            try:
                sections = extract_sections(tree)
            except StructuralError as e:
                raise ChunkingError(f"Cannot extract sections: {e}") from e

        if not sections:
            raise ChunkingError("Document has no headings to chunk by")

        nodes = tree.children
        self._check_sections(nodes, sections)

        chunks: List[Chunk] = []

        intro_end = sections[0].start_node_index
        if intro_end > 0:
            for piece in self._split_body(serialize_nodes(nodes[:intro_end])):
                chunks.append(Chunk(content=piece))

        for section in sections:
            body = serialize_nodes([nodes[i] for i in section.body_range])
            for piece in self._split_body(body):
                chunks.append(
                    Chunk(
                        content=piece,
                        heading=section.heading,
                        heading_level=section.level,
                        header_breadcrumb=section.breadcrumb,
                        breadcrumb_hash=section.breadcrumb_hash,
                    )
                )

        return chunks

    def generate_simple_chunks(self, plaintext: str, max_chars: int | None = None) -> List[Chunk]:
        """Cut plain text into fixed-size windows.

        Windows end after the last whitespace in their second half when there
        is one, otherwise exactly at the size limit. Concatenating the chunk
        contents in order gives back ``plaintext`` unchanged.

        Args:
            plaintext: Flattened document text
            max_chars: Window size (defaults to ``simple_chunk_chars``)

        Returns:
            Chunks with zero-based ``index`` and no heading fields
        """
        size = max_chars or self._config.simple_chunk_chars
        if size <= 0:
            raise ValueError("max_chars must be positive")

        chunks: List[Chunk] = []
        start = 0
        length = len(plaintext)
        while start < length:
            end = min(start + size, length)
            if end < length:
                window = plaintext[start:end]
                cut = max(window.rfind(" "), window.rfind("\n"), window.rfind("\t"))
                if cut >= size // 2:
                    end = start + cut + 1
            chunks.append(Chunk(content=plaintext[start:end], index=len(chunks)))
            start = end

        return chunks

    def _split_body(self, text: str) -> List[str]:
        stripped = text.strip()
        if not stripped:
            return []
        if len(stripped) <= self._config.max_chunk_chars:
            return [stripped]
        return [piece for piece in self._recursive_splitter.split_text(stripped) if piece.strip()]

    def _check_sections(self, nodes: list, sections: List[Section]) -> None:
        previous_end = -1
        for section in sections:
            start, end = section.start_node_index, section.end_node_index
            if not previous_end < start <= end < len(nodes):
                raise ChunkingError(
                    f"Section '{section.breadcrumb}' spans nodes {start}..{end} "
                    f"outside a {len(nodes)}-node document"
                )
            if not isinstance(nodes[start], Heading):
                raise ChunkingError(
                    f"Section '{section.breadcrumb}' does not start at a heading"
                )
            previous_end = end
