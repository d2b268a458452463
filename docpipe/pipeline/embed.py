"""Embedding orchestration: document tree -> (chunk, embedding) pairs."""

import asyncio
import warnings
from dataclasses import dataclass, field, replace
from typing import List

from docpipe.errors import ChunkingDegraded, EmbeddingServiceError, StructuralError
from docpipe.domain.chunk import Chunk, EmbeddedChunk
from docpipe.domain.document import DocumentRecord
from docpipe.domain.nodes import Document
from docpipe.logging import get_logger
from docpipe.patch.patcher import is_patch_in_flight
from docpipe.pipeline.chunk import ChunkingStrategy
from docpipe.pipeline.sections import extract_sections
from docpipe.serialization.text import serialize_to_plain_text
from docpipe.storage.embeddings import EmbeddingService

logger = get_logger(__name__)

MODE_SECTIONS = "sections"
MODE_SIMPLE = "simple"


@dataclass
class ChunkingOutcome:
    """Chunks for one document and how they were produced."""

    chunks: List[Chunk]
    mode: str
    degraded: bool = False


@dataclass
class EmbeddingResult:
    """Embeddings for one document.

    Attributes:
        chunks: Chunks that received a vector, each paired with its own vector
        title_embedding: Title vector, or None when the title failed
        failed_chunks: Chunks left without a vector after one retry
        mode: Chunking mode used (``sections`` or ``simple``), None when
            the content was not embedded
        degraded: True when section-aware chunking failed and simple was used
        title_failed: True when the title could not be embedded
    """

    chunks: List[EmbeddedChunk] = field(default_factory=list)
    title_embedding: List[float] | None = None
    failed_chunks: List[Chunk] = field(default_factory=list)
    mode: str | None = MODE_SIMPLE
    degraded: bool = False
    title_failed: bool = False

    @property
    def failed_count(self) -> int:
        return len(self.failed_chunks)

    @property
    def complete(self) -> bool:
        return not self.failed_chunks and not self.title_failed


class EmbeddingOrchestrator:
    """Turns documents into embedded chunks plus a title embedding."""

    def __init__(
        self,
        embedder: EmbeddingService,
        chunker: ChunkingStrategy | None = None,
    ):
        """Initialize orchestrator.

        Args:
            embedder: Batch embedding service
            chunker: Chunking strategy (default configuration when omitted)
        """
        self._embedder = embedder
        self._chunker = chunker or ChunkingStrategy()

    def generate_chunks(self, tree: Document) -> ChunkingOutcome:
        """Chunk a tree with the section-aware -> simple fallback chain.

        A tree without headings goes straight to simple chunking. If
        section-aware chunking raises for any reason, simple chunking over
        the fully serialized text is used instead.

        Raises:
            StructuralError: If the tree cannot even be serialized
        """
        if is_patch_in_flight(tree):
            raise StructuralError("Document is being patched; chunk it after the batch completes")

        try:
            sections = extract_sections(tree)
        except StructuralError as e:
            return self._degrade(tree, e)

        if not sections:
            plaintext = serialize_to_plain_text(tree)
            return ChunkingOutcome(
                chunks=self._chunker.generate_simple_chunks(plaintext),
                mode=MODE_SIMPLE,
            )

        try:
            chunks = self._chunker.generate_paragraph_chunks(tree, sections)
        except Exception as e:
            return self._degrade(tree, e)

        return ChunkingOutcome(chunks=chunks, mode=MODE_SECTIONS)

    def build_embeddings(
        self,
        document: DocumentRecord,
        include_title: bool = True,
        include_content: bool = True,
    ) -> EmbeddingResult:
        """Chunk and embed a document.

        All chunk texts go to the embedding service in one batched call; the
        failed subset, if any, is retried once. Chunks still failing are
        reported, never paired with someone else's vector.

        Args:
            document: Document to embed
            include_title: Also embed the title
            include_content: Chunk and embed the content (off when only the
                title changed)

        Returns:
            EmbeddingResult
        """
        if not include_content:
            result = EmbeddingResult(mode=None)
            self._add_title(result, document, include_title)
            return result

        outcome = self.generate_chunks(document.content)
        chunks = [chunk for chunk in outcome.chunks if chunk.content.strip()]
        if outcome.mode == MODE_SIMPLE:
            # Stored chunk indexes stay contiguous
            chunks = [replace(chunk, index=i) for i, chunk in enumerate(chunks)]

        logger.info(
            f"Generated {len(chunks)} {outcome.mode} chunks for document {document.id}"
        )

        vectors = self._embed_with_retry([chunk.content for chunk in chunks])

        result = EmbeddingResult(mode=outcome.mode, degraded=outcome.degraded)
        for chunk, vector in zip(chunks, vectors):
            if vector is None:
                result.failed_chunks.append(chunk)
            else:
                result.chunks.append(EmbeddedChunk(chunk=chunk, embedding=vector))

        self._add_title(result, document, include_title)

        if result.failed_chunks:
            logger.warning(
                f"{result.failed_count} of {len(chunks)} chunks of document "
                f"{document.id} have no embedding"
            )

        return result

    async def abuild_embeddings(
        self,
        document: DocumentRecord,
        include_title: bool = True,
        include_content: bool = True,
    ) -> EmbeddingResult:
        """Async wrapper around build_embeddings using a worker thread."""
        return await asyncio.to_thread(
            self.build_embeddings, document, include_title, include_content
        )

    def _add_title(self, result: EmbeddingResult, document: DocumentRecord, include_title: bool) -> None:
        if include_title and document.title.strip():
            result.title_embedding = self._embed_title_with_retry(document.title)
            result.title_failed = result.title_embedding is None

    def _degrade(self, tree: Document, error: Exception) -> ChunkingOutcome:
        message = f"Section-aware chunking failed, falling back to simple chunking: {error}"
        logger.warning(message)
        warnings.warn(message, ChunkingDegraded, stacklevel=3)
        plaintext = serialize_to_plain_text(tree)
        return ChunkingOutcome(
            chunks=self._chunker.generate_simple_chunks(plaintext),
            mode=MODE_SIMPLE,
            degraded=True,
        )

    def _embed_with_retry(self, texts: List[str]) -> List[List[float] | None]:
        if not texts:
            return []

        try:
            return self._checked(self._embedder.embed(texts), len(texts))
        except EmbeddingServiceError as e:
            vectors = _aligned_partial(e, len(texts))
            failed = [i for i, vector in enumerate(vectors) if vector is None]
            logger.warning(f"Retrying {len(failed)} of {len(texts)} chunk embeddings: {e}")

        try:
            retried = self._checked(self._embedder.embed([texts[i] for i in failed]), len(failed))
        except EmbeddingServiceError as e:
            retried = _aligned_partial(e, len(failed))
            logger.warning(f"Retry left {sum(v is None for v in retried)} chunks unembedded: {e}")

        for i, vector in zip(failed, retried):
            vectors[i] = vector
        return vectors

    def _embed_title_with_retry(self, title: str) -> List[float] | None:
        for attempt in (1, 2):
            try:
                vector = self._embedder.embed_title(title)
            except EmbeddingServiceError as e:
                logger.warning(f"Title embedding attempt {attempt} failed: {e}")
                continue
            if not vector:
                raise EmbeddingServiceError("Embedding service returned an empty title vector")
            return vector
        return None

    @staticmethod
    def _checked(vectors: List[List[float]], expected: int) -> List[List[float]]:
        # A count mismatch means vectors can no longer be paired with their chunks
        if len(vectors) != expected:
            raise MisalignedEmbeddingsError(
                f"Embedding service returned {len(vectors)} vectors for {expected} texts"
            )
        dims = {len(vector) for vector in vectors}
        if 0 in dims or len(dims) > 1:
            raise MisalignedEmbeddingsError(
                f"Embedding service returned vectors of inconsistent size: {sorted(dims)}"
            )
        return vectors


class MisalignedEmbeddingsError(EmbeddingServiceError):
    """Vectors returned by the service cannot be matched to their texts."""


def _aligned_partial(error: EmbeddingServiceError, expected: int) -> List[List[float] | None]:
    if isinstance(error, MisalignedEmbeddingsError):
        raise error
    partial = error.partial
    if partial is None or len(partial) != expected:
        return [None] * expected
    failed = set(error.failed_indexes)
    return [None if i in failed else vector for i, vector in enumerate(partial)]
