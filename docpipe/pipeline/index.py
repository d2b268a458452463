"""Document indexing - change detection, embedding and index-state tracking."""

from dataclasses import dataclass
import json
from typing import Iterable, Iterator, Mapping

from tqdm import tqdm

from docpipe.domain.changes import ApplyResult, ChangeRequest, MatchState
from docpipe.domain.document import (
    INDEX_FAILED,
    INDEX_INDEXED,
    INDEX_INDEXING,
    INDEX_OUTDATED,
    DocumentRecord,
)
from docpipe.logging import get_logger
from docpipe.patch.patcher import ContentPatcher
from docpipe.pipeline.embed import EmbeddingOrchestrator
from docpipe.serialization.text import serialize_to_plain_text
from docpipe.storage.chunkstore import ChunkSink
from docpipe.utils import sha256_text

logger = get_logger(__name__)

STATUS_INDEXED = "indexed"
STATUS_SKIPPED = "skipped"
STATUS_DEFERRED = "deferred"


@dataclass
class IndexResult:
    """Outcome of indexing one document.

    Attributes:
        document_id: Document identifier
        status: ``indexed``, ``skipped`` (unchanged) or ``deferred``
            (embedding service failed for part of the document)
        chunks_saved: Chunks persisted
        failed_chunks: Chunks left without a vector
        mode: Chunking mode used
        degraded: Section-aware chunking fell back to simple chunking
        record: Document with its index state updated
    """

    document_id: str
    status: str
    chunks_saved: int = 0
    failed_chunks: int = 0
    mode: str | None = None
    degraded: bool = False
    record: DocumentRecord | None = None

    def summary(self) -> str:
        if self.status == STATUS_SKIPPED:
            return "Document unchanged since last index"
        if self.status == STATUS_DEFERRED:
            return (
                f"Document re-index deferred due to embedding service error "
                f"({self.failed_chunks} chunks affected)"
            )
        return f"Indexed {self.chunks_saved} chunks"


def content_hash(document: DocumentRecord) -> str:
    """Hash of a document's plain text, used for change detection."""
    return sha256_text(serialize_to_plain_text(document.content))


class DocumentIndexer:
    """Keeps a document's stored chunks in step with its content."""

    def __init__(
        self,
        orchestrator: EmbeddingOrchestrator,
        sink: ChunkSink,
        patcher: ContentPatcher | None = None,
    ):
        """Initialize indexer.

        Args:
            orchestrator: Chunking and embedding orchestrator
            sink: Persistence for chunks and index state
            patcher: Patcher used by ``apply_document_changes``
        """
        self._orchestrator = orchestrator
        self._sink = sink
        self._patcher = patcher or ContentPatcher()

    def process_document(self, document: DocumentRecord, force: bool = False) -> IndexResult:
        """Chunk, embed and persist a document unless it is unchanged.

        Chunks are persisted only when every chunk (and a changed title) got
        a vector; otherwise nothing is written and the document is left
        marked outdated for a later run.

        Args:
            document: Document to index
            force: Re-index even if title and content are unchanged

        Returns:
            IndexResult
        """
        digest = content_hash(document)
        title_changed = document.title != document.last_indexed_title
        content_changed = digest != document.last_indexed_content_hash

        if not force and not title_changed and not content_changed:
            logger.debug(f"Skipping unchanged document {document.id}")
            return IndexResult(document_id=document.id, status=STATUS_SKIPPED, record=document)

        # A title-only change keeps the stored content chunks
        rebuild_content = content_changed or force

        self._sink.set_index_status(document.id, INDEX_INDEXING)
        try:
            embedded = self._orchestrator.build_embeddings(
                document,
                include_title=title_changed or force,
                include_content=rebuild_content,
            )
        except Exception:
            self._sink.set_index_status(document.id, INDEX_FAILED)
            raise

        if not embedded.complete:
            self._sink.mark_index_outdated(document.id)
            logger.warning(
                f"Re-index of document {document.id} deferred: "
                f"{embedded.failed_count} chunks without embeddings"
            )
            return IndexResult(
                document_id=document.id,
                status=STATUS_DEFERRED,
                failed_chunks=embedded.failed_count,
                mode=embedded.mode,
                degraded=embedded.degraded,
                record=document.with_index_state(index_status=INDEX_OUTDATED),
            )

        if rebuild_content:
            self._sink.save_chunks(document.id, embedded.chunks)
        if embedded.title_embedding is not None:
            self._sink.save_title_embedding(document.id, embedded.title_embedding)
        self._sink.mark_indexed(document.id, document.title, digest)

        logger.info(f"Indexed document {document.id}: {len(embedded.chunks)} chunks")
        return IndexResult(
            document_id=document.id,
            status=STATUS_INDEXED,
            chunks_saved=len(embedded.chunks),
            mode=embedded.mode,
            degraded=embedded.degraded,
            record=document.with_index_state(
                last_indexed_title=document.title,
                last_indexed_content_hash=digest,
                index_status=INDEX_INDEXED,
            ),
        )

    def apply_document_changes(
        self,
        document: DocumentRecord,
        changes: Iterable[ChangeRequest | Mapping],
    ) -> ApplyResult:
        """Patch a document's tree and flag its index as stale after any edit."""
        result = self._patcher.apply_changes(document.content, changes)
        if any(outcome.state is MatchState.APPLIED for outcome in result.outcomes):
            self._sink.mark_index_outdated(document.id)
        return result

    def index_jsonl(self, input_path: str, force: bool = False) -> dict:
        """Index every document of a JSONL file.

        Args:
            input_path: Path to JSONL file, one document per line
            force: Re-index unchanged documents too

        Returns:
            Index statistics dict
        """
        stats = {
            "total": 0,
            "indexed": 0,
            "skipped": 0,
            "deferred": 0,
            "degraded": 0,
            "chunks_saved": 0,
            "errors": [],
        }

        for doc_dict in tqdm(_load_jsonl(input_path), desc="Indexing"):
            stats["total"] += 1
            try:
                document = DocumentRecord.from_dict(doc_dict)
                result = self.process_document(document, force=force)
            except Exception as e:
                logger.warning(f"Failed to index document {doc_dict.get('id', 'unknown')}: {e}")
                stats["errors"].append({
                    "doc_id": doc_dict.get("id", "unknown"),
                    "error": str(e),
                })
                continue

            stats[result.status] += 1
            stats["chunks_saved"] += result.chunks_saved
            if result.degraded:
                stats["degraded"] += 1

        return stats


def _load_jsonl(path: str) -> Iterator[dict]:
    """Load documents from JSONL file."""
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                yield json.loads(line)
