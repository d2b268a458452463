"""Document content pipeline: chunking for embeddings and search/replace patching."""

__version__ = "0.1.0"

# Pipeline components (imported first: the patch package depends on pipeline config)
from docpipe.pipeline.config import ChunkingConfig, Config, PatchConfig
from docpipe.pipeline.chunk import ChunkingStrategy
from docpipe.pipeline.sections import extract_sections
from docpipe.pipeline.embed import EmbeddingOrchestrator, EmbeddingResult
from docpipe.pipeline.index import DocumentIndexer

# Domain entities
from docpipe.domain.changes import ApplyResult, ChangeRequest
from docpipe.domain.chunk import Chunk, Section
from docpipe.domain.document import DocumentRecord
from docpipe.domain.nodes import Document

# Serialization
from docpipe.serialization.json_codec import dump_document, parse_document
from docpipe.serialization.text import serialize_to_plain_text

# Patching
from docpipe.patch.patcher import ContentPatcher, apply_changes

# Storage adapters
from docpipe.storage.chunkstore import ChunkSink, ChunkStore
from docpipe.storage.embeddings import EmbeddingService, GeminiEmbeddings


def generate_paragraph_chunks(tree: Document, config: ChunkingConfig | None = None) -> list[Chunk]:
    """Section-aware chunks of ``tree``; raises ChunkingError when it cannot."""
    return ChunkingStrategy(config).generate_paragraph_chunks(tree)


def generate_simple_chunks(plaintext: str, config: ChunkingConfig | None = None) -> list[Chunk]:
    """Fixed-size chunks of ``plaintext``."""
    return ChunkingStrategy(config).generate_simple_chunks(plaintext)


def build_embeddings(
    document: DocumentRecord,
    embedder: EmbeddingService,
    config: ChunkingConfig | None = None,
) -> EmbeddingResult:
    """Chunk and embed ``document`` with ``embedder``."""
    return EmbeddingOrchestrator(embedder, ChunkingStrategy(config)).build_embeddings(document)


__all__ = [
    # Domain
    "ApplyResult",
    "ChangeRequest",
    "Chunk",
    "Document",
    "DocumentRecord",
    "Section",
    # Serialization
    "dump_document",
    "parse_document",
    "serialize_to_plain_text",
    # Pipeline
    "ChunkingConfig",
    "ChunkingStrategy",
    "Config",
    "DocumentIndexer",
    "EmbeddingOrchestrator",
    "EmbeddingResult",
    "PatchConfig",
    "build_embeddings",
    "extract_sections",
    "generate_paragraph_chunks",
    "generate_simple_chunks",
    # Patching
    "ContentPatcher",
    "apply_changes",
    # Storage
    "ChunkSink",
    "ChunkStore",
    "EmbeddingService",
    "GeminiEmbeddings",
]
