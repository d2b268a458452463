"""Storage adapters for the content pipeline."""

from docpipe.storage.chunkstore import ChunkSink, ChunkStore
from docpipe.storage.embeddings import EmbeddingService, GeminiEmbeddings, create_embedding_service

__all__ = [
    "ChunkSink",
    "ChunkStore",
    "EmbeddingService",
    "GeminiEmbeddings",
    "create_embedding_service",
]
