"""Content pipeline components."""

from docpipe.pipeline.config import ChunkingConfig, Config, EmbeddingConfig, PatchConfig, StorageConfig
from docpipe.pipeline.chunk import ChunkingStrategy
from docpipe.pipeline.sections import extract_sections, find_changed_sections, sections_to_hash_map
from docpipe.pipeline.embed import EmbeddingOrchestrator, EmbeddingResult
from docpipe.pipeline.index import DocumentIndexer, IndexResult

__all__ = [
    # Configuration
    "ChunkingConfig",
    "Config",
    "EmbeddingConfig",
    "PatchConfig",
    "StorageConfig",
    # Pipeline components
    "ChunkingStrategy",
    "DocumentIndexer",
    "EmbeddingOrchestrator",
    "EmbeddingResult",
    "IndexResult",
    # Functions
    "extract_sections",
    "find_changed_sections",
    "sections_to_hash_map",
]
