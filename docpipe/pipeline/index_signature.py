"""Index signature utilities for rebuild detection."""

import hashlib
import json

from docpipe.pipeline.config import Config


def compute_signature(config: Config, embedding_dim: int) -> str:
    """Compute a stable signature for index compatibility.

    Stored chunks are only comparable with new ones when the embedding model,
    vector size, chunking parameters and table all match.
    """
    payload = {
        "embedding_model": config.embedding.model,
        "embedding_dim": embedding_dim,
        "chunking": {
            "max_chunk_chars": config.chunking.max_chunk_chars,
            "chunk_overlap": config.chunking.chunk_overlap,
            "simple_chunk_chars": config.chunking.simple_chunk_chars,
        },
        "table_name": config.storage.chunks_table,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()
