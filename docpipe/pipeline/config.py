"""Pipeline configuration."""

from dataclasses import dataclass, field
import os
import re

import yaml

AMBIGUITY_FIRST = "first"
AMBIGUITY_FALLBACK = "fallback"
FALLBACK_MATCHERS = ("none", "fuzzy", "llm", "chain")


def _expand_env_var(value: str) -> str:
    """Expand environment variables in the form ${VAR:-default}.

    Args:
        value: String possibly containing ${VAR:-default}

    Returns:
        Expanded string with environment variable or default value
    """
    if not isinstance(value, str):
        return value

    # Match ${VAR:-default} or ${VAR-default}
    pattern = r"\$\{([^:}]+):-?([^}]*)\}"

    def replace_env(match):
        var_name = match.group(1)
        default_value = match.group(2)
        return os.environ.get(var_name, default_value)

    return re.sub(pattern, replace_env, value)


def _expand_env(value):
    """Recursively expand env vars in strings inside dicts/lists."""
    if isinstance(value, str):
        return _expand_env_var(value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def _as_int(value, default: int) -> int:
    if value in (None, ""):
        return default
    return int(value)


def _as_float(value, default: float) -> float:
    if value in (None, ""):
        return default
    return float(value)


@dataclass
class ChunkingConfig:
    """Chunking configuration."""

    max_chunk_chars: int = 500
    chunk_overlap: int = 0
    simple_chunk_chars: int = 300

    def __post_init__(self):
        if self.max_chunk_chars <= 0 or self.simple_chunk_chars <= 0:
            raise ValueError("Chunk sizes must be positive")
        if not 0 <= self.chunk_overlap < self.max_chunk_chars:
            raise ValueError("chunk_overlap must be between 0 and max_chunk_chars")


@dataclass
class EmbeddingConfig:
    """Embedding service configuration."""

    provider: str = "gemini"
    model: str = "models/gemini-embedding-001"
    api_key: str = ""
    batch_size: int = 100
    timeout: float = 60.0


@dataclass
class PatchConfig:
    """Content patcher configuration.

    ``ambiguity_policy`` decides what an ``overwrite`` change does when its
    search text occurs more than once: ``first`` applies it to the first
    occurrence in document order, ``fallback`` hands the candidates to the
    fallback matcher.
    """

    ambiguity_policy: str = AMBIGUITY_FIRST
    fallback: str = "fuzzy"
    fuzzy_threshold: float = 85.0
    llm_context_chars: int = 8000

    def __post_init__(self):
        if self.ambiguity_policy not in (AMBIGUITY_FIRST, AMBIGUITY_FALLBACK):
            raise ValueError(f"Unknown ambiguity policy: {self.ambiguity_policy}")
        if self.fallback not in FALLBACK_MATCHERS:
            raise ValueError(
                f"Unknown fallback matcher: {self.fallback}. "
                f"Supported: {', '.join(FALLBACK_MATCHERS)}"
            )


@dataclass
class StorageConfig:
    """Chunk store connection settings."""

    database_url: str = ""
    postgres_host: str = ""
    postgres_port: int = 5432
    postgres_user: str = ""
    postgres_password: str = ""
    postgres_db: str = ""
    chunks_table: str = "document_chunks"


@dataclass
class Config:
    """Main configuration class."""

    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    patch: PatchConfig = field(default_factory=PatchConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    llm: dict = field(default_factory=dict)

    def get_database_url(self) -> str:
        """Get database connection URL.

        Uses postgres_* parameters if available, otherwise falls back to database_url.

        Returns:
            PostgreSQL connection URL
        """
        storage = self.storage
        if storage.postgres_host and storage.postgres_user and storage.postgres_db:
            port = storage.postgres_port or 5432
            return (
                f"postgresql://{storage.postgres_user}:{storage.postgres_password}"
                f"@{storage.postgres_host}:{port}/{storage.postgres_db}"
            )

        return storage.database_url

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load configuration from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Create config from dictionary."""
        data = _expand_env(data)

        chunking_data = data.get("chunking", {})
        chunking = ChunkingConfig(
            max_chunk_chars=_as_int(chunking_data.get("max_chunk_chars"), 500),
            chunk_overlap=_as_int(chunking_data.get("chunk_overlap"), 0),
            simple_chunk_chars=_as_int(chunking_data.get("simple_chunk_chars"), 300),
        )

        embedding_data = data.get("embedding", {})
        embedding_provider = embedding_data.get("provider", "gemini")
        if embedding_provider != "gemini":
            raise ValueError(
                "Only Gemini embeddings are supported (provider must be 'gemini')."
            )

        api_key = embedding_data.get("api_key", "")
        if not api_key or "${" in str(api_key):
            api_key = os.environ.get("GEMINI_API_KEY", "")

        embedding = EmbeddingConfig(
            provider=embedding_provider,
            model=embedding_data.get("model", "models/gemini-embedding-001"),
            api_key=api_key,
            batch_size=_as_int(embedding_data.get("batch_size"), 100),
            timeout=_as_float(embedding_data.get("timeout"), 60.0),
        )

        patch_data = data.get("patch", {})
        patch = PatchConfig(
            ambiguity_policy=patch_data.get("ambiguity_policy", AMBIGUITY_FIRST),
            fallback=patch_data.get("fallback", "fuzzy"),
            fuzzy_threshold=_as_float(patch_data.get("fuzzy_threshold"), 85.0),
            llm_context_chars=_as_int(patch_data.get("llm_context_chars"), 8000),
        )

        storage_data = data.get("storage", {})
        postgres_data = storage_data.get("postgres", {})

        database_url = storage_data.get("database_url", "")
        if not database_url or "${" in str(database_url):
            database_url = os.environ.get("DATABASE_URL", "")

        storage = StorageConfig(
            database_url=database_url,
            postgres_host=postgres_data.get("host", "") or os.environ.get("POSTGRES_HOST", ""),
            postgres_port=_as_int(
                postgres_data.get("port") or os.environ.get("POSTGRES_PORT"), 5432
            ),
            postgres_user=postgres_data.get("user", "") or os.environ.get("POSTGRES_USER", ""),
            postgres_password=(
                postgres_data.get("password", "") or os.environ.get("POSTGRES_PASSWORD", "")
            ),
            postgres_db=postgres_data.get("database", "") or os.environ.get("POSTGRES_DB", ""),
            chunks_table=storage_data.get("chunks_table", "document_chunks"),
        )

        llm_data = dict(data.get("llm", {}))
        if llm_data and not llm_data.get("api_key"):
            llm_data["api_key"] = os.environ.get("GEMINI_API_KEY", "")

        return cls(
            chunking=chunking,
            embedding=embedding,
            patch=patch,
            storage=storage,
            llm=llm_data,
        )

    @classmethod
    def from_env(cls) -> "Config":
        """Load config from environment variables."""
        return cls(
            chunking=ChunkingConfig(
                max_chunk_chars=int(os.environ.get("MAX_CHUNK_CHARS", "500")),
                simple_chunk_chars=int(os.environ.get("SIMPLE_CHUNK_CHARS", "300")),
            ),
            embedding=EmbeddingConfig(
                model=os.environ.get("EMBEDDING_MODEL", "models/gemini-embedding-001"),
                api_key=os.environ.get("GEMINI_API_KEY", ""),
                batch_size=int(os.environ.get("EMBEDDING_BATCH_SIZE", "100")),
                timeout=float(os.environ.get("EMBEDDING_TIMEOUT", "60")),
            ),
            patch=PatchConfig(
                ambiguity_policy=os.environ.get("PATCH_AMBIGUITY_POLICY", AMBIGUITY_FIRST),
                fallback=os.environ.get("PATCH_FALLBACK", "fuzzy"),
            ),
            storage=StorageConfig(
                database_url=os.environ.get("DATABASE_URL", ""),
                postgres_host=os.environ.get("POSTGRES_HOST", ""),
                postgres_port=int(os.environ.get("POSTGRES_PORT", "5432")),
                postgres_user=os.environ.get("POSTGRES_USER", ""),
                postgres_password=os.environ.get("POSTGRES_PASSWORD", ""),
                postgres_db=os.environ.get("POSTGRES_DB", ""),
                chunks_table=os.environ.get("CHUNKS_TABLE", "document_chunks"),
            ),
        )
