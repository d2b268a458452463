"""Tests for configuration loading."""

import pytest

from docpipe.pipeline.config import (
    AMBIGUITY_FALLBACK,
    ChunkingConfig,
    Config,
    PatchConfig,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "GEMINI_API_KEY",
        "DATABASE_URL",
        "POSTGRES_HOST",
        "POSTGRES_PORT",
        "POSTGRES_USER",
        "POSTGRES_PASSWORD",
        "POSTGRES_DB",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    cfg = Config.from_dict({})

    assert cfg.chunking.max_chunk_chars == 500
    assert cfg.chunking.simple_chunk_chars == 300
    assert cfg.embedding.model == "models/gemini-embedding-001"
    assert cfg.embedding.batch_size == 100
    assert cfg.embedding.timeout == 60.0
    assert cfg.patch.ambiguity_policy == "first"
    assert cfg.patch.fuzzy_threshold == 85.0
    assert cfg.storage.chunks_table == "document_chunks"
    assert cfg.llm == {}


def test_env_expansion(monkeypatch):
    monkeypatch.setenv("CHUNK_CHARS", "800")

    cfg = Config.from_dict(
        {
            "chunking": {"max_chunk_chars": "${CHUNK_CHARS:-500}", "simple_chunk_chars": "${UNSET_VAR:-250}"},
        }
    )

    assert cfg.chunking.max_chunk_chars == 800
    assert cfg.chunking.simple_chunk_chars == 250


def test_api_key_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "secret")

    cfg = Config.from_dict({"embedding": {"api_key": "${GEMINI_API_KEY}"}, "llm": {"provider": "gemini"}})

    assert cfg.embedding.api_key == "secret"
    assert cfg.llm["api_key"] == "secret"


def test_only_gemini_embeddings():
    with pytest.raises(ValueError, match="Gemini"):
        Config.from_dict({"embedding": {"provider": "openai"}})


def test_patch_settings():
    cfg = Config.from_dict({"patch": {"ambiguity_policy": "fallback", "fallback": "chain", "fuzzy_threshold": 90}})

    assert cfg.patch.ambiguity_policy == AMBIGUITY_FALLBACK
    assert cfg.patch.fallback == "chain"
    assert cfg.patch.fuzzy_threshold == 90.0


def test_invalid_patch_settings():
    with pytest.raises(ValueError):
        PatchConfig(ambiguity_policy="random")
    with pytest.raises(ValueError):
        PatchConfig(fallback="magic")


def test_invalid_chunk_sizes():
    with pytest.raises(ValueError):
        ChunkingConfig(max_chunk_chars=0)
    with pytest.raises(ValueError):
        ChunkingConfig(max_chunk_chars=100, chunk_overlap=100)


def test_database_url_from_postgres_parts():
    cfg = Config.from_dict(
        {
            "storage": {
                "postgres": {
                    "host": "db",
                    "port": 6543,
                    "user": "pipe",
                    "password": "pw",
                    "database": "docs",
                }
            }
        }
    )

    assert cfg.get_database_url() == "postgresql://pipe:pw@db:6543/docs"


def test_database_url_direct(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://env/db")

    assert Config.from_dict({}).get_database_url() == "postgresql://env/db"


def test_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        """
chunking:
  max_chunk_chars: 400
embedding:
  model: models/text-embedding-004
  batch_size: 50
storage:
  chunks_table: chunks_v2
""",
        encoding="utf-8",
    )

    cfg = Config.from_yaml(str(path))

    assert cfg.chunking.max_chunk_chars == 400
    assert cfg.embedding.model == "models/text-embedding-004"
    assert cfg.embedding.batch_size == 50
    assert cfg.storage.chunks_table == "chunks_v2"


def test_from_env(monkeypatch):
    monkeypatch.setenv("MAX_CHUNK_CHARS", "700")
    monkeypatch.setenv("PATCH_FALLBACK", "none")

    cfg = Config.from_env()

    assert cfg.chunking.max_chunk_chars == 700
    assert cfg.patch.fallback == "none"
