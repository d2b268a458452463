"""Tests for the PostgreSQL chunk store."""

import os

import pytest

from docpipe.domain.chunk import Chunk, EmbeddedChunk
from docpipe.domain.document import INDEX_INDEXED, INDEX_OUTDATED
from docpipe.storage.chunkstore import ChunkStore

TABLE = "test_document_chunks"


@pytest.fixture
def test_db_url():
    """Get test database URL from environment."""
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    return url


@pytest.fixture
def store(test_db_url):
    """Create a ChunkStore on fresh tables."""
    cs = ChunkStore(test_db_url, table_name=TABLE, embedding_dim=2)
    cs.initialize()
    cs.reset()

    yield cs

    with cs._pool.connection() as conn:
        conn.execute(f"DROP TABLE IF EXISTS {TABLE}")

    cs.close()


def _pairs(*contents):
    return [
        EmbeddedChunk(chunk=Chunk(content=content, heading="A", heading_level=1), embedding=[1.0, 0.5])
        for content in contents
    ]


def test_requires_initialize():
    cs = ChunkStore("postgresql://unused")

    with pytest.raises(RuntimeError, match="not initialized"):
        cs.save_chunks("doc-1", [])
    with pytest.raises(RuntimeError, match="not initialized"):
        cs.mark_index_outdated("doc-1")


class TestChunkStore:
    """ChunkStore round trips against a live database."""

    def test_save_replaces_previous_chunks(self, store):
        store.save_chunks("doc-1", _pairs("one", "two", "three"))
        store.save_chunks("doc-1", _pairs("only"))

        assert store.count_chunks("doc-1") == 1

    def test_save_empty_clears_document(self, store):
        store.save_chunks("doc-1", _pairs("one"))
        store.save_chunks("doc-1", [])

        assert store.count_chunks("doc-1") == 0

    def test_documents_are_independent(self, store):
        store.save_chunks("doc-1", _pairs("one"))
        store.save_chunks("doc-2", _pairs("two", "three"))
        store.save_chunks("doc-1", _pairs("four", "five", "six"))

        assert store.count_chunks("doc-1") == 3
        assert store.count_chunks("doc-2") == 2

    def test_index_state(self, store):
        assert store.get_index_state("doc-1") is None

        store.mark_indexed("doc-1", "Roadmap", "abc")
        state = store.get_index_state("doc-1")
        assert state == {
            "index_status": INDEX_INDEXED,
            "last_indexed_title": "Roadmap",
            "last_indexed_content_hash": "abc",
        }

        store.mark_index_outdated("doc-1")
        assert store.get_index_state("doc-1")["index_status"] == INDEX_OUTDATED
        assert store.get_index_state("doc-1")["last_indexed_content_hash"] == "abc"

    def test_title_embedding(self, store):
        store.save_title_embedding("doc-1", [0.25, 0.75])

        assert store.get_index_state("doc-1")["index_status"] == "pending"

    def test_index_signature(self, store):
        store.set_index_signature("first")
        store.set_index_signature("second")

        assert store.get_index_signature() == "second"
