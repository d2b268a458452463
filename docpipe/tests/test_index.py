"""Tests for document indexing."""

import json
from unittest.mock import MagicMock

import pytest

from docpipe.domain.document import INDEX_FAILED, INDEX_INDEXED, INDEX_INDEXING, INDEX_OUTDATED
from docpipe.errors import EmbeddingServiceError
from docpipe.pipeline.embed import EmbeddingOrchestrator, MisalignedEmbeddingsError
from docpipe.pipeline.index import (
    STATUS_DEFERRED,
    STATUS_INDEXED,
    STATUS_SKIPPED,
    DocumentIndexer,
    content_hash,
)
from docpipe.serialization.json_codec import dump_document
from docpipe.storage.chunkstore import ChunkSink
from docpipe.storage.embeddings import EmbeddingService


class OneBadChunkEmbedder(EmbeddingService):
    def embed(self, texts):
        partial = [None if text == "beta beta" else [1.0] for text in texts]
        failed = [i for i, vector in enumerate(partial) if vector is None]
        if failed:
            raise EmbeddingServiceError("timeout", failed_indexes=failed, partial=partial)
        return partial

    def embed_title(self, text):
        return [1.0]


@pytest.fixture
def sink():
    return MagicMock(spec=ChunkSink)


@pytest.fixture
def indexer(fake_embedder, sink):
    return DocumentIndexer(EmbeddingOrchestrator(fake_embedder), sink)


def test_new_document_is_indexed(indexer, sink, record):
    result = indexer.process_document(record)

    assert result.status == STATUS_INDEXED
    assert result.chunks_saved == 3
    sink.set_index_status.assert_called_once_with("doc-1", INDEX_INDEXING)
    document_id, pairs = sink.save_chunks.call_args[0]
    assert document_id == "doc-1"
    assert [pair.chunk.content for pair in pairs] == ["alpha", "beta beta", "gamma gamma gamma"]
    sink.save_title_embedding.assert_called_once_with("doc-1", [7.0, 2.0])
    sink.mark_indexed.assert_called_once_with("doc-1", "Roadmap", content_hash(record))
    assert result.record.index_status == INDEX_INDEXED
    assert result.record.last_indexed_title == "Roadmap"


def test_unchanged_document_is_skipped(indexer, sink, record):
    indexed = indexer.process_document(record).record
    sink.reset_mock()

    result = indexer.process_document(indexed)

    assert result.status == STATUS_SKIPPED
    assert result.summary() == "Document unchanged since last index"
    sink.save_chunks.assert_not_called()
    sink.set_index_status.assert_not_called()


def test_force_reindexes_unchanged_document(indexer, sink, record):
    indexed = indexer.process_document(record).record
    sink.reset_mock()

    result = indexer.process_document(indexed, force=True)

    assert result.status == STATUS_INDEXED
    sink.save_chunks.assert_called_once()


def test_title_only_change_embeds_title(indexer, sink, fake_embedder, record):
    indexed = indexer.process_document(record).record
    renamed = indexed.with_index_state(title="Roadmap 2025")
    sink.reset_mock()

    result = indexer.process_document(renamed)

    assert result.status == STATUS_INDEXED
    assert fake_embedder.title_calls == ["Roadmap", "Roadmap 2025"]
    assert len(fake_embedder.calls) == 1
    assert result.chunks_saved == 0
    sink.save_chunks.assert_not_called()
    sink.save_title_embedding.assert_called_once_with("doc-1", [12.0, 2.0])
    sink.mark_indexed.assert_called_once_with("doc-1", "Roadmap 2025", content_hash(record))
    assert result.record.last_indexed_title == "Roadmap 2025"


def test_content_change_keeps_title_embedding(indexer, sink, fake_embedder, record):
    indexed = indexer.process_document(record).record
    indexer.apply_document_changes(indexed, [{"search": "alpha", "replace": "omega"}])
    sink.reset_mock()

    result = indexer.process_document(indexed)

    assert result.status == STATUS_INDEXED
    assert fake_embedder.title_calls == ["Roadmap"]
    sink.save_title_embedding.assert_not_called()


def test_embedding_failure_defers_reindex(sink, record):
    indexer = DocumentIndexer(EmbeddingOrchestrator(OneBadChunkEmbedder()), sink)

    result = indexer.process_document(record)

    assert result.status == STATUS_DEFERRED
    assert result.failed_chunks == 1
    assert "deferred" in result.summary()
    sink.save_chunks.assert_not_called()
    sink.mark_index_outdated.assert_called_once_with("doc-1")
    sink.mark_indexed.assert_not_called()
    assert result.record.index_status == INDEX_OUTDATED


def test_hard_failure_marks_document_failed(sink, record):
    orchestrator = MagicMock(spec=EmbeddingOrchestrator)
    orchestrator.build_embeddings.side_effect = MisalignedEmbeddingsError("count mismatch")
    indexer = DocumentIndexer(orchestrator, sink)

    with pytest.raises(MisalignedEmbeddingsError):
        indexer.process_document(record)

    sink.set_index_status.assert_called_with("doc-1", INDEX_FAILED)


def test_successful_edit_marks_index_outdated(indexer, sink, record):
    result = indexer.apply_document_changes(record, [{"search": "beta beta", "replace": "beta"}])

    assert result.success
    sink.mark_index_outdated.assert_called_once_with("doc-1")


def test_failed_edit_leaves_index_alone(indexer, sink, record):
    result = indexer.apply_document_changes(record, [{"search": "missing", "replace": "x"}])

    assert not result.success
    sink.mark_index_outdated.assert_not_called()


def test_index_jsonl(indexer, sink, record, tmp_path):
    other = record.with_index_state(id="doc-2")
    lines = [
        json.dumps(record.to_dict()),
        "",
        json.dumps(other.to_dict()),
        json.dumps({"id": "broken", "title": "x", "json_content": {"type": "doc", "content": "bad"}}),
    ]
    path = tmp_path / "docs.jsonl"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    stats = indexer.index_jsonl(str(path))

    assert stats["total"] == 3
    assert stats["indexed"] == 2
    assert stats["chunks_saved"] == 6
    assert stats["errors"][0]["doc_id"] == "broken"


def test_record_round_trip(record):
    data = record.to_dict()

    assert data["json_content"] == dump_document(record.content)
    assert type(record).from_dict(data) == record
