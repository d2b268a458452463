"""Tests for the Gemini embedding adapter."""

from unittest.mock import MagicMock

import httpx
import pytest

from docpipe.errors import EmbeddingServiceError
from docpipe.pipeline.config import EmbeddingConfig
from docpipe.storage.embeddings import GeminiEmbeddings, create_embedding_service


def _response(count, value=0.5):
    response = MagicMock()
    response.json.return_value = {"embeddings": [{"values": [value, value]} for _ in range(count)]}
    return response


def _sizing_client(fail_on_call=None):
    """Client answering each request with one vector per submitted text."""
    client = MagicMock()
    calls = {"n": 0}

    def post(url, json=None, headers=None, timeout=None):
        calls["n"] += 1
        if calls["n"] == fail_on_call:
            raise httpx.ReadTimeout("timed out")
        return _response(len(json["requests"]))

    client.post.side_effect = post
    return client


def test_requires_api_key():
    with pytest.raises(ValueError, match="API key"):
        GeminiEmbeddings(api_key="")


def test_embed_batches_requests():
    client = _sizing_client()
    embeddings = GeminiEmbeddings(api_key="k", batch_size=2, client=client)

    vectors = embeddings.embed(["a", "b", "c"])

    assert vectors == [[0.5, 0.5]] * 3
    assert client.post.call_count == 2
    first_body = client.post.call_args_list[0][1]["json"]
    assert [r["content"]["parts"][0]["text"] for r in first_body["requests"]] == ["a", "b"]
    assert client.post.call_args_list[0][1]["headers"]["x-goog-api-key"] == "k"


def test_failed_request_reports_its_texts():
    embeddings = GeminiEmbeddings(api_key="k", batch_size=2, client=_sizing_client(fail_on_call=2))

    with pytest.raises(EmbeddingServiceError) as excinfo:
        embeddings.embed(["a", "b", "c"])

    assert excinfo.value.failed_indexes == [2]
    assert excinfo.value.partial == [[0.5, 0.5], [0.5, 0.5], None]


def test_count_mismatch_is_an_error():
    client = MagicMock()
    client.post.return_value = _response(1)
    embeddings = GeminiEmbeddings(api_key="k", client=client)

    with pytest.raises(EmbeddingServiceError) as excinfo:
        embeddings.embed(["a", "b"])

    assert excinfo.value.failed_indexes == [0, 1]


def test_embed_title_uses_document_task():
    client = _sizing_client()
    embeddings = GeminiEmbeddings(api_key="k", client=client)

    assert embeddings.embed_title("Roadmap") == [0.5, 0.5]
    request = client.post.call_args[1]["json"]["requests"][0]
    assert request["taskType"] == "RETRIEVAL_DOCUMENT"
    assert request["title"] == "Roadmap"


def test_empty_input_makes_no_request():
    client = _sizing_client()

    assert GeminiEmbeddings(api_key="k", client=client).embed([]) == []
    client.post.assert_not_called()


def test_batch_size_is_capped():
    client = _sizing_client()
    embeddings = GeminiEmbeddings(api_key="k", batch_size=500, client=client)

    embeddings.embed(["t"] * 150)

    assert client.post.call_count == 2


def test_factory():
    service = create_embedding_service(EmbeddingConfig(api_key="k", model="models/text-embedding-004"))

    assert isinstance(service, GeminiEmbeddings)
    assert service.model == "models/text-embedding-004"

    with pytest.raises(ValueError):
        create_embedding_service(EmbeddingConfig(provider="openai", api_key="k"))
