"""Embedding service adapters (Gemini-only)."""

from abc import ABC, abstractmethod
from typing import List

import httpx

from docpipe.errors import EmbeddingServiceError
from docpipe.logging import get_logger

logger = get_logger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta"

# batchEmbedContents accepts at most this many requests per call
MAX_BATCH_SIZE = 100


class EmbeddingService(ABC):
    """Black-box batch embedding service."""

    @abstractmethod
    def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed texts, returning one vector per text in the same order.

        Raises:
            EmbeddingServiceError: If any text could not be embedded; the
                error carries the failed positions and the vectors that did
                come back
        """

    def embed_title(self, text: str) -> List[float]:
        """Embed a document title."""
        return self.embed([text])[0]


class GeminiEmbeddings(EmbeddingService):
    """Google Gemini embeddings adapter.

    Uses the Gemini batch embedding API via httpx. A document's texts are
    submitted in as few requests as the API allows; a failed request only
    fails the texts it carried.
    """

    def __init__(
        self,
        model: str = "models/gemini-embedding-001",
        api_key: str = "",
        timeout: float = 60.0,
        batch_size: int = MAX_BATCH_SIZE,
        client: httpx.Client | None = None,
    ):
        """Initialize Gemini embeddings.

        Args:
            model: Model name (e.g. models/gemini-embedding-001)
            api_key: Google API key
            timeout: Request timeout in seconds
            batch_size: Texts per request (capped at the API limit)
            client: Optional preconfigured httpx client
        """
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self._client = client

        if not self._api_key:
            raise ValueError("Google API key is required")

    @property
    def model(self) -> str:
        return self._model

    def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed a list of texts.

        Args:
            texts: List of text strings

        Returns:
            List of embedding vectors
        """
        if not texts:
            return []

        vectors: List[List[float] | None] = [None] * len(texts)
        failed: List[int] = []
        errors: List[str] = []

        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            try:
                batch_vectors = self._embed_batch(batch)
            except (httpx.HTTPError, EmbeddingServiceError) as e:
                logger.warning(
                    f"Embedding request for texts {start}..{start + len(batch) - 1} failed: {e}"
                )
                failed.extend(range(start, start + len(batch)))
                errors.append(str(e))
                continue
            vectors[start : start + len(batch)] = batch_vectors

        if failed:
            raise EmbeddingServiceError(
                f"{len(failed)} of {len(texts)} texts could not be embedded: {errors[0]}",
                failed_indexes=failed,
                partial=vectors,
            )

        return vectors

    def embed_title(self, text: str) -> List[float]:
        """Embed a document title."""
        try:
            return self._embed_batch([text], task_type="RETRIEVAL_DOCUMENT", title=text)[0]
        except httpx.HTTPError as e:
            raise EmbeddingServiceError(
                f"Title could not be embedded: {e}", failed_indexes=[0], partial=[None]
            ) from e

    def _embed_batch(
        self,
        texts: List[str],
        task_type: str | None = None,
        title: str | None = None,
    ) -> List[List[float]]:
        """Embed a batch of texts in a single API request.

        Args:
            texts: List of text strings

        Returns:
            List of embedding vectors
        """
        url = f"{API_BASE}/{self._model}:batchEmbedContents"

        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self._api_key,
        }

        requests = []
        for text in texts:
            request = {
                "model": self._model,
                "content": {"parts": [{"text": text}]},
            }
            if task_type:
                request["taskType"] = task_type
            if title:
                request["title"] = title
            requests.append(request)

        data = {"requests": requests}

        if self._client is not None:
            response = self._client.post(url, json=data, headers=headers, timeout=self._timeout)
            response.raise_for_status()
            result = response.json()
        else:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(url, json=data, headers=headers)
                response.raise_for_status()
                result = response.json()

        if "embeddings" not in result:
            raise EmbeddingServiceError(f"Gemini API returned unexpected response: {result}")

        embeddings = [embedding["values"] for embedding in result["embeddings"]]
        if len(embeddings) != len(texts):
            raise EmbeddingServiceError(
                f"Gemini API returned {len(embeddings)} embeddings for {len(texts)} texts"
            )
        return embeddings


def create_embedding_service(config) -> EmbeddingService:
    """Create the embedding service described by an ``EmbeddingConfig``."""
    if config.provider != "gemini":
        raise ValueError(f"Unsupported embedding provider: {config.provider}. Supported: gemini")
    return GeminiEmbeddings(
        model=config.model,
        api_key=config.api_key,
        timeout=config.timeout,
        batch_size=config.batch_size,
    )
