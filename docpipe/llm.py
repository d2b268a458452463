"""LLM client used by the assisted patch fallback (Gemini-only)."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

API_BASE = "https://generativelanguage.googleapis.com/v1beta"


@dataclass(frozen=True, slots=True)
class LLMResponse:
    """Response from LLM generation.

    Attributes:
        content: Generated text (all parts of the first candidate joined)
        model: Model name used for generation
        tokens_used: Number of tokens consumed (if available)
        finish_reason: Reason generation finished (e.g., "STOP", "MAX_TOKENS")
    """

    content: str
    model: str
    tokens_used: Optional[int] = None
    finish_reason: Optional[str] = None


class BaseLLM(ABC):
    """Text generation interface.

    Passage location wants deterministic, short answers, so the defaults are
    temperature 0 and a small output budget.
    """

    def __init__(self, model: str, temperature: float = 0.0, max_tokens: int = 1024):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @abstractmethod
    def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate text from ``prompt``.

        Raises:
            RuntimeError: If the provider request fails
        """


class GeminiLLM(BaseLLM):
    """Google Gemini ``generateContent`` client over httpx."""

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        api_key: str = "",
        temperature: float = 0.0,
        max_tokens: int = 1024,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ):
        """Initialize Gemini LLM.

        Args:
            model: Model name, with or without the ``models/`` prefix
            api_key: Google API key
            temperature: Sampling temperature (0.0 - 1.0)
            max_tokens: Maximum tokens to generate
            timeout: Request timeout in seconds
            client: Optional preconfigured httpx client
        """
        super().__init__(model=model, temperature=temperature, max_tokens=max_tokens)
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

        if not self._api_key:
            raise ValueError("Google API key is required for Gemini LLM")

    @property
    def model_id(self) -> str:
        return self.model if self.model.startswith("models/") else f"models/{self.model}"

    def generate(self, prompt, temperature=None, max_tokens=None):
        data = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature if temperature is None else temperature,
                "maxOutputTokens": self.max_tokens if max_tokens is None else max_tokens,
                "responseMimeType": "text/plain",
            },
        }
        result = self._post(f"{API_BASE}/{self.model_id}:generateContent", data)

        candidates = result.get("candidates") or []
        if not candidates:
            feedback = result.get("promptFeedback", {})
            raise RuntimeError(f"Gemini returned no candidates: {feedback or result}")

        candidate = candidates[0]
        parts = candidate.get("content", {}).get("parts", [])
        return LLMResponse(
            content="".join(part.get("text", "") for part in parts),
            model=self.model,
            tokens_used=result.get("usageMetadata", {}).get("totalTokenCount"),
            finish_reason=candidate.get("finishReason"),
        )

    def _post(self, url: str, data: dict) -> dict:
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self._api_key,
        }
        try:
            if self._client is not None:
                response = self._client.post(url, json=data, headers=headers, timeout=self._timeout)
                response.raise_for_status()
                return response.json()
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(url, json=data, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise RuntimeError(
                f"Gemini API error: {e.response.status_code} - {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise RuntimeError(f"Gemini LLM generation failed: {e}") from e


def create_llm(config: dict) -> BaseLLM:
    """Create an LLM from the ``llm`` section of the configuration.

    Raises:
        ValueError: If the provider is missing or unsupported
    """
    provider = config.get("provider", "")
    if not provider:
        raise ValueError("LLM config must specify 'provider'")
    if provider != "gemini":
        raise ValueError(f"Unsupported LLM provider: {provider}. Supported: gemini")

    return GeminiLLM(
        model=config.get("model", "gemini-2.5-flash"),
        api_key=config.get("api_key", ""),
        temperature=config.get("temperature", 0.0),
        max_tokens=config.get("max_tokens", 1024),
        timeout=config.get("timeout", 60.0),
    )
