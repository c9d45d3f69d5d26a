"""
Embedding providers.

Every provider turns text into a fixed-width vector of finite floats. The
stores call ``embed`` before persisting anything, so a provider failure
aborts the write before a row exists.
"""

from __future__ import annotations

import math
import re
from typing import List, Optional, Sequence

import httpx

import contextvault.config as config
from contextvault.errors import InvalidEmbedding, ProviderTransportError, ValidationIssue
from contextvault.validators import validate_embedding_text

logger = config.logger

OPENAI_EMBEDDINGS_URL = "https://api.openai.com/v1/embeddings"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
MODEL_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")


def validate_embedding(values, dimensions: Optional[int] = None) -> List[float]:
    """Coerce a provider vector to floats, rejecting anything malformed."""
    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        raise InvalidEmbedding("Invalid embedding: expected a sequence of numbers")
    vector = []
    for value in values:
        if isinstance(value, bool):
            raise InvalidEmbedding("Invalid embedding: contains non-numeric value")
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise InvalidEmbedding("Invalid embedding: contains non-numeric value") from exc
        if not math.isfinite(number):
            raise InvalidEmbedding("Invalid embedding: contains non-finite value")
        vector.append(number)
    if not vector:
        raise InvalidEmbedding("Invalid embedding: empty vector")
    if dimensions is not None and len(vector) != dimensions:
        raise InvalidEmbedding(
            f"Invalid embedding: expected {dimensions} dimensions, got {len(vector)}"
        )
    return vector


class EmbeddingProvider:
    """Capability contract: ``embed`` and order-preserving ``embed_batch``."""

    name = "custom"
    dimensions: Optional[int] = None

    def embed(self, text: str) -> List[float]:
        raise NotImplementedError

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return [self.embed(text) for text in texts]

    def close(self) -> None:
        return None


class _HttpEmbeddingProvider(EmbeddingProvider):
    default_model = ""

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        *,
        timeout: float = config.EMBEDDING_TIMEOUT_SECONDS,
        batch_size: int = config.EMBEDDING_BATCH_SIZE,
        client: Optional[httpx.Client] = None,
    ):
        if not api_key:
            raise ValidationIssue(
                f"{self.name} embedding provider requires an API key",
                field="api_key",
                error_type="required",
            )
        self.api_key = api_key
        self.model = model or self.default_model
        if not MODEL_NAME_PATTERN.match(self.model):
            raise ValidationIssue("Invalid model name", field="model", error_type="invalid_value")
        self.dimensions = dimensions
        self.batch_size = max(1, batch_size)
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=100),
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
            logger.info("HTTP client closed", extra={"provider": self.name})

    def _post(self, url: str, payload: dict, headers: Optional[dict] = None) -> dict:
        try:
            response = self._client.post(url, json=payload, headers=headers)
        except httpx.RequestError as exc:
            logger.warning("Embedding request failed", extra={"provider": self.name})
            raise ProviderTransportError(
                f"{self.name} embedding request failed: {exc.__class__.__name__}",
                provider=self.name,
            ) from exc
        if response.status_code >= 400:
            logger.warning(
                "Embedding provider returned an error",
                extra={"provider": self.name, "status_code": response.status_code},
            )
            raise ProviderTransportError(
                f"{self.name} embedding failed with status {response.status_code}",
                status_code=response.status_code,
                provider=self.name,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise InvalidEmbedding(f"{self.name} embedding response is not JSON") from exc

    def _chunks(self, texts: Sequence[str]):
        for start in range(0, len(texts), self.batch_size):
            yield list(texts[start:start + self.batch_size])


class OpenAIEmbeddingProvider(_HttpEmbeddingProvider):
    name = "openai"
    default_model = "text-embedding-3-large"

    def __init__(self, api_key: Optional[str], model: Optional[str] = None, dimensions: Optional[int] = 3072, **kwargs):
        super().__init__(api_key, model, dimensions, **kwargs)

    def _request(self, payload_input) -> dict:
        payload = {"model": self.model, "input": payload_input}
        if self.dimensions:
            payload["dimensions"] = self.dimensions
        return self._post(
            OPENAI_EMBEDDINGS_URL,
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    def embed(self, text: str) -> List[float]:
        validate_embedding_text(text)
        data = self._request(text)
        try:
            values = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as exc:
            raise InvalidEmbedding("openai embedding response missing data") from exc
        return validate_embedding(values, self.dimensions)

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        results: List[List[float]] = []
        for chunk in self._chunks(texts):
            for text in chunk:
                validate_embedding_text(text)
            data = self._request(chunk)
            try:
                items = data["data"]
                by_index = {int(item["index"]): item["embedding"] for item in items}
            except (KeyError, TypeError, ValueError) as exc:
                raise InvalidEmbedding("openai batch response missing data") from exc
            if sorted(by_index) != list(range(len(chunk))):
                raise InvalidEmbedding("openai batch response does not cover every input")
            results.extend(
                validate_embedding(by_index[position], self.dimensions)
                for position in range(len(chunk))
            )
        return results


class GeminiEmbeddingProvider(_HttpEmbeddingProvider):
    name = "gemini"
    default_model = "gemini-embedding-001"

    def __init__(self, api_key: Optional[str], model: Optional[str] = None, dimensions: Optional[int] = 768, **kwargs):
        super().__init__(api_key, model, dimensions, **kwargs)

    def _content_request(self, text: str) -> dict:
        request = {
            "model": f"models/{self.model}",
            "content": {"parts": [{"text": text}]},
        }
        if self.dimensions:
            request["outputDimensionality"] = self.dimensions
        return request

    def _url(self, method: str) -> str:
        return f"{GEMINI_BASE_URL}/models/{self.model}:{method}"

    def _headers(self) -> dict:
        return {"x-goog-api-key": self.api_key}

    def embed(self, text: str) -> List[float]:
        validate_embedding_text(text)
        data = self._post(self._url("embedContent"), self._content_request(text), headers=self._headers())
        try:
            values = data["embedding"]["values"]
        except (KeyError, TypeError) as exc:
            raise InvalidEmbedding("gemini embedding response missing values") from exc
        return validate_embedding(values, self.dimensions)

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        results: List[List[float]] = []
        for chunk in self._chunks(texts):
            for text in chunk:
                validate_embedding_text(text)
            data = self._post(
                self._url("batchEmbedContents"),
                {"requests": [self._content_request(text) for text in chunk]},
                headers=self._headers(),
            )
            try:
                embeddings = data["embeddings"]
                vectors = [item["values"] for item in embeddings]
            except (KeyError, TypeError) as exc:
                raise InvalidEmbedding("gemini batch response missing embeddings") from exc
            # Gemini answers positionally; a short answer cannot be realigned.
            if len(vectors) != len(chunk):
                raise InvalidEmbedding("gemini batch response does not cover every input")
            results.extend(validate_embedding(values, self.dimensions) for values in vectors)
        return results


EMBEDDING_PROVIDERS = {
    "openai": OpenAIEmbeddingProvider,
    "gemini": GeminiEmbeddingProvider,
}


def create_embedding_provider(
    provider: str,
    api_key: Optional[str],
    model: Optional[str] = None,
    dimensions: Optional[int] = None,
    **kwargs,
) -> EmbeddingProvider:
    provider_cls = EMBEDDING_PROVIDERS.get((provider or "").strip().lower())
    if provider_cls is None:
        raise ValidationIssue(
            f"Unknown embedding provider: {provider}",
            field="provider",
            error_type="invalid_value",
        )
    if dimensions is None:
        return provider_cls(api_key, model, **kwargs)
    return provider_cls(api_key, model, dimensions, **kwargs)


def _api_key_for(provider: str) -> Optional[str]:
    if provider == "openai":
        return config.OPENAI_API_KEY
    if provider == "gemini":
        return config.GEMINI_API_KEY
    return None


def embedding_provider_from_env(scope: str = "user") -> Optional[EmbeddingProvider]:
    """Build the provider configured for ``scope`` ("user" or "tenant")."""
    if scope == "tenant":
        provider = config.TENANT_EMBEDDING_PROVIDER
        model = config.TENANT_EMBEDDING_MODEL
        dimensions = config.TENANT_EMBEDDING_DIM
    else:
        provider = config.EMBEDDING_PROVIDER
        model = config.EMBEDDING_MODEL
        dimensions = config.USER_EMBEDDING_DIM
    if provider == "none":
        return None
    instance = create_embedding_provider(provider, _api_key_for(provider), model, dimensions)
    logger.info("HTTP client initialized", extra={"provider": provider, "scope": scope})
    return instance
