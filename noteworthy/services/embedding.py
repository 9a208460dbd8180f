"""Embedding providers — one contract over OpenAI-style, Azure and local backends.

Every provider exposes ``embed(texts)``: the output has one vector per input
text, in input order. Oversized inputs are split into provider-sized
sub-batches here, so callers never see batching. Providers never retry; see
``noteworthy.services.retry`` for the policy that wraps them.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
import litellm

from noteworthy.core.concurrency import CancellationToken, check_cancelled
from noteworthy.core.config import get_settings
from noteworthy.core.errors import (
    ConfigurationMissing,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimited,
    ProviderResponseError,
    ProviderUnavailable,
)
from noteworthy.models.ai_config import ProviderType

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_AZURE_API_VERSION = "2023-12-01-preview"

DEFAULT_MODELS: dict[ProviderType, str] = {
    ProviderType.OPENAI: "text-embedding-3-small",
    ProviderType.AZURE_OPENAI: "text-embedding-ada-002",
    ProviderType.CUSTOM_OPENAI_COMPATIBLE: "text-embedding-ada-002",
    ProviderType.OLLAMA: "nomic-embed-text",
}


@dataclass(frozen=True)
class EmbeddingConfig:
    """Resolved, decrypted embedding configuration for one principal."""
    id: str
    provider_type: ProviderType
    model_name: str
    dimension: int
    base_url: str | None = None
    api_key: str | None = None
    api_version: str | None = None

    @property
    def self_hosted(self) -> bool:
        return self.provider_type == ProviderType.OLLAMA


class EmbeddingProvider(ABC):
    """Port for generating text embeddings."""

    max_batch_size: int = 128

    def __init__(self, model: str) -> None:
        self.model = model

    async def embed(
        self,
        texts: list[str],
        *,
        cancel: CancellationToken | None = None,
    ) -> list[list[float]]:
        """Generate embeddings for texts of any length.

        Args:
            texts: Texts to embed, in order.
            cancel: Optional token checked before every sub-batch.

        Returns:
            One vector per text, ``result[i]`` belonging to ``texts[i]``.
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.max_batch_size):
            check_cancelled(cancel)
            batch = texts[start:start + self.max_batch_size]
            batch_vectors = await self._embed_batch(batch)
            if len(batch_vectors) != len(batch):
                raise ProviderResponseError(
                    f"{self.model} returned {len(batch_vectors)} embeddings for {len(batch)} inputs"
                )
            vectors.extend(batch_vectors)
        return vectors

    async def embed_query(
        self,
        text: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> list[float]:
        return (await self.embed([text], cancel=cancel))[0]

    @abstractmethod
    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed at most ``max_batch_size`` texts in one provider request."""


# ── HTTP helpers ─────────────────────────────────────────────


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def provider_error(
    code: int | None,
    message: str,
    retry_after: float | None = None,
) -> ProviderError:
    """Typed error for a provider failure with HTTP status ``code``."""
    if code in (401, 403):
        return ProviderAuthError(message, provider_status=code)
    if code == 429:
        return ProviderRateLimited(message, provider_status=code, retry_after=retry_after)
    if code is not None and (code >= 500 or code == 408):
        return ProviderUnavailable(message, provider_status=code)
    return ProviderResponseError(message, provider_status=code)


def raise_for_provider_status(response: httpx.Response, provider: str) -> None:
    """Map a non-2xx provider response onto the typed error taxonomy."""
    code = response.status_code
    if 200 <= code < 300:
        return
    detail = response.text[:500]
    message = f"{provider} embedding request failed with HTTP {code}: {detail}"
    raise provider_error(code, message, _retry_after(response))


class HttpEmbeddingProvider(EmbeddingProvider):
    """Shared request plumbing for providers spoken to over plain HTTP."""

    provider_name = "http"

    def __init__(
        self,
        model: str,
        base_url: str,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(model)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else get_settings().embedding_timeout_seconds
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        client = self._http_client or httpx.AsyncClient(timeout=self.timeout)
        should_close = self._http_client is None
        try:
            response = await client.post(
                f"{self.base_url}{path}",
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise ProviderUnavailable(f"{self.provider_name} request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise ProviderUnavailable(f"{self.provider_name} unreachable: {exc}") from exc
        finally:
            if should_close:
                await client.aclose()

        raise_for_provider_status(response, self.provider_name)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderResponseError(f"{self.provider_name} returned invalid JSON") from exc


# ── OpenAI-compatible ────────────────────────────────────────


class OpenAIEmbeddingProvider(HttpEmbeddingProvider):
    """``POST /embeddings`` with bearer auth, as served by OpenAI."""

    provider_name = "openai"
    max_batch_size = 512

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODELS[ProviderType.OPENAI],
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ProviderAuthError(f"{self.provider_name} embedding config has no API key")
        super().__init__(model, base_url or DEFAULT_OPENAI_BASE_URL, timeout, http_client)
        self._api_key = api_key

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        data = await self._post("/embeddings", {"input": texts, "model": self.model})
        try:
            items = list(data["data"])
            # Entries carry their input position; order by it when present
            if all("index" in item for item in items):
                items.sort(key=lambda item: item["index"])
            return [[float(x) for x in item["embedding"]] for item in items]
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderResponseError(f"Malformed {self.provider_name} embedding response") from exc


class CustomOpenAIEmbeddingProvider(OpenAIEmbeddingProvider):
    """Any server speaking the OpenAI embeddings dialect at its own base URL."""

    provider_name = "custom_openai_compatible"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str = DEFAULT_MODELS[ProviderType.CUSTOM_OPENAI_COMPATIBLE],
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url:
            raise ConfigurationMissing("Custom OpenAI-compatible provider requires a base URL")
        super().__init__(api_key, model, base_url, timeout, http_client)


# ── Ollama (self-hosted) ─────────────────────────────────────


class OllamaEmbeddingProvider(HttpEmbeddingProvider):
    """Local models served by Ollama's ``/api/embed`` endpoint. No auth."""

    provider_name = "ollama"
    max_batch_size = 64

    def __init__(
        self,
        model: str = DEFAULT_MODELS[ProviderType.OLLAMA],
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(model, base_url or DEFAULT_OLLAMA_BASE_URL, timeout, http_client)

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        data = await self._post("/api/embed", {"model": self.model, "input": texts})
        try:
            return [[float(x) for x in vector] for vector in data["embeddings"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderResponseError("Malformed ollama embedding response") from exc


# ── Azure OpenAI (via LiteLLM) ───────────────────────────────


class AzureOpenAIEmbeddingProvider(EmbeddingProvider):
    """Azure deployments, called through LiteLLM's ``azure/`` route."""

    max_batch_size = 16

    def __init__(
        self,
        api_key: str,
        base_url: str,
        deployment: str = DEFAULT_MODELS[ProviderType.AZURE_OPENAI],
        api_version: str | None = None,
        timeout: float | None = None,
    ) -> None:
        if not api_key:
            raise ProviderAuthError("azure_openai embedding config has no API key")
        if not base_url:
            raise ConfigurationMissing("Azure OpenAI requires a base URL")
        super().__init__(deployment)
        self._api_key = api_key
        self.base_url = base_url
        self.api_version = api_version or DEFAULT_AZURE_API_VERSION
        self.timeout = timeout if timeout is not None else get_settings().embedding_timeout_seconds

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        try:
            response = await litellm.aembedding(
                model=f"azure/{self.model}",
                input=texts,
                api_key=self._api_key,
                api_base=self.base_url,
                api_version=self.api_version,
                timeout=self.timeout,
            )
        except (litellm.AuthenticationError, litellm.PermissionDeniedError) as exc:
            raise ProviderAuthError(str(exc), provider_status=getattr(exc, "status_code", None)) from exc
        except litellm.RateLimitError as exc:
            raise ProviderRateLimited(str(exc)) from exc
        except (litellm.Timeout, litellm.APIConnectionError) as exc:
            raise ProviderUnavailable(str(exc)) from exc
        except Exception as exc:
            # LiteLLM error classes do not share one base; map on the carried status
            status = getattr(exc, "status_code", None)
            raise provider_error(
                status if isinstance(status, int) else None,
                f"azure_openai embedding request failed: {exc}",
            ) from exc

        try:
            items = sorted(response.data, key=lambda item: item["index"])
            return [[float(x) for x in item["embedding"]] for item in items]
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderResponseError("Malformed azure embedding response") from exc


# ── Factory ──────────────────────────────────────────────────


def get_embedding_provider(
    config: EmbeddingConfig,
    http_client: httpx.AsyncClient | None = None,
) -> EmbeddingProvider:
    """Build the bare provider for a config. Callers add retries on top."""
    provider_type = config.provider_type
    if provider_type == ProviderType.OPENAI:
        return OpenAIEmbeddingProvider(
            api_key=config.api_key or "",
            model=config.model_name,
            base_url=config.base_url,
            http_client=http_client,
        )
    if provider_type == ProviderType.CUSTOM_OPENAI_COMPATIBLE:
        return CustomOpenAIEmbeddingProvider(
            api_key=config.api_key or "",
            base_url=config.base_url or "",
            model=config.model_name,
            http_client=http_client,
        )
    if provider_type == ProviderType.OLLAMA:
        return OllamaEmbeddingProvider(
            model=config.model_name,
            base_url=config.base_url,
            http_client=http_client,
        )
    if provider_type == ProviderType.AZURE_OPENAI:
        return AzureOpenAIEmbeddingProvider(
            api_key=config.api_key or "",
            base_url=config.base_url or "",
            deployment=config.model_name,
            api_version=config.api_version,
        )
    raise ConfigurationMissing(f"Unsupported embedding provider: {provider_type}")
