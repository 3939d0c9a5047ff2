"""Embedding provider interface and HTTP implementation."""

from abc import ABC, abstractmethod

import httpx

from docvec.config import EmbeddingSettings, get_settings
from docvec.exceptions import EmbeddingError, ErrorCode
from docvec.logging_config import get_logger

logger = get_logger(__name__)


class Embedder(ABC):
    """Abstract base class for embedding providers.

    A provider turns a batch of texts into one vector per text, in input
    order. Pipelines depend only on this capability.
    """

    @abstractmethod
    async def embed_strings(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Args:
            texts: Texts to embed.

        Returns:
            One vector per text, in input order.

        Raises:
            EmbeddingError: If embedding fails.
        """
        ...

    @property
    def name(self) -> str:
        """Implementation name used in logs and metrics."""
        return type(self).__name__

    async def close(self) -> None:
        """Release provider resources."""
        return None


class HTTPEmbedder(Embedder):
    """Embedding provider using an HTTP API.

    Compatible with OpenAI-style embedding APIs and
    text-embeddings-inference (TEI) servers.
    """

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP embedder.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
            client: HTTP client. Creates new one if not provided.
        """
        self._settings = settings or get_settings().embedding
        self._client = client
        self._owns_client = client is None

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {}
            if self._settings.api_key is not None:
                headers["Authorization"] = (
                    f"Bearer {self._settings.api_key.get_secret_value()}"
                )
            self._client = httpx.AsyncClient(
                timeout=self._settings.timeout,
                headers=headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def embed_strings(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings, splitting into requests of ``batch_size`` texts."""
        if not texts:
            return []

        client = await self._get_client()
        url = f"{self._settings.base_url.rstrip('/')}/embeddings"

        vectors: list[list[float]] = []
        batch_size = max(self._settings.batch_size, 1)

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            vectors.extend(await self._embed_batch_request(client, url, batch))

        return vectors

    async def _embed_batch_request(
        self,
        client: httpx.AsyncClient,
        url: str,
        texts: list[str],
    ) -> list[list[float]]:
        """Make embedding request for a batch.

        Args:
            client: HTTP client.
            url: Embedding endpoint URL.
            texts: Batch of texts.

        Returns:
            Vectors ordered by the response ``index`` field when present.

        Raises:
            EmbeddingError: If request fails.
        """
        payload = {
            "input": texts,
            "model": self._settings.model,
        }

        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Embedding request failed: {e.response.status_code}",
                extra={"url": url, "status": e.response.status_code},
            )
            raise EmbeddingError(
                f"Embedding service returned {e.response.status_code}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error(
                f"Embedding request error: {e}",
                extra={"url": url},
            )
            raise EmbeddingError(
                f"Failed to connect to embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"url": url},
            ) from e

        try:
            data = response.json()
            items = data["data"]
            if all("index" in item for item in items):
                items = sorted(items, key=lambda item: item["index"])
            return [[float(v) for v in item["embedding"]] for item in items]

        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"error": str(e)},
            ) from e
