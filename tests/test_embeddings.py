"""Tests for embedding providers and the embedding adapter."""

from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import numpy as np
import pytest

from docvec.config import EmbeddingSettings
from docvec.embeddings.adapter import EmbeddingAdapter, EmbeddingConfig, resolve_embedder
from docvec.embeddings.service import Embedder, HTTPEmbedder
from docvec.exceptions import (
    ConfigurationError,
    EmbeddingConfigConflictError,
    EmbeddingConfigMissingError,
    EmbeddingCountMismatchError,
    EmbeddingError,
    ErrorCode,
)


def _mock_client(data: list[dict[str, object]]) -> AsyncMock:
    mock_response = MagicMock()
    mock_response.json.return_value = {"data": data}
    mock_response.raise_for_status = MagicMock()

    mock_client = AsyncMock(spec=httpx.AsyncClient)
    mock_client.post.return_value = mock_response
    return mock_client


class TestHTTPEmbedder:
    """Tests for HTTPEmbedder."""

    def test_model_name(self) -> None:
        """Embedder returns configured model name."""
        embedder = HTTPEmbedder(settings=EmbeddingSettings(model="test-model"))
        assert embedder.model_name == "test-model"
        assert embedder.name == "HTTPEmbedder"

    async def test_embed_batch(self) -> None:
        """Batch embedding returns one vector per text."""
        settings = EmbeddingSettings(base_url="http://test:8080", model="test-model")
        mock_client = _mock_client(
            [{"embedding": [0.1, 0.2]}, {"embedding": [0.3, 0.4]}]
        )

        embedder = HTTPEmbedder(settings=settings, client=mock_client)
        vectors = await embedder.embed_strings(["text1", "text2"])

        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        call = mock_client.post.call_args
        assert call.args[0] == "http://test:8080/embeddings"
        assert call.kwargs["json"] == {"input": ["text1", "text2"], "model": "test-model"}

    async def test_orders_by_index(self) -> None:
        """Vectors are reordered by the response index field."""
        mock_client = _mock_client(
            [
                {"index": 1, "embedding": [2.0]},
                {"index": 0, "embedding": [1.0]},
            ]
        )
        embedder = HTTPEmbedder(settings=EmbeddingSettings(), client=mock_client)

        assert await embedder.embed_strings(["a", "b"]) == [[1.0], [2.0]]

    async def test_splits_requests_by_batch_size(self) -> None:
        """Large inputs are sent in several requests."""
        mock_client = _mock_client([{"embedding": [0.5]}, {"embedding": [0.5]}])
        embedder = HTTPEmbedder(
            settings=EmbeddingSettings(batch_size=2),
            client=mock_client,
        )

        vectors = await embedder.embed_strings(["a", "b", "c", "d"])

        assert mock_client.post.call_count == 2
        assert len(vectors) == 4

    async def test_embed_empty_list(self) -> None:
        """Empty list returns empty results without a request."""
        embedder = HTTPEmbedder(settings=EmbeddingSettings())
        assert await embedder.embed_strings([]) == []

    async def test_http_error(self) -> None:
        """HTTP errors raise EmbeddingError."""
        mock_response = MagicMock()
        mock_response.status_code = 500
        mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "Server error",
            request=MagicMock(),
            response=mock_response,
        )
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.return_value = mock_response

        embedder = HTTPEmbedder(settings=EmbeddingSettings(), client=mock_client)

        with pytest.raises(EmbeddingError, match="500"):
            await embedder.embed_strings(["test"])

    async def test_connection_error(self) -> None:
        """Connection errors raise EmbeddingError."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.side_effect = httpx.ConnectError("Connection refused")

        embedder = HTTPEmbedder(settings=EmbeddingSettings(), client=mock_client)

        with pytest.raises(EmbeddingError, match="connect"):
            await embedder.embed_strings(["test"])

    async def test_malformed_response(self) -> None:
        """A response without data raises EmbeddingError."""
        mock_response = MagicMock()
        mock_response.json.return_value = {"unexpected": True}
        mock_response.raise_for_status = MagicMock()
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.post.return_value = mock_response

        embedder = HTTPEmbedder(settings=EmbeddingSettings(), client=mock_client)

        with pytest.raises(EmbeddingError, match="Invalid response"):
            await embedder.embed_strings(["test"])

    async def test_close_owned_client(self) -> None:
        """Embedder closes a client it created."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        embedder = HTTPEmbedder(settings=EmbeddingSettings(), client=mock_client)
        embedder._owns_client = True

        await embedder.close()

        mock_client.aclose.assert_called_once()


class TestEmbedder:
    """Tests for the Embedder base class."""

    async def test_close_is_noop(self, embedder: Embedder) -> None:
        """Providers without resources close without error."""
        assert await embedder.close() is None

    def test_name_is_class_name(self, embedder: Embedder) -> None:
        """The name used in metrics is the class name."""
        assert embedder.name == "FakeEmbedder"


class TestResolveEmbedder:
    """Tests for choosing the embedding source."""

    def test_both_configured_conflicts(self, embedder: Embedder) -> None:
        """Built-in plus custom embedder fails."""
        config = EmbeddingConfig(use_builtin=True, embedding=embedder)
        with pytest.raises(EmbeddingConfigConflictError):
            resolve_embedder(config)

    def test_neither_configured_is_missing(self) -> None:
        """No embedding source fails."""
        with pytest.raises(EmbeddingConfigMissingError):
            resolve_embedder(EmbeddingConfig())

    def test_custom_embedder_is_used(self, embedder: Embedder) -> None:
        """A custom embedder is returned as is."""
        assert resolve_embedder(EmbeddingConfig(embedding=embedder)) is embedder

    def test_builtin_uses_model_name(self) -> None:
        """The built-in embedder is the HTTP embedder with the configured model."""
        resolved = resolve_embedder(
            EmbeddingConfig(use_builtin=True, model_name="BAAI/bge-small-en-v1.5"),
            EmbeddingSettings(model="other"),
        )
        assert isinstance(resolved, HTTPEmbedder)
        assert resolved.model_name == "BAAI/bge-small-en-v1.5"

    def test_sparse_is_rejected(self) -> None:
        """Sparse vectors are not supported."""
        config = EmbeddingConfig(use_builtin=True, use_sparse=True)
        with pytest.raises(ConfigurationError, match="sparse"):
            resolve_embedder(config)


class TestEmbeddingAdapter:
    """Tests for EmbeddingAdapter."""

    async def test_returns_float32_matrix(self, make_embedder: Callable[..., Embedder]) -> None:
        """Vectors come back as a float32 matrix in input order."""
        fake = make_embedder(dim=3)
        adapter = EmbeddingAdapter(fake, dimensions=3)

        vectors = await adapter.embed(["a", "bb"])

        assert vectors.dtype == np.float32
        assert vectors.shape == (2, 3)
        assert vectors[1].tolist() == fake.vector_for("bb")

    async def test_narrows_precision_silently(self) -> None:
        """Values beyond float32 precision are rounded, not rejected."""

        class PreciseEmbedder(Embedder):
            async def embed_strings(self, texts: list[str]) -> list[list[float]]:
                return [[0.1 + 1e-12] for _ in texts]

        vectors = await EmbeddingAdapter(PreciseEmbedder(), dimensions=1).embed(["x"])
        assert vectors[0][0] == np.float32(0.1)

    async def test_count_mismatch(self, make_embedder: Callable[..., Embedder]) -> None:
        """Fewer vectors than texts raises EmbeddingCountMismatchError."""
        adapter = EmbeddingAdapter(make_embedder(drop=1), dimensions=4)

        with pytest.raises(EmbeddingCountMismatchError) as exc_info:
            await adapter.embed(["a", "b", "c"])

        assert exc_info.value.details == {"expected": 3, "got": 2}

    async def test_dimension_mismatch(self, make_embedder: Callable[..., Embedder]) -> None:
        """Vectors of the wrong width raise EmbeddingError."""
        adapter = EmbeddingAdapter(make_embedder(dim=3), dimensions=4)

        with pytest.raises(EmbeddingError) as exc_info:
            await adapter.embed(["a"])

        assert exc_info.value.code == ErrorCode.EMBEDDING_DIMENSION_MISMATCH

    async def test_wraps_provider_failure(self) -> None:
        """Unexpected provider exceptions are wrapped in EmbeddingError."""

        class BrokenEmbedder(Embedder):
            async def embed_strings(self, texts: list[str]) -> list[list[float]]:
                raise RuntimeError("model crashed")

        with pytest.raises(EmbeddingError, match="model crashed") as exc_info:
            await EmbeddingAdapter(BrokenEmbedder(), dimensions=2).embed(["a"])

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    async def test_empty_input(self, make_embedder: Callable[..., Embedder]) -> None:
        """No texts gives an empty matrix of the right width."""
        vectors = await EmbeddingAdapter(make_embedder(), dimensions=4).embed([])
        assert vectors.shape == (0, 4)
