"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator, Callable

import pytest
from httpx import ASGITransport, AsyncClient
from qdrant_client import AsyncQdrantClient

from docvec.api.app import app
from docvec.embeddings.service import Embedder
from docvec.vectorstore.service import QdrantVectorStore

DIM = 4


class FakeEmbedder(Embedder):
    """Deterministic embedder recording every call.

    Args:
        dim: Vector dimensionality.
        drop: Number of vectors to leave out of every response.
    """

    def __init__(self, dim: int = DIM, drop: int = 0) -> None:
        self.dim = dim
        self.drop = drop
        self.calls: list[list[str]] = []

    async def embed_strings(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors = [self.vector_for(text) for text in texts]
        return vectors[: len(vectors) - self.drop]

    def vector_for(self, text: str) -> list[float]:
        seed = sum(ord(c) for c in text)
        return [float((seed * (i + 1)) % 17) for i in range(self.dim)]


@pytest.fixture
def make_embedder() -> Callable[..., FakeEmbedder]:
    """Factory for fake embedders."""
    return FakeEmbedder


@pytest.fixture
def embedder() -> FakeEmbedder:
    """A conforming fake embedder of dimension ``DIM``."""
    return FakeEmbedder()


@pytest.fixture
async def qdrant_store() -> AsyncGenerator[QdrantVectorStore, None]:
    """Vector store backed by an in-memory Qdrant instance."""
    client = AsyncQdrantClient(location=":memory:")
    store = QdrantVectorStore(client=client)
    yield store
    await client.close()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
