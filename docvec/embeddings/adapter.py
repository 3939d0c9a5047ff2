"""Embedding adapter shared by the indexing and retrieval pipelines."""

import time

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from docvec.config import EmbeddingSettings, get_settings
from docvec.embeddings.service import Embedder, HTTPEmbedder
from docvec.exceptions import (
    ConfigurationError,
    EmbeddingConfigConflictError,
    EmbeddingConfigMissingError,
    EmbeddingCountMismatchError,
    EmbeddingError,
    ErrorCode,
)
from docvec.logging_config import get_logger
from docvec.observability.metrics import track_embedding_request

logger = get_logger(__name__)

# Native vector precision of the store.
VECTOR_DTYPE = np.float32


class EmbeddingConfig(BaseModel):
    """Selects the embedding source of a pipeline.

    Exactly one of ``use_builtin`` and ``embedding`` must be set.

    Attributes:
        use_builtin: Use the embedding service configured in settings.
        model_name: Model requested from the built-in service.
        use_sparse: Request sparse vectors too. Not supported yet.
        embedding: Custom provider, used when ``use_builtin`` is false.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    use_builtin: bool = False
    model_name: str | None = None
    use_sparse: bool = False
    embedding: Embedder | None = Field(default=None, exclude=True)


def resolve_embedder(
    config: EmbeddingConfig,
    settings: EmbeddingSettings | None = None,
) -> Embedder:
    """Pick the embedder a pipeline will use.

    Args:
        config: Embedding source selection.
        settings: Settings for the built-in embedder.

    Returns:
        The custom embedder, or the built-in HTTP embedder.

    Raises:
        EmbeddingConfigConflictError: Both sources configured.
        EmbeddingConfigMissingError: No source configured.
        ConfigurationError: Sparse vectors requested.
    """
    if config.use_builtin and config.embedding is not None:
        raise EmbeddingConfigConflictError(
            "no need to provide embedding when use_builtin is true"
        )
    if not config.use_builtin and config.embedding is None:
        raise EmbeddingConfigMissingError(
            "need to provide embedding when use_builtin is false"
        )
    if config.use_sparse:
        raise ConfigurationError(
            "sparse vectors are not supported",
            details={"field": "use_sparse"},
        )

    if config.embedding is not None:
        return config.embedding

    settings = settings or get_settings().embedding
    if config.model_name:
        settings = settings.model_copy(update={"model": config.model_name})
    return HTTPEmbedder(settings=settings)


class EmbeddingAdapter:
    """Calls an embedder and checks its output against the collection.

    Vectors are narrowed to float32, the store's native precision.
    Precision lost in the narrowing is accepted silently.
    """

    def __init__(self, embedder: Embedder, dimensions: int) -> None:
        self._embedder = embedder
        self._dimensions = dimensions

    @property
    def embedder(self) -> Embedder:
        return self._embedder

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, texts: list[str]) -> np.ndarray:
        """Embed texts into a ``(len(texts), dimensions)`` float32 matrix.

        Raises:
            EmbeddingCountMismatchError: Provider returned a different
                number of vectors than texts.
            EmbeddingError: Provider failed or returned a vector of the
                wrong dimensionality.
        """
        start = time.perf_counter()
        try:
            raw = await self._embedder.embed_strings(texts)
        except EmbeddingError:
            self._track(start, len(texts), success=False)
            raise
        except Exception as e:
            self._track(start, len(texts), success=False)
            raise EmbeddingError(
                f"embed_strings failed: {e}",
                details={"embedder": self._embedder.name, "error": str(e)},
            ) from e
        self._track(start, len(texts), success=True)

        if len(raw) != len(texts):
            raise EmbeddingCountMismatchError(expected=len(texts), got=len(raw))

        for idx, vector in enumerate(raw):
            if len(vector) != self._dimensions:
                raise EmbeddingError(
                    f"vector {idx} has {len(vector)} dimensions, "
                    f"expected {self._dimensions}",
                    code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
                    details={
                        "index": idx,
                        "got": len(vector),
                        "expected": self._dimensions,
                    },
                )

        if not raw:
            return np.empty((0, self._dimensions), dtype=VECTOR_DTYPE)
        return np.asarray(raw, dtype=VECTOR_DTYPE)

    def _track(self, start: float, batch_size: int, success: bool) -> None:
        track_embedding_request(
            embedder=self._embedder.name,
            duration=time.perf_counter() - start,
            batch_size=batch_size,
            success=success,
        )
