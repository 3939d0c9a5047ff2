"""Query retrieval pipeline.

A query is embedded into one vector, searched against the collection and
the ranked rows are decoded back into scored documents.
"""

from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from docvec.batching import try_dump_json
from docvec.config import EmbeddingSettings, Settings, get_settings
from docvec.documents.models import Document
from docvec.embeddings.adapter import EmbeddingAdapter, EmbeddingConfig, resolve_embedder
from docvec.embeddings.service import Embedder
from docvec.exceptions import ErrorCode, SchemaMismatchError, VectorStoreError
from docvec.logging_config import get_logger
from docvec.observability.callbacks import (
    CallbackHandler,
    CallbackManager,
    RetrieverCallbackInput,
    RetrieverCallbackOutput,
    make_run_info,
)
from docvec.vectorstore.codec import decode_search_result
from docvec.vectorstore.models import (
    FIELD_CONTENT,
    FIELD_ID,
    FIELD_VECTOR,
    MetricType,
    SearchResult,
)
from docvec.vectorstore.service import QdrantVectorStore, VectorStore

logger = get_logger(__name__)

DEFAULT_TOP_K = 100
DEFAULT_PARTITION = "default"
DEFAULT_VECTOR_DIM = 1024
OUTPUT_FIELDS = [FIELD_ID, FIELD_CONTENT]


class RetrieverConfig(BaseModel):
    """Resolved, immutable retriever configuration.

    Unset or zero-valued fields fall back to their defaults.
    """

    model_config = ConfigDict(frozen=True)

    collection: str = Field(min_length=1, description="Collection to search")
    partition: str = Field(default=DEFAULT_PARTITION, description="Partition to search")
    index: str = Field(default=FIELD_VECTOR, description="Vector field to search")
    top_k: int = Field(default=DEFAULT_TOP_K, gt=0, description="Maximum results")
    score_threshold: float | None = Field(
        default=None,
        description="Results not passing this score are dropped",
    )
    filter: dict[str, Any] | None = Field(
        default=None,
        description="Scalar equality filter on stored fields",
    )
    metric: MetricType = Field(default=MetricType.L2, description="Collection metric")
    vector_dim: int = Field(
        default=DEFAULT_VECTOR_DIM, gt=0, description="Vector dimensionality"
    )
    search_params: dict[str, Any] = Field(
        default_factory=lambda: {"exact": True},
        description="Backend search parameters, exact (flat) search by default",
    )
    embedding: EmbeddingConfig = Field(description="Embedding source")

    @field_validator("top_k", "vector_dim", mode="before")
    @classmethod
    def _zero_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or value == 0:
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("partition", "index", mode="before")
    @classmethod
    def _empty_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        return value or cls.model_fields[info.field_name].default

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        embedding: Embedder | None = None,
        **overrides: Any,
    ) -> "RetrieverConfig":
        """Build a config from application settings.

        Args:
            settings: Application settings. Uses cached settings if not provided.
            embedding: Custom embedder. When given, the built-in one is not used.
            **overrides: Field values taking precedence over settings.
        """
        settings = settings or get_settings()
        if embedding is not None:
            embedding_config = EmbeddingConfig(embedding=embedding)
        else:
            embedding_config = EmbeddingConfig(
                use_builtin=settings.embedding.use_builtin,
                model_name=settings.embedding.model,
            )

        values: dict[str, Any] = {
            "collection": settings.qdrant.collection_name,
            "partition": settings.retriever.partition,
            "index": settings.retriever.index,
            "top_k": settings.retriever.top_k,
            "score_threshold": settings.retriever.score_threshold,
            "metric": settings.retriever.metric,
            "vector_dim": settings.retriever.vector_dim,
            "embedding": embedding_config,
        }
        values.update(overrides)
        return cls(**values)


class RetrieverOptions(BaseModel):
    """Per-call overrides for ``Retriever.retrieve``. Unset fields keep the config."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    index: str | None = None
    partition: str | None = None
    top_k: int | None = Field(default=None, gt=0)
    score_threshold: float | None = None
    filter: dict[str, Any] | None = None
    embedding: Embedder | None = None


class _EffectiveOptions(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    index: str
    partition: str
    top_k: int
    score_threshold: float | None
    filter: dict[str, Any] | None
    embedding: Embedder


class Retriever:
    """Semantic search over a collection.

    Embeds the query and ranks stored documents by the collection metric.
    """

    def __init__(
        self,
        config: RetrieverConfig,
        store: VectorStore,
        callbacks: Sequence[CallbackHandler] | None = None,
        embedding_settings: EmbeddingSettings | None = None,
    ) -> None:
        """Initialize the retriever.

        Args:
            config: Resolved retriever configuration.
            store: Vector store to search.
            callbacks: Lifecycle handlers fired around every call.
            embedding_settings: Settings for the built-in embedder.

        Raises:
            ConfigurationError: The embedding source is misconfigured.
        """
        self._config = config
        self._store = store
        self._embedder = resolve_embedder(config.embedding, embedding_settings)
        self._owns_embedder = config.embedding.embedding is None
        self._callbacks = CallbackManager(make_run_info(store, "Retriever"), callbacks)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        store: VectorStore | None = None,
        callbacks: Sequence[CallbackHandler] | None = None,
        embedding: Embedder | None = None,
    ) -> "Retriever":
        """Build a retriever backed by Qdrant from application settings."""
        settings = settings or get_settings()
        return cls(
            RetrieverConfig.from_settings(settings, embedding=embedding),
            store or QdrantVectorStore(settings.qdrant),
            callbacks=callbacks,
            embedding_settings=settings.embedding,
        )

    @property
    def config(self) -> RetrieverConfig:
        return self._config

    async def close(self) -> None:
        """Close the embedder if it was built from settings."""
        if self._owns_embedder:
            await self._embedder.close()

    def resolve_options(self, options: RetrieverOptions | None = None) -> _EffectiveOptions:
        """Overlay per-call options onto the configured defaults."""
        options = options or RetrieverOptions()
        return _EffectiveOptions(
            index=options.index or self._config.index,
            partition=options.partition or self._config.partition,
            top_k=options.top_k or self._config.top_k,
            score_threshold=(
                options.score_threshold
                if options.score_threshold is not None
                else self._config.score_threshold
            ),
            filter=options.filter if options.filter is not None else self._config.filter,
            embedding=options.embedding or self._embedder,
        )

    async def retrieve(
        self,
        query: str,
        options: RetrieverOptions | None = None,
    ) -> list[Document]:
        """Retrieve the documents closest to a query.

        Args:
            query: The search query.
            options: Per-call overrides.

        Returns:
            Scored documents, best match first.

        Raises:
            EmbeddingCountMismatchError: The provider did not return exactly
                one vector.
            EmbeddingError: Embedding the query failed.
            VectorStoreError: The search failed.
            SchemaMismatchError: The result lacks the ID or content field.
            EmptyResultError: The search returned no rows.
        """
        effective = self.resolve_options(options)

        self._callbacks.on_start(
            RetrieverCallbackInput(
                query=query,
                top_k=effective.top_k,
                filter=try_dump_json(effective.filter) if effective.filter else "",
                score_threshold=effective.score_threshold,
            )
        )

        try:
            docs = await self._retrieve(query, effective)
        except Exception as e:
            self._callbacks.on_error(e)
            raise

        self._callbacks.on_end(RetrieverCallbackOutput(docs=docs))
        return docs

    async def _retrieve(self, query: str, effective: _EffectiveOptions) -> list[Document]:
        adapter = EmbeddingAdapter(effective.embedding, self._config.vector_dim)
        vectors = await adapter.embed([query])

        result = await self._search(vectors[0].tolist(), effective)
        docs = decode_search_result(result)

        kept = [
            doc.with_filter(effective.filter) if effective.filter else doc
            for doc in docs
            if self._passes_threshold(doc.score, effective.score_threshold)
        ]

        logger.debug(
            f"Retrieved {len(kept)} documents for query",
            extra={
                "query_length": len(query),
                "top_k": effective.top_k,
                "results_count": len(docs),
                "after_threshold": len(kept),
            },
        )
        return kept

    async def _search(self, vector: list[float], effective: _EffectiveOptions) -> SearchResult:
        try:
            results = await self._store.search(
                collection=self._config.collection,
                vectors=[vector],
                vector_field=effective.index,
                output_fields=OUTPUT_FIELDS,
                top_k=effective.top_k,
                partitions=[effective.partition],
                filters=effective.filter,
                search_params=self._config.search_params,
            )
        except VectorStoreError:
            raise
        except Exception as e:
            raise VectorStoreError(
                f"search failed: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": self._config.collection, "error": str(e)},
            ) from e

        if len(results) != 1:
            raise SchemaMismatchError(
                f"expected one result set per query vector, got {len(results)}",
                details={"results": len(results)},
            )
        return results[0]

    def _passes_threshold(self, score: float | None, threshold: float | None) -> bool:
        if threshold is None or score is None:
            return True
        if self._config.metric.higher_is_better:
            return score >= threshold
        return score <= threshold
