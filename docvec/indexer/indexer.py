"""Batch indexing pipeline.

Documents are split into batches. Each batch is embedded, encoded into
columns and upserted before the next batch starts. A failing batch aborts
the call; batches written before it stay written.
"""

from collections.abc import Sequence
from enum import Enum
from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from docvec.batching import chunk
from docvec.config import EmbeddingSettings, Settings, get_settings
from docvec.documents.models import Document
from docvec.embeddings.adapter import EmbeddingAdapter, EmbeddingConfig, resolve_embedder
from docvec.embeddings.service import Embedder
from docvec.exceptions import DocVecError, ErrorCode, ValidationError, VectorStoreError
from docvec.logging_config import get_logger
from docvec.observability.callbacks import (
    CallbackHandler,
    CallbackManager,
    IndexerCallbackInput,
    IndexerCallbackOutput,
    make_run_info,
)
from docvec.observability.metrics import track_indexed_batch
from docvec.vectorstore.codec import encode_documents
from docvec.vectorstore.models import CollectionSchema, ColumnarRecord, MetricType
from docvec.vectorstore.service import QdrantVectorStore, VectorStore

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_VECTOR_DIM = 1024
DEFAULT_ID_MAX_LEN = 64
DEFAULT_PARTITION = "default"


class IndexingStage(str, Enum):
    """Progress of a single batch."""

    IDLE = "idle"
    EMBEDDING = "embedding"
    ENCODING = "encoding"
    WRITING = "writing"
    DONE = "done"


class IndexerConfig(BaseModel):
    """Resolved, immutable indexer configuration.

    Unset or zero-valued sizes fall back to their defaults.
    """

    model_config = ConfigDict(frozen=True)

    collection: str = Field(min_length=1, description="Target collection")
    partition: str = Field(default=DEFAULT_PARTITION, description="Target partition")
    batch_size: int = Field(
        default=DEFAULT_BATCH_SIZE, gt=0, description="Documents per upsert"
    )
    vector_dim: int = Field(
        default=DEFAULT_VECTOR_DIM, gt=0, description="Vector dimensionality"
    )
    id_max_len: int = Field(
        default=DEFAULT_ID_MAX_LEN, gt=0, description="Maximum document ID length"
    )
    metric: MetricType = Field(
        default=MetricType.L2, description="Metric used when creating the collection"
    )
    embedding: EmbeddingConfig = Field(description="Embedding source")

    @field_validator("batch_size", "vector_dim", "id_max_len", mode="before")
    @classmethod
    def _zero_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or value == 0:
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("partition", mode="before")
    @classmethod
    def _empty_partition(cls, value: Any) -> Any:
        return value or DEFAULT_PARTITION

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        embedding: Embedder | None = None,
        **overrides: Any,
    ) -> "IndexerConfig":
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
            "partition": settings.indexer.partition,
            "batch_size": settings.indexer.batch_size,
            "vector_dim": settings.indexer.vector_dim,
            "id_max_len": settings.indexer.id_max_len,
            "metric": settings.retriever.metric,
            "embedding": embedding_config,
        }
        values.update(overrides)
        return cls(**values)


class IndexerOptions(BaseModel):
    """Per-call overrides for ``Indexer.store``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    embedding: Embedder | None = Field(
        default=None,
        description="Embedder used instead of the configured one",
    )


class Indexer:
    """Embeds documents and upserts them into a collection in batches."""

    def __init__(
        self,
        config: IndexerConfig,
        store: VectorStore,
        callbacks: Sequence[CallbackHandler] | None = None,
        embedding_settings: EmbeddingSettings | None = None,
    ) -> None:
        """Initialize the indexer.

        Args:
            config: Resolved indexer configuration.
            store: Vector store to write to.
            callbacks: Lifecycle handlers fired around every call.
            embedding_settings: Settings for the built-in embedder.

        Raises:
            ConfigurationError: The embedding source is misconfigured.
        """
        self._config = config
        self._store = store
        self._embedder = resolve_embedder(config.embedding, embedding_settings)
        self._owns_embedder = config.embedding.embedding is None
        self._callbacks = CallbackManager(make_run_info(store, "Indexer"), callbacks)

    @classmethod
    async def create(
        cls,
        config: IndexerConfig,
        store: VectorStore | None = None,
        callbacks: Sequence[CallbackHandler] | None = None,
        embedding_settings: EmbeddingSettings | None = None,
    ) -> "Indexer":
        """Create an indexer and make sure its collection exists."""
        indexer = cls(
            config,
            store or QdrantVectorStore(),
            callbacks=callbacks,
            embedding_settings=embedding_settings,
        )
        await indexer.ensure_collection()
        return indexer

    @property
    def config(self) -> IndexerConfig:
        return self._config

    @property
    def schema(self) -> CollectionSchema:
        return CollectionSchema(
            name=self._config.collection,
            vector_dim=self._config.vector_dim,
            id_max_len=self._config.id_max_len,
            metric=self._config.metric,
            description="docvec document collection",
        )

    async def close(self) -> None:
        """Close the embedder if it was built from settings."""
        if self._owns_embedder:
            await self._embedder.close()

    async def ensure_collection(self) -> bool:
        """Create the collection if it does not exist.

        Returns:
            True if the collection was created.
        """
        if await self._store.has_collection(self._config.collection):
            return False

        await self._store.create_collection(self.schema)
        return True

    async def store(
        self,
        docs: Sequence[Document],
        options: IndexerOptions | None = None,
    ) -> list[str]:
        """Embed and upsert documents.

        Args:
            docs: Documents to index.
            options: Per-call overrides.

        Returns:
            IDs of all documents, in input order.

        Raises:
            EmbeddingError: Embedding a batch failed.
            ValidationError: A document ID is too long.
            VectorStoreError: Writing a batch failed.
        """
        options = options or IndexerOptions()
        adapter = EmbeddingAdapter(
            options.embedding or self._embedder,
            self._config.vector_dim,
        )

        self._callbacks.on_start(IndexerCallbackInput(docs=list(docs)))

        try:
            ids: list[str] = []
            for batch_no, batch in enumerate(chunk(docs, self._config.batch_size)):
                await self._store_batch(batch_no, batch, adapter)
                ids.extend(doc.id for doc in batch)
        except Exception as e:
            self._callbacks.on_error(e)
            raise

        self._callbacks.on_end(IndexerCallbackOutput(ids=ids))

        logger.info(
            f"Stored {len(ids)} documents",
            extra={"collection": self._config.collection},
        )
        return ids

    async def _store_batch(
        self,
        batch_no: int,
        batch: list[Document],
        adapter: EmbeddingAdapter,
    ) -> None:
        stage = IndexingStage.IDLE
        try:
            stage = IndexingStage.EMBEDDING
            vectors = await adapter.embed([doc.content for doc in batch])
            stage = IndexingStage.ENCODING
            record = self._encode(batch, vectors)
            stage = IndexingStage.WRITING
            await self._upsert(record)
            stage = IndexingStage.DONE
        except DocVecError as e:
            e.details.setdefault("batch", batch_no)
            e.details.setdefault("stage", stage.value)
            raise
        finally:
            logger.debug(
                f"Batch {batch_no} reached stage {stage.value}",
                extra={"batch_size": len(batch)},
            )

        track_indexed_batch(self._config.collection, record.row_count)

    def _encode(self, batch: list[Document], vectors: np.ndarray) -> ColumnarRecord:
        try:
            return encode_documents(
                batch,
                vectors,
                dim=self._config.vector_dim,
                id_max_len=self._config.id_max_len,
            )
        except ValueError as e:
            raise ValidationError(
                f"convert_documents failed: {e}",
                details={"error": str(e)},
            ) from e

    async def _upsert(self, record: ColumnarRecord) -> None:
        try:
            await self._store.upsert(
                self._config.collection,
                record,
                partition=self._config.partition,
            )
        except VectorStoreError:
            raise
        except Exception as e:
            raise VectorStoreError(
                f"upsert failed: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": self._config.collection, "error": str(e)},
            ) from e
