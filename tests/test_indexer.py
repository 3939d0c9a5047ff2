"""Tests for the indexing pipeline."""

from typing import Any
from unittest.mock import AsyncMock

import numpy as np
import pydantic
import pytest

from docvec.config import EmbeddingSettings
from docvec.documents.models import Document
from docvec.embeddings.adapter import EmbeddingConfig
from docvec.embeddings.service import HTTPEmbedder
from docvec.exceptions import (
    EmbeddingConfigConflictError,
    EmbeddingConfigMissingError,
    EmbeddingCountMismatchError,
    ErrorCode,
    ValidationError,
    VectorStoreError,
)
from docvec.indexer import Indexer, IndexerConfig, IndexerOptions, IndexingStage
from docvec.observability.callbacks import (
    CallbackHandler,
    IndexerCallbackInput,
    IndexerCallbackOutput,
    RunInfo,
)
from docvec.vectorstore.models import (
    FIELD_CONTENT,
    FIELD_ID,
    FIELD_VECTOR,
    CollectionSchema,
    ColumnarRecord,
    SearchResult,
)
from docvec.vectorstore.service import QdrantVectorStore, VectorStore
from tests.conftest import DIM, FakeEmbedder


class RecordingStore(VectorStore):
    """In-process store recording every call.

    Args:
        fail_on_call: 1-based upsert call that raises.
        error: Exception raised by the failing call.
    """

    def __init__(self, fail_on_call: int | None = None, error: Exception | None = None) -> None:
        self.collections: dict[str, CollectionSchema] = {}
        self.upserts: list[tuple[str, ColumnarRecord, str | None]] = []
        self.fail_on_call = fail_on_call
        self.error = error or RuntimeError("disk full")

    async def has_collection(self, name: str) -> bool:
        return name in self.collections

    async def create_collection(self, schema: CollectionSchema) -> None:
        self.collections[schema.name] = schema

    async def upsert(
        self,
        collection: str,
        record: ColumnarRecord,
        partition: str | None = None,
    ) -> int:
        if self.fail_on_call == len(self.upserts) + 1:
            raise self.error
        self.upserts.append((collection, record, partition))
        return record.row_count

    async def search(self, *args: Any, **kwargs: Any) -> list[SearchResult]:
        return []


class RecordingHandler(CallbackHandler):
    """Collects lifecycle events."""

    def __init__(self) -> None:
        self.events: list[tuple[str, RunInfo, Any]] = []

    def on_start(self, run_info: RunInfo, payload: Any) -> None:
        self.events.append(("start", run_info, payload))

    def on_end(self, run_info: RunInfo, payload: Any) -> None:
        self.events.append(("end", run_info, payload))

    def on_error(self, run_info: RunInfo, error: BaseException) -> None:
        self.events.append(("error", run_info, error))


def _docs(count: int) -> list[Document]:
    return [Document(id=f"doc-{i}", content=f"text number {i}") for i in range(count)]


def _config(embedder: FakeEmbedder, **overrides: Any) -> IndexerConfig:
    values: dict[str, Any] = {
        "collection": "test",
        "vector_dim": DIM,
        "embedding": EmbeddingConfig(embedding=embedder),
    }
    values.update(overrides)
    return IndexerConfig(**values)


class TestIndexerConfig:
    """Tests for IndexerConfig."""

    def test_defaults(self, embedder: FakeEmbedder) -> None:
        """Unset fields fall back to the defaults."""
        config = IndexerConfig(collection="c", embedding=EmbeddingConfig(embedding=embedder))

        assert config.partition == "default"
        assert config.batch_size == 5
        assert config.vector_dim == 1024
        assert config.id_max_len == 64

    def test_zero_values_mean_default(self, embedder: FakeEmbedder) -> None:
        """Zero or empty values fall back to the defaults."""
        config = _config(embedder, batch_size=0, id_max_len=None, partition="")

        assert config.batch_size == 5
        assert config.id_max_len == 64
        assert config.partition == "default"

    def test_negative_batch_size_rejected(self, embedder: FakeEmbedder) -> None:
        """Negative sizes are invalid."""
        with pytest.raises(pydantic.ValidationError):
            _config(embedder, batch_size=-1)

    def test_empty_collection_rejected(self, embedder: FakeEmbedder) -> None:
        """A collection name is required."""
        with pytest.raises(pydantic.ValidationError):
            _config(embedder, collection="")

    def test_config_is_frozen(self, embedder: FakeEmbedder) -> None:
        """Config cannot be mutated after creation."""
        config = _config(embedder)
        with pytest.raises(pydantic.ValidationError):
            config.batch_size = 10  # type: ignore[misc]

    def test_from_settings_with_overrides(self, embedder: FakeEmbedder) -> None:
        """Overrides win over settings."""
        from docvec.config import Settings

        settings = Settings()
        config = IndexerConfig.from_settings(
            settings, embedding=embedder, collection="other", batch_size=7
        )

        assert config.collection == "other"
        assert config.batch_size == 7
        assert config.vector_dim == settings.indexer.vector_dim
        assert config.embedding.embedding is embedder


class TestIndexerConstruction:
    """Tests for indexer construction and collection setup."""

    def test_both_embedding_sources_rejected(self, embedder: FakeEmbedder) -> None:
        """Built-in and custom embedder are mutually exclusive."""
        config = _config(embedder, embedding=EmbeddingConfig(use_builtin=True, embedding=embedder))

        with pytest.raises(EmbeddingConfigConflictError) as exc_info:
            Indexer(config, RecordingStore())

        assert exc_info.value.code == ErrorCode.EMBEDDING_CONFIG_CONFLICT

    def test_no_embedding_source_rejected(self, embedder: FakeEmbedder) -> None:
        """One embedding source is required."""
        config = _config(embedder, embedding=EmbeddingConfig())

        with pytest.raises(EmbeddingConfigMissingError):
            Indexer(config, RecordingStore())

    async def test_create_makes_collection(self, embedder: FakeEmbedder) -> None:
        """create() builds the collection from the config."""
        store = RecordingStore()

        await Indexer.create(_config(embedder, id_max_len=32), store=store)

        schema = store.collections["test"]
        assert schema.vector_dim == DIM
        assert schema.id_max_len == 32

    async def test_ensure_collection_is_idempotent(self, embedder: FakeEmbedder) -> None:
        """An existing collection is left alone."""
        indexer = Indexer(_config(embedder), RecordingStore())

        assert await indexer.ensure_collection() is True
        assert await indexer.ensure_collection() is False


class TestIndexerClose:
    """Tests for releasing the embedder."""

    async def test_closes_builtin_embedder(self, embedder: FakeEmbedder) -> None:
        """The HTTP client of a built-in embedder is closed."""
        config = _config(embedder, embedding=EmbeddingConfig(use_builtin=True))
        indexer = Indexer(config, RecordingStore(), embedding_settings=EmbeddingSettings())
        built = indexer._embedder
        assert isinstance(built, HTTPEmbedder)
        client = await built._get_client()

        await indexer.close()

        assert client.is_closed

    async def test_leaves_custom_embedder_open(self, embedder: FakeEmbedder) -> None:
        """A caller supplied embedder is not closed."""
        embedder.close = AsyncMock()  # type: ignore[method-assign]
        indexer = Indexer(_config(embedder), RecordingStore())

        await indexer.close()

        embedder.close.assert_not_called()


class TestIndexerStore:
    """Tests for Indexer.store."""

    async def test_batches_in_order(self, embedder: FakeEmbedder) -> None:
        """Documents are written in consecutive batches of batch_size."""
        store = RecordingStore()
        indexer = Indexer(_config(embedder, batch_size=5), store)
        docs = _docs(12)

        ids = await indexer.store(docs)

        assert ids == [doc.id for doc in docs]
        assert [call[1].row_count for call in store.upserts] == [5, 5, 2]
        assert store.upserts[2][1].ids == ["doc-10", "doc-11"]
        assert [len(call) for call in embedder.calls] == [5, 5, 2]

    async def test_rows_are_aligned(self, embedder: FakeEmbedder) -> None:
        """Each written row holds the document and its own vector."""
        store = RecordingStore()
        docs = _docs(3)

        await Indexer(_config(embedder), store).store(docs)

        _, record, partition = store.upserts[0]
        assert partition == "default"
        assert record.contents == [doc.content for doc in docs]
        assert record.vectors.dtype == np.float32
        for row, doc in enumerate(docs):
            assert record.vectors[row].tolist() == pytest.approx(embedder.vector_for(doc.content))

    async def test_writes_to_configured_partition(self, embedder: FakeEmbedder) -> None:
        """Rows go to the configured partition."""
        store = RecordingStore()

        await Indexer(_config(embedder, partition="archive"), store).store(_docs(1))

        assert store.upserts[0][2] == "archive"

    async def test_empty_input(self, embedder: FakeEmbedder) -> None:
        """No documents means no writes."""
        store = RecordingStore()

        assert await Indexer(_config(embedder), store).store([]) == []
        assert store.upserts == []

    async def test_count_mismatch_writes_nothing(
        self,
        make_embedder: type[FakeEmbedder],
    ) -> None:
        """A provider dropping a vector fails before the batch is written."""
        store = RecordingStore()
        indexer = Indexer(_config(make_embedder(drop=1)), store)

        with pytest.raises(EmbeddingCountMismatchError) as exc_info:
            await indexer.store(_docs(3))

        assert store.upserts == []
        assert exc_info.value.details["expected"] == 3
        assert exc_info.value.details["got"] == 2
        assert exc_info.value.details["stage"] == IndexingStage.EMBEDDING.value

    async def test_failed_batch_keeps_earlier_batches(self, embedder: FakeEmbedder) -> None:
        """Batches before the failing one stay written."""
        store = RecordingStore(fail_on_call=2)
        indexer = Indexer(_config(embedder, batch_size=2), store)

        with pytest.raises(VectorStoreError, match="upsert failed: disk full") as exc_info:
            await indexer.store(_docs(5))

        assert len(store.upserts) == 1
        assert store.upserts[0][1].ids == ["doc-0", "doc-1"]
        assert exc_info.value.details["batch"] == 1
        assert exc_info.value.details["stage"] == IndexingStage.WRITING.value

    async def test_store_errors_pass_through(self, embedder: FakeEmbedder) -> None:
        """Vector store errors keep their code."""
        error = VectorStoreError("gone", code=ErrorCode.COLLECTION_NOT_FOUND)
        store = RecordingStore(fail_on_call=1, error=error)

        with pytest.raises(VectorStoreError) as exc_info:
            await Indexer(_config(embedder), store).store(_docs(1))

        assert exc_info.value is error
        assert exc_info.value.code == ErrorCode.COLLECTION_NOT_FOUND

    async def test_id_too_long(self, embedder: FakeEmbedder) -> None:
        """Overlong IDs fail while encoding."""
        store = RecordingStore()
        indexer = Indexer(_config(embedder, id_max_len=4), store)

        with pytest.raises(ValidationError) as exc_info:
            await indexer.store([Document(id="much-too-long", content="x")])

        assert exc_info.value.details["stage"] == IndexingStage.ENCODING.value
        assert store.upserts == []

    async def test_per_call_embedder(
        self,
        embedder: FakeEmbedder,
        make_embedder: type[FakeEmbedder],
    ) -> None:
        """An embedder passed in options replaces the configured one."""
        override = make_embedder()
        indexer = Indexer(_config(embedder), RecordingStore())

        await indexer.store(_docs(2), IndexerOptions(embedding=override))

        assert embedder.calls == []
        assert len(override.calls) == 1


class TestIndexerCallbacks:
    """Tests for lifecycle callbacks."""

    async def test_start_and_end(self, embedder: FakeEmbedder) -> None:
        """Successful calls fire start then end."""
        handler = RecordingHandler()
        indexer = Indexer(_config(embedder), RecordingStore(), callbacks=[handler])

        await indexer.store(_docs(2))

        kinds = [event[0] for event in handler.events]
        assert kinds == ["start", "end"]
        run_info = handler.events[0][1]
        assert run_info.component == "Indexer"
        assert run_info.name == "RecordingStoreIndexer"
        assert isinstance(handler.events[0][2], IndexerCallbackInput)
        assert len(handler.events[0][2].docs) == 2
        assert isinstance(handler.events[1][2], IndexerCallbackOutput)
        assert handler.events[1][2].ids == ["doc-0", "doc-1"]

    async def test_error(self, make_embedder: type[FakeEmbedder]) -> None:
        """Failed calls fire start then error with the raised exception."""
        handler = RecordingHandler()
        indexer = Indexer(
            _config(make_embedder(drop=1)), RecordingStore(), callbacks=[handler]
        )

        with pytest.raises(EmbeddingCountMismatchError) as exc_info:
            await indexer.store(_docs(1))

        assert [event[0] for event in handler.events] == ["start", "error"]
        assert handler.events[1][2] is exc_info.value


class TestIndexerWithQdrant:
    """End to end against an in-memory Qdrant."""

    async def test_store_then_search(
        self,
        embedder: FakeEmbedder,
        qdrant_store: QdrantVectorStore,
    ) -> None:
        """Indexed documents are searchable by their own vector."""
        indexer = await Indexer.create(_config(embedder, batch_size=2), store=qdrant_store)
        docs = _docs(5)

        await indexer.store(docs)

        results = await qdrant_store.search(
            "test",
            vectors=[embedder.vector_for(docs[3].content)],
            vector_field=FIELD_VECTOR,
            output_fields=[FIELD_ID, FIELD_CONTENT],
            top_k=1,
            partitions=["default"],
        )
        assert results[0].column(FIELD_ID).values == ["doc-3"]
        assert results[0].scores[0] == pytest.approx(0.0, abs=1e-5)

    async def test_reindex_replaces_rows(
        self,
        embedder: FakeEmbedder,
        qdrant_store: QdrantVectorStore,
    ) -> None:
        """Storing the same IDs twice keeps one row per ID."""
        indexer = await Indexer.create(_config(embedder), store=qdrant_store)

        await indexer.store(_docs(3))
        await indexer.store(_docs(3))

        client = await qdrant_store._get_client()
        assert (await client.count("test", exact=True)).count == 3
