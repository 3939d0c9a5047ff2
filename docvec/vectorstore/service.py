"""Vector store interface and Qdrant implementation."""

from abc import ABC, abstractmethod
from typing import Any
from uuid import NAMESPACE_URL, uuid5

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchAny,
    MatchValue,
    PointStruct,
    SearchParams,
    VectorParams,
)

from docvec.config import QdrantSettings, get_settings
from docvec.exceptions import ErrorCode, VectorStoreError
from docvec.logging_config import get_logger
from docvec.vectorstore.models import (
    FIELD_CONTENT,
    FIELD_ID,
    FIELD_PARTITION,
    FIELD_VECTOR,
    CollectionSchema,
    Column,
    ColumnarRecord,
    MetricType,
    SearchResult,
)

logger = get_logger(__name__)

_POINT_ID_NAMESPACE = uuid5(NAMESPACE_URL, "docvec/document")

_DISTANCES = {
    MetricType.L2: Distance.EUCLID,
    MetricType.IP: Distance.DOT,
    MetricType.COSINE: Distance.COSINE,
}


def point_id(document_id: str) -> str:
    """Map a document ID to a stable Qdrant point ID.

    Qdrant only accepts UUIDs and unsigned integers, so document IDs are
    hashed into a UUIDv5. The same document ID always maps to the same
    point, which keeps upserts idempotent.
    """
    return str(uuid5(_POINT_ID_NAMESPACE, document_id))


class VectorStore(ABC):
    """Abstract base class for vector stores.

    Defines the interface for storing and searching columnar records.
    """

    @abstractmethod
    async def has_collection(self, name: str) -> bool:
        """Check if a collection exists.

        Args:
            name: Collection name.

        Returns:
            True if collection exists.
        """
        ...

    @abstractmethod
    async def create_collection(self, schema: CollectionSchema) -> None:
        """Create a new collection.

        Args:
            schema: Collection schema.

        Raises:
            VectorStoreError: If creation fails.
        """
        ...

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        record: ColumnarRecord,
        partition: str | None = None,
    ) -> int:
        """Insert or replace rows keyed by ID.

        Args:
            collection: Collection name.
            record: Row-aligned columns to write.
            partition: Partition to write into.

        Returns:
            Number of rows written.

        Raises:
            VectorStoreError: If upsert fails.
        """
        ...

    @abstractmethod
    async def search(
        self,
        collection: str,
        vectors: list[list[float]],
        vector_field: str,
        output_fields: list[str],
        top_k: int,
        partitions: list[str] | None = None,
        filters: dict[str, Any] | None = None,
        search_params: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        """Search for nearest neighbors of each query vector.

        Args:
            collection: Collection name.
            vectors: Query vectors.
            vector_field: Vector field to search.
            output_fields: Fields to project into the result.
            top_k: Maximum rows per query vector.
            partitions: Restrict the search to these partitions.
            filters: Scalar equality filters on stored fields.
            search_params: Backend specific search parameters.

        Returns:
            One result per query vector, in query order.

        Raises:
            VectorStoreError: If search fails.
        """
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None


class QdrantVectorStore(VectorStore):
    """Qdrant vector store implementation.

    The dense vector is stored as a named vector so the searched field can
    be chosen per query. Document IDs, contents and partitions live in the
    point payload.
    """

    def __init__(
        self,
        settings: QdrantSettings | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize Qdrant vector store.

        Args:
            settings: Qdrant configuration.
            client: Existing client (for testing).
        """
        self._settings = settings or get_settings().qdrant
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> AsyncQdrantClient:
        """Get or create Qdrant client."""
        if self._client is None:
            api_key = None
            if self._settings.api_key:
                api_key = self._settings.api_key.get_secret_value()

            self._client = AsyncQdrantClient(
                url=self._settings.url,
                api_key=api_key,
                timeout=self._settings.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    async def has_collection(self, name: str) -> bool:
        """Check if collection exists."""
        client = await self._get_client()
        try:
            return await client.collection_exists(name)
        except Exception as e:
            raise VectorStoreError(
                f"Failed to check collection: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": name, "error": str(e)},
            ) from e

    async def create_collection(self, schema: CollectionSchema) -> None:
        """Create a new Qdrant collection."""
        client = await self._get_client()

        try:
            if await client.collection_exists(schema.name):
                raise VectorStoreError(
                    f"Collection already exists: {schema.name}",
                    code=ErrorCode.COLLECTION_EXISTS,
                    details={"collection": schema.name},
                )

            await client.create_collection(
                collection_name=schema.name,
                vectors_config={
                    FIELD_VECTOR: VectorParams(
                        size=schema.vector_dim,
                        distance=_DISTANCES[schema.metric],
                    ),
                },
            )
            logger.info(
                f"Created collection: {schema.name}",
                extra={"dimensions": schema.vector_dim, "metric": schema.metric.value},
            )

        except VectorStoreError:
            raise
        except Exception as e:
            raise VectorStoreError(
                f"Failed to create collection: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": schema.name, "error": str(e)},
            ) from e

    async def upsert(
        self,
        collection: str,
        record: ColumnarRecord,
        partition: str | None = None,
    ) -> int:
        """Upsert a columnar record, one point per row."""
        if record.row_count == 0:
            return 0

        client = await self._get_client()

        points = []
        for doc_id, content, vector in zip(
            record.ids, record.contents, record.vectors, strict=True
        ):
            payload: dict[str, Any] = {FIELD_ID: doc_id, FIELD_CONTENT: content}
            if partition:
                payload[FIELD_PARTITION] = partition
            points.append(
                PointStruct(
                    id=point_id(doc_id),
                    vector={FIELD_VECTOR: vector.tolist()},
                    payload=payload,
                )
            )

        try:
            await client.upsert(
                collection_name=collection,
                points=points,
                wait=True,
            )
        except Exception as e:
            raise VectorStoreError(
                f"Failed to upsert records: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": collection, "error": str(e)},
            ) from e

        logger.debug(
            f"Upserted {len(points)} records",
            extra={"collection": collection, "partition": partition},
        )
        return len(points)

    async def search(
        self,
        collection: str,
        vectors: list[list[float]],
        vector_field: str,
        output_fields: list[str],
        top_k: int,
        partitions: list[str] | None = None,
        filters: dict[str, Any] | None = None,
        search_params: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        """Search for similar vectors, one query per vector."""
        client = await self._get_client()
        query_filter = _build_filter(partitions, filters)
        params = SearchParams(**search_params) if search_params else None

        results: list[SearchResult] = []
        try:
            for vector in vectors:
                response = await client.query_points(
                    collection_name=collection,
                    query=vector,
                    using=vector_field,
                    limit=top_k,
                    query_filter=query_filter,
                    search_params=params,
                    with_payload=output_fields,
                )
                results.append(_to_search_result(response.points, output_fields))

        except Exception as e:
            raise VectorStoreError(
                f"Failed to search: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": collection, "error": str(e)},
            ) from e

        return results


def _build_filter(
    partitions: list[str] | None,
    filters: dict[str, Any] | None,
) -> Filter | None:
    conditions = []
    if partitions:
        conditions.append(
            FieldCondition(key=FIELD_PARTITION, match=MatchAny(any=list(partitions)))
        )
    for key, value in (filters or {}).items():
        if isinstance(value, list):
            conditions.append(FieldCondition(key=key, match=MatchAny(any=value)))
        else:
            conditions.append(FieldCondition(key=key, match=MatchValue(value=value)))

    if not conditions:
        return None
    return Filter(must=conditions)  # type: ignore[arg-type]


def _to_search_result(points: list[Any], output_fields: list[str]) -> SearchResult:
    """Pivot scored points into a columnar result.

    A field becomes a column only if every row carries it.
    """
    payloads = [dict(point.payload or {}) for point in points]
    columns = [
        Column(name=field, values=[payload[field] for payload in payloads])
        for field in output_fields
        if all(field in payload for payload in payloads)
    ]
    return SearchResult(
        result_count=len(points),
        fields=columns,
        scores=[point.score if point.score is not None else 0.0 for point in points],
    )
