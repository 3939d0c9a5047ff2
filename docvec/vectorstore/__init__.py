"""Vector store module."""

from docvec.vectorstore.codec import decode_search_result, encode_documents
from docvec.vectorstore.models import (
    FIELD_CONTENT,
    FIELD_ID,
    FIELD_PARTITION,
    FIELD_SPARSE_VECTOR,
    FIELD_VECTOR,
    CollectionSchema,
    Column,
    ColumnarRecord,
    MetricType,
    SearchResult,
)
from docvec.vectorstore.service import QdrantVectorStore, VectorStore, point_id

__all__ = [
    "FIELD_CONTENT",
    "FIELD_ID",
    "FIELD_PARTITION",
    "FIELD_SPARSE_VECTOR",
    "FIELD_VECTOR",
    "CollectionSchema",
    "Column",
    "ColumnarRecord",
    "MetricType",
    "QdrantVectorStore",
    "SearchResult",
    "VectorStore",
    "decode_search_result",
    "encode_documents",
    "point_id",
]
