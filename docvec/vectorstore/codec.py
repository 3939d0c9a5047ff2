"""Conversion between documents and the store's columnar shapes."""

from collections.abc import Sequence

import numpy as np

from docvec.documents.models import Document
from docvec.exceptions import (
    EmptyResultError,
    FieldNotFoundError,
    SchemaMismatchError,
    ValidationError,
)
from docvec.vectorstore.models import (
    CONTENT_MAX_LEN,
    FIELD_CONTENT,
    FIELD_ID,
    Column,
    ColumnarRecord,
    SearchResult,
)


def encode_documents(
    docs: Sequence[Document],
    vectors: np.ndarray,
    dim: int,
    id_max_len: int | None = None,
) -> ColumnarRecord:
    """Build row-aligned ID, content and vector columns.

    Args:
        docs: Documents of one batch.
        vectors: Embeddings of ``docs``, one row per document.
        dim: Configured vector dimensionality.
        id_max_len: Longest ID the collection accepts.

    Returns:
        Columnar record for the batch.

    Raises:
        ValidationError: An ID is longer than ``id_max_len``, or a content
            is longer than the content field allows.
        ValueError: Column lengths or vector width disagree.
    """
    ids = [doc.id for doc in docs]
    contents = [doc.content for doc in docs]

    if id_max_len is not None:
        too_long = [doc_id for doc_id in ids if len(doc_id) > id_max_len]
        if too_long:
            raise ValidationError(
                f"Document ID exceeds max length {id_max_len}",
                details={"ids": too_long, "id_max_len": id_max_len},
            )

    too_large = [doc.id for doc in docs if len(doc.content) > CONTENT_MAX_LEN]
    if too_large:
        raise ValidationError(
            f"Document content exceeds max length {CONTENT_MAX_LEN}",
            details={"ids": too_large, "content_max_len": CONTENT_MAX_LEN},
        )

    return ColumnarRecord(ids=ids, contents=contents, vectors=vectors, dim=dim)


def decode_search_result(result: SearchResult) -> list[Document]:
    """Rebuild scored documents from one query's search result.

    Every row becomes a document, in the store's ranking order.

    Raises:
        FieldNotFoundError: The ID or content column is missing.
        SchemaMismatchError: A column holds non-string values or is
            shorter than the row count.
        EmptyResultError: The result has no rows.
    """
    id_column = _string_column(result, FIELD_ID)
    content_column = _string_column(result, FIELD_CONTENT)

    if result.result_count == 0:
        raise EmptyResultError(details={"fields": result.field_names})

    rows = result.result_count
    for col in (id_column, content_column):
        if len(col.values) < rows:
            raise SchemaMismatchError(
                f"Column {col.name} has {len(col.values)} values, expected {rows}",
                details={"field": col.name, "rows": rows},
            )
    if len(result.scores) < rows:
        raise SchemaMismatchError(
            f"Result has {len(result.scores)} scores, expected {rows}",
            details={"rows": rows},
        )

    return [
        Document(
            id=id_column.values[idx],
            content=content_column.values[idx],
            score=float(result.scores[idx]),
        )
        for idx in range(rows)
    ]


def _string_column(result: SearchResult, name: str) -> Column:
    col = result.column(name)
    if col is None:
        raise FieldNotFoundError(name, result.field_names)
    if not all(isinstance(value, str) for value in col.values):
        raise SchemaMismatchError(
            f"Column {name} is not a string column",
            details={"field": name},
        )
    return col
