"""Vector store data models.

Records travel to the store in columnar form: row ``i`` of every column
describes one document.
"""

from enum import Enum
from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

# Fixed schema field names shared with the store.
FIELD_ID = "ID"
FIELD_CONTENT = "content"
FIELD_VECTOR = "vector"
FIELD_SPARSE_VECTOR = "sparse_vector"  # reserved for providers emitting sparse vectors
FIELD_PARTITION = "partition"

CONTENT_MAX_LEN = 65535


class MetricType(str, Enum):
    """Distance metric used to rank vectors."""

    L2 = "L2"
    IP = "IP"
    COSINE = "COSINE"

    @property
    def higher_is_better(self) -> bool:
        """Whether a larger score means a closer match.

        L2 scores are distances, so smaller is better.
        """
        return self is not MetricType.L2


class CollectionSchema(BaseModel):
    """Schema of a document collection.

    Attributes:
        name: Collection name.
        vector_dim: Dimensionality of the dense vector field.
        id_max_len: Maximum length of the ID field.
        metric: Distance metric of the vector field.
        description: Free-form description.
    """

    name: str = Field(description="Collection name")
    vector_dim: int = Field(gt=0, description="Dense vector dimensionality")
    id_max_len: int = Field(gt=0, description="Maximum ID length")
    metric: MetricType = Field(default=MetricType.L2, description="Distance metric")
    description: str = Field(default="", description="Collection description")


class ColumnarRecord(BaseModel):
    """Row-aligned ID, content and vector columns for one write batch.

    Attributes:
        ids: ID column.
        contents: Content column.
        vectors: Float32 matrix of shape ``(rows, dim)``.
        dim: Configured vector dimensionality.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ids: list[str] = Field(description="ID column")
    contents: list[str] = Field(description="Content column")
    vectors: np.ndarray = Field(description="Vector column")
    dim: int = Field(gt=0, description="Vector dimensionality")

    def model_post_init(self, __context: object) -> None:
        """Validate that all columns have the same row count and width."""
        if len(self.ids) != len(self.contents):
            raise ValueError(
                f"ids ({len(self.ids)}) and contents ({len(self.contents)}) "
                "have different row counts"
            )
        if self.vectors.ndim != 2 or self.vectors.shape != (len(self.ids), self.dim):
            raise ValueError(
                f"vectors shape {self.vectors.shape} does not match "
                f"({len(self.ids)}, {self.dim})"
            )

    @property
    def row_count(self) -> int:
        return len(self.ids)


class Column(BaseModel):
    """One named column of a search result."""

    name: str = Field(description="Field name")
    values: list[Any] = Field(default_factory=list, description="Column values")


class SearchResult(BaseModel):
    """Results for one query vector, best match first.

    Attributes:
        result_count: Number of rows.
        fields: Projected columns, row-aligned with ``scores``.
        scores: Per-row score in the collection's metric.
    """

    result_count: int = Field(ge=0, description="Number of rows")
    fields: list[Column] = Field(default_factory=list, description="Result columns")
    scores: list[float] = Field(default_factory=list, description="Row scores")

    def column(self, name: str) -> Column | None:
        """Get a column by field name."""
        for col in self.fields:
            if col.name == name:
                return col
        return None

    @property
    def field_names(self) -> list[str]:
        return [col.name for col in self.fields]
