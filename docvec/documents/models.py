"""Document data models."""

from typing import Any

from pydantic import BaseModel, Field

# Metadata key holding the scalar filter a retrieved document was matched with.
FILTER_METADATA_KEY = "_filter"


class Document(BaseModel):
    """A text document exchanged with the pipelines.

    Attributes:
        id: Identifier, unique within a collection.
        content: Text content that gets embedded.
        metadata: Caller-supplied metadata. Not persisted by the indexer.
        score: Relevance score, set only on retrieval and never persisted.
    """

    id: str = Field(description="Document identifier")
    content: str = Field(description="Text content of the document")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional metadata",
    )
    score: float | None = Field(
        default=None,
        description="Relevance score attached by retrieval",
    )

    def with_filter(self, filter_: dict[str, Any] | None) -> "Document":
        """Return a copy with the scalar filter recorded in its metadata."""
        metadata = {**self.metadata, FILTER_METADATA_KEY: filter_}
        return self.model_copy(update={"metadata": metadata})
