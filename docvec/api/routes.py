"""API routes for indexing and retrieval."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from docvec.documents.models import Document
from docvec.indexer.indexer import Indexer
from docvec.logging_config import get_logger
from docvec.retrieval.retriever import Retriever, RetrieverOptions

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Documents"])


class DocumentIn(BaseModel):
    """A document submitted for indexing."""

    id: str = Field(min_length=1, description="Document identifier")
    content: str = Field(description="Text content")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional metadata",
    )


class StoreRequest(BaseModel):
    """Request body for document indexing."""

    documents: list[DocumentIn] = Field(min_length=1, description="Documents to index")


class StoreResponse(BaseModel):
    """Response from document indexing."""

    ids: list[str] = Field(description="IDs of stored documents, in input order")


class RetrieveRequest(BaseModel):
    """Request body for retrieval."""

    query: str = Field(min_length=1, description="Query text")
    top_k: int | None = Field(default=None, ge=1, description="Maximum results")
    score_threshold: float | None = Field(default=None, description="Score threshold")
    partition: str | None = Field(default=None, description="Partition to search")
    filter: dict[str, Any] | None = Field(default=None, description="Scalar filter")


class DocumentOut(BaseModel):
    """A retrieved document."""

    id: str
    content: str
    score: float | None
    metadata: dict[str, Any]


class RetrieveResponse(BaseModel):
    """Response from retrieval."""

    documents: list[DocumentOut] = Field(description="Documents, best match first")


def _unavailable(component: str) -> HTTPException:
    logger.warning(f"{component} not configured - rejecting request")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={
            "error": f"{component} not configured",
            "message": "The pipeline requires an embedding service and vector store",
        },
    )


def get_indexer(request: Request) -> Indexer:
    """Dependency returning the application's indexer."""
    indexer: Indexer | None = getattr(request.app.state, "indexer", None)
    if indexer is None:
        raise _unavailable("Indexer")
    return indexer


def get_retriever(request: Request) -> Retriever:
    """Dependency returning the application's retriever."""
    retriever: Retriever | None = getattr(request.app.state, "retriever", None)
    if retriever is None:
        raise _unavailable("Retriever")
    return retriever


@router.post("/documents", response_model=StoreResponse)
async def store_endpoint(
    request: StoreRequest,
    indexer: Indexer = Depends(get_indexer),
) -> StoreResponse:
    """Embed and upsert documents."""
    docs = [
        Document(id=d.id, content=d.content, metadata=d.metadata)
        for d in request.documents
    ]
    ids = await indexer.store(docs)
    return StoreResponse(ids=ids)


@router.post("/retrieve", response_model=RetrieveResponse)
async def retrieve_endpoint(
    request: RetrieveRequest,
    retriever: Retriever = Depends(get_retriever),
) -> RetrieveResponse:
    """Retrieve documents closest to a query."""
    docs = await retriever.retrieve(
        request.query,
        RetrieverOptions(
            top_k=request.top_k,
            score_threshold=request.score_threshold,
            partition=request.partition,
            filter=request.filter,
        ),
    )
    return RetrieveResponse(documents=[document_to_response(d) for d in docs])


def document_to_response(doc: Document) -> DocumentOut:
    """Convert an internal Document to the API representation."""
    return DocumentOut(
        id=doc.id,
        content=doc.content,
        score=doc.score,
        metadata=doc.metadata,
    )
