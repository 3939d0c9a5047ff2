"""Prometheus metrics for docvec.

Provides metrics instrumentation for:
- HTTP request latency and counts
- Indexing and retrieval call latency and outcomes
- Upserted batches and documents
- Embedding request latency and batch sizes
- Retrieval result counts and top scores
"""

import time
from collections.abc import Awaitable, Callable
from contextvars import ContextVar

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from docvec.logging_config import get_logger
from docvec.observability.callbacks import (
    CallbackHandler,
    CallbackInput,
    CallbackOutput,
    IndexerCallbackOutput,
    RetrieverCallbackOutput,
    RunInfo,
)

logger = get_logger(__name__)

# HTTP Request Metrics
HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Pipeline Call Metrics
PIPELINE_CALL_DURATION = Histogram(
    "pipeline_call_duration_seconds",
    "Indexing/retrieval call duration in seconds",
    ["component", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

PIPELINE_CALL_TOTAL = Counter(
    "pipeline_calls_total",
    "Total indexing/retrieval calls",
    ["component", "status"],
)

# Indexing Metrics
INDEXED_BATCHES_TOTAL = Counter(
    "indexed_batches_total",
    "Total batches upserted",
    ["collection"],
)

INDEXED_DOCUMENTS_TOTAL = Counter(
    "indexed_documents_total",
    "Total documents upserted",
    ["collection"],
)

# Embedding Metrics
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding request duration in seconds",
    ["embedder", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

EMBEDDING_REQUEST_TOTAL = Counter(
    "embedding_requests_total",
    "Total embedding requests",
    ["embedder", "status"],
)

EMBEDDING_BATCH_SIZE = Histogram(
    "embedding_batch_size",
    "Embedding batch size",
    ["embedder"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500],
)

# Retrieval Metrics
RETRIEVAL_DOCUMENTS_RETURNED = Histogram(
    "retrieval_documents_returned",
    "Number of documents returned per retrieval",
    buckets=[0, 1, 2, 3, 5, 10, 20, 50, 100],
)

RETRIEVAL_TOP_SCORE = Histogram(
    "retrieval_top_score",
    "Score of the best ranked document per query",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0, 2.5, 5.0],
)

_call_started: ContextVar[float | None] = ContextVar("_call_started", default=None)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    def __init__(self, app: ASGIApp) -> None:
        """Initialize the middleware."""
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process request and collect metrics."""
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        endpoint = self._normalize_endpoint(request.url.path)

        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).observe(duration)

        HTTP_REQUEST_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        if path.startswith("/health"):
            return "/health"
        if path.startswith("/api/v1/"):
            parts = path.split("/")
            if len(parts) >= 4:
                return f"/api/v1/{parts[3]}"
        return path


class MetricsCallbackHandler(CallbackHandler):
    """Records call duration and outcome for every pipeline call.

    The start time lives in a context variable, so concurrent calls
    running in separate tasks do not interfere.
    """

    def on_start(self, run_info: RunInfo, payload: CallbackInput) -> None:
        _call_started.set(time.perf_counter())

    def on_end(self, run_info: RunInfo, payload: CallbackOutput) -> None:
        self._observe(run_info, "success")
        if isinstance(payload, RetrieverCallbackOutput):
            top_score = payload.docs[0].score if payload.docs else None
            track_retrieval_request(len(payload.docs), top_score)
        elif isinstance(payload, IndexerCallbackOutput):
            logger.debug(
                "Indexing call recorded",
                extra={"ids_count": len(payload.ids)},
            )

    def on_error(self, run_info: RunInfo, error: BaseException) -> None:
        self._observe(run_info, "error")

    def _observe(self, run_info: RunInfo, status: str) -> None:
        started = _call_started.get()
        if started is not None:
            PIPELINE_CALL_DURATION.labels(
                component=run_info.component, status=status
            ).observe(time.perf_counter() - started)
            _call_started.set(None)
        PIPELINE_CALL_TOTAL.labels(component=run_info.component, status=status).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_embedding_request(
    embedder: str,
    duration: float,
    batch_size: int,
    success: bool = True,
) -> None:
    """Track embedding request metrics.

    Args:
        embedder: Embedder implementation name.
        duration: Request duration in seconds.
        batch_size: Number of texts in the batch.
        success: Whether the request succeeded.
    """
    status = "success" if success else "error"

    EMBEDDING_REQUEST_DURATION.labels(embedder=embedder, status=status).observe(duration)
    EMBEDDING_REQUEST_TOTAL.labels(embedder=embedder, status=status).inc()
    EMBEDDING_BATCH_SIZE.labels(embedder=embedder).observe(batch_size)


def track_indexed_batch(collection: str, documents: int) -> None:
    """Track one successfully upserted batch.

    Args:
        collection: Target collection.
        documents: Rows written by the batch.
    """
    INDEXED_BATCHES_TOTAL.labels(collection=collection).inc()
    INDEXED_DOCUMENTS_TOTAL.labels(collection=collection).inc(documents)


def track_retrieval_request(
    documents_returned: int,
    top_score: float | None,
) -> None:
    """Track retrieval request metrics.

    Args:
        documents_returned: Number of documents returned.
        top_score: Score of the best ranked document, if any.
    """
    RETRIEVAL_DOCUMENTS_RETURNED.observe(documents_returned)
    if top_score is not None:
        RETRIEVAL_TOP_SCORE.observe(top_score)
