"""Observability module for lifecycle callbacks and metrics."""

from docvec.observability.callbacks import (
    CallbackHandler,
    CallbackManager,
    IndexerCallbackInput,
    IndexerCallbackOutput,
    LoggingCallbackHandler,
    RetrieverCallbackInput,
    RetrieverCallbackOutput,
    RunInfo,
    make_run_info,
)
from docvec.observability.metrics import (
    MetricsCallbackHandler,
    MetricsMiddleware,
    get_metrics,
    track_embedding_request,
    track_indexed_batch,
    track_retrieval_request,
)

__all__ = [
    "CallbackHandler",
    "CallbackManager",
    "IndexerCallbackInput",
    "IndexerCallbackOutput",
    "LoggingCallbackHandler",
    "MetricsCallbackHandler",
    "MetricsMiddleware",
    "RetrieverCallbackInput",
    "RetrieverCallbackOutput",
    "RunInfo",
    "get_metrics",
    "make_run_info",
    "track_embedding_request",
    "track_indexed_batch",
    "track_retrieval_request",
]
