"""Lifecycle hooks fired around indexing and retrieval calls.

Every pipeline call fires ``on_start`` with its input, then either
``on_end`` with its output or ``on_error`` with the raised exception.
"""

from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, Field

from docvec.documents.models import Document
from docvec.logging_config import get_logger

logger = get_logger(__name__)


class RunInfo(BaseModel):
    """Identifies the component a callback is fired for."""

    name: str = Field(description="Display name, type plus component")
    type: str = Field(description="Backend implementation, e.g. Qdrant")
    component: str = Field(description="Component kind, e.g. Indexer")


class IndexerCallbackInput(BaseModel):
    """Payload of ``on_start`` for an indexing call."""

    docs: list[Document]


class IndexerCallbackOutput(BaseModel):
    """Payload of ``on_end`` for an indexing call."""

    ids: list[str]


class RetrieverCallbackInput(BaseModel):
    """Payload of ``on_start`` for a retrieval call."""

    query: str
    top_k: int
    filter: str = Field(default="", description="Scalar filter rendered as JSON")
    score_threshold: float | None = None


class RetrieverCallbackOutput(BaseModel):
    """Payload of ``on_end`` for a retrieval call."""

    docs: list[Document]


CallbackInput = IndexerCallbackInput | RetrieverCallbackInput
CallbackOutput = IndexerCallbackOutput | RetrieverCallbackOutput


class CallbackHandler:
    """Base handler. Every hook is a no-op; override the ones you need."""

    def on_start(self, run_info: RunInfo, payload: CallbackInput) -> None:
        return None

    def on_end(self, run_info: RunInfo, payload: CallbackOutput) -> None:
        return None

    def on_error(self, run_info: RunInfo, error: BaseException) -> None:
        return None


class LoggingCallbackHandler(CallbackHandler):
    """Logs every lifecycle event."""

    def on_start(self, run_info: RunInfo, payload: CallbackInput) -> None:
        extra: dict[str, Any] = {"component": run_info.name}
        if isinstance(payload, IndexerCallbackInput):
            extra["docs_count"] = len(payload.docs)
        else:
            extra.update(
                query_length=len(payload.query),
                top_k=payload.top_k,
                filter=payload.filter,
                score_threshold=payload.score_threshold,
            )
        logger.info(f"{run_info.name} started", extra=extra)

    def on_end(self, run_info: RunInfo, payload: CallbackOutput) -> None:
        if isinstance(payload, IndexerCallbackOutput):
            count = len(payload.ids)
        else:
            count = len(payload.docs)
        logger.info(
            f"{run_info.name} finished",
            extra={"component": run_info.name, "results_count": count},
        )

    def on_error(self, run_info: RunInfo, error: BaseException) -> None:
        logger.error(
            f"{run_info.name} failed: {error}",
            extra={"component": run_info.name, "error_type": type(error).__name__},
        )


class CallbackManager:
    """Fans lifecycle events out to a list of handlers, in order."""

    def __init__(
        self,
        run_info: RunInfo,
        handlers: Iterable[CallbackHandler] | None = None,
    ) -> None:
        self.run_info = run_info
        self._handlers = list(handlers or [])

    @property
    def handlers(self) -> list[CallbackHandler]:
        return list(self._handlers)

    def on_start(self, payload: CallbackInput) -> None:
        for handler in self._handlers:
            handler.on_start(self.run_info, payload)

    def on_end(self, payload: CallbackOutput) -> None:
        for handler in self._handlers:
            handler.on_end(self.run_info, payload)

    def on_error(self, error: BaseException) -> None:
        for handler in self._handlers:
            handler.on_error(self.run_info, error)


def make_run_info(backend: object, component: str) -> RunInfo:
    """Build run info naming the backend class and the component kind."""
    class_name = type(backend).__name__
    backend_type = class_name.removesuffix("VectorStore") or class_name
    return RunInfo(
        name=f"{backend_type}{component}",
        type=backend_type,
        component=component,
    )
