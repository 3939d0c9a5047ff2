"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics,
health checks and the indexing/retrieval pipelines.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from docvec import __version__
from docvec.api.routes import router
from docvec.config import get_settings
from docvec.exceptions import DocVecError, ErrorCode
from docvec.indexer.indexer import Indexer, IndexerConfig
from docvec.logging_config import get_logger, setup_logging
from docvec.observability.callbacks import LoggingCallbackHandler
from docvec.observability.metrics import (
    MetricsCallbackHandler,
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)
from docvec.retrieval.retriever import Retriever, RetrieverConfig
from docvec.vectorstore.service import QdrantVectorStore

logger = get_logger(__name__)

_STATUS_CODES = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.COLLECTION_NOT_FOUND: 404,
    ErrorCode.EMPTY_RESULT: 404,
    ErrorCode.COLLECTION_EXISTS: 409,
    ErrorCode.EMBEDDING_SERVICE_ERROR: 502,
    ErrorCode.EMBEDDING_COUNT_MISMATCH: 502,
    ErrorCode.EMBEDDING_DIMENSION_MISMATCH: 502,
    ErrorCode.VECTOR_STORE_ERROR: 502,
    ErrorCode.SCHEMA_MISMATCH: 502,
    ErrorCode.FIELD_NOT_FOUND: 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the pipelines on startup and releases their clients on shutdown.
    """
    # Startup
    settings = get_settings()
    setup_logging(level=settings.log_level)
    logger.info(
        "Starting docvec",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
        },
    )

    callbacks = [LoggingCallbackHandler(), MetricsCallbackHandler()]
    store = QdrantVectorStore(settings.qdrant)
    try:
        app.state.indexer = await Indexer.create(
            IndexerConfig.from_settings(settings),
            store,
            callbacks=callbacks,
            embedding_settings=settings.embedding,
        )
        app.state.retriever = Retriever.from_settings(
            settings,
            store=store,
            callbacks=callbacks,
        )
    except DocVecError as e:
        logger.error(
            f"Pipelines unavailable: {e.message}",
            extra={"error_code": e.code.value, "details": e.details},
        )

    yield

    # Shutdown
    logger.info("Shutting down docvec")
    await close_pipelines(app)
    await store.close()


async def close_pipelines(app: FastAPI) -> None:
    """Close the pipelines stored on the application state, if any."""
    for name in ("indexer", "retriever"):
        pipeline = getattr(app.state, name, None)
        if pipeline is not None:
            await pipeline.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="docvec",
        description="Document indexing and semantic retrieval over a vector store",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(MetricsMiddleware)

    # Register exception handlers
    app.add_exception_handler(DocVecError, docvec_exception_handler)

    # Register routes
    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Metrics"])
    app.include_router(router)

    return app


async def docvec_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Convert DocVecError exceptions to structured JSON responses."""
    if not isinstance(exc, DocVecError):
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": str(exc),
                    "details": {},
                }
            },
        )

    logger.error(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    return JSONResponse(
        status_code=_STATUS_CODES.get(exc.code, 500),
        content=exc.to_dict(),
    )


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with version and timestamp.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> dict[str, Any]:
    """Readiness probe.

    Ready once both pipelines were built at startup.

    Returns:
        Readiness status with component checks.
    """
    checks: dict[str, str] = {
        "config": "ok",
        "indexer": "ok" if getattr(request.app.state, "indexer", None) else "unavailable",
        "retriever": (
            "ok" if getattr(request.app.state, "retriever", None) else "unavailable"
        ),
    }

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def liveness_check() -> dict[str, str]:
    """Liveness probe.

    Returns:
        Liveness status.
    """
    return {"status": "alive"}


async def metrics_endpoint() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()
