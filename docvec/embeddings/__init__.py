"""Embedding providers and the pipeline-facing adapter."""

from docvec.embeddings.adapter import (
    EmbeddingAdapter,
    EmbeddingConfig,
    resolve_embedder,
)
from docvec.embeddings.service import Embedder, HTTPEmbedder

__all__ = [
    "Embedder",
    "EmbeddingAdapter",
    "EmbeddingConfig",
    "HTTPEmbedder",
    "resolve_embedder",
]
