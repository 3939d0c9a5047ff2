"""Batch indexing pipeline."""

from docvec.indexer.indexer import Indexer, IndexerConfig, IndexerOptions, IndexingStage

__all__ = [
    "Indexer",
    "IndexerConfig",
    "IndexerOptions",
    "IndexingStage",
]
