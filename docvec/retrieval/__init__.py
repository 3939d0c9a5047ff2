"""Query retrieval pipeline."""

from docvec.retrieval.retriever import Retriever, RetrieverConfig, RetrieverOptions

__all__ = [
    "Retriever",
    "RetrieverConfig",
    "RetrieverOptions",
]
