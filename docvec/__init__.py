"""Document vectorization, indexing and semantic retrieval over a vector store."""

__version__ = "0.1.0"
