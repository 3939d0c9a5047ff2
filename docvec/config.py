"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class EmbeddingSettings(BaseSettings):
    """Embedding provider configuration.

    Used by the built-in embedder, an OpenAI-compatible or
    text-embeddings-inference (TEI) endpoint.
    """

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    base_url: str = Field(
        default="http://localhost:8080",
        description="Embedding service base URL",
    )
    model: str = Field(
        default="BAAI/bge-large-en-v1.5",
        description="Embedding model name",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Bearer token for hosted embedding APIs",
    )
    timeout: float = Field(
        default=60.0,
        description="Request timeout in seconds",
    )
    batch_size: int = Field(
        default=32,
        description="Maximum texts per embedding request",
    )
    use_builtin: bool = Field(
        default=True,
        description="Use the configured embedding service as the built-in embedder",
    )


class QdrantSettings(BaseSettings):
    """Qdrant vector database configuration."""

    model_config = SettingsConfigDict(env_prefix="QDRANT_")

    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )
    timeout: int | None = Field(
        default=None,
        description="Client timeout in seconds",
    )
    collection_name: str = Field(
        default="docvec_documents",
        description="Default collection name",
    )


class IndexerSettings(BaseSettings):
    """Batch indexing pipeline configuration."""

    model_config = SettingsConfigDict(env_prefix="INDEXER_")

    partition: str = Field(
        default="default",
        description="Partition that stored documents are written to",
    )
    batch_size: int = Field(
        default=5,
        description="Documents per upsert batch (0 means default)",
    )
    vector_dim: int = Field(
        default=1024,
        description="Dense vector dimensionality of the collection",
    )
    id_max_len: int = Field(
        default=64,
        description="Maximum length of a document ID",
    )


class RetrieverSettings(BaseSettings):
    """Query retrieval pipeline configuration."""

    model_config = SettingsConfigDict(env_prefix="RETRIEVER_")

    partition: str = Field(
        default="default",
        description="Partition searched by default",
    )
    index: str = Field(
        default="vector",
        description="Vector field searched by default",
    )
    top_k: int = Field(
        default=100,
        description="Maximum results per query",
    )
    score_threshold: float | None = Field(
        default=None,
        description="Drop results whose score does not pass this threshold",
    )
    metric: str = Field(
        default="L2",
        description="Distance metric of the collection (L2, IP, COSINE)",
    )
    vector_dim: int = Field(
        default=1024,
        description="Dense vector dimensionality of the collection",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        description="API server port",
    )

    # Nested settings
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    indexer: IndexerSettings = Field(default_factory=IndexerSettings)
    retriever: RetrieverSettings = Field(default_factory=RetrieverSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
