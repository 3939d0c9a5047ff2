"""Application exception hierarchy.

All custom exceptions inherit from DocVecError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "DV-1000"
    CONFIGURATION_ERROR = "DV-1001"
    VALIDATION_ERROR = "DV-1002"
    EMBEDDING_CONFIG_CONFLICT = "DV-1003"
    EMBEDDING_CONFIG_MISSING = "DV-1004"

    # Embedding errors (3xxx)
    EMBEDDING_SERVICE_ERROR = "DV-3000"
    EMBEDDING_DIMENSION_MISMATCH = "DV-3001"
    EMBEDDING_COUNT_MISMATCH = "DV-3002"

    # Vector store errors (4xxx)
    VECTOR_STORE_ERROR = "DV-4000"
    COLLECTION_NOT_FOUND = "DV-4001"
    COLLECTION_EXISTS = "DV-4002"

    # Result decoding errors (6xxx)
    SCHEMA_MISMATCH = "DV-6000"
    FIELD_NOT_FOUND = "DV-6001"
    EMPTY_RESULT = "DV-6002"


class DocVecError(Exception):
    """Base exception for all docvec errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(DocVecError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFIGURATION_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class EmbeddingConfigConflictError(ConfigurationError):
    """Both the built-in embedder and a custom embedder were configured."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.EMBEDDING_CONFIG_CONFLICT, details)


class EmbeddingConfigMissingError(ConfigurationError):
    """Neither the built-in embedder nor a custom embedder was configured."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.EMBEDDING_CONFIG_MISSING, details)


class ValidationError(DocVecError):
    """Input validation error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class EmbeddingError(DocVecError):
    """Embedding provider error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class EmbeddingCountMismatchError(EmbeddingError):
    """Provider returned a different number of vectors than texts sent."""

    def __init__(
        self,
        expected: int,
        got: int,
    ) -> None:
        super().__init__(
            f"invalid return length of vector, got={got}, expected={expected}",
            ErrorCode.EMBEDDING_COUNT_MISMATCH,
            {"expected": expected, "got": got},
        )


class VectorStoreError(DocVecError):
    """Vector store operation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VECTOR_STORE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class SchemaMismatchError(DocVecError):
    """Search result does not match the expected field projection."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SCHEMA_MISMATCH,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class FieldNotFoundError(SchemaMismatchError):
    """An expected field is absent from the search result."""

    def __init__(self, field: str, available: list[str]) -> None:
        super().__init__(
            f"Result field not found: {field}",
            ErrorCode.FIELD_NOT_FOUND,
            {"field": field, "available": available},
        )


class EmptyResultError(DocVecError):
    """Search result carries zero rows where at least one was expected."""

    def __init__(
        self,
        message: str = "Search result has no rows",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.EMPTY_RESULT, details)
