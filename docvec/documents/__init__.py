"""Document models."""

from docvec.documents.models import FILTER_METADATA_KEY, Document

__all__ = [
    "FILTER_METADATA_KEY",
    "Document",
]
