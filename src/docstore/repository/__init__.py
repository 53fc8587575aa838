"""Repository layer for Elasticsearch document operations."""

from .base import DEFAULT_CONFLICT_RETRIES, DocumentRepository

__all__ = [
    "DEFAULT_CONFLICT_RETRIES",
    "DocumentRepository",
]
