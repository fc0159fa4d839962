"""Storage backends for semantic search."""

from .base import (
    EmbeddingChunk,
    EmbeddingStore,
    QueryLogEntry,
    QueryLogStore,
    SearchAnalytics,
    SearchResult,
    SearchType,
    StoredChunk,
)
from .duckdb import DuckDBStorage

__all__ = [
    "EmbeddingChunk",
    "EmbeddingStore",
    "QueryLogEntry",
    "QueryLogStore",
    "SearchAnalytics",
    "SearchResult",
    "SearchType",
    "StoredChunk",
    "DuckDBStorage",
]
