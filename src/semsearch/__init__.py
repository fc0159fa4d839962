"""
semsearch - semantic search over embedded document chunks.

This package stores chunk embeddings in DuckDB, ranks chunks by cosine
similarity to a query vector, optionally blends in lexical substring
matches, and records every query for analytics.

Example usage:
    >>> from semsearch import DuckDBStorage, QueryAnalyticsLogger, VectorSearchService
    >>> storage = DuckDBStorage("index.duckdb")
    >>> service = VectorSearchService(storage, QueryAnalyticsLogger(storage))
    >>> results = service.search([0.1, 0.9], owner_scope="org-1")
"""

from .analytics import QueryAnalyticsLogger
from .cancellation import CancellationToken
from .errors import (
    Cancelled,
    DimensionMismatch,
    DuplicateChunk,
    InvalidChunk,
    InvalidQuery,
    NoEmbeddingForDocument,
    SearchError,
    StoreUnavailable,
)
from .models import HybridSearchOptions, SearchFilter, SearchOptions
from .search import (
    HybridRanker,
    HybridResult,
    SimilarDocumentFinder,
    SimilaritySearchEngine,
    VectorSearchService,
)
from .storage import (
    DuckDBStorage,
    EmbeddingChunk,
    QueryLogEntry,
    SearchAnalytics,
    SearchResult,
    StoredChunk,
)

__all__ = [
    # Service
    "VectorSearchService",
    "SimilaritySearchEngine",
    "HybridRanker",
    "HybridResult",
    "SimilarDocumentFinder",
    "QueryAnalyticsLogger",
    "CancellationToken",
    # Storage
    "DuckDBStorage",
    "EmbeddingChunk",
    "StoredChunk",
    "SearchResult",
    "QueryLogEntry",
    "SearchAnalytics",
    # Models
    "SearchFilter",
    "SearchOptions",
    "HybridSearchOptions",
    # Errors
    "SearchError",
    "InvalidQuery",
    "InvalidChunk",
    "DimensionMismatch",
    "DuplicateChunk",
    "NoEmbeddingForDocument",
    "StoreUnavailable",
    "Cancelled",
]
