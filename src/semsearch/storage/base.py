"""
Storage interfaces and data models for embedding persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Protocol, TypeAlias

from ..cancellation import CancellationToken
from ..models import SearchFilter

SearchType: TypeAlias = Literal["semantic", "hybrid", "similar"]


@dataclass(frozen=True)
class EmbeddingChunk:
    """A chunk of document text with the embedding produced for it."""

    document_id: str
    content: str
    embedding: list[float]
    model: str
    dimension: int
    chunk_index: int
    owner_scope: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(frozen=True)
class StoredChunk:
    """A chunk as persisted, with its assigned id."""

    id: str
    document_id: str
    content: str
    embedding: list[float]
    model: str
    dimension: int
    chunk_index: int
    owner_scope: str | None
    metadata: dict[str, Any]
    created_at: datetime


@dataclass(frozen=True)
class SearchResult:
    """A ranked chunk returned by a similarity query."""

    chunk_id: str
    content: str
    document_id: str
    metadata: dict[str, Any]
    similarity: float


@dataclass(frozen=True)
class QueryLogEntry:
    """Analytics record for one executed query."""

    query_text: str
    search_type: SearchType
    result_count: int
    result_document_ids: list[str]
    execution_time_ms: float
    owner_scope: str | None = None
    user_id: str | None = None
    query_embedding: list[float] | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class SearchAnalytics:
    """Aggregates over logged queries for an owner scope."""

    total_queries: int
    avg_execution_time_ms: float
    avg_result_count: float
    recent_queries: list[QueryLogEntry]


class EmbeddingStore(Protocol):
    """Protocol for chunk persistence and similarity queries."""

    def insert(self, chunk: EmbeddingChunk) -> StoredChunk:
        """Persist one chunk. Raise DimensionMismatch or DuplicateChunk."""

    def find_by_document(
        self,
        document_id: str,
        *,
        owner_scope: str | None = None,
        limit: int | None = None,
    ) -> list[StoredChunk]:
        """
        Return a document's chunks ordered by chunk_index ascending.

        When owner_scope is given, chunks owned by any other scope are not
        returned.
        """

    def query_by_similarity(
        self,
        query_vector: list[float],
        *,
        search_filter: SearchFilter,
        limit: int,
        min_similarity: float | None,
        text_contains: str | None = None,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> list[SearchResult]:
        """Return chunks ranked by cosine similarity, highest first."""

    def count_chunks(self, *, owner_scope: str | None = None) -> int:
        """Count stored chunks, optionally within one owner scope."""


class QueryLogStore(Protocol):
    """Protocol for the append-only query log."""

    def append_query_log(self, entry: QueryLogEntry) -> None:
        """Persist one query log entry."""

    def list_query_logs(
        self,
        *,
        owner_scope: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[QueryLogEntry]:
        """Return logged queries for an owner scope, newest first."""

    def summarize_query_logs(
        self,
        *,
        owner_scope: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> tuple[int, float, float]:
        """Return (count, avg execution ms, avg result count); zeros when empty."""
