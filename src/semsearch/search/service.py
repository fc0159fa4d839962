"""
Caller-facing search service.

Binds every query to an owner scope, times it, and hands the finished
result set to the analytics logger off the response path.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from datetime import datetime

from ..analytics import QueryAnalyticsLogger
from ..cancellation import CancellationToken
from ..constants import DEFAULT_SIMILAR_LIMIT, SIMILAR_DOCUMENT_MIN_SIMILARITY
from ..errors import InvalidQuery
from ..models import HybridSearchOptions, SearchOptions
from ..storage import (
    EmbeddingChunk,
    EmbeddingStore,
    QueryLogEntry,
    SearchAnalytics,
    SearchResult,
    SearchType,
    StoredChunk,
)
from .ranker import HybridRanker, HybridResult
from .semantic import SimilaritySearchEngine
from .similar import SimilarDocumentFinder

logger = logging.getLogger(__name__)


class VectorSearchService:
    """Semantic, hybrid and similar-document search scoped to one tenant per call."""

    def __init__(
        self,
        storage: EmbeddingStore,
        analytics: QueryAnalyticsLogger,
        *,
        default_timeout: float | None = None,
    ) -> None:
        self.storage = storage
        self.analytics = analytics
        self.default_timeout = default_timeout
        self.engine = SimilaritySearchEngine(storage)
        self.ranker = HybridRanker(storage)
        self.finder = SimilarDocumentFinder(storage, self.engine)

    def insert(self, chunk: EmbeddingChunk) -> StoredChunk:
        return self.storage.insert(chunk)

    def search(
        self,
        query_vector: list[float],
        *,
        owner_scope: str,
        options: SearchOptions | None = None,
        query_text: str = "",
        user_id: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[SearchResult]:
        scope = _require_scope(owner_scope)
        resolved = options or SearchOptions()
        resolved = resolved.model_copy(
            update={
                "filter": resolved.filter.with_owner_scope(scope),
                "timeout": self._timeout(resolved.timeout),
            }
        )

        started = time.perf_counter()
        results = self.engine.search(query_vector, resolved, cancel_token=cancel_token)
        self._record(
            search_type="semantic",
            query_text=query_text,
            query_vector=query_vector,
            results=results,
            owner_scope=scope,
            user_id=user_id,
            started=started,
        )
        return results

    def hybrid_search(
        self,
        query_vector: list[float],
        query_text: str,
        *,
        owner_scope: str,
        options: HybridSearchOptions | None = None,
        user_id: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[HybridResult]:
        scope = _require_scope(owner_scope)
        resolved = options or HybridSearchOptions()
        resolved = resolved.model_copy(
            update={
                "filter": resolved.filter.with_owner_scope(scope),
                "timeout": self._timeout(resolved.timeout),
            }
        )

        started = time.perf_counter()
        results = self.ranker.hybrid_search(
            query_vector, query_text, resolved, cancel_token=cancel_token
        )
        self._record(
            search_type="hybrid",
            query_text=query_text,
            query_vector=query_vector,
            results=results,
            owner_scope=scope,
            user_id=user_id,
            started=started,
        )
        return results

    def find_similar(
        self,
        document_id: str,
        *,
        owner_scope: str,
        limit: int = DEFAULT_SIMILAR_LIMIT,
        min_similarity: float = SIMILAR_DOCUMENT_MIN_SIMILARITY,
        user_id: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[SearchResult]:
        scope = _require_scope(owner_scope)

        started = time.perf_counter()
        results = self.finder.find_similar(
            document_id,
            owner_scope=scope,
            limit=limit,
            min_similarity=min_similarity,
            timeout=self._timeout(None),
            cancel_token=cancel_token,
        )
        self._record(
            search_type="similar",
            query_text=document_id,
            query_vector=None,
            results=results,
            owner_scope=scope,
            user_id=user_id,
            started=started,
        )
        return results

    def log_query(self, entry: QueryLogEntry) -> None:
        self.analytics.log_query(entry)

    def get_analytics(
        self,
        owner_scope: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> SearchAnalytics:
        return self.analytics.get_analytics(
            _require_scope(owner_scope), start=start, end=end
        )

    def _timeout(self, requested: float | None) -> float | None:
        return requested if requested is not None else self.default_timeout

    def _record(
        self,
        *,
        search_type: SearchType,
        query_text: str,
        query_vector: list[float] | None,
        results: Sequence[SearchResult],
        owner_scope: str,
        user_id: str | None,
        started: float,
    ) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.debug(
            "%s search in scope %r returned %d results in %.1f ms",
            search_type,
            owner_scope,
            len(results),
            elapsed_ms,
        )
        try:
            entry = QueryLogEntry(
                query_text=query_text,
                search_type=search_type,
                query_embedding=list(query_vector) if query_vector is not None else None,
                result_count=len(results),
                result_document_ids=[result.document_id for result in results],
                user_id=user_id,
                owner_scope=owner_scope,
                execution_time_ms=elapsed_ms,
            )
            self.analytics.log_query(entry)
        except Exception:
            logger.warning("Skipping analytics for %s search", search_type, exc_info=True)


def _require_scope(owner_scope: str) -> str:
    if not isinstance(owner_scope, str) or not owner_scope.strip():
        raise InvalidQuery("owner_scope is required for every search.")
    return owner_scope

