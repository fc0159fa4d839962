"""
Hybrid ranking of vector similarity blended with lexical matches.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from ..cancellation import CancellationToken
from ..constants import HYBRID_MIN_SIMILARITY, LEXICAL_WEIGHT, SEMANTIC_WEIGHT
from ..models import HybridSearchOptions
from ..storage import EmbeddingStore, SearchResult
from .lexical import match
from .semantic import validate_query_vector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HybridResult(SearchResult):
    """Search result carrying its lexical signal and blended score."""

    lexical_match: bool

    @property
    def score(self) -> float:
        return hybrid_score(self.similarity, self.lexical_match)


def hybrid_score(similarity: float, is_lexical_match: bool) -> float:
    """Blend vector similarity with the lexical boost."""
    return similarity * SEMANTIC_WEIGHT + (LEXICAL_WEIGHT if is_lexical_match else 0.0)


def rank_hybrid(results: list[HybridResult], *, limit: int) -> list[HybridResult]:
    """Sort by blended score, then chunk id, and apply limit."""
    ordered = sorted(results, key=lambda result: (-result.score, result.chunk_id))
    return ordered[: max(limit, 0)]


class HybridRanker:
    """Combine a relaxed vector query and a lexical query into one ranking."""

    def __init__(self, storage: EmbeddingStore) -> None:
        self.storage = storage

    def hybrid_search(
        self,
        query_vector: list[float],
        query_text: str,
        options: HybridSearchOptions | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> list[HybridResult]:
        vector = validate_query_vector(query_vector)
        resolved = options or HybridSearchOptions()

        # Candidates are (lexical match OR similarity > HYBRID_MIN_SIMILARITY).
        # The top `limit` of each leg is enough: within either group the
        # blended score is monotonic in similarity.
        if query_text:
            semantic_rows, lexical_rows = self._search_parallel(
                vector, query_text, resolved, cancel_token=cancel_token
            )
        else:
            semantic_rows = self._semantic_query(vector, resolved, cancel_token=cancel_token)
            lexical_rows = []

        merged: dict[str, SearchResult] = {}
        for row in [*semantic_rows, *lexical_rows]:
            merged.setdefault(row.chunk_id, row)

        candidates = [
            HybridResult(
                chunk_id=row.chunk_id,
                content=row.content,
                document_id=row.document_id,
                metadata=row.metadata,
                similarity=row.similarity,
                lexical_match=match(row.content, query_text).is_match,
            )
            for row in merged.values()
        ]
        ranked = rank_hybrid(candidates, limit=resolved.limit)
        logger.debug(
            "Hybrid search merged %d semantic and %d lexical rows into %d results",
            len(semantic_rows),
            len(lexical_rows),
            len(ranked),
        )
        return ranked

    def _search_parallel(
        self,
        vector: list[float],
        query_text: str,
        options: HybridSearchOptions,
        *,
        cancel_token: CancellationToken | None,
    ) -> tuple[list[SearchResult], list[SearchResult]]:
        with ThreadPoolExecutor(max_workers=2) as executor:
            semantic_future = executor.submit(
                self._semantic_query,
                vector,
                options,
                cancel_token=cancel_token,
            )
            lexical_future = executor.submit(
                self._lexical_query,
                vector,
                query_text,
                options,
                cancel_token=cancel_token,
            )
            semantic_rows = semantic_future.result()
            lexical_rows = lexical_future.result()
        return semantic_rows, lexical_rows

    def _semantic_query(
        self,
        vector: list[float],
        options: HybridSearchOptions,
        *,
        cancel_token: CancellationToken | None,
    ) -> list[SearchResult]:
        return self.storage.query_by_similarity(
            vector,
            search_filter=options.filter,
            limit=options.limit,
            min_similarity=HYBRID_MIN_SIMILARITY,
            cancel_token=cancel_token,
            timeout=options.timeout,
        )

    def _lexical_query(
        self,
        vector: list[float],
        query_text: str,
        options: HybridSearchOptions,
        *,
        cancel_token: CancellationToken | None,
    ) -> list[SearchResult]:
        return self.storage.query_by_similarity(
            vector,
            search_filter=options.filter,
            limit=options.limit,
            min_similarity=None,
            text_contains=query_text,
            cancel_token=cancel_token,
            timeout=options.timeout,
        )
