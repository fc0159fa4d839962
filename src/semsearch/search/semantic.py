"""
Vector-based semantic search engine.

Validates a query embedding and runs a cosine-similarity query against the
embedding store with the configured threshold, limit and filters.
"""

from __future__ import annotations

import logging
import math

from ..cancellation import CancellationToken
from ..errors import InvalidQuery
from ..models import SearchOptions
from ..storage import EmbeddingStore, SearchResult

logger = logging.getLogger(__name__)


def validate_query_vector(query_vector: list[float]) -> list[float]:
    """Return the vector as floats, raising InvalidQuery when it cannot be compared."""
    if query_vector is None or len(query_vector) == 0:
        raise InvalidQuery("Query vector must not be empty.")
    try:
        vector = [float(value) for value in query_vector]
    except (TypeError, ValueError) as exc:
        raise InvalidQuery(f"Query vector must contain numbers: {exc}") from exc
    if not all(math.isfinite(value) for value in vector):
        raise InvalidQuery("Query vector contains non-finite values.")
    if not any(value != 0.0 for value in vector):
        raise InvalidQuery("Query vector has zero magnitude.")
    return vector


class SimilaritySearchEngine:
    """Search stored chunk embeddings by cosine similarity."""

    def __init__(self, storage: EmbeddingStore) -> None:
        self.storage = storage

    def search(
        self,
        query_vector: list[float],
        options: SearchOptions | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> list[SearchResult]:
        """Return chunks with similarity above the threshold, highest first."""
        vector = validate_query_vector(query_vector)
        resolved = options or SearchOptions()
        results = self.storage.query_by_similarity(
            vector,
            search_filter=resolved.filter,
            limit=resolved.limit,
            min_similarity=resolved.min_similarity,
            cancel_token=cancel_token,
            timeout=resolved.timeout,
        )
        logger.debug(
            "Semantic search returned %d results (limit=%d, min_similarity=%.3f)",
            len(results),
            resolved.limit,
            resolved.min_similarity,
        )
        return results
