"""
Similar-document lookup from a document's stored embedding.
"""

from __future__ import annotations

import logging

from ..cancellation import CancellationToken
from ..constants import DEFAULT_SIMILAR_LIMIT, SIMILAR_DOCUMENT_MIN_SIMILARITY
from ..errors import NoEmbeddingForDocument
from ..models import SearchFilter, SearchOptions
from ..storage import EmbeddingStore, SearchResult
from .semantic import SimilaritySearchEngine

logger = logging.getLogger(__name__)


class SimilarDocumentFinder:
    """Find chunks of other documents close to a document's first chunk."""

    def __init__(
        self,
        storage: EmbeddingStore,
        engine: SimilaritySearchEngine | None = None,
    ) -> None:
        self.storage = storage
        self.engine = engine or SimilaritySearchEngine(storage)

    def find_similar(
        self,
        document_id: str,
        *,
        owner_scope: str | None = None,
        limit: int = DEFAULT_SIMILAR_LIMIT,
        min_similarity: float = SIMILAR_DOCUMENT_MIN_SIMILARITY,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[SearchResult]:
        """
        Return chunks similar to the document's first chunk.

        The source document is always excluded from its own results. Raises
        NoEmbeddingForDocument when the document has no stored chunk visible
        to owner_scope.
        """
        chunks = self.storage.find_by_document(
            document_id, owner_scope=owner_scope, limit=1
        )
        if not chunks:
            raise NoEmbeddingForDocument(document_id)
        source = chunks[0]

        search_filter = SearchFilter(
            owner_scope=owner_scope,
            model=source.model,
        ).excluding(document_id)
        options = SearchOptions(
            limit=limit,
            min_similarity=min_similarity,
            filter=search_filter,
            timeout=timeout,
        )
        logger.debug(
            "Finding documents similar to %s from chunk %s", document_id, source.id
        )
        return self.engine.search(source.embedding, options, cancel_token=cancel_token)
