"""Search engines over stored chunk embeddings."""

from .lexical import LexicalMatch, match
from .ranker import HybridRanker, HybridResult, hybrid_score, rank_hybrid
from .semantic import SimilaritySearchEngine, validate_query_vector
from .service import VectorSearchService
from .similar import SimilarDocumentFinder

__all__ = [
    "LexicalMatch",
    "match",
    "HybridRanker",
    "HybridResult",
    "hybrid_score",
    "rank_hybrid",
    "SimilaritySearchEngine",
    "validate_query_vector",
    "VectorSearchService",
    "SimilarDocumentFinder",
]
