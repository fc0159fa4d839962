"""
Ranking and threshold settings for semantic and hybrid search.

These values define the scoring contract of the search API. They are kept
here so ranking logic can be tuned and unit-tested without touching the
query code.
"""

# Result limits
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_SIMILAR_LIMIT = 5

# Similarity thresholds (cosine similarity, 1.0 = identical direction).
# Results at or below the threshold are excluded.
DEFAULT_MIN_SIMILARITY = 0.7
HYBRID_MIN_SIMILARITY = 0.6
SIMILAR_DOCUMENT_MIN_SIMILARITY = 0.8

# Hybrid score = similarity * SEMANTIC_WEIGHT + (LEXICAL_WEIGHT if lexical match)
SEMANTIC_WEIGHT = 0.7
LEXICAL_WEIGHT = 0.3

# Analytics
RECENT_QUERIES_LIMIT = 10
