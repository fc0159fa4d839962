"""
Lexical match signal for hybrid ranking.

Matching is plain case-insensitive substring containment, not fuzzy or
token-based; the lexical signal only boosts results vector search found.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LexicalMatch:
    """Outcome of matching a query text against chunk content."""

    is_match: bool


def match(content: str, query_text: str) -> LexicalMatch:
    """Return whether *query_text* occurs in *content*, ignoring case."""
    if not query_text:
        return LexicalMatch(is_match=False)
    return LexicalMatch(is_match=query_text.lower() in content.lower())
