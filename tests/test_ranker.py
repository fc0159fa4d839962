"""Tests for lexical matching and hybrid ranking."""

from __future__ import annotations

import pytest

from conftest import make_chunk
from semsearch.constants import HYBRID_MIN_SIMILARITY, LEXICAL_WEIGHT, SEMANTIC_WEIGHT
from semsearch.errors import InvalidQuery
from semsearch.models import HybridSearchOptions, SearchFilter
from semsearch.search import HybridRanker, HybridResult, hybrid_score, match, rank_hybrid
from semsearch.storage import SearchResult


def _result(chunk_id: str, similarity: float, lexical: bool) -> HybridResult:
    return HybridResult(
        chunk_id=chunk_id,
        content="",
        document_id=f"doc-{chunk_id}",
        metadata={},
        similarity=similarity,
        lexical_match=lexical,
    )


def test_match_is_case_insensitive_substring() -> None:
    assert match("The Termination Clause applies", "termination clause").is_match
    assert match("termination", "TERMINATION").is_match
    assert not match("terminate the contract", "termination").is_match


def test_match_with_empty_query_never_matches() -> None:
    assert not match("anything", "").is_match


def test_weights_favor_semantic_signal() -> None:
    assert SEMANTIC_WEIGHT == 0.7
    assert LEXICAL_WEIGHT == 0.3
    assert HYBRID_MIN_SIMILARITY == 0.6


@pytest.mark.parametrize("similarity", [-1.0, 0.0, 0.42, 0.6, 0.95, 1.0])
def test_hybrid_score_formula(similarity: float) -> None:
    assert hybrid_score(similarity, True) == pytest.approx(similarity * 0.7 + 0.3)
    assert hybrid_score(similarity, False) == pytest.approx(similarity * 0.7)


def test_rank_hybrid_orders_by_score_then_chunk_id() -> None:
    results = [
        _result("b", 0.9, False),
        _result("c", 0.3, True),
        _result("a", 0.9, False),
        _result("d", 0.95, True),
    ]

    ranked = rank_hybrid(results, limit=3)

    assert [result.chunk_id for result in ranked] == ["d", "a", "b"]


def test_strong_semantic_hit_outranks_weak_lexical_hit() -> None:
    ranked = rank_hybrid(
        [_result("lexical", 0.1, True), _result("semantic", 0.9, False)], limit=2
    )

    assert [result.chunk_id for result in ranked] == ["semantic", "lexical"]


@pytest.fixture()
def hybrid_storage(storage):
    storage.insert(make_chunk("d-exact", [1.0, 0.0], chunk_id="X", content="unrelated text"))
    storage.insert(
        make_chunk("d-lexical", [0.58, 0.8146], chunk_id="Y", content="The Termination clause")
    )
    storage.insert(make_chunk("d-close", [0.8, 0.6], chunk_id="Z", content="other wording"))
    storage.insert(make_chunk("d-far", [0.0, 1.0], chunk_id="W", content="nothing relevant"))
    storage.insert(
        make_chunk("d-opposite", [-1.0, 0.0], chunk_id="V", content="termination notice")
    )
    return storage


def test_hybrid_search_blends_lexical_boost(hybrid_storage) -> None:
    ranker = HybridRanker(hybrid_storage)

    results = ranker.hybrid_search([1.0, 0.0], "termination", HybridSearchOptions(limit=10))

    assert [result.chunk_id for result in results] == ["Y", "X", "Z", "V"]
    by_id = {result.chunk_id: result for result in results}
    assert by_id["Y"].lexical_match is True
    assert by_id["Y"].similarity == pytest.approx(0.58, abs=1e-3)
    assert by_id["Y"].similarity <= HYBRID_MIN_SIMILARITY
    assert by_id["Y"].score > by_id["X"].score
    assert by_id["X"].score == pytest.approx(0.7)
    assert by_id["V"].score == pytest.approx(-0.7 + 0.3)
    for result in results:
        expected = result.similarity * 0.7 + (0.3 if result.lexical_match else 0.0)
        assert result.score == pytest.approx(expected)


def test_hybrid_search_excludes_non_matching_low_similarity(hybrid_storage) -> None:
    ranker = HybridRanker(hybrid_storage)

    results = ranker.hybrid_search([1.0, 0.0], "termination")

    assert "W" not in {result.chunk_id for result in results}


def test_hybrid_search_caps_results_at_limit(hybrid_storage) -> None:
    ranker = HybridRanker(hybrid_storage)

    results = ranker.hybrid_search([1.0, 0.0], "termination", HybridSearchOptions(limit=2))

    assert [result.chunk_id for result in results] == ["Y", "X"]


def test_hybrid_search_without_text_uses_relaxed_threshold_only(hybrid_storage) -> None:
    ranker = HybridRanker(hybrid_storage)

    results = ranker.hybrid_search([1.0, 0.0], "")

    assert [result.chunk_id for result in results] == ["X", "Z"]
    assert not any(result.lexical_match for result in results)


def test_hybrid_search_applies_filters(hybrid_storage) -> None:
    ranker = HybridRanker(hybrid_storage)

    results = ranker.hybrid_search(
        [1.0, 0.0],
        "termination",
        HybridSearchOptions(filter=SearchFilter(exclude_document_ids=("d-lexical",))),
    )

    assert "Y" not in {result.chunk_id for result in results}


def test_hybrid_search_rejects_empty_vector(hybrid_storage) -> None:
    with pytest.raises(InvalidQuery):
        HybridRanker(hybrid_storage).hybrid_search([], "termination")


class _RecordingStorage:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    def query_by_similarity(self, query_vector, **kwargs):
        self.calls.append(kwargs)
        return [
            SearchResult(
                chunk_id="shared",
                content="Termination",
                document_id="d1",
                metadata={},
                similarity=0.65,
            )
        ]


def test_hybrid_search_issues_semantic_and_lexical_legs() -> None:
    storage = _RecordingStorage()

    results = HybridRanker(storage).hybrid_search(
        [1.0, 0.0], "termination", HybridSearchOptions(limit=3, timeout=5)
    )

    assert len(results) == 1
    assert results[0].lexical_match is True
    thresholds = sorted(
        (call["min_similarity"] is None, call.get("text_contains")) for call in storage.calls
    )
    assert thresholds == [(False, None), (True, "termination")]
    semantic_call = next(call for call in storage.calls if call.get("text_contains") is None)
    assert semantic_call["min_similarity"] == HYBRID_MIN_SIMILARITY
    assert all(call["limit"] == 3 and call["timeout"] == 5 for call in storage.calls)
