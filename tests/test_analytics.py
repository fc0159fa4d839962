"""Tests for query analytics logging and aggregation."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from semsearch.analytics import QueryAnalyticsLogger
from semsearch.storage import QueryLogEntry


def _entry(
    query_text: str,
    *,
    owner_scope: str = "org-1",
    result_count: int = 2,
    execution_time_ms: float = 10.0,
    created_at: datetime | None = None,
    query_embedding: list[float] | None = None,
) -> QueryLogEntry:
    return QueryLogEntry(
        query_text=query_text,
        search_type="semantic",
        result_count=result_count,
        result_document_ids=[f"d{index}" for index in range(result_count)],
        execution_time_ms=execution_time_ms,
        owner_scope=owner_scope,
        user_id="user-1",
        query_embedding=query_embedding,
        created_at=created_at,
    )


@pytest.fixture()
def analytics(storage):
    logger = QueryAnalyticsLogger(storage)
    yield logger
    logger.close()


def test_get_analytics_without_queries_returns_zeros(analytics) -> None:
    summary = analytics.get_analytics("org-1")

    assert summary.total_queries == 0
    assert summary.avg_execution_time_ms == 0
    assert summary.avg_result_count == 0
    assert summary.recent_queries == []


def test_get_analytics_aggregates_logged_queries(analytics) -> None:
    base = datetime(2026, 1, 1, 12, 0, 0)
    analytics.log_query(_entry("first", result_count=1, execution_time_ms=10.0, created_at=base))
    analytics.log_query(
        _entry("second", result_count=3, execution_time_ms=30.0, created_at=base + timedelta(minutes=1))
    )
    analytics.log_query(_entry("other scope", owner_scope="org-2", created_at=base))
    analytics.flush()

    summary = analytics.get_analytics("org-1")

    assert summary.total_queries == 2
    assert summary.avg_execution_time_ms == pytest.approx(20.0)
    assert summary.avg_result_count == pytest.approx(2.0)
    assert [entry.query_text for entry in summary.recent_queries] == ["second", "first"]
    assert summary.recent_queries[0].result_document_ids == ["d0", "d1", "d2"]
    assert summary.recent_queries[0].user_id == "user-1"


def test_get_analytics_limits_recent_queries(analytics) -> None:
    base = datetime(2026, 1, 1)
    for index in range(12):
        analytics.log_query(_entry(f"q{index}", created_at=base + timedelta(seconds=index)))
    analytics.flush()

    summary = analytics.get_analytics("org-1")

    assert summary.total_queries == 12
    assert len(summary.recent_queries) == 10
    assert summary.recent_queries[0].query_text == "q11"


def test_get_analytics_filters_by_date_range(analytics) -> None:
    analytics.log_query(_entry("old", created_at=datetime(2026, 1, 1)))
    analytics.log_query(_entry("in range", created_at=datetime(2026, 2, 15)))
    analytics.log_query(_entry("new", created_at=datetime(2026, 4, 1)))
    analytics.flush()

    summary = analytics.get_analytics(
        "org-1", start=datetime(2026, 2, 1), end=datetime(2026, 3, 1)
    )
    empty = analytics.get_analytics(
        "org-1", start=datetime(2025, 1, 1), end=datetime(2025, 2, 1)
    )

    assert [entry.query_text for entry in summary.recent_queries] == ["in range"]
    assert summary.total_queries == 1
    assert empty.total_queries == 0
    assert empty.avg_result_count == 0


def test_get_analytics_accepts_aware_datetimes(analytics) -> None:
    analytics.log_query(_entry("aware", created_at=datetime(2026, 2, 15, 12, tzinfo=timezone.utc)))
    analytics.flush()

    summary = analytics.get_analytics(
        "org-1",
        start=datetime(2026, 2, 15, 11, tzinfo=timezone.utc),
        end=datetime(2026, 2, 15, 13, tzinfo=timezone.utc),
    )

    assert summary.total_queries == 1


def test_query_embedding_is_dropped_unless_retained(storage) -> None:
    dropping = QueryAnalyticsLogger(storage)
    dropping.log_query(_entry("dropped", owner_scope="drop", query_embedding=[1.0, 0.0]))
    dropping.close()
    retaining = QueryAnalyticsLogger(storage, retain_embeddings=True)
    retaining.log_query(_entry("kept", owner_scope="keep", query_embedding=[1.0, 0.0]))
    retaining.close()

    assert storage.list_query_logs(owner_scope="drop")[0].query_embedding is None
    assert storage.list_query_logs(owner_scope="keep")[0].query_embedding == [1.0, 0.0]


class _FailingLogStore:
    def append_query_log(self, entry):  # noqa: ARG002
        raise RuntimeError("log table unavailable")


def test_log_query_swallows_store_failures(caplog) -> None:
    analytics = QueryAnalyticsLogger(_FailingLogStore())

    with caplog.at_level(logging.WARNING, logger="semsearch.analytics"):
        analytics.log_query(_entry("lost"))
        analytics.flush()
    analytics.close()

    assert "Failed to log semantic query" in caplog.text


def test_log_query_after_close_does_not_raise(storage) -> None:
    analytics = QueryAnalyticsLogger(storage)
    analytics.close()

    analytics.log_query(_entry("late"))

    assert storage.list_query_logs(owner_scope="org-1") == []
