"""
Query analytics: fire-and-forget logging and aggregate statistics.

Writes happen on a background worker so a slow or failing log store never
delays or fails the search that produced the entry.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock

from .constants import RECENT_QUERIES_LIMIT
from .storage import QueryLogEntry, QueryLogStore, SearchAnalytics

logger = logging.getLogger(__name__)


class QueryAnalyticsLogger:
    """Record executed queries and summarize them per owner scope."""

    def __init__(
        self,
        storage: QueryLogStore,
        *,
        retain_embeddings: bool = False,
    ) -> None:
        self.storage = storage
        self.retain_embeddings = retain_embeddings
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="semsearch-analytics",
        )
        self._pending: set[Future[None]] = set()
        self._lock = Lock()

    def log_query(self, entry: QueryLogEntry) -> None:
        """Schedule *entry* for persistence. Never raises."""
        try:
            prepared = self._prepare(entry)
            future = self._executor.submit(self._write, prepared)
        except Exception:
            logger.warning("Dropping query log entry", exc_info=True)
            return

        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def flush(self, timeout: float | None = None) -> None:
        """Wait for scheduled writes to finish."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)

    def get_analytics(
        self,
        owner_scope: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        recent_limit: int = RECENT_QUERIES_LIMIT,
    ) -> SearchAnalytics:
        """Aggregate logged queries for *owner_scope* within an optional date range."""
        total, avg_time, avg_results = self.storage.summarize_query_logs(
            owner_scope=owner_scope,
            start=start,
            end=end,
        )
        if total == 0:
            return SearchAnalytics(
                total_queries=0,
                avg_execution_time_ms=0.0,
                avg_result_count=0.0,
                recent_queries=[],
            )
        recent = self.storage.list_query_logs(
            owner_scope=owner_scope,
            start=start,
            end=end,
            limit=recent_limit,
        )
        return SearchAnalytics(
            total_queries=total,
            avg_execution_time_ms=avg_time,
            avg_result_count=avg_results,
            recent_queries=recent,
        )

    def _prepare(self, entry: QueryLogEntry) -> QueryLogEntry:
        created_at = entry.created_at or datetime.now(timezone.utc)
        embedding = entry.query_embedding if self.retain_embeddings else None
        return replace(entry, created_at=created_at, query_embedding=embedding)

    def _write(self, entry: QueryLogEntry) -> None:
        try:
            self.storage.append_query_log(entry)
        except Exception:
            logger.warning(
                "Failed to log %s query for scope %r",
                entry.search_type,
                entry.owner_scope,
                exc_info=True,
            )

    def _discard(self, future: Future[None]) -> None:
        with self._lock:
            self._pending.discard(future)
