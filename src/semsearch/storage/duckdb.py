"""
DuckDB storage backend for embedding chunks and query logs.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import uuid
from concurrent import futures
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import duckdb

from ..cancellation import CancellationToken, Deadline
from ..errors import (
    Cancelled,
    DimensionMismatch,
    DuplicateChunk,
    InvalidChunk,
    StoreUnavailable,
)
from ..models import SearchFilter
from .base import EmbeddingChunk, QueryLogEntry, SearchResult, StoredChunk

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05
_CHUNK_COLUMNS = (
    "id, document_id, content, embedding, model, dimension, chunk_index, "
    "owner_scope, metadata_json, created_at"
)
_QUERY_LOG_COLUMNS = (
    "query_text, search_type, query_embedding, result_count, result_document_ids, "
    "user_id, owner_scope, execution_time_ms, created_at"
)


def _stable_id(prefix: str, value: str) -> str:
    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()
    return f"{prefix}_{digest}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(value: datetime | None) -> datetime | None:
    # TIMESTAMP columns hold naive UTC values.
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class DuckDBStorage:
    """DuckDB-backed persistence for embedding chunks and the query log."""

    def __init__(
        self,
        db_path: str,
        *,
        initialize: bool = True,
        model_dimensions: dict[str, int] | None = None,
        max_query_workers: int = 4,
    ) -> None:
        self.db_path = str(Path(db_path).expanduser().resolve())
        self.model_dimensions = dict(model_dimensions or {})
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = duckdb.connect(self.db_path)
        except duckdb.Error as exc:
            raise StoreUnavailable(f"Cannot open index at {self.db_path}: {exc}") from exc
        self._executor = futures.ThreadPoolExecutor(
            max_workers=max_query_workers,
            thread_name_prefix="semsearch-query",
        )
        if initialize:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._executor.shutdown(wait=True)
        self._conn.close()

    def initialize(self) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS embedding_chunks (
                    id VARCHAR PRIMARY KEY,
                    document_id VARCHAR NOT NULL,
                    content VARCHAR NOT NULL,
                    embedding DOUBLE[] NOT NULL,
                    model VARCHAR NOT NULL,
                    dimension INTEGER NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    owner_scope VARCHAR,
                    metadata_json VARCHAR NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP NOT NULL,
                    UNIQUE(document_id, chunk_index)
                );
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS search_queries (
                    id VARCHAR PRIMARY KEY,
                    query_text VARCHAR NOT NULL,
                    search_type VARCHAR NOT NULL,
                    query_embedding DOUBLE[],
                    result_count INTEGER NOT NULL,
                    result_document_ids VARCHAR[] NOT NULL,
                    user_id VARCHAR,
                    owner_scope VARCHAR,
                    execution_time_ms DOUBLE NOT NULL,
                    created_at TIMESTAMP NOT NULL
                );
                """
            )

    # ------------------------------------------------------------------
    # Embedding chunks
    # ------------------------------------------------------------------

    def insert(self, chunk: EmbeddingChunk) -> StoredChunk:
        self._validate_chunk(chunk)
        chunk_id = chunk.id or self.make_chunk_id(chunk.document_id, chunk.chunk_index)
        created_at = _utcnow()
        embedding = [float(value) for value in chunk.embedding]

        with self._cursor() as cursor:
            self._check_declared_dimension(cursor, chunk.model, len(embedding))
            try:
                cursor.execute(
                    f"""
                    INSERT INTO embedding_chunks ({_CHUNK_COLUMNS})
                    VALUES (?, ?, ?, ?::DOUBLE[], ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        chunk_id,
                        chunk.document_id,
                        chunk.content,
                        embedding,
                        chunk.model,
                        chunk.dimension,
                        chunk.chunk_index,
                        chunk.owner_scope,
                        json.dumps(chunk.metadata, sort_keys=True),
                        created_at,
                    ],
                )
            except duckdb.ConstraintException as exc:
                if not _is_duplicate_key(exc):
                    raise InvalidChunk(
                        f"Chunk {chunk_id} violates a constraint: {exc}"
                    ) from exc
                raise DuplicateChunk(
                    document_id=chunk.document_id,
                    chunk_index=chunk.chunk_index,
                ) from exc
            except duckdb.Error as exc:
                raise StoreUnavailable(f"Failed to insert chunk {chunk_id}: {exc}") from exc

        logger.info(
            "Stored chunk %s (document=%s, index=%d, model=%s)",
            chunk_id,
            chunk.document_id,
            chunk.chunk_index,
            chunk.model,
        )
        return StoredChunk(
            id=chunk_id,
            document_id=chunk.document_id,
            content=chunk.content,
            embedding=embedding,
            model=chunk.model,
            dimension=chunk.dimension,
            chunk_index=chunk.chunk_index,
            owner_scope=chunk.owner_scope,
            metadata=dict(chunk.metadata),
            created_at=created_at,
        )

    def find_by_document(
        self,
        document_id: str,
        *,
        owner_scope: str | None = None,
        limit: int | None = None,
    ) -> list[StoredChunk]:
        sql = f"""
            SELECT {_CHUNK_COLUMNS}
            FROM embedding_chunks
            WHERE document_id = ?
        """
        params: list[Any] = [document_id]
        if owner_scope is not None:
            sql += " AND owner_scope = ?"
            params.append(owner_scope)
        sql += " ORDER BY chunk_index ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(limit, 0))

        rows = self._fetchall(sql, params)
        return [self._row_to_stored_chunk(row) for row in rows]

    def count_chunks(self, *, owner_scope: str | None = None) -> int:
        sql = "SELECT COUNT(*) FROM embedding_chunks"
        params: list[Any] = []
        if owner_scope is not None:
            sql += " WHERE owner_scope = ?"
            params.append(owner_scope)
        rows = self._fetchall(sql, params)
        return int(rows[0][0]) if rows else 0

    def query_by_similarity(
        self,
        query_vector: list[float],
        *,
        search_filter: SearchFilter,
        limit: int,
        min_similarity: float | None,
        text_contains: str | None = None,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> list[SearchResult]:
        if limit <= 0:
            return []
        if search_filter.document_ids is not None and not search_filter.document_ids:
            return []

        vector = [float(value) for value in query_vector]
        clauses, params = self._filter_clauses(search_filter)
        if text_contains is not None:
            clauses.append("contains(lower(content), lower(?))")
            params.append(text_contains)

        where = "".join(f"\n  AND {clause}" for clause in clauses)
        # Only vectors of the query's dimension are comparable; the CASE keeps
        # list_cosine_similarity from ever seeing a mismatched row.
        sql = f"""
            SELECT id, content, document_id, metadata_json, similarity
            FROM (
                SELECT
                    id,
                    content,
                    document_id,
                    metadata_json,
                    CASE WHEN dimension = ?
                        THEN list_cosine_similarity(embedding, ?::DOUBLE[])
                    END AS similarity
                FROM embedding_chunks
                WHERE dimension = ?{where}
            ) scored
            WHERE similarity IS NOT NULL
        """
        sql_params: list[Any] = [len(vector), vector, len(vector), *params]
        if min_similarity is not None:
            sql += " AND similarity > ?"
            sql_params.append(float(min_similarity))
        sql += "\nORDER BY similarity DESC, id ASC\nLIMIT ?"
        sql_params.append(limit)

        logger.debug(
            "Similarity query: dim=%d limit=%d min_similarity=%s filters=%s text=%r",
            len(vector),
            limit,
            min_similarity,
            search_filter.model_dump(exclude_defaults=True),
            text_contains,
        )
        rows = self._fetchall(
            sql, sql_params, cancel_token=cancel_token, timeout=timeout
        )
        return [
            SearchResult(
                chunk_id=str(row[0]),
                content=str(row[1]),
                document_id=str(row[2]),
                metadata=json.loads(str(row[3])),
                similarity=float(row[4]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Query log
    # ------------------------------------------------------------------

    def append_query_log(self, entry: QueryLogEntry) -> None:
        created_at = _as_naive_utc(entry.created_at) or _utcnow()
        embedding = (
            [float(value) for value in entry.query_embedding]
            if entry.query_embedding is not None
            else None
        )
        with self._cursor() as cursor:
            try:
                cursor.execute(
                    f"""
                    INSERT INTO search_queries (id, {_QUERY_LOG_COLUMNS})
                    VALUES (?, ?, ?, ?::DOUBLE[], ?, ?::VARCHAR[], ?, ?, ?, ?)
                    """,
                    [
                        uuid.uuid4().hex,
                        entry.query_text,
                        entry.search_type,
                        embedding,
                        entry.result_count,
                        list(entry.result_document_ids),
                        entry.user_id,
                        entry.owner_scope,
                        float(entry.execution_time_ms),
                        created_at,
                    ],
                )
            except duckdb.Error as exc:
                raise StoreUnavailable(f"Failed to append query log: {exc}") from exc

    def list_query_logs(
        self,
        *,
        owner_scope: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[QueryLogEntry]:
        where, params = self._query_log_range(owner_scope, start, end)
        sql = f"""
            SELECT {_QUERY_LOG_COLUMNS}
            FROM search_queries
            WHERE {where}
            ORDER BY created_at DESC, id ASC
        """
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(limit, 0))
        rows = self._fetchall(sql, params)
        return [
            QueryLogEntry(
                query_text=str(row[0]),
                search_type=row[1],
                query_embedding=list(row[2]) if row[2] is not None else None,
                result_count=int(row[3]),
                result_document_ids=[str(doc_id) for doc_id in row[4]],
                user_id=row[5],
                owner_scope=row[6],
                execution_time_ms=float(row[7]),
                created_at=row[8],
            )
            for row in rows
        ]

    def summarize_query_logs(
        self,
        *,
        owner_scope: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> tuple[int, float, float]:
        where, params = self._query_log_range(owner_scope, start, end)
        rows = self._fetchall(
            f"""
            SELECT
                COUNT(*),
                coalesce(AVG(execution_time_ms), 0),
                coalesce(AVG(result_count), 0)
            FROM search_queries
            WHERE {where}
            """,
            params,
        )
        if not rows:
            return 0, 0.0, 0.0
        count, avg_time, avg_results = rows[0]
        return int(count), float(avg_time), float(avg_results)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def make_chunk_id(document_id: str, chunk_index: int) -> str:
        return _stable_id("chunk", f"{document_id}:{chunk_index}")

    def _cursor(self) -> duckdb.DuckDBPyConnection:
        try:
            return self._conn.cursor()
        except duckdb.Error as exc:
            raise StoreUnavailable(f"Index at {self.db_path} is unavailable: {exc}") from exc

    def _fetchall(
        self,
        sql: str,
        params: list[Any],
        *,
        cancel_token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> list[tuple[Any, ...]]:
        deadline = Deadline(timeout)
        if _cancel_requested(cancel_token, deadline):
            raise Cancelled("Query cancelled before it started.")

        with self._cursor() as cursor:
            try:
                if cancel_token is None and timeout is None:
                    return cursor.execute(sql, params).fetchall()
                return self._fetchall_interruptible(
                    cursor, sql, params, cancel_token=cancel_token, deadline=deadline
                )
            except duckdb.InterruptException as exc:
                raise Cancelled("Query interrupted.") from exc
            except duckdb.Error as exc:
                raise StoreUnavailable(f"Query against {self.db_path} failed: {exc}") from exc

    def _fetchall_interruptible(
        self,
        cursor: duckdb.DuckDBPyConnection,
        sql: str,
        params: list[Any],
        *,
        cancel_token: CancellationToken | None,
        deadline: Deadline,
    ) -> list[tuple[Any, ...]]:
        try:
            future = self._executor.submit(
                lambda: cursor.execute(sql, params).fetchall()
            )
        except RuntimeError as exc:
            raise StoreUnavailable(f"Index at {self.db_path} is closed.") from exc

        while True:
            remaining = deadline.remaining()
            poll = _POLL_INTERVAL if remaining is None else min(_POLL_INTERVAL, remaining)
            done, _ = futures.wait([future], timeout=poll)
            if done:
                return future.result()
            if _cancel_requested(cancel_token, deadline):
                break

        if future.cancel():
            logger.debug("Query cancelled while waiting for a worker")
            raise Cancelled("Query cancelled or timed out.")
        # A worker that has not reached execute() yet misses the first
        # interrupt, so keep interrupting until the query returns.
        while not future.done():
            cursor.interrupt()
            futures.wait([future], timeout=_POLL_INTERVAL)
        logger.debug("Query interrupted after cancellation")
        raise Cancelled("Query cancelled or timed out.")

    def _check_declared_dimension(
        self,
        cursor: duckdb.DuckDBPyConnection,
        model: str,
        actual: int,
    ) -> None:
        expected = self.model_dimensions.get(model)
        if expected is None:
            try:
                row = cursor.execute(
                    "SELECT dimension FROM embedding_chunks WHERE model = ? LIMIT 1",
                    [model],
                ).fetchone()
            except duckdb.Error as exc:
                raise StoreUnavailable(f"Failed to read model dimension: {exc}") from exc
            expected = int(row[0]) if row is not None else None
        if expected is not None and expected != actual:
            raise DimensionMismatch(model=model, expected=expected, actual=actual)

    @staticmethod
    def _validate_chunk(chunk: EmbeddingChunk) -> None:
        if chunk.chunk_index < 0:
            raise InvalidChunk(f"chunk_index must be non-negative, got {chunk.chunk_index}")
        if not chunk.embedding:
            raise InvalidChunk(f"Chunk {chunk.chunk_index} of {chunk.document_id!r} has no embedding")
        if len(chunk.embedding) != chunk.dimension:
            raise DimensionMismatch(
                model=chunk.model,
                expected=chunk.dimension,
                actual=len(chunk.embedding),
            )
        if not all(math.isfinite(value) for value in chunk.embedding):
            raise InvalidChunk("Embedding contains non-finite values")
        if not any(value != 0 for value in chunk.embedding):
            raise InvalidChunk("Embedding has zero magnitude")

    @staticmethod
    def _filter_clauses(search_filter: SearchFilter) -> tuple[list[str], list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        if search_filter.document_ids:
            placeholders = ", ".join(["?"] * len(search_filter.document_ids))
            clauses.append(f"document_id IN ({placeholders})")
            params.extend(search_filter.document_ids)
        if search_filter.exclude_document_ids:
            placeholders = ", ".join(["?"] * len(search_filter.exclude_document_ids))
            clauses.append(f"document_id NOT IN ({placeholders})")
            params.extend(search_filter.exclude_document_ids)
        if search_filter.owner_scope is not None:
            clauses.append("owner_scope = ?")
            params.append(search_filter.owner_scope)
        if search_filter.case_id is not None:
            clauses.append("json_extract_string(metadata_json, '$.case_id') = ?")
            params.append(search_filter.case_id)
        if search_filter.model is not None:
            clauses.append("model = ?")
            params.append(search_filter.model)
        return clauses, params

    @staticmethod
    def _query_log_range(
        owner_scope: str,
        start: datetime | None,
        end: datetime | None,
    ) -> tuple[str, list[Any]]:
        clauses = ["owner_scope = ?"]
        params: list[Any] = [owner_scope]
        if start is not None:
            clauses.append("created_at >= ?")
            params.append(_as_naive_utc(start))
        if end is not None:
            clauses.append("created_at <= ?")
            params.append(_as_naive_utc(end))
        return " AND ".join(clauses), params

    @staticmethod
    def _row_to_stored_chunk(row: tuple[Any, ...]) -> StoredChunk:
        return StoredChunk(
            id=str(row[0]),
            document_id=str(row[1]),
            content=str(row[2]),
            embedding=[float(value) for value in row[3]],
            model=str(row[4]),
            dimension=int(row[5]),
            chunk_index=int(row[6]),
            owner_scope=row[7],
            metadata=json.loads(str(row[8])),
            created_at=row[9],
        )


def _cancel_requested(
    cancel_token: CancellationToken | None,
    deadline: Deadline,
) -> bool:
    return (cancel_token is not None and cancel_token.cancelled) or deadline.expired


def _is_duplicate_key(exc: duckdb.ConstraintException) -> bool:
    # Primary key and UNIQUE violations both report "Duplicate key"; NOT NULL
    # and CHECK violations do not.
    return "duplicate key" in str(exc).lower()
