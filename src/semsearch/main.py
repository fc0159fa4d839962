import json
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Annotated, Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from typer import BadParameter, Exit, Option, Typer

from .analytics import QueryAnalyticsLogger
from .errors import SearchError
from .index_config import (
    resolve_db_path,
    resolve_model_dimensions,
    resolve_query_timeout,
    resolve_retain_query_embeddings,
)
from .models import HybridSearchOptions, SearchFilter, SearchOptions
from .search import HybridResult, VectorSearchService
from .storage import DuckDBStorage, EmbeddingChunk, SearchResult

app = Typer(help="Semantic search over embedded document chunks.")
console = Console()

DbPathOption = Annotated[
    Optional[str],
    Option("--db-path", help="DuckDB index path (defaults to SEMSEARCH_DB_PATH)."),
]
ScopeOption = Annotated[
    str,
    Option("--scope", "-s", help="Owner scope (tenant/organization) to search within."),
]
VectorOption = Annotated[
    str,
    Option("--vector", "-v", help="Query embedding as a JSON array of numbers."),
]


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main(
    verbose: Annotated[
        bool, Option("--verbose", help="Log query parameters and timings.")
    ] = False,
) -> None:
    configure_logging(verbose)


@contextmanager
def open_service(db_path: Optional[str]) -> Iterator[VectorSearchService]:
    model_dimensions = resolve_model_dimensions()
    retain_embeddings = resolve_retain_query_embeddings()
    query_timeout = resolve_query_timeout()

    storage = DuckDBStorage(resolve_db_path(db_path), model_dimensions=model_dimensions)
    analytics = QueryAnalyticsLogger(storage, retain_embeddings=retain_embeddings)
    try:
        yield VectorSearchService(storage, analytics, default_timeout=query_timeout)
    finally:
        analytics.close()
        storage.close()


@contextmanager
def reported_errors() -> Iterator[None]:
    # Option validation and malformed SEMSEARCH_* settings raise ValueError.
    try:
        yield
    except (SearchError, ValueError) as exc:
        console.print(f"[bold red]Error:[/] {escape(str(exc))}")
        raise Exit(code=1)


def parse_vector(raw: str) -> list[float]:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise BadParameter(f"not valid JSON: {exc}") from exc
    if not isinstance(value, list) or not all(
        isinstance(item, (int, float)) and not isinstance(item, bool) for item in value
    ):
        raise BadParameter("expected a JSON array of numbers")
    return [float(item) for item in value]


def load_chunks(path: Path) -> list[EmbeddingChunk]:
    chunks: list[EmbeddingChunk] = []
    for line_no, line in enumerate(path.read_text().splitlines(), start=1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
            embedding = [float(value) for value in record["embedding"]]
            chunks.append(
                EmbeddingChunk(
                    id=record.get("id"),
                    document_id=str(record["document_id"]),
                    content=str(record.get("content", "")),
                    embedding=embedding,
                    model=str(record["model"]),
                    dimension=int(record.get("dimension", len(embedding))),
                    chunk_index=int(record["chunk_index"]),
                    owner_scope=record.get("owner_scope"),
                    metadata=dict(record.get("metadata") or {}),
                )
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise BadParameter(f"{path}:{line_no}: invalid chunk record ({exc})") from exc
    return chunks


def render_results(title: str, results: list[SearchResult]) -> None:
    if not results:
        console.print(f"[yellow]{title}: no results[/]")
        return
    table = Table(title=title, title_justify="left")
    table.add_column("#", justify="right")
    table.add_column("Document")
    table.add_column("Chunk")
    table.add_column("Similarity", justify="right")
    hybrid = any(isinstance(result, HybridResult) for result in results)
    if hybrid:
        table.add_column("Lexical")
        table.add_column("Score", justify="right")
    table.add_column("Content")
    for rank, result in enumerate(results, start=1):
        row = [str(rank), result.document_id, result.chunk_id, f"{result.similarity:.4f}"]
        if isinstance(result, HybridResult):
            row.extend(["yes" if result.lexical_match else "no", f"{result.score:.4f}"])
        row.append(result.content[:80])
        table.add_row(*row)
    console.print(table)


@app.command()
def insert(
    file: Annotated[
        Path,
        Option(
            "--file",
            "-f",
            exists=True,
            dir_okay=False,
            help="JSON Lines file with one chunk record per line.",
        ),
    ],
    db_path: DbPathOption = None,
) -> None:
    """Store pre-computed chunk embeddings."""
    chunks = load_chunks(file)
    with reported_errors(), open_service(db_path) as service:
        for chunk in chunks:
            service.insert(chunk)
    console.print(f"[bold green]Stored {len(chunks)} chunks.[/]")


@app.command()
def search(
    vector: VectorOption,
    scope: ScopeOption,
    limit: Annotated[int, Option("--limit", "-n")] = 10,
    min_similarity: Annotated[float, Option("--min-similarity")] = 0.7,
    document_id: Annotated[
        Optional[list[str]], Option("--document-id", help="Restrict to document (repeatable).")
    ] = None,
    case_id: Annotated[Optional[str], Option("--case-id")] = None,
    db_path: DbPathOption = None,
) -> None:
    """Rank chunks by cosine similarity to a query embedding."""
    query_vector = parse_vector(vector)
    with reported_errors(), open_service(db_path) as service:
        options = SearchOptions(
            limit=limit,
            min_similarity=min_similarity,
            filter=SearchFilter(document_ids=document_id or None, case_id=case_id),
        )
        results = service.search(query_vector, owner_scope=scope, options=options)
    render_results("Semantic search", results)


@app.command()
def hybrid(
    vector: VectorOption,
    text: Annotated[str, Option("--text", "-t", help="Query text for lexical matching.")],
    scope: ScopeOption,
    limit: Annotated[int, Option("--limit", "-n")] = 10,
    case_id: Annotated[Optional[str], Option("--case-id")] = None,
    db_path: DbPathOption = None,
) -> None:
    """Rank chunks by similarity blended with substring matches of the query text."""
    query_vector = parse_vector(vector)
    with reported_errors(), open_service(db_path) as service:
        options = HybridSearchOptions(limit=limit, filter=SearchFilter(case_id=case_id))
        results = service.hybrid_search(
            query_vector, text, owner_scope=scope, options=options
        )
    render_results("Hybrid search", results)


@app.command()
def similar(
    document_id: Annotated[str, Option("--document-id", "-d")],
    scope: ScopeOption,
    limit: Annotated[int, Option("--limit", "-n")] = 5,
    min_similarity: Annotated[float, Option("--min-similarity")] = 0.8,
    db_path: DbPathOption = None,
) -> None:
    """Find chunks of other documents similar to a document's first chunk."""
    with reported_errors(), open_service(db_path) as service:
        results = service.find_similar(
            document_id,
            owner_scope=scope,
            limit=limit,
            min_similarity=min_similarity,
        )
    render_results(f"Similar to {document_id}", results)


@app.command()
def analytics(
    scope: ScopeOption,
    start: Annotated[Optional[datetime], Option("--start")] = None,
    end: Annotated[Optional[datetime], Option("--end")] = None,
    db_path: DbPathOption = None,
) -> None:
    """Summarize logged queries for an owner scope."""
    with reported_errors(), open_service(db_path) as service:
        summary = service.get_analytics(scope, start=start, end=end)

    console.print(f"[bold]Total queries:[/] {summary.total_queries}")
    console.print(f"[bold]Avg execution time:[/] {summary.avg_execution_time_ms:.2f} ms")
    console.print(f"[bold]Avg result count:[/] {summary.avg_result_count:.2f}")
    if summary.recent_queries:
        table = Table(title="Recent queries", title_justify="left")
        table.add_column("When")
        table.add_column("Type")
        table.add_column("Query")
        table.add_column("Results", justify="right")
        table.add_column("ms", justify="right")
        for entry in summary.recent_queries:
            table.add_row(
                str(entry.created_at),
                entry.search_type,
                entry.query_text[:60],
                str(entry.result_count),
                f"{entry.execution_time_ms:.1f}",
            )
        console.print(table)
