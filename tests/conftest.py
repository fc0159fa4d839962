from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from semsearch.storage import DuckDBStorage, EmbeddingChunk


def make_chunk(
    document_id: str,
    embedding: list[float],
    *,
    chunk_index: int = 0,
    content: str = "",
    model: str = "m",
    owner_scope: str | None = "org-1",
    metadata: dict[str, Any] | None = None,
    chunk_id: str | None = None,
    dimension: int | None = None,
) -> EmbeddingChunk:
    return EmbeddingChunk(
        id=chunk_id,
        document_id=document_id,
        content=content or f"{document_id} chunk {chunk_index}",
        embedding=embedding,
        model=model,
        dimension=len(embedding) if dimension is None else dimension,
        chunk_index=chunk_index,
        owner_scope=owner_scope,
        metadata=metadata or {},
    )


@pytest.fixture()
def storage(tmp_path: Path):
    store = DuckDBStorage(str(tmp_path / "index.duckdb"))
    yield store
    store.close()


@pytest.fixture()
def two_chunk_storage(storage: DuckDBStorage) -> DuckDBStorage:
    """Chunk A [1, 0] in d1 and chunk B [0, 1] in d2."""
    storage.insert(make_chunk("d1", [1.0, 0.0], chunk_id="A"))
    storage.insert(make_chunk("d2", [0.0, 1.0], chunk_id="B"))
    return storage
