"""
Error taxonomy for semantic search operations.

Every error carries ``client_error``: True means the caller violated the
contract and the serving layer should answer with a client error; False
means an infrastructure condition the caller may retry.
"""

from __future__ import annotations


class SearchError(Exception):
    """Base class for errors raised by the search subsystem."""

    client_error: bool = True


class InvalidQuery(SearchError, ValueError):
    """Raised when a query vector or search options are malformed."""


class DimensionMismatch(SearchError, ValueError):
    """Raised when a vector length disagrees with its model's declared dimension."""

    def __init__(self, *, model: str, expected: int, actual: int) -> None:
        self.model = model
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding for model {model!r} has {actual} dimensions, expected {expected}."
        )


class DuplicateChunk(SearchError):
    """Raised when a chunk already exists for a (document_id, chunk_index) key."""

    def __init__(self, *, document_id: str, chunk_index: int) -> None:
        self.document_id = document_id
        self.chunk_index = chunk_index
        super().__init__(
            f"Chunk {chunk_index} of document {document_id!r} already exists."
        )


class NoEmbeddingForDocument(SearchError, LookupError):
    """Raised when a document has no stored embedding to search from."""

    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(f"No embedding stored for document {document_id!r}.")


class StoreUnavailable(SearchError):
    """Raised when the backing store cannot serve a request."""

    client_error = False


class Cancelled(SearchError):
    """Raised when a query is cancelled or exceeds its timeout."""

    client_error = False


class InvalidChunk(SearchError, ValueError):
    """Raised when a chunk cannot be stored as given."""
