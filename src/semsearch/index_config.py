"""
Configuration helpers for local index storage and search.
"""

from __future__ import annotations

import os
from pathlib import Path


DEFAULT_DB_PATH = "~/.semsearch/index.duckdb"
ENV_DB_PATH = "SEMSEARCH_DB_PATH"
ENV_MODEL_DIMENSIONS = "SEMSEARCH_MODEL_DIMENSIONS"
ENV_QUERY_TIMEOUT = "SEMSEARCH_QUERY_TIMEOUT"
ENV_RETAIN_QUERY_EMBEDDINGS = "SEMSEARCH_RETAIN_QUERY_EMBEDDINGS"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) SEMSEARCH_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def parse_model_dimensions(raw: str | None) -> dict[str, int]:
    """Parse ``model=dim`` pairs separated by commas."""
    if raw is None or not raw.strip():
        return {}

    dimensions: dict[str, int] = {}
    for part in raw.split(","):
        item = part.strip()
        if not item:
            continue
        model, sep, value = item.rpartition("=")
        model = model.strip()
        if not sep or not model:
            raise ValueError(f"Invalid model dimension entry: {item!r}")
        try:
            dim = int(value.strip())
        except ValueError:
            raise ValueError(f"Invalid dimension for model {model!r}: {value!r}") from None
        if dim <= 0:
            raise ValueError(f"Dimension for model {model!r} must be positive, got {dim}")
        dimensions[model] = dim
    return dimensions


def resolve_model_dimensions(
    override: dict[str, int] | None = None,
) -> dict[str, int]:
    """Return the declared embedding dimension per model."""
    if override is not None:
        return dict(override)
    return parse_model_dimensions(os.getenv(ENV_MODEL_DIMENSIONS))


def resolve_query_timeout(override: float | None = None) -> float | None:
    """Return the default query timeout in seconds, or None for no timeout."""
    if override is not None:
        return override
    raw = os.getenv(ENV_QUERY_TIMEOUT)
    if raw is None or not raw.strip():
        return None
    timeout = float(raw)
    if timeout < 0:
        raise ValueError(f"{ENV_QUERY_TIMEOUT} must be non-negative, got {raw!r}")
    return timeout


def resolve_retain_query_embeddings(override: bool | None = None) -> bool:
    """Return whether query vectors are persisted alongside query log entries."""
    if override is not None:
        return override
    raw = os.getenv(ENV_RETAIN_QUERY_EMBEDDINGS, "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"{ENV_RETAIN_QUERY_EMBEDDINGS} must be a boolean, got {raw!r}")
