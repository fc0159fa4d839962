"""
Typed query-time filters and options validated at the API boundary.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_MIN_SIMILARITY, DEFAULT_SEARCH_LIMIT


class SearchFilter(BaseModel):
    """Conjunctive constraints applied to candidates before ranking.

    ``document_ids=None`` leaves documents unconstrained, while an empty
    allow-list matches nothing.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    document_ids: tuple[str, ...] | None = Field(
        default=None, description="Only consider chunks of these documents"
    )
    exclude_document_ids: tuple[str, ...] = Field(
        default=(), description="Never return chunks of these documents"
    )
    owner_scope: str | None = Field(
        default=None, description="Tenant/organization the chunks must belong to"
    )
    case_id: str | None = Field(
        default=None, description="Case id the chunk metadata must carry"
    )
    model: str | None = Field(
        default=None, description="Embedding model the stored vectors must come from"
    )

    @field_validator("document_ids", "exclude_document_ids")
    @classmethod
    def _reject_blank_ids(cls, value: tuple[str, ...] | None) -> tuple[str, ...] | None:
        if value is not None and any(not item.strip() for item in value):
            raise ValueError("document ids must be non-empty strings")
        return value

    @field_validator("owner_scope", "case_id", "model")
    @classmethod
    def _reject_blank_scalars(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("filter values must be non-empty strings")
        return value

    def with_owner_scope(self, owner_scope: str) -> SearchFilter:
        return self.model_copy(update={"owner_scope": owner_scope})

    def excluding(self, document_id: str) -> SearchFilter:
        if document_id in self.exclude_document_ids:
            return self
        return self.model_copy(
            update={"exclude_document_ids": (*self.exclude_document_ids, document_id)}
        )


class SearchOptions(BaseModel):
    """Limit, threshold and scope of a similarity query."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    limit: int = Field(default=DEFAULT_SEARCH_LIMIT, ge=1)
    min_similarity: float = Field(default=DEFAULT_MIN_SIMILARITY, ge=-1.0, le=1.0)
    filter: SearchFilter = Field(default_factory=SearchFilter)
    timeout: float | None = Field(
        default=None, ge=0, description="Seconds before the query is cancelled"
    )


class HybridSearchOptions(BaseModel):
    """Limit and scope of a hybrid query; its similarity threshold is fixed."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    limit: int = Field(default=DEFAULT_SEARCH_LIMIT, ge=1)
    filter: SearchFilter = Field(default_factory=SearchFilter)
    timeout: float | None = Field(
        default=None, ge=0, description="Seconds before the query is cancelled"
    )
