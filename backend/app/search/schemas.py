"""Pydantic models shared by the search engines, the orchestrator and the API.

``SearchResponse`` and its nested models serialize with camelCase keys
(``pageSize``, ``searchMetadata`` ...) because that is the wire format the
web client and the cache entries use. Result items keep their column
names (``plc_id``, ``relevance_score`` ...).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SearchStrategy(str, Enum):
    """Execution strategy picked for a query."""

    fulltext = "fulltext"
    similarity = "similarity"
    hybrid = "hybrid"


SEARCHABLE_FIELDS: frozenset[str] = frozenset(
    {
        "description",
        "make",
        "model",
        "tag_id",
        "site_name",
        "cell_name",
        "equipment_name",
        "equipment_type",
        "ip_address",
        "firmware_version",
    }
)

SORTABLE_FIELDS: frozenset[str] = frozenset(
    {
        "relevance",
        "tag_id",
        "make",
        "model",
        "site_name",
        "cell_name",
        "equipment_name",
        "equipment_type",
    }
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchQuery(_CamelModel):
    """A validated search request. Built per request, never mutated."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    q: str
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1)
    fields: tuple[str, ...] | None = None
    sort_by: str | None = None
    sort_order: Literal["ASC", "DESC"] = "DESC"
    include_highlights: bool = True
    max_results: int = Field(default=1000, ge=1)

    @field_validator("sort_order", mode="before")
    @classmethod
    def _upper_sort_order(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @field_validator("sort_by")
    @classmethod
    def _check_sort_by(cls, value: str | None) -> str | None:
        if value is not None and value not in SORTABLE_FIELDS:
            raise ValueError(f"Sort field must be one of: {', '.join(sorted(SORTABLE_FIELDS))}")
        return value

    @field_validator("fields")
    @classmethod
    def _check_fields(cls, value: tuple[str, ...] | None) -> tuple[str, ...] | None:
        if value:
            unknown = set(value) - SEARCHABLE_FIELDS
            if unknown:
                raise ValueError(f"Invalid search field(s): {', '.join(sorted(unknown))}")
        return value


class SearchResultItem(BaseModel):
    """One PLC flattened with its equipment / cell / site ancestry.

    Attributes:
        plc_id: Primary key used to deduplicate across strategies.
        hierarchy_path: ``site > cell > equipment > tag_id``.
        relevance_score: Strategy-dependent score, never negative.
        highlighted_fields: Sanitized ``ts_headline`` fragments by field name.
        tags_text: Aggregated tag names and descriptions.
    """

    plc_id: str
    tag_id: str = ""
    plc_description: str = ""
    make: str = ""
    model: str = ""
    ip_address: str | None = None
    firmware_version: str | None = None
    equipment_id: str = ""
    equipment_name: str = ""
    equipment_type: str = ""
    cell_id: str = ""
    cell_name: str = ""
    line_number: str = "0"
    site_id: str = ""
    site_name: str = ""
    hierarchy_path: str = ""
    relevance_score: float = Field(default=0.0, ge=0.0)
    highlighted_fields: dict[str, str] | None = None
    tags_text: str | None = None


class Pagination(_CamelModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class SearchMetadata(_CamelModel):
    query: str
    execution_time_ms: float
    total_matches: int
    search_type: SearchStrategy
    suggested_corrections: list[str] | None = None


class SearchResponse(_CamelModel):
    """Page of results plus pagination and execution metadata."""

    data: list[SearchResultItem]
    pagination: Pagination
    search_metadata: SearchMetadata


class PerformanceMetrics(_CamelModel):
    """Per-phase timings of one search, in milliseconds."""

    cache_check_time: float = 0.0
    database_query_time: float = 0.0
    processing_time: float = 0.0
    total_time: float = 0.0


class AnalyticsRecord(_CamelModel):
    """A single search event kept in the cache store for 24 hours."""

    query: str
    execution_time: float
    result_count: int
    search_type: str
    timestamp: datetime
    user_id: str | None = None
    ip_address: str | None = None
    performance_metrics: PerformanceMetrics | None = None
