# @TEST tests/test_fts.py
# @TEST tests/test_similarity.py
# @TEST tests/test_hybrid_search.py

"""Full-text, similarity and hybrid search executors over ``mv_equipment_search``.

Full-text search: PostgreSQL ``to_tsquery`` prefix matching ranked by ``ts_rank``.
Similarity search: pg_trgm ``similarity`` over four composite fields.
Hybrid search: both run concurrently and are merged by ``plc_id`` with
fixed weights (full-text 0.7, similarity 0.3).

Each executor opens its own short-lived session so the hybrid path can run
both queries at once, and bounds every query with ``SET LOCAL
statement_timeout``. Database errors surface as ``SearchExecutionError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from sqlalchemy import func, literal_column, or_, select, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import equipment_search_view as mv
from app.search.errors import SearchExecutionError
from app.search.highlight import sanitize_highlight_fields
from app.search.params import get_search_params
from app.search.query_preprocessor import build_tsquery
from app.search.schemas import SearchResultItem

logger = logging.getLogger(__name__)

# View columns projected into SearchResultItem
_ITEM_COLUMNS = [c for c in mv.c if c.name != "combined_search_vector"]

# Fields that get a ts_headline fragment, keyed by SearchResultItem name
_HIGHLIGHT_COLUMNS = {
    "description": mv.c.plc_description,
    "make": mv.c.make,
    "model": mv.c.model,
    "tag_id": mv.c.tag_id,
    "site_name": mv.c.site_name,
    "cell_name": mv.c.cell_name,
    "equipment_name": mv.c.equipment_name,
}


def _str_or_none(value: object) -> str | None:
    return str(value) if value else None


def _row_to_item(row, highlight_fields: Iterable[str] | None = None) -> SearchResultItem:
    """Normalize one view row into a SearchResultItem.

    Highlight fragments are sanitized here, before the item leaves the
    executor.
    """
    return SearchResultItem(
        plc_id=str(row.plc_id or ""),
        tag_id=str(row.tag_id or ""),
        plc_description=str(row.plc_description or ""),
        make=str(row.make or ""),
        model=str(row.model or ""),
        ip_address=_str_or_none(row.ip_address),
        firmware_version=_str_or_none(row.firmware_version),
        equipment_id=str(row.equipment_id or ""),
        equipment_name=str(row.equipment_name or ""),
        equipment_type=str(row.equipment_type or ""),
        cell_id=str(row.cell_id or ""),
        cell_name=str(row.cell_name or ""),
        line_number=str(row.line_number or "0"),
        site_id=str(row.site_id or ""),
        site_name=str(row.site_name or ""),
        hierarchy_path=str(row.hierarchy_path or ""),
        relevance_score=max(0.0, float(row.relevance_score or 0.0)),
        highlighted_fields=sanitize_highlight_fields(row.highlighted_fields, highlight_fields),
        tags_text=_str_or_none(row.tags_text),
    )


class _ViewSearchEngine:
    """Shared session and timeout handling for executors on the search view."""

    label = "view"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        statement_timeout_ms: int = 5000,
    ) -> None:
        self._session_factory = session_factory
        self._statement_timeout_ms = int(statement_timeout_ms)

    async def _fetch(self, stmt) -> list:
        """Run ``stmt`` in a fresh transaction bounded by the statement timeout."""
        try:
            async with self._session_factory() as session:
                await session.execute(text(f"SET LOCAL statement_timeout = {self._statement_timeout_ms}"))
                result = await session.execute(stmt)
                return result.fetchall()
        except SQLAlchemyError as exc:
            raise SearchExecutionError(f"{self.label} search failed: {exc}") from exc


class FullTextSearchEngine(_ViewSearchEngine):
    """Ranked prefix-matching full-text search.

    Every token of the query becomes a ``token:*`` prefix term, AND-combined.
    Rows are ranked by ``ts_rank`` over the combined search vector; ties are
    broken by site, cell, equipment and tag id so the order is deterministic.

    Args:
        session_factory: Factory for async SQLAlchemy sessions.
        statement_timeout_ms: Server-side timeout applied to each query.
    """

    label = "Full-text"

    async def search(
        self,
        query: str,
        *,
        limit: int = 1000,
        include_highlights: bool = False,
        highlight_fields: Iterable[str] | None = None,
    ) -> list[SearchResultItem]:
        """Execute a full-text search for a cleaned query."""
        tsquery_expr = build_tsquery(query.split())
        if not tsquery_expr:
            return []

        params = get_search_params()
        config = literal_column(f"'{params['text_search_config']}'")
        tsquery = func.to_tsquery(config, tsquery_expr)
        rank = func.ts_rank(mv.c.combined_search_vector, tsquery).label("relevance_score")

        if include_highlights:
            options = literal_column(
                f"'StartSel={params['highlight_start_sel']}, StopSel={params['highlight_stop_sel']}'"
            )
            pairs = []
            for name, column in _HIGHLIGHT_COLUMNS.items():
                pairs.append(literal_column(f"'{name}'"))
                pairs.append(func.ts_headline(config, column, tsquery, options))
            highlights = func.jsonb_build_object(*pairs, type_=JSONB).label("highlighted_fields")
        else:
            highlights = literal_column("NULL").label("highlighted_fields")

        stmt = (
            select(*_ITEM_COLUMNS, rank, highlights)
            .where(mv.c.combined_search_vector.op("@@")(tsquery))
            .order_by(
                rank.desc(),
                mv.c.site_name,
                mv.c.cell_name,
                mv.c.equipment_name,
                mv.c.tag_id,
            )
            .limit(limit)
        )

        rows = await self._fetch(stmt)
        return [_row_to_item(row, highlight_fields) for row in rows]


class SimilaritySearchEngine(_ViewSearchEngine):
    """pg_trgm fuzzy search for short or typo-prone queries.

    The score of a row is the best trigram similarity across its
    description, make+model, tag id and site+cell+equipment name. Rows
    at or below the similarity floor are never returned.

    Args:
        session_factory: Factory for async SQLAlchemy sessions.
        statement_timeout_ms: Server-side timeout applied to each query.
        similarity_floor: Override of the minimum score (default 0.1).
    """

    label = "Similarity"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        statement_timeout_ms: int = 5000,
        similarity_floor: float | None = None,
    ) -> None:
        super().__init__(session_factory, statement_timeout_ms)
        self._floor = similarity_floor

    @property
    def similarity_floor(self) -> float:
        if self._floor is not None:
            return self._floor
        return float(get_search_params()["similarity_floor"])

    async def search(
        self,
        query: str,
        *,
        limit: int = 1000,
        include_highlights: bool = False,
        highlight_fields: Iterable[str] | None = None,
    ) -> list[SearchResultItem]:
        """Execute a trigram similarity search for a cleaned query.

        Highlight options are accepted for interface parity; similarity rows
        carry no fragments.
        """
        stripped = query.strip()
        if not stripped:
            return []

        floor = self.similarity_floor
        space = literal_column("' '")
        scores = [
            func.similarity(mv.c.plc_description, stripped),
            func.similarity(func.concat_ws(space, mv.c.make, mv.c.model), stripped),
            func.similarity(mv.c.tag_id, stripped),
            func.similarity(
                func.concat_ws(space, mv.c.site_name, mv.c.cell_name, mv.c.equipment_name),
                stripped,
            ),
        ]
        best = func.greatest(*scores).label("relevance_score")

        stmt = (
            select(*_ITEM_COLUMNS, best, literal_column("NULL").label("highlighted_fields"))
            .where(or_(*(score > floor for score in scores)))
            .order_by(best.desc())
            .limit(limit)
        )

        rows = await self._fetch(stmt)
        items = [_row_to_item(row) for row in rows]
        return [item for item in items if item.relevance_score > floor]


class HybridSearchEngine:
    """Concurrent full-text + similarity search with weighted merge.

    Both executors run at the same time, each capped at the hybrid
    candidate limit. Both must succeed: if either fails the whole search
    fails, after the other has finished.

    Args:
        fts_engine: A FullTextSearchEngine instance.
        similarity_engine: A SimilaritySearchEngine instance.
    """

    def __init__(
        self,
        fts_engine: FullTextSearchEngine,
        similarity_engine: SimilaritySearchEngine,
    ) -> None:
        self._fts_engine = fts_engine
        self._similarity_engine = similarity_engine

    async def search(
        self,
        query: str,
        *,
        limit: int = 1000,
        include_highlights: bool = False,
        highlight_fields: Iterable[str] | None = None,
    ) -> list[SearchResultItem]:
        """Run both executors concurrently and return the merged ranking."""
        params = get_search_params()
        candidate_limit = params["hybrid_candidate_limit"]

        outcomes = await asyncio.gather(
            self._fts_engine.search(
                query,
                limit=candidate_limit,
                include_highlights=include_highlights,
                highlight_fields=highlight_fields,
            ),
            self._similarity_engine.search(query, limit=candidate_limit),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        fulltext_items, similarity_items = outcomes

        merged = self.weighted_merge(
            fulltext_items,
            similarity_items,
            fulltext_weight=params["fulltext_weight"],
            similarity_weight=params["similarity_weight"],
        )
        logger.debug(
            "Hybrid merge: %d full-text + %d similarity -> %d rows",
            len(fulltext_items),
            len(similarity_items),
            len(merged),
        )
        return merged[:limit]

    @staticmethod
    def weighted_merge(
        fulltext: list[SearchResultItem],
        similarity: list[SearchResultItem],
        fulltext_weight: float = 0.7,
        similarity_weight: float = 0.3,
    ) -> list[SearchResultItem]:
        """Merge two ranked lists by ``plc_id`` with weighted scores.

        A row found by both gets ``fw * fulltext + sw * similarity``; a row
        found by one gets only that weighted contribution. The full-text copy
        of a row (with its highlights) wins. The result is sorted by merged
        score, descending and stable. Input items are not modified.

        Example::

            fulltext 0.8, similarity 0.5  ->  0.8*0.7 + 0.5*0.3 = 0.71
            similarity only 0.4           ->  0.4*0.3 = 0.12
        """
        merged: dict[str, SearchResultItem] = {}

        for item in fulltext:
            merged[item.plc_id] = item.model_copy(
                update={"relevance_score": item.relevance_score * fulltext_weight}
            )

        for item in similarity:
            contribution = item.relevance_score * similarity_weight
            existing = merged.get(item.plc_id)
            if existing is not None:
                merged[item.plc_id] = existing.model_copy(
                    update={"relevance_score": existing.relevance_score + contribution}
                )
            else:
                merged[item.plc_id] = item.model_copy(update={"relevance_score": contribution})

        return sorted(merged.values(), key=lambda r: r.relevance_score, reverse=True)
