# @TEST tests/test_search_service.py

"""Search orchestration: sanitize, cache, dispatch, paginate, record.

Flow of :meth:`SearchService.search`::

    sanitize -> cache lookup -> strategy -> executor(s) -> sort -> paginate
             -> response -> cache store + analytics (best effort)

Only ``InvalidQueryError`` and ``SearchExecutionError`` reach the caller.
The cache layer absorbs its own failures, so a dead Redis only makes
searches slower.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.config import Settings
from app.search.analytics import SearchAnalytics
from app.search.cache import CacheLayer, build_cache_key
from app.search.engine import FullTextSearchEngine, HybridSearchEngine, SimilaritySearchEngine
from app.search.errors import InvalidQueryError, SearchExecutionError
from app.search.indexer import SearchViewRefresher
from app.search.query_preprocessor import analyze_query
from app.search.schemas import (
    AnalyticsRecord,
    Pagination,
    PerformanceMetrics,
    SearchMetadata,
    SearchQuery,
    SearchResponse,
    SearchResultItem,
    SearchStrategy,
)

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)


def paginate(
    items: list[SearchResultItem],
    page: int,
    page_size: int,
    max_results: int,
) -> tuple[list[SearchResultItem], Pagination]:
    """Slice one 1-indexed page out of a ranked result list.

    ``total`` is capped at ``max_results``; a page past the end is empty.
    """
    total = min(len(items), max_results)
    offset = (page - 1) * page_size
    page_items = items[:total][offset : offset + page_size]
    pagination = Pagination(
        page=page,
        page_size=page_size,
        total=total,
        total_pages=math.ceil(total / page_size) if page_size else 0,
        has_next=offset + page_size < total,
        has_prev=page > 1,
    )
    return page_items, pagination


def sort_results(items: list[SearchResultItem], sort_by: str | None, sort_order: str) -> list[SearchResultItem]:
    """Re-order results by a field; relevance order is kept for ``relevance``/None."""
    if not sort_by or sort_by == "relevance":
        return items
    return sorted(
        items,
        key=lambda item: str(getattr(item, sort_by) or "").lower(),
        reverse=sort_order == "DESC",
    )


class SearchService:
    """Facade over the search executors, the cache and analytics.

    Args:
        cache: Shared cache layer (may be permanently disconnected).
        fts_engine: Full-text executor.
        similarity_engine: Trigram similarity executor.
        hybrid_engine: Merger of the two; built from them when omitted.
        analytics: Analytics recorder; built on ``cache`` when omitted.
        refresher: Search view refresher used by :meth:`refresh_search_view`.
        cache_ttl: Lifetime of a cached response in seconds.
        slow_query_ms: Searches slower than this are logged as warnings.
    """

    def __init__(
        self,
        cache: CacheLayer,
        fts_engine: FullTextSearchEngine,
        similarity_engine: SimilaritySearchEngine,
        hybrid_engine: HybridSearchEngine | None = None,
        analytics: SearchAnalytics | None = None,
        refresher: SearchViewRefresher | None = None,
        *,
        cache_ttl: int = 300,
        slow_query_ms: float = 100.0,
    ) -> None:
        self._cache = cache
        self._analytics = analytics or SearchAnalytics(cache)
        self._refresher = refresher
        self._cache_ttl = cache_ttl
        self._slow_query_ms = slow_query_ms
        self._engines = {
            SearchStrategy.fulltext: fts_engine,
            SearchStrategy.similarity: similarity_engine,
            SearchStrategy.hybrid: hybrid_engine or HybridSearchEngine(fts_engine, similarity_engine),
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        cache: CacheLayer,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> SearchService:
        """Wire a service from application settings."""
        timeout_ms = settings.SEARCH_STATEMENT_TIMEOUT_MS
        return cls(
            cache=cache,
            fts_engine=FullTextSearchEngine(session_factory, statement_timeout_ms=timeout_ms),
            similarity_engine=SimilaritySearchEngine(session_factory, statement_timeout_ms=timeout_ms),
            analytics=SearchAnalytics(cache, ttl_seconds=settings.SEARCH_ANALYTICS_TTL),
            refresher=SearchViewRefresher(engine, timeout_seconds=settings.SEARCH_REFRESH_TIMEOUT_SECONDS),
            cache_ttl=settings.SEARCH_CACHE_TTL,
            slow_query_ms=settings.SEARCH_SLOW_QUERY_MS,
        )

    @property
    def cache(self) -> CacheLayer:
        return self._cache

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: SearchQuery,
        *,
        user_id: str | None = None,
        ip_address: str | None = None,
    ) -> SearchResponse:
        """Execute a search and return one page of ranked results.

        Raises:
            InvalidQueryError: The query is empty after sanitization.
            SearchExecutionError: A database query failed or timed out.
        """
        start = time.perf_counter()
        analysis = analyze_query(query.q)
        if not analysis.cleaned:
            raise InvalidQueryError("Search query must be at least 1 character long")

        cache_start = time.perf_counter()
        cache_key = build_cache_key(query)
        cached = await self._get_cached(cache_key)
        cache_check_ms = _elapsed_ms(cache_start)
        if cached is not None:
            logger.info(
                "Search cache hit for %r",
                analysis.cleaned,
                extra={"query": analysis.cleaned, "cache_check_time": cache_check_ms},
            )
            return cached

        strategy = analysis.strategy
        db_start = time.perf_counter()
        try:
            results = await self._engines[strategy].search(
                analysis.cleaned,
                limit=query.max_results,
                include_highlights=query.include_highlights,
                highlight_fields=query.fields,
            )
        except SearchExecutionError as exc:
            logger.error(
                "Search execution failed for %r: %s",
                query.q,
                exc,
                extra={"query": query.q, "search_type": strategy.value, "error": str(exc)},
            )
            raise
        database_query_ms = _elapsed_ms(db_start)

        processing_start = time.perf_counter()
        ordered = sort_results(results, query.sort_by, query.sort_order)
        page_items, pagination = paginate(ordered, query.page, query.page_size, query.max_results)
        processing_ms = _elapsed_ms(processing_start)
        total_ms = _elapsed_ms(start)

        response = SearchResponse(
            data=page_items,
            pagination=pagination,
            search_metadata=SearchMetadata(
                query=analysis.cleaned,
                execution_time_ms=total_ms,
                total_matches=pagination.total,
                search_type=strategy,
            ),
        )
        metrics = PerformanceMetrics(
            cache_check_time=cache_check_ms,
            database_query_time=database_query_ms,
            processing_time=processing_ms,
            total_time=total_ms,
        )
        self._log_performance(analysis.cleaned, strategy, pagination.total, metrics)

        await self._store_cached(cache_key, response)
        await self._record_analytics(
            AnalyticsRecord(
                query=analysis.cleaned,
                execution_time=total_ms,
                result_count=pagination.total,
                search_type=strategy.value,
                timestamp=datetime.now(timezone.utc),
                user_id=user_id,
                ip_address=ip_address,
                performance_metrics=metrics,
            )
        )
        return response

    def _log_performance(
        self,
        query: str,
        strategy: SearchStrategy,
        result_count: int,
        metrics: PerformanceMetrics,
    ) -> None:
        fields = {
            "query": query,
            "search_type": strategy.value,
            "result_count": result_count,
            "total_time": metrics.total_time,
            "cache_check_time": metrics.cache_check_time,
            "database_query_time": metrics.database_query_time,
            "processing_time": metrics.processing_time,
        }
        if metrics.total_time > self._slow_query_ms:
            logger.warning(
                "Search performance threshold exceeded: %r took %.1f ms (%s)",
                query,
                metrics.total_time,
                strategy.value,
                extra=fields,
            )
        else:
            logger.info(
                "Search completed within performance threshold: %r in %.1f ms",
                query,
                metrics.total_time,
                extra=fields,
            )

    # ------------------------------------------------------------------
    # Best-effort side effects
    # ------------------------------------------------------------------

    async def _get_cached(self, key: str) -> SearchResponse | None:
        raw = await self._cache.get(key)
        if raw is None:
            return None
        try:
            return SearchResponse.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cache entry", extra={"key": key})
            return None

    async def _store_cached(self, key: str, response: SearchResponse) -> None:
        """Cache a response. Failures are absorbed by the cache layer."""
        await self._cache.set(key, response.model_dump_json(by_alias=True), self._cache_ttl)

    async def _record_analytics(self, record: AnalyticsRecord) -> None:
        await self._analytics.record(record)

    # ------------------------------------------------------------------
    # Monitoring and maintenance
    # ------------------------------------------------------------------

    async def get_search_suggestions(self, partial_query: str, limit: int = 10) -> list[str]:
        """Return autocomplete suggestions for a partial query.

        Extension point: no suggestion source is wired yet, so this always
        returns an empty list.
        """
        return []

    async def get_search_metrics(self, time_range: str = "24h") -> list[AnalyticsRecord]:
        """Return analytics records for monitoring dashboards."""
        return await self._analytics.get_metrics(time_range)

    @staticmethod
    def summarize_metrics(records: list[AnalyticsRecord]) -> dict:
        return SearchAnalytics.summarize(records)

    async def refresh_search_view(self) -> None:
        """Recompute the search view.

        Raises:
            SearchExecutionError: If no refresher is configured, or the refresh fails.
        """
        if self._refresher is None:
            raise SearchExecutionError("Search view refresh is not configured")
        await self._refresher.refresh()
