# @TEST tests/test_api_search.py

"""Search API endpoints for the PLC inventory.

Provides:
- ``GET /search/equipment`` -- Ranked search across PLCs and their ancestry.
- ``GET /search/suggestions`` -- Search suggestions (autocomplete).
- ``POST /search/refresh`` -- Refresh the equipment search view.
- ``GET /search/metrics`` -- Search performance metrics.
- ``GET /search/health`` -- Search service health check.

The strategy (full-text, similarity or hybrid) is chosen by the service
from the shape of the query; callers cannot force one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.search.errors import InvalidQueryError, SearchError, SearchExecutionError
from app.search.schemas import SearchQuery, SearchResponse
from app.search.service import SearchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


def get_search_service(request: Request) -> SearchService:
    """Return the SearchService built during application startup.

    Extracted as a dependency so tests can override it.
    """
    return request.app.state.search_service


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Equipment search
# ---------------------------------------------------------------------------


@router.get("/equipment", response_model=SearchResponse)
async def search_equipment(
    request: Request,
    q: str = Query(..., min_length=1, max_length=100, description="Search query"),  # noqa: B008
    page: int = Query(1, ge=1, le=1000),  # noqa: B008
    page_size: int = Query(50, ge=1, le=100, alias="pageSize"),  # noqa: B008
    max_results: int = Query(1000, ge=1, le=10000, alias="maxResults"),  # noqa: B008
    fields: list[str] | None = Query(None, description="Restrict highlights to these fields"),  # noqa: B008
    sort_by: str | None = Query(None, alias="sortBy"),  # noqa: B008
    sort_order: str = Query("DESC", alias="sortOrder", pattern="(?i)^(asc|desc)$"),  # noqa: B008
    include_highlights: bool = Query(True, alias="includeHighlights"),  # noqa: B008
    service: SearchService = Depends(get_search_service),  # noqa: B008
) -> SearchResponse:
    """Full-text search across all equipment fields.

    Returns one page of ranked PLC rows with pagination and execution
    metadata. 400 when the query is empty after sanitization, 500 when the
    database query fails.
    """
    try:
        search_query = SearchQuery(
            q=q,
            page=page,
            page_size=page_size,
            max_results=max_results,
            fields=tuple(fields) if fields else None,
            sort_by=sort_by,
            sort_order=sort_order,
            include_highlights=include_highlights,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[error["msg"] for error in exc.errors()],
        ) from exc

    logger.info(
        "Equipment search request: query=%r, fields=%s, sort_by=%s",
        q,
        fields,
        sort_by,
    )

    try:
        response = await service.search(search_query, ip_address=_client_ip(request))
    except InvalidQueryError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SearchExecutionError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to perform equipment search",
        ) from exc

    logger.info(
        "Equipment search completed: query=%r, results=%d, time=%.1fms, type=%s",
        q,
        response.search_metadata.total_matches,
        response.search_metadata.execution_time_ms,
        response.search_metadata.search_type.value,
    )
    return response


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


@router.get("/suggestions")
async def search_suggestions(
    q: str = Query(..., min_length=1, max_length=50),  # noqa: B008
    limit: int = Query(10, ge=1, le=20),  # noqa: B008
    service: SearchService = Depends(get_search_service),  # noqa: B008
) -> dict:
    """Get search suggestions based on a partial query."""
    suggestions = await service.get_search_suggestions(q, limit)
    return {"query": q, "suggestions": suggestions, "count": len(suggestions)}


# ---------------------------------------------------------------------------
# Maintenance & monitoring
# ---------------------------------------------------------------------------


@router.post("/refresh")
async def refresh_search_view(
    service: SearchService = Depends(get_search_service),  # noqa: B008
) -> dict:
    """Refresh the equipment search materialized view."""
    logger.info("Search view refresh requested")
    try:
        await service.refresh_search_view()
    except SearchExecutionError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to refresh search view: {exc}",
        ) from exc
    return {"message": "Search view refreshed successfully", "refreshedAt": _now_iso()}


@router.get("/metrics")
async def search_metrics(
    time_range: Literal["1h", "24h", "7d", "30d"] = Query("24h", alias="timeRange"),  # noqa: B008
    include_details: bool = Query(False, alias="includeDetails"),  # noqa: B008
    service: SearchService = Depends(get_search_service),  # noqa: B008
) -> dict:
    """Get search performance metrics for a time window."""
    records = await service.get_search_metrics(time_range)
    metrics = {"timeRange": time_range, **service.summarize_metrics(records)}
    if include_details:
        metrics["details"] = [record.model_dump(mode="json", by_alias=True) for record in records]
    return {"metrics": metrics, "generatedAt": _now_iso()}


@router.get("/health")
async def search_health(
    service: SearchService = Depends(get_search_service),  # noqa: B008
):
    """Run a lightweight search to check the service end to end."""
    started = datetime.now(timezone.utc)
    try:
        result = await service.search(SearchQuery(q="test", page=1, page_size=1, max_results=1))
    except SearchError as exc:
        logger.error("Search health check failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "service": "search",
                "cache": service.cache.state.value,
                "error": str(exc),
                "timestamp": _now_iso(),
            },
        )

    elapsed_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000
    return {
        "status": "healthy",
        "service": "search",
        "cache": service.cache.state.value,
        "responseTime": round(elapsed_ms, 3),
        "timestamp": _now_iso(),
        "testQuery": {
            "executed": True,
            "resultCount": result.search_metadata.total_matches,
            "executionTime": result.search_metadata.execution_time_ms,
        },
    }
