"""Centralized search parameter management.

All ranking constants (hybrid weights, similarity floor, result caps)
live here so the engines and the orchestrator read one source of truth.

Usage in search engines::

    from app.search.params import get_search_params
    params = get_search_params()
    score = params["fulltext_weight"] * fts_score + params["similarity_weight"] * sim_score
"""

from __future__ import annotations

from typing import Any

DEFAULT_SEARCH_PARAMS: dict[str, float | int | str] = {
    # Query sanitation
    "max_query_length": 100,
    # Strategy selection
    "fulltext_min_tokens": 3,
    "similarity_max_length": 3,
    # Full-text
    "text_search_config": "english",
    "highlight_start_sel": "<mark>",
    "highlight_stop_sel": "</mark>",
    # Similarity (pg_trgm)
    "similarity_floor": 0.1,
    # Hybrid merge
    "fulltext_weight": 0.7,
    "similarity_weight": 0.3,
    "hybrid_candidate_limit": 500,
    # Pagination defaults
    "default_page_size": 50,
    "default_max_results": 1000,
    # Analytics retrieval
    "analytics_batch_size": 10,
}


def get_search_params() -> dict[str, Any]:
    """Return a fresh copy of the search parameters.

    A copy is returned so callers may tweak values locally (e.g. tests)
    without leaking changes into other requests.
    """
    return dict(DEFAULT_SEARCH_PARAMS)
