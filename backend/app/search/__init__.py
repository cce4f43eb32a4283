"""Equipment search package: full-text, similarity and hybrid search over PLCs."""

from app.search.cache import CacheLayer, CacheState, build_cache_key
from app.search.engine import FullTextSearchEngine, HybridSearchEngine, SimilaritySearchEngine
from app.search.errors import InvalidQueryError, SearchError, SearchExecutionError
from app.search.schemas import SearchQuery, SearchResponse, SearchResultItem, SearchStrategy
from app.search.service import SearchService

__all__ = [
    "CacheLayer",
    "CacheState",
    "FullTextSearchEngine",
    "HybridSearchEngine",
    "InvalidQueryError",
    "SearchError",
    "SearchExecutionError",
    "SearchQuery",
    "SearchResponse",
    "SearchResultItem",
    "SearchService",
    "SearchStrategy",
    "SimilaritySearchEngine",
    "build_cache_key",
]
