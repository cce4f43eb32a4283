"""Search error hierarchy.

Only these two are allowed to reach callers of ``SearchService.search``;
cache and analytics failures are absorbed inside ``CacheLayer``.
"""


class SearchError(Exception):
    """Base class for caller-visible search failures."""


class InvalidQueryError(SearchError):
    """The query text is empty once sanitized. Raised before any I/O."""


class SearchExecutionError(SearchError):
    """A database query failed or timed out while executing a search."""
