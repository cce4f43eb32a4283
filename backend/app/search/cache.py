"""Redis-backed cache layer for search responses and analytics.

The layer is a small state machine::

    Disconnected -> Connecting -> Connected <-> Degraded
                                      |             |
                                      +-> Disconnected (close)

Only ``Connected`` serves reads and writes. Any Redis error flips the
layer to ``Degraded``; from then on calls are cheap no-ops until the
recovery interval has elapsed, after which the next call sends
``PING`` to the server and restores ``Connected`` on success. Socket-level
reconnect back-off belongs to the redis client (``Retry`` +
``ExponentialBackoff``). Nothing in this module raises on cache failure:
a broken cache only costs latency.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import AsyncIterator, Callable
from enum import Enum

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.search.schemas import SearchQuery

logger = logging.getLogger(__name__)

CACHE_PREFIX = "search:"
ANALYTICS_PREFIX = "search_analytics:"

_CACHE_ERRORS = (RedisError, OSError, TimeoutError)


class CacheState(str, Enum):
    """Connection state of the cache layer."""

    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    degraded = "degraded"


def build_cache_key(query: SearchQuery) -> str:
    """Hash a canonicalized search query into a fixed-length cache key.

    Query text is lower-cased and whitespace-collapsed, ``fields`` is
    treated as a set, and every option is defaulted before hashing, so
    semantically identical queries always share a key.
    """
    normalized = {
        "q": " ".join(query.q.split()).lower(),
        "page": query.page or 1,
        "pageSize": query.page_size or 50,
        "fields": sorted(set(query.fields or ())),
        "sortBy": query.sort_by or "relevance",
        "sortOrder": query.sort_order or "DESC",
        "includeHighlights": bool(query.include_highlights),
        "maxResults": query.max_results or 1000,
    }
    payload = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{CACHE_PREFIX}{digest}"


class CacheLayer:
    """Fault-tolerant async key/value cache over Redis.

    Args:
        url: Redis URL. Empty/None disables the layer unless ``client`` is given.
        client: Pre-built ``redis.asyncio.Redis`` (or compatible) client.
        connect_timeout: Socket connect timeout in seconds.
        max_retries: Reconnect attempts made by the client before giving up.
        backoff_base: Base delay of the client's exponential back-off.
        backoff_cap: Maximum delay of the client's exponential back-off.
        recovery_interval: Seconds a degraded layer waits before probing again.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        client: Redis | None = None,
        connect_timeout: float = 10.0,
        max_retries: int = 3,
        backoff_base: float = 0.1,
        backoff_cap: float = 3.0,
        recovery_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._url = url or None
        self._client = client
        self._connect_timeout = connect_timeout
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._recovery_interval = recovery_interval
        self._clock = clock
        self._state = CacheState.disconnected
        self._degraded_at: float | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def available(self) -> bool:
        """True only while the layer is ``Connected``."""
        return self._state is CacheState.connected

    def _build_client(self) -> Redis:
        retry = Retry(ExponentialBackoff(cap=self._backoff_cap, base=self._backoff_base), self._max_retries)
        return Redis.from_url(
            self._url,
            decode_responses=True,
            socket_connect_timeout=self._connect_timeout,
            retry=retry,
            retry_on_error=[RedisConnectionError, RedisTimeoutError],
        )

    async def connect(self) -> bool:
        """Connect and verify with ``PING``. Never raises.

        Returns:
            True if the layer ended up ``Connected``.
        """
        if self._client is None and self._url is None:
            logger.info("Search cache disabled (no REDIS_URL configured)")
            return False

        self._state = CacheState.connecting
        try:
            if self._client is None:
                self._client = self._build_client()
            await self._client.ping()
        except _CACHE_ERRORS as exc:
            logger.warning(
                "Redis initialization failed - continuing without cache: %s",
                exc,
                extra={"error": str(exc)},
            )
            self._state = CacheState.disconnected
            return False

        self._state = CacheState.connected
        self._degraded_at = None
        logger.info("Redis connected for search caching")
        return True

    async def close(self) -> None:
        """Close the client and move to ``Disconnected``."""
        client, self._client = self._client, None
        self._state = CacheState.disconnected
        if client is None:
            return
        try:
            await client.aclose()
        except _CACHE_ERRORS as exc:
            logger.warning("Error while closing Redis connection: %s", exc)
        else:
            logger.info("Redis connection closed")

    def _mark_degraded(self, operation: str, exc: BaseException, key: str | None = None) -> None:
        if self._state is CacheState.connected:
            logger.warning(
                "Cache %s failed - disabling Redis temporarily: %s",
                operation,
                exc,
                extra={"operation": operation, "key": key, "error": str(exc)},
            )
        self._state = CacheState.degraded
        self._degraded_at = self._clock()

    async def _ensure_available(self) -> bool:
        """Return True if an operation may be attempted now.

        A degraded layer pings the server once the recovery interval has
        elapsed; a successful PING is the reconnect event that restores
        ``Connected``.
        """
        if self._state is CacheState.connected:
            return True
        if self._state is not CacheState.degraded or self._client is None:
            return False
        if self._degraded_at is not None and self._clock() - self._degraded_at < self._recovery_interval:
            return False

        try:
            await self._client.ping()
        except _CACHE_ERRORS as exc:
            logger.debug("Redis still unavailable: %s", exc)
            self._degraded_at = self._clock()
            return False

        self._state = CacheState.connected
        self._degraded_at = None
        logger.info("Redis reconnected - search caching re-enabled")
        return True

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Return the cached value, or None on miss or when unavailable."""
        if not await self._ensure_available():
            return None
        try:
            return await self._client.get(key)
        except _CACHE_ERRORS as exc:
            self._mark_degraded("retrieval", exc, key)
            return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store ``value`` with an expiry. Returns False if nothing was written."""
        if not await self._ensure_available():
            return False
        try:
            await self._client.setex(key, ttl_seconds, value)
        except _CACHE_ERRORS as exc:
            self._mark_degraded("storage", exc, key)
            return False
        return True

    async def mget(self, keys: list[str]) -> list[str | None]:
        """Fetch several keys in one round-trip. Missing/failed entries are None."""
        if not keys:
            return []
        if not await self._ensure_available():
            return [None] * len(keys)
        try:
            values = await self._client.mget(keys)
        except _CACHE_ERRORS as exc:
            self._mark_degraded("multi-get", exc)
            return [None] * len(keys)
        return list(values or [None] * len(keys))

    async def scan_keys(self, pattern: str, count: int = 100) -> AsyncIterator[str]:
        """Lazily yield keys matching ``pattern`` using ``SCAN``.

        Each call starts a fresh scan. Iteration simply stops if Redis fails
        midway.
        """
        if not await self._ensure_available():
            return
        try:
            async for key in self._client.scan_iter(match=pattern, count=count):
                yield str(key)
        except _CACHE_ERRORS as exc:
            self._mark_degraded("scan", exc)
