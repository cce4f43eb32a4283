"""Search analytics: fire-and-forget event recording and metrics retrieval.

Each search writes one JSON record under ``search_analytics:<time_ns>``
with a 24 hour TTL. Records are keyed by write time, never by query, so
they never collide and simply accumulate until they expire.

Retrieval is two-phase: a lazy ``SCAN`` over the key space and a batched
``MGET`` per group of keys, so large analytics sets are never loaded key
list first.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import aclosing
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from app.search.cache import ANALYTICS_PREFIX, CacheLayer
from app.search.params import get_search_params
from app.search.schemas import AnalyticsRecord

logger = logging.getLogger(__name__)

TIME_RANGES: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SearchAnalytics:
    """Record search events and read them back for monitoring.

    Args:
        cache: The shared cache layer; analytics are silently skipped while
            it is unavailable.
        ttl_seconds: Lifetime of one record.
    """

    def __init__(self, cache: CacheLayer, ttl_seconds: int = 86400) -> None:
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    async def record(self, record: AnalyticsRecord) -> None:
        """Write one analytics record. Never raises and returns nothing."""
        key = f"{ANALYTICS_PREFIX}{time.time_ns()}"
        try:
            payload = record.model_dump_json(by_alias=True)
        except (TypeError, ValueError):
            logger.exception("Failed to serialize search analytics record")
            return
        if not await self._cache.set(key, payload, self._ttl_seconds):
            logger.debug("Search analytics not recorded (cache unavailable)")

    async def iter_records(self, batch_size: int | None = None) -> AsyncIterator[AnalyticsRecord]:
        """Yield every stored record, fetching values ``batch_size`` keys at a time.

        Unparsable entries are logged and skipped. Calling this again starts
        a new scan.
        The scan stops early once the cache layer becomes unavailable.
        """
        size = batch_size or get_search_params()["analytics_batch_size"]
        batch: list[str] = []
        async with aclosing(self._cache.scan_keys(f"{ANALYTICS_PREFIX}*")) as keys:
            async for key in keys:
                batch.append(key)
                if len(batch) < size:
                    continue
                async for record in self._load_batch(batch):
                    yield record
                batch = []
                if not self._cache.available:
                    logger.warning("Analytics scan stopped: cache became unavailable")
                    return
        if batch:
            async for record in self._load_batch(batch):
                yield record

    async def _load_batch(self, keys: list[str]) -> AsyncIterator[AnalyticsRecord]:
        values = await self._cache.mget(keys)
        for key, raw in zip(keys, values):
            if not raw or not isinstance(raw, str):
                continue
            try:
                yield AnalyticsRecord.model_validate_json(raw)
            except ValidationError as exc:
                logger.warning(
                    "Failed to parse search analytics data",
                    extra={"key": key, "error": str(exc)},
                )

    async def get_metrics(self, time_range: str = "24h") -> list[AnalyticsRecord]:
        """Return records written within ``time_range``, oldest first.

        Unknown ranges fall back to 24 hours. Returns an empty list while the
        cache is unavailable.
        """
        window = TIME_RANGES.get(time_range, TIME_RANGES["24h"])
        since = datetime.now(timezone.utc) - window

        records = [record async for record in self.iter_records() if _as_utc(record.timestamp) >= since]
        records.sort(key=lambda r: _as_utc(r.timestamp))
        return records

    @staticmethod
    def summarize(records: list[AnalyticsRecord]) -> dict:
        """Aggregate records for the metrics dashboard."""
        total = len(records)
        return {
            "totalSearches": total,
            "averageExecutionTime": round(sum(r.execution_time for r in records) / total, 2) if total else 0,
            "averageResultCount": round(sum(r.result_count for r in records) / total, 2) if total else 0,
            "searchTypes": dict(Counter(r.search_type for r in records)),
        }
