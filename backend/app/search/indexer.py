# @TEST tests/test_indexer.py

"""Maintenance of the ``mv_equipment_search`` materialized view.

Full-text vectors on ``plcs`` are kept current by a database trigger;
the cross-table view has to be refreshed explicitly after hierarchy
changes. The refresh runs on a dedicated connection under a client-side
deadline, and that connection is released whether the refresh succeeds,
fails or times out.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from app.search.errors import SearchExecutionError

logger = logging.getLogger(__name__)

_REFRESH_SQL = text("SELECT refresh_equipment_search_view()")


class SearchViewRefresher:
    """Refreshes the equipment search view.

    Args:
        engine: Async engine to borrow a connection from.
        timeout_seconds: Client-side deadline for the whole refresh.
    """

    def __init__(self, engine: AsyncEngine, timeout_seconds: float = 30.0) -> None:
        self._engine = engine
        self._timeout_seconds = timeout_seconds

    async def refresh(self) -> None:
        """Recompute the search view.

        Raises:
            SearchExecutionError: If the refresh fails or exceeds the deadline.
        """
        try:
            async with self._engine.connect() as conn:
                await asyncio.wait_for(self._run(conn), timeout=self._timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.error("Search view refresh timeout exceeded (%.0f seconds)", self._timeout_seconds)
            raise SearchExecutionError(
                f"Search view refresh timeout exceeded ({self._timeout_seconds:.0f} seconds)"
            ) from exc
        except SQLAlchemyError as exc:
            logger.error("Failed to refresh search materialized view", extra={"error": str(exc)})
            raise SearchExecutionError(f"Search view refresh failed: {exc}") from exc

        logger.info("Search materialized view refreshed successfully")

    @staticmethod
    async def _run(conn: AsyncConnection) -> None:
        await conn.execute(_REFRESH_SQL)
        await conn.commit()
