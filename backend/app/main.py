"""FastAPI application entry point for the PLC inventory search backend."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import async_session_factory, engine
from app.search.cache import CacheLayer
from app.search.service import SearchService

settings = get_settings()
logging.getLogger("app").setLevel(settings.LOG_LEVEL.upper())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: startup and shutdown events."""
    # Startup: the cache never blocks startup; it stays disconnected on failure
    cache = CacheLayer(
        settings.REDIS_URL,
        connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
        max_retries=settings.REDIS_MAX_RETRIES,
        backoff_base=settings.REDIS_BACKOFF_BASE,
        backoff_cap=settings.REDIS_BACKOFF_CAP,
        recovery_interval=settings.SEARCH_CACHE_RECOVERY_SECONDS,
    )
    await cache.connect()
    app.state.search_service = SearchService.from_settings(settings, cache, engine, async_session_factory)

    yield
    # Shutdown: close Redis and dispose the async engine connection pool
    await cache.close()
    await engine.dispose()


app = FastAPI(
    title="PLC Inventory Search",
    description="Equipment and PLC search across the site hierarchy",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Router includes ---
from app.api.search import router as search_router  # noqa: E402

app.include_router(search_router, prefix="/api")


@app.get("/api/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.
    """
    return {"status": "ok"}
