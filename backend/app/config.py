"""Application settings for the PLC inventory search backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """PLC inventory backend settings.

    All values are loaded from environment variables.
    A .env file in the backend directory is also supported.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Database ---
    DATABASE_URL: str = "postgresql+asyncpg://plc:plc@db:5432/plc_inventory"

    # --- Redis (search cache + analytics) ---
    REDIS_URL: str = "redis://localhost:6379/0"  # empty string disables caching
    REDIS_CONNECT_TIMEOUT: float = 10.0
    REDIS_MAX_RETRIES: int = 3
    REDIS_BACKOFF_BASE: float = 0.1
    REDIS_BACKOFF_CAP: float = 3.0

    # --- Search ---
    SEARCH_CACHE_TTL: int = 300
    SEARCH_ANALYTICS_TTL: int = 86400
    SEARCH_STATEMENT_TIMEOUT_MS: int = 5000
    SEARCH_REFRESH_TIMEOUT_SECONDS: float = 30.0
    SEARCH_SLOW_QUERY_MS: float = 100.0
    SEARCH_CACHE_RECOVERY_SECONDS: float = 30.0

    # --- HTTP / logging ---
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    LOG_LEVEL: str = "INFO"

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses the asyncpg driver."""
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings singleton."""
    return Settings()
