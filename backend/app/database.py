"""Async SQLAlchemy engine, session factory and declarative base.

The search executors open their own short-lived sessions from
``async_session_factory`` so the hybrid path can run two queries
concurrently without sharing a connection.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.async_database_url,
    echo=False,
    pool_pre_ping=True,
    connect_args={"server_settings": {"application_name": "plc-inventory-search"}},
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for the hierarchy tables (sites → tags)."""
