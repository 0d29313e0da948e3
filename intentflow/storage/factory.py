"""
Storage Factory

Environment-based configuration and factory for the conversation store.

Supported backends:
- memory: In-memory storage (development/testing)
- sqlite: SQLite with aiosqlite (single-node production)
- postgresql: PostgreSQL with asyncpg (distributed production)
- mysql: MySQL with aiomysql (distributed production)
- redis: set INTENTFLOW_REDIS_URL to keep conversations in Redis instead

Usage:
    # From environment
    store = await create_store_from_env()

    # From settings
    settings = StorageSettings(database_url="postgresql+asyncpg://...")
    store = await create_store(settings)

    # Use in the router
    router = IntentRouter(store=store, registry=registry)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .memory import InMemoryConversationStore
from .models import Base
from .ports import ConversationStateStore
from .sqlalchemy import SqlAlchemyConversationStore

logger = logging.getLogger(__name__)


class StorageBackend(str, Enum):
    """Supported SQL storage backends."""
    MEMORY = "memory"
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


@dataclass
class StorageSettings:
    """
    Configuration for the conversation store.

    Attributes:
        backend: Storage backend type
        database_url: SQLAlchemy async connection URL (for SQL backends)
        redis_url: Redis connection URL; takes precedence over SQL when set
        pool_size: Connection pool size for SQL
        pool_max_overflow: Max overflow for connection pool
        echo_sql: Whether to log SQL queries
        create_tables: Whether to auto-create tables on startup
        key_prefix: Prefix for Redis keys (multi-tenant isolation)
        state_ttl_seconds: TTL for conversation records in Redis
    """
    backend: StorageBackend = StorageBackend.MEMORY
    database_url: str | None = None
    redis_url: str | None = None
    pool_size: int = 5
    pool_max_overflow: int = 10
    echo_sql: bool = False
    create_tables: bool = True
    key_prefix: str = "intentflow"
    state_ttl_seconds: int = 86400 * 7  # 7 days


def _parse_database_url(url: str) -> StorageBackend:
    """Determine backend from database URL."""
    if url.startswith("sqlite"):
        return StorageBackend.SQLITE
    elif url.startswith("postgresql") or url.startswith("postgres"):
        return StorageBackend.POSTGRESQL
    elif url.startswith("mysql"):
        return StorageBackend.MYSQL
    else:
        raise ValueError(f"Unsupported database URL scheme: {url}")


def _async_url(backend: StorageBackend, url: str) -> str:
    """Ensure the async driver is in the URL."""
    if backend == StorageBackend.SQLITE and "+aiosqlite" not in url:
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if backend == StorageBackend.POSTGRESQL and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if backend == StorageBackend.MYSQL and "+aiomysql" not in url:
        return url.replace("mysql://", "mysql+aiomysql://", 1)
    return url


def settings_from_env() -> StorageSettings:
    """
    Create StorageSettings from environment variables.

    Environment variables:
        INTENTFLOW_STORAGE_BACKEND: "memory", "sqlite", "postgresql", "mysql"
        INTENTFLOW_DATABASE_URL: SQLAlchemy connection URL
        INTENTFLOW_REDIS_URL: Redis connection URL (optional)
        INTENTFLOW_POOL_SIZE: Connection pool size
        INTENTFLOW_ECHO_SQL: "true" to log SQL
        INTENTFLOW_CREATE_TABLES: "false" to disable table creation
        INTENTFLOW_KEY_PREFIX: Redis key prefix
        INTENTFLOW_STATE_TTL: Conversation TTL in seconds (Redis)
    """
    database_url = os.getenv("INTENTFLOW_DATABASE_URL")
    backend_str = os.getenv("INTENTFLOW_STORAGE_BACKEND", "memory")

    # Auto-detect backend from URL if provided
    if database_url and backend_str == "memory":
        backend = _parse_database_url(database_url)
    else:
        backend = StorageBackend(backend_str)

    return StorageSettings(
        backend=backend,
        database_url=database_url,
        redis_url=os.getenv("INTENTFLOW_REDIS_URL"),
        pool_size=int(os.getenv("INTENTFLOW_POOL_SIZE", "5")),
        pool_max_overflow=int(os.getenv("INTENTFLOW_POOL_MAX_OVERFLOW", "10")),
        echo_sql=os.getenv("INTENTFLOW_ECHO_SQL", "").lower() == "true",
        create_tables=os.getenv("INTENTFLOW_CREATE_TABLES", "true").lower() != "false",
        key_prefix=os.getenv("INTENTFLOW_KEY_PREFIX", "intentflow"),
        state_ttl_seconds=int(os.getenv("INTENTFLOW_STATE_TTL", str(86400 * 7))),
    )


async def create_store(settings: StorageSettings) -> ConversationStateStore:
    """
    Create a conversation store from settings.

    Args:
        settings: Storage configuration

    Returns:
        Configured ConversationStateStore

    Raises:
        ValueError: If settings are invalid
    """
    if settings.redis_url:
        from redis.asyncio import Redis

        from .redis import RedisConversationStore

        client: Any = Redis.from_url(settings.redis_url, decode_responses=False)
        logger.info(f"Conversation store: redis (prefix={settings.key_prefix})")
        return RedisConversationStore(
            redis=client,
            key_prefix=settings.key_prefix,
            ttl_seconds=settings.state_ttl_seconds,
            owns_client=True,
        )

    if settings.backend == StorageBackend.MEMORY:
        logger.info("Conversation store: memory")
        return InMemoryConversationStore()

    if not settings.database_url:
        raise ValueError(f"database_url required for backend {settings.backend}")

    url = _async_url(settings.backend, settings.database_url)
    engine_kwargs: dict[str, Any] = {"echo": settings.echo_sql}
    if settings.backend != StorageBackend.SQLITE:
        engine_kwargs["pool_size"] = settings.pool_size
        engine_kwargs["max_overflow"] = settings.pool_max_overflow

    engine = create_async_engine(url, **engine_kwargs)

    if settings.create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    logger.info(f"Conversation store: {settings.backend.value}")
    return SqlAlchemyConversationStore(session_factory, engine=engine)


async def create_store_from_env() -> ConversationStateStore:
    """Combine settings_from_env() and create_store()."""
    return await create_store(settings_from_env())


# Convenience for quick setup
async def create_memory_store() -> ConversationStateStore:
    """Create in-memory conversation store (for testing)."""
    return await create_store(StorageSettings(backend=StorageBackend.MEMORY))


async def create_sqlite_store(
    path: str = ":memory:",
    create_tables: bool = True,
) -> ConversationStateStore:
    """Create SQLite conversation store."""
    return await create_store(StorageSettings(
        backend=StorageBackend.SQLITE,
        database_url=f"sqlite+aiosqlite:///{path}",
        create_tables=create_tables,
    ))
