"""Durable cache store - async SQLAlchemy engine and session management.

The store is constructed explicitly and injected into the metadata cache;
there is no module-level engine.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from pa_engine.storage.models import Base, MetadataCacheModel, _utcnow
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)


def _async_url(db_url: str) -> str:
    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if db_url.startswith("postgres://"):
        return db_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if db_url.startswith("sqlite://"):
        return db_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return db_url


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class DurableCacheStore:
    """Key/value store with expiry, backed by the metadata_cache table."""

    def __init__(self, database_url: str, echo: bool = False):
        db_url = _async_url(database_url)
        engine_kwargs = {"echo": echo, "future": True, "pool_pre_ping": True}
        if db_url.startswith("postgresql+asyncpg://"):
            # Disable asyncpg prepared statement cache to avoid
            # InvalidCachedStatementError after schema changes.
            engine_kwargs.update(connect_args={"statement_cache_size": 0}, pool_size=10, max_overflow=20)
        elif db_url.startswith("sqlite") and ":///" in db_url:
            db_path = db_url.split(":///", 1)[1]
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_async_engine(db_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )
        db_type = db_url.split("://")[0] if "://" in db_url else "unknown"
        logger.info("Cache database engine created", db_type=db_type)

    @classmethod
    def from_settings(cls, settings) -> "DurableCacheStore":
        return cls(settings.cache_database_url, echo=settings.cache_echo)

    async def init(self) -> None:
        """Create the cache table if it does not exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Cache database initialized")

    async def dispose(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Async context manager for database sessions.

        Usage:
            async with store.session() as db:
                result = await db.execute(query)
        """
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error("Database session error", error=str(e))
                raise
            finally:
                await session.close()

    async def get(self, key: str) -> Optional[Any]:
        """Payload for an unexpired key, or None."""
        async with self.session() as db:
            entry = await db.get(MetadataCacheModel, key)
            if entry is None:
                return None
            if _as_utc(entry.expires_at) <= _utcnow():
                await db.delete(entry)
                return None
            return entry.payload

    async def set(self, key: str, cache_type: str, payload: Any, ttl_seconds: int) -> None:
        now = _utcnow()
        expires_at = now + timedelta(seconds=ttl_seconds)
        async with self.session() as db:
            entry = await db.get(MetadataCacheModel, key)
            if entry is None:
                db.add(MetadataCacheModel(
                    key=key,
                    cache_type=cache_type,
                    payload=payload,
                    cached_at=now,
                    expires_at=expires_at,
                ))
            else:
                entry.payload = payload
                entry.cache_type = cache_type
                entry.cached_at = now
                entry.expires_at = expires_at

    async def delete(self, key: str) -> None:
        async with self.session() as db:
            await db.execute(delete(MetadataCacheModel).where(MetadataCacheModel.key == key))

    async def purge_expired(self) -> int:
        """Delete expired rows. Returns the number removed."""
        now = _utcnow()
        async with self.session() as db:
            result = await db.execute(select(MetadataCacheModel))
            expired = [e for e in result.scalars().all() if _as_utc(e.expires_at) <= now]
            for entry in expired:
                await db.delete(entry)
        if expired:
            logger.info("Purged expired cache entries", count=len(expired))
        return len(expired)
