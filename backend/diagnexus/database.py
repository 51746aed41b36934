"""
Database handle: the async SQLAlchemy engine and session factory.

A ``Database`` is built once by the app factory, stored on ``app.state`` and
disposed on shutdown. Request handlers receive sessions through the
``get_db`` dependency, so nothing here opens a connection at import time.
"""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from diagnexus.config import Settings

logger = logging.getLogger("diagnexus.database")

# Drivers such as asyncpg raise raw socket errors when the server refuses
# connections; SQLAlchemy does not wrap those.
STORE_ERRORS = (SQLAlchemyError, OSError)


class Base(DeclarativeBase):
    pass


class Database:
    def __init__(self, settings: Settings):
        self.url = settings.database_url
        engine_kwargs = {"pool_pre_ping": True}
        if not self.url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_timeout=settings.db_pool_timeout,
                pool_recycle=settings.db_pool_recycle,
            )
        self.engine = create_async_engine(self.url, **engine_kwargs)
        self.sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)
        self.last_error: Optional[str] = None

    async def create_all(self):
        # Models must be imported so their tables register on Base.metadata
        import diagnexus.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready")

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self.last_error = None
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", e)
            self.last_error = str(e)
            return False

    def pool_status(self) -> Optional[dict]:
        pool = self.engine.pool
        if not hasattr(pool, "checkedout"):
            return None
        return {
            "size": pool.size(),
            "checked_out": pool.checkedout(),
            "overflow": pool.overflow(),
        }

    async def dispose(self):
        await self.engine.dispose()
        logger.info("Database engine disposed")


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits on success and rolls back on error."""
    database: Database = request.app.state.db
    async with database.sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
