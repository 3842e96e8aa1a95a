"""
Database service for ShelfSync
Async SQLite access through SQLAlchemy and aiosqlite
"""

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import AsyncGenerator, Dict, Any, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shelfsync.database.models import Base

EXPECTED_TABLES = ('entities', 'pending_operations', 'deletion_tombstones', 'sync_state')


class DatabaseService:
    """Async SQLite database service"""

    def __init__(self, database_url: str = "sqlite+aiosqlite:///./data/shelfsync.db", echo: bool = False):
        self.database_url = database_url
        self.logger = logging.getLogger(__name__)

        engine_kwargs: Dict[str, Any] = {
            'echo': echo,
            'connect_args': {"check_same_thread": False},
        }

        if self.is_memory:
            # A single shared connection keeps the in-memory database alive
            engine_kwargs['poolclass'] = StaticPool
        else:
            self._ensure_data_directory()

        self.engine = create_async_engine(database_url, **engine_kwargs)

        self.SessionLocal = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Session of the transaction() scope open in the current task, if any
        self._active_session: ContextVar[Optional[AsyncSession]] = ContextVar(
            f"shelfsync_session_{id(self)}", default=None
        )

        self.logger.info(f"Database service initialized: {database_url}")

    @property
    def is_memory(self) -> bool:
        return ':memory:' in self.database_url or self.database_url.rstrip('/').endswith('sqlite+aiosqlite:')

    def _ensure_data_directory(self):
        """Create the parent directory of a file-backed database"""
        _, _, path = self.database_url.partition(':///')
        if path:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

    async def create_tables(self):
        """Create all tables defined in Base.metadata"""
        self.logger.info("Creating tables using SQLAlchemy...")
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self.logger.info("All tables created successfully")
        except Exception as e:
            self.logger.error(f"Error creating tables: {e}")
            raise

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get async database session; commits on success, rolls back on error.

        Inside a transaction() scope the scope's session is reused and the
        commit is left to the scope.
        """
        active = self._active_session.get()
        if active is not None:
            yield active
            return

        async with self.SessionLocal() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Run every get_session() user in the block as one commit"""
        async with self.get_session() as session:
            token = self._active_session.set(session)
            try:
                yield session
            finally:
                self._active_session.reset(token)

    async def health_check(self) -> bool:
        """Check database connection health and schema presence"""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))

                result = await session.execute(
                    text("SELECT name FROM sqlite_master WHERE type='table'")
                )
                tables = {row[0] for row in result.fetchall()}

            missing = [name for name in EXPECTED_TABLES if name not in tables]
            if missing:
                self.logger.warning(f"Missing tables: {missing}")
                return False

            return True
        except Exception as e:
            self.logger.error(f"Database health check failed: {e}")
            return False

    async def close(self):
        """Close database connections"""
        await self.engine.dispose()
        self.logger.info("Database connections closed")
