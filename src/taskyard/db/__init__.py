"""taskyard durable store connections.

The job store is reached through explicitly constructed StoreConnection
objects rather than a module-level engine. The composition root opens two
of them: one for producers and the admin surface, one for the worker's
consumption loop, so that a busy worker never starves enqueue calls of
pooled connections.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskyard.db.models import Base

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from taskyard.core.config import Settings

logger = logging.getLogger(__name__)


class StoreConnection:
    """Handle to the durable job store for one role (producer or consumer).

    Example:
        conn = StoreConnection("postgresql+psycopg://jobs:secret@db/app", role="producer")
        async with conn.session() as session:
            ...
        await conn.dispose()
    """

    def __init__(
        self,
        url: str,
        *,
        role: str = "producer",
        pool_size: int = 5,
        echo: bool = False,
    ) -> None:
        """Create the engine and session factory.

        Args:
            url: Async SQLAlchemy URL of the store.
            role: Connection role, used in log messages.
            pool_size: Pool size for pooled dialects.
            echo: Enable SQL echo.
        """
        self.role = role
        engine_kwargs: dict = {"echo": echo, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            engine_kwargs["pool_size"] = pool_size
        self.engine = create_async_engine(url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._disposed = False
        logger.info("Store connection opened: role=%s, dialect=%s", role, self.engine.dialect.name)

    @classmethod
    def from_settings(cls, settings: Settings, *, role: str) -> StoreConnection:
        """Build a connection from the store settings."""
        return cls(
            settings.store.async_url(),
            role=role,
            pool_size=settings.store.pool_size,
            echo=settings.store.echo,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @property
    def is_open(self) -> bool:
        return not self._disposed

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session, rolling back on error and always closing it.

        Usage:
            async with conn.session() as session:
                await session.execute(query)
                await session.commit()
        """
        session = self._session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_schema(self) -> None:
        """Create the job tables (tests and local development only)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        """Check that the store answers a trivial query."""
        if self._disposed:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning("Store ping failed: role=%s, error=%s", self.role, e)
            return False

    async def dispose(self) -> None:
        """Release pooled connections."""
        if not self._disposed:
            await self.engine.dispose()
            self._disposed = True
            logger.info("Store connection closed: role=%s", self.role)


@dataclass
class StoreConnections:
    """The pair of independent connections used by one process."""

    producer: StoreConnection
    consumer: StoreConnection

    async def dispose(self) -> None:
        await self.producer.dispose()
        await self.consumer.dispose()


def open_store_connections(settings: Settings) -> StoreConnections | None:
    """Open producer and consumer connections if the store is configured.

    Returns:
        The connection pair, or None when the store credentials are absent.
    """
    if not settings.is_queue_configured:
        return None
    return StoreConnections(
        producer=StoreConnection.from_settings(settings, role="producer"),
        consumer=StoreConnection.from_settings(settings, role="consumer"),
    )
