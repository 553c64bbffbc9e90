"""Async SQLAlchemy plumbing: declarative base, scoped model mixin, base repository.

``init_database`` is called once from the application lifespan; request
handlers obtain a session through the ``get_db_session`` dependency, which
commits on success and rolls back on any exception.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import AsyncGenerator, Generic, TypeVar

from sqlalchemy import DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from aumos_reporting_metrics.observability import get_logger
from aumos_reporting_metrics.settings import Settings

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


class Base(DeclarativeBase):
    """Declarative base shared by every ORM model and the Alembic environment."""


class CompanyScopedModel(Base):
    """Abstract base for company-owned rows.

    Supplies id (UUID), company_id, created_at and updated_at columns.
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Owning company (every query is filtered on it)",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Generic create and delete operations over one mapped class."""

    def __init__(self, session: AsyncSession, model: type[ModelT]) -> None:
        self._session = session
        self._model = model

    async def create(self, instance: ModelT) -> ModelT:
        """Add and flush a new row, returning it with server defaults loaded."""
        self._session.add(instance)
        await self._session.flush()
        await self._session.refresh(instance)
        return instance

    async def delete(self, instance: ModelT) -> None:
        """Delete a row and flush."""
        await self._session.delete(instance)
        await self._session.flush()


def init_database(settings: Settings) -> AsyncEngine:
    """Create the process-wide async engine and session factory."""
    global _engine, _session_factory
    _engine = create_async_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        pool_pre_ping=True,
    )
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    logger.info("database_initialized", pool_size=settings.database_pool_size)
    return _engine


async def dispose_database() -> None:
    """Dispose of the engine's connection pool on shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a transactional session."""
    if _session_factory is None:
        raise RuntimeError("Database is not initialized; call init_database() first")
    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
