"""SQLAlchemy async engine and session management."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from adlaunch.config import settings
from adlaunch.models.campaign import Base

# Imported for their table definitions on Base.metadata
from adlaunch.models import ad as _ad  # noqa: F401
from adlaunch.models import connection as _connection  # noqa: F401


class DatabaseService:
    """Manages the async engine lifecycle."""

    _engine: AsyncEngine | None = None
    _sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def connect(cls, url: str | None = None) -> None:
        cls._engine = create_async_engine(url or settings.database_url, pool_pre_ping=True)
        cls._sessionmaker = async_sessionmaker(cls._engine, expire_on_commit=False)

    @classmethod
    async def close(cls) -> None:
        if cls._engine:
            await cls._engine.dispose()
            cls._engine = None
            cls._sessionmaker = None

    @classmethod
    def sessionmaker(cls) -> async_sessionmaker[AsyncSession]:
        if cls._sessionmaker is None:
            cls.connect()
        assert cls._sessionmaker is not None
        return cls._sessionmaker

    @classmethod
    async def init_tables(cls) -> None:
        """Create the ads, campaign_states and connections tables on first boot."""
        if cls._engine is None:
            cls.connect()
        assert cls._engine is not None
        async with cls._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
