"""
Database engine and session management.

Request handlers get a session per request from ``get_session``; the ARQ
worker and the notification dispatcher open their own sessions from
``async_session_factory`` because their work outlives any request.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=not settings.database_url.startswith("sqlite"),
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Endpoints commit explicitly before settling affected services; the final
    commit here only picks up reads and no-op writes.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
