import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from quizloop.core.config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    """Async engine for *url* (defaults to ``settings.database_url``).

    SQLite has no server to lose a connection to, so pre-ping is only
    enabled for networked backends such as PostgreSQL.
    """
    url = url or settings.database_url
    return create_async_engine(
        url,
        echo=settings.debug if echo is None else echo,
        future=True,
        pool_pre_ping=not url.startswith("sqlite"),
    )


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session: commit when the handler returns, roll back on error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
