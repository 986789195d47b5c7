import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from quizloop.db.base import Base
from quizloop.db.session import build_engine
import quizloop.db.models  # noqa: F401  (challenges)
import quizloop.db.models_session  # noqa: F401  (sessions, scores, metrics, achievements)

logger = logging.getLogger(__name__)


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create the challenge and session tables if they are missing.

    Tests pass an in-memory SQLite engine; otherwise a throwaway engine for
    ``settings.database_url`` is built and disposed afterwards.
    """
    target = engine or build_engine()

    try:
        async with target.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(
            "init_db: %d tables verified against %s",
            len(Base.metadata.tables), target.url.render_as_string(hide_password=True),
        )
    finally:
        if engine is None:
            await target.dispose()
