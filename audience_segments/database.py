"""
Database engine and sessions.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite) works for local runs
and tests. The purchase lookups in the filter predicates need the JSON
functions of either backend, see ``services/segments/predicates.py``.

SECURITY:
- SQL echo only in local debugging (``settings.sqlalchemy_echo``)
- The connection string is never logged
"""

import logging
import time
from typing import Any, AsyncIterator, Dict

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from audience_segments.config import settings

logger = logging.getLogger(__name__)


def engine_options(database_url: str) -> Dict[str, Any]:
    """Engine keyword arguments for the backend named in ``database_url``.

    SQLite connections are not pooled per server, so pool sizing only
    applies to PostgreSQL.
    """
    options: Dict[str, Any] = {"echo": settings.sqlalchemy_echo}
    if make_url(database_url).get_backend_name() == "sqlite":
        return options

    options.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=3600,
        pool_pre_ping=True,
    )
    return options


def log_slow_queries(engine: AsyncEngine, threshold_ms: float) -> None:
    """Warn about statements slower than ``threshold_ms`` (truncated SQL, no parameters)."""

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _start_timer(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_times", []).append(time.monotonic())

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def _report(conn, cursor, statement, parameters, context, executemany):
        starts = conn.info.get("query_start_times")
        if not starts:
            return
        duration_ms = (time.monotonic() - starts.pop()) * 1000
        if duration_ms >= threshold_ms:
            logger.warning(
                "Slow query (%.0fms): %s",
                duration_ms,
                statement if len(statement) <= 200 else statement[:200] + "...",
            )


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))
log_slow_queries(engine, settings.SLOW_QUERY_THRESHOLD_MS)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """One session per request. Services commit or roll back themselves."""
    async with async_session_maker() as session:
        yield session


async def init_db():
    """Create missing tables (Alembic owns the schema in production)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
