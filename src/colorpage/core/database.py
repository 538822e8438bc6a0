"""Async engine and session factory construction."""

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = structlog.get_logger()


def create_engine(db_url: str, pool_size: int = 20) -> AsyncEngine:
    """Create the async engine for ``db_url``.

    PostgreSQL gets a fixed-size pool sized for the web process plus the
    in-process worker. SQLite (local CLI runs) keeps the driver's default
    pool and waits on locks instead of failing immediately.
    """
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite":
        return create_async_engine(url, connect_args={"timeout": 30})

    return create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=0,  # No overflow beyond pool_size
        pool_pre_ping=True,  # Verify connections before using
        echo=False,  # SQL is not logged; structlog events cover queue activity
    )


def setup_db_session(db_url: str, pool_size: int = 20) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        db_url: Database URL (postgresql+psycopg://... in production)
        pool_size: Maximum number of pooled connections (default: 20)

    Returns:
        Async session factory for creating database sessions
    """
    engine = create_engine(db_url, pool_size)
    logger.info(
        "database.engine_created",
        backend=engine.url.get_backend_name(),
        database=engine.url.database,
    )

    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Queue rows are read after the UoW commits
    )
