"""Session factory setup tests."""

import pytest
from sqlalchemy import text

from colorpage.core.database import create_engine, setup_db_session
from colorpage.core.timezone import utcnow
from colorpage.models.generation_job import GenerationJob


@pytest.mark.asyncio
async def test_sqlite_session_factory(tmp_path):
    session_factory = setup_db_session(f"sqlite+aiosqlite:///{tmp_path / 'local.db'}")

    async with session_factory() as session:
        result = await session.execute(text("SELECT 1"))
        assert result.scalar() == 1

    await session_factory.kw["bind"].dispose()


def test_postgres_engine_uses_fixed_pool():
    engine = create_engine("postgresql+psycopg://u:p@localhost:5432/colorpage", pool_size=7)

    assert engine.url.get_backend_name() == "postgresql"
    assert engine.pool.size() == 7


@pytest.mark.asyncio
async def test_naive_utc_timestamps_round_trip(uow_factory):
    now = utcnow()
    assert now.tzinfo is None

    async with await uow_factory() as uow:
        job = await uow.generation_jobs.add(GenerationJob(created_at=now, updated_at=now))

    async with await uow_factory() as uow:
        stored = await uow.generation_jobs.get_by_id(job.id)
        assert stored.created_at == now
        assert stored.updated_at.tzinfo is None
