"""pytest fixtures for colorpage backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- engine: Function-scoped SQLite database (aiosqlite) with all tables created
- session / session_factory / uow_factory: database access for tests
- settings: Test settings (fail-fast validation skipped)
- fake collaborators: vision, image generation and object storage
"""

import os

os.environ.setdefault("APP_ENV", "test")

import base64
import json
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from colorpage import models  # noqa: F401
from colorpage.core.config import Settings
from colorpage.models.generation_job import GenerationJob
from colorpage.services.exceptions import DownloadError, GenerationError
from colorpage.services.generation.image_generation import ImageGenerationStage
from colorpage.services.generation.openai_client import ImageData, ImageReply, VisionReply
from colorpage.services.generation.persistence import PersistenceStage
from colorpage.services.generation.photo_analysis import PhotoAnalysisStage
from colorpage.services.generation.pipeline import GenerationPipeline
from colorpage.services.generation.storage import StorageStage
from colorpage.services.job_queue import JobQueue
from colorpage.uow import create_uow_factory

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

VALID_ANALYSIS = {
    "child": {
        "age": "5 years old",
        "gender": "girl",
        "hair": "curly shoulder-length hair",
        "headwear": "a knitted beanie",
        "eyewear": "round glasses",
        "clothing": "striped t-shirt and overalls",
        "expression": "big toothy grin",
        "main_object": "a teddy bear",
    },
    "composition": {
        "pose": "sitting cross-legged",
        "perspective": "eye level",
        "focus": "face and teddy bear",
    },
    "suggestions": {
        "coloring_complexity": "simple",
        "recommended_elements": ["stars", "moon"],
    },
}


def make_payload(**overrides) -> dict:
    payload = {
        "scene_description": "riding a friendly dragon over a castle",
        "style": "classic",
        "difficulty": 3,
        "input_url": "https://cdn.example.com/uploads/photo.jpg",
        "orientation": "portrait",
    }
    payload.update(overrides)
    return payload


class FakeVisionClient:
    """Returns queued reply contents in order (the last one repeats)."""

    def __init__(self, contents: list[str] | None = None):
        self.contents = contents or [json.dumps(VALID_ANALYSIS)]
        self.calls = 0

    async def analyze(self, image_bytes: bytes, system_prompt: str, user_prompt: str) -> VisionReply:
        content = self.contents[min(self.calls, len(self.contents) - 1)]
        self.calls += 1
        return VisionReply(content=content, model="gpt-4o", prompt_tokens=1200, completion_tokens=150)


class FakeImageClient:
    """Fails the first ``fail_times`` calls, then returns one base64 image."""

    def __init__(self, fail_times: int = 0, images: list[ImageData] | None = None):
        self.fail_times = fail_times
        self.images = images
        self.calls: list[tuple[str, str, str]] = []

    async def generate(self, prompt: str, size: str, quality: str) -> ImageReply:
        self.calls.append((prompt, size, quality))
        if len(self.calls) <= self.fail_times:
            raise GenerationError(f"Provider error: simulated failure {len(self.calls)}")
        images = self.images
        if images is None:
            images = [
                ImageData(
                    b64_json=base64.b64encode(PNG_BYTES).decode("ascii"),
                    revised_prompt="A coloring page of a girl riding a dragon",
                )
            ]
        return ImageReply(model="gpt-image-1", images=images, prompt_tokens=900)


class FakeStorage:
    """In-memory object storage."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.remote: dict[str, bytes] = {"https://cdn.example.com/uploads/photo.jpg": PNG_BYTES}
        self.moves: list[tuple[str, str]] = []
        self.fail_uploads = False

    async def upload(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        from colorpage.services.exceptions import StorageError

        if self.fail_uploads:
            raise StorageError("Storage upload failed (500): boom")
        self.objects[path] = data
        return path

    async def download(self, url: str) -> bytes:
        if url not in self.remote:
            raise DownloadError(f"Download failed (404) for {url}")
        return self.remote[url]

    async def move(self, from_path: str, to_path: str) -> None:
        self.objects[to_path] = self.objects.pop(from_path)
        self.moves.append((from_path, to_path))

    def get_public_url(self, path: str) -> str:
        return f"https://storage.example.com/public/pages/{path}"

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        return f"https://storage.example.com/sign/pages/{path}?ttl={ttl_seconds}"


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Provide a file-backed SQLite engine with all tables created.

    Every transaction starts with BEGIN IMMEDIATE so concurrent writers queue
    on SQLite's busy timeout instead of failing on a lock upgrade.
    """
    db_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(db_engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(db_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with db_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield db_engine

    await db_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session; uncommitted changes are rolled back."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def settings() -> Settings:
    return Settings(  # type: ignore[call-arg]
        APP_ENV="test",
        WORKER_BATCH_SIZE=10,
        DEFAULT_MAX_ATTEMPTS=3,
        POLL_INTERVAL_SECONDS=1,
        STALE_JOB_MINUTES=30,
        IMAGE_QUALITY="high",
    )


@pytest.fixture
def queue(uow_factory) -> JobQueue:
    return JobQueue(uow_factory, default_max_attempts=3)


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_vision() -> FakeVisionClient:
    return FakeVisionClient()


@pytest.fixture
def fake_images() -> FakeImageClient:
    return FakeImageClient()


@pytest.fixture
def storage_stage(fake_storage, uow_factory) -> StorageStage:
    return StorageStage(fake_storage, uow_factory, signed_url_ttl=600)


@pytest.fixture
def pipeline(fake_storage, fake_vision, fake_images, storage_stage, uow_factory):
    return GenerationPipeline(
        photo_source=fake_storage,
        analysis_stage=PhotoAnalysisStage(fake_vision),
        image_stage=ImageGenerationStage(fake_images),
        storage_stage=storage_stage,
        persistence_stage=PersistenceStage(uow_factory),
        image_quality="high",
    )


@pytest_asyncio.fixture
async def external_job(uow_factory) -> GenerationJob:
    """A queued generation job record for queue rows to reference."""
    async with await uow_factory() as uow:
        return await uow.generation_jobs.add(GenerationJob())


@pytest.fixture
def new_external_job(uow_factory):
    """Factory creating additional generation job records."""

    async def _create(owner_id: str | None = None) -> GenerationJob:
        async with await uow_factory() as uow:
            return await uow.generation_jobs.add(GenerationJob(owner_id=owner_id))

    return _create
