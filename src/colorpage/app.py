"""FastAPI application factory."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from colorpage.api.routes import files, jobs
# Import timezone enforcement (sets TZ=UTC)
from colorpage.core import timezone  # noqa: F401
from colorpage.core.config import Settings, configure_logging
from colorpage.core.database import setup_db_session
from colorpage.uow import create_uow_factory
from colorpage.workers.generation_worker import start_worker, stop_worker
from colorpage.workers.setup import build_worker

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    - Startup: configure logging, build the session factory and collaborators,
      start the generation worker
    - Shutdown: stop the worker, close HTTP clients
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)
    components = build_worker(settings, uow_factory)

    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.job_queue = components.queue
    app.state.storage_stage = components.storage_stage

    worker_task = None
    if settings.worker_enabled:
        worker_task = start_worker(components.worker, settings.poll_interval_seconds)
    else:
        logger.info("worker.disabled")

    logger.info("application.startup", db_url=settings.database_url.split("@")[-1])

    yield

    logger.info("application.shutdown")
    if worker_task is not None:
        await stop_worker(worker_task)
    await components.aclose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Colorpage Backend API",
        description="Coloring-page generation queue and pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(jobs.router)
    app.include_router(files.router)

    @app.get("/healthz")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
