"""FastAPI dependencies for request context and shared services.

Services are built once in the application lifespan and stored on
``app.state``; these helpers hand them to route handlers.
"""

from typing import Annotated, Callable

from fastapi import Header, HTTPException, Request, status

from colorpage.services.generation.storage import StorageStage
from colorpage.services.job_queue import JobQueue
from colorpage.uow import UnitOfWork


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.generation_jobs.get_by_id(job_id)
    """
    return request.app.state.uow_factory


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def get_storage_stage(request: Request) -> StorageStage:
    return request.app.state.storage_stage


def get_optional_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str | None:
    """Caller id set by the upstream auth layer; None for anonymous requests."""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


def require_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Caller id for endpoints that need an authenticated user.

    Raises:
        HTTPException: 401 if the X-User-Id header is missing
    """
    user_id = get_optional_user_id(x_user_id)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header"
        )
    return user_id
