"""Failure boundary for side-channel operations.

Observability writes and external-record status mirrors must never change
the outcome of the job they describe. Every such call goes through
``best_effort`` (async) or ``best_effort_call`` (sync), which log the
failure and return None.
"""

from typing import Any, Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


async def best_effort(
    operation: str, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
) -> T | None:
    """Await ``func(*args, **kwargs)``, logging and discarding any exception.

    CancelledError is a BaseException and still propagates.
    """
    try:
        return await func(*args, **kwargs)
    except Exception as e:
        logger.warning(
            "side_effect.failed",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
        )
        return None


def best_effort_call(operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T | None:
    """Synchronous counterpart of :func:`best_effort`."""
    try:
        return func(*args, **kwargs)
    except Exception as e:
        logger.warning(
            "side_effect.failed",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
        )
        return None
