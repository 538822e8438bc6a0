"""Background workers for async processing tasks."""

from colorpage.workers.generation_worker import (
    GenerationWorker,
    run_generation_worker,
    start_worker,
    stop_worker,
)

__all__ = [
    "GenerationWorker",
    "run_generation_worker",
    "start_worker",
    "stop_worker",
]
