"""taskyard worker service.

Background job processor with bounded concurrency. Jobs are claimed from
the durable store with row-level locking and dispatched by kind to
registered handlers.
"""

from taskyard.worker.context import (
    HandlerRegistry,
    JobContext,
    TerminalJobError,
    WorkerConfigurationError,
)
from taskyard.worker.main import Worker, WorkerConfig, run

__all__ = [
    "HandlerRegistry",
    "JobContext",
    "TerminalJobError",
    "Worker",
    "WorkerConfig",
    "WorkerConfigurationError",
    "run",
]
