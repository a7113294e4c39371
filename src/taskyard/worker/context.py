"""Handler contract and registry.

A handler is an async callable receiving the job's JobContext and its typed
payload. Returning normally completes the job; raising TerminalJobError
fails it without further attempts; any other exception is retried with
backoff until the attempt budget is spent.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from taskyard.services.payloads import JobKind

logger = logging.getLogger(__name__)


class TerminalJobError(Exception):
    """Raised by a handler when retrying cannot succeed."""

    pass


class WorkerConfigurationError(Exception):
    """Raised when the worker cannot start with the given configuration."""

    pass


@dataclass(frozen=True, slots=True)
class JobContext:
    """What a handler knows about the job it is running.

    Attributes:
        job_id: Queue-assigned job id.
        kind: Job kind being processed.
        attempts_made: Attempts started so far, including this one.
        max_attempts: Attempt budget of the job.
        report_progress: Persist progress (0-100) for operators.
    """

    job_id: uuid.UUID
    kind: JobKind
    attempts_made: int
    max_attempts: int
    report_progress: Callable[[int], Awaitable[None]]

    @property
    def is_last_attempt(self) -> bool:
        return self.attempts_made >= self.max_attempts


class JobHandler(Protocol):
    async def __call__(self, ctx: JobContext, payload: Any) -> dict[str, Any] | None: ...


class HandlerRegistry:
    """Maps each JobKind to exactly one handler."""

    def __init__(self) -> None:
        self._handlers: dict[JobKind, JobHandler] = {}

    def register(self, kind: JobKind, handler: JobHandler) -> None:
        """Register (or replace) the handler for a kind."""
        self._handlers[kind] = handler
        logger.debug("Registered handler for kind=%s", kind.value)

    def get(self, kind: JobKind) -> JobHandler | None:
        return self._handlers.get(kind)

    def __contains__(self, kind: object) -> bool:
        return kind in self._handlers

    def missing_kinds(self) -> list[JobKind]:
        return [kind for kind in JobKind if kind not in self._handlers]

    def validate(self) -> None:
        """Refuse a registry that leaves any job kind unhandled.

        Raises:
            WorkerConfigurationError: If a JobKind has no handler.
        """
        missing = self.missing_kinds()
        if missing:
            names = ", ".join(kind.value for kind in missing)
            msg = f"No handler registered for job kinds: {names}"
            raise WorkerConfigurationError(msg)
