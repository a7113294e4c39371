"""taskyard HTTP surface.

A small FastAPI application exposing the queue admin endpoints. Host
applications may instead include `taskyard.api.routers.queue_router` in
their own app and attach a JobRuntime as `app.state.job_runtime`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from taskyard import __version__
from taskyard.api.routers import queue_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from taskyard.core.config import Settings
    from taskyard.runtime import JobRuntime

logger = logging.getLogger(__name__)

API_TITLE = "taskyard"


def create_app(
    runtime: JobRuntime | None = None,
    *,
    settings: Settings | None = None,
) -> FastAPI:
    """Create a FastAPI application serving the queue admin endpoints.

    Args:
        runtime: An existing runtime. Its lifecycle stays with the caller.
        settings: Settings used to build and own a runtime when none is
            given. Defaults to get_settings().

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if runtime is not None:
            app.state.job_runtime = runtime
            yield
            return

        from taskyard.core.settings import get_settings
        from taskyard.runtime import JobRuntime

        owned = JobRuntime.from_settings(settings or get_settings())
        owned.start_worker()
        app.state.job_runtime = owned
        try:
            yield
        finally:
            await owned.stop()

    app = FastAPI(title=API_TITLE, version=__version__, lifespan=lifespan)
    if runtime is not None:
        app.state.job_runtime = runtime

    app.include_router(queue_router)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "healthy"}

    logger.info("taskyard API application created (version=%s)", __version__)
    return app


__all__ = ["create_app"]
