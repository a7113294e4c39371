"""API routers for the taskyard HTTP surface."""

from taskyard.api.routers.queue import router as queue_router

__all__ = ["queue_router"]
