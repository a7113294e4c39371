"""Allow running the worker with `python -m taskyard.worker`."""

from taskyard.worker.main import run

run()
