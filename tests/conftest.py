"""Pytest configuration and shared fixtures.

Tests run against a file-backed SQLite store through aiosqlite, so no
external services are required:

    pip install -e ".[test]"
    pytest
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from taskyard.core.settings import clear_settings_cache
from taskyard.db import StoreConnection
from taskyard.services.job_queue import JobOptions, JobQueue

TEST_QUEUE_NAME = "test-jobs"


@pytest.fixture(autouse=True)
def clean_settings_cache():
    """Clear settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def store_url(tmp_path: Path) -> str:
    """URL of a fresh SQLite job store for one test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}"


@pytest_asyncio.fixture
async def store(store_url: str) -> AsyncGenerator[StoreConnection, None]:
    """Store connection with the jobs schema created."""
    connection = StoreConnection(store_url, role="test")
    await connection.create_schema()
    yield connection
    await connection.dispose()


@pytest.fixture
def fast_options() -> JobOptions:
    """Queue options with a short backoff so retries happen within a test."""
    return JobOptions(
        attempts=3,
        backoff_delay_ms=20,
        keep_completed=100,
        keep_failed=200,
        lock_timeout_seconds=30,
    )


@pytest.fixture
def queue(store: StoreConnection, fast_options: JobOptions) -> JobQueue:
    """Job queue bound to the test store."""
    return JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)


@pytest.fixture
def email_payload() -> dict:
    """Valid email payload."""
    return {
        "email_type": "welcome",
        "to": "user@example.com",
        "subject": "Welcome",
        "html": "<p>Welcome aboard</p>",
    }
