"""Shared pytest fixtures for Podcast Ad Orchestrator tests.

This module contains common fixtures used across multiple test files,
reducing duplication and improving test maintainability.
"""

import os
import tempfile

# Keep the Huey queue database and default paths out of the repository
os.environ.setdefault("PODCAST_AD_DATA_DIR", tempfile.mkdtemp(prefix="podcast-ad-test-"))

from pathlib import Path  # noqa: E402
from unittest.mock import patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.db import init_db  # noqa: E402
from app.store import create_job  # noqa: E402
from services.job_api.main import app, get_db_session, override_session_factory  # noqa: E402

SAMPLE_INPUT = {
    "music": {
        "prompt": {"genres": "Acoustic", "moods": "Hopeful", "themes": "Corporate", "length": 30},
        "durationInSeconds": 30,
        "volume": 0.4,
        "offsetInMilliseconds": 0,
    },
    "voiceOver": {
        "prompt": {"voice": "narrator-1", "input": "Try our coffee today."},
        "durationInSeconds": 12,
        "volume": 1,
        "offsetInMilliseconds": 1500,
    },
}


@pytest.fixture
def temp_db():
    """Create a temporary database for testing.

    Creates an isolated SQLite database in a temporary directory.
    The database is cleaned up after the test completes.

    Yields:
        tuple: (db_path, engine, SessionFactory)
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        engine, SessionFactory = init_db(db_path)
        override_session_factory(SessionFactory)
        yield db_path, engine, SessionFactory
        engine.dispose()


@pytest.fixture
def session_factory(temp_db):
    """Just the SessionFactory of temp_db."""
    _, _, SessionFactory = temp_db
    return SessionFactory


@pytest.fixture
def mock_enqueue():
    """Patch the Huey dispatch enqueue so no task is queued."""
    with patch("app.huey_app.enqueue_job_dispatch") as mocked:
        yield mocked


@pytest.fixture
def make_job(session_factory):
    """Factory fixture creating committed podcastAd jobs.

    Returns:
        Callable(job_id=None, owner_id="user-1") -> job_id
    """

    def _make(job_id=None, owner_id="user-1"):
        session = session_factory()
        try:
            snapshot = create_job(session, owner_id, "podcastAd", SAMPLE_INPUT, job_id=job_id)
            session.commit()
            return snapshot.job_id
        finally:
            session.close()

    return _make


@pytest.fixture
def client(temp_db, mock_enqueue):
    """Create a FastAPI test client with temp database.

    Overrides the database dependency to use the temporary test database.
    The dependency override is cleared after the test completes.

    Args:
        temp_db: Temporary database fixture.
        mock_enqueue: Dispatch enqueue patch.

    Yields:
        tuple: (test_client, SessionFactory)
    """
    db_path, engine, SessionFactory = temp_db

    # Override the dependency
    def get_test_session():
        session = SessionFactory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = get_test_session

    with TestClient(app) as client:
        yield client, SessionFactory

    # Clean up dependency overrides
    app.dependency_overrides.clear()
