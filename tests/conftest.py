"""Shared fixtures for the content sync tests."""

import pytest

from content_sync.config import Config
from content_sync.core.sync import RetryConfig, SyncOrchestrator
from content_sync.database import DatabaseService
from tests.helpers import FakePlatform


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing."""
    db_service = DatabaseService(tmp_path / "test.db")
    db_service.init_db()
    yield db_service
    db_service.close()


@pytest.fixture
def config(tmp_path, monkeypatch):
    """Configuration pointing at a temporary database."""
    monkeypatch.setenv("CONTENT_SYNC_DATABASE_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("CONTENT_SYNC_PLATFORM_NAME", "test-platform")
    monkeypatch.setenv("CONTENT_SYNC_AUTO_RESOLVE", "false")
    monkeypatch.setenv("CONTENT_SYNC_ALLOW_DELETES", "false")
    monkeypatch.setenv("CONTENT_SYNC_HASH_WORKERS", "2")
    return Config()


@pytest.fixture
def platform():
    """Empty fake platform."""
    return FakePlatform()


@pytest.fixture
def sleeps():
    """Delays requested by the retry loop."""
    return []


@pytest.fixture
def orchestrator(temp_db, platform, config, sleeps):
    """Orchestrator wired to the temporary database and fake platform."""
    return SyncOrchestrator(
        temp_db,
        platform,
        config=config,
        retry_config=RetryConfig(max_attempts=2, initial_delay=0.5, max_delay=5.0),
        sleep=sleeps.append,
    )
