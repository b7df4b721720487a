"""Tests for configuration."""

from pathlib import Path

from content_sync.config import Config, get_config


class TestConfig:
    """Test Config class."""

    def test_defaults(self, tmp_path, monkeypatch):
        """Unset variables fall back to defaults."""
        monkeypatch.setenv("CONTENT_SYNC_DATABASE_PATH", str(tmp_path / "db" / "s.db"))
        for name in (
            "CONTENT_SYNC_PLATFORM_URL",
            "CONTENT_SYNC_PLATFORM_TOKEN",
            "CONTENT_SYNC_RETRY_MAX_ATTEMPTS",
            "CONTENT_SYNC_AUTO_RESOLVE",
            "CONTENT_SYNC_ALLOW_DELETES",
            "CONTENT_SYNC_PRIORITY_ITEM_THRESHOLD",
        ):
            monkeypatch.delenv(name, raising=False)

        config = Config()

        assert config.platform_url == "http://localhost:8000/api"
        assert config.platform_token is None
        assert config.retry_max_attempts == 3
        assert config.auto_resolve is False
        assert config.allow_deletes is False
        assert config.priority_item_threshold == 10
        assert (tmp_path / "db").is_dir()

    def test_environment_overrides(self, tmp_path, monkeypatch):
        """Environment variables are parsed into typed settings."""
        monkeypatch.setenv("CONTENT_SYNC_DATABASE_PATH", str(tmp_path / "s.db"))
        monkeypatch.setenv("CONTENT_SYNC_PLATFORM_URL", "https://cms.example.com")
        monkeypatch.setenv("CONTENT_SYNC_REQUEST_TIMEOUT", "5.5")
        monkeypatch.setenv("CONTENT_SYNC_RETRY_MAX_DELAY", "12")
        monkeypatch.setenv("CONTENT_SYNC_AUTO_RESOLVE", "yes")
        monkeypatch.setenv("CONTENT_SYNC_ALLOW_DELETES", "0")

        config = get_config()

        assert config.database_path == Path(tmp_path / "s.db")
        assert config.platform_url == "https://cms.example.com"
        assert config.request_timeout == 5.5
        assert config.retry_max_delay == 12.0
        assert config.auto_resolve is True
        assert config.allow_deletes is False
