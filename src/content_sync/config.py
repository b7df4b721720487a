"""Configuration management for the content sync engine."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from config directory or project root
config_env = Path(__file__).parent.parent.parent / "config" / ".env"
if config_env.exists():
    load_dotenv(config_env)
else:
    load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Database settings
        default_db_path = str(Path.home() / ".content-sync" / "sync.db")
        self.database_path = Path(
            os.getenv("CONTENT_SYNC_DATABASE_PATH", default_db_path)
        )

        # Remote platform settings
        self.platform_url = os.getenv(
            "CONTENT_SYNC_PLATFORM_URL", "http://localhost:8000/api"
        )
        self.platform_token = os.getenv("CONTENT_SYNC_PLATFORM_TOKEN")
        self.platform_name = os.getenv("CONTENT_SYNC_PLATFORM_NAME", "platform")
        self.request_timeout = float(
            os.getenv("CONTENT_SYNC_REQUEST_TIMEOUT", "30")
        )
        self.max_concurrent_requests = int(
            os.getenv("CONTENT_SYNC_MAX_CONCURRENT_REQUESTS", "4")
        )

        # Retry settings
        self.retry_max_attempts = int(os.getenv("CONTENT_SYNC_RETRY_MAX_ATTEMPTS", "3"))
        self.retry_initial_delay = float(
            os.getenv("CONTENT_SYNC_RETRY_INITIAL_DELAY", "1.0")
        )
        self.retry_max_delay = float(os.getenv("CONTENT_SYNC_RETRY_MAX_DELAY", "30.0"))
        self.retry_backoff = float(os.getenv("CONTENT_SYNC_RETRY_BACKOFF", "2.0"))

        # Deployment behaviour
        self.auto_resolve = _env_bool("CONTENT_SYNC_AUTO_RESOLVE", False)
        self.allow_deletes = _env_bool("CONTENT_SYNC_ALLOW_DELETES", False)
        self.priority_item_threshold = int(
            os.getenv("CONTENT_SYNC_PRIORITY_ITEM_THRESHOLD", "10")
        )
        self.hash_workers = int(os.getenv("CONTENT_SYNC_HASH_WORKERS", "4"))

        # Ensure directories exist
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def get_config() -> Config:
    """Get application configuration."""
    return Config()
