"""Content-type sync and versioning engine.

Detects drift between locally defined content types and a remote publishing
platform, keeps a version history of every accepted change, and deploys
changes with conflict detection, resolution and retries.
"""

__version__ = "1.0.0"

from .config import Config
from .core.sync import SyncOrchestrator
from .database import DatabaseService
from .models import ContentTypeDefinition

__all__ = [
    "Config",
    "ContentTypeDefinition",
    "DatabaseService",
    "SyncOrchestrator",
]
