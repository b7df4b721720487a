"""Database package: models, service, sync state store and progress tracking."""

from .models import (
    ChangeSource,
    Conflict,
    ConflictPriority,
    ConflictReviewStatus,
    ConflictSeverity,
    ConflictStatus,
    ConflictType,
    ContentItem,
    ContentType,
    ContentTypeVersion,
    Deployment,
    DeploymentStatus,
    SyncAttemptStatus,
    SyncDirection,
    SyncHistory,
    SyncState,
    SyncStatus,
    VersionParent,
)
from .progress_tracker import (
    ConsoleProgressReporter,
    ProgressCallback,
    ProgressPhase,
    ProgressTracker,
    ProgressUpdate,
    TqdmProgressReporter,
)
from .service import DatabaseService
from .sync_state import SyncAction, SyncDelta, SyncStateStore

__all__ = [
    # Models
    "ContentType",
    "ContentItem",
    "ContentTypeVersion",
    "VersionParent",
    "SyncState",
    "Conflict",
    "SyncHistory",
    "Deployment",
    # Status enums
    "ChangeSource",
    "SyncStatus",
    "ConflictStatus",
    "ConflictType",
    "ConflictSeverity",
    "ConflictPriority",
    "ConflictReviewStatus",
    "SyncAttemptStatus",
    "SyncDirection",
    "DeploymentStatus",
    # Services
    "DatabaseService",
    "SyncStateStore",
    "SyncAction",
    "SyncDelta",
    # Progress tracking
    "ProgressTracker",
    "ProgressPhase",
    "ProgressUpdate",
    "ProgressCallback",
    "ConsoleProgressReporter",
    "TqdmProgressReporter",
]
