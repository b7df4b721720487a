"""Sync workflow: change detection, conflicts, history and deployments."""

from .analytics import FailurePattern, HealthReport, SyncAnalytics, SyncMetrics
from .change_detector import (
    ChangeDetector,
    ChangeReport,
    ChangeSet,
    ContentTypeChange,
    HashedDefinition,
)
from .conflict_detector import SEVERITY_BY_TYPE, ConflictDetector, DetectedConflict
from .conflict_manager import ConflictManager
from .history import RetryConfig, SyncHistoryManager
from .locks import KeyedLock
from .orchestrator import DeploymentResult, SyncItem, SyncOrchestrator, final_status
from .resolution_strategy import (
    ConflictResolution,
    ResolutionResult,
    ResolutionStrategySelector,
)

__all__ = [
    # Change detection
    "ChangeDetector",
    "ChangeReport",
    "ChangeSet",
    "ContentTypeChange",
    "HashedDefinition",
    # Conflicts
    "ConflictDetector",
    "ConflictManager",
    "ConflictResolution",
    "DetectedConflict",
    "ResolutionResult",
    "ResolutionStrategySelector",
    "SEVERITY_BY_TYPE",
    # History
    "FailurePattern",
    "HealthReport",
    "RetryConfig",
    "SyncAnalytics",
    "SyncHistoryManager",
    "SyncMetrics",
    # Orchestration
    "DeploymentResult",
    "KeyedLock",
    "SyncItem",
    "SyncOrchestrator",
    "final_status",
]
