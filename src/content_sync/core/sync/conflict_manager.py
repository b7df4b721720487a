"""Conflict queue: persistence, prioritization and resolution bookkeeping."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from ...database.models import (
    Conflict,
    ConflictPriority,
    ConflictReviewStatus,
    ConflictSeverity,
    ConflictType,
)
from ...database.service import DatabaseService
from ..versioning.diff import FieldDiff
from .conflict_detector import DetectedConflict
from .resolution_strategy import ConflictResolution

logger = logging.getLogger(__name__)

PRIORITY_BY_SEVERITY = {
    ConflictSeverity.LOW: ConflictPriority.LOW,
    ConflictSeverity.MEDIUM: ConflictPriority.MEDIUM,
    ConflictSeverity.HIGH: ConflictPriority.HIGH,
}

_PRIORITY_ESCALATION = {
    ConflictPriority.LOW: ConflictPriority.MEDIUM,
    ConflictPriority.MEDIUM: ConflictPriority.HIGH,
    ConflictPriority.HIGH: ConflictPriority.CRITICAL,
    ConflictPriority.CRITICAL: ConflictPriority.CRITICAL,
}


class ConflictManager:
    """Manages the review queue of detected conflicts.

    There is at most one open conflict per content type key. Flagging a key
    that already has one refreshes it instead of adding a second entry.
    """

    def __init__(self, db_service: DatabaseService, priority_item_threshold: int = 10):
        """Initialize conflict manager.

        Args:
            db_service: Database service for persistence
            priority_item_threshold: Dependent content items at which the
                priority is raised one level
        """
        self.db_service = db_service
        self.priority_item_threshold = priority_item_threshold

    def calculate_priority(
        self, severity: Union[ConflictSeverity, str], dependent_items: int
    ) -> ConflictPriority:
        """Priority from severity, escalated when many items depend on the type."""
        priority = PRIORITY_BY_SEVERITY[ConflictSeverity(severity)]
        if dependent_items >= self.priority_item_threshold:
            priority = _PRIORITY_ESCALATION[priority]
        return priority

    def flag_for_review(self, detected: DetectedConflict) -> Conflict:
        """Queue a conflict for review.

        Args:
            detected: Classified conflict

        Returns:
            The open Conflict row for the type key
        """
        dependent_items = self.db_service.count_content_items(detected.type_key)
        priority = self.calculate_priority(detected.severity, dependent_items)
        data: Dict[str, Any] = {
            "conflict_type": detected.conflict_type.value,
            "severity": detected.severity.value,
            "priority": priority.value,
            "local_hash": detected.local_hash,
            "remote_hash": detected.remote_hash,
            "ancestor_hash": detected.ancestor_hash,
            "source_changes": detected.source_changes.to_dict(),
            "target_changes": detected.target_changes.to_dict(),
            "conflicting_fields": list(detected.conflicting_fields),
            "dependent_items": dependent_items,
        }

        existing = self.get_open_conflict(detected.type_key)
        if existing is not None:
            conflict = self.db_service.update_conflict(existing.id, data)
            logger.info(
                "Updated open conflict %s for %s", conflict.id, detected.type_key
            )
        else:
            conflict = self.db_service.create_conflict(
                {"type_key": detected.type_key, **data}
            )
            logger.info(
                "Flagged %s for review (%s, priority %s)",
                detected.type_key,
                detected.conflict_type.value,
                priority.value,
            )
        detected.conflict_id = conflict.id
        return conflict

    def get_conflict(self, conflict_id: str) -> Optional[Conflict]:
        """Get a conflict by id."""
        return self.db_service.get_conflict(conflict_id)

    def get_open_conflict(self, type_key: str) -> Optional[Conflict]:
        """The pending conflict for a type key, if any."""
        conflicts = self.db_service.list_conflicts(
            status=ConflictReviewStatus.PENDING_REVIEW.value, type_key=type_key
        )
        return conflicts[0] if conflicts else None

    def get_conflict_queue(
        self,
        status: Optional[Union[ConflictReviewStatus, str]] = (
            ConflictReviewStatus.PENDING_REVIEW
        ),
        priority: Optional[Union[ConflictPriority, str]] = None,
        type_key: Optional[str] = None,
    ) -> List[Conflict]:
        """Conflicts sorted by priority (most urgent first), then age."""
        conflicts = self.db_service.list_conflicts(
            status=ConflictReviewStatus(status).value if status else None,
            priority=ConflictPriority(priority).value if priority else None,
            type_key=type_key,
        )
        rank = {p.value: i for i, p in enumerate(ConflictPriority.ordered())}
        return sorted(
            conflicts, key=lambda c: (rank.get(c.priority, len(rank)), c.created_at)
        )

    def resolve_conflict(
        self,
        conflict_id: str,
        resolution: Union[ConflictResolution, str],
        resolved_by: Optional[str] = None,
        resolved_hash: Optional[str] = None,
    ) -> Conflict:
        """Close a conflict.

        Raises:
            ValueError: If the conflict does not exist or is already resolved
        """
        conflict = self.get_conflict(conflict_id)
        if conflict is None:
            raise ValueError(f"Conflict not found: {conflict_id}")
        if conflict.status == ConflictReviewStatus.RESOLVED.value:
            raise ValueError(f"Conflict already resolved: {conflict_id}")

        resolved = self.db_service.update_conflict(
            conflict_id,
            {
                "status": ConflictReviewStatus.RESOLVED.value,
                "resolution": ConflictResolution(resolution).value,
                "resolved_by": resolved_by,
                "resolved_hash": resolved_hash,
                "resolved_at": datetime.now(timezone.utc),
            },
        )
        logger.info(
            "Conflict %s for %s resolved with %s",
            conflict_id,
            resolved.type_key,
            resolved.resolution,
        )
        return resolved

    def close_converged(
        self, type_key: str, resolved_hash: str, resolved_by: Optional[str] = None
    ) -> Optional[Conflict]:
        """Close the open conflict of a key whose two sides now agree.

        Returns:
            The closed conflict, or None if the key had no open conflict
        """
        existing = self.get_open_conflict(type_key)
        if existing is None:
            return None
        logger.info("Both sides of %s converged, closing conflict", type_key)
        return self.resolve_conflict(
            existing.id, ConflictResolution.TAKE_LOCAL, resolved_by, resolved_hash
        )

    def get_resolution_history(self, type_key: Optional[str] = None) -> List[Conflict]:
        """Resolved conflicts, most recently resolved first."""
        conflicts = self.db_service.list_conflicts(
            status=ConflictReviewStatus.RESOLVED.value, type_key=type_key
        )
        return sorted(
            conflicts,
            key=lambda c: c.resolved_at or c.created_at,
            reverse=True,
        )

    def clear_resolved_conflicts(self, older_than: Optional[datetime] = None) -> int:
        """Delete resolved conflicts, optionally only those resolved before a date."""
        count = self.db_service.delete_conflicts(
            ConflictReviewStatus.RESOLVED.value, older_than=older_than
        )
        logger.info("Cleared %d resolved conflicts", count)
        return count

    def get_statistics(self) -> Dict[str, Any]:
        """Counts of conflicts by status, priority, type and resolution."""
        conflicts = self.db_service.list_conflicts()
        stats: Dict[str, Any] = {
            "total": len(conflicts),
            "pending": 0,
            "resolved": 0,
            "by_priority": {p.value: 0 for p in ConflictPriority.ordered()},
            "by_type": {t.value: 0 for t in ConflictType},
            "by_resolution": {r.value: 0 for r in ConflictResolution},
        }
        for conflict in conflicts:
            if conflict.status == ConflictReviewStatus.RESOLVED.value:
                stats["resolved"] += 1
                if conflict.resolution in stats["by_resolution"]:
                    stats["by_resolution"][conflict.resolution] += 1
            else:
                stats["pending"] += 1
                stats["by_priority"][conflict.priority] += 1
            stats["by_type"][conflict.conflict_type] += 1
        return stats

    @staticmethod
    def to_detected(conflict: Conflict) -> DetectedConflict:
        """Rebuild a DetectedConflict from a stored row, without definitions."""
        return DetectedConflict(
            type_key=conflict.type_key,
            conflict_type=ConflictType(conflict.conflict_type),
            severity=ConflictSeverity(conflict.severity),
            local_hash=conflict.local_hash,
            remote_hash=conflict.remote_hash,
            ancestor_hash=conflict.ancestor_hash,
            source_changes=FieldDiff.from_dict(conflict.source_changes),
            target_changes=FieldDiff.from_dict(conflict.target_changes),
            conflicting_fields=list(conflict.conflicting_fields or []),
            conflict_id=conflict.id,
        )
